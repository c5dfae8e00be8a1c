from fastapi import APIRouter

from .endpoints import auth, balance, orders

router = APIRouter()
router.include_router(auth.router)
router.include_router(orders.router)
router.include_router(balance.router)
