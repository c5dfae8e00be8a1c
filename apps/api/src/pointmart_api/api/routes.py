from fastapi import APIRouter

from .v1 import router as user_router
from .v1.endpoints import health

api_router = APIRouter()
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(user_router, prefix="/api/user")
