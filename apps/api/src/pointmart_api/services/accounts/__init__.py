from .repository import AccountError, AccountNotFoundError, AccountRepository, InsufficientFundsError
from .service import AccountService

__all__ = [
    "AccountError",
    "AccountNotFoundError",
    "AccountRepository",
    "AccountService",
    "InsufficientFundsError",
]
