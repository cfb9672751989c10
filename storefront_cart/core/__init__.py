# Core modules

from .config import get_settings, Settings
from .transaction import TransactionRefMiddleware, get_transaction_ref

__all__ = [
    "get_settings",
    "Settings",
    "TransactionRefMiddleware",
    "get_transaction_ref",
]
