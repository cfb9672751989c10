# Storage modules

from .store import (
    KeyValueStore,
    RedisStore,
    InMemoryStore,
    StoreError,
    StoreUnreachableError,
    KeyNotFoundError,
    create_store,
)
from .carts import CartRepository, StoredCart, CartConflictError, MalformedCartError

__all__ = [
    "KeyValueStore",
    "RedisStore",
    "InMemoryStore",
    "StoreError",
    "StoreUnreachableError",
    "KeyNotFoundError",
    "create_store",
    "CartRepository",
    "StoredCart",
    "CartConflictError",
    "MalformedCartError",
]
