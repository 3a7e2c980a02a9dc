"""Repository modules - Data access layer"""
from typing import Optional

from .base import LifecycleStore, StoreTransaction
from .memory_store import InMemoryLifecycleStore
from .mongo_store import MongoLifecycleStore
from ..config.settings import settings

_store: Optional[LifecycleStore] = None


def create_store() -> LifecycleStore:
    """Build the store selected by ``settings.store_backend``"""
    if settings.store_backend.lower() == "memory":
        return InMemoryLifecycleStore(
            lock_timeout_seconds=settings.store_timeout_seconds,
            audit_delivery_attempts=settings.audit_delivery_attempts,
        )

    from .mongo_client import get_database
    return MongoLifecycleStore(
        get_database(),
        use_transactions=settings.mongo_use_transactions,
        timeout_seconds=settings.store_timeout_seconds,
        audit_delivery_attempts=settings.audit_delivery_attempts,
    )


def get_store() -> LifecycleStore:
    """Get or create the process-wide store"""
    global _store
    if _store is None:
        _store = create_store()
    return _store


def reset_store() -> None:
    """Close and forget the process-wide store"""
    global _store
    if _store is not None:
        _store.close()
        _store = None


__all__ = [
    "LifecycleStore",
    "StoreTransaction",
    "InMemoryLifecycleStore",
    "MongoLifecycleStore",
    "create_store",
    "get_store",
    "reset_store",
]
