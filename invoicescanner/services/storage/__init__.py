"""
Storage Services Package

Provides the key-value backend interface, local implementations, and the
versioned collection store built on top of them.
"""

from invoicescanner.services.storage.interface import (
    IncompleteDraftError,
    KeyValueStoreInterface,
    PersistDecodeFailedError,
    PersistWriteFailedError,
    StorageError,
)
from invoicescanner.services.storage.local_store import (
    InMemoryKeyValueStore,
    LocalKeyValueStore,
)
from invoicescanner.services.storage.collection import (
    STORAGE_KEYS,
    CollectionStore,
)

__all__ = [
    # Interfaces
    "KeyValueStoreInterface",
    # Exceptions
    "IncompleteDraftError",
    "PersistDecodeFailedError",
    "PersistWriteFailedError",
    "StorageError",
    # Implementations
    "CollectionStore",
    "InMemoryKeyValueStore",
    "LocalKeyValueStore",
    "STORAGE_KEYS",
]
