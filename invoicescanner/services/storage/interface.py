"""
Abstract Storage Interface

DESIGN DECISION: The collection store talks to an abstract key-value
backend. This allows us to:
1. Keep collections in a local directory for real use
2. Use in-memory storage for testing
3. Swap in another client-local medium without touching the workflow

The interface is intentionally tiny: the collection is always read and
written as one value, so get/set/delete is all we need.
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStoreInterface(ABC):
    """
    Abstract interface for durable client-local key-value storage.

    Values are opaque text (the collection's serialized JSON).
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read the value stored under a key.

        Returns:
            The stored text, or None if the key has never been written

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """
        Replace the value stored under a key in a single write.

        A reader must never observe a partially written value.

        Raises:
            PersistWriteFailedError: If the value could not be stored
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if the key existed
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class PersistDecodeFailedError(StorageError):
    """Stored collection could not be parsed as the current record shape."""

    def __init__(self, storage_key: str, message: str):
        self.storage_key = storage_key
        super().__init__(message)


class PersistWriteFailedError(StorageError):
    """Collection could not be durably saved."""
    pass


class IncompleteDraftError(ValueError):
    """Draft lacks fields required for a committed record."""

    def __init__(self, missing_fields: list[str], message: Optional[str] = None):
        self.missing_fields = missing_fields
        super().__init__(
            message or f"Cannot save yet, missing: {', '.join(missing_fields)}"
        )
