"""Object store capability: put/get/delete/head by key."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from common.constants import CHUNK_CONTENT_TYPE


class BlobStoreError(Exception):
    """
    Base exception for object store failures.
    """
    pass


class BlobNotFoundError(BlobStoreError):
    """
    Raised when a key does not exist in the store. Not retryable.
    """
    pass


class TransientBlobStoreError(BlobStoreError):
    """
    Raised for I/O faults that may succeed on retry.
    """
    pass


@dataclass(frozen=True)
class BlobInfo:
    """Information about a stored object."""
    key: str
    size: int
    content_type: Optional[str] = None


class BlobStore(ABC):
    """
    Durable key -> bytes store with no transactional semantics.

    Implementations must make ``put`` idempotent for identical content and
    ``delete`` a no-op for absent keys.
    """

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = CHUNK_CONTENT_TYPE) -> BlobInfo:
        """
        Store bytes under a key, replacing any previous object.

        Raises:
            TransientBlobStoreError: If the write fails
        """

    @abstractmethod
    def get(self, key: str) -> bytes:
        """
        Read the object stored under a key.

        Raises:
            BlobNotFoundError: If the key does not exist
            TransientBlobStoreError: If the read fails
        """

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Delete an object.

        Returns:
            True if an object was deleted, False if it did not exist
        """

    @abstractmethod
    def head(self, key: str) -> Optional[BlobInfo]:
        """Return object info, or None if the key does not exist."""

    @abstractmethod
    def list_keys(self, prefix: str = "") -> List[str]:
        """List stored keys starting with prefix."""
