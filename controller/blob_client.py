"""Object store access for the orchestrators: key layout, retries and error translation."""

import time
from typing import Callable, Optional, TypeVar

from blobstore.base import BlobNotFoundError, BlobStore, TransientBlobStoreError
from common.constants import CHUNK_CONTENT_TYPE
from common.logging_config import get_logger
from controller.config import CHUNK_KEY_PREFIX, STORE_RETRY_ATTEMPTS, STORE_RETRY_BASE_DELAY
from controller.exceptions import IntegrityFaultError, StoreUnavailableError

logger = get_logger(__name__)

T = TypeVar("T")


class BlobClient:
    """
    Wraps a BlobStore for chunk traffic.

    ``put_chunk`` and ``get_chunk`` retry transient faults with exponential
    backoff and raise StoreUnavailableError once retries are exhausted.
    ``delete_chunk`` makes exactly one attempt; callers decide what a
    failure means.
    """

    def __init__(
        self,
        store: BlobStore,
        key_prefix: str = CHUNK_KEY_PREFIX,
        max_attempts: int = STORE_RETRY_ATTEMPTS,
        base_delay: float = STORE_RETRY_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.key_prefix = key_prefix.strip("/")
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self._sleep = sleep

    def storage_key_for(self, fingerprint: str) -> str:
        """Deterministic object key for a chunk: ``<prefix>/<fingerprint>``."""
        return f"{self.key_prefix}/{fingerprint}"

    def _retry_with_backoff(self, description: str, operation: Callable[[], T]) -> T:
        """
        Retry an operation on TransientBlobStoreError.

        Args:
            description: Human readable operation name for logs
            operation: Zero-argument callable to run

        Returns:
            Result from the first successful attempt

        Raises:
            StoreUnavailableError: If all attempts fail
        """
        for attempt in range(self.max_attempts):
            try:
                return operation()
            except TransientBlobStoreError as e:
                if attempt < self.max_attempts - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Transient store failure during {description}, retrying in {delay}s "
                        f"(attempt {attempt + 1}/{self.max_attempts}): {e}"
                    )
                    self._sleep(delay)
                    continue
                logger.error(f"Store failure during {description} after {self.max_attempts} attempts: {e}")
                raise StoreUnavailableError(f"Object store unavailable during {description}: {e}") from e

        raise AssertionError("unreachable")

    def put_chunk(self, storage_key: str, data: bytes) -> None:
        self._retry_with_backoff(
            f"put {storage_key}",
            lambda: self.store.put(storage_key, data, CHUNK_CONTENT_TYPE),
        )

    def get_chunk(self, storage_key: str) -> bytes:
        """
        Raises:
            IntegrityFaultError: If the ledger references a key the store does not have
            StoreUnavailableError: If the store keeps failing
        """
        try:
            return self._retry_with_backoff(f"get {storage_key}", lambda: self.store.get(storage_key))
        except BlobNotFoundError as e:
            raise IntegrityFaultError(f"Object {storage_key} is referenced but missing from the store") from e

    def delete_chunk(self, storage_key: str) -> bool:
        """
        Single delete attempt. Deleting an absent key is not an error.

        Raises:
            TransientBlobStoreError: If the store rejects the delete
        """
        return self.store.delete(storage_key)

    def ping(self) -> Optional[str]:
        """
        Probe the store.

        Returns:
            None if the store answers, otherwise the error text
        """
        try:
            self.store.head(f"{self.key_prefix}/.ping")
            return None
        except Exception as e:
            return str(e)
