"""Object store backends."""

from pathlib import Path
from typing import Union

from blobstore.base import (
    BlobInfo,
    BlobNotFoundError,
    BlobStore,
    BlobStoreError,
    TransientBlobStoreError,
)
from blobstore.filesystem import FilesystemBlobStore
from blobstore.memory import InMemoryBlobStore


def create_blob_store(backend: str, storage_path: Union[str, Path]) -> BlobStore:
    """
    Build a blob store from configuration.

    Args:
        backend: ``filesystem`` or ``memory``
        storage_path: Root directory for the filesystem backend

    Raises:
        ValueError: If the backend name is unknown
    """
    if backend == "filesystem":
        return FilesystemBlobStore(storage_path)
    if backend == "memory":
        return InMemoryBlobStore()
    raise ValueError(f"Unknown blob backend: {backend}")


__all__ = [
    "BlobInfo",
    "BlobNotFoundError",
    "BlobStore",
    "BlobStoreError",
    "TransientBlobStoreError",
    "FilesystemBlobStore",
    "InMemoryBlobStore",
    "create_blob_store",
]
