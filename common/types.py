"""Shared data type definitions (ChunkDescriptor, UploadResult, FileMetadata, etc.)."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List


@dataclass(frozen=True)
class ChunkDescriptor:
    """
    One fixed-size block of an upload, in stream order.
    """
    order: int
    data: bytes = field(repr=False)
    fingerprint: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class UploadResult:
    """
    Outcome of a successful upload.
    """
    file_id: str
    original_name: str
    total_size: int
    total_chunks: int
    unique_chunks: int
    duplicate_chunks: int


@dataclass(frozen=True)
class DeletionResult:
    file_id: str
    released_chunks: int
    reclaimed_chunks: int
    blobs_deleted: List[str]
    blobs_pending: List[str]


@dataclass(frozen=True)
class ReconcileResult:
    deleted: List[str]
    skipped: List[str]
    failed: List[str]


@dataclass(frozen=True)
class FileMetadata:
    """
    Metadata for a stored file, as exposed to callers.
    """
    file_id: str
    container_id: str
    original_name: str
    size: int
    content_type: str
    uploaded_at: datetime
    chunk_count: int


@dataclass(frozen=True)
class LedgerStats:
    chunk_count: int
    total_references: int
    stored_bytes: int
    logical_bytes: int

    @property
    def dedup_ratio(self) -> float:
        if self.stored_bytes == 0:
            return 1.0
        return self.logical_bytes / self.stored_bytes
