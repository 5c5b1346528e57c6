"""Repository layer for data access."""

from controller.repositories.chunk_repository import ChunkRepository
from controller.repositories.file_repository import FileRepository
from controller.repositories.manifest_repository import ManifestRepository
from controller.repositories.pending_deletion_repository import PendingDeletionRepository

__all__ = [
    "ChunkRepository",
    "FileRepository",
    "ManifestRepository",
    "PendingDeletionRepository",
]
