"""Deletion and inline garbage collection of unreferenced chunks."""

from typing import List, Optional, Tuple

from common.logging_config import get_logger
from common.types import DeletionResult, ReconcileResult
from controller.blob_client import BlobClient
from controller.database import get_db_connection, transaction
from controller.exceptions import FileNotFoundError, IntegrityFaultError
from controller.locks import FingerprintLockTable
from controller.repositories.chunk_repository import ChunkRepository
from controller.repositories.file_repository import FileRepository
from controller.repositories.manifest_repository import ManifestRepository
from controller.repositories.pending_deletion_repository import PendingDeletionRepository
from controller.services.download_service import load_file

logger = get_logger(__name__)


class DeletionService:
    def __init__(self, blob_client: BlobClient, lock_table: FingerprintLockTable):
        self.blob_client = blob_client
        self.lock_table = lock_table

    def delete_file(self, file_id: str, owner_id: Optional[str] = None) -> DeletionResult:
        """
        Delete a file and release its chunks.

        The file record, manifest and every refcount change commit together;
        keys of chunks that reached zero are queued in the outbox in the same
        transaction. Objects are physically deleted only after the commit, and
        a failed delete stays queued for ``reconcile_pending_deletions``.

        Raises:
            FileNotFoundError: If the file does not exist (or was deleted concurrently)
            UnauthorizedAccessError: If owner_id is given and does not own the file
            IntegrityFaultError: If the manifest references a chunk missing from the ledger
        """
        load_file(file_id, owner_id)
        fingerprints = sorted({entry.fingerprint for entry in ManifestRepository.get_entries(file_id)})

        reclaimed: List[Tuple[str, str]] = []

        with self.lock_table.hold(fingerprints):
            with transaction() as conn:
                if not FileRepository.delete_file(file_id, conn=conn):
                    raise FileNotFoundError(f"File {file_id} not found")

                for fingerprint in fingerprints:
                    chunk = ChunkRepository.lookup(fingerprint, conn=conn)
                    if chunk is None:
                        logger.error(f"Manifest references missing chunk [file_id={file_id}] [fingerprint={fingerprint}]")
                        raise IntegrityFaultError(
                            f"File {file_id} references chunk {fingerprint} which is not in the ledger"
                        )

                    remaining = ChunkRepository.decrement_reference(fingerprint, conn=conn)
                    if remaining == 0 and ChunkRepository.delete_if_unreferenced(fingerprint, conn=conn):
                        PendingDeletionRepository.enqueue(chunk.storage_key, fingerprint, conn=conn)
                        reclaimed.append((fingerprint, chunk.storage_key))

            logger.info(
                f"Deleted file [file_id={file_id}] released={len(fingerprints)} reclaimed={len(reclaimed)}"
            )
            deleted_keys, pending_keys = self._delete_objects(reclaimed)

        return DeletionResult(
            file_id=file_id,
            released_chunks=len(fingerprints),
            reclaimed_chunks=len(reclaimed),
            blobs_deleted=deleted_keys,
            blobs_pending=pending_keys,
        )

    def _delete_objects(self, reclaimed: List[Tuple[str, str]]) -> Tuple[List[str], List[str]]:
        """
        Physically delete objects whose ledger rows are gone. Called with the
        fingerprint locks held and only after the ledger commit.
        """
        deleted: List[str] = []
        pending: List[str] = []

        for fingerprint, storage_key in reclaimed:
            try:
                self.blob_client.delete_chunk(storage_key)
            except Exception as e:
                logger.error(
                    f"Failed to delete object, left for reconciliation [key={storage_key}]: {e}",
                    exc_info=True
                )
                PendingDeletionRepository.record_failure(storage_key, str(e))
                pending.append(storage_key)
                continue

            PendingDeletionRepository.remove(storage_key)
            deleted.append(storage_key)
            logger.debug(f"Deleted object [key={storage_key}] [fingerprint={fingerprint}]")

        return deleted, pending

    def reconcile_pending_deletions(self, limit: int = 1000) -> ReconcileResult:
        """
        Drain the outbox of objects whose physical delete is still owed.

        A key that a chunk row references again (the block was re-uploaded
        since) is dropped from the outbox without touching the store.
        """
        deleted: List[str] = []
        skipped: List[str] = []
        failed: List[str] = []

        pending = PendingDeletionRepository.list_pending(limit)
        if pending:
            logger.info(f"Reconciling {len(pending)} pending object deletions")

        for item in pending:
            with self.lock_table.hold([item.fingerprint]):
                with get_db_connection() as conn:
                    if ChunkRepository.is_storage_key_referenced(item.storage_key, conn=conn):
                        PendingDeletionRepository.remove(item.storage_key, conn=conn)
                        skipped.append(item.storage_key)
                        continue

                try:
                    self.blob_client.delete_chunk(item.storage_key)
                except Exception as e:
                    logger.warning(f"Pending deletion failed again [key={item.storage_key}]: {e}")
                    PendingDeletionRepository.record_failure(item.storage_key, str(e))
                    failed.append(item.storage_key)
                    continue

                PendingDeletionRepository.remove(item.storage_key)
                deleted.append(item.storage_key)

        if pending:
            logger.info(
                f"Reconcile complete: {len(deleted)} deleted, {len(skipped)} skipped, {len(failed)} remaining"
            )
        return ReconcileResult(deleted=deleted, skipped=skipped, failed=failed)
