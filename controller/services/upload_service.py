"""Upload orchestration: chunk, deduplicate against the ledger, persist the manifest."""

import threading
import time
from concurrent.futures import Executor, Future, as_completed
from datetime import datetime, timezone
from typing import BinaryIO, Collection, Dict, List, Optional, Union

from common.chunking import split_into_chunks
from common.constants import DEFAULT_CONTENT_TYPE
from common.logging_config import get_logger
from common.types import ChunkDescriptor, UploadResult
from controller.blob_client import BlobClient
from controller.config import ALLOWED_CONTENT_TYPES, CHUNK_SIZE_BYTES, MAX_UPLOAD_SIZE_BYTES
from controller.database import transaction
from controller.exceptions import (
    ChunkNotFoundError,
    DuplicateFingerprintError,
    EmptyUploadError,
    InvalidUploadError,
    UnsupportedContentTypeError,
    UploadCancelledError,
    UploadTooLargeError,
)
from controller.locks import FingerprintLockTable
from controller.repositories.chunk_repository import Chunk, ChunkRepository
from controller.repositories.file_repository import File, FileRepository
from controller.repositories.manifest_repository import ManifestEntry, ManifestRepository
from controller.repositories.pending_deletion_repository import PendingDeletionRepository
from controller.utils import generate_uuid

logger = get_logger(__name__)


class _Deadline:
    """Cancellation checkpoint combining an optional event and an optional timeout."""

    def __init__(self, file_id: str, cancel_event: Optional[threading.Event], timeout: Optional[float]):
        self.file_id = file_id
        self.cancel_event = cancel_event
        self.expires_at = time.monotonic() + timeout if timeout is not None else None

    def check(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise UploadCancelledError(f"Upload {self.file_id} was cancelled")
        if self.expires_at is not None and time.monotonic() >= self.expires_at:
            raise UploadCancelledError(f"Upload {self.file_id} timed out")


class UploadService:
    def __init__(
        self,
        blob_client: BlobClient,
        lock_table: FingerprintLockTable,
        executor: Optional[Executor] = None,
        chunk_size: int = CHUNK_SIZE_BYTES,
        max_upload_size: int = MAX_UPLOAD_SIZE_BYTES,
        allowed_content_types: Collection[str] = ALLOWED_CONTENT_TYPES,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.blob_client = blob_client
        self.lock_table = lock_table
        self.executor = executor
        self.chunk_size = chunk_size
        self.max_upload_size = max_upload_size
        self.allowed_content_types = frozenset(ct.lower() for ct in allowed_content_types)

    def upload_file(
        self,
        file_data: Union[bytes, BinaryIO],
        container_id: str,
        original_name: str,
        content_type: Optional[str] = None,
        owner_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> UploadResult:
        """
        Store a new file, deduplicating its chunks against the ledger.

        The ledger side is all-or-nothing. Objects written for chunks that were
        new to this upload are deleted again, best effort, if anything fails
        before the commit.

        Args:
            file_data: Raw bytes or a binary stream
            container_id: Already-authorized container (bucket) identifier
            original_name: Client supplied file name
            content_type: Declared MIME type
            owner_id: Caller identity, recorded on the file
            cancel_event: Set by the caller to abort the upload
            timeout: Seconds after which the upload aborts

        Returns:
            UploadResult with chunk tallies and the new file id

        Raises:
            InvalidUploadError: If the request is rejected before chunking
            UploadCancelledError: If cancelled or timed out
            StoreUnavailableError: If the object store keeps failing
        """
        content_type = (content_type or DEFAULT_CONTENT_TYPE).strip().lower()
        self._validate_request(container_id, original_name, content_type)
        data = self._read_content(file_data)

        file_id = generate_uuid()
        deadline = _Deadline(file_id, cancel_event, timeout)
        deadline.check()

        chunks = list(split_into_chunks(data, self.chunk_size))
        fingerprints = {chunk.fingerprint for chunk in chunks}
        logger.info(
            f"Uploading file [file_id={file_id}] [name={original_name}] "
            f"[size={len(data)}] [chunks={len(chunks)}] [distinct={len(fingerprints)}]"
        )

        written_keys: Dict[str, str] = {}

        with self.lock_table.hold(fingerprints):
            try:
                result = self._store(
                    file_id, chunks, data, container_id, original_name,
                    content_type, owner_id, written_keys, deadline,
                )
            except Exception as e:
                logger.error(f"Upload failed [file_id={file_id}]: {e}")
                self._compensate(file_id, written_keys)
                raise

        logger.info(
            f"Uploaded file [file_id={file_id}] total={result.total_chunks} "
            f"unique={result.unique_chunks} duplicate={result.duplicate_chunks}"
        )
        return result

    def _store(
        self,
        file_id: str,
        chunks: List[ChunkDescriptor],
        data: bytes,
        container_id: str,
        original_name: str,
        content_type: str,
        owner_id: Optional[str],
        written_keys: Dict[str, str],
        deadline: _Deadline,
    ) -> UploadResult:
        first_seen: Dict[str, ChunkDescriptor] = {}
        for chunk in chunks:
            first_seen.setdefault(chunk.fingerprint, chunk)

        existing = ChunkRepository.lookup_many(first_seen)
        misses = [chunk for fp, chunk in first_seen.items() if fp not in existing]
        deadline.check()

        self._write_new_chunks(misses, written_keys, deadline)

        unique_chunks = 0
        duplicate_chunks = 0
        referenced = set()

        with transaction() as conn:
            for chunk in chunks:
                if chunk.fingerprint in referenced:
                    # Repeated block inside this file: one reference per file
                    duplicate_chunks += 1
                    continue
                referenced.add(chunk.fingerprint)

                if self._add_reference(chunk, existing.get(chunk.fingerprint), written_keys, conn):
                    unique_chunks += 1
                else:
                    duplicate_chunks += 1
                deadline.check()

            FileRepository.create_file(
                File(
                    file_id=file_id,
                    container_id=container_id,
                    owner_id=owner_id,
                    original_name=original_name,
                    total_size=len(data),
                    content_type=content_type,
                    chunk_size=self.chunk_size,
                    uploaded_at=datetime.now(timezone.utc),
                ),
                conn=conn,
            )
            ManifestRepository.add_entries(
                (
                    ManifestEntry(file_id=file_id, chunk_order=chunk.order, fingerprint=chunk.fingerprint)
                    for chunk in chunks
                ),
                conn=conn,
            )
            deadline.check()

        return UploadResult(
            file_id=file_id,
            original_name=original_name,
            total_size=len(data),
            total_chunks=len(chunks),
            unique_chunks=unique_chunks,
            duplicate_chunks=duplicate_chunks,
        )

    def _add_reference(
        self,
        chunk: ChunkDescriptor,
        known: Optional[Chunk],
        written_keys: Dict[str, str],
        conn,
    ) -> bool:
        """
        Record this file's reference to a chunk.

        Returns:
            True if the chunk row was created by this upload
        """
        fingerprint = chunk.fingerprint
        storage_key = self.blob_client.storage_key_for(fingerprint)

        if known is not None:
            try:
                ChunkRepository.increment_reference(fingerprint, conn=conn)
                return False
            except ChunkNotFoundError:
                # Row vanished after lookup; store the block ourselves
                logger.warning(f"Chunk disappeared before reference [fingerprint={fingerprint}], re-storing")
                self.blob_client.put_chunk(storage_key, chunk.data)
                written_keys[storage_key] = fingerprint

        try:
            ChunkRepository.create_new(fingerprint, storage_key, chunk.size, conn=conn)
        except DuplicateFingerprintError:
            # Another writer committed this fingerprint first; its row owns the object now
            logger.info(f"Lost create race, treating as duplicate [fingerprint={fingerprint}]")
            ChunkRepository.increment_reference(fingerprint, conn=conn)
            written_keys.pop(storage_key, None)
            return False

        PendingDeletionRepository.remove(storage_key, conn=conn)
        return True

    def _write_new_chunks(
        self,
        misses: List[ChunkDescriptor],
        written_keys: Dict[str, str],
        deadline: _Deadline,
    ) -> None:
        """
        Put the blocks the ledger does not know yet, in parallel when an executor
        is configured. Every key that reached the store is appended to
        ``written_keys`` even when a sibling write fails.
        """
        if not misses:
            return

        if self.executor is None:
            for chunk in misses:
                deadline.check()
                key = self.blob_client.storage_key_for(chunk.fingerprint)
                self.blob_client.put_chunk(key, chunk.data)
                written_keys[key] = chunk.fingerprint
            return

        futures: Dict[Future, ChunkDescriptor] = {}
        for chunk in misses:
            key = self.blob_client.storage_key_for(chunk.fingerprint)
            futures[self.executor.submit(self.blob_client.put_chunk, key, chunk.data)] = chunk

        first_error: Optional[BaseException] = None
        for future in as_completed(futures):
            if future.cancelled():
                continue
            error = future.exception()
            if error is None:
                chunk = futures[future]
                written_keys[self.blob_client.storage_key_for(chunk.fingerprint)] = chunk.fingerprint
            elif first_error is None:
                first_error = error

            if first_error is None:
                try:
                    deadline.check()
                except UploadCancelledError as e:
                    first_error = e

            if first_error is not None:
                for pending in futures:
                    pending.cancel()

        if first_error is not None:
            raise first_error

    def _compensate(self, file_id: str, written_keys: Dict[str, str]) -> None:
        """
        Best-effort removal of objects written by a failed upload.

        Another writer sharing the ledger may have committed a row for the
        same block since our lookup; its object must survive. Keys still
        referenced by a chunk row are left alone, the rest go through the
        deletion outbox so a failed delete is retried by reconciliation.
        Failures are logged, never raised.
        """
        if not written_keys:
            return

        logger.info(f"Rolling back {len(written_keys)} written objects [file_id={file_id}]")
        orphaned: List[str] = []
        try:
            with transaction() as conn:
                for key, fingerprint in written_keys.items():
                    if ChunkRepository.is_storage_key_referenced(key, conn=conn):
                        logger.info(f"Keeping object committed by another upload [file_id={file_id}] [key={key}]")
                        continue
                    PendingDeletionRepository.enqueue(key, fingerprint, conn=conn)
                    orphaned.append(key)
        except Exception as e:
            logger.error(f"Failed to queue rollback deletions [file_id={file_id}]: {e}", exc_info=True)
            return

        try:
            for key in orphaned:
                try:
                    self.blob_client.delete_chunk(key)
                except Exception as e:
                    logger.error(
                        f"Failed to delete object during rollback, left for reconciliation "
                        f"[file_id={file_id}] [key={key}]: {e}",
                        exc_info=True
                    )
                    PendingDeletionRepository.record_failure(key, str(e))
                    continue
                PendingDeletionRepository.remove(key)
        except Exception as e:
            logger.error(f"Rollback bookkeeping failed [file_id={file_id}]: {e}", exc_info=True)

    def _validate_request(self, container_id: str, original_name: str, content_type: str) -> None:
        if not container_id or not container_id.strip():
            raise InvalidUploadError("Container ID is required")
        if not original_name or not original_name.strip():
            raise InvalidUploadError("File name is required")
        media_type = content_type.split(";", 1)[0].strip()
        if self.allowed_content_types and media_type not in self.allowed_content_types:
            raise UnsupportedContentTypeError(f"Content type {content_type} is not supported")

    def _read_content(self, file_data: Union[bytes, BinaryIO]) -> bytes:
        if isinstance(file_data, (bytes, bytearray, memoryview)):
            data = bytes(file_data)
        else:
            # Read at most one byte past the limit so oversized input is never buffered whole
            buf = bytearray()
            limit = self.max_upload_size + 1
            while len(buf) < limit:
                piece = file_data.read(min(limit - len(buf), 1024 * 1024))
                if not piece:
                    break
                buf.extend(piece)
            data = bytes(buf)

        if not data:
            raise EmptyUploadError("Uploaded file is empty")
        if len(data) > self.max_upload_size:
            raise UploadTooLargeError(
                f"Uploaded file exceeds the maximum size of {self.max_upload_size} bytes"
            )
        return data
