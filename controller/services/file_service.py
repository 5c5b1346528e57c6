"""
File service: the entry point the HTTP layer uses for every file operation.

Services are synchronous; routes run them through run_in_threadpool, and chunk
I/O fans out over a shared ThreadPoolExecutor.
"""

import io
import threading
import zipfile
from concurrent.futures import ThreadPoolExecutor
from typing import BinaryIO, Collection, List, Optional, Tuple, Union

from blobstore import BlobStore, create_blob_store
from common.logging_config import get_logger
from common.types import DeletionResult, FileMetadata, LedgerStats, ReconcileResult, UploadResult
from controller.blob_client import BlobClient
from controller.config import (
    ALLOWED_CONTENT_TYPES,
    BLOB_BACKEND,
    BLOB_STORAGE_PATH,
    CHUNK_KEY_PREFIX,
    CHUNK_SIZE_BYTES,
    IO_WORKERS,
    MAX_UPLOAD_SIZE_BYTES,
    STORE_RETRY_ATTEMPTS,
    STORE_RETRY_BASE_DELAY,
)
from controller.locks import FingerprintLockTable
from controller.repositories.chunk_repository import ChunkRepository
from controller.repositories.file_repository import File, FileRepository
from controller.repositories.manifest_repository import ManifestRepository
from controller.services.deletion_service import DeletionService
from controller.services.download_service import DownloadService, load_file
from controller.services.upload_service import UploadService
from controller.utils import unique_archive_name

logger = get_logger(__name__)


class FileService:
    """
    Wires the upload, download and deletion orchestrators to one object
    store, one lock table and one I/O worker pool.
    """

    def __init__(
        self,
        blob_store: Optional[BlobStore] = None,
        chunk_size: int = CHUNK_SIZE_BYTES,
        io_workers: int = IO_WORKERS,
        max_upload_size: int = MAX_UPLOAD_SIZE_BYTES,
        allowed_content_types: Collection[str] = ALLOWED_CONTENT_TYPES,
        key_prefix: str = CHUNK_KEY_PREFIX,
        retry_attempts: int = STORE_RETRY_ATTEMPTS,
        retry_base_delay: float = STORE_RETRY_BASE_DELAY,
    ):
        if blob_store is None:
            blob_store = create_blob_store(BLOB_BACKEND, BLOB_STORAGE_PATH)

        self.blob_client = BlobClient(
            blob_store,
            key_prefix=key_prefix,
            max_attempts=retry_attempts,
            base_delay=retry_base_delay,
        )
        self.lock_table = FingerprintLockTable()
        self._executor = (
            ThreadPoolExecutor(max_workers=io_workers, thread_name_prefix="chunk-io")
            if io_workers > 0 else None
        )

        self.uploads = UploadService(
            self.blob_client,
            self.lock_table,
            executor=self._executor,
            chunk_size=chunk_size,
            max_upload_size=max_upload_size,
            allowed_content_types=allowed_content_types,
        )
        self.downloads = DownloadService(self.blob_client, executor=self._executor)
        self.deletions = DeletionService(self.blob_client, self.lock_table)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def upload(
        self,
        file_data: Union[bytes, BinaryIO],
        container_id: str,
        original_name: str,
        content_type: Optional[str] = None,
        owner_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> UploadResult:
        return self.uploads.upload_file(
            file_data,
            container_id=container_id,
            original_name=original_name,
            content_type=content_type,
            owner_id=owner_id,
            cancel_event=cancel_event,
            timeout=timeout,
        )

    def download(self, file_id: str, owner_id: Optional[str] = None) -> Tuple[File, bytes]:
        return self.downloads.download_file(file_id, owner_id=owner_id)

    def delete(self, file_id: str, owner_id: Optional[str] = None) -> DeletionResult:
        return self.deletions.delete_file(file_id, owner_id=owner_id)

    def get_metadata(self, file_id: str, owner_id: Optional[str] = None) -> FileMetadata:
        file = load_file(file_id, owner_id)
        chunk_count = ManifestRepository.count_entries([file_id])[file_id]
        return _to_metadata(file, chunk_count)

    def list_files(self, container_id: str, owner_id: Optional[str] = None) -> List[FileMetadata]:
        files = FileRepository.list_by_container(container_id, owner_id=owner_id)
        counts = ManifestRepository.count_entries(f.file_id for f in files)
        return [_to_metadata(f, counts.get(f.file_id, 0)) for f in files]

    def download_many_as_zip(self, file_ids: List[str], owner_id: Optional[str] = None) -> bytes:
        """
        Download several files into one ZIP archive.

        Entry names come from the original file names; collisions get a
        `` (n)`` suffix. Any failing file fails the whole archive.
        """
        buffer = io.BytesIO()
        used_names = {}
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for file_id in file_ids:
                file, data = self.download(file_id, owner_id=owner_id)
                archive.writestr(unique_archive_name(file.original_name, used_names), data)

        logger.info(f"Built archive of {len(file_ids)} files [bytes={buffer.tell()}]")
        return buffer.getvalue()

    def reconcile_pending_deletions(self, limit: int = 1000) -> ReconcileResult:
        return self.deletions.reconcile_pending_deletions(limit=limit)

    def ledger_stats(self) -> LedgerStats:
        return ChunkRepository.get_stats()

    def ping_store(self) -> Optional[str]:
        return self.blob_client.ping()


def _to_metadata(file: File, chunk_count: int) -> FileMetadata:
    return FileMetadata(
        file_id=file.file_id,
        container_id=file.container_id,
        original_name=file.original_name,
        size=file.total_size,
        content_type=file.content_type,
        uploaded_at=file.uploaded_at,
        chunk_count=chunk_count,
    )
