"""
Download orchestration: resolve the manifest, fetch chunks, reassemble in order.

The whole file is buffered and verified before any byte is returned, so a
response is never streamed from a partially checked file.
"""

from concurrent.futures import Executor, Future
from typing import Dict, List, Optional, Tuple

from common.hashing import verify_fingerprint
from common.logging_config import get_logger
from controller.blob_client import BlobClient
from controller.exceptions import FileNotFoundError, IntegrityFaultError, UnauthorizedAccessError
from controller.repositories.chunk_repository import Chunk, ChunkRepository
from controller.repositories.file_repository import File, FileRepository
from controller.repositories.manifest_repository import ManifestEntry, ManifestRepository

logger = get_logger(__name__)


class DownloadService:
    def __init__(self, blob_client: BlobClient, executor: Optional[Executor] = None):
        self.blob_client = blob_client
        self.executor = executor

    def download_file(self, file_id: str, owner_id: Optional[str] = None) -> Tuple[File, bytes]:
        """
        Reassemble a file byte-for-byte.

        Either the complete content is returned or an error is raised; bytes
        fetched before a failure are discarded.

        Raises:
            FileNotFoundError: If the file record does not exist
            UnauthorizedAccessError: If owner_id is given and does not own the file
            IntegrityFaultError: If manifest, ledger and store disagree
            StoreUnavailableError: If the object store keeps failing
        """
        file = load_file(file_id, owner_id)
        entries = ManifestRepository.get_entries(file_id)
        self._check_order(file, entries)

        chunks = ChunkRepository.lookup_many(entry.fingerprint for entry in entries)
        for entry in entries:
            if entry.fingerprint not in chunks:
                logger.error(
                    f"Manifest references missing chunk [file_id={file_id}] "
                    f"[order={entry.chunk_order}] [fingerprint={entry.fingerprint}]"
                )
                raise IntegrityFaultError(
                    f"File {file_id} references chunk {entry.fingerprint} which is not in the ledger"
                )

        logger.info(f"Starting download [file_id={file_id}] [chunks={len(entries)}] [size={file.total_size}]")
        blocks = self._fetch_blocks(file_id, chunks)
        data = b"".join(blocks[entry.fingerprint] for entry in entries)

        if len(data) != file.total_size:
            logger.error(
                f"Reassembled size mismatch [file_id={file_id}] "
                f"expected={file.total_size} actual={len(data)}"
            )
            raise IntegrityFaultError(
                f"File {file_id} reassembled to {len(data)} bytes, expected {file.total_size}"
            )

        logger.info(f"Download complete [file_id={file_id}] [bytes={len(data)}]")
        return file, data

    def _check_order(self, file: File, entries: List[ManifestEntry]) -> None:
        for expected, entry in enumerate(entries):
            if entry.chunk_order != expected:
                logger.error(
                    f"Manifest order gap [file_id={file.file_id}] expected={expected} found={entry.chunk_order}"
                )
                raise IntegrityFaultError(f"Manifest of file {file.file_id} is not contiguous")

    def _fetch_blocks(self, file_id: str, chunks: Dict[str, Chunk]) -> Dict[str, bytes]:
        """
        Fetch each distinct chunk once, concurrently when an executor is configured.
        Results are keyed by fingerprint; the caller assembles by manifest order.
        """
        if self.executor is None:
            return {fp: self._fetch_one(file_id, chunk) for fp, chunk in chunks.items()}

        futures: Dict[str, Future] = {
            fp: self.executor.submit(self._fetch_one, file_id, chunk)
            for fp, chunk in chunks.items()
        }
        blocks: Dict[str, bytes] = {}
        try:
            for fp, future in futures.items():
                blocks[fp] = future.result()
        except Exception:
            for future in futures.values():
                future.cancel()
            raise
        return blocks

    def _fetch_one(self, file_id: str, chunk: Chunk) -> bytes:
        data = self.blob_client.get_chunk(chunk.storage_key)
        if len(data) != chunk.size or not verify_fingerprint(data, chunk.fingerprint):
            logger.error(
                f"Chunk content does not match its fingerprint [file_id={file_id}] "
                f"[fingerprint={chunk.fingerprint}] [key={chunk.storage_key}]"
            )
            raise IntegrityFaultError(f"Chunk {chunk.fingerprint} is corrupted in the store")
        return data


def load_file(file_id: str, owner_id: Optional[str] = None) -> File:
    """
    Load a file record and enforce ownership when a principal is given.

    Raises:
        FileNotFoundError: If the file record does not exist
        UnauthorizedAccessError: If owner_id does not own the file
    """
    file = FileRepository.get_by_id(file_id)
    if file is None:
        raise FileNotFoundError(f"File {file_id} not found")

    if owner_id is not None and file.owner_id != owner_id:
        raise UnauthorizedAccessError(f"User {owner_id} does not own file {file_id}")

    return file
