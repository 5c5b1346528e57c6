"""Shared pytest fixtures for all tests."""

import tempfile
import threading
from pathlib import Path
from typing import Generator, Optional, Set

import pytest

from blobstore.base import BlobInfo, TransientBlobStoreError
from blobstore.memory import InMemoryBlobStore
from common.constants import CHUNK_CONTENT_TYPE
from controller.database import init_database
from controller.services.file_service import FileService


class FaultyBlobStore(InMemoryBlobStore):
    """
    In-memory store with switchable faults.

    Keys listed in ``fail_put_keys`` / ``fail_get_keys`` / ``fail_delete_keys``
    raise TransientBlobStoreError every time; ``transient_put_failures``
    makes that many puts fail before the store recovers. Calls are recorded
    for assertions.
    """

    def __init__(self):
        super().__init__()
        self.fail_put_keys: Set[str] = set()
        self.fail_get_keys: Set[str] = set()
        self.fail_delete_keys: Set[str] = set()
        self.fail_all_deletes = False
        self.transient_put_failures = 0
        self.put_calls = []
        self.delete_calls = []
        self._fault_lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: str = CHUNK_CONTENT_TYPE) -> BlobInfo:
        with self._fault_lock:
            self.put_calls.append(key)
            if self.transient_put_failures > 0:
                self.transient_put_failures -= 1
                raise TransientBlobStoreError(f"injected put failure for {key}")
        if key in self.fail_put_keys:
            raise TransientBlobStoreError(f"injected put failure for {key}")
        return super().put(key, data, content_type)

    def get(self, key: str) -> bytes:
        if key in self.fail_get_keys:
            raise TransientBlobStoreError(f"injected get failure for {key}")
        return super().get(key)

    def delete(self, key: str) -> bool:
        with self._fault_lock:
            self.delete_calls.append(key)
        if self.fail_all_deletes or key in self.fail_delete_keys:
            raise TransientBlobStoreError(f"injected delete failure for {key}")
        return super().delete(key)

    def corrupt(self, key: str, data: bytes) -> None:
        """Overwrite an object behind the ledger's back."""
        super().put(key, data)


@pytest.fixture
def test_db(monkeypatch) -> Generator[Path, None, None]:
    """
    Create a temporary ledger database for each test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        monkeypatch.setattr("controller.database.DATABASE_PATH", str(db_path))
        monkeypatch.setattr("controller.config.DATABASE_PATH", str(db_path))
        init_database()
        yield db_path


@pytest.fixture
def blob_store() -> FaultyBlobStore:
    return FaultyBlobStore()


def make_service(store, chunk_size: int = 4, io_workers: int = 4, **kwargs) -> FileService:
    kwargs.setdefault("retry_base_delay", 0)
    kwargs.setdefault("allowed_content_types", ())
    return FileService(blob_store=store, chunk_size=chunk_size, io_workers=io_workers, **kwargs)


@pytest.fixture
def service_factory(test_db):
    """
    Build extra FileService instances with custom limits; all are closed at teardown.
    """
    services = []

    def _factory(store, **kwargs) -> FileService:
        service = make_service(store, **kwargs)
        services.append(service)
        return service

    yield _factory
    for service in services:
        service.close()


@pytest.fixture
def file_service(test_db, blob_store) -> Generator[FileService, None, None]:
    """
    FileService over the faulty in-memory store with 4-byte chunks, so
    tests can spell out chunk boundaries by hand.
    """
    service = make_service(blob_store)
    yield service
    service.close()


@pytest.fixture
def serial_file_service(test_db, blob_store) -> Generator[FileService, None, None]:
    """Same as file_service but with no I/O worker pool."""
    service = make_service(blob_store, io_workers=0)
    yield service
    service.close()


@pytest.fixture
def upload(file_service):
    """
    Shorthand for uploading bytes into container ``bucket-1``.
    """
    def _upload(data: bytes, name: str = "file.bin", owner_id: Optional[str] = "user-1", **kwargs):
        return file_service.upload(
            data,
            container_id=kwargs.pop("container_id", "bucket-1"),
            original_name=name,
            owner_id=owner_id,
            **kwargs
        )
    return _upload
