"""Upload failure paths: compensation, create races and cancellation."""

import threading
from datetime import datetime, timezone

import pytest

from common.hashing import compute_fingerprint
from controller.database import get_db_connection
from controller.exceptions import StoreUnavailableError, UploadCancelledError
from controller.repositories.chunk_repository import Chunk, ChunkRepository
from controller.repositories.manifest_repository import ManifestRepository
from controller.repositories.pending_deletion_repository import PendingDeletionRepository


def _key(block: bytes) -> str:
    return f"chunks/{compute_fingerprint(block)}"


def _refcount(block: bytes):
    chunk = ChunkRepository.lookup(compute_fingerprint(block))
    return chunk.reference_count if chunk is not None else None


def _counts():
    with get_db_connection() as conn:
        return {
            table: conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()["n"]
            for table in ("files", "manifest_entries", "chunks")
        }


class TestStoreFailureRollback:
    def test_third_write_fails_after_two_succeed(self, serial_file_service, blob_store):
        shared = serial_file_service.upload(b"SHAR", container_id="bucket-1", original_name="shared.bin")
        before = _counts()
        blob_store.fail_put_keys.add(_key(b"CCCC"))

        with pytest.raises(StoreUnavailableError):
            serial_file_service.upload(b"SHARAAAABBBBCCCC", container_id="bucket-1", original_name="new.bin")

        assert _counts() == before
        assert _refcount(b"SHAR") == 1
        for block in (b"AAAA", b"BBBB", b"CCCC"):
            assert _refcount(block) is None
            assert blob_store.head(_key(block)) is None
        assert blob_store.delete_calls == [_key(b"AAAA"), _key(b"BBBB")]
        assert PendingDeletionRepository.list_pending() == []
        assert serial_file_service.download(shared.file_id)[1] == b"SHAR"

    def test_parallel_writes_leave_nothing_behind(self, file_service, upload, blob_store):
        upload(b"SHAR")
        blob_store.fail_put_keys.add(_key(b"CCCC"))

        with pytest.raises(StoreUnavailableError):
            upload(b"SHARAAAABBBBCCCC")

        assert _counts() == {"files": 1, "manifest_entries": 1, "chunks": 1}
        assert blob_store.list_keys("chunks/") == [_key(b"SHAR")]
        assert _refcount(b"SHAR") == 1

    def test_failed_put_is_retried_before_giving_up(self, file_service, upload, blob_store):
        blob_store.fail_put_keys.add(_key(b"AAAA"))

        with pytest.raises(StoreUnavailableError):
            upload(b"AAAA")

        assert blob_store.put_calls.count(_key(b"AAAA")) == 3
        assert blob_store.delete_calls == []

    def test_transient_put_failures_recover(self, file_service, upload, blob_store):
        blob_store.transient_put_failures = 2

        result = upload(b"AAAABBBB")

        assert result.unique_chunks == 2
        assert file_service.download(result.file_id)[1] == b"AAAABBBB"

    def test_compensation_failure_is_not_raised(self, serial_file_service, blob_store):
        blob_store.fail_put_keys.add(_key(b"BBBB"))
        blob_store.fail_all_deletes = True

        with pytest.raises(StoreUnavailableError):
            serial_file_service.upload(b"AAAABBBB", container_id="bucket-1", original_name="x.bin")

        assert blob_store.delete_calls == [_key(b"AAAA")]
        assert _counts() == {"files": 0, "manifest_entries": 0, "chunks": 0}
        assert [p.storage_key for p in PendingDeletionRepository.list_pending()] == [_key(b"AAAA")]


class TestLedgerFailureRollback:
    def test_manifest_write_failure_rolls_back_everything(self, file_service, upload, blob_store, monkeypatch):
        upload(b"SHAR")

        def _fail(entries, conn):
            raise RuntimeError("disk full")

        with monkeypatch.context() as m:
            m.setattr(ManifestRepository, "add_entries", staticmethod(_fail))
            with pytest.raises(RuntimeError):
                upload(b"SHARNEWW")

        assert _refcount(b"SHAR") == 1
        assert _refcount(b"NEWW") is None
        assert blob_store.head(_key(b"NEWW")) is None
        assert blob_store.head(_key(b"SHAR")) is not None
        assert _counts() == {"files": 1, "manifest_entries": 1, "chunks": 1}


class TestCreateRace:
    def test_lost_create_race_becomes_duplicate(self, file_service, upload, monkeypatch):
        first = upload(b"ABCD")

        with monkeypatch.context() as m:
            # Both writers saw a miss; the other one committed first
            m.setattr(ChunkRepository, "lookup_many", staticmethod(lambda fingerprints, conn=None: {}))
            second = upload(b"ABCD")

        assert second.unique_chunks == 0
        assert second.duplicate_chunks == 1
        assert _refcount(b"ABCD") == 2
        assert file_service.download(first.file_id)[1] == b"ABCD"
        assert file_service.download(second.file_id)[1] == b"ABCD"

    def test_lost_race_then_failure_keeps_winner_blob(self, file_service, upload, blob_store, monkeypatch):
        first = upload(b"ABCD")

        def _fail(entries, conn):
            raise RuntimeError("disk full")

        with monkeypatch.context() as m:
            m.setattr(ChunkRepository, "lookup_many", staticmethod(lambda fingerprints, conn=None: {}))
            m.setattr(ManifestRepository, "add_entries", staticmethod(_fail))
            with pytest.raises(RuntimeError):
                upload(b"ABCD")

        assert blob_store.head(_key(b"ABCD")) is not None
        assert _refcount(b"ABCD") == 1
        assert file_service.download(first.file_id)[1] == b"ABCD"

    def test_row_vanishing_after_lookup_is_restored(self, file_service, upload, blob_store, monkeypatch):
        fingerprint = compute_fingerprint(b"GONE")
        stale = Chunk(
            fingerprint=fingerprint,
            storage_key=_key(b"GONE"),
            size=4,
            reference_count=1,
            created_at=datetime.now(timezone.utc),
        )

        with monkeypatch.context() as m:
            m.setattr(ChunkRepository, "lookup_many", staticmethod(lambda fingerprints, conn=None: {fingerprint: stale}))
            result = upload(b"GONE")

        assert result.unique_chunks == 1
        assert _refcount(b"GONE") == 1
        assert blob_store.head(_key(b"GONE")) is not None
        assert file_service.download(result.file_id)[1] == b"GONE"


class TestCancellation:
    def test_cancelled_before_start(self, file_service, upload, blob_store):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(UploadCancelledError):
            upload(b"AAAABBBB", cancel_event=cancel)

        assert blob_store.put_calls == []
        assert _counts() == {"files": 0, "manifest_entries": 0, "chunks": 0}

    def test_zero_timeout(self, file_service, upload, blob_store):
        with pytest.raises(UploadCancelledError):
            upload(b"AAAABBBB", timeout=0)

        assert blob_store.put_calls == []

    def test_cancelled_mid_upload_rolls_back(self, serial_file_service, blob_store, monkeypatch):
        cancel = threading.Event()
        original_put = blob_store.put

        def put_then_cancel(key, data, content_type="application/octet-stream"):
            info = original_put(key, data, content_type)
            cancel.set()
            return info

        monkeypatch.setattr(blob_store, "put", put_then_cancel)

        with pytest.raises(UploadCancelledError):
            serial_file_service.upload(
                b"AAAABBBBCCCC",
                container_id="bucket-1",
                original_name="x.bin",
                cancel_event=cancel,
            )

        assert blob_store.list_keys("chunks/") == []
        assert blob_store.delete_calls == [_key(b"AAAA")]
        assert _counts() == {"files": 0, "manifest_entries": 0, "chunks": 0}

    def test_generous_timeout_completes(self, file_service, upload):
        result = upload(b"AAAABBBB", timeout=60)

        assert file_service.download(result.file_id)[1] == b"AAAABBBB"
