"""Integration tests for the ledger repositories."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from common.hashing import compute_fingerprint
from controller.database import get_db_connection, transaction
from controller.exceptions import ChunkNotFoundError, DuplicateFingerprintError
from controller.repositories.chunk_repository import ChunkRepository
from controller.repositories.file_repository import File, FileRepository
from controller.repositories.manifest_repository import ManifestEntry, ManifestRepository
from controller.repositories.pending_deletion_repository import PendingDeletionRepository

FP_A = compute_fingerprint(b"AAAA")
FP_B = compute_fingerprint(b"BBBB")


def _make_file(file_id: str, container_id: str = "bucket-1", owner_id: str = "user-1", offset: int = 0) -> File:
    return File(
        file_id=file_id,
        container_id=container_id,
        owner_id=owner_id,
        original_name=f"{file_id}.txt",
        total_size=8,
        content_type="text/plain",
        chunk_size=4,
        uploaded_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=offset),
    )


def _add_chunk(fingerprint: str, size: int = 4):
    with transaction() as conn:
        return ChunkRepository.create_new(fingerprint, f"chunks/{fingerprint}", size, conn=conn)


class TestTransaction:
    def test_commit_on_success(self, test_db):
        with transaction() as conn:
            ChunkRepository.create_new(FP_A, f"chunks/{FP_A}", 4, conn=conn)

        assert ChunkRepository.lookup(FP_A) is not None

    def test_rollback_on_error(self, test_db):
        with pytest.raises(RuntimeError):
            with transaction() as conn:
                ChunkRepository.create_new(FP_A, f"chunks/{FP_A}", 4, conn=conn)
                raise RuntimeError("boom")

        assert ChunkRepository.lookup(FP_A) is None

    def test_foreign_keys_enforced(self, test_db):
        with pytest.raises(sqlite3.IntegrityError):
            with transaction() as conn:
                ManifestRepository.add_entries(
                    [ManifestEntry(file_id="ghost", chunk_order=0, fingerprint=FP_A)],
                    conn=conn,
                )


class TestChunkRepository:
    def test_create_new_starts_at_one(self, test_db):
        chunk = _add_chunk(FP_A)

        assert chunk.reference_count == 1
        stored = ChunkRepository.lookup(FP_A)
        assert stored.reference_count == 1
        assert stored.storage_key == f"chunks/{FP_A}"
        assert stored.size == 4

    def test_create_rejects_malformed_fingerprint(self, test_db):
        with pytest.raises(ValueError):
            _add_chunk("not-a-digest")
        with pytest.raises(ValueError):
            _add_chunk(FP_A.upper())

        assert ChunkRepository.get_stats().chunk_count == 0

    def test_lookup_missing(self, test_db):
        assert ChunkRepository.lookup(FP_A) is None

    def test_create_duplicate_raises(self, test_db):
        _add_chunk(FP_A)

        with pytest.raises(DuplicateFingerprintError) as exc_info:
            _add_chunk(FP_A)
        assert exc_info.value.fingerprint == FP_A
        assert ChunkRepository.lookup(FP_A).reference_count == 1

    def test_lookup_many(self, test_db):
        _add_chunk(FP_A)

        found = ChunkRepository.lookup_many([FP_A, FP_B, FP_A])

        assert set(found) == {FP_A}
        assert ChunkRepository.lookup_many([]) == {}

    def test_lookup_many_large_batch(self, test_db):
        fingerprints = [compute_fingerprint(str(i).encode()) for i in range(1200)]
        with transaction() as conn:
            for fp in fingerprints:
                ChunkRepository.create_new(fp, f"chunks/{fp}", 1, conn=conn)

        assert len(ChunkRepository.lookup_many(fingerprints)) == 1200

    def test_increment_and_decrement(self, test_db):
        _add_chunk(FP_A)

        with transaction() as conn:
            ChunkRepository.increment_reference(FP_A, conn=conn)
            ChunkRepository.increment_reference(FP_A, conn=conn)
        assert ChunkRepository.lookup(FP_A).reference_count == 3

        with transaction() as conn:
            assert ChunkRepository.decrement_reference(FP_A, conn=conn) == 2

    def test_increment_missing_raises(self, test_db):
        with pytest.raises(ChunkNotFoundError):
            with transaction() as conn:
                ChunkRepository.increment_reference(FP_A, conn=conn)

    def test_decrement_missing_raises(self, test_db):
        with pytest.raises(ChunkNotFoundError):
            with transaction() as conn:
                ChunkRepository.decrement_reference(FP_A, conn=conn)

    def test_decrement_never_goes_negative(self, test_db):
        _add_chunk(FP_A)

        with transaction() as conn:
            assert ChunkRepository.decrement_reference(FP_A, conn=conn) == 0
            assert ChunkRepository.decrement_reference(FP_A, conn=conn) == 0

    def test_delete_if_unreferenced(self, test_db):
        _add_chunk(FP_A)

        with transaction() as conn:
            assert ChunkRepository.delete_if_unreferenced(FP_A, conn=conn) is False
            ChunkRepository.decrement_reference(FP_A, conn=conn)
            assert ChunkRepository.delete_if_unreferenced(FP_A, conn=conn) is True

        assert ChunkRepository.lookup(FP_A) is None

    def test_is_storage_key_referenced(self, test_db):
        _add_chunk(FP_A)

        with get_db_connection() as conn:
            assert ChunkRepository.is_storage_key_referenced(f"chunks/{FP_A}", conn=conn)
            assert not ChunkRepository.is_storage_key_referenced(f"chunks/{FP_B}", conn=conn)

    def test_get_stats(self, test_db):
        _add_chunk(FP_A, size=4)
        _add_chunk(FP_B, size=2)
        with transaction() as conn:
            ChunkRepository.increment_reference(FP_A, conn=conn)
            FileRepository.create_file(_make_file("f1"), conn=conn)
            FileRepository.create_file(_make_file("f2"), conn=conn)

        stats = ChunkRepository.get_stats()

        assert stats.chunk_count == 2
        assert stats.total_references == 3
        assert stats.stored_bytes == 6
        assert stats.logical_bytes == 16
        assert stats.dedup_ratio == pytest.approx(16 / 6)

    def test_stats_on_empty_ledger(self, test_db):
        stats = ChunkRepository.get_stats()

        assert stats.chunk_count == 0
        assert stats.dedup_ratio == 1.0


class TestFileRepository:
    def test_create_and_get(self, test_db):
        with transaction() as conn:
            FileRepository.create_file(_make_file("f1"), conn=conn)

        file = FileRepository.get_by_id("f1")
        assert file.original_name == "f1.txt"
        assert file.owner_id == "user-1"
        assert file.uploaded_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_get_missing(self, test_db):
        assert FileRepository.get_by_id("nope") is None

    def test_list_by_container_ordered(self, test_db):
        with transaction() as conn:
            FileRepository.create_file(_make_file("late", offset=10), conn=conn)
            FileRepository.create_file(_make_file("early", offset=0), conn=conn)
            FileRepository.create_file(_make_file("elsewhere", container_id="bucket-2"), conn=conn)
            FileRepository.create_file(_make_file("theirs", owner_id="user-2", offset=5), conn=conn)

        assert [f.file_id for f in FileRepository.list_by_container("bucket-1")] == ["early", "theirs", "late"]
        assert [f.file_id for f in FileRepository.list_by_container("bucket-1", owner_id="user-1")] == ["early", "late"]

    def test_delete_cascades_to_manifest(self, test_db):
        _add_chunk(FP_A)
        with transaction() as conn:
            FileRepository.create_file(_make_file("f1"), conn=conn)
            ManifestRepository.add_entries(
                [
                    ManifestEntry(file_id="f1", chunk_order=0, fingerprint=FP_A),
                    ManifestEntry(file_id="f1", chunk_order=1, fingerprint=FP_A),
                ],
                conn=conn,
            )

        with transaction() as conn:
            assert FileRepository.delete_file("f1", conn=conn) is True
            assert FileRepository.delete_file("f1", conn=conn) is False

        assert ManifestRepository.get_entries("f1") == []


class TestManifestRepository:
    def test_entries_come_back_in_order(self, test_db):
        _add_chunk(FP_A)
        _add_chunk(FP_B)
        with transaction() as conn:
            FileRepository.create_file(_make_file("f1"), conn=conn)
            ManifestRepository.add_entries(
                [
                    ManifestEntry(file_id="f1", chunk_order=2, fingerprint=FP_A),
                    ManifestEntry(file_id="f1", chunk_order=0, fingerprint=FP_B),
                    ManifestEntry(file_id="f1", chunk_order=1, fingerprint=FP_A),
                ],
                conn=conn,
            )

        entries = ManifestRepository.get_entries("f1")
        assert [e.chunk_order for e in entries] == [0, 1, 2]
        assert [e.fingerprint for e in entries] == [FP_B, FP_A, FP_A]

    def test_duplicate_order_rejected(self, test_db):
        _add_chunk(FP_A)
        with pytest.raises(sqlite3.IntegrityError):
            with transaction() as conn:
                FileRepository.create_file(_make_file("f1"), conn=conn)
                ManifestRepository.add_entries(
                    [
                        ManifestEntry(file_id="f1", chunk_order=0, fingerprint=FP_A),
                        ManifestEntry(file_id="f1", chunk_order=0, fingerprint=FP_A),
                    ],
                    conn=conn,
                )

    def test_count_entries(self, test_db):
        _add_chunk(FP_A)
        with transaction() as conn:
            FileRepository.create_file(_make_file("f1"), conn=conn)
            FileRepository.create_file(_make_file("f2"), conn=conn)
            ManifestRepository.add_entries(
                [ManifestEntry(file_id="f1", chunk_order=i, fingerprint=FP_A) for i in range(3)],
                conn=conn,
            )

        assert ManifestRepository.count_entries(["f1", "f2"]) == {"f1": 3, "f2": 0}
        assert ManifestRepository.count_entries([]) == {}


class TestPendingDeletionRepository:
    def test_enqueue_list_remove(self, test_db):
        with transaction() as conn:
            PendingDeletionRepository.enqueue(f"chunks/{FP_A}", FP_A, conn=conn)

        pending = PendingDeletionRepository.list_pending()
        assert [p.storage_key for p in pending] == [f"chunks/{FP_A}"]
        assert pending[0].attempts == 0

        assert PendingDeletionRepository.remove(f"chunks/{FP_A}") is True
        assert PendingDeletionRepository.list_pending() == []

    def test_enqueue_twice_keeps_one_row(self, test_db):
        with transaction() as conn:
            PendingDeletionRepository.enqueue(f"chunks/{FP_A}", FP_A, conn=conn)
            PendingDeletionRepository.enqueue(f"chunks/{FP_A}", FP_A, conn=conn)

        assert len(PendingDeletionRepository.list_pending()) == 1

    def test_record_failure(self, test_db):
        with transaction() as conn:
            PendingDeletionRepository.enqueue(f"chunks/{FP_A}", FP_A, conn=conn)

        PendingDeletionRepository.record_failure(f"chunks/{FP_A}", "store down")
        PendingDeletionRepository.record_failure(f"chunks/{FP_A}", "still down")

        pending = PendingDeletionRepository.list_pending()[0]
        assert pending.attempts == 2
        assert pending.last_error == "still down"

    def test_list_respects_limit(self, test_db):
        with transaction() as conn:
            for i in range(5):
                fp = compute_fingerprint(str(i).encode())
                PendingDeletionRepository.enqueue(f"chunks/{fp}", fp, conn=conn)

        assert len(PendingDeletionRepository.list_pending(limit=2)) == 2
