"""Chunk ledger: fingerprint -> storage key, size and reference count."""

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from common.hashing import is_valid_fingerprint
from common.logging_config import get_logger
from common.types import LedgerStats
from controller.database import get_db_connection
from controller.exceptions import ChunkNotFoundError, DuplicateFingerprintError

logger = get_logger(__name__)


@dataclass
class Chunk:
    fingerprint: str
    storage_key: str
    size: int
    reference_count: int
    created_at: datetime


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        fingerprint=row["fingerprint"],
        storage_key=row["storage_key"],
        size=row["size"],
        reference_count=row["reference_count"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class ChunkRepository:
    """
    Every mutating method requires the connection of the enclosing
    ``transaction()`` so that a rollback undoes it together with the rest of
    the upload or deletion.
    """

    @staticmethod
    def lookup(fingerprint: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Chunk]:
        if conn is None:
            with get_db_connection() as conn:
                return ChunkRepository.lookup(fingerprint, conn=conn)

        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT fingerprint, storage_key, size, reference_count, created_at
            FROM chunks
            WHERE fingerprint = ?
            """,
            (fingerprint,)
        )
        row = cursor.fetchone()
        return _row_to_chunk(row) if row is not None else None

    @staticmethod
    def lookup_many(
        fingerprints: Iterable[str],
        conn: Optional[sqlite3.Connection] = None
    ) -> Dict[str, Chunk]:
        """
        Resolve several fingerprints at once.

        Returns:
            Mapping of fingerprint to Chunk for the fingerprints that exist
        """
        wanted = sorted(set(fingerprints))
        if not wanted:
            return {}

        if conn is None:
            with get_db_connection() as conn:
                return ChunkRepository.lookup_many(wanted, conn=conn)

        found: Dict[str, Chunk] = {}
        cursor = conn.cursor()
        # Stay well under SQLite's bound-parameter limit
        for start in range(0, len(wanted), 500):
            batch = wanted[start:start + 500]
            placeholders = ','.join('?' for _ in batch)
            cursor.execute(
                f"""
                SELECT fingerprint, storage_key, size, reference_count, created_at
                FROM chunks
                WHERE fingerprint IN ({placeholders})
                """,
                batch
            )
            for row in cursor.fetchall():
                found[row["fingerprint"]] = _row_to_chunk(row)
        return found

    @staticmethod
    def create_new(fingerprint: str, storage_key: str, size: int, conn: sqlite3.Connection) -> Chunk:
        """
        Insert a chunk row with reference_count = 1.

        Raises:
            ValueError: If the fingerprint is not a SHA-256 hex digest
            DuplicateFingerprintError: If a row for this fingerprint already exists
        """
        if not is_valid_fingerprint(fingerprint):
            raise ValueError(f"Malformed fingerprint: {fingerprint!r}")

        created_at = datetime.now(timezone.utc)
        try:
            conn.execute(
                """
                INSERT INTO chunks (fingerprint, storage_key, size, reference_count, created_at)
                VALUES (?, ?, ?, 1, ?)
                """,
                (fingerprint, storage_key, size, created_at.isoformat())
            )
        except sqlite3.IntegrityError as e:
            logger.info(f"Chunk row already exists [fingerprint={fingerprint}]: {e}")
            raise DuplicateFingerprintError(fingerprint) from e

        logger.debug(f"Created chunk [fingerprint={fingerprint}] [size={size}]")
        return Chunk(
            fingerprint=fingerprint,
            storage_key=storage_key,
            size=size,
            reference_count=1,
            created_at=created_at,
        )

    @staticmethod
    def increment_reference(fingerprint: str, conn: sqlite3.Connection) -> None:
        """
        Atomically add one reference.

        Raises:
            ChunkNotFoundError: If no row exists for the fingerprint
        """
        cursor = conn.execute(
            "UPDATE chunks SET reference_count = reference_count + 1 WHERE fingerprint = ?",
            (fingerprint,)
        )
        if cursor.rowcount == 0:
            raise ChunkNotFoundError(f"Chunk {fingerprint} not found")

    @staticmethod
    def decrement_reference(fingerprint: str, conn: sqlite3.Connection) -> int:
        """
        Atomically remove one reference, never going below zero.

        Returns:
            The new reference count

        Raises:
            ChunkNotFoundError: If no row exists for the fingerprint
        """
        cursor = conn.execute(
            """
            UPDATE chunks
            SET reference_count = MAX(reference_count - 1, 0)
            WHERE fingerprint = ?
            """,
            (fingerprint,)
        )
        if cursor.rowcount == 0:
            raise ChunkNotFoundError(f"Chunk {fingerprint} not found")

        row = conn.execute(
            "SELECT reference_count FROM chunks WHERE fingerprint = ?",
            (fingerprint,)
        ).fetchone()
        return row["reference_count"]

    @staticmethod
    def delete_if_unreferenced(fingerprint: str, conn: sqlite3.Connection) -> bool:
        """
        Remove the row only when its reference count is zero.

        Returns:
            True if a row was deleted
        """
        cursor = conn.execute(
            "DELETE FROM chunks WHERE fingerprint = ? AND reference_count = 0",
            (fingerprint,)
        )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.debug(f"Deleted unreferenced chunk [fingerprint={fingerprint}]")
        return deleted

    @staticmethod
    def is_storage_key_referenced(storage_key: str, conn: sqlite3.Connection) -> bool:
        row = conn.execute(
            "SELECT 1 FROM chunks WHERE storage_key = ?",
            (storage_key,)
        ).fetchone()
        return row is not None

    @staticmethod
    def get_stats() -> LedgerStats:
        with get_db_connection() as conn:
            chunk_row = conn.execute(
                """
                SELECT COUNT(*) AS chunk_count,
                       COALESCE(SUM(reference_count), 0) AS total_references,
                       COALESCE(SUM(size), 0) AS stored_bytes
                FROM chunks
                """
            ).fetchone()
            file_row = conn.execute(
                "SELECT COALESCE(SUM(total_size), 0) AS logical_bytes FROM files"
            ).fetchone()

        return LedgerStats(
            chunk_count=chunk_row["chunk_count"],
            total_references=chunk_row["total_references"],
            stored_bytes=chunk_row["stored_bytes"],
            logical_bytes=file_row["logical_bytes"],
        )
