"""Outbox of object store keys whose physical delete is still owed."""

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from controller.database import get_db_connection


@dataclass
class PendingDeletion:
    storage_key: str
    fingerprint: str
    enqueued_at: datetime
    attempts: int
    last_error: Optional[str]


class PendingDeletionRepository:
    @staticmethod
    def enqueue(storage_key: str, fingerprint: str, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            INSERT INTO pending_blob_deletions (storage_key, fingerprint, enqueued_at)
            VALUES (?, ?, ?)
            ON CONFLICT(storage_key) DO UPDATE SET
                fingerprint = excluded.fingerprint,
                enqueued_at = excluded.enqueued_at
            """,
            (storage_key, fingerprint, datetime.now(timezone.utc).isoformat())
        )

    @staticmethod
    def remove(storage_key: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        if conn is None:
            with get_db_connection() as conn:
                return PendingDeletionRepository.remove(storage_key, conn=conn)

        cursor = conn.execute(
            "DELETE FROM pending_blob_deletions WHERE storage_key = ?",
            (storage_key,)
        )
        return cursor.rowcount > 0

    @staticmethod
    def record_failure(storage_key: str, error: str) -> None:
        with get_db_connection() as conn:
            conn.execute(
                """
                UPDATE pending_blob_deletions
                SET attempts = attempts + 1, last_error = ?
                WHERE storage_key = ?
                """,
                (error[:1000], storage_key)
            )

    @staticmethod
    def list_pending(limit: int = 1000) -> List[PendingDeletion]:
        with get_db_connection() as conn:
            rows = conn.execute(
                """
                SELECT storage_key, fingerprint, enqueued_at, attempts, last_error
                FROM pending_blob_deletions
                ORDER BY enqueued_at
                LIMIT ?
                """,
                (limit,)
            ).fetchall()

        return [
            PendingDeletion(
                storage_key=row["storage_key"],
                fingerprint=row["fingerprint"],
                enqueued_at=datetime.fromisoformat(row["enqueued_at"]),
                attempts=row["attempts"],
                last_error=row["last_error"],
            )
            for row in rows
        ]
