"""Manifest repository: the ordered chunk list of each file."""

import sqlite3
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from common.logging_config import get_logger
from controller.database import get_db_connection

logger = get_logger(__name__)


@dataclass(frozen=True)
class ManifestEntry:
    file_id: str
    chunk_order: int
    fingerprint: str


class ManifestRepository:
    @staticmethod
    def add_entries(entries: Iterable[ManifestEntry], conn: sqlite3.Connection) -> int:
        """
        Insert a file's manifest entries in one batch.

        Returns:
            Number of entries written
        """
        rows = [(e.file_id, e.chunk_order, e.fingerprint) for e in entries]
        if not rows:
            return 0

        conn.executemany(
            """
            INSERT INTO manifest_entries (file_id, chunk_order, fingerprint)
            VALUES (?, ?, ?)
            """,
            rows
        )
        logger.debug(f"Created {len(rows)} manifest entries [file_id={rows[0][0]}]")
        return len(rows)

    @staticmethod
    def get_entries(file_id: str, conn: Optional[sqlite3.Connection] = None) -> List[ManifestEntry]:
        """
        Load a file's manifest sorted ascending by chunk order.
        """
        if conn is None:
            with get_db_connection() as conn:
                return ManifestRepository.get_entries(file_id, conn=conn)

        rows = conn.execute(
            """
            SELECT file_id, chunk_order, fingerprint
            FROM manifest_entries
            WHERE file_id = ?
            ORDER BY chunk_order
            """,
            (file_id,)
        ).fetchall()

        return [
            ManifestEntry(
                file_id=row["file_id"],
                chunk_order=row["chunk_order"],
                fingerprint=row["fingerprint"],
            )
            for row in rows
        ]

    @staticmethod
    def count_entries(file_ids: Iterable[str]) -> Dict[str, int]:
        wanted = list(set(file_ids))
        if not wanted:
            return {}

        counts = {file_id: 0 for file_id in wanted}
        with get_db_connection() as conn:
            for start in range(0, len(wanted), 500):
                batch = wanted[start:start + 500]
                placeholders = ','.join('?' for _ in batch)
                rows = conn.execute(
                    f"""
                    SELECT file_id, COUNT(*) AS entry_count
                    FROM manifest_entries
                    WHERE file_id IN ({placeholders})
                    GROUP BY file_id
                    """,
                    batch
                ).fetchall()
                for row in rows:
                    counts[row["file_id"]] = row["entry_count"]
        return counts
