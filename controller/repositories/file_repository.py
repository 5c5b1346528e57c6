"""File repository for database operations."""

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from common.logging_config import get_logger
from controller.database import get_db_connection

logger = get_logger(__name__)


@dataclass
class File:
    file_id: str
    container_id: str
    owner_id: Optional[str]
    original_name: str
    total_size: int
    content_type: str
    chunk_size: int
    uploaded_at: datetime


_FILE_COLUMNS = """
    file_id, container_id, owner_id, original_name, total_size,
    content_type, chunk_size, uploaded_at
"""


def _row_to_file(row: sqlite3.Row) -> File:
    return File(
        file_id=row["file_id"],
        container_id=row["container_id"],
        owner_id=row["owner_id"],
        original_name=row["original_name"],
        total_size=row["total_size"],
        content_type=row["content_type"],
        chunk_size=row["chunk_size"],
        uploaded_at=datetime.fromisoformat(row["uploaded_at"]),
    )


class FileRepository:
    @staticmethod
    def create_file(file: File, conn: sqlite3.Connection) -> File:
        conn.execute(
            f"""
            INSERT INTO files ({_FILE_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                file.file_id,
                file.container_id,
                file.owner_id,
                file.original_name,
                file.total_size,
                file.content_type,
                file.chunk_size,
                file.uploaded_at.isoformat(),
            )
        )
        logger.debug(f"Created file record [file_id={file.file_id}]")
        return file

    @staticmethod
    def get_by_id(file_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[File]:
        if conn is None:
            with get_db_connection() as conn:
                return FileRepository.get_by_id(file_id, conn=conn)

        row = conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM files WHERE file_id = ?",
            (file_id,)
        ).fetchone()
        return _row_to_file(row) if row is not None else None

    @staticmethod
    def list_by_container(container_id: str, owner_id: Optional[str] = None) -> List[File]:
        with get_db_connection() as conn:
            if owner_id is None:
                rows = conn.execute(
                    f"""
                    SELECT {_FILE_COLUMNS} FROM files
                    WHERE container_id = ?
                    ORDER BY uploaded_at, file_id
                    """,
                    (container_id,)
                ).fetchall()
            else:
                rows = conn.execute(
                    f"""
                    SELECT {_FILE_COLUMNS} FROM files
                    WHERE container_id = ? AND owner_id = ?
                    ORDER BY uploaded_at, file_id
                    """,
                    (container_id, owner_id)
                ).fetchall()

        return [_row_to_file(row) for row in rows]

    @staticmethod
    def delete_file(file_id: str, conn: sqlite3.Connection) -> bool:
        """
        Delete a file record. Manifest entries go with it (ON DELETE CASCADE).

        Returns:
            True if a record was deleted
        """
        cursor = conn.execute("DELETE FROM files WHERE file_id = ?", (file_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.debug(f"Deleted file record [file_id={file_id}]")
        return deleted
