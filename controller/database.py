"""Database schema and connection management for SQLite."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from common.constants import SQLITE_BUSY_TIMEOUT_SECONDS
from controller.config import DATABASE_PATH


def init_database() -> None:
    """
    Initialize database and create tables if they don't exist.
    """
    db_path = Path(DATABASE_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db_connection() as conn:
        cursor = conn.cursor()

        cursor.execute("PRAGMA journal_mode=WAL")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS files (
                file_id TEXT PRIMARY KEY,
                container_id TEXT NOT NULL,
                owner_id TEXT,
                original_name TEXT NOT NULL,
                total_size INTEGER NOT NULL CHECK(total_size >= 0),
                content_type TEXT NOT NULL,
                chunk_size INTEGER NOT NULL CHECK(chunk_size > 0),
                uploaded_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                fingerprint TEXT PRIMARY KEY,
                storage_key TEXT UNIQUE NOT NULL,
                size INTEGER NOT NULL CHECK(size >= 0),
                reference_count INTEGER NOT NULL CHECK(reference_count >= 0),
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS manifest_entries (
                file_id TEXT NOT NULL,
                chunk_order INTEGER NOT NULL CHECK(chunk_order >= 0),
                fingerprint TEXT NOT NULL,
                PRIMARY KEY(file_id, chunk_order),
                FOREIGN KEY(file_id) REFERENCES files(file_id) ON DELETE CASCADE,
                FOREIGN KEY(fingerprint) REFERENCES chunks(fingerprint)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS pending_blob_deletions (
                storage_key TEXT PRIMARY KEY,
                fingerprint TEXT NOT NULL,
                enqueued_at TEXT NOT NULL,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_error TEXT
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_files_container ON files(container_id, uploaded_at)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_manifest_fingerprint ON manifest_entries(fingerprint)
        """)


@contextmanager
def get_db_connection() -> Generator[sqlite3.Connection, None, None]:
    """
    Context manager for database connections.

    Connections run in autocommit mode; multi-statement work goes through
    ``transaction()``.
    """
    conn = sqlite3.connect(
        DATABASE_PATH,
        timeout=SQLITE_BUSY_TIMEOUT_SECONDS,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction() -> Generator[sqlite3.Connection, None, None]:
    """
    Open a write transaction that commits on success and rolls back on any error.

    ``BEGIN IMMEDIATE`` takes the write lock up front, so two transactions
    never deadlock upgrading from a read lock.
    """
    with get_db_connection() as conn:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise

