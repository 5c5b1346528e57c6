"""Project-wide constants (chunk size, storage layout, limits)."""

CHUNK_SIZE_BYTES: int = 1024 * 1024  # 1 MiB default chunk size

CHUNK_KEY_PREFIX: str = "chunks"

FINGERPRINT_ALGORITHM: str = "sha256"
FINGERPRINT_HEX_LENGTH: int = 64

MAX_UPLOAD_SIZE_BYTES: int = 100 * 1024 * 1024

DEFAULT_BLOB_BACKEND: str = "filesystem"
DEFAULT_BLOB_STORAGE_PATH: str = "/app/data/blobs"
DEFAULT_DATABASE_PATH: str = "/app/data/ledger.db"

DEFAULT_CONTENT_TYPE: str = "application/octet-stream"
CHUNK_CONTENT_TYPE: str = "application/octet-stream"

UPLOAD_TIMEOUT_SECONDS: float = 300.0

IO_WORKERS: int = 8

STORE_RETRY_ATTEMPTS: int = 3
STORE_RETRY_BASE_DELAY_SECONDS: float = 0.5

SQLITE_BUSY_TIMEOUT_SECONDS: float = 30.0
