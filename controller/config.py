"""Configuration settings for the ChunkVault controller."""

import os

from common.constants import (
    CHUNK_KEY_PREFIX as DEFAULT_CHUNK_KEY_PREFIX,
    CHUNK_SIZE_BYTES as DEFAULT_CHUNK_SIZE_BYTES,
    DEFAULT_BLOB_BACKEND,
    DEFAULT_BLOB_STORAGE_PATH,
    DEFAULT_DATABASE_PATH,
    IO_WORKERS as DEFAULT_IO_WORKERS,
    MAX_UPLOAD_SIZE_BYTES as DEFAULT_MAX_UPLOAD_SIZE_BYTES,
    STORE_RETRY_ATTEMPTS as DEFAULT_STORE_RETRY_ATTEMPTS,
    STORE_RETRY_BASE_DELAY_SECONDS as DEFAULT_STORE_RETRY_BASE_DELAY,
    UPLOAD_TIMEOUT_SECONDS as DEFAULT_UPLOAD_TIMEOUT_SECONDS,
)


DATABASE_PATH = os.environ.get("CHUNKVAULT_DATABASE_PATH", DEFAULT_DATABASE_PATH)

BLOB_BACKEND = os.environ.get("CHUNKVAULT_BLOB_BACKEND", DEFAULT_BLOB_BACKEND)

BLOB_STORAGE_PATH = os.environ.get("CHUNKVAULT_BLOB_STORAGE_PATH", DEFAULT_BLOB_STORAGE_PATH)

# Changing this only affects new uploads; each file records the size it was chunked with.
CHUNK_SIZE_BYTES = int(os.environ.get("CHUNKVAULT_CHUNK_SIZE_BYTES", str(DEFAULT_CHUNK_SIZE_BYTES)))

CHUNK_KEY_PREFIX = os.environ.get("CHUNKVAULT_CHUNK_KEY_PREFIX", DEFAULT_CHUNK_KEY_PREFIX).strip("/")

MAX_UPLOAD_SIZE_BYTES = int(os.environ.get("CHUNKVAULT_MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_SIZE_BYTES)))

ALLOWED_CONTENT_TYPES = frozenset(
    ct.strip().lower()
    for ct in os.environ.get("CHUNKVAULT_ALLOWED_CONTENT_TYPES", "").split(",")
    if ct.strip()
)

UPLOAD_TIMEOUT_SECONDS = float(os.environ.get("CHUNKVAULT_UPLOAD_TIMEOUT_SECONDS", str(DEFAULT_UPLOAD_TIMEOUT_SECONDS)))

IO_WORKERS = int(os.environ.get("CHUNKVAULT_IO_WORKERS", str(DEFAULT_IO_WORKERS)))

STORE_RETRY_ATTEMPTS = int(os.environ.get("CHUNKVAULT_STORE_RETRY_ATTEMPTS", str(DEFAULT_STORE_RETRY_ATTEMPTS)))

STORE_RETRY_BASE_DELAY = float(os.environ.get("CHUNKVAULT_STORE_RETRY_BASE_DELAY", str(DEFAULT_STORE_RETRY_BASE_DELAY)))

CONTROLLER_HOST = os.environ.get("CHUNKVAULT_HOST", "0.0.0.0")

CONTROLLER_PORT = int(os.environ.get("CHUNKVAULT_PORT", "8000"))
