"""In-process object store, used for tests and ephemeral deployments."""

import threading
from typing import Dict, List, Optional, Tuple

from blobstore.base import BlobInfo, BlobNotFoundError, BlobStore
from common.constants import CHUNK_CONTENT_TYPE


class InMemoryBlobStore(BlobStore):
    """Thread-safe dict-backed store."""

    def __init__(self):
        self._objects: Dict[str, Tuple[bytes, str]] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: str = CHUNK_CONTENT_TYPE) -> BlobInfo:
        with self._lock:
            self._objects[key] = (bytes(data), content_type)
        return BlobInfo(key=key, size=len(data), content_type=content_type)

    def get(self, key: str) -> bytes:
        with self._lock:
            entry = self._objects.get(key)
        if entry is None:
            raise BlobNotFoundError(f"Object {key} not found")
        return entry[0]

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._objects.pop(key, None) is not None

    def head(self, key: str) -> Optional[BlobInfo]:
        with self._lock:
            entry = self._objects.get(key)
        if entry is None:
            return None
        return BlobInfo(key=key, size=len(entry[0]), content_type=entry[1])

    def list_keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._objects if k.startswith(prefix))

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)
