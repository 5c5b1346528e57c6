"""Object store backed by a local directory tree."""

import os
import tempfile
from pathlib import Path
from typing import List, Optional, Union

from blobstore.base import (
    BlobInfo,
    BlobNotFoundError,
    BlobStore,
    TransientBlobStoreError,
)
from common.constants import CHUNK_CONTENT_TYPE
from common.logging_config import get_logger

logger = get_logger(__name__)


class FilesystemBlobStore(BlobStore):
    """
    Stores each object as one file under ``root``; the key is the relative path.

    Writes go to a temporary file in the target directory and are moved into
    place with ``os.replace``, so a reader never sees a partial object and
    repeated puts of identical content are harmless.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        """
        Get the file path for a key.

        Args:
            key: Object key (e.g. ``chunks/<fingerprint>``)

        Returns:
            Path object under the store root

        Raises:
            ValueError: If the key is empty, absolute or escapes the root
        """
        parts = key.split("/")
        if not key or any(part in ("", ".", "..") for part in parts):
            raise ValueError(f"Invalid object key: {key!r}")
        return self.root.joinpath(*parts)

    def put(self, key: str, data: bytes, content_type: str = CHUNK_CONTENT_TYPE) -> BlobInfo:
        path = self._path(key)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise TransientBlobStoreError(f"Failed to write object {key}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning(f"Could not remove temporary file {tmp_name}")

        logger.debug(f"Stored object [key={key}] [size={len(data)}]")
        return BlobInfo(key=key, size=len(data), content_type=content_type)

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"Object {key} not found") from e
        except OSError as e:
            raise TransientBlobStoreError(f"Failed to read object {key}: {e}") from e

    def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise TransientBlobStoreError(f"Failed to delete object {key}: {e}") from e
        logger.debug(f"Deleted object [key={key}]")
        return True

    def head(self, key: str) -> Optional[BlobInfo]:
        path = self._path(key)
        if not path.is_file():
            return None
        return BlobInfo(key=key, size=path.stat().st_size)

    def list_keys(self, prefix: str = "") -> List[str]:
        if not self.root.exists():
            return []

        keys = []
        for filepath in self.root.rglob("*"):
            if not filepath.is_file() or filepath.name.startswith(".tmp-"):
                continue
            key = filepath.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)
