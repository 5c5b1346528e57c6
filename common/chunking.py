"""Fixed-size chunking of byte streams."""

import io
from typing import BinaryIO, Iterator, Union

from common.constants import CHUNK_SIZE_BYTES
from common.hashing import compute_fingerprint
from common.types import ChunkDescriptor


def split_into_chunks(
    source: Union[bytes, bytearray, BinaryIO],
    chunk_size: int = CHUNK_SIZE_BYTES,
) -> Iterator[ChunkDescriptor]:
    """
    Split a byte stream into ordered, fingerprinted blocks.

    Every block is exactly ``chunk_size`` bytes except possibly the last one.
    Empty input yields nothing. The same input always yields the same
    boundaries and fingerprints.

    Args:
        source: Raw bytes or a binary file-like object positioned at the start
        chunk_size: Block size in bytes (must be positive)

    Yields:
        ChunkDescriptor for each block, ``order`` starting at 0

    Raises:
        ValueError: If chunk_size is not a positive integer
    """
    if not isinstance(chunk_size, int) or chunk_size <= 0:
        raise ValueError(f"chunk_size must be a positive integer, got {chunk_size!r}")

    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)

    order = 0
    while True:
        data = _read_exact(source, chunk_size)
        if not data:
            break

        yield ChunkDescriptor(
            order=order,
            data=data,
            fingerprint=compute_fingerprint(data),
        )
        order += 1


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    # Raw streams may return short reads before EOF
    buf = bytearray()
    while len(buf) < size:
        piece = stream.read(size - len(buf))
        if not piece:
            break
        buf.extend(piece)
    return bytes(buf)
