"""SHA-256 fingerprint calculation and verification helpers."""

import hashlib
import re

from common.constants import FINGERPRINT_ALGORITHM, FINGERPRINT_HEX_LENGTH

_FINGERPRINT_RE = re.compile(rf"^[0-9a-f]{{{FINGERPRINT_HEX_LENGTH}}}$")


def compute_fingerprint(data: bytes) -> str:
    """
    Compute the content fingerprint of a byte block.

    Args:
        data: Bytes to fingerprint

    Returns:
        Lowercase hexadecimal SHA-256 digest
    """
    return hashlib.new(FINGERPRINT_ALGORITHM, data).hexdigest()


def verify_fingerprint(data: bytes, expected: str) -> bool:
    """
    Verify that data matches an expected fingerprint.

    Args:
        data: Bytes to verify
        expected: Expected SHA-256 digest (hex string)

    Returns:
        True if the digest matches, False otherwise
    """
    return compute_fingerprint(data) == expected.lower()


def is_valid_fingerprint(value: str) -> bool:
    """Check that a string is a well-formed lowercase SHA-256 hex digest."""
    return bool(_FINGERPRINT_RE.match(value or ""))
