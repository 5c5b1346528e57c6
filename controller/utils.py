"""Utility helper functions for the Controller."""

import uuid
from typing import Dict


def generate_uuid() -> str:
    """
    Generate a new UUID4 string.

    Returns:
        UUID4 string
    """
    return str(uuid.uuid4())


def unique_archive_name(name: str, used: Dict[str, int]) -> str:
    """
    Return ``name`` or, if already taken, ``stem (n).ext``.

    Args:
        name: Desired archive entry name
        used: Mapping of names handed out so far to their collision count (updated in place)

    Returns:
        An entry name not yet present in ``used``
    """
    if name not in used:
        used[name] = 0
        return name

    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        stem, ext = name, ""
    while True:
        used[name] += 1
        candidate = f"{stem} ({used[name]}).{ext}" if ext else f"{stem} ({used[name]})"
        if candidate not in used:
            used[candidate] = 0
            return candidate
