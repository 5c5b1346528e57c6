"""Per-fingerprint locks for ledger/object-store coordination."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Tuple


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class FingerprintLockTable:
    """
    One lock per fingerprint currently in use, created on demand.

    An operation holds the locks of every fingerprint it touches from
    before its ledger lookup until its object store side effects are done,
    so only operations sharing a fingerprint wait on each other. Locks are
    always taken in ascending fingerprint order, so two operations can
    never wait on each other in a cycle. An entry is dropped once its last
    user releases it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _checkout(self, fingerprint: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(fingerprint)
            if entry is None:
                entry = _Entry()
                self._entries[fingerprint] = entry
            entry.users += 1
            return entry

    def _checkin(self, fingerprint: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[fingerprint]

    @contextmanager
    def hold(self, fingerprints: Iterable[str]) -> Iterator[None]:
        acquired: List[Tuple[str, _Entry]] = []
        try:
            for fingerprint in sorted(set(fingerprints)):
                entry = self._checkout(fingerprint)
                try:
                    entry.lock.acquire()
                except BaseException:
                    self._checkin(fingerprint, entry)
                    raise
                acquired.append((fingerprint, entry))
            yield
        finally:
            for fingerprint, entry in reversed(acquired):
                entry.lock.release()
                self._checkin(fingerprint, entry)
