"""In-flight locks and request sequencing for single-threaded views."""
from typing import Hashable, Set


class InFlightRegistry:
    """Set of identifiers with a mutation outstanding.

    All callers run on one event loop, so check-and-add in acquire()
    cannot interleave with another acquire().
    """

    def __init__(self):
        self._keys: Set[Hashable] = set()

    def acquire(self, key: Hashable) -> bool:
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: Hashable) -> None:
        self._keys.discard(key)

    def is_locked(self, key: Hashable) -> bool:
        return key in self._keys


class RequestSequencer:
    """Monotonic request tags so a view can drop superseded responses."""

    def __init__(self):
        self._latest = 0

    def next(self) -> int:
        self._latest += 1
        return self._latest
