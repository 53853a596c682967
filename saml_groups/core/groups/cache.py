"""Process-local group existence cache."""
from __future__ import annotations
import threading
from collections import OrderedDict
from typing import Optional, Protocol


class ExistenceCache(Protocol):
    """What GroupBackend needs from a cache; presence means "known to exist"."""

    def has(self, gid: str) -> bool: ...

    def remember(self, gid: str) -> None: ...

    def forget(self, gid: str) -> None: ...


class GroupExistenceCache:
    """Memoizes positive group existence answers.

    Absence of an entry never means the group is missing; storage must still
    be checked. Entries are dropped only by forget() (group deleted through
    the owning store) or by the optional size bound.

    Args:
        max_entries: Evict the oldest entry beyond this size (None = unbounded)
    """

    def __init__(self, max_entries: Optional[int] = None):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive or None")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, str] = OrderedDict()
        self._lock = threading.Lock()

    def has(self, gid: str) -> bool:
        with self._lock:
            return gid in self._entries

    def remember(self, gid: str) -> None:
        with self._lock:
            self._entries[gid] = gid
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)

    def forget(self, gid: str) -> None:
        with self._lock:
            self._entries.pop(gid, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
