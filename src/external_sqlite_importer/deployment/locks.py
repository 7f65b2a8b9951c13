"""Process-wide, non-reentrant deployment locks keyed by store name."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

_REGISTRY_LOCK = threading.Lock()
_STORE_LOCKS: dict[str, threading.Lock] = {}


def lock_for(store_name: str) -> threading.Lock:
    """Return the lock for ``store_name``, creating it on first use."""

    if not store_name:
        raise ValueError("store_name must be non-empty")
    with _REGISTRY_LOCK:
        lock = _STORE_LOCKS.get(store_name)
        if lock is None:
            lock = threading.Lock()
            _STORE_LOCKS[store_name] = lock
        return lock


@contextmanager
def store_lock(store_name: str) -> Iterator[None]:
    """Hold the deployment lock for ``store_name``; re-entry from the same thread deadlocks."""

    lock = lock_for(store_name)
    with lock:
        yield


__all__ = ["lock_for", "store_lock"]
