# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Lock strategies for node attach/detach.

A strategy maps a node to the reentrant lock that serializes its attach,
detach and cache reconciliation. Per-filesystem locking shares one lock
between every node of a handle; per-file locking gives each node its own.
"""

import threading
from threading import RLock
from typing import Protocol

from ..utils import logger


class LockStrategy(Protocol):
    def lock_for(self, node) -> RLock:
        ...

    def release(self, filesystem) -> None:
        ...


def _lock_key(filesystem):
    return filesystem.key if filesystem.key is not None else filesystem


class LockByFileSystemStrategy:
    """One lock per filesystem key, or per handle when the handle has no key."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def lock_for(self, node) -> RLock:
        key = _lock_key(node.filesystem)
        with self._guard:
            return self._locks.setdefault(key, RLock())

    def release(self, filesystem) -> None:
        """Forget the lock of a closed filesystem."""
        with self._guard:
            self._locks.pop(_lock_key(filesystem), None)

    def __len__(self):
        with self._guard:
            return len(self._locks)


class LockByFileStrategy:
    """Each node is guarded by its own lock."""

    def lock_for(self, node) -> RLock:
        return node.lock

    def release(self, filesystem) -> None:
        pass


class LockStrategyFactory:
    """
    Choose the lock strategy of a filesystem.

    Args:
        supports_per_file_locking (bool): Whether the environment advertises
            per-node locking. When it does not, per-file requests fall back to
            per-filesystem locking.
    """

    def __init__(self, supports_per_file_locking: bool = True):
        self.supports_per_file_locking = supports_per_file_locking
        self._by_filesystem = LockByFileSystemStrategy()
        self._by_file = LockByFileStrategy()
        self._warned = False
        self._warn_lock = threading.Lock()

    def create(self, per_file_locking: bool) -> LockStrategy:
        if not per_file_locking:
            return self._by_filesystem
        if self.supports_per_file_locking:
            return self._by_file

        with self._warn_lock:
            if not self._warned:
                self._warned = True
                logger.warning("Per-file locking is not supported here, falling back to per-filesystem locking")
        return self._by_filesystem
