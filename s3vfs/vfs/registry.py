# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Filesystem registry.

Keeps at most one live S3FileSystem per (root, options) pair. Construction
is an insert-if-absent of a pending future: the caller that inserts it runs
the factory, every concurrent caller for the same key waits on that future,
so a second remote client is never built and then thrown away.
"""

import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..utils import logger
from .options import FileSystemOptions


@dataclass(frozen=True)
class FileSystemKey:
    """Identity of a filesystem handle: root location plus options value."""
    root_uri: str
    options: Optional[FileSystemOptions] = None

    def __post_init__(self):
        if self.options is None:
            object.__setattr__(self, "options", FileSystemOptions())


class FileSystemRegistry:
    """
    Thread-safe cache of filesystem handles.

    Handles registered here must expose ``key``, ``close()``,
    ``is_releasable()`` and ``close_communication_link()``.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[FileSystemKey, Future] = {}

    def get_or_create(self, root_uri: str, options: Optional[FileSystemOptions],
                      factory: Callable[[FileSystemKey], object]):
        """
        Return the handle cached for (root_uri, options), building it on first use.

        Args:
            root_uri (str): Root location of the filesystem.
            options (FileSystemOptions, optional): Options; None equals the defaults.
            factory (Callable): Called with the FileSystemKey to build the handle.

        Returns:
            The cached or newly built handle.

        Raises:
            Exception: Whatever the factory raised. The key is left unregistered.
        """
        key = FileSystemKey(root_uri, options)
        with self._guard:
            pending = self._entries.get(key)
            if pending is None:
                pending = Future()
                self._entries[key] = pending
                owner = True
            else:
                owner = False

        if not owner:
            return pending.result()

        logger.debug(f"Creating filesystem for {root_uri}")
        try:
            filesystem = factory(key)
        except BaseException as e:
            with self._guard:
                if self._entries.get(key) is pending:
                    del self._entries[key]
            pending.set_exception(e)
            logger.warning(f"Failed to create filesystem for {root_uri}: {e}")
            raise
        pending.set_result(filesystem)
        return filesystem

    def _live_handles(self) -> List[object]:
        with self._guard:
            entries = list(self._entries.values())
        return [entry.result() for entry in entries if entry.done() and entry.exception() is None]

    def close(self, filesystem) -> bool:
        """
        Evict a handle and close it. Closing an unknown or closed handle is a no-op.

        Returns:
            bool: True if the handle was evicted by this call.
        """
        key = getattr(filesystem, "key", None)
        with self._guard:
            entry = self._entries.get(key) if key is not None else None
            if entry is None or not entry.done() or entry.exception() is not None or entry.result() is not filesystem:
                return False
            del self._entries[key]
        logger.info(f"Closing filesystem {key.root_uri}")
        filesystem.close()
        return True

    def sweep_idle(self) -> int:
        """
        Release the connections of idle handles without evicting them.

        Returns:
            int: Number of handles whose connections were released.
        """
        released = 0
        for filesystem in self._live_handles():
            if filesystem.is_releasable() and filesystem.close_communication_link():
                released += 1
        if released:
            logger.debug(f"Released connections of {released} idle filesystem(s)")
        return released

    def close_all(self) -> None:
        for filesystem in self._live_handles():
            self.close(filesystem)

    def __len__(self):
        with self._guard:
            return len(self._entries)

    def __contains__(self, key):
        with self._guard:
            return key in self._entries


_default_registry = None
_default_registry_lock = threading.Lock()


def get_default_registry() -> FileSystemRegistry:
    """Process-wide registry used when a provider is not given one."""
    global _default_registry
    with _default_registry_lock:
        if _default_registry is None:
            _default_registry = FileSystemRegistry()
        return _default_registry


def reset_default_registry() -> None:
    """Close every handle of the process-wide registry and drop it."""
    global _default_registry
    with _default_registry_lock:
        registry, _default_registry = _default_registry, None
    if registry is not None:
        registry.close_all()
