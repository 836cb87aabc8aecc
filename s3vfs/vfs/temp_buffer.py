# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Reference-counted local staging of object content.

A TempBuffer is a file on local disk with a use count. The creator holds
the first reference; every stream opened against the buffer takes one more
on open and gives it back on close. The file is deleted exactly when the
count drops from 1 to 0, and any later use raises BufferExpiredError.
"""

import os
import tempfile
import threading
import weakref
from typing import Callable, Optional

from ..client.exceptions import BufferExpiredError, LocalResourceError
from ..utils import logger

TEMP_PREFIX = "vfs."
TEMP_SUFFIX = ".s3"


def _discard(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


class TempBuffer:
    """
    A local temp file with a use count and the etag of the content it holds.

    Attributes:
        path (str): Location of the backing file.
        etag (str): Etag of the remote content, recorded after a complete transfer.
    """

    def __init__(self, path: str):
        self.path = path
        self.etag: Optional[str] = None
        self._use_count = 1
        self._lock = threading.Lock()
        # Last-resort cleanup if every holder leaked its reference
        self._finalizer = weakref.finalize(self, _discard, path)

    @property
    def use_count(self) -> int:
        with self._lock:
            return self._use_count

    @property
    def is_released(self) -> bool:
        return self.use_count == 0

    def size(self) -> int:
        try:
            return os.path.getsize(self.path)
        except OSError as e:
            raise LocalResourceError(f"Cannot stat temp buffer: {e}", path=self.path) from e

    def _acquire(self) -> None:
        with self._lock:
            if self._use_count == 0:
                raise BufferExpiredError(path=self.path)
            self._use_count += 1

    def _release(self) -> bool:
        with self._lock:
            if self._use_count == 0:
                raise BufferExpiredError(path=self.path)
            self._use_count -= 1
            if self._use_count > 0:
                return False
        try:
            self._finalizer()
        except OSError as e:
            raise LocalResourceError(f"Cannot delete temp buffer: {e}", path=self.path) from e
        logger.debug(f"Discarded temp buffer {self.path}")
        return True

    def __repr__(self):
        return f"TempBuffer(path={self.path!r}, etag={self.etag!r}, use_count={self.use_count})"


class BufferStream:
    """
    File stream over a TempBuffer holding one buffer reference.

    The reference is given back exactly once, on the first ``close()``. Used as
    a context manager, a block that raises aborts the stream: the ``on_close``
    callback is told not to commit.

    Args:
        store (TempContentStore): Store that issued the reference.
        buffer (TempBuffer): The buffer.
        file: Open file object on the buffer's path.
        on_close (Callable[[bool], None], optional): Called after the file is
            closed with True on a normal close and False on abort.
    """

    def __init__(self, store: "TempContentStore", buffer: TempBuffer, file, on_close: Callable[[bool], None] = None):
        self.store = store
        self.buffer = buffer
        self._file = file
        self._on_close = on_close
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def name(self) -> str:
        return self.buffer.path

    def read(self, size: int = -1) -> bytes:
        return self._file.read(size)

    def readinto(self, b) -> int:
        return self._file.readinto(b)

    def write(self, data) -> int:
        return self._file.write(data)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return self._file.seek(offset, whence)

    def tell(self) -> int:
        return self._file.tell()

    def truncate(self, size: int = None) -> int:
        return self._file.truncate(size)

    def flush(self) -> None:
        self._file.flush()

    def readable(self) -> bool:
        return self._file.readable()

    def writable(self) -> bool:
        return self._file.writable()

    def seekable(self) -> bool:
        return True

    def _finish(self, commit: bool) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            try:
                self._file.close()
            except OSError as e:
                commit = False
                raise LocalResourceError(f"Cannot close temp buffer: {e}", path=self.buffer.path) from e
            finally:
                if self._on_close is not None:
                    self._on_close(commit)
        finally:
            self.store._stream_closed()
            self.store.release(self.buffer)

    def close(self) -> None:
        self._finish(commit=True)

    def abort(self) -> None:
        """Close without committing."""
        self._finish(commit=False)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._finish(commit=exc_type is None)
        return False

    def __iter__(self):
        return iter(self._file)


class TempContentStore:
    """
    Allocates temp buffers and opens streams on them.

    Args:
        directory (str, optional): Directory for temp files. Defaults to the system temp dir.
    """

    def __init__(self, directory: str = None):
        self.directory = directory
        self._open_streams = 0
        self._streams_lock = threading.Lock()

    @property
    def open_streams(self) -> int:
        with self._streams_lock:
            return self._open_streams

    def _stream_opened(self) -> None:
        with self._streams_lock:
            self._open_streams += 1

    def _stream_closed(self) -> None:
        with self._streams_lock:
            self._open_streams -= 1

    def create(self) -> TempBuffer:
        try:
            fd, path = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=self.directory)
            os.close(fd)
        except OSError as e:
            raise LocalResourceError(f"Cannot allocate temp buffer: {e}", operation="CREATE") from e
        logger.debug(f"Allocated temp buffer {path}")
        return TempBuffer(path)

    def use(self, buffer: TempBuffer) -> None:
        buffer._acquire()

    def release(self, buffer: TempBuffer) -> bool:
        """
        Give back one reference.

        Returns:
            bool: True if this call deleted the backing file.
        """
        return buffer._release()

    def _open(self, buffer: TempBuffer, mode: str, on_close=None) -> BufferStream:
        self.use(buffer)
        try:
            file = open(buffer.path, mode)
        except OSError as e:
            self.release(buffer)
            raise LocalResourceError(f"Cannot open temp buffer: {e}", path=buffer.path) from e
        self._stream_opened()
        return BufferStream(self, buffer, file, on_close)

    def open_read(self, buffer: TempBuffer) -> BufferStream:
        return self._open(buffer, "rb")

    def open_write(self, buffer: TempBuffer, on_close: Callable[[bool], None] = None) -> BufferStream:
        """
        Open a read-write stream positioned at the start of the buffer.

        Existing content is kept; truncate explicitly to discard it.
        """
        return self._open(buffer, "r+b", on_close)
