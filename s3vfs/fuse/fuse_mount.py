# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
FUSE mount of an S3 filesystem.

This module exposes an S3FileSystem as a local directory tree. Every FUSE
operation is translated to node operations; file handles hold the node's
buffer streams, so reads are served from the local temp buffer and writes
are uploaded when the handle is released.

Usage:
    # Create a mount point
    mkdir -p /mnt/my-bucket

    # Mount the bucket
    python -m s3vfs.fuse s3://my-bucket /mnt/my-bucket

    # Now you can work with the files as if they were local
    ls /mnt/my-bucket
    cat /mnt/my-bucket/example.txt
"""

import argparse
import errno
import itertools
import logging
import os
import subprocess
import sys
import time
from datetime import datetime
from threading import Lock

from fuse import FUSE, FuseOSError, Operations

from ..client.exceptions import (
    AlreadyExistsError,
    AlreadyWritingError,
    LocalResourceError,
    NotFoundError,
    S3VfsError,
    TypeConflictError,
    UnsupportedOperationError,
)
from ..utils import configure_logging, logger, time_function, trace_op
from ..vfs.filesystem import S3FileProvider, S3FileSystem
from ..vfs.node import NodeKind
from ..vfs.options import FileSystemOptions
from ..vfs.registry import FileSystemRegistry
from .mount_utils import get_mount_options, setup_signal_handlers, unmount

BLOCK_SIZE = 4096

_ERRNO_BY_ERROR = (
    (NotFoundError, errno.ENOENT),
    (AlreadyExistsError, errno.EEXIST),
    (TypeConflictError, errno.EISDIR),
    (AlreadyWritingError, errno.EBUSY),
    (UnsupportedOperationError, errno.ENOTSUP),
    (LocalResourceError, errno.ENOSPC),
)


def _to_fuse_error(e: Exception, operation: str, path: str) -> FuseOSError:
    if isinstance(e, FuseOSError):
        return e
    for error_type, code in _ERRNO_BY_ERROR:
        if isinstance(e, error_type):
            logger.debug(f"{operation} on {path}: {e}")
            return FuseOSError(code)
    logger.error(f"{operation} error for {path}: {e}", exc_info=not isinstance(e, S3VfsError))
    return FuseOSError(errno.EIO)


class _OpenFile:
    """A FUSE file handle: the path, its buffer stream and a lock for seek+io."""

    def __init__(self, path, stream, writing):
        self.path = path
        self.stream = stream
        self.writing = writing
        self.lock = Lock()


class S3Fuse(Operations):
    """
    FUSE operations over an S3FileSystem.

    Attributes:
        filesystem (S3FileSystem): The mounted filesystem.
    """

    def __init__(self, filesystem: S3FileSystem):
        logger.info(f"Initializing S3Fuse for {filesystem!r}")
        self.filesystem = filesystem
        self._handles = {}
        self._handles_lock = Lock()
        self._fh_counter = itertools.count(1)

    def _node(self, path):
        return self.filesystem.resolve_file(path)

    def _register(self, path, stream, writing) -> int:
        fh = next(self._fh_counter)
        with self._handles_lock:
            self._handles[fh] = _OpenFile(path, stream, writing)
        return fh

    def _handle(self, fh) -> _OpenFile:
        with self._handles_lock:
            handle = self._handles.get(fh)
        if handle is None:
            raise FuseOSError(errno.EBADF)
        return handle

    def _writer_for(self, path):
        with self._handles_lock:
            return next((h for h in self._handles.values() if h.writing and h.path == path), None)

    def getattr(self, path, fh=None):
        """
        Get file attributes.

        Args:
            path (str): Path to the file or directory
            fh (int, optional): File handle

        Returns:
            dict: File attributes

        Raises:
            FuseOSError: If the file or directory does not exist
        """
        trace_op("getattr", path, fh=fh)
        start_time = time.time()
        try:
            now = datetime.now().timestamp()
            base_stat = {
                'st_uid': os.getuid(),
                'st_gid': os.getgid(),
                'st_atime': now,
                'st_mtime': now,
                'st_ctime': now,
                'st_blksize': BLOCK_SIZE,
                'st_rdev': 0,
            }
            node = self._node(path)
            kind = node.get_type()
            # A file being created has no object until its handle is released
            writer = self._writer_for(node.path)
            if kind is NodeKind.NEW and writer is None:
                raise FuseOSError(errno.ENOENT)

            metadata = node.get_object_metadata()
            mtime = metadata.last_modified.timestamp() if metadata.last_modified else now
            if kind.is_folder:
                result = {**base_stat, 'st_mode': 0o40755, 'st_nlink': 2, 'st_size': BLOCK_SIZE,
                          'st_blocks': 8, 'st_mtime': mtime}
            else:
                size = metadata.content_length
                if writer is not None:
                    with writer.lock:
                        writer.stream.flush()
                        size = writer.stream.buffer.size()
                result = {**base_stat, 'st_mode': 0o100644, 'st_nlink': 1, 'st_size': size,
                          'st_blocks': (size + BLOCK_SIZE - 1) // BLOCK_SIZE, 'st_mtime': mtime}
            time_function("getattr", start_time)
            return result
        except Exception as e:
            raise _to_fuse_error(e, "getattr", path)

    def readdir(self, path, fh):
        """
        List directory contents.

        Returns:
            list: Entry names, including ``.`` and ``..``
        """
        trace_op("readdir", path, fh=fh)
        start_time = time.time()
        try:
            node = self._node(path)
            if not node.is_folder():
                raise FuseOSError(errno.ENOTDIR if node.exists() else errno.ENOENT)
            entries = ['.', '..'] + [child.base_name for child in node.get_children()]
            logger.debug(f"readdir returning {len(entries)} entries for {path}")
            time_function("readdir", start_time)
            return entries
        except Exception as e:
            raise _to_fuse_error(e, "readdir", path)

    def open(self, path, flags):
        """
        Open a file.

        Read-only opens stage the content in a temp buffer; write opens start
        from the current content unless O_TRUNC is given.

        Returns:
            int: File handle
        """
        trace_op("open", path, flags=flags)
        try:
            node = self._node(path)
            if (flags & os.O_ACCMODE) == os.O_RDONLY:
                return self._register(node.path, node.get_input_stream(), writing=False)
            truncate = bool(flags & os.O_TRUNC)
            stream = node.get_output_stream(append=not truncate)
            stream.seek(0)
            return self._register(node.path, stream, writing=True)
        except Exception as e:
            raise _to_fuse_error(e, "open", path)

    def create(self, path, mode, fi=None):
        """
        Create a new file and open it for writing.

        The object is uploaded when the handle is released.

        Returns:
            int: File handle
        """
        trace_op("create", path, mode=oct(mode))
        logger.info(f"create: Creating new file at {path} with mode {oct(mode)}")
        try:
            node = self._node(path)
            return self._register(node.path, node.get_output_stream(), writing=True)
        except Exception as e:
            raise _to_fuse_error(e, "create", path)

    def read(self, path, size, offset, fh):
        trace_op("read", path, size=size, offset=offset, fh=fh)
        handle = self._handle(fh)
        try:
            with handle.lock:
                handle.stream.seek(offset)
                return handle.stream.read(size)
        except Exception as e:
            raise _to_fuse_error(e, "read", path)

    def write(self, path, data, offset, fh):
        trace_op("write", path, offset=offset, size=len(data))
        handle = self._handle(fh)
        if not handle.writing:
            raise FuseOSError(errno.EBADF)
        try:
            with handle.lock:
                handle.stream.seek(offset)
                return handle.stream.write(data)
        except Exception as e:
            raise _to_fuse_error(e, "write", path)

    def truncate(self, path, length, fh=None):
        """
        Truncate a file to the given length.

        An open write handle is truncated in place; otherwise the file is
        rewritten with its first ``length`` bytes.
        """
        trace_op("truncate", path, length=length, fh=fh)
        try:
            node = self._node(path)
            writer = self._writer_for(node.path)
            if writer is not None:
                with writer.lock:
                    writer.stream.truncate(length)
                return 0
            with node.get_output_stream(append=True) as stream:
                stream.truncate(length)
            return 0
        except Exception as e:
            raise _to_fuse_error(e, "truncate", path)

    def flush(self, path, fh):
        handle = self._handle(fh)
        with handle.lock:
            handle.stream.flush()
        return 0

    def fsync(self, path, datasync, fh):
        return self.flush(path, fh)

    def release(self, path, fh):
        """
        Release a file handle; write handles upload their content here.

        Returns:
            int: 0 on success
        """
        trace_op("release", path, fh=fh)
        start_time = time.time()
        with self._handles_lock:
            handle = self._handles.pop(fh, None)
        if handle is None:
            return 0
        try:
            with handle.lock:
                handle.stream.close()
            time_function("release", start_time)
            return 0
        except Exception as e:
            raise _to_fuse_error(e, "release", path)

    def release_all(self) -> None:
        """Close every open handle, uploading pending writes."""
        with self._handles_lock:
            handles, self._handles = self._handles, {}
        for fh, handle in handles.items():
            try:
                handle.stream.close()
            except S3VfsError as e:
                logger.error(f"Failed to close handle {fh} for {handle.path}: {e}")

    def unlink(self, path):
        trace_op("unlink", path)
        try:
            node = self._node(path)
            kind = node.get_type()
            if kind is NodeKind.NEW:
                raise FuseOSError(errno.ENOENT)
            if kind.is_folder:
                raise FuseOSError(errno.EISDIR)
            node.delete()
            return 0
        except Exception as e:
            raise _to_fuse_error(e, "unlink", path)

    def mkdir(self, path, mode):
        trace_op("mkdir", path, mode=oct(mode))
        try:
            node = self._node(path)
            if node.exists():
                raise FuseOSError(errno.EEXIST)
            node.create_folder()
            return 0
        except Exception as e:
            raise _to_fuse_error(e, "mkdir", path)

    def rmdir(self, path):
        trace_op("rmdir", path)
        try:
            node = self._node(path)
            kind = node.get_type()
            if kind is NodeKind.NEW:
                raise FuseOSError(errno.ENOENT)
            if not kind.is_folder:
                raise FuseOSError(errno.ENOTDIR)
            if not node.delete():
                raise FuseOSError(errno.ENOTEMPTY)
            return 0
        except Exception as e:
            raise _to_fuse_error(e, "rmdir", path)

    def rename(self, old, new):
        """Rename a file or directory by copying it to the new path and deleting the old one."""
        trace_op("rename", old, new=new)
        start_time = time.time()
        try:
            source = self._node(old)
            if not source.exists():
                raise FuseOSError(errno.ENOENT)
            source.move_to(self._node(new))
            time_function("rename", start_time)
            return 0
        except Exception as e:
            raise _to_fuse_error(e, "rename", old)

    def statfs(self, path):
        """
        Get filesystem statistics.

        Object storage has no fixed capacity, so a large constant is reported.
        """
        total_blocks = 1250000000  # 5TB
        return {
            'f_bsize': BLOCK_SIZE,
            'f_frsize': BLOCK_SIZE,
            'f_blocks': total_blocks,
            'f_bfree': total_blocks,
            'f_bavail': total_blocks,
            'f_files': 1000000000,
            'f_ffree': 999999999,
            'f_favail': 999999999,
            'f_flag': 0,
            'f_namemax': 255,
        }

    def chmod(self, path, mode):
        """Object storage has no POSIX modes; this is a no-op."""
        logger.debug(f"chmod requested for path: {path}, mode={oct(mode)} - NO-OP")
        return 0

    def chown(self, path, uid, gid):
        """Object storage has no POSIX owners; this is a no-op."""
        logger.debug(f"chown requested for path: {path}, uid={uid}, gid={gid} - NO-OP")
        return 0


def mount(uri: str, mountpoint: str, options: FileSystemOptions = None, foreground: bool = True,
          allow_other: bool = False):
    """
    Mount an S3 location at the specified mountpoint.

    Args:
        uri (str): ``s3://`` location of the bucket to mount
        mountpoint (str): Local path where the filesystem should be mounted
        options (FileSystemOptions, optional): Filesystem options
        foreground (bool, optional): Run in foreground. Defaults to True.
        allow_other (bool, optional): Allow other users to access the mount.
            Requires 'user_allow_other' in /etc/fuse.conf. Defaults to False.
    """
    logger.info(f"Mounting {uri} at {mountpoint}")
    start_time = time.time()

    if os.path.exists(mountpoint):
        if not os.path.isdir(mountpoint):
            logger.error(f"Mountpoint path exists but is not a directory: {mountpoint}")
            print(f"Error: {mountpoint} exists but is not a directory. Please specify a directory path.")
            return
    else:
        logger.info(f"Mountpoint {mountpoint} does not exist, creating it...")
        try:
            os.makedirs(mountpoint, mode=0o755)
        except OSError as e:
            logger.error(f"Failed to create mountpoint {mountpoint}: {e}")
            print(f"Error: Failed to create mountpoint directory {mountpoint}: {e}")
            return

    process = subprocess.run(["mountpoint", "-q", mountpoint], check=False)
    if process.returncode == 0:
        logger.warning(f"Mountpoint {mountpoint} is already mounted")
        print(f"Warning: {mountpoint} is already mounted. Unmounting first...")
        unmount(mountpoint)

    provider = S3FileProvider(registry=FileSystemRegistry())
    filesystem = provider.get_filesystem(uri, options)
    operations = S3Fuse(filesystem)
    setup_signal_handlers(mountpoint, lambda mp: unmount(mp, operations))

    try:
        logger.info(f"Starting FUSE mount of {filesystem!r}")
        FUSE(operations, mountpoint, nothreads=False, **get_mount_options(foreground, allow_other))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, unmounting...")
        unmount(mountpoint, operations)
    except RuntimeError as e:
        logger.error(f"Error during mount: {e}")
        print(f"Error: {e}")
        unmount(mountpoint, operations)
    finally:
        operations.release_all()
        provider.close()
        time_function("mount", start_time)


def main(argv=None):
    """
    CLI entry point for mounting S3 locations.

    Usage:
        python -m s3vfs.fuse <s3-uri> <mountpoint>

    Options:
        --region / --endpoint: Where the bucket lives
        --no-create-bucket: Fail instead of creating a missing bucket
        --sse: Ask for server-side encryption of uploads
        --allow-other: Allow other users to access the mount
        --trace: Enable detailed tracing of file operations for debugging
    """
    parser = argparse.ArgumentParser(description='Mount an S3 bucket as a local filesystem')
    parser.add_argument('uri', help='The s3:// location to mount')
    parser.add_argument('mountpoint', help='The directory to mount the bucket on')
    parser.add_argument('--region', help='Signing region of the bucket')
    parser.add_argument('--endpoint', help='Endpoint of an S3-compatible store (host[:port])')
    parser.add_argument('--http', action='store_true', help='Use plain HTTP towards the endpoint')
    parser.add_argument('--no-create-bucket', action='store_true', help='Do not create a missing bucket')
    parser.add_argument('--sse', action='store_true', help='Request server-side encryption of uploads')
    parser.add_argument('--upload-threads', type=int, default=2, help='Concurrency of large uploads')
    parser.add_argument('--allow-other', action='store_true',
                        help='Allow other users to access the mount (requires user_allow_other in /etc/fuse.conf)')
    parser.add_argument('--trace', action='store_true',
                        help='Enable detailed tracing of file operations for debugging')
    parser.add_argument('--debug', action='store_true', help='Log at debug level')

    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.debug or args.trace else logging.INFO)

    if args.trace:
        os.environ['S3VFS_TRACE_OPS'] = 'true'
        print("Detailed operation tracing enabled")

    options = (FileSystemOptions.builder()
               .region(args.region)
               .endpoint(args.endpoint)
               .use_https(not args.http)
               .create_bucket(not args.no_create_bucket)
               .server_side_encryption(args.sse)
               .max_upload_threads(args.upload_threads)
               .build())

    mount(args.uri, args.mountpoint, options, allow_other=args.allow_other)
    return 0


if __name__ == '__main__':
    sys.exit(main())
