# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Nodes of an S3 filesystem.

An S3FileObject stands for one path of a filesystem handle. It binds lazily
to remote metadata (attach) and can be unbound again (detach). Attaching
probes the service in a fixed order and settles the node into one of four
kinds:

    FILE            an object exists at the key
    FOLDER          a directory placeholder object exists
    VIRTUAL_FOLDER  no object, but keys exist under the folder prefix
    NEW             nothing exists yet

Content goes through the filesystem's TempContentStore: a download is
staged in a temp buffer that stays cached on the node while its etag
matches the remote object, and writes are staged in a fresh buffer that
is uploaded when the stream closes.
"""

import mimetypes
import shutil
import threading
import time
from dataclasses import replace
from datetime import datetime
from enum import Enum
from io import BytesIO
from typing import List, Optional
from urllib.parse import quote

from botocore.exceptions import BotoCoreError

from ..client.exceptions import (
    AlreadyWritingError,
    ConfigurationError,
    IllegalReattachError,
    LocalResourceError,
    NotFoundError,
    RemoteTransportError,
    TypeConflictError,
    UnsupportedOperationError,
)
from ..client.types import ListObjectsOptions, ObjectMetadata
from ..utils import logger, time_function, trace_op
from .names import ROOT_PATH, SEPARATOR, base_name, join_path, parent_path
from .temp_buffer import BufferStream, TempBuffer

COPY_CHUNK_SIZE = 1024 * 1024
DEFAULT_URL_EXPIRY = 3600

# Markers other tools use for directory placeholder objects
S3SYNC_FOLDER_ETAG = "d66759af42f282e1ba19144df2d405d0"
FOLDER_SUFFIX = "_$folder$"
DIRECTORY_CONTENT_TYPE = "application/x-directory"


class NodeKind(Enum):
    FILE = "file"
    FOLDER = "folder"
    VIRTUAL_FOLDER = "virtual_folder"
    NEW = "new"

    @property
    def is_folder(self) -> bool:
        return self in (NodeKind.FOLDER, NodeKind.VIRTUAL_FOLDER)


def is_directory_placeholder(key: str, metadata: ObjectMetadata) -> bool:
    """Whether an object is an empty marker standing for a directory."""
    if metadata.content_length != 0:
        return False
    return (
        key.endswith(SEPARATOR)
        or key.endswith(FOLDER_SUFFIX)
        or metadata.etag == S3SYNC_FOLDER_ETAG
        or metadata.content_type == DIRECTORY_CONTENT_TYPE
    )


def guess_content_type(name: str) -> Optional[str]:
    content_type, _ = mimetypes.guess_type(name)
    return content_type


class S3FileObject:
    """
    One path of an S3FileSystem.

    Nodes are created by ``S3FileSystem.resolve_file`` and shared: resolving
    the same path twice returns the same node.

    Attributes:
        filesystem (S3FileSystem): Owning handle.
        path (str): Normalized path, ``/`` for the bucket root.
        parent (S3FileObject): Parent node, None for the root.
        lock (threading.RLock): This node's own lock, used under per-file locking.
        cached_owner (Owner): Owner remembered from the last ACL fetch.
    """

    def __init__(self, filesystem, path: str, parent: "S3FileObject" = None):
        self.filesystem = filesystem
        self.path = path
        self.parent = parent
        self.lock = threading.RLock()
        self.cached_owner = None
        self._kind: Optional[NodeKind] = None
        self._object_key: Optional[str] = None
        self._metadata: Optional[ObjectMetadata] = None
        self._cache: Optional[TempBuffer] = None
        self._children: Optional[List["S3FileObject"]] = None
        self._input_lock = threading.Lock()
        self._writing = False
        self._writing_guard = threading.Lock()

    # Names

    @property
    def is_root(self) -> bool:
        return self.path == ROOT_PATH

    @property
    def key(self) -> str:
        """Object key of this path as a file."""
        return self.path[1:]

    @property
    def folder_key(self) -> str:
        """Listing prefix of this path as a folder; empty for the root."""
        return "" if self.is_root else self.key + SEPARATOR

    @property
    def object_key(self) -> Optional[str]:
        """Key of the remote object the node is attached to, if any."""
        return self._object_key

    @property
    def base_name(self) -> str:
        return base_name(self.path)

    @property
    def bucket(self) -> str:
        return self.filesystem.bucket

    @property
    def service(self):
        return self.filesystem.service

    def resolve_child(self, name: str) -> "S3FileObject":
        return self.filesystem.resolve_file(join_path(self.path, name))

    def get_parent(self) -> Optional["S3FileObject"]:
        if self.parent is None and not self.is_root:
            self.parent = self.filesystem.resolve_file(parent_path(self.path))
        return self.parent

    def _attach_lock(self):
        return self.filesystem.lock_strategy.lock_for(self)

    # State machine

    @property
    def is_attached(self) -> bool:
        return self._kind is not None

    @property
    def kind(self) -> Optional[NodeKind]:
        return self._kind

    def attach(self) -> None:
        """
        Bind the node to remote metadata.

        Raises:
            IllegalReattachError: If the node is already attached.
            RemoteTransportError: If a probe fails for a reason other than a
                missing object. The node stays unattached.
        """
        with self._attach_lock():
            if self._kind is not None:
                raise IllegalReattachError(path=self.path)
            start_time = time.time()
            kind, object_key, metadata = self._probe()
            self._set_attached(kind, object_key, metadata)
            logger.debug(f"Attached {self.path} as {kind.value}")
            time_function("attach", start_time)

    def _probe(self):
        if self.is_root:
            return NodeKind.VIRTUAL_FOLDER, "", ObjectMetadata.virtual_folder()

        trace_op("probe", self.path)
        try:
            metadata = self.service.head_object(self.bucket, self.key)
            kind = NodeKind.FOLDER if is_directory_placeholder(self.key, metadata) else NodeKind.FILE
            return kind, self.key, metadata
        except NotFoundError:
            pass

        try:
            metadata = self.service.head_object(self.bucket, self.folder_key)
            return NodeKind.FOLDER, self.folder_key, metadata
        except NotFoundError:
            pass

        page = self.service.list_objects(self.bucket, ListObjectsOptions(prefix=self.folder_key, max_keys=1))
        if page.objects or page.common_prefixes:
            return NodeKind.VIRTUAL_FOLDER, self.folder_key, ObjectMetadata.virtual_folder()

        return NodeKind.NEW, self.key, ObjectMetadata.imaginary()

    def _set_attached(self, kind: NodeKind, object_key: str, metadata: ObjectMetadata) -> None:
        self._kind = kind
        self._object_key = object_key
        self._metadata = metadata
        if self._cache is not None and not metadata.has_etag(self._cache.etag):
            logger.debug(f"Dropping stale cache of {self.path} (etag {self._cache.etag} != {metadata.etag})")
            self._drop_cache()

    def attach_metadata(self, kind: NodeKind, object_key: str, metadata: ObjectMetadata) -> None:
        """Attach with metadata known from elsewhere (a listing), replacing any current state."""
        with self._attach_lock():
            if kind is not NodeKind.FOLDER and kind is not NodeKind.VIRTUAL_FOLDER:
                self._children = None
            self._set_attached(kind, object_key, metadata)

    def detach(self) -> None:
        """Forget metadata, owner and children. The cached buffer is kept."""
        with self._attach_lock():
            self._kind = None
            self._object_key = None
            self._metadata = None
            self.cached_owner = None
            self._children = None

    def ensure_attached(self) -> None:
        with self._attach_lock():
            if self._kind is None:
                self.attach()

    def refresh(self) -> None:
        with self._attach_lock():
            self.detach()
            self.attach()

    def _drop_cache(self) -> None:
        cache, self._cache = self._cache, None
        if cache is not None and not cache.is_released:
            self.filesystem.temp_store.release(cache)

    def release_cache(self) -> None:
        with self._attach_lock():
            self._drop_cache()

    def _invalidate_ancestors(self) -> None:
        node = self.get_parent()
        while node is not None:
            with node._attach_lock():
                node._children = None
                if node._kind is NodeKind.NEW or node._kind is NodeKind.VIRTUAL_FOLDER:
                    node.detach()
            node = node.get_parent()

    # Queries

    def get_type(self) -> NodeKind:
        self.ensure_attached()
        return self._kind

    def exists(self) -> bool:
        return self.get_type() is not NodeKind.NEW

    def is_file(self) -> bool:
        return self.get_type() is NodeKind.FILE

    def is_folder(self) -> bool:
        return self.get_type().is_folder

    def _existing_metadata(self, operation: str) -> ObjectMetadata:
        with self._attach_lock():
            self.ensure_attached()
            if self._kind is NodeKind.NEW:
                raise NotFoundError("File does not exist", path=self.path, operation=operation)
            return self._metadata

    def get_object_metadata(self) -> ObjectMetadata:
        with self._attach_lock():
            self.ensure_attached()
            return self._metadata

    def get_content_size(self) -> int:
        return self._existing_metadata("SIZE").content_length

    def get_last_modified_time(self) -> Optional[datetime]:
        return self._existing_metadata("LAST_MODIFIED").last_modified

    def set_last_modified_time(self, modified: datetime) -> None:
        """Record a modification time locally; the remote object is not touched."""
        with self._attach_lock():
            metadata = self._existing_metadata("SET_LAST_MODIFIED")
            self._metadata = replace(metadata, last_modified=modified)

    def get_md5_hash(self) -> Optional[str]:
        """Etag of the object, which S3 computes as the MD5 of single-part uploads."""
        metadata = self._existing_metadata("MD5")
        return metadata.etag if self._kind is NodeKind.FILE else None

    def get_cache_file(self) -> Optional[str]:
        """Local path of the cached content, if any is cached."""
        cache = self._cache
        return cache.path if cache is not None and not cache.is_released else None

    def get_children(self) -> List["S3FileObject"]:
        """
        List the direct children of a folder.

        Raises:
            TypeConflictError: If the node is not a folder.
        """
        with self._attach_lock():
            self.ensure_attached()
            if not self._kind.is_folder:
                raise TypeConflictError(f"Cannot list children of a {self._kind.value} node",
                                        path=self.path, operation="LIST")
            if self._children is not None:
                return list(self._children)

        children = self.filesystem.listing.list_children(self)
        with self._attach_lock():
            self._children = children
        return list(children)

    # Content

    def get_input_stream(self) -> BufferStream:
        """
        Open the object's content for reading.

        The content is downloaded into a temp buffer unless the cached buffer
        already holds the current etag.

        Raises:
            NotFoundError: If the object does not exist.
            TypeConflictError: If the node is a folder.
        """
        kind = self.get_type()
        if kind is NodeKind.NEW:
            raise NotFoundError("File does not exist", path=self.path, operation="READ")
        if kind is not NodeKind.FILE:
            raise TypeConflictError("Cannot read a folder", path=self.path, operation="READ")

        store = self.filesystem.temp_store
        with self._input_lock:
            fresh = self.service.head_object(self.bucket, self.key)
            with self._attach_lock():
                cache = self._cache
                if cache is not None and fresh.has_etag(cache.etag):
                    logger.debug(f"Reusing cached content of {self.path} (etag {cache.etag})")
                    self._metadata = fresh
                    return store.open_read(cache)
                self._drop_cache()

            cache = self._download(fresh)
            with self._attach_lock():
                self._cache = cache
                self._metadata = fresh
                return store.open_read(cache)

    def _download(self, fresh: ObjectMetadata) -> TempBuffer:
        store = self.filesystem.temp_store
        start_time = time.time()
        buffer = store.create()
        try:
            output = self.service.get_object(self.bucket, self.key)
            try:
                with open(buffer.path, "wb") as f:
                    shutil.copyfileobj(output.body, f, COPY_CHUNK_SIZE)
            except OSError as e:
                raise LocalResourceError(f"Cannot stage download: {e}", path=self.path, operation="READ") from e
            except BotoCoreError as e:
                raise RemoteTransportError(f"Download interrupted: {e}", path=self.path, operation="READ") from e
            finally:
                output.close()
        except BaseException:
            store.release(buffer)
            raise

        buffer.etag = output.metadata.etag if output.metadata.etag is not None else fresh.etag
        logger.debug(f"Downloaded {self.path} into {buffer.path}")
        time_function("download", start_time)
        return buffer

    def get_output_stream(self, append: bool = False) -> BufferStream:
        """
        Open a stream whose content replaces the object when it is closed.

        Args:
            append (bool): Start from the current content, positioned at its end.

        Raises:
            AlreadyWritingError: If another write stream is open on this node.
            TypeConflictError: If the node is a folder.
        """
        if self.get_type().is_folder:
            raise TypeConflictError("Cannot write to a folder", path=self.path, operation="WRITE")

        with self._writing_guard:
            if self._writing:
                raise AlreadyWritingError(path=self.path)
            self._writing = True

        store = self.filesystem.temp_store
        buffer = None
        try:
            buffer = store.create()
            if append and self.get_type() is NodeKind.FILE:
                with self.get_input_stream() as source:
                    with open(buffer.path, "wb") as target:
                        shutil.copyfileobj(source, target, COPY_CHUNK_SIZE)
            stream = store.open_write(buffer, on_close=lambda commit: self._finish_write(buffer, commit))
        except BaseException:
            if buffer is not None:
                store.release(buffer)
            self._clear_writing()
            raise

        if append:
            stream.seek(0, 2)
        trace_op("open_write", self.path, append=append)
        return stream

    def is_writing(self) -> bool:
        with self._writing_guard:
            return self._writing

    def _clear_writing(self) -> None:
        with self._writing_guard:
            self._writing = False

    def _finish_write(self, buffer: TempBuffer, commit: bool) -> None:
        store = self.filesystem.temp_store
        try:
            if not commit:
                logger.debug(f"Write to {self.path} aborted")
                store.release(buffer)
                return
            try:
                metadata = self._upload(buffer)
            except BaseException:
                store.release(buffer)
                raise
            buffer.etag = metadata.etag
            with self._attach_lock():
                self._drop_cache()
                self._cache = buffer
                self._children = None
                self._set_attached(NodeKind.FILE, self.key, metadata)
            self._invalidate_ancestors()
        finally:
            self._clear_writing()

    def _upload(self, buffer: TempBuffer) -> ObjectMetadata:
        start_time = time.time()
        size = buffer.size()
        content_type = guess_content_type(self.base_name)
        sse = self.filesystem.options.server_side_encryption
        try:
            with open(buffer.path, "rb") as body:
                etag = self.service.put_object(self.bucket, self.key, body, size,
                                               content_type=content_type, server_side_encryption=sse)
        except OSError as e:
            raise LocalResourceError(f"Cannot read staged upload: {e}", path=self.path, operation="WRITE") from e
        logger.info(f"Uploaded {size} bytes to {self.bucket}/{self.key}")
        time_function("upload", start_time)
        return ObjectMetadata(
            content_length=size,
            last_modified=datetime.now().astimezone(),
            etag=etag,
            content_type=content_type,
            server_side_encryption=sse,
        )

    # Mutations

    def create_file(self) -> None:
        """Create an empty object. Existing files are left alone."""
        kind = self.get_type()
        if kind is NodeKind.FILE:
            return
        if kind.is_folder:
            raise TypeConflictError("A folder exists at this path", path=self.path, operation="CREATE_FILE")
        with self.get_output_stream():
            pass

    def create_folder(self) -> None:
        """Create a directory placeholder. Existing folders are left alone."""
        kind = self.get_type()
        if kind.is_folder:
            return
        if kind is NodeKind.FILE:
            raise TypeConflictError("A file exists at this path", path=self.path, operation="CREATE_FOLDER")
        etag = self.service.put_object(self.bucket, self.folder_key, BytesIO(b""), 0,
                                       server_side_encryption=self.filesystem.options.server_side_encryption)
        metadata = ObjectMetadata(content_length=0, last_modified=datetime.now().astimezone(), etag=etag)
        with self._attach_lock():
            self._set_attached(NodeKind.FOLDER, self.folder_key, metadata)
        self._invalidate_ancestors()
        logger.info(f"Created folder {self.bucket}/{self.folder_key}")

    def _has_children(self) -> bool:
        page = self.service.list_objects(
            self.bucket, ListObjectsOptions(prefix=self.folder_key, delimiter=SEPARATOR, max_keys=2)
        )
        return bool(page.common_prefixes) or any(o.key != self.folder_key for o in page.objects)

    def delete(self) -> bool:
        """
        Delete a file or an empty folder.

        Returns:
            bool: False if nothing was deleted (the node does not exist, is the
            root or is a folder with children).
        """
        kind = self.get_type()
        if kind is NodeKind.NEW or self.is_root:
            return False
        if kind.is_folder and self._has_children():
            logger.debug(f"Not deleting non-empty folder {self.path}")
            return False

        # A listed folder may still have a placeholder; deleting a missing key is a no-op
        object_key = self.folder_key if kind is NodeKind.VIRTUAL_FOLDER else self._object_key
        self.service.delete_object(self.bucket, object_key)
        with self._attach_lock():
            self._drop_cache()
            self._children = None
            self.cached_owner = None
            self._set_attached(NodeKind.NEW, self.key, ObjectMetadata.imaginary())
        self._invalidate_ancestors()
        logger.info(f"Deleted {self.path}")
        return True

    def delete_all(self) -> int:
        """
        Delete the node and, for folders, everything below it.

        Returns:
            int: Number of nodes deleted.
        """
        kind = self.get_type()
        if kind is NodeKind.NEW:
            return 0
        count = 0
        if kind.is_folder:
            for child in self.get_children():
                count += child.delete_all()
            if self.is_root:
                return count
            self.refresh()
        if self.delete():
            count += 1
        return count

    def copy_from(self, source: "S3FileObject") -> None:
        """
        Replace this node's content with the source's, recursively for folders.

        Objects are copied server side when both nodes share one remote
        service, and streamed through temp buffers otherwise.
        """
        source_kind = source.get_type()
        if source_kind is NodeKind.NEW:
            raise NotFoundError("Copy source does not exist", path=source.path, operation="COPY")
        if source.filesystem is self.filesystem and (
                self.path == source.path or self.path.startswith(source.path.rstrip(SEPARATOR) + SEPARATOR)):
            raise UnsupportedOperationError(f"Cannot copy {source.path} into itself", path=self.path, operation="COPY")

        if source_kind.is_folder:
            self.create_folder()
            for child in source.get_children():
                self.resolve_child(child.base_name).copy_from(child)
            return

        if self.get_type().is_folder:
            raise TypeConflictError("Cannot copy a file onto a folder", path=self.path, operation="COPY")

        if source.service is self.service:
            sse = self.filesystem.options.server_side_encryption
            etag = self.service.copy_object(source.bucket, source.key, self.bucket, self.key,
                                            server_side_encryption=sse)
            source_metadata = source.get_object_metadata()
            metadata = ObjectMetadata(
                content_length=source_metadata.content_length,
                last_modified=datetime.now().astimezone(),
                etag=etag,
                content_type=source_metadata.content_type,
                server_side_encryption=sse,
            )
            with self._attach_lock():
                self._set_attached(NodeKind.FILE, self.key, metadata)
            self._invalidate_ancestors()
        else:
            with source.get_input_stream() as reader, self.get_output_stream() as writer:
                shutil.copyfileobj(reader, writer, COPY_CHUNK_SIZE)
        logger.debug(f"Copied {source.path} to {self.path}")

    def move_to(self, target: "S3FileObject") -> None:
        """Copy this node onto the target, then delete it."""
        target.copy_from(self)
        self.delete_all()

    # ACL

    def get_acl(self):
        return self.filesystem.acl.fetch(self)

    def set_acl(self, acl) -> None:
        self.filesystem.acl.apply(self, acl)

    # URLs

    def _require_file(self, operation: str) -> None:
        kind = self.get_type()
        if kind is NodeKind.NEW:
            raise NotFoundError("File does not exist", path=self.path, operation=operation)
        if kind is not NodeKind.FILE:
            raise TypeConflictError("Not a file", path=self.path, operation=operation)

    def get_signed_url(self, expire_seconds: int = DEFAULT_URL_EXPIRY) -> str:
        """Time-limited URL granting GET access to the object."""
        self._require_file("SIGNED_URL")
        return self.service.generate_presigned_url(self.bucket, self.key, expire_seconds)

    def get_http_url(self) -> str:
        """Plain URL of the object, valid when the object is publicly readable."""
        self._require_file("HTTP_URL")
        name = self.filesystem.root_name
        scheme = "https" if self.filesystem.options.use_https else "http"
        host = name.endpoint or (f"s3.{name.region}.amazonaws.com" if name.region else "s3.amazonaws.com")
        return f"{scheme}://{host}/{self.bucket}/{quote(self.key)}"

    def get_private_url(self) -> str:
        """``s3://`` location of the object carrying the filesystem's credentials."""
        provider = self.filesystem.credentials
        credentials = provider.get_credentials() if provider is not None else None
        if credentials is None:
            raise ConfigurationError("No credentials available to build a private URL")
        user = f"{quote(credentials.access_key_id, safe='')}:{quote(credentials.secret_access_key, safe='')}"
        name = self.filesystem.root_name
        host = f"{name.endpoint}/{self.bucket}" if name.endpoint else self.bucket
        return f"s3://{user}@{host}/{quote(self.key)}"

    def __repr__(self):
        kind = self._kind.value if self._kind is not None else "unattached"
        return f"S3FileObject({self.bucket}:{self.path}, {kind})"
