# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
S3 filesystem handles and the provider that resolves locations to nodes.

Usage:
    provider = S3FileProvider()
    node = provider.resolve_file("s3://my-bucket/reports/2025.csv")
    with node.get_input_stream() as f:
        data = f.read()
"""

import threading
import time
from typing import Dict, Optional

from ..client.client import S3Client, Session
from ..client.credentials import StaticCredentialsProvider
from ..client.exceptions import NotFoundError, S3VfsError
from ..utils import logger, time_function
from .acl import AclTranslator, PlatformFeatures
from .listing import ListingReconciler
from .locks import LockStrategyFactory
from .names import ROOT_PATH, S3FileName, normalize_path, parent_path, parse_uri
from .node import S3FileObject
from .options import FileSystemOptions
from .registry import FileSystemKey, FileSystemRegistry, get_default_registry
from .temp_buffer import TempContentStore


class S3FileSystem:
    """
    Handle on one bucket with one set of options.

    Owns the remote service (when it built it), the lock strategy, the temp
    content store, the ACL translator, the listing reconciler and every node
    it has resolved.

    Args:
        root_name (S3FileName): Name of the bucket root.
        options (FileSystemOptions): Options of the handle.
        service (RemoteObjectService): Remote object service.
        key (FileSystemKey, optional): Registry key, when registered.
        owns_service (bool): Close the service with the handle.
        lock_strategy (LockStrategy, optional): Defaults to per-filesystem locking.
        temp_store (TempContentStore, optional): Defaults to the system temp dir.
        acl (AclTranslator, optional): ACL translator.
        listing (ListingReconciler, optional): Listing reconciler.
        credentials (CredentialsProvider, optional): Credentials used for private URLs.
        check_bucket (bool): Verify (and maybe create) the bucket on construction.
    """

    def __init__(self, root_name: S3FileName, options: FileSystemOptions, service, key: FileSystemKey = None,
                 owns_service: bool = True, lock_strategy=None, temp_store: TempContentStore = None,
                 acl: AclTranslator = None, listing: ListingReconciler = None, credentials=None,
                 check_bucket: bool = True):
        self.root_name = root_name
        self.bucket = root_name.bucket
        self.options = options or FileSystemOptions()
        self.service = service
        self.key = key
        self.owns_service = owns_service
        self.lock_strategy = lock_strategy or LockStrategyFactory().create(False)
        self.temp_store = temp_store or TempContentStore()
        self.acl = acl or AclTranslator()
        self.listing = listing or ListingReconciler()
        if credentials is None:
            credentials = self.options.credentials or getattr(service, "credentials", None)
        self.credentials = credentials
        self._files: Dict[str, S3FileObject] = {}
        self._files_lock = threading.Lock()
        self._closed = False

        if check_bucket:
            self._check_bucket()

    def _check_bucket(self) -> None:
        start_time = time.time()
        try:
            self.service.head_bucket(self.bucket)
            logger.info(f"Found existing bucket {self.bucket}")
        except NotFoundError:
            if not self.options.create_bucket:
                raise NotFoundError(f"Bucket {self.bucket} does not exist", path=self.bucket, operation="HEAD_BUCKET")
            logger.info(f"Bucket {self.bucket} does not exist. Creating it...")
            self.service.create_bucket(self.bucket)
        time_function("check_bucket", start_time)

    @property
    def closed(self) -> bool:
        return self._closed

    def resolve_file(self, path: str) -> S3FileObject:
        """
        Return the node for a path, creating it on first use.

        No remote call is made; the node attaches lazily.
        """
        if self._closed:
            raise S3VfsError("Filesystem is closed", code="ERR_CLOSED", path=path)
        path = normalize_path(path)
        with self._files_lock:
            node = self._files.get(path)
            if node is not None:
                return node
        parent = None
        if path != ROOT_PATH:
            parent = self.resolve_file(parent_path(path))
        with self._files_lock:
            return self._files.setdefault(path, S3FileObject(self, path, parent))

    @property
    def root(self) -> S3FileObject:
        return self.resolve_file(ROOT_PATH)

    def cached_files(self):
        with self._files_lock:
            return dict(self._files)

    def is_releasable(self) -> bool:
        """True while no stream is open on this handle's buffers."""
        return not self._closed and self.temp_store.open_streams == 0

    def close_communication_link(self) -> bool:
        """
        Release idle connections of the remote service; nodes stay valid.

        Returns:
            bool: True if connections were released.
        """
        release = getattr(self.service, "release_connections", None)
        if not self.owns_service or release is None:
            return False
        return bool(release())

    def close(self) -> None:
        """Release cached buffers, forget nodes and close the owned service. Idempotent."""
        with self._files_lock:
            if self._closed:
                return
            self._closed = True
            files, self._files = self._files, {}
        for node in files.values():
            node.release_cache()
        self.lock_strategy.release(self)
        if self.owns_service:
            self.service.close()
        logger.info(f"Closed filesystem for bucket {self.bucket}")

    def __repr__(self):
        return f"S3FileSystem({self.root_name.root_uri})"


class S3FileProvider:
    """
    Resolve ``s3://`` locations to nodes, sharing filesystem handles.

    Args:
        registry (FileSystemRegistry, optional): Handle cache. Defaults to the process-wide one.
        features (PlatformFeatures, optional): Capabilities of the environment.
        temp_dir (str, optional): Directory for temp buffers.
        page_size (int, optional): Keys per listing request.
    """

    def __init__(self, registry: FileSystemRegistry = None, features: PlatformFeatures = None,
                 temp_dir: str = None, page_size: Optional[int] = None):
        self.registry = registry if registry is not None else get_default_registry()
        self.features = features or PlatformFeatures()
        self.temp_dir = temp_dir
        self.page_size = page_size
        self.lock_factory = LockStrategyFactory(self.features.supports_per_file_locking)

    def get_filesystem(self, uri: str, options: FileSystemOptions = None) -> S3FileSystem:
        name = parse_uri(uri) if isinstance(uri, str) else uri
        return self.registry.get_or_create(
            name.cache_key, options, lambda key: self._create_filesystem(name, key)
        )

    def resolve_file(self, uri: str, options: FileSystemOptions = None) -> S3FileObject:
        """
        Resolve a location to a node.

        Args:
            uri (str): ``s3://`` location.
            options (FileSystemOptions, optional): Options of the filesystem.

        Returns:
            S3FileObject: The node, not yet attached.
        """
        name = parse_uri(uri)
        return self.get_filesystem(name, options).resolve_file(name.path)

    def _create_filesystem(self, name: S3FileName, key: FileSystemKey) -> S3FileSystem:
        options = key.options
        credentials = options.credentials
        if credentials is None and name.access_key:
            credentials = StaticCredentialsProvider(name.access_key, name.secret_key)

        service = options.client
        owns_service = service is None
        if owns_service:
            service = S3Client(Session(
                region=options.region or name.region,
                endpoint_url=options.endpoint or name.endpoint,
                use_https=options.use_https,
                disable_chunked_encoding=options.disable_chunked_encoding,
                max_upload_threads=options.max_upload_threads,
                credentials=credentials,
            ))

        try:
            return S3FileSystem(
                name,
                options,
                service,
                key=key,
                owns_service=owns_service,
                lock_strategy=self.lock_factory.create(options.per_file_locking),
                temp_store=TempContentStore(self.temp_dir),
                acl=AclTranslator(self.features),
                listing=ListingReconciler(self.page_size),
                credentials=credentials,
            )
        except BaseException:
            if owns_service:
                service.close()
            raise

    def close_filesystem(self, filesystem: S3FileSystem) -> bool:
        return self.registry.close(filesystem)

    def free_unused_resources(self) -> int:
        return self.registry.sweep_idle()

    def close(self) -> None:
        self.registry.close_all()
