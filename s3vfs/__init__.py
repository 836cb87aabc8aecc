# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
s3vfs: a virtual filesystem over S3 buckets.

Resolve ``s3://`` locations to file nodes with S3FileProvider; mount a
bucket locally with ``python -m s3vfs.fuse``.
"""

from .client.exceptions import S3VfsError
from .vfs.acl import Acl, Group, Permission
from .vfs.filesystem import S3FileProvider, S3FileSystem
from .vfs.node import NodeKind, S3FileObject
from .vfs.options import FileSystemOptions
from .vfs.registry import FileSystemRegistry, get_default_registry, reset_default_registry

__version__ = "0.1.0"

__all__ = [
    "Acl",
    "FileSystemOptions",
    "FileSystemRegistry",
    "Group",
    "NodeKind",
    "Permission",
    "S3FileObject",
    "S3FileProvider",
    "S3FileSystem",
    "S3VfsError",
    "get_default_registry",
    "reset_default_registry",
]
