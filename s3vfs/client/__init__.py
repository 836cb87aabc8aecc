# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""Remote object service client for s3vfs."""

from .client import RemoteObjectService, S3Client, Session
from .credentials import Credentials, EnvironmentCredentialsProvider, StaticCredentialsProvider

__all__ = [
    "Credentials",
    "EnvironmentCredentialsProvider",
    "RemoteObjectService",
    "S3Client",
    "Session",
    "StaticCredentialsProvider",
]
