# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Remote object service.

This module defines the capability interface the filesystem layer needs
from an object store (RemoteObjectService) and its boto3 implementation
(S3Client). The S3 client builds its boto3 client lazily, so the connection
can be released while the filesystem that owns it stays usable.
"""

import threading
from dataclasses import dataclass
from typing import BinaryIO, Optional, Protocol

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig

from ..utils import logger
from .credentials import CredentialsProvider
from .exceptions import S3VfsError
from .retry import retry
from .types import (
    AccessControlList,
    GetObjectOutput,
    Grant,
    Grantee,
    ListObjectsOptions,
    ListObjectsPage,
    ObjectMetadata,
    ObjectSummary,
    Owner,
    normalize_etag,
)

DEFAULT_REGION = "us-east-1"
DEFAULT_MAX_ERROR_RETRY = 8
# Uploads at or above this size are handed to the boto3 transfer manager
MULTIPART_THRESHOLD = 16 * 1024 * 1024
AES256 = "AES256"


class RemoteObjectService(Protocol):
    """Operations the filesystem layer consumes from an object store."""

    def head_bucket(self, bucket: str) -> None: ...

    def create_bucket(self, bucket: str) -> None: ...

    def head_object(self, bucket: str, key: str) -> ObjectMetadata: ...

    def get_object(self, bucket: str, key: str) -> GetObjectOutput: ...

    def put_object(self, bucket: str, key: str, body: BinaryIO, content_length: int,
                   content_type: Optional[str] = None, server_side_encryption: bool = False) -> Optional[str]: ...

    def delete_object(self, bucket: str, key: str) -> None: ...

    def copy_object(self, src_bucket: str, src_key: str, dst_bucket: str, dst_key: str,
                    server_side_encryption: bool = False) -> Optional[str]: ...

    def list_objects(self, bucket: str, options: ListObjectsOptions) -> ListObjectsPage: ...

    def get_acl(self, bucket: str, key: Optional[str] = None) -> AccessControlList: ...

    def put_acl(self, bucket: str, key: Optional[str], acl: AccessControlList) -> None: ...

    def generate_presigned_url(self, bucket: str, key: str, expires_in: int) -> str: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class Session:
    """
    Connection settings for an S3Client.

    Attributes:
        region (str): Signing region. Defaults to us-east-1 when neither region nor endpoint is set.
        endpoint_url (str): Custom endpoint (host[:port] or full URL) for S3-compatible stores.
        use_https (bool): Use TLS towards the endpoint.
        disable_chunked_encoding (bool): Sign whole payloads instead of streaming chunks.
        max_upload_threads (int): Concurrency of large uploads.
        credentials (CredentialsProvider): Explicit credentials; None uses the boto3 default chain.
    """
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    use_https: bool = True
    disable_chunked_encoding: bool = False
    max_upload_threads: int = 2
    credentials: Optional[CredentialsProvider] = None


class S3Client:
    """
    boto3-backed implementation of RemoteObjectService.

    Args:
        session (Session, optional): Connection settings.
        client: Pre-built boto3 S3 client. When given, the connection is never
            released or rebuilt by this object.
    """

    def __init__(self, session: Session = None, client=None):
        self.session = session or Session()
        self._client = client
        self._owns_client = client is None
        self._lock = threading.Lock()

    @property
    def credentials(self) -> Optional[CredentialsProvider]:
        return self.session.credentials

    def _endpoint(self) -> Optional[str]:
        endpoint = self.session.endpoint_url
        if endpoint and "://" not in endpoint:
            scheme = "https" if self.session.use_https else "http"
            endpoint = f"{scheme}://{endpoint}"
        return endpoint

    def _build_client(self):
        kwargs = {}
        provider = self.session.credentials
        credentials = provider.get_credentials() if provider is not None else None
        if credentials is not None:
            kwargs["aws_access_key_id"] = credentials.access_key_id
            kwargs["aws_secret_access_key"] = credentials.secret_access_key
            if credentials.session_token:
                kwargs["aws_session_token"] = credentials.session_token

        config = BotoConfig(
            signature_version="s3v4",
            retries={"max_attempts": DEFAULT_MAX_ERROR_RETRY, "mode": "standard"},
            s3={
                "addressing_style": "path",
                "payload_signing_enabled": self.session.disable_chunked_encoding,
            },
        )
        region = self.session.region or DEFAULT_REGION
        logger.debug(f"Building S3 client (region={region}, endpoint={self._endpoint()})")
        return boto3.client(
            "s3",
            region_name=region,
            endpoint_url=self._endpoint(),
            use_ssl=self.session.use_https,
            config=config,
            **kwargs,
        )

    def _get_client(self):
        with self._lock:
            if self._client is None:
                self._client = self._build_client()
            return self._client

    @retry()
    def head_bucket(self, bucket: str) -> None:
        self._get_client().head_bucket(Bucket=bucket)

    @retry()
    def create_bucket(self, bucket: str) -> None:
        kwargs = {}
        region = self.session.region
        if region and region != DEFAULT_REGION:
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
        self._get_client().create_bucket(Bucket=bucket, **kwargs)
        logger.info(f"Created bucket {bucket}")

    @retry()
    def head_object(self, bucket: str, key: str) -> ObjectMetadata:
        response = self._get_client().head_object(Bucket=bucket, Key=key)
        return _metadata_from_response(response)

    @retry()
    def get_object(self, bucket: str, key: str) -> GetObjectOutput:
        response = self._get_client().get_object(Bucket=bucket, Key=key)
        return GetObjectOutput(body=response["Body"], metadata=_metadata_from_response(response))

    def put_object(self, bucket: str, key: str, body: BinaryIO, content_length: int,
                   content_type: Optional[str] = None, server_side_encryption: bool = False) -> Optional[str]:
        extra = {}
        if content_type:
            extra["ContentType"] = content_type
        if server_side_encryption:
            extra["ServerSideEncryption"] = AES256
        return self._upload(bucket, key, body, body.tell(), content_length, extra)

    @retry()
    def _upload(self, bucket: str, key: str, body: BinaryIO, start: int, content_length: int,
                extra: dict) -> Optional[str]:
        # A failed attempt may have consumed the stream
        body.seek(start)

        if content_length >= MULTIPART_THRESHOLD:
            transfer_config = TransferConfig(
                multipart_threshold=MULTIPART_THRESHOLD,
                max_concurrency=self.session.max_upload_threads,
            )
            logger.debug(f"Uploading {content_length} bytes to {bucket}/{key} with transfer manager")
            self._get_client().upload_fileobj(body, bucket, key, ExtraArgs=extra or None, Config=transfer_config)
            return self.head_object(bucket, key).etag

        response = self._get_client().put_object(
            Bucket=bucket, Key=key, Body=body, ContentLength=content_length, **extra
        )
        return normalize_etag(response.get("ETag"))

    @retry()
    def delete_object(self, bucket: str, key: str) -> None:
        self._get_client().delete_object(Bucket=bucket, Key=key)

    @retry()
    def copy_object(self, src_bucket: str, src_key: str, dst_bucket: str, dst_key: str,
                    server_side_encryption: bool = False) -> Optional[str]:
        extra = {}
        if server_side_encryption:
            extra["ServerSideEncryption"] = AES256
        response = self._get_client().copy_object(
            Bucket=dst_bucket,
            Key=dst_key,
            CopySource={"Bucket": src_bucket, "Key": src_key},
            **extra,
        )
        return normalize_etag(response.get("CopyObjectResult", {}).get("ETag"))

    @retry()
    def list_objects(self, bucket: str, options: ListObjectsOptions) -> ListObjectsPage:
        params = {"Bucket": bucket}
        if options.prefix:
            params["Prefix"] = options.prefix
        if options.delimiter:
            params["Delimiter"] = options.delimiter
        if options.marker:
            params["Marker"] = options.marker
        if options.max_keys is not None:
            params["MaxKeys"] = options.max_keys

        response = self._get_client().list_objects(**params)
        objects = [
            ObjectSummary(
                key=item["Key"],
                size=item.get("Size", 0),
                last_modified=item.get("LastModified"),
                etag=normalize_etag(item.get("ETag")),
            )
            for item in response.get("Contents", [])
        ]
        prefixes = [item["Prefix"] for item in response.get("CommonPrefixes", [])]

        next_marker = None
        if response.get("IsTruncated"):
            # NextMarker is only returned when a delimiter was given
            next_marker = response.get("NextMarker") or max([o.key for o in objects] + prefixes, default=None)
        return ListObjectsPage(objects=objects, common_prefixes=prefixes, next_marker=next_marker)

    @retry()
    def get_acl(self, bucket: str, key: Optional[str] = None) -> AccessControlList:
        if key:
            response = self._get_client().get_object_acl(Bucket=bucket, Key=key)
        else:
            response = self._get_client().get_bucket_acl(Bucket=bucket)

        owner = None
        if response.get("Owner"):
            owner = Owner(id=response["Owner"].get("ID"), display_name=response["Owner"].get("DisplayName"))

        acl = AccessControlList(owner=owner)
        for item in response.get("Grants", []):
            grantee = item.get("Grantee", {})
            identifier = grantee.get("URI") or grantee.get("ID") or grantee.get("EmailAddress")
            acl.grants.append(Grant(Grantee(grantee.get("Type"), identifier), item.get("Permission")))
        return acl

    @retry()
    def put_acl(self, bucket: str, key: Optional[str], acl: AccessControlList) -> None:
        policy = {"Grants": [_grant_to_dict(grant) for grant in acl.grants]}
        if acl.owner is not None:
            policy["Owner"] = {"ID": acl.owner.id}
            if acl.owner.display_name:
                policy["Owner"]["DisplayName"] = acl.owner.display_name

        if key:
            self._get_client().put_object_acl(Bucket=bucket, Key=key, AccessControlPolicy=policy)
        else:
            self._get_client().put_bucket_acl(Bucket=bucket, AccessControlPolicy=policy)

    @retry()
    def generate_presigned_url(self, bucket: str, key: str, expires_in: int) -> str:
        return self._get_client().generate_presigned_url(
            "get_object", Params={"Bucket": bucket, "Key": key}, ExpiresIn=expires_in
        )

    def release_connections(self) -> bool:
        """
        Close the underlying HTTP connections; the next call reconnects.

        Returns:
            bool: True if a connection was released.
        """
        with self._lock:
            if not self._owns_client or self._client is None:
                return False
            client, self._client = self._client, None
        try:
            client.close()
        except Exception as e:
            raise S3VfsError(f"Failed to release S3 connections: {e}") from e
        logger.debug("Released S3 client connections")
        return True

    def close(self) -> None:
        self.release_connections()


def _metadata_from_response(response: dict) -> ObjectMetadata:
    return ObjectMetadata(
        content_length=response.get("ContentLength", 0),
        last_modified=response.get("LastModified"),
        etag=normalize_etag(response.get("ETag")),
        content_type=response.get("ContentType"),
        server_side_encryption=response.get("ServerSideEncryption") is not None,
    )


def _grant_to_dict(grant: Grant) -> dict:
    grantee = {"Type": grant.grantee.type}
    if grant.grantee.type == "Group":
        grantee["URI"] = grant.grantee.identifier
    elif grant.grantee.type == "AmazonCustomerByEmail":
        grantee["EmailAddress"] = grant.grantee.identifier
    else:
        grantee["ID"] = grant.grantee.identifier
    return {"Grantee": grantee, "Permission": grant.permission}
