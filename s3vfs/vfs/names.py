# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
S3 file names.

Parses ``s3://`` locations into a structured name. Supported forms:

    s3://bucket/path                                 bucket as host, default endpoint
    s3://s3.eu-west-1.amazonaws.com/bucket/path      path-style AWS endpoint
    s3://bucket.s3.eu-west-1.amazonaws.com/path      virtual-hosted AWS endpoint
    s3://localhost:4566/bucket/path                  custom endpoint (host:port)
    s3://access:secret@bucket/path                   inline credentials
"""

import hashlib
import posixpath
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlsplit

from ..client.exceptions import ConfigurationError

SCHEME = "s3"
SEPARATOR = "/"
ROOT_PATH = "/"
DEFAULT_REGION = "us-east-1"

_AWS_PATH_STYLE = re.compile(r"^s3(?:[.-](?P<region>[a-z0-9-]+))?\.amazonaws\.com$")
_AWS_HOSTED_STYLE = re.compile(r"^(?P<bucket>[^/]+)\.s3(?:[.-](?P<region>[a-z0-9-]+))?\.amazonaws\.com$")


def normalize_path(path: str) -> str:
    """
    Canonicalize a path inside a bucket.

    Redundant separators are collapsed, ``.`` and ``..`` resolved (never above
    the root) and the trailing separator dropped. The result always starts
    with ``/``.
    """
    if not path:
        return ROOT_PATH
    segments = []
    for segment in path.split(SEPARATOR):
        if segment in ("", "."):
            continue
        if segment == "..":
            if segments:
                segments.pop()
            continue
        segments.append(segment)
    return ROOT_PATH + SEPARATOR.join(segments)


def join_path(parent: str, name: str) -> str:
    return normalize_path(posixpath.join(parent, name))


def parent_path(path: str) -> Optional[str]:
    """Parent of a normalized path, None for the root."""
    if path == ROOT_PATH:
        return None
    return normalize_path(posixpath.dirname(path))


def base_name(path: str) -> str:
    return posixpath.basename(path)


@dataclass(frozen=True)
class S3FileName:
    """
    Structured name of a location in an S3 bucket.

    Attributes:
        bucket (str): Bucket name.
        path (str): Normalized path inside the bucket, starting with ``/``.
        endpoint (str): Custom endpoint host[:port]; None for the default AWS endpoint.
        region (str): Signing region derived from an AWS host, if any.
        access_key (str): Inline access key, if the location carried one.
        secret_key (str): Inline secret key, if the location carried one.
    """
    bucket: str
    path: str = ROOT_PATH
    endpoint: Optional[str] = None
    region: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None

    @property
    def key(self) -> str:
        """Object key of this name (the path without its leading separator)."""
        return self.path[1:]

    @property
    def is_root(self) -> bool:
        return self.path == ROOT_PATH

    @property
    def base_name(self) -> str:
        return base_name(self.path)

    @property
    def root_uri(self) -> str:
        """Location of the bucket root; the identity of a filesystem."""
        user = f"{self.access_key}@" if self.access_key else ""
        if self.endpoint:
            return f"{SCHEME}://{user}{self.endpoint}/{self.bucket}"
        if self.region:
            return f"{SCHEME}://{user}s3.{self.region}.amazonaws.com/{self.bucket}"
        return f"{SCHEME}://{user}{self.bucket}"

    @property
    def cache_key(self) -> str:
        """
        ``root_uri`` plus a digest of the inline secret, if any.

        Locations that share an access key but carry different secrets must
        not share a filesystem handle.
        """
        if not self.secret_key:
            return self.root_uri
        digest = hashlib.sha256(self.secret_key.encode("utf-8")).hexdigest()[:16]
        return f"{self.root_uri}#{digest}"

    @property
    def uri(self) -> str:
        return self.root_uri + (self.path if not self.is_root else ROOT_PATH)

    def resolve(self, relative: str) -> "S3FileName":
        return S3FileName(
            bucket=self.bucket,
            path=join_path(self.path, relative),
            endpoint=self.endpoint,
            region=self.region,
            access_key=self.access_key,
            secret_key=self.secret_key,
        )

    def __str__(self):
        return self.uri


def parse_uri(uri: str) -> S3FileName:
    """
    Parse an ``s3://`` location.

    Args:
        uri (str): Location to parse.

    Returns:
        S3FileName: The structured name.

    Raises:
        ConfigurationError: If the location is not a valid S3 location.
    """
    parts = urlsplit(uri)
    if parts.scheme != SCHEME:
        raise ConfigurationError(f"Unsupported scheme in {uri!r}, expected {SCHEME}://")

    netloc = parts.netloc
    access_key = secret_key = None
    if "@" in netloc:
        userinfo, netloc = netloc.rsplit("@", 1)
        if ":" not in userinfo:
            raise ConfigurationError(f"Inline credentials in {uri!r} must be access:secret")
        access_key, secret_key = (unquote(value) for value in userinfo.split(":", 1))
        if not access_key or not secret_key:
            raise ConfigurationError(f"Inline credentials in {uri!r} must be access:secret")

    host = netloc.lower()
    if not host:
        raise ConfigurationError(f"No bucket or endpoint in {uri!r}")
    path = unquote(parts.path)

    endpoint = region = None
    hosted = _AWS_HOSTED_STYLE.match(host)
    path_style = _AWS_PATH_STYLE.match(host)
    if hosted:
        bucket = hosted.group("bucket")
        region = hosted.group("region") or DEFAULT_REGION
    elif path_style or ":" in host or host == "localhost":
        if path_style:
            region = path_style.group("region") or DEFAULT_REGION
        else:
            endpoint = host
        segments = [segment for segment in path.split(SEPARATOR) if segment]
        if not segments:
            raise ConfigurationError(f"No bucket in path-style location {uri!r}")
        bucket = segments[0]
        path = SEPARATOR.join(segments[1:])
    else:
        bucket = host

    return S3FileName(
        bucket=bucket,
        path=normalize_path(path),
        endpoint=endpoint,
        region=region,
        access_key=access_key,
        secret_key=secret_key,
    )
