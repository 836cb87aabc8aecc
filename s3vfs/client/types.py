# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Value types exchanged with the remote object service.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import BinaryIO, List, Optional

# Permission levels of a provider grant list
FULL_CONTROL = "FULL_CONTROL"
READ = "READ"
WRITE = "WRITE"

GROUP_GRANTEE = "Group"
CANONICAL_USER_GRANTEE = "CanonicalUser"

ALL_USERS_URI = "http://acs.amazonaws.com/groups/global/AllUsers"
AUTHENTICATED_USERS_URI = "http://acs.amazonaws.com/groups/global/AuthenticatedUsers"


def normalize_etag(etag: Optional[str]) -> Optional[str]:
    """Strip the quotes S3 puts around ETag values."""
    if etag is None:
        return None
    return etag.strip('"')


@dataclass(frozen=True)
class ObjectMetadata:
    """
    Immutable snapshot of an object's metadata.

    ``virtual`` marks snapshots synthesized locally (root, implied folders,
    listing entries, not-yet-created nodes) rather than fetched with a
    metadata probe.
    """
    content_length: int = 0
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    content_type: Optional[str] = None
    server_side_encryption: bool = False
    virtual: bool = False

    def has_etag(self, etag: Optional[str]) -> bool:
        if etag is None:
            return self.etag is None
        return self.etag is not None and self.etag == etag

    def same_content(self, other: "ObjectMetadata") -> bool:
        """Two snapshots hold the same content iff their etags match."""
        return self.has_etag(other.etag)

    @classmethod
    def virtual_folder(cls) -> "ObjectMetadata":
        return cls(content_length=0, last_modified=datetime.now(timezone.utc), content_type="", virtual=True)

    @classmethod
    def imaginary(cls) -> "ObjectMetadata":
        return cls(content_length=0, last_modified=datetime.now(timezone.utc), virtual=True)

    @classmethod
    def from_summary(cls, summary: "ObjectSummary", content_type: Optional[str] = None) -> "ObjectMetadata":
        return cls(
            content_length=summary.size,
            last_modified=summary.last_modified,
            etag=summary.etag,
            content_type=content_type,
            virtual=True,
        )


@dataclass(frozen=True)
class ObjectSummary:
    """One direct entry of a listing page."""
    key: str
    size: int
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None


@dataclass
class ListObjectsOptions:
    """Options for listing objects."""
    prefix: Optional[str] = None
    delimiter: Optional[str] = None
    marker: Optional[str] = None
    max_keys: Optional[int] = None


@dataclass
class ListObjectsPage:
    """One page of a listing; ``next_marker`` is None on the last page."""
    objects: List[ObjectSummary] = field(default_factory=list)
    common_prefixes: List[str] = field(default_factory=list)
    next_marker: Optional[str] = None

    @property
    def is_truncated(self) -> bool:
        return self.next_marker is not None


@dataclass
class GetObjectOutput:
    """Streaming body plus the metadata it was served with."""
    body: BinaryIO
    metadata: ObjectMetadata

    def close(self) -> None:
        close = getattr(self.body, "close", None)
        if close is not None:
            close()


@dataclass(frozen=True)
class Owner:
    id: str
    display_name: Optional[str] = None


@dataclass(frozen=True)
class Grantee:
    """A grant target: a predefined group (by URI) or a canonical user (by id)."""
    type: str
    identifier: str

    @classmethod
    def group(cls, uri: str) -> "Grantee":
        return cls(GROUP_GRANTEE, uri)

    @classmethod
    def canonical_user(cls, user_id: str) -> "Grantee":
        return cls(CANONICAL_USER_GRANTEE, user_id)


@dataclass(frozen=True)
class Grant:
    grantee: Grantee
    permission: str


@dataclass
class AccessControlList:
    """Provider-side ACL: owner plus an allow-only grant list."""
    owner: Optional[Owner] = None
    grants: List[Grant] = field(default_factory=list)

    def grant(self, grantee: Grantee, permission: str) -> None:
        self.grants.append(Grant(grantee, permission))
