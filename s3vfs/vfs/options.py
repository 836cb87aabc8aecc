# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Filesystem options.

FileSystemOptions is an immutable value with structural equality so it can
be part of a registry key. Build one with FileSystemOptionsBuilder or pass
the fields directly.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from ..client.credentials import CredentialsProvider
from ..client.exceptions import ConfigurationError


class _ByIdentity:
    """Wrap an object so equality and hashing use its identity."""

    __slots__ = ("value",)

    def __init__(self, value):
        self.value = value

    def __eq__(self, other):
        return isinstance(other, _ByIdentity) and self.value is other.value

    def __hash__(self):
        return id(self.value)

    def __repr__(self):
        return repr(self.value)


@dataclass(frozen=True)
class FileSystemOptions:
    """
    Recognized options of an S3 filesystem.

    Attributes:
        create_bucket (bool): Create the bucket when it does not exist.
        use_https (bool): Use TLS towards the endpoint.
        server_side_encryption (bool): Ask the service to encrypt objects at rest (AES256).
        per_file_locking (bool): Prefer one lock per node over one per filesystem.
        max_upload_threads (int): Concurrency of large uploads.
        disable_chunked_encoding (bool): Sign whole payloads instead of streaming chunks.
        region (str): Signing region. Mutually exclusive with endpoint.
        endpoint (str): Custom endpoint of an S3-compatible store.
        client: Pre-built RemoteObjectService. Compared by identity.
        credentials (CredentialsProvider): Credentials provider. Compared by identity.
    """
    create_bucket: bool = True
    use_https: bool = True
    server_side_encryption: bool = False
    per_file_locking: bool = False
    max_upload_threads: int = 2
    disable_chunked_encoding: bool = False
    region: Optional[str] = None
    endpoint: Optional[str] = None
    client: Any = field(default=None, compare=False)
    credentials: Optional[CredentialsProvider] = field(default=None, compare=False)
    _client_identity: _ByIdentity = field(init=False, repr=False, compare=True)
    _credentials_identity: _ByIdentity = field(init=False, repr=False, compare=True)

    def __post_init__(self):
        if self.region and self.endpoint:
            raise ConfigurationError("region and endpoint cannot both be set")
        if self.max_upload_threads < 1:
            raise ConfigurationError(f"max_upload_threads must be at least 1, got {self.max_upload_threads}")
        object.__setattr__(self, "_client_identity", _ByIdentity(self.client))
        object.__setattr__(self, "_credentials_identity", _ByIdentity(self.credentials))

    def with_changes(self, **changes) -> "FileSystemOptions":
        return replace(self, **changes)

    @classmethod
    def builder(cls) -> "FileSystemOptionsBuilder":
        return FileSystemOptionsBuilder()


class FileSystemOptionsBuilder:
    """Fluent builder producing a FileSystemOptions value."""

    def __init__(self, base: FileSystemOptions = None):
        base = base or FileSystemOptions()
        self._values = {
            "create_bucket": base.create_bucket,
            "use_https": base.use_https,
            "server_side_encryption": base.server_side_encryption,
            "per_file_locking": base.per_file_locking,
            "max_upload_threads": base.max_upload_threads,
            "disable_chunked_encoding": base.disable_chunked_encoding,
            "region": base.region,
            "endpoint": base.endpoint,
            "client": base.client,
            "credentials": base.credentials,
        }

    def _set(self, name, value):
        self._values[name] = value
        return self

    def create_bucket(self, value: bool = True):
        return self._set("create_bucket", value)

    def use_https(self, value: bool = True):
        return self._set("use_https", value)

    def server_side_encryption(self, value: bool = True):
        return self._set("server_side_encryption", value)

    def per_file_locking(self, value: bool = True):
        return self._set("per_file_locking", value)

    def max_upload_threads(self, value: int):
        return self._set("max_upload_threads", value)

    def disable_chunked_encoding(self, value: bool = True):
        return self._set("disable_chunked_encoding", value)

    def region(self, value: str):
        return self._set("region", value)

    def endpoint(self, value: str):
        return self._set("endpoint", value)

    def client(self, value):
        return self._set("client", value)

    def credentials(self, value: CredentialsProvider):
        return self._set("credentials", value)

    def build(self) -> FileSystemOptions:
        return FileSystemOptions(**self._values)
