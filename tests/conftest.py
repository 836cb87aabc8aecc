import hashlib
import os
import threading
from collections import Counter
from datetime import datetime, timezone
from io import BytesIO

import pytest

from s3vfs.client.exceptions import NotFoundError
from s3vfs.client.types import (
    FULL_CONTROL,
    AccessControlList,
    GetObjectOutput,
    Grant,
    Grantee,
    ListObjectsPage,
    ObjectMetadata,
    ObjectSummary,
    Owner,
)
from s3vfs.vfs.filesystem import S3FileProvider, S3FileSystem
from s3vfs.vfs.names import S3FileName
from s3vfs.vfs.options import FileSystemOptions
from s3vfs.vfs.registry import FileSystemRegistry
from s3vfs.vfs.temp_buffer import TempContentStore

BUCKET = "test-bucket"
OWNER_ID = "owner-canonical-id"


class FakeObjectService:
    """
    In-memory RemoteObjectService.

    Counts every call in ``calls``, can be told to fail a method with
    ``fail(method, exc)``, and caps listing pages at ``page_size``.
    """

    credentials = None

    def __init__(self, page_size=None, buckets=(BUCKET,)):
        self.page_size = page_size
        self.buckets = set(buckets)
        self.objects = {}
        self.acls = {}
        self.calls = Counter()
        self.failures = {}
        self.closed = False
        self.released = 0
        self._lock = threading.Lock()

    def fail(self, method, exc):
        self.failures[method] = exc

    def _record(self, method):
        with self._lock:
            self.calls[method] += 1
        if method in self.failures:
            raise self.failures[method]

    def put(self, key, data=b"", bucket=BUCKET, content_type=None):
        """Seed an object without counting a call."""
        self.objects[(bucket, key)] = {
            "data": data,
            "etag": hashlib.md5(data).hexdigest() + f"-{len(self.objects)}",
            "content_type": content_type,
            "last_modified": datetime.now(timezone.utc),
            "sse": False,
        }

    def data(self, key, bucket=BUCKET):
        return self.objects[(bucket, key)]["data"]

    def _metadata(self, obj):
        return ObjectMetadata(
            content_length=len(obj["data"]),
            last_modified=obj["last_modified"],
            etag=obj["etag"],
            content_type=obj["content_type"],
            server_side_encryption=obj["sse"],
        )

    def _object(self, bucket, key, operation):
        obj = self.objects.get((bucket, key))
        if obj is None:
            raise NotFoundError(f"NoSuchKey: {key}", path=f"{bucket}/{key}", operation=operation)
        return obj

    def head_bucket(self, bucket):
        self._record("head_bucket")
        if bucket not in self.buckets:
            raise NotFoundError(f"NoSuchBucket: {bucket}", path=bucket, operation="HEAD_BUCKET")

    def create_bucket(self, bucket):
        self._record("create_bucket")
        self.buckets.add(bucket)

    def head_object(self, bucket, key):
        self._record("head_object")
        return self._metadata(self._object(bucket, key, "HEAD_OBJECT"))

    def get_object(self, bucket, key):
        self._record("get_object")
        obj = self._object(bucket, key, "GET_OBJECT")
        return GetObjectOutput(body=BytesIO(obj["data"]), metadata=self._metadata(obj))

    def put_object(self, bucket, key, body, content_length, content_type=None, server_side_encryption=False):
        self._record("put_object")
        data = body.read()
        assert len(data) == content_length
        self.put(key, data, bucket=bucket, content_type=content_type)
        self.objects[(bucket, key)]["sse"] = server_side_encryption
        return self.objects[(bucket, key)]["etag"]

    def delete_object(self, bucket, key):
        self._record("delete_object")
        self.objects.pop((bucket, key), None)
        self.acls.pop((bucket, key), None)

    def copy_object(self, src_bucket, src_key, dst_bucket, dst_key, server_side_encryption=False):
        self._record("copy_object")
        source = self._object(src_bucket, src_key, "COPY_OBJECT")
        self.put(dst_key, source["data"], bucket=dst_bucket, content_type=source["content_type"])
        self.objects[(dst_bucket, dst_key)]["sse"] = server_side_encryption
        return self.objects[(dst_bucket, dst_key)]["etag"]

    def list_objects(self, bucket, options):
        self._record("list_objects")
        prefix = options.prefix or ""
        items = {}
        for (obj_bucket, key), obj in self.objects.items():
            if obj_bucket != bucket or not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            if options.delimiter and options.delimiter in rest:
                common = prefix + rest[:rest.index(options.delimiter) + len(options.delimiter)]
                items[common] = None
            else:
                items[key] = ObjectSummary(key=key, size=len(obj["data"]),
                                           last_modified=obj["last_modified"], etag=obj["etag"])

        ordered = [name for name in sorted(items) if options.marker is None or name > options.marker]
        limit = min(limit for limit in (options.max_keys, self.page_size, 1000) if limit is not None)
        page, remaining = ordered[:limit], ordered[limit:]
        return ListObjectsPage(
            objects=[items[name] for name in page if items[name] is not None],
            common_prefixes=[name for name in page if items[name] is None],
            next_marker=page[-1] if remaining else None,
        )

    def get_acl(self, bucket, key=None):
        self._record("get_acl")
        if key is not None:
            self._object(bucket, key, "GET_ACL")
        stored = self.acls.get((bucket, key))
        if stored is None:
            stored = AccessControlList(owner=Owner(OWNER_ID, "owner"),
                                       grants=[Grant(Grantee.canonical_user(OWNER_ID), FULL_CONTROL)])
        return AccessControlList(owner=stored.owner, grants=list(stored.grants))

    def put_acl(self, bucket, key, acl):
        self._record("put_acl")
        self.acls[(bucket, key)] = AccessControlList(owner=acl.owner, grants=list(acl.grants))

    def generate_presigned_url(self, bucket, key, expires_in):
        self._record("generate_presigned_url")
        return f"https://fake.example/{bucket}/{key}?expires={expires_in}"

    def release_connections(self):
        self.released += 1
        return True

    def close(self):
        self.closed = True


def pytest_configure(config):
    """Configure test environment."""
    os.environ.setdefault("S3VFS_TRACE_OPS", "false")


@pytest.fixture
def service():
    return FakeObjectService()


@pytest.fixture
def temp_store(tmp_path):
    return TempContentStore(str(tmp_path))


@pytest.fixture
def make_filesystem(tmp_path):
    """Build a filesystem over a given fake service."""
    created = []

    def factory(service, **kwargs):
        kwargs.setdefault("temp_store", TempContentStore(str(tmp_path)))
        filesystem = S3FileSystem(S3FileName(bucket=BUCKET), FileSystemOptions(client=service), service, **kwargs)
        created.append(filesystem)
        return filesystem

    yield factory
    for filesystem in created:
        filesystem.close()


@pytest.fixture
def filesystem(service, make_filesystem):
    return make_filesystem(service)


@pytest.fixture
def registry():
    registry = FileSystemRegistry()
    yield registry
    registry.close_all()


@pytest.fixture
def provider(registry, tmp_path):
    return S3FileProvider(registry=registry, temp_dir=str(tmp_path))


@pytest.fixture
def temp_files(tmp_path):
    """List the temp buffer files currently on disk."""
    return lambda: sorted(tmp_path.glob("vfs.*.s3"))
