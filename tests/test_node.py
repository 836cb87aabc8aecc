import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from s3vfs.client.credentials import StaticCredentialsProvider
from s3vfs.client.exceptions import (
    AlreadyWritingError,
    ConfigurationError,
    IllegalReattachError,
    NotFoundError,
    RemoteTransportError,
    TypeConflictError,
    UnsupportedOperationError,
)
from s3vfs.client.types import ObjectMetadata
from s3vfs.vfs.node import NodeKind, is_directory_placeholder

from conftest import FakeObjectService


def write(node, data):
    with node.get_output_stream() as out:
        out.write(data)


def read(node):
    with node.get_input_stream() as f:
        return f.read()


def test_root_is_synthesized_without_remote_calls(filesystem, service):
    root = filesystem.root
    assert root.get_type() is NodeKind.VIRTUAL_FOLDER
    assert root.get_object_metadata().content_type == ""
    assert root.get_content_size() == 0
    assert service.calls["head_object"] == 0
    assert service.calls["list_objects"] == 0


def test_attach_probes_in_order(filesystem, service):
    service.put("file.txt", b"data")
    service.put("folder/")
    service.put("virtual/child.txt", b"x")

    assert filesystem.resolve_file("/file.txt").get_type() is NodeKind.FILE
    assert filesystem.resolve_file("/folder").get_type() is NodeKind.FOLDER
    assert filesystem.resolve_file("/virtual").get_type() is NodeKind.VIRTUAL_FOLDER
    assert filesystem.resolve_file("/missing").get_type() is NodeKind.NEW

    assert filesystem.resolve_file("/folder").object_key == "folder/"
    assert filesystem.resolve_file("/virtual").get_content_size() == 0


def test_placeholder_object_attaches_as_folder(filesystem, service):
    service.put("legacy_$folder$")
    assert filesystem.resolve_file("/legacy_$folder$").get_type() is NodeKind.FOLDER


def test_directory_placeholder_detection():
    empty = ObjectMetadata(content_length=0)
    assert is_directory_placeholder("a/", empty)
    assert is_directory_placeholder("a_$folder$", empty)
    assert is_directory_placeholder("a", ObjectMetadata(etag="d66759af42f282e1ba19144df2d405d0"))
    assert is_directory_placeholder("a", ObjectMetadata(content_type="application/x-directory"))
    assert not is_directory_placeholder("a", empty)
    assert not is_directory_placeholder("a/", ObjectMetadata(content_length=3))


def test_reattach_is_an_error(filesystem, service):
    service.put("file.txt", b"data")
    node = filesystem.resolve_file("/file.txt")
    node.attach()
    with pytest.raises(IllegalReattachError):
        node.attach()


def test_detach_then_attach_is_equivalent(filesystem, service):
    service.put("file.txt", b"data")
    node = filesystem.resolve_file("/file.txt")
    node.attach()
    kind, metadata = node.kind, node.get_object_metadata()

    node.detach()
    assert not node.is_attached
    node.attach()

    assert node.kind is kind
    assert node.get_object_metadata() == metadata


def test_transport_failure_leaves_node_unattached(filesystem, service):
    service.fail("head_object", RemoteTransportError("access denied"))
    node = filesystem.resolve_file("/file.txt")

    with pytest.raises(RemoteTransportError):
        node.attach()
    assert not node.is_attached


def test_concurrent_attach_probes_once(filesystem, service):
    service.put("file.txt", b"data")
    node = filesystem.resolve_file("/file.txt")

    with ThreadPoolExecutor(max_workers=8) as executor:
        kinds = list(executor.map(lambda _: node.get_type(), range(16)))

    assert set(kinds) == {NodeKind.FILE}
    assert service.calls["head_object"] == 1


def test_size_and_time_come_from_held_metadata(filesystem, service):
    service.put("file.txt", b"12345")
    node = filesystem.resolve_file("/file.txt")

    assert node.get_content_size() == 5
    assert node.get_last_modified_time() is not None
    calls = service.calls["head_object"]

    service.put("file.txt", b"1234567890")
    assert node.get_content_size() == 5
    assert service.calls["head_object"] == calls

    when = datetime(2020, 1, 1, tzinfo=timezone.utc)
    node.set_last_modified_time(when)
    assert node.get_last_modified_time() == when


def test_new_node_has_no_size(filesystem):
    node = filesystem.resolve_file("/missing")
    with pytest.raises(NotFoundError):
        node.get_content_size()
    with pytest.raises(NotFoundError):
        node.get_input_stream()


def test_children_only_for_folders(filesystem, service):
    service.put("file.txt", b"data")
    with pytest.raises(TypeConflictError):
        filesystem.resolve_file("/file.txt").get_children()
    with pytest.raises(TypeConflictError):
        filesystem.resolve_file("/missing").get_children()


def test_write_then_read_uses_cache(filesystem, service):
    node = filesystem.resolve_file("/docs/a.txt")
    write(node, b"hello")

    assert service.data("docs/a.txt") == b"hello"
    assert service.objects[("test-bucket", "docs/a.txt")]["content_type"] == "text/plain"
    assert node.get_type() is NodeKind.FILE
    assert node.get_content_size() == 5

    assert read(node) == b"hello"
    assert service.calls["get_object"] == 0
    assert node.get_cache_file() is not None


def test_unchanged_object_is_not_downloaded_again(filesystem, service):
    service.put("file.txt", b"original")
    node = filesystem.resolve_file("/file.txt")

    assert read(node) == b"original"
    node.refresh()
    assert node.get_cache_file() is not None
    assert read(node) == b"original"
    assert service.calls["get_object"] == 1


def test_changed_object_invalidates_cache(filesystem, service, temp_files):
    service.put("file.txt", b"original")
    node = filesystem.resolve_file("/file.txt")
    assert read(node) == b"original"
    old_cache = node.get_cache_file()

    service.put("file.txt", b"changed content")
    node.refresh()

    assert node.get_cache_file() is None
    assert not os.path.exists(old_cache)
    assert read(node) == b"changed content"
    assert service.calls["get_object"] == 2
    assert len(temp_files()) == 1


def test_failed_download_releases_buffer(filesystem, service, temp_files):
    service.put("file.txt", b"data")
    service.fail("get_object", RemoteTransportError("connection reset"))
    node = filesystem.resolve_file("/file.txt")

    with pytest.raises(RemoteTransportError):
        node.get_input_stream()
    assert node.get_cache_file() is None
    assert temp_files() == []


def test_second_writer_is_rejected(filesystem):
    node = filesystem.resolve_file("/file.txt")
    first = node.get_output_stream()

    with pytest.raises(AlreadyWritingError):
        node.get_output_stream()

    first.write(b"one")
    first.close()
    assert not node.is_writing()

    write(node, b"two")
    assert read(node) == b"two"


def test_failed_upload_keeps_previous_cache(filesystem, service, temp_files):
    service.put("file.txt", b"original")
    node = filesystem.resolve_file("/file.txt")
    assert read(node) == b"original"
    cache = node.get_cache_file()

    service.fail("put_object", RemoteTransportError("quota exceeded"))
    stream = node.get_output_stream()
    stream.write(b"new content")
    with pytest.raises(RemoteTransportError):
        stream.close()

    assert not node.is_writing()
    assert node.get_cache_file() == cache
    assert [str(path) for path in temp_files()] == [cache]
    assert service.data("file.txt") == b"original"

    del service.failures["put_object"]
    write(node, b"retry")
    assert service.data("file.txt") == b"retry"


def test_error_inside_write_block_aborts_upload(filesystem, service):
    node = filesystem.resolve_file("/file.txt")
    with pytest.raises(ValueError):
        with node.get_output_stream() as out:
            out.write(b"partial")
            raise ValueError("caller failed")

    assert service.calls["put_object"] == 0
    assert not node.is_writing()


def test_append_keeps_content(filesystem, service):
    service.put("log.txt", b"line1\n")
    node = filesystem.resolve_file("/log.txt")
    with node.get_output_stream(append=True) as out:
        out.write(b"line2\n")
    assert service.data("log.txt") == b"line1\nline2\n"


def test_create_file_and_folder(filesystem, service):
    folder = filesystem.resolve_file("/new-folder")
    folder.create_folder()
    assert ("test-bucket", "new-folder/") in service.objects
    assert folder.get_type() is NodeKind.FOLDER

    file = folder.resolve_child("empty.txt")
    file.create_file()
    assert service.data("new-folder/empty.txt") == b""

    with pytest.raises(TypeConflictError):
        file.create_folder()
    with pytest.raises(TypeConflictError):
        folder.create_file()
    with pytest.raises(TypeConflictError):
        folder.get_output_stream()


def test_write_makes_new_parent_visible(filesystem):
    parent = filesystem.resolve_file("/dir")
    assert parent.get_type() is NodeKind.NEW

    write(filesystem.resolve_file("/dir/file.txt"), b"x")
    assert parent.get_type() is NodeKind.VIRTUAL_FOLDER


def test_delete(filesystem, service):
    service.put("dir/")
    service.put("dir/a.txt", b"a")
    folder = filesystem.resolve_file("/dir")
    file = filesystem.resolve_file("/dir/a.txt")

    assert folder.delete() is False
    assert file.delete() is True
    assert ("test-bucket", "dir/a.txt") not in service.objects
    assert file.get_type() is NodeKind.NEW

    assert folder.delete() is True
    assert service.objects == {}
    assert filesystem.resolve_file("/missing").delete() is False


def test_delete_listed_folder_removes_placeholder(filesystem, service):
    filesystem.resolve_file("/d").create_folder()
    (listed,) = filesystem.root.get_children()
    assert listed.kind is NodeKind.VIRTUAL_FOLDER

    assert listed.delete() is True

    assert ("test-bucket", "d/") not in service.objects
    assert listed.get_type() is NodeKind.NEW
    assert filesystem.root.get_children() == []


def test_listed_folder_with_children_is_kept(filesystem, service):
    service.put("d/")
    service.put("d/a.txt", b"a")
    (listed,) = filesystem.root.get_children()

    assert listed.delete() is False
    assert ("test-bucket", "d/") in service.objects


def test_delete_all(filesystem, service):
    for key in ("tree/", "tree/a.txt", "tree/sub/b.txt", "tree/sub/c.txt", "other.txt"):
        service.put(key, b"x")

    deleted = filesystem.resolve_file("/tree").delete_all()

    assert deleted == 4
    assert list(service.objects) == [("test-bucket", "other.txt")]


def test_copy_from_uses_server_side_copy(filesystem, service):
    service.put("src/a.txt", b"aaa")
    service.put("src/nested/b.txt", b"bbb")

    filesystem.resolve_file("/dst").copy_from(filesystem.resolve_file("/src"))

    assert service.data("dst/a.txt") == b"aaa"
    assert service.data("dst/nested/b.txt") == b"bbb"
    assert service.calls["copy_object"] == 2
    assert service.calls["get_object"] == 0


def test_copy_between_services_streams_content(filesystem, make_filesystem, service):
    other_service = FakeObjectService()
    other = make_filesystem(other_service)
    service.put("a.txt", b"payload")

    other.resolve_file("/b.txt").copy_from(filesystem.resolve_file("/a.txt"))

    assert other_service.data("b.txt") == b"payload"
    assert service.calls["copy_object"] == 0
    assert other_service.calls["copy_object"] == 0


def test_copy_into_itself_is_rejected(filesystem, service):
    service.put("src/a.txt", b"a")
    with pytest.raises(UnsupportedOperationError):
        filesystem.resolve_file("/src/inner").copy_from(filesystem.resolve_file("/src"))


def test_copy_of_missing_source(filesystem):
    with pytest.raises(NotFoundError):
        filesystem.resolve_file("/b").copy_from(filesystem.resolve_file("/a"))


def test_urls_and_hash(make_filesystem, service):
    filesystem = make_filesystem(service, credentials=StaticCredentialsProvider("AKID", "se/cret"))
    service.put("docs/a b.txt", b"data")
    node = filesystem.resolve_file("/docs/a b.txt")

    assert node.get_signed_url(60) == "https://fake.example/test-bucket/docs/a b.txt?expires=60"
    assert node.get_http_url() == "https://s3.amazonaws.com/test-bucket/docs/a%20b.txt"
    assert node.get_private_url() == "s3://AKID:se%2Fcret@test-bucket/docs/a%20b.txt"
    assert node.get_md5_hash() == service.objects[("test-bucket", "docs/a b.txt")]["etag"]


def test_private_url_needs_credentials(filesystem, service):
    service.put("a.txt", b"data")
    with pytest.raises(ConfigurationError):
        filesystem.resolve_file("/a.txt").get_private_url()


def test_signed_url_needs_a_file(filesystem):
    with pytest.raises(NotFoundError):
        filesystem.resolve_file("/missing").get_signed_url()


def test_http_url_needs_a_file(filesystem, service):
    service.put("dir/")

    with pytest.raises(NotFoundError):
        filesystem.resolve_file("/missing").get_http_url()
    with pytest.raises(TypeConflictError):
        filesystem.resolve_file("/dir").get_http_url()
