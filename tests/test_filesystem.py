import pytest

from s3vfs.client.credentials import StaticCredentialsProvider
from s3vfs.client.exceptions import NotFoundError, S3VfsError
from s3vfs.vfs.acl import PlatformFeatures
from s3vfs.vfs.filesystem import S3FileProvider
from s3vfs.vfs.locks import LockByFileStrategy, LockByFileSystemStrategy
from s3vfs.vfs.node import NodeKind
from s3vfs.vfs.options import FileSystemOptions
from s3vfs.vfs.registry import FileSystemKey

from conftest import BUCKET, FakeObjectService


def test_provider_shares_handles(provider, service):
    options = FileSystemOptions(client=service)
    first = provider.resolve_file(f"s3://{BUCKET}/a.txt", options)
    second = provider.resolve_file(f"s3://{BUCKET}/dir/b.txt", options)

    assert first.filesystem is second.filesystem
    assert first.filesystem.key == FileSystemKey(f"s3://{BUCKET}", options)
    assert service.calls["head_bucket"] == 1
    assert provider.resolve_file(f"s3://{BUCKET}/a.txt", options) is first


def test_different_options_get_different_handles(provider, service):
    plain = provider.get_filesystem(f"s3://{BUCKET}", FileSystemOptions(client=service))
    encrypted = provider.get_filesystem(f"s3://{BUCKET}",
                                        FileSystemOptions(client=service, server_side_encryption=True))

    assert plain is not encrypted
    assert len(provider.registry) == 2


def test_resolve_file_reuses_nodes(filesystem):
    node = filesystem.resolve_file("/dir/../dir/file.txt")
    assert filesystem.resolve_file("dir/file.txt") is node
    assert node.get_parent() is filesystem.resolve_file("/dir")
    assert node.get_parent().get_parent() is filesystem.root


def test_missing_bucket_is_created(make_filesystem):
    service = FakeObjectService(buckets=())
    make_filesystem(service)

    assert service.calls["create_bucket"] == 1
    assert BUCKET in service.buckets


def test_missing_bucket_without_create_is_not_registered(provider):
    service = FakeObjectService(buckets=())
    options = FileSystemOptions(client=service, create_bucket=False)

    with pytest.raises(NotFoundError):
        provider.get_filesystem(f"s3://{BUCKET}", options)
    assert len(provider.registry) == 0
    assert service.calls["create_bucket"] == 0


def test_injected_client_is_not_closed(provider, service):
    filesystem = provider.get_filesystem(f"s3://{BUCKET}", FileSystemOptions(client=service))

    assert filesystem.close_communication_link() is False
    assert provider.close_filesystem(filesystem) is True
    assert filesystem.closed
    assert not service.closed


def test_owned_service_is_released_and_closed(make_filesystem, service):
    filesystem = make_filesystem(service)

    assert filesystem.is_releasable()
    assert filesystem.close_communication_link() is True
    assert service.released == 1

    filesystem.close()
    filesystem.close()
    assert service.closed
    with pytest.raises(S3VfsError):
        filesystem.resolve_file("/a")


def test_close_releases_cached_buffers(filesystem, service, temp_files):
    service.put("a.txt", b"data")
    with filesystem.resolve_file("/a.txt").get_input_stream() as f:
        assert f.read() == b"data"
    assert len(temp_files()) == 1

    filesystem.close()
    assert temp_files() == []


def test_open_stream_blocks_release(filesystem, service):
    service.put("a.txt", b"data")
    stream = filesystem.resolve_file("/a.txt").get_input_stream()
    assert not filesystem.is_releasable()
    stream.close()
    assert filesystem.is_releasable()


def test_free_unused_resources_skips_busy_handles(provider):
    idle_service, busy_service = FakeObjectService(), FakeObjectService()
    idle = provider.get_filesystem(f"s3://{BUCKET}", FileSystemOptions(client=idle_service))
    busy = provider.get_filesystem(f"s3://{BUCKET}", FileSystemOptions(client=busy_service))
    idle.owns_service = busy.owns_service = True

    busy_service.put("a.txt", b"data")
    stream = busy.resolve_file("/a.txt").get_input_stream()

    assert provider.free_unused_resources() == 1
    assert idle_service.released == 1
    assert busy_service.released == 0
    stream.close()


def test_lock_strategy_follows_options(provider, service):
    per_file = provider.get_filesystem(f"s3://{BUCKET}", FileSystemOptions(client=service, per_file_locking=True))
    shared = provider.get_filesystem(f"s3://{BUCKET}", FileSystemOptions(client=service))

    assert isinstance(per_file.lock_strategy, LockByFileStrategy)
    assert isinstance(shared.lock_strategy, LockByFileSystemStrategy)


def test_per_file_locking_falls_back_when_unsupported(registry, tmp_path, service):
    provider = S3FileProvider(registry=registry, features=PlatformFeatures(supports_per_file_locking=False),
                              temp_dir=str(tmp_path))
    filesystem = provider.get_filesystem(f"s3://{BUCKET}", FileSystemOptions(client=service, per_file_locking=True))

    assert isinstance(filesystem.lock_strategy, LockByFileSystemStrategy)


def test_inline_credentials_are_used_for_private_urls(provider, service):
    service.put("a.txt", b"data")
    node = provider.resolve_file(f"s3://AKID:secret@{BUCKET}/a.txt", FileSystemOptions(client=service))

    assert node.get_private_url() == f"s3://AKID:secret@{BUCKET}/a.txt"


def test_option_credentials_take_precedence(provider, service):
    service.put("a.txt", b"data")
    options = FileSystemOptions(client=service, credentials=StaticCredentialsProvider("OPT", "key"))
    node = provider.resolve_file(f"s3://AKID:secret@{BUCKET}/a.txt", options)

    assert node.get_private_url().startswith("s3://OPT:key@")


def test_provider_close_closes_every_handle(provider, service):
    filesystem = provider.get_filesystem(f"s3://{BUCKET}", FileSystemOptions(client=service))
    provider.close()

    assert filesystem.closed
    assert len(provider.registry) == 0


def test_end_to_end_through_provider(provider, service):
    options = FileSystemOptions(client=service)
    node = provider.resolve_file(f"s3://{BUCKET}/reports/2025.csv", options)
    with node.get_output_stream() as out:
        out.write(b"a,b\n1,2\n")

    folder = provider.resolve_file(f"s3://{BUCKET}/reports", options)
    assert folder.get_type() is NodeKind.VIRTUAL_FOLDER
    assert [child.base_name for child in folder.get_children()] == ["2025.csv"]

    target = provider.resolve_file(f"s3://{BUCKET}/archive/2025.csv", options)
    node.move_to(target)
    assert service.data("archive/2025.csv") == b"a,b\n1,2\n"
    assert (BUCKET, "reports/2025.csv") not in service.objects


def test_close_drops_filesystem_lock(provider, service):
    filesystem = provider.get_filesystem(f"s3://{BUCKET}", FileSystemOptions(client=service))
    filesystem.resolve_file("/a.txt").exists()
    assert len(filesystem.lock_strategy) == 1

    provider.close_filesystem(filesystem)

    assert len(filesystem.lock_strategy) == 0


def test_inline_secrets_do_not_share_handles(provider, service):
    options = FileSystemOptions(client=service)
    first = provider.get_filesystem(f"s3://AKID:one@{BUCKET}", options)
    second = provider.get_filesystem(f"s3://AKID:two@{BUCKET}", options)

    assert first is not second
    assert first is provider.get_filesystem(f"s3://AKID:one@{BUCKET}", options)
    assert first.root_name.root_uri == second.root_name.root_uri
