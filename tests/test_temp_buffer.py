import os

import pytest

from s3vfs.client.exceptions import BufferExpiredError, LocalResourceError


def test_create_allocates_named_file(temp_store, temp_files):
    buffer = temp_store.create()

    assert buffer.use_count == 1
    assert buffer.etag is None
    assert os.path.basename(buffer.path).startswith("vfs.")
    assert buffer.path.endswith(".s3")
    assert temp_files() != []


def test_storage_exists_while_uses_are_outstanding(temp_store):
    buffer = temp_store.create()
    temp_store.use(buffer)
    temp_store.use(buffer)

    assert temp_store.release(buffer) is False
    assert temp_store.release(buffer) is False
    assert os.path.exists(buffer.path)

    assert temp_store.release(buffer) is True
    assert not os.path.exists(buffer.path)
    assert buffer.is_released


def test_use_after_release_fails(temp_store):
    buffer = temp_store.create()
    temp_store.release(buffer)

    with pytest.raises(BufferExpiredError):
        temp_store.use(buffer)
    with pytest.raises(BufferExpiredError):
        temp_store.release(buffer)
    with pytest.raises(BufferExpiredError):
        temp_store.open_read(buffer)


def test_streams_hold_one_reference(temp_store):
    buffer = temp_store.create()
    with temp_store.open_write(buffer) as writer:
        assert buffer.use_count == 2
        writer.write(b"hello")
    assert buffer.use_count == 1

    reader = temp_store.open_read(buffer)
    assert temp_store.open_streams == 1
    assert reader.read() == b"hello"
    reader.close()
    reader.close()

    assert buffer.use_count == 1
    assert temp_store.open_streams == 0


def test_stream_outlives_creator_reference(temp_store):
    buffer = temp_store.create()
    reader = temp_store.open_read(buffer)

    temp_store.release(buffer)
    assert os.path.exists(buffer.path)

    reader.close()
    assert not os.path.exists(buffer.path)


def test_stream_releases_on_error_unwind(temp_store):
    buffer = temp_store.create()
    commits = []

    with pytest.raises(ValueError):
        with temp_store.open_write(buffer, on_close=commits.append) as writer:
            writer.write(b"partial")
            raise ValueError("boom")

    assert commits == [False]
    assert buffer.use_count == 1
    assert temp_store.open_streams == 0


def test_on_close_called_once_with_commit(temp_store):
    buffer = temp_store.create()
    commits = []
    stream = temp_store.open_write(buffer, on_close=commits.append)
    stream.close()
    stream.close()
    assert commits == [True]


def test_callback_failure_still_releases(temp_store):
    buffer = temp_store.create()

    def failing(commit):
        raise RuntimeError("upload failed")

    stream = temp_store.open_write(buffer, on_close=failing)
    with pytest.raises(RuntimeError):
        stream.close()
    assert buffer.use_count == 1
    assert stream.closed


def test_unwritable_directory_is_a_local_error(tmp_path):
    from s3vfs.vfs.temp_buffer import TempContentStore

    store = TempContentStore(str(tmp_path / "missing"))
    with pytest.raises(LocalResourceError):
        store.create()
