from __future__ import annotations

import asyncio
import threading

import pytest

from university_service.services import blob_store
from university_service.services.blob_store import LocalBlobStore
from university_service.services.errors import StorageFailure, StoredFileExists


@pytest.mark.anyio
async def test_write_creates_directories(tmp_path):
    store = LocalBlobStore()

    path = await store.write(tmp_path / "uploads", "universities", "a.png", b"data")

    assert path == (tmp_path / "uploads" / "universities" / "a.png").resolve()
    assert path.read_bytes() == b"data"


@pytest.mark.anyio
async def test_write_then_remove_leaves_nothing(tmp_path):
    store = LocalBlobStore()

    path = await store.write(tmp_path, "universities", "b.jpg", b"\xff\xd8")
    assert await store.remove(path) is True

    assert not path.exists()
    assert list((tmp_path / "universities").iterdir()) == []


@pytest.mark.anyio
async def test_remove_missing_file_is_quiet(tmp_path):
    store = LocalBlobStore()

    assert await store.remove(tmp_path / "missing.png") is True


@pytest.mark.anyio
async def test_write_rejects_escaping_names(tmp_path):
    store = LocalBlobStore()

    with pytest.raises(StorageFailure):
        await store.write(tmp_path, "universities", "../escape.png", b"x")
    with pytest.raises(StorageFailure):
        await store.write(tmp_path, "../outside", "c.png", b"x")


@pytest.mark.anyio
async def test_write_wraps_os_errors(tmp_path):
    store = LocalBlobStore()
    blocker = tmp_path / "universities"
    blocker.write_text("not a directory")

    with pytest.raises(StorageFailure):
        await store.write(tmp_path, "universities", "d.png", b"x")


@pytest.mark.anyio
async def test_write_never_replaces_existing_file(tmp_path):
    store = LocalBlobStore()
    path = await store.write(tmp_path, "universities", "e.png", b"first")

    with pytest.raises(StoredFileExists):
        await store.write(tmp_path, "universities", "e.png", b"second")

    assert path.read_bytes() == b"first"


@pytest.mark.anyio
async def test_failed_write_leaves_no_partial_file(tmp_path, monkeypatch):
    store = LocalBlobStore()

    def broken_fsync(fd):
        raise OSError("fsync failed")

    monkeypatch.setattr(blob_store.os, "fsync", broken_fsync)

    with pytest.raises(StorageFailure):
        await store.write(tmp_path, "universities", "f.png", b"data")

    assert list((tmp_path / "universities").iterdir()) == []


@pytest.mark.anyio
async def test_cancelled_write_cleans_up_after_thread_finishes(tmp_path, monkeypatch):
    store = LocalBlobStore()
    started = threading.Event()
    release = threading.Event()
    real_write = blob_store._write_file

    def gated_write(target, data):
        started.set()
        release.wait(5)
        real_write(target, data)

    monkeypatch.setattr(blob_store, "_write_file", gated_write)

    task = asyncio.ensure_future(store.write(tmp_path, "universities", "g.png", b"data"))
    await asyncio.to_thread(started.wait, 5)
    task.cancel()
    await asyncio.sleep(0)
    release.set()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert not (tmp_path / "universities" / "g.png").exists()
