import json

import pytest

from printflow.errors import BlobStoreError
from printflow.services.blob_store import FilesystemBlobStore, InMemoryBlobStore


async def test_filesystem_store_round_trip(tmp_path) -> None:
    store = FilesystemBlobStore(tmp_path)
    ref = await store.put(b"%PDF-1.4 data", {"filename": "notes.pdf", "content_type": "application/pdf"})

    blob = await store.get(ref)
    assert blob.content == b"%PDF-1.4 data"
    assert blob.filename == "notes.pdf"
    assert blob.content_type == "application/pdf"

    meta = json.loads((tmp_path / ref[:2] / f"{ref}.json").read_text())
    assert meta["size"] == len(b"%PDF-1.4 data")
    assert len(meta["sha256"]) == 64


async def test_filesystem_delete_is_idempotent(tmp_path) -> None:
    store = FilesystemBlobStore(tmp_path)
    ref = await store.put(b"x", {})
    await store.delete(ref)
    await store.delete(ref)
    with pytest.raises(BlobStoreError):
        await store.get(ref)


async def test_filesystem_rejects_path_traversal(tmp_path) -> None:
    store = FilesystemBlobStore(tmp_path)
    with pytest.raises(BlobStoreError):
        await store.get("../etc/passwd")


async def test_in_memory_store() -> None:
    store = InMemoryBlobStore()
    ref = await store.put(b"abc", {"content_type": "application/pdf"})
    assert ref in store
    assert (await store.get(ref)).content == b"abc"
    await store.delete(ref)
    assert len(store) == 0
    with pytest.raises(BlobStoreError):
        await store.get(ref)
