"""
Blob store for uploaded documents.

The queue engine only ever sees an opaque file reference. Any object with
async put/get/delete matching BlobStore can back it:

  - FilesystemBlobStore : one file per blob plus a JSON metadata sidecar
  - InMemoryBlobStore   : dict-backed, for tests and local demos
"""
from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import json
import uuid
from pathlib import Path
from typing import Protocol, runtime_checkable

from printflow.errors import BlobStoreError


@dataclasses.dataclass(frozen=True)
class StoredBlob:
    content: bytes
    content_type: str
    filename: str | None = None


@runtime_checkable
class BlobStore(Protocol):
    async def put(self, content: bytes, metadata: dict) -> str:
        """Store content and return an opaque file reference."""
        ...

    async def get(self, file_ref: str) -> StoredBlob:
        """Return the stored content. Raises BlobStoreError if absent."""
        ...

    async def delete(self, file_ref: str) -> None:
        """Remove a blob. Deleting an absent blob is not an error."""
        ...


def _new_ref() -> str:
    return uuid.uuid4().hex


class InMemoryBlobStore:
    """Dict-backed store. Safe for concurrent coroutines in one event loop."""

    def __init__(self) -> None:
        self._blobs: dict[str, StoredBlob] = {}

    async def put(self, content: bytes, metadata: dict) -> str:
        ref = _new_ref()
        self._blobs[ref] = StoredBlob(
            content=content,
            content_type=metadata.get("content_type", "application/octet-stream"),
            filename=metadata.get("filename"),
        )
        return ref

    async def get(self, file_ref: str) -> StoredBlob:
        try:
            return self._blobs[file_ref]
        except KeyError:
            raise BlobStoreError(f"Blob {file_ref!r} not found") from None

    async def delete(self, file_ref: str) -> None:
        self._blobs.pop(file_ref, None)

    def __contains__(self, file_ref: str) -> bool:
        return file_ref in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


class FilesystemBlobStore:
    """
    Stores each blob as ``<root>/<ref[:2]>/<ref>`` with ``<ref>.json`` beside it.

    File IO runs in a worker thread so the event loop is never blocked.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _paths(self, file_ref: str) -> tuple[Path, Path]:
        if not file_ref or "/" in file_ref or "\\" in file_ref or file_ref.startswith("."):
            raise BlobStoreError(f"Invalid file reference {file_ref!r}")
        folder = self.root / file_ref[:2]
        return folder / file_ref, folder / f"{file_ref}.json"

    async def put(self, content: bytes, metadata: dict) -> str:
        ref = _new_ref()
        try:
            await asyncio.to_thread(self._sync_put, ref, content, metadata)
        except OSError as exc:
            raise BlobStoreError("Failed to store uploaded file", cause=exc) from exc
        return ref

    async def get(self, file_ref: str) -> StoredBlob:
        try:
            return await asyncio.to_thread(self._sync_get, file_ref)
        except FileNotFoundError:
            raise BlobStoreError(f"Blob {file_ref!r} not found") from None
        except OSError as exc:
            raise BlobStoreError("Failed to read stored file", cause=exc) from exc

    async def delete(self, file_ref: str) -> None:
        try:
            await asyncio.to_thread(self._sync_delete, file_ref)
        except OSError as exc:
            raise BlobStoreError("Failed to delete stored file", cause=exc) from exc

    # ------------------------------------------------------------------ #
    # Synchronous implementations (executed in a thread-pool worker)      #
    # ------------------------------------------------------------------ #

    def _sync_put(self, ref: str, content: bytes, metadata: dict) -> None:
        data_path, meta_path = self._paths(ref)
        data_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = data_path.with_suffix(".tmp")
        tmp_path.write_bytes(content)
        tmp_path.replace(data_path)
        meta = {
            "content_type": metadata.get("content_type", "application/octet-stream"),
            "filename": metadata.get("filename"),
            "student_id": metadata.get("student_id"),
            "sha256": hashlib.sha256(content).hexdigest(),
            "size": len(content),
        }
        meta_path.write_text(json.dumps(meta), encoding="utf-8")

    def _sync_get(self, file_ref: str) -> StoredBlob:
        data_path, meta_path = self._paths(file_ref)
        content = data_path.read_bytes()
        meta = {}
        if meta_path.exists():
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
        return StoredBlob(
            content=content,
            content_type=meta.get("content_type", "application/octet-stream"),
            filename=meta.get("filename"),
        )

    def _sync_delete(self, file_ref: str) -> None:
        data_path, meta_path = self._paths(file_ref)
        data_path.unlink(missing_ok=True)
        meta_path.unlink(missing_ok=True)
