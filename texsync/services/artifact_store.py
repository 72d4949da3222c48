"""Storage for compiled PDFs. Ids are opaque to callers."""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class ArtifactStore(Protocol):
    async def store(self, data: bytes, content_type: str) -> str: ...

    async def load(self, storage_id: str) -> tuple[bytes, str] | None: ...

    async def delete(self, storage_id: str) -> None: ...


class InMemoryArtifactStore:
    def __init__(self) -> None:
        self._blobs: dict[str, tuple[bytes, str]] = {}

    async def store(self, data: bytes, content_type: str) -> str:
        storage_id = uuid.uuid4().hex
        self._blobs[storage_id] = (bytes(data), content_type)
        return storage_id

    async def load(self, storage_id: str) -> tuple[bytes, str] | None:
        return self._blobs.get(storage_id)

    async def delete(self, storage_id: str) -> None:
        self._blobs.pop(storage_id, None)

    def __len__(self) -> int:
        return len(self._blobs)


class LocalArtifactStore:
    """Artifacts as files under ``root`` with a ``.type`` sidecar for the content type."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _paths(self, storage_id: str) -> tuple[Path, Path] | None:
        # ids are uuid4 hex; anything else never touches the filesystem
        try:
            uuid.UUID(hex=storage_id)
        except ValueError:
            return None
        data_path = self.root / storage_id
        return data_path, data_path.with_suffix(".type")

    async def store(self, data: bytes, content_type: str) -> str:
        storage_id = uuid.uuid4().hex
        data_path, type_path = self._paths(storage_id)  # type: ignore[misc]
        await asyncio.to_thread(data_path.write_bytes, data)
        await asyncio.to_thread(type_path.write_text, content_type, "utf-8")
        return storage_id

    async def load(self, storage_id: str) -> tuple[bytes, str] | None:
        paths = self._paths(storage_id)
        if paths is None or not paths[0].is_file():
            return None
        data = await asyncio.to_thread(paths[0].read_bytes)
        content_type = "application/octet-stream"
        if paths[1].is_file():
            content_type = await asyncio.to_thread(paths[1].read_text, "utf-8")
        return data, content_type

    async def delete(self, storage_id: str) -> None:
        paths = self._paths(storage_id)
        if paths is None:
            return
        for path in paths:
            path.unlink(missing_ok=True)
