"""Filesystem document store for local development."""

from __future__ import annotations

import asyncio
from pathlib import Path

from docpipeline.core.logging import get_logger
from docpipeline.pipeline.errors import StorageError
from docpipeline.storage.base import DocumentStore

logger = get_logger(__name__)


class LocalDocumentStore(DocumentStore):

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise StorageError(f"Path escapes storage root: '{path}'")
        return target

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as exc:
            raise StorageError(f"Failed to download '{path}': {exc}") from exc

    async def upload(self, path: str, data: bytes, content_type: str | None = None) -> str:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise StorageError(f"Failed to upload '{path}': {exc}") from exc

        logger.info("File stored", path=str(target), size=len(data))
        return path
