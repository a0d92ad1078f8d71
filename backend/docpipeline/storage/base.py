"""DocumentStore — the object storage interface the pipeline consumes."""

from __future__ import annotations

from abc import ABC, abstractmethod


class DocumentStore(ABC):
    """Blob storage for source documents and stage outputs."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the object's bytes.  Raise StorageError if it cannot be read."""
        ...

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str | None = None) -> str:
        """Store `data` at `path` and return the storage path."""
        ...
