"""
Document repository — source document metadata.
"""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from docpipeline.db.models.document import Document


async def get_document(db: AsyncSession, document_id: uuid.UUID) -> Document | None:
    """Fetch a document by primary key."""
    return await db.get(Document, document_id)


async def create_document(
    db: AsyncSession,
    *,
    filename: str,
    storage_path: str,
    content_type: str | None = None,
    size_bytes: int | None = None,
) -> Document:
    document = Document(
        filename=filename,
        storage_path=storage_path,
        content_type=content_type,
        size_bytes=size_bytes,
    )
    db.add(document)
    await db.flush()
    return document
