"""
Intermediate document repository — insert-only stage artifacts.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docpipeline.db.models.intermediate_document import IntermediateDocument


async def add_intermediate_document(
    db: AsyncSession,
    *,
    pipeline_job_id: uuid.UUID,
    operation_index: int,
    operation_name: str,
    storage_path: str,
    file_size_bytes: int,
    operation_job_id: uuid.UUID | None,
    metadata: dict[str, Any],
) -> IntermediateDocument:
    doc = IntermediateDocument(
        pipeline_job_id=pipeline_job_id,
        operation_index=operation_index,
        operation_name=operation_name,
        storage_path=storage_path,
        file_size_bytes=file_size_bytes,
        operation_job_id=operation_job_id,
        metadata_=metadata,
    )
    db.add(doc)
    await db.flush()
    return doc


async def list_for_job(db: AsyncSession, pipeline_job_id: uuid.UUID) -> list[IntermediateDocument]:
    """All artifacts of a job ordered by stage, then creation time."""
    stmt = (
        select(IntermediateDocument)
        .where(IntermediateDocument.pipeline_job_id == pipeline_job_id)
        .order_by(IntermediateDocument.operation_index, IntermediateDocument.created_at)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
