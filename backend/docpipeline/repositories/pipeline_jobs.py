"""
Pipeline job repository — data access for the pipeline_jobs table.

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docpipeline.db.models.pipeline_job import PipelineJob


async def create_job(
    db: AsyncSession,
    *,
    document_id: uuid.UUID,
    selected_operations: list[str],
    operation_configs: dict[str, dict[str, Any]],
    status: str = "pending",
) -> PipelineJob:
    job = PipelineJob(
        document_id=document_id,
        selected_operations=selected_operations,
        operation_configs=operation_configs,
        status=status,
        current_operation_index=0,
        operation_results=[],
    )
    db.add(job)
    await db.flush()
    return job


async def get_job(db: AsyncSession, job_id: uuid.UUID) -> PipelineJob | None:
    """Fetch a job by primary key, bypassing the identity map cache."""
    stmt = select(PipelineJob).where(PipelineJob.id == job_id).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_jobs(
    db: AsyncSession,
    *,
    document_id: uuid.UUID | None = None,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[PipelineJob]:
    """List jobs, newest first, with optional document/status filters."""
    stmt = select(PipelineJob).order_by(PipelineJob.created_at.desc())
    if document_id is not None:
        stmt = stmt.where(PipelineJob.document_id == document_id)
    if status is not None:
        stmt = stmt.where(PipelineJob.status == status)
    stmt = stmt.offset(offset).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def update_job_if_status(
    db: AsyncSession,
    job_id: uuid.UUID,
    expected_statuses: Iterable[str],
    **values: Any,
) -> bool:
    """
    Conditional update: only touches the row while its status is one of
    `expected_statuses`.  Returns True when a row was updated.
    """
    stmt = (
        update(PipelineJob)
        .where(PipelineJob.id == job_id, PipelineJob.status.in_(list(expected_statuses)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount == 1

