"""
Operation job repository — the per-stage sub-operation records.

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

from docpipeline.db.models.operation_job import OperationJob


async def create_operation_job(
    db: AsyncSession,
    *,
    operation: str,
    document_id: uuid.UUID,
    pipeline_job_id: uuid.UUID | None,
    config: dict[str, Any],
) -> OperationJob:
    op_job = OperationJob(
        operation=operation,
        document_id=document_id,
        pipeline_job_id=pipeline_job_id,
        status="pending",
        config=config,
        result={},
    )
    db.add(op_job)
    await db.flush()
    return op_job


async def get_operation_job(db: AsyncSession, op_job_id: uuid.UUID) -> OperationJob | None:
    stmt = select(OperationJob).where(OperationJob.id == op_job_id).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def update_operation_job(db: AsyncSession, op_job_id: uuid.UUID, **values: Any) -> None:
    stmt = (
        update(OperationJob)
        .where(OperationJob.id == op_job_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.execute(stmt)
    await db.flush()


async def find_latest_with_status(
    db: AsyncSession,
    *,
    document_id: uuid.UUID,
    operation: str,
    statuses: Iterable[str],
) -> OperationJob | None:
    """Most recently created sub-job for this document/operation in one of `statuses`."""
    stmt = (
        select(OperationJob)
        .where(
            OperationJob.document_id == document_id,
            OperationJob.operation == operation,
            OperationJob.status.in_(list(statuses)),
        )
        .order_by(OperationJob.created_at.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()
