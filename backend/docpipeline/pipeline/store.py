"""
PipelineStore — the relational-store interface the engine, service and
progress aggregator depend on.

`SqlPipelineStore` implements it on top of the repositories with one
short transaction per call.  All job mutations after creation go
through `update_job_if_status`, a conditional UPDATE keyed on the
status the caller expects, which is what keeps a stale background task
from advancing a cancelled job or a duplicate trigger from re-running
a stage.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docpipeline.core.constants import ACTIVE_SUB_JOB_STATUSES, JobStatus, OperationKind
from docpipeline.pipeline.models import (
    DocumentRecord,
    IntermediateDocumentRecord,
    OperationConfig,
    OperationJobRecord,
    PipelineJobRecord,
)
from docpipeline.repositories import documents as document_repository
from docpipeline.repositories import intermediate_documents as intermediate_repository
from docpipeline.repositories import operation_jobs as operation_job_repository
from docpipeline.repositories import pipeline_jobs as job_repository


class PipelineStore(ABC):

    # ─── Documents ─────────────────────────────────────

    @abstractmethod
    async def get_document(self, document_id: str) -> DocumentRecord | None: ...

    # ─── Pipeline jobs ─────────────────────────────────

    @abstractmethod
    async def create_job(
        self,
        document_id: str,
        operations: list[OperationKind],
        configs: dict[OperationKind, OperationConfig],
    ) -> PipelineJobRecord: ...

    @abstractmethod
    async def get_job(self, job_id: str) -> PipelineJobRecord | None: ...

    @abstractmethod
    async def list_jobs(
        self,
        *,
        document_id: str | None = None,
        status: JobStatus | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[PipelineJobRecord]: ...

    @abstractmethod
    async def update_job_if_status(
        self,
        job_id: str,
        expected_statuses: Iterable[JobStatus],
        **values: Any,
    ) -> bool:
        """Apply `values` only while the job's status is expected; True if applied."""
        ...

    # ─── Intermediate documents ────────────────────────

    @abstractmethod
    async def add_intermediate_document(
        self,
        *,
        pipeline_job_id: str,
        operation_index: int,
        operation_name: OperationKind,
        storage_path: str,
        file_size_bytes: int,
        operation_job_id: str | None,
        metadata: dict[str, Any],
    ) -> IntermediateDocumentRecord: ...

    @abstractmethod
    async def list_intermediate_documents(self, job_id: str) -> list[IntermediateDocumentRecord]: ...

    # ─── Sub-operation jobs ────────────────────────────

    @abstractmethod
    async def create_operation_job(
        self,
        *,
        operation: OperationKind,
        document_id: str,
        pipeline_job_id: str | None,
        config: dict[str, Any],
    ) -> OperationJobRecord: ...

    @abstractmethod
    async def get_operation_job(self, op_job_id: str) -> OperationJobRecord | None: ...

    @abstractmethod
    async def update_operation_job(self, op_job_id: str, **values: Any) -> None: ...

    @abstractmethod
    async def find_active_operation_job(
        self,
        document_id: str,
        operation: OperationKind,
    ) -> OperationJobRecord | None:
        """Most recently created sub-job still producing progress."""
        ...


# ═══════════════════════════════════════════════════════════
#  SQL implementation
# ═══════════════════════════════════════════════════════════

def _as_uuid(value: str | None) -> uuid.UUID | None:
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _to_column(value: Any) -> Any:
    """Turn records/enums into JSON/column-friendly values."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_to_column(v) for v in value]
    if isinstance(value, dict):
        return {str(_to_column(k)): _to_column(v) for k, v in value.items()}
    return value


def _job_record(row) -> PipelineJobRecord:
    return PipelineJobRecord.model_validate({
        "id": str(row.id),
        "document_id": str(row.document_id),
        "selected_operations": row.selected_operations,
        "operation_configs": row.operation_configs or {},
        "status": row.status,
        "current_operation_index": row.current_operation_index,
        "operation_results": row.operation_results or [],
        "final_document_path": row.final_document_path,
        "total_cost_usd": row.total_cost_usd or 0.0,
        "total_duration_seconds": row.total_duration_seconds or 0.0,
        "error_message": row.error_message,
        "created_at": row.created_at,
        "started_at": row.started_at,
        "completed_at": row.completed_at,
    })


def _operation_job_record(row) -> OperationJobRecord:
    return OperationJobRecord(
        id=str(row.id),
        operation=row.operation,
        document_id=str(row.document_id),
        pipeline_job_id=str(row.pipeline_job_id) if row.pipeline_job_id else None,
        status=row.status,
        current_section=row.current_section or 0,
        total_sections=row.total_sections or 0,
        progress_percentage=row.progress_percentage or 0,
        progress_message=row.progress_message,
        result=row.result or {},
        error_message=row.error_message,
        created_at=row.created_at,
        started_at=row.started_at,
        completed_at=row.completed_at,
    )


def _intermediate_record(row) -> IntermediateDocumentRecord:
    return IntermediateDocumentRecord(
        id=str(row.id),
        pipeline_job_id=str(row.pipeline_job_id),
        operation_index=row.operation_index,
        operation_name=row.operation_name,
        storage_path=row.storage_path,
        file_size_bytes=row.file_size_bytes,
        operation_job_id=str(row.operation_job_id) if row.operation_job_id else None,
        metadata=row.metadata_ or {},
        created_at=row.created_at,
    )


class SqlPipelineStore(PipelineStore):
    """PipelineStore backed by PostgreSQL through the repositories."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_document(self, document_id: str) -> DocumentRecord | None:
        doc_uuid = _as_uuid(document_id)
        if doc_uuid is None:
            return None
        async with self._session_factory() as session:
            row = await document_repository.get_document(session, doc_uuid)
            if row is None:
                return None
            return DocumentRecord(
                id=str(row.id),
                filename=row.filename,
                storage_path=row.storage_path,
                content_type=row.content_type,
                size_bytes=row.size_bytes,
                created_at=row.created_at,
            )

    async def create_job(self, document_id, operations, configs) -> PipelineJobRecord:
        async with self._session_factory() as session:
            async with session.begin():
                row = await job_repository.create_job(
                    session,
                    document_id=uuid.UUID(document_id),
                    selected_operations=_to_column(list(operations)),
                    operation_configs=_to_column(configs),
                )
                await session.refresh(row)
                return _job_record(row)

    async def get_job(self, job_id: str) -> PipelineJobRecord | None:
        job_uuid = _as_uuid(job_id)
        if job_uuid is None:
            return None
        async with self._session_factory() as session:
            row = await job_repository.get_job(session, job_uuid)
            return _job_record(row) if row is not None else None

    async def list_jobs(self, *, document_id=None, status=None, offset=0, limit=50):
        doc_uuid = _as_uuid(document_id)
        if document_id is not None and doc_uuid is None:
            return []
        async with self._session_factory() as session:
            rows = await job_repository.list_jobs(
                session,
                document_id=doc_uuid,
                status=_to_column(status),
                offset=offset,
                limit=limit,
            )
            return [_job_record(row) for row in rows]

    async def update_job_if_status(self, job_id, expected_statuses, **values) -> bool:
        job_uuid = _as_uuid(job_id)
        if job_uuid is None:
            return False
        columns = {key: _to_column(value) for key, value in values.items()}
        async with self._session_factory() as session:
            async with session.begin():
                return await job_repository.update_job_if_status(
                    session,
                    job_uuid,
                    [_to_column(s) for s in expected_statuses],
                    **columns,
                )

    async def add_intermediate_document(self, **fields) -> IntermediateDocumentRecord:
        async with self._session_factory() as session:
            async with session.begin():
                row = await intermediate_repository.add_intermediate_document(
                    session,
                    pipeline_job_id=uuid.UUID(fields["pipeline_job_id"]),
                    operation_index=fields["operation_index"],
                    operation_name=_to_column(fields["operation_name"]),
                    storage_path=fields["storage_path"],
                    file_size_bytes=fields["file_size_bytes"],
                    operation_job_id=_as_uuid(fields.get("operation_job_id")),
                    metadata=_to_column(fields.get("metadata") or {}),
                )
                await session.refresh(row)
                return _intermediate_record(row)

    async def list_intermediate_documents(self, job_id: str) -> list[IntermediateDocumentRecord]:
        job_uuid = _as_uuid(job_id)
        if job_uuid is None:
            return []
        async with self._session_factory() as session:
            rows = await intermediate_repository.list_for_job(session, job_uuid)
            return [_intermediate_record(row) for row in rows]

    async def create_operation_job(self, *, operation, document_id, pipeline_job_id, config) -> OperationJobRecord:
        async with self._session_factory() as session:
            async with session.begin():
                row = await operation_job_repository.create_operation_job(
                    session,
                    operation=_to_column(operation),
                    document_id=uuid.UUID(document_id),
                    pipeline_job_id=_as_uuid(pipeline_job_id),
                    config=_to_column(config),
                )
                await session.refresh(row)
                return _operation_job_record(row)

    async def get_operation_job(self, op_job_id: str) -> OperationJobRecord | None:
        op_uuid = _as_uuid(op_job_id)
        if op_uuid is None:
            return None
        async with self._session_factory() as session:
            row = await operation_job_repository.get_operation_job(session, op_uuid)
            return _operation_job_record(row) if row is not None else None

    async def update_operation_job(self, op_job_id: str, **values) -> None:
        columns = {key: _to_column(value) for key, value in values.items()}
        async with self._session_factory() as session:
            async with session.begin():
                await operation_job_repository.update_operation_job(
                    session, uuid.UUID(op_job_id), **columns
                )

    async def find_active_operation_job(self, document_id, operation) -> OperationJobRecord | None:
        doc_uuid = _as_uuid(document_id)
        if doc_uuid is None:
            return None
        async with self._session_factory() as session:
            row = await operation_job_repository.find_latest_with_status(
                session,
                document_id=doc_uuid,
                operation=_to_column(operation),
                statuses=[s.value for s in ACTIVE_SUB_JOB_STATUSES],
            )
            return _operation_job_record(row) if row is not None else None
