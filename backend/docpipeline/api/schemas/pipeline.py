"""Pipeline request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from docpipeline.core.constants import JobStatus, OperationKind, PauseAction
from docpipeline.pipeline.models import (
    IntermediateDocumentRecord,
    OperationResult,
    PipelineJobRecord,
)


class CreatePipelineRequest(BaseModel):
    """Request payload for creating a pipeline job."""

    document_id: str = Field(..., min_length=1)
    operations: list[str] = Field(..., min_length=1)
    # Keyed by operation name; validated against the matching config variant
    configs: dict[str, dict[str, Any]] = Field(default_factory=dict)


class CreatePipelineResponse(BaseModel):
    pipeline_job_id: str
    status: JobStatus
    operations: list[OperationKind]
    estimated_minutes: int


class ApproveStageRequest(BaseModel):
    approved_item_ids: list[str] = Field(default_factory=list)


class PauseResumeRequest(BaseModel):
    action: PauseAction


class PipelineJobResponse(BaseModel):
    """A pipeline job as returned to clients."""

    id: str
    document_id: str
    selected_operations: list[OperationKind]
    operation_configs: dict[str, dict[str, Any]]
    status: JobStatus
    current_operation_index: int
    total_operations: int
    operation_results: list[OperationResult]
    final_document_path: str | None
    total_cost_usd: float
    total_duration_seconds: float
    error_message: str | None
    created_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None

    @classmethod
    def from_record(cls, job: PipelineJobRecord) -> "PipelineJobResponse":
        return cls(
            id=job.id,
            document_id=job.document_id,
            selected_operations=job.selected_operations,
            operation_configs={
                op.value: config.model_dump(mode="json") for op, config in job.operation_configs.items()
            },
            status=job.status,
            current_operation_index=job.current_operation_index,
            total_operations=job.total_operations,
            operation_results=job.operation_results,
            final_document_path=job.final_document_path,
            total_cost_usd=job.total_cost_usd,
            total_duration_seconds=job.total_duration_seconds,
            error_message=job.error_message,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class OperationProgressResponse(BaseModel):
    operation: str
    percentage: int
    message: str | None = None


class PipelineStatusResponse(BaseModel):
    job: PipelineJobResponse
    intermediate_documents: list[IntermediateDocumentRecord]
    current_operation_progress: OperationProgressResponse | None = None


class PipelineListResponse(BaseModel):
    data: list[PipelineJobResponse]
    offset: int
    limit: int


class OperationInfoResponse(BaseModel):
    operation: OperationKind
    name: str
    description: str
    estimated_minutes: int
    requires_approval: bool
