"""
Pipeline endpoints — create, inspect, approve, pause/resume, cancel
and download multi-stage document pipelines.

Domain errors raised by PipelineService are mapped to HTTP status codes
by the handlers registered in main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from docpipeline.api.deps import get_pipeline_service
from docpipeline.api.schemas.pipeline import (
    ApproveStageRequest,
    CreatePipelineRequest,
    CreatePipelineResponse,
    OperationInfoResponse,
    OperationProgressResponse,
    PauseResumeRequest,
    PipelineJobResponse,
    PipelineListResponse,
    PipelineStatusResponse,
)
from docpipeline.core.constants import OPERATION_CATALOG, DownloadType
from docpipeline.pipeline.service import PipelineService, estimated_minutes

router = APIRouter(prefix="/pipelines", tags=["Pipelines"])


# ─── Catalog ──────────────────────────────────────────────
@router.get("/operations", response_model=list[OperationInfoResponse])
async def list_operations() -> list[OperationInfoResponse]:
    """Operations that can be chained into a pipeline."""
    return [
        OperationInfoResponse(
            operation=operation,
            name=info.name,
            description=info.description,
            estimated_minutes=info.estimated_minutes,
            requires_approval=info.requires_approval,
        )
        for operation, info in OPERATION_CATALOG.items()
    ]


# ─── Create ───────────────────────────────────────────────
@router.post("/", response_model=CreatePipelineResponse, status_code=status.HTTP_201_CREATED)
async def create_pipeline(
    payload: CreatePipelineRequest,
    service: PipelineService = Depends(get_pipeline_service),
) -> CreatePipelineResponse:
    """
    Create a pipeline job and queue its first stage.

    Returns immediately; progress is observed through GET /pipelines/{id}.
    """
    job = await service.create_pipeline(payload.document_id, payload.operations, payload.configs)
    return CreatePipelineResponse(
        pipeline_job_id=job.id,
        status=job.status,
        operations=job.selected_operations,
        estimated_minutes=estimated_minutes(job.selected_operations),
    )


# ─── List ─────────────────────────────────────────────────
@router.get("/", response_model=PipelineListResponse)
async def list_pipelines(
    document_id: str | None = None,
    status_filter: str | None = Query(None, alias="status"),
    limit: int = 50,
    offset: int = 0,
    service: PipelineService = Depends(get_pipeline_service),
) -> PipelineListResponse:
    jobs = await service.list_pipelines(
        document_id=document_id, status=status_filter, offset=offset, limit=limit,
    )
    return PipelineListResponse(
        data=[PipelineJobResponse.from_record(job) for job in jobs],
        offset=offset,
        limit=limit,
    )


# ─── Detail ───────────────────────────────────────────────
@router.get("/{job_id}", response_model=PipelineStatusResponse)
async def get_pipeline(
    job_id: str,
    service: PipelineService = Depends(get_pipeline_service),
) -> PipelineStatusResponse:
    """Job row, its intermediate documents and live progress of the running stage."""
    result = await service.get_pipeline_status(job_id)
    progress = result.current_operation_progress
    return PipelineStatusResponse(
        job=PipelineJobResponse.from_record(result.job),
        intermediate_documents=result.intermediate_documents,
        current_operation_progress=(
            OperationProgressResponse(
                operation=progress.operation,
                percentage=progress.percentage,
                message=progress.message,
            )
            if progress is not None
            else None
        ),
    )


# ─── Control ──────────────────────────────────────────────
@router.post("/{job_id}/approve", response_model=PipelineJobResponse)
async def approve_stage(
    job_id: str,
    payload: ApproveStageRequest,
    service: PipelineService = Depends(get_pipeline_service),
) -> PipelineJobResponse:
    """Accept suggestions of the stage awaiting approval; an empty list rejects all."""
    job = await service.approve_stage(job_id, payload.approved_item_ids)
    return PipelineJobResponse.from_record(job)


@router.patch("/{job_id}", response_model=PipelineJobResponse)
async def pause_resume_pipeline(
    job_id: str,
    payload: PauseResumeRequest,
    service: PipelineService = Depends(get_pipeline_service),
) -> PipelineJobResponse:
    job = await service.pause_resume(job_id, payload.action)
    return PipelineJobResponse.from_record(job)


@router.delete("/{job_id}", response_model=PipelineJobResponse)
async def cancel_pipeline(
    job_id: str,
    service: PipelineService = Depends(get_pipeline_service),
) -> PipelineJobResponse:
    job = await service.cancel_pipeline(job_id)
    return PipelineJobResponse.from_record(job)


# ─── Download ─────────────────────────────────────────────
@router.get("/{job_id}/download")
async def download_pipeline_output(
    job_id: str,
    download_type: DownloadType = Query(DownloadType.FINAL, alias="type"),
    index: int | None = Query(None, ge=0),
    service: PipelineService = Depends(get_pipeline_service),
) -> Response:
    document = await service.download_output(job_id, download_type, index)
    return Response(
        content=document.data,
        media_type=document.content_type,
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
    )
