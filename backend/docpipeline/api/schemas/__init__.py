"""API schema package."""

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

__all__ = [
    "ApproveStageRequest",
    "CreatePipelineRequest",
    "CreatePipelineResponse",
    "OperationInfoResponse",
    "OperationProgressResponse",
    "PauseResumeRequest",
    "PipelineJobResponse",
    "PipelineListResponse",
    "PipelineStatusResponse",
]
