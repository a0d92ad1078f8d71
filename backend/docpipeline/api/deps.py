"""Shared dependencies for API routes."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from docpipeline.pipeline.service import PipelineService


def get_pipeline_service(request: Request) -> PipelineService:
    """The PipelineService built by the application lifespan."""
    service = getattr(request.app.state, "pipeline_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pipeline service is not initialised",
        )
    return service
