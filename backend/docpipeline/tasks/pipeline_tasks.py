"""
Celery tasks — pipeline stage execution.

Wires the PipelineEngine into the Celery task system.  Every task run
gets a fresh NullPool database engine because `asyncio.run` opens a new
event loop each time.  These task bodies are the top-level catch: an
exception that escapes the engine is logged, recorded on the job as
status=failed, and re-raised so Celery marks the task failed too.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable

import structlog

from docpipeline.core.config import get_settings
from docpipeline.core.constants import TERMINAL_STATUSES, JobStatus
from docpipeline.db.session import create_session_factory
from docpipeline.pipeline.engine import PipelineEngine
from docpipeline.pipeline.store import SqlPipelineStore
from docpipeline.storage import build_document_store
from docpipeline.tasks import celery_app

logger = structlog.get_logger("tasks.pipeline")


async def _with_engine(job_id: str, action: Callable[[PipelineEngine, str], Awaitable[None]]) -> None:
    settings = get_settings()
    db_engine, factory = create_session_factory(settings.DATABASE_URL, pooled=False)
    try:
        engine = PipelineEngine(
            SqlPipelineStore(factory),
            build_document_store(settings),
            settings.to_pipeline_config(),
        )
        await action(engine, job_id)
    finally:
        await db_engine.dispose()


async def _mark_failed(job_id: str, message: str) -> None:
    """Record a crash that escaped the engine (fresh engine to avoid loop conflicts)."""
    settings = get_settings()
    db_engine, factory = create_session_factory(settings.DATABASE_URL, pooled=False)
    try:
        await SqlPipelineStore(factory).update_job_if_status(
            job_id,
            frozenset(JobStatus) - TERMINAL_STATUSES,
            status=JobStatus.FAILED,
            error_message=message,
            completed_at=datetime.now(timezone.utc),
        )
    finally:
        await db_engine.dispose()


def _run_guarded(task, job_id: str, action, description: str) -> dict:
    task_log = logger.bind(task_id=task.request.id, pipeline_job_id=job_id)
    task_log.info(f"{description} task started")
    try:
        asyncio.run(_with_engine(job_id, action))
    except Exception as exc:
        task_log.exception(f"{description} task crashed", error=str(exc))
        try:
            asyncio.run(_mark_failed(job_id, f"Worker error: {exc}"))
        except Exception as mark_exc:
            task_log.error("Could not record failure on job", error=str(mark_exc))
        raise
    task_log.info(f"{description} task finished")
    return {"pipeline_job_id": job_id}


@celery_app.task(bind=True, name="docpipeline.tasks.pipeline_tasks.run_pipeline")
def run_pipeline(self, job_id: str):
    """Run a job's stages from its current index until it halts."""
    return _run_guarded(self, job_id, lambda engine, jid: engine.run(jid), "Pipeline run")


@celery_app.task(bind=True, name="docpipeline.tasks.pipeline_tasks.apply_stage")
def apply_stage(self, job_id: str):
    """Apply the approved stage's suggestions, then keep running."""
    return _run_guarded(self, job_id, lambda engine, jid: engine.apply_and_resume(jid), "Stage apply")
