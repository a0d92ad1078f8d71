"""
TaskDispatcher — hands stage execution to a background worker.

Requests only enqueue; the worker owns the job until it halts.  A
crash between enqueue and completion leaves the job row in its last
persisted status, where the next status poll sees it.

    CeleryDispatcher  — production: Celery tasks on the `pipeline` queue
    InlineDispatcher  — development/tests: an in-process asyncio queue
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from docpipeline.core.logging import get_logger

logger = get_logger(__name__)


class TaskDispatcher(ABC):

    @abstractmethod
    async def enqueue_run(self, job_id: str) -> None:
        """Run the job's stages from its current index."""
        ...

    @abstractmethod
    async def enqueue_apply(self, job_id: str) -> None:
        """Apply the approved stage, then continue running."""
        ...


class CeleryDispatcher(TaskDispatcher):

    async def enqueue_run(self, job_id: str) -> None:
        from docpipeline.tasks.pipeline_tasks import run_pipeline

        result = run_pipeline.delay(job_id)
        logger.info("Pipeline run enqueued", pipeline_job_id=job_id, task_id=result.id)

    async def enqueue_apply(self, job_id: str) -> None:
        from docpipeline.tasks.pipeline_tasks import apply_stage

        result = apply_stage.delay(job_id)
        logger.info("Stage apply enqueued", pipeline_job_id=job_id, task_id=result.id)


class InlineDispatcher(TaskDispatcher):
    """
    Runs work on a single asyncio worker task in this process.

    `engine_factory` returns the object whose `run` / `apply_and_resume`
    coroutines do the work (normally a PipelineEngine).  One worker
    processes items in order, which keeps a job single-writer.
    """

    def __init__(self, engine_factory: Callable[[], object]) -> None:
        self._engine_factory = engine_factory
        self._queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
        self._worker: asyncio.Task | None = None

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._work(), name="pipeline-inline-worker")

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    async def join(self) -> None:
        """Wait until everything enqueued so far has been processed."""
        await self._queue.join()

    async def enqueue_run(self, job_id: str) -> None:
        await self._enqueue("run", job_id)

    async def enqueue_apply(self, job_id: str) -> None:
        await self._enqueue("apply", job_id)

    async def _enqueue(self, kind: str, job_id: str) -> None:
        self.start()
        await self._queue.put((kind, job_id))
        logger.info("Pipeline work queued in-process", kind=kind, pipeline_job_id=job_id)

    async def _work(self) -> None:
        while True:
            kind, job_id = await self._queue.get()
            try:
                engine = self._engine_factory()
                handler: Callable[[str], Awaitable[None]] = (
                    engine.run if kind == "run" else engine.apply_and_resume
                )
                await handler(job_id)
            except Exception:
                # The engine records failures on the job; this only keeps the worker alive
                logger.exception("Inline pipeline worker error", kind=kind, pipeline_job_id=job_id)
            finally:
                self._queue.task_done()
