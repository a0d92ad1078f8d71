"""
PipelineEngine — the state machine that runs a job's stages in order.

Responsibilities:
    - Move a job pending → running and run stages from current_operation_index
    - Build each stage's context and call its OperationExecutor
    - Halt in awaiting_approval after stages that need a human decision
    - Save the output of auto-advancing stages as intermediate documents
    - Apply approved suggestions and resume (apply_and_resume)
    - Observe pause/cancel requests before every stage and batch
    - Convert any failure into status=failed + error_message

Every write after a stage is a conditional update keyed on the status
the engine expects, so a job that was cancelled (or picked up twice)
is never advanced by a stale run.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Awaitable, Callable

import structlog

from docpipeline.core.config import PipelineConfig
from docpipeline.core.constants import (
    OPERATION_CATALOG,
    TERMINAL_STATUSES,
    ApprovalStatus,
    JobStatus,
    OperationKind,
    Provider,
    StageStatus,
)
from docpipeline.documents.codecs import codec_for_path
from docpipeline.llm.base import ProviderSession
from docpipeline.llm.factory import build_session
from docpipeline.pipeline.context import StageContext, StageOutcome
from docpipeline.pipeline.errors import ApplyError, NotFoundError, PipelineCancelled, PipelineError
from docpipeline.pipeline.executors import OperationExecutor, build_executors
from docpipeline.pipeline.intermediate import IntermediateDocumentStore
from docpipeline.pipeline.models import OperationResult, PipelineJobRecord
from docpipeline.pipeline.store import PipelineStore
from docpipeline.storage.base import DocumentStore

NON_TERMINAL_STATUSES = frozenset(JobStatus) - TERMINAL_STATUSES

# Statuses in which a finished stage may still be recorded; a pause
# requested mid-stage takes effect before the next stage.
STAGE_RECORDABLE_STATUSES = (JobStatus.RUNNING, JobStatus.PAUSED)

SessionBuilder = Callable[[Provider, str, PipelineConfig], ProviderSession]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PipelineEngine:
    """
    Runs the stages of one PipelineJob.

    Usage::

        engine = PipelineEngine(store, documents, settings.to_pipeline_config())
        await engine.run(job_id)               # from pending/running/paused
        await engine.apply_and_resume(job_id)  # after approve_stage
    """

    def __init__(
        self,
        store: PipelineStore,
        documents: DocumentStore,
        config: PipelineConfig,
        *,
        executors: dict[OperationKind, OperationExecutor] | None = None,
        session_builder: SessionBuilder = build_session,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.documents = documents
        self.config = config
        self.executors = executors if executors is not None else build_executors()
        self.session_builder = session_builder
        self.intermediates = IntermediateDocumentStore(store, documents, config)
        self._sleep = sleep
        self.logger = structlog.get_logger("pipeline.engine")

    # ═══════════════════════════════════════════════════════
    #  Entry points
    # ═══════════════════════════════════════════════════════

    async def run(self, job_id: str) -> None:
        """Run stages until the job completes, halts for approval, stops or fails."""
        log = self.logger.bind(pipeline_job_id=job_id)

        job = await self.store.get_job(job_id)
        if job is None:
            log.warning("Pipeline job not found, nothing to run")
            return

        if job.status == JobStatus.PENDING:
            started = await self.store.update_job_if_status(
                job_id, [JobStatus.PENDING], status=JobStatus.RUNNING, started_at=_now(),
            )
            if not started:
                log.info("Pipeline already picked up elsewhere")
                return
        elif job.status not in (JobStatus.RUNNING, JobStatus.PAUSED):
            # A paused job is picked up too: a redelivered task waits for resume
            log.info("Pipeline not runnable", status=job.status.value)
            return

        log.info(
            "Pipeline started",
            operations=[op.value for op in job.selected_operations],
            from_index=job.current_operation_index,
        )

        try:
            await self._run_stages(job_id, log)
        except PipelineCancelled as exc:
            log.info("Pipeline stopped", reason=str(exc))
        except Exception as exc:
            log.error("Pipeline failed", error=str(exc), error_type=type(exc).__name__)
            await self._fail(job_id, str(exc) or type(exc).__name__)

    async def apply_and_resume(self, job_id: str) -> None:
        """Materialise the approved suggestions of the current stage, then continue."""
        log = self.logger.bind(pipeline_job_id=job_id)

        job = await self.store.get_job(job_id)
        if job is None:
            log.warning("Pipeline job not found, nothing to apply")
            return
        if job.status != JobStatus.APPLYING_CHANGES:
            log.info("No changes to apply", status=job.status.value)
            return

        try:
            await self._apply(job, log)
        except Exception as exc:
            log.error("Applying changes failed", error=str(exc), error_type=type(exc).__name__)
            await self._fail(job_id, f"Failed to apply changes: {exc}")
            return

        await self.run(job_id)

    # ═══════════════════════════════════════════════════════
    #  Stage loop
    # ═══════════════════════════════════════════════════════

    async def _run_stages(self, job_id: str, log) -> None:
        while True:
            job = await self._check_execution_control(job_id)
            index = job.current_operation_index
            total = job.total_operations

            if index >= total:
                await self._complete(job, log)
                return

            if index < len(job.operation_results):
                # Stage result already recorded: waiting on a human, not on us
                log.warning("Current stage already has a result", stage_index=index)
                return

            operation = job.selected_operations[index]
            stage_log = log.bind(operation=operation.value, stage_index=index)
            stage_log.info(f"Stage {index + 1}/{total}: {OPERATION_CATALOG[operation].description}")

            outcome = await self._execute_stage(job, index, operation)
            metadata = outcome.metadata
            totals = {
                "total_cost_usd": job.total_cost_usd + metadata.cost_usd,
                "total_duration_seconds": job.total_duration_seconds + metadata.duration_seconds,
            }

            if outcome.requires_approval:
                result = OperationResult(
                    operation=operation,
                    operation_index=index,
                    status=StageStatus.AWAITING_APPROVAL,
                    operation_job_id=outcome.operation_job_id,
                    requires_approval=True,
                    approval_status=ApprovalStatus.PENDING,
                    metadata=metadata,
                )
                halted = await self.store.update_job_if_status(
                    job_id,
                    STAGE_RECORDABLE_STATUSES,
                    status=JobStatus.AWAITING_APPROVAL,
                    operation_results=[*job.operation_results, result],
                    **totals,
                )
                if not halted:
                    raise PipelineCancelled("Job left the running state during the stage")
                stage_log.info("Stage awaiting approval", items_generated=metadata.items_generated)
                return

            result = await self._record_output(job, index, operation, outcome)
            advanced = await self.store.update_job_if_status(
                job_id,
                STAGE_RECORDABLE_STATUSES,
                current_operation_index=index + 1,
                operation_results=[*job.operation_results, result],
                **totals,
            )
            if not advanced:
                raise PipelineCancelled("Job left the running state during the stage")
            stage_log.info(
                "Stage completed",
                duration_s=round(metadata.duration_seconds, 2),
                output=result.output_document_path,
            )

    async def _execute_stage(
        self,
        job: PipelineJobRecord,
        index: int,
        operation: OperationKind,
    ) -> StageOutcome:
        config = job.operation_configs.get(operation)
        if config is None:
            raise PipelineError(
                f"No configuration for operation '{operation.value}'",
                pipeline_job_id=job.id,
                operation=operation.value,
            )

        async def checkpoint() -> None:
            await self._check_execution_control(job.id)

        ctx = StageContext(
            pipeline_job_id=job.id,
            document_id=job.document_id,
            operation=operation,
            operation_index=index,
            source_document_path=await self._stage_input_path(job, index),
            config=config,
            pipeline_config=self.config,
            store=self.store,
            documents=self.documents,
            session=self.session_builder(Provider(config.provider), config.model, self.config),
            checkpoint=checkpoint,
        )
        return await self.executors[operation].execute(ctx)

    async def _record_output(
        self,
        job: PipelineJobRecord,
        index: int,
        operation: OperationKind,
        outcome: StageOutcome,
    ) -> OperationResult:
        if outcome.output_document is None:
            raise PipelineError(
                f"Stage '{operation.value}' produced no output document",
                pipeline_job_id=job.id,
                operation=operation.value,
            )
        record = await self.intermediates.save(
            pipeline_job_id=job.id,
            operation_index=index,
            operation=operation,
            data=outcome.output_document,
            suffix=outcome.output_suffix,
            content_type=outcome.output_content_type,
            operation_job_id=outcome.operation_job_id,
            metadata=outcome.metadata.model_dump(mode="json"),
        )
        return OperationResult(
            operation=operation,
            operation_index=index,
            status=StageStatus.COMPLETED,
            output_document_path=record.storage_path,
            output_document_size=record.file_size_bytes,
            operation_job_id=outcome.operation_job_id,
            requires_approval=False,
            metadata=outcome.metadata,
            completed_at=_now(),
        )

    async def _stage_input_path(self, job: PipelineJobRecord, index: int) -> str:
        """Stage 0 reads the source document; stage i reads stage i-1's output."""
        if index == 0:
            document = await self.store.get_document(job.document_id)
            if document is None:
                raise NotFoundError(f"Document {job.document_id} not found", pipeline_job_id=job.id)
            return document.storage_path

        previous = job.operation_results[index - 1]
        if not previous.output_document_path:
            raise PipelineError(
                f"Stage {index - 1} ({previous.operation.value}) has no output document",
                pipeline_job_id=job.id,
            )
        return previous.output_document_path

    # ═══════════════════════════════════════════════════════
    #  Apply
    # ═══════════════════════════════════════════════════════

    async def _apply(self, job: PipelineJobRecord, log) -> None:
        index = job.current_operation_index
        result = job.current_result()
        if result is None or result.approval_status not in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
            raise ApplyError("Current stage has no reviewed result to apply", pipeline_job_id=job.id)

        op_job = await self.store.get_operation_job(result.operation_job_id) if result.operation_job_id else None
        if op_job is None:
            raise ApplyError(f"Sub-operation record for stage {index} not found", pipeline_job_id=job.id)

        approved = set(result.approved_items)
        accepted = [s for s in op_job.suggestions() if s.id in approved]

        source_path = await self._stage_input_path(job, index)
        data = await self.documents.download(source_path)
        codec = codec_for_path(source_path)
        new_data, applied = codec.replace_spans(
            data, [(s.original_text, s.proposed_text) for s in accepted]
        )
        log.info(
            "Approved suggestions applied",
            stage_index=index,
            approved=len(approved),
            accepted=len(accepted),
            applied=applied,
        )

        record = await self.intermediates.save(
            pipeline_job_id=job.id,
            operation_index=index,
            operation=result.operation,
            data=new_data,
            suffix=PurePosixPath(source_path).suffix.lower(),
            content_type=codec.content_type,
            operation_job_id=result.operation_job_id,
            metadata={"approved_items": len(accepted), "applied_items": applied},
        )

        applied_at = _now()
        completed = result.model_copy(update={
            "status": StageStatus.COMPLETED,
            "output_document_path": record.storage_path,
            "output_document_size": record.file_size_bytes,
            "completed_at": applied_at,
            "metadata": result.metadata.model_copy(
                update={"items_processed": applied, "applied_at": applied_at}
            ),
        })
        advanced = await self.store.update_job_if_status(
            job.id,
            [JobStatus.APPLYING_CHANGES],
            status=JobStatus.RUNNING,
            current_operation_index=index + 1,
            operation_results=[*job.operation_results[:index], completed],
        )
        if not advanced:
            raise ApplyError("Job left applying_changes while changes were applied", pipeline_job_id=job.id)

    # ═══════════════════════════════════════════════════════
    #  Execution control & terminal transitions
    # ═══════════════════════════════════════════════════════

    async def _check_execution_control(self, job_id: str) -> PipelineJobRecord:
        """
        Return the fresh job once it is running.

        Waits while paused; raises PipelineCancelled for any other status,
        which is how cancellation reaches a stage between batches.
        """
        logged_pause = False
        while True:
            job = await self.store.get_job(job_id)
            if job is None:
                raise PipelineCancelled("Job no longer exists", pipeline_job_id=job_id)
            if job.status == JobStatus.RUNNING:
                return job
            if job.status == JobStatus.PAUSED:
                if not logged_pause:
                    self.logger.info("Pipeline paused, waiting", pipeline_job_id=job_id)
                    logged_pause = True
                await self._sleep(self.config.pause_poll_interval_seconds)
                continue
            raise PipelineCancelled(f"Job is {job.status.value}", pipeline_job_id=job_id)

    async def _complete(self, job: PipelineJobRecord, log) -> None:
        final_path = job.operation_results[-1].output_document_path if job.operation_results else None
        done = await self.store.update_job_if_status(
            job.id,
            [JobStatus.RUNNING],
            status=JobStatus.COMPLETED,
            final_document_path=final_path,
            completed_at=_now(),
        )
        if not done:
            raise PipelineCancelled("Job left the running state before completion")
        log.info(
            "Pipeline completed",
            final_document_path=final_path,
            total_cost_usd=round(job.total_cost_usd, 6),
            total_duration_s=round(job.total_duration_seconds, 2),
        )

    async def _fail(self, job_id: str, message: str) -> None:
        failed = await self.store.update_job_if_status(
            job_id,
            NON_TERMINAL_STATUSES,
            status=JobStatus.FAILED,
            error_message=message,
            completed_at=_now(),
        )
        if not failed:
            self.logger.info("Failure not recorded, job already terminal", pipeline_job_id=job_id)
