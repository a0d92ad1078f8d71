"""
PipelineService — the request-time operations on pipeline jobs.

Everything here runs synchronously inside a request: validation and
precondition failures are raised to the caller (ValidationError,
NotFoundError, InvalidStateError) and nothing is mutated.  Stage work
is only ever enqueued through the TaskDispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Iterable

import pydantic

from docpipeline.core.config import PipelineConfig
from docpipeline.core.constants import (
    CANCELLABLE_STATUSES,
    OPERATION_CATALOG,
    ApprovalStatus,
    DownloadType,
    JobStatus,
    OperationKind,
    PauseAction,
)
from docpipeline.core.logging import get_logger
from docpipeline.documents.codecs import codec_for_path
from docpipeline.pipeline.dispatch import TaskDispatcher
from docpipeline.pipeline.errors import InvalidStateError, NotFoundError, ValidationError
from docpipeline.pipeline.intermediate import IntermediateDocumentStore
from docpipeline.pipeline.models import (
    IntermediateDocumentRecord,
    OperationConfig,
    PipelineJobRecord,
    operation_config_adapter,
)
from docpipeline.pipeline.progress import ProgressAggregator, StageProgress
from docpipeline.pipeline.store import PipelineStore
from docpipeline.storage.base import DocumentStore

logger = get_logger(__name__)

MAX_PAGE_SIZE = 200


@dataclass
class PipelineStatus:
    job: PipelineJobRecord
    intermediate_documents: list[IntermediateDocumentRecord]
    current_operation_progress: StageProgress | None


@dataclass
class DownloadedDocument:
    data: bytes
    filename: str
    content_type: str


def estimated_minutes(operations: Iterable[OperationKind]) -> int:
    return sum(OPERATION_CATALOG[op].estimated_minutes for op in operations)


class PipelineService:

    def __init__(
        self,
        store: PipelineStore,
        documents: DocumentStore,
        dispatcher: TaskDispatcher,
        config: PipelineConfig,
    ) -> None:
        self.store = store
        self.documents = documents
        self.dispatcher = dispatcher
        self.config = config
        self.intermediates = IntermediateDocumentStore(store, documents, config)
        self.progress = ProgressAggregator(store)

    # ─── Create ────────────────────────────────────────

    async def create_pipeline(
        self,
        document_id: str,
        operations: list[str],
        configs: dict[str, Any],
    ) -> PipelineJobRecord:
        """Validate the request, persist a pending job and enqueue its run."""
        kinds = self._parse_operations(operations)
        parsed = self._parse_configs(kinds, configs)

        document = await self.store.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        # Unsupported formats are rejected now rather than failing stage 0
        codec_for_path(document.storage_path)

        job = await self.store.create_job(document.id, kinds, parsed)
        logger.info(
            "Pipeline created",
            pipeline_job_id=job.id,
            document_id=document.id,
            operations=[k.value for k in kinds],
        )
        await self.dispatcher.enqueue_run(job.id)
        return job

    @staticmethod
    def _parse_operations(operations: list[str]) -> list[OperationKind]:
        if not operations:
            raise ValidationError("At least one operation is required")

        kinds: list[OperationKind] = []
        for name in operations:
            try:
                kind = OperationKind(name)
            except ValueError:
                raise ValidationError(
                    f"Unknown operation '{name}'",
                    details={"allowed": [k.value for k in OperationKind]},
                ) from None
            if kind in kinds:
                raise ValidationError(f"Operation '{kind.value}' selected more than once")
            kinds.append(kind)
        return kinds

    @staticmethod
    def _parse_configs(
        kinds: list[OperationKind],
        configs: dict[str, Any],
    ) -> dict[OperationKind, OperationConfig]:
        unexpected = set(configs) - {k.value for k in kinds}
        if unexpected:
            raise ValidationError(
                f"Configuration given for operations that were not selected: {sorted(unexpected)}"
            )

        parsed: dict[OperationKind, OperationConfig] = {}
        for kind in kinds:
            raw = configs.get(kind.value)
            if raw is None:
                raise ValidationError(f"Missing configuration for operation '{kind.value}'")
            if isinstance(raw, pydantic.BaseModel):
                raw = raw.model_dump()
            if not isinstance(raw, dict):
                raise ValidationError(f"Configuration for '{kind.value}' must be an object")
            try:
                parsed[kind] = operation_config_adapter.validate_python({**raw, "operation": kind.value})
            except pydantic.ValidationError as exc:
                problems = [
                    f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                    for err in exc.errors()
                ]
                raise ValidationError(
                    f"Invalid configuration for '{kind.value}': {'; '.join(problems)}",
                    operation=kind.value,
                    details={"errors": problems},
                ) from exc
        return parsed

    # ─── Read ──────────────────────────────────────────

    async def get_pipeline_status(self, job_id: str) -> PipelineStatus:
        job = await self._get_job(job_id)
        return PipelineStatus(
            job=job,
            intermediate_documents=await self.intermediates.list_for_job(job.id),
            current_operation_progress=await self.progress.current_progress(job),
        )

    async def list_pipelines(
        self,
        *,
        document_id: str | None = None,
        status: str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[PipelineJobRecord]:
        status_filter = None
        if status is not None:
            try:
                status_filter = JobStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown status '{status}'") from None
        if offset < 0 or not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"offset must be >= 0 and limit between 1 and {MAX_PAGE_SIZE}")
        return await self.store.list_jobs(
            document_id=document_id, status=status_filter, offset=offset, limit=limit,
        )

    async def download_output(
        self,
        job_id: str,
        download_type: str = DownloadType.FINAL,
        stage_index: int | None = None,
    ) -> DownloadedDocument:
        job = await self._get_job(job_id)
        try:
            kind = DownloadType(download_type)
        except ValueError:
            raise ValidationError(f"Unknown download type '{download_type}'") from None

        match kind:
            case DownloadType.FINAL:
                if job.status != JobStatus.COMPLETED or not job.final_document_path:
                    raise NotFoundError("Final document is not available yet", pipeline_job_id=job.id)
                path = job.final_document_path
            case DownloadType.INTERMEDIATE:
                if stage_index is None:
                    raise ValidationError("index is required for intermediate downloads")
                record = await self.intermediates.latest_for_stage(job.id, stage_index)
                if record is None:
                    raise NotFoundError(
                        f"No intermediate document for stage {stage_index}",
                        pipeline_job_id=job.id,
                    )
                path = record.storage_path

        return DownloadedDocument(
            data=await self.documents.download(path),
            filename=PurePosixPath(path).name,
            content_type=codec_for_path(path).content_type,
        )

    # ─── Control ───────────────────────────────────────

    async def approve_stage(self, job_id: str, approved_item_ids: list[str]) -> PipelineJobRecord:
        """
        Accept a subset of the current stage's suggestions and enqueue the apply.

        An empty list rejects every suggestion; the stage still produces
        an (unchanged) output document and the pipeline continues.
        """
        job = await self._get_job(job_id)
        if job.status != JobStatus.AWAITING_APPROVAL:
            raise InvalidStateError(
                f"Pipeline is not awaiting approval (status: {job.status.value})",
                status=job.status.value,
                pipeline_job_id=job.id,
            )
        result = job.current_result()
        if result is None:
            raise InvalidStateError("Current stage has no result to approve", pipeline_job_id=job.id)

        approved = list(dict.fromkeys(approved_item_ids))
        reviewed = result.model_copy(update={
            "approval_status": ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED,
            "approved_items": approved,
        })
        index = job.current_operation_index
        moved = await self.store.update_job_if_status(
            job.id,
            [JobStatus.AWAITING_APPROVAL],
            status=JobStatus.APPLYING_CHANGES,
            operation_results=[*job.operation_results[:index], reviewed],
        )
        if not moved:
            raise InvalidStateError("Pipeline status changed while approving", pipeline_job_id=job.id)

        logger.info(
            "Stage approved",
            pipeline_job_id=job.id,
            stage_index=index,
            operation=result.operation.value,
            approved_items=len(approved),
        )
        await self.dispatcher.enqueue_apply(job.id)
        return await self._get_job(job.id)

    async def cancel_pipeline(self, job_id: str) -> PipelineJobRecord:
        """Flip to cancelled; the running worker stops at its next checkpoint."""
        job = await self._get_job(job_id)
        if job.status not in CANCELLABLE_STATUSES:
            raise InvalidStateError(
                f"Pipeline cannot be cancelled (status: {job.status.value})",
                status=job.status.value,
                pipeline_job_id=job.id,
            )
        moved = await self.store.update_job_if_status(
            job.id,
            CANCELLABLE_STATUSES,
            status=JobStatus.CANCELLED,
            completed_at=datetime.now(timezone.utc),
        )
        if not moved:
            raise InvalidStateError("Pipeline status changed while cancelling", pipeline_job_id=job.id)
        logger.info("Pipeline cancelled", pipeline_job_id=job.id, previous_status=job.status.value)
        return await self._get_job(job.id)

    async def pause_resume(self, job_id: str, action: str) -> PipelineJobRecord:
        try:
            pause_action = PauseAction(action)
        except ValueError:
            raise ValidationError(f"Unknown action '{action}', expected 'pause' or 'resume'") from None

        job = await self._get_job(job_id)
        match pause_action:
            case PauseAction.PAUSE:
                expected, target = JobStatus.RUNNING, JobStatus.PAUSED
            case PauseAction.RESUME:
                expected, target = JobStatus.PAUSED, JobStatus.RUNNING

        if job.status != expected:
            raise InvalidStateError(
                f"Cannot {pause_action.value} a pipeline that is {job.status.value}",
                status=job.status.value,
                pipeline_job_id=job.id,
            )
        # The worker that is polling the paused job picks the resume up; no re-enqueue
        moved = await self.store.update_job_if_status(job.id, [expected], status=target)
        if not moved:
            raise InvalidStateError(
                f"Pipeline status changed while trying to {pause_action.value}",
                pipeline_job_id=job.id,
            )
        logger.info(f"Pipeline {target.value}", pipeline_job_id=job.id)
        return await self._get_job(job.id)

    # ─── Helpers ───────────────────────────────────────

    async def _get_job(self, job_id: str) -> PipelineJobRecord:
        job = await self.store.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Pipeline {job_id} not found", pipeline_job_id=job_id)
        return job
