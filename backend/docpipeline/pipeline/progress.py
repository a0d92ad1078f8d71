"""
Progress — written by executors, read by the status endpoint.

`ProgressReporter` checkpoints fine-grained progress onto a stage's
sub-operation record between batches.  `ProgressAggregator` turns that
record back into a percentage/message for the stage the pipeline is
currently running.
"""

from __future__ import annotations

from dataclasses import dataclass

from docpipeline.core.constants import JobStatus
from docpipeline.pipeline.models import PipelineJobRecord, Suggestion
from docpipeline.pipeline.store import PipelineStore


@dataclass(frozen=True)
class StageProgress:
    operation: str
    percentage: int
    message: str | None = None


class ProgressReporter:
    """Checkpoint helper bound to one sub-operation record."""

    def __init__(self, store: PipelineStore, operation_job_id: str, *, unit: str = "Section") -> None:
        self.store = store
        self.operation_job_id = operation_job_id
        self.unit = unit

    async def report(
        self,
        current: int,
        total: int,
        *,
        percentage: int | None = None,
        message: str | None = None,
        suggestions: list[Suggestion] | None = None,
    ) -> None:
        """
        Record `current` of `total` units done; percentage defaults to the
        plain ratio.  Passing `suggestions` also saves the partial result so
        far, which survives a later failure of the stage.
        """
        if percentage is None:
            percentage = int(current / total * 100) if total else 0
        values = {
            "current_section": current,
            "total_sections": total,
            "progress_percentage": max(0, min(100, percentage)),
            "progress_message": message or f"{self.unit} {current} of {total}",
        }
        if suggestions is not None:
            values["result"] = {"suggestions": [s.model_dump(mode="json") for s in suggestions]}
        await self.store.update_operation_job(self.operation_job_id, **values)


class ProgressAggregator:
    """Reads the live sub-operation record for the running stage."""

    def __init__(self, store: PipelineStore) -> None:
        self.store = store

    async def current_progress(self, job: PipelineJobRecord) -> StageProgress | None:
        if job.status != JobStatus.RUNNING:
            return None
        if job.current_operation_index >= job.total_operations:
            return None

        operation = job.selected_operations[job.current_operation_index]
        sub_job = None

        result = job.current_result()
        if result is not None and result.operation_job_id:
            sub_job = await self.store.get_operation_job(result.operation_job_id)

        # Stage just started: its result row is not written yet
        if sub_job is None:
            sub_job = await self.store.find_active_operation_job(job.document_id, operation)

        if sub_job is None:
            return None

        return StageProgress(
            operation=operation.value,
            percentage=sub_job.progress_percentage,
            message=sub_job.progress_message,
        )
