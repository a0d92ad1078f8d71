"""
OperationExecutor — abstract base class for every stage implementation.

The engine calls execute() once per stage.  The base class owns the
sub-operation record lifecycle (create → running → completed | error),
downloads and parses the source document, and fills in the common
metadata (duration, cost, provider).  Executors only implement run().
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any

from docpipeline.core.constants import OperationKind, SubJobStatus
from docpipeline.core.logging import get_logger
from docpipeline.documents.codecs import DocumentCodec, codec_for_path
from docpipeline.documents.structure import Batch, DocumentStructure
from docpipeline.pipeline.context import StageContext, StageOutcome
from docpipeline.pipeline.errors import PipelineCancelled, ValidationError
from docpipeline.pipeline.models import StageMetadata, Suggestion
from docpipeline.pipeline.progress import ProgressReporter

logger = get_logger(__name__)


@dataclass
class SourceDocument:
    """The downloaded stage input, parsed once."""

    path: str
    data: bytes
    codec: DocumentCodec
    structure: DocumentStructure

    @property
    def suffix(self) -> str:
        return PurePosixPath(self.path).suffix.lower()


@dataclass
class ExecutorWork:
    """Result of run(): suggestions for approval stages, a document otherwise."""

    metadata: StageMetadata
    suggestions: list[Suggestion] = field(default_factory=list)
    output_document: bytes | None = None
    result_payload: dict[str, Any] = field(default_factory=dict)


class OperationExecutor(ABC):
    """
    Base class for every operation kind.

    Subclasses MUST set:
        - operation           — the OperationKind they handle
        - description         — human-readable label for logs
        - running_status      — sub-job status while working
    and implement run(ctx, source, progress).
    """

    operation: OperationKind
    description: str = "No description"
    requires_approval: bool = True
    running_status: SubJobStatus = SubJobStatus.ANALYZING
    progress_unit: str = "Section"

    @abstractmethod
    async def run(
        self,
        ctx: StageContext,
        source: SourceDocument,
        progress: ProgressReporter,
    ) -> ExecutorWork:
        """Produce suggestions (or the output document) for the stage."""
        ...

    async def execute(self, ctx: StageContext) -> StageOutcome:
        if ctx.config.operation != self.operation:
            raise ValidationError(
                f"{self.operation.value} executor received a '{ctx.config.operation}' config",
                pipeline_job_id=ctx.pipeline_job_id,
                operation=self.operation.value,
            )
        started = time.monotonic()
        op_job = await ctx.store.create_operation_job(
            operation=self.operation,
            document_id=ctx.document_id,
            pipeline_job_id=ctx.pipeline_job_id,
            config=ctx.config.model_dump(mode="json"),
        )
        log = logger.bind(
            pipeline_job_id=ctx.pipeline_job_id,
            operation=self.operation.value,
            stage_index=ctx.operation_index,
            operation_job_id=op_job.id,
        )
        progress = ProgressReporter(ctx.store, op_job.id, unit=self.progress_unit)

        try:
            await ctx.store.update_operation_job(
                op_job.id,
                status=self.running_status,
                started_at=self._now(),
            )
            data = await ctx.documents.download(ctx.source_document_path)
            codec = codec_for_path(ctx.source_document_path)
            source = SourceDocument(
                path=ctx.source_document_path,
                data=data,
                codec=codec,
                structure=codec.extract(data),
            )
            log.info(
                f"{self.description} started",
                paragraphs=len(source.structure.paragraphs),
                sections=len(source.structure.sections),
            )
            work = await self.run(ctx, source, progress)

        except PipelineCancelled:
            log.info("Stage interrupted by cancellation")
            await self._mark_error(ctx, op_job.id, "Cancelled")
            raise
        except Exception as exc:
            log.error("Stage failed", error=str(exc), error_type=type(exc).__name__)
            await self._mark_error(ctx, op_job.id, str(exc))
            raise

        metadata = self._finalise_metadata(ctx, work, time.monotonic() - started)
        await ctx.store.update_operation_job(
            op_job.id,
            status=SubJobStatus.COMPLETED,
            progress_percentage=100,
            completed_at=self._now(),
            result={
                **work.result_payload,
                "suggestions": [s.model_dump(mode="json") for s in work.suggestions],
                "metadata": metadata.model_dump(mode="json"),
            },
        )
        log.info(
            f"{self.description} finished",
            items_generated=metadata.items_generated,
            duration_s=round(metadata.duration_seconds, 2),
            cost_usd=round(metadata.cost_usd, 6),
        )

        return StageOutcome(
            operation_job_id=op_job.id,
            requires_approval=self.requires_approval,
            metadata=metadata,
            suggestions=work.suggestions,
            output_document=work.output_document,
            output_suffix=source.suffix,
            output_content_type=source.codec.content_type,
        )

    # ─── Helpers available to all executors ────────────

    def _finalise_metadata(self, ctx: StageContext, work: ExecutorWork, duration: float) -> StageMetadata:
        session = ctx.session
        update: dict[str, Any] = {
            "duration_seconds": duration,
            "cost_usd": session.cost_usd,
            "provider": ctx.config.provider,
            "model": session.model,
            "provider_calls": session.calls,
        }
        if self.requires_approval:
            update["items_generated"] = len(work.suggestions)
        return work.metadata.model_copy(update=update)

    async def _mark_error(self, ctx: StageContext, op_job_id: str, message: str) -> None:
        await ctx.store.update_operation_job(
            op_job_id,
            status=SubJobStatus.ERROR,
            error_message=message,
            completed_at=self._now(),
        )

    def _now(self) -> datetime:
        """UTC-aware now."""
        return datetime.now(timezone.utc)


class SuggestionExecutor(OperationExecutor):
    """
    Shared batch loop for the approval-gated operations.

    Walks sections, sends each batch of body paragraphs to the
    provider, collects suggestions and checkpoints progress (including
    the partial suggestion list) after every batch.
    """

    async def run(self, ctx, source, progress) -> ExecutorWork:
        state = await self.prepare(ctx, source)
        batches = source.structure.batches(ctx.batch_size)
        suggestions: list[Suggestion] = []

        for position, batch in enumerate(batches, start=1):
            await ctx.checkpoint()
            found = await self.analyze_batch(ctx, batch, state)
            suggestions.extend(found)
            await progress.report(
                batch.section_number,
                batch.total_sections,
                percentage=self.batch_percentage(batch, position, len(batches)),
                message=f"Section {batch.section_number} of {batch.total_sections}",
                suggestions=suggestions,
            )

        return ExecutorWork(
            metadata=self.build_metadata(ctx, source, suggestions),
            suggestions=suggestions,
        )

    async def prepare(self, ctx: StageContext, source: SourceDocument) -> dict[str, Any]:
        """Optional work before the batch loop; the result is passed to every batch."""
        return {}

    @abstractmethod
    async def analyze_batch(
        self,
        ctx: StageContext,
        batch: Batch,
        state: dict[str, Any],
    ) -> list[Suggestion]:
        ...

    @abstractmethod
    def build_metadata(
        self,
        ctx: StageContext,
        source: SourceDocument,
        suggestions: list[Suggestion],
    ) -> StageMetadata:
        ...

    def batch_percentage(self, batch: Batch, position: int, total: int) -> int:
        return int(position / total * 100) if total else 100


def suggestions_from_items(
    items: Any,
    *,
    proposed_key: str,
    batch: Batch,
    category_key: str | None = None,
    default_category: str | None = None,
    detail_keys: tuple[str, ...] = (),
) -> list[Suggestion]:
    """
    Turn a provider's JSON list into Suggestions.

    Items without an original or proposed text, or that propose no
    change, cannot be applied and are dropped.  `paragraphIndex` is
    the position inside the batch and is mapped back to the document
    paragraph index.
    """
    if not isinstance(items, list):
        return []

    suggestions = []
    for item in items:
        if not isinstance(item, dict):
            continue
        original = (item.get("originalText") or "").strip()
        proposed = (item.get(proposed_key) or "").strip()
        if not original or not proposed or original == proposed:
            continue

        paragraph_index = None
        position = item.get("paragraphIndex")
        if isinstance(position, int) and 0 <= position < len(batch.paragraphs):
            paragraph_index = batch.paragraphs[position].index

        category = default_category
        if category_key is not None:
            category = item.get(category_key) or default_category

        details = {key: item[key] for key in detail_keys if item.get(key)}
        details["section_title"] = batch.section.title

        suggestions.append(Suggestion(
            original_text=original,
            proposed_text=proposed,
            reason=item.get("reason") or "",
            category=category,
            paragraph_index=paragraph_index,
            details=details,
        ))
    return suggestions


def json_list(payload: Any, key: str) -> list:
    """`payload[key]` when the model returned the expected object, else []."""
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return payload[key]
    return []
