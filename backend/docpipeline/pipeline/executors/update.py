"""
UpdateExecutor — brings cited legal norms up to date.

Two phases:
    1. Detect norm references batch by batch        (progress 0–10)
    2. Verify the references in batches             (progress 10–100)

References the provider reports as amended, revoked or replaced, and
for which it proposes replacement text, become suggestions.  Only the
provider is consulted; official legal sources are not queried.
"""

from __future__ import annotations

import math
from typing import Any

from docpipeline.core.constants import OperationKind, SubJobStatus
from docpipeline.core.logging import get_logger
from docpipeline.documents.structure import Batch
from docpipeline.pipeline.executors.base import ExecutorWork, OperationExecutor, json_list
from docpipeline.pipeline.executors.prompts import NORM_STATUSES, detect_norms_prompt, verify_norms_prompt
from docpipeline.pipeline.models import Suggestion, UpdateMetadata

logger = get_logger(__name__)

UPDATE_TEMPERATURE = 0.1
DETECTION_SHARE = 10
OUTDATED_STATUSES = ("alterada", "revogada", "substituida")


def _reference_from_item(item: Any, batch: Batch) -> dict[str, Any] | None:
    if not isinstance(item, dict):
        return None
    text = (item.get("text") or "").strip()
    if not text:
        return None

    paragraph_index = None
    context = ""
    position = item.get("paragraphIndex")
    if isinstance(position, int) and 0 <= position < len(batch.paragraphs):
        paragraph = batch.paragraphs[position]
        paragraph_index = paragraph.index
        context = paragraph.text

    return {
        "text": text,
        "type": item.get("type"),
        "number": item.get("number"),
        "year": item.get("year"),
        "paragraph_index": paragraph_index,
        "context": context,
    }


class UpdateExecutor(OperationExecutor):
    operation = OperationKind.UPDATE
    description = "Update legal norms"
    running_status = SubJobStatus.ANALYZING
    progress_unit = "Reference"

    async def run(self, ctx, source, progress) -> ExecutorWork:
        references = await self._detect(ctx, source, progress)
        total = len(references)
        logger.info("Norm references detected", total=total, pipeline_job_id=ctx.pipeline_job_id)

        if not total:
            await progress.report(0, 0, percentage=100, message="No norm references found")
            return ExecutorWork(metadata=UpdateMetadata(), result_payload={"norm_references": []})

        verified = await self._verify(ctx, references, progress)
        suggestions = [s for s in (self._suggestion_for(ref) for ref in verified) if s is not None]

        metadata = UpdateMetadata(
            total_references=total,
            manual_review=sum(1 for ref in verified if ref["manual_review"]),
            **{
                key: sum(1 for ref in verified if ref["status"] == status)
                for key, status in (
                    ("vigentes", "vigente"),
                    ("alteradas", "alterada"),
                    ("revogadas", "revogada"),
                    ("substituidas", "substituida"),
                )
            },
        )
        return ExecutorWork(
            metadata=metadata,
            suggestions=suggestions,
            result_payload={"norm_references": verified},
        )

    # ── Phase 1 ──────────────────────────────────────

    async def _detect(self, ctx, source, progress) -> list[dict[str, Any]]:
        batches = source.structure.batches(ctx.batch_size)
        references: list[dict[str, Any]] = []
        seen: set[str] = set()

        for position, batch in enumerate(batches, start=1):
            await ctx.checkpoint()
            payload = await ctx.session.generate_json(
                detect_norms_prompt(batch),
                temperature=UPDATE_TEMPERATURE,
            )
            for item in json_list(payload, "references"):
                reference = _reference_from_item(item, batch)
                if reference is not None and reference["text"] not in seen:
                    seen.add(reference["text"])
                    references.append(reference)

            await progress.report(
                batch.section_number,
                batch.total_sections,
                percentage=int(position / len(batches) * DETECTION_SHARE),
                message=f"Detecting norms: section {batch.section_number} of {batch.total_sections}",
            )
        return references

    # ── Phase 2 ──────────────────────────────────────

    async def _verify(self, ctx, references, progress) -> list[dict[str, Any]]:
        total = len(references)
        size = ctx.batch_size
        verified: list[dict[str, Any]] = []

        for start in range(0, total, size):
            await ctx.checkpoint()
            chunk = references[start:start + size]
            payload = await ctx.session.generate_json(
                verify_norms_prompt(chunk),
                temperature=UPDATE_TEMPERATURE,
            )
            results = {
                r["index"]: r
                for r in json_list(payload, "results")
                if isinstance(r, dict) and isinstance(r.get("index"), int)
            }
            for i, reference in enumerate(chunk):
                result = results.get(i, {})
                status = result.get("status") if result.get("status") in NORM_STATUSES else None
                verified.append({
                    **reference,
                    "status": status,
                    "updated_text": (result.get("updatedText") or "").strip() or None,
                    "explanation": result.get("explanation") or "",
                    # Unverifiable references go to a human
                    "manual_review": bool(result.get("manualReview")) or status is None,
                })

            current = min(start + size, total)
            await progress.report(
                current,
                total,
                percentage=DETECTION_SHARE + math.floor(current / total * (100 - DETECTION_SHARE)),
            )
        return verified

    @staticmethod
    def _suggestion_for(reference: dict[str, Any]) -> Suggestion | None:
        updated = reference["updated_text"]
        if reference["status"] not in OUTDATED_STATUSES or not updated or updated == reference["text"]:
            return None
        return Suggestion(
            original_text=reference["text"],
            proposed_text=updated,
            reason=reference["explanation"],
            category=reference["status"],
            paragraph_index=reference["paragraph_index"],
            details={
                "norm_type": reference["type"],
                "number": reference["number"],
                "year": reference["year"],
                "manual_review": reference["manual_review"],
            },
        )
