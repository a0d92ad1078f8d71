"""
TranslateExecutor — translates paragraph by paragraph and writes the
output document directly.  Needs no approval.

Headings are translated along with body text.  A paragraph the
provider leaves out of its answer keeps its original text.
"""

from __future__ import annotations

from docpipeline.core.constants import OperationKind, SubJobStatus
from docpipeline.core.logging import get_logger
from docpipeline.pipeline.executors.base import ExecutorWork, OperationExecutor, json_list
from docpipeline.pipeline.executors.prompts import translate_prompt
from docpipeline.pipeline.models import TranslateConfig, TranslateMetadata

logger = get_logger(__name__)

TRANSLATE_TEMPERATURE = 0.2

# Rough page size used to honour `max_pages`
PARAGRAPHS_PER_PAGE = 12


class TranslateExecutor(OperationExecutor):
    operation = OperationKind.TRANSLATE
    description = "Translate"
    requires_approval = False
    running_status = SubJobStatus.TRANSLATING
    progress_unit = "Chunk"

    async def run(self, ctx, source, progress) -> ExecutorWork:
        config: TranslateConfig = ctx.config
        batches = source.structure.batches(ctx.batch_size, include_headings=True)

        if config.max_pages is not None:
            limit = config.max_pages * PARAGRAPHS_PER_PAGE
            batches = [b for b in batches if b.paragraphs[0].index < limit]
            for batch in batches:
                batch.paragraphs = [p for p in batch.paragraphs if p.index < limit]

        total = len(batches)
        translated: dict[int, str] = {}

        for number, batch in enumerate(batches, start=1):
            await ctx.checkpoint()
            payload = await ctx.session.generate_json(
                translate_prompt(batch, config.source_language, config.target_language),
                temperature=TRANSLATE_TEMPERATURE,
            )
            for item in json_list(payload, "translations"):
                if not isinstance(item, dict):
                    continue
                position, text = item.get("index"), item.get("text")
                if isinstance(position, int) and 0 <= position < len(batch.paragraphs) and isinstance(text, str) and text.strip():
                    translated[batch.paragraphs[position].index] = text.strip()
            await progress.report(number, total)

        missing = sum(len(b.paragraphs) for b in batches) - len(translated)
        if missing:
            logger.warning(
                "Some paragraphs were not translated and keep their original text",
                missing=missing,
                pipeline_job_id=ctx.pipeline_job_id,
            )

        output = source.codec.rewrite_paragraphs(source.data, translated)
        return ExecutorWork(
            metadata=TranslateMetadata(
                source_language=config.source_language,
                target_language=config.target_language,
                total_chunks=total,
                items_processed=len(translated),
            ),
            output_document=output,
        )
