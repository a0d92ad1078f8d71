"""
ImproveExecutor — writing-quality suggestions.

One global-context call summarises the document first so every batch
is reviewed against the same tone, audience and key terms.
"""

from __future__ import annotations

from docpipeline.core.constants import OperationKind, SubJobStatus
from docpipeline.core.logging import get_logger
from docpipeline.pipeline.executors.base import SuggestionExecutor, json_list, suggestions_from_items
from docpipeline.pipeline.executors.prompts import IMPROVE_CATEGORIES, improve_context_prompt, improve_prompt
from docpipeline.pipeline.models import ImproveMetadata

logger = get_logger(__name__)

# Characters of body text sent with the outline for the global context
CONTEXT_SAMPLE_CHARS = 6000


class ImproveExecutor(SuggestionExecutor):
    operation = OperationKind.IMPROVE
    description = "Improve writing"
    running_status = SubJobStatus.ANALYZING

    async def prepare(self, ctx, source):
        await ctx.checkpoint()
        structure = source.structure
        sample = "\n\n".join(p.text for p in structure.body_paragraphs)[:CONTEXT_SAMPLE_CHARS]
        payload = await ctx.session.generate_json(
            improve_context_prompt([s.title for s in structure.sections], sample),
        )
        global_context = payload if isinstance(payload, dict) else {}
        logger.info("Global context generated", keys=sorted(global_context))
        return {"global_context": global_context}

    async def analyze_batch(self, ctx, batch, state):
        payload = await ctx.session.generate_json(improve_prompt(batch, state["global_context"]))
        suggestions = suggestions_from_items(
            json_list(payload, "improvements"),
            proposed_key="improvedText",
            batch=batch,
            category_key="category",
            default_category="clarity",
        )
        for suggestion in suggestions:
            if suggestion.category not in IMPROVE_CATEGORIES:
                suggestion.category = "clarity"
        return suggestions

    def build_metadata(self, ctx, source, suggestions):
        sections = {b.section_number for b in source.structure.batches(ctx.batch_size)}
        return ImproveMetadata(sections_analyzed=len(sections))
