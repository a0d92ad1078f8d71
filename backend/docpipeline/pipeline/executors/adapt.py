"""AdaptExecutor — rewrites style and register for a target audience."""

from __future__ import annotations

from collections import Counter

from docpipeline.core.constants import AdaptStyle, OperationKind, SubJobStatus
from docpipeline.pipeline.executors.base import SuggestionExecutor, json_list, suggestions_from_items
from docpipeline.pipeline.executors.prompts import ADAPTATION_TYPES, adapt_prompt
from docpipeline.pipeline.models import AdaptConfig, AdaptMetadata

ADAPT_TEMPERATURE = 0.3


class AdaptExecutor(SuggestionExecutor):
    operation = OperationKind.ADAPT
    description = "Adapt style and audience"
    running_status = SubJobStatus.ADAPTING

    async def analyze_batch(self, ctx, batch, state):
        config: AdaptConfig = ctx.config
        payload = await ctx.session.generate_json(
            adapt_prompt(batch, config.style, config.target_audience, config.custom_instructions),
            temperature=ADAPT_TEMPERATURE,
        )
        suggestions = suggestions_from_items(
            json_list(payload, "suggestions"),
            proposed_key="adaptedText",
            batch=batch,
            category_key="adaptationType",
            default_category="style",
        )
        for suggestion in suggestions:
            if suggestion.category not in ADAPTATION_TYPES:
                suggestion.category = "style"
        return suggestions

    def batch_percentage(self, batch, position, total):
        # Completed sections plus the share of the current one
        sections = batch.total_sections
        done = (batch.section_number - 1) / sections * 100
        current = batch.batch_number / batch.batches_in_section * (100 / sections)
        return min(round(done + current), 100)

    def build_metadata(self, ctx, source, suggestions):
        config: AdaptConfig = ctx.config
        counts = Counter(s.category for s in suggestions)
        return AdaptMetadata(
            style=AdaptStyle(config.style),
            by_adaptation_type={kind: counts.get(kind, 0) for kind in ADAPTATION_TYPES},
        )
