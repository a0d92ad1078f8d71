"""AdjustExecutor — applies the user's own instructions, nothing else."""

from __future__ import annotations

from docpipeline.core.constants import OperationKind, SubJobStatus
from docpipeline.pipeline.executors.base import SuggestionExecutor, json_list, suggestions_from_items
from docpipeline.pipeline.executors.prompts import adjust_prompt
from docpipeline.pipeline.models import AdjustConfig, AdjustMetadata


class AdjustExecutor(SuggestionExecutor):
    operation = OperationKind.ADJUST
    description = "Adjust with custom instructions"
    running_status = SubJobStatus.ADJUSTING

    async def analyze_batch(self, ctx, batch, state):
        config: AdjustConfig = ctx.config
        payload = await ctx.session.generate_json(
            adjust_prompt(batch, config.instructions, config.creativity),
            temperature=config.creativity / 10,
        )
        return suggestions_from_items(
            json_list(payload, "adjustments"),
            proposed_key="adjustedText",
            batch=batch,
            detail_keys=("instructionReference",),
        )

    def build_metadata(self, ctx, source, suggestions):
        return AdjustMetadata()
