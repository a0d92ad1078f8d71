"""
StageContext — everything one stage run needs, handed to its executor.

The engine builds a fresh context per stage.  Executors read the source
document through `documents`, talk to the provider through `session`,
checkpoint through `store`, and call `checkpoint()` before each batch so
pause and cancel requests are observed between provider calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable

from docpipeline.core.config import PipelineConfig
from docpipeline.core.constants import OperationKind
from docpipeline.llm.base import ProviderSession
from docpipeline.pipeline.models import OperationConfig, StageMetadata, Suggestion
from docpipeline.pipeline.store import PipelineStore
from docpipeline.storage.base import DocumentStore


async def _no_checkpoint() -> None:
    return None


@dataclass
class StageContext:
    """Inputs of one stage run."""

    pipeline_job_id: str | None
    document_id: str
    operation: OperationKind
    operation_index: int
    source_document_path: str
    config: OperationConfig
    pipeline_config: PipelineConfig
    store: PipelineStore
    documents: DocumentStore
    session: ProviderSession

    # Waits while the job is paused; raises PipelineCancelled once it is not running
    checkpoint: Callable[[], Awaitable[None]] = _no_checkpoint

    @property
    def batch_size(self) -> int:
        return self.pipeline_config.batch_size


@dataclass
class StageOutcome:
    """What an executor hands back to the engine."""

    operation_job_id: str
    requires_approval: bool
    metadata: StageMetadata
    suggestions: list[Suggestion] = field(default_factory=list)

    # Set only by stages that write their document directly (no approval)
    output_document: bytes | None = None
    output_suffix: str = ""
    output_content_type: str | None = None
