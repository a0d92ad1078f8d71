"""
Typed records the engine works with.

Operation configs and stage metadata are tagged unions keyed by the
`operation` field, so every consumer can `match` on the variant instead
of poking at open dictionaries.  Records mirror the persisted rows and
are what `PipelineStore` returns.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from docpipeline.core.constants import (
    AdaptStyle,
    ApprovalStatus,
    JobStatus,
    OperationKind,
    StageStatus,
    SubJobStatus,
    TERMINAL_STATUSES,
)


# ═══════════════════════════════════════════════════════════
#  Operation configs
# ═══════════════════════════════════════════════════════════

class _BaseConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    model: str = Field(..., min_length=1)


class AdjustConfig(_BaseConfig):
    operation: Literal["adjust"] = "adjust"
    instructions: str = Field(..., min_length=1)
    creativity: int = Field(5, ge=0, le=10)
    provider: Literal["openai", "gemini", "grok"]


class UpdateConfig(_BaseConfig):
    operation: Literal["update"] = "update"
    provider: Literal["gemini", "openai"] = "gemini"


class ImproveConfig(_BaseConfig):
    operation: Literal["improve"] = "improve"
    provider: Literal["openai", "gemini"]


class AdaptConfig(_BaseConfig):
    operation: Literal["adapt"] = "adapt"
    style: AdaptStyle
    target_audience: str | None = None
    custom_instructions: str | None = None
    provider: Literal["openai", "gemini"]

    @model_validator(mode="after")
    def _custom_needs_instructions(self) -> "AdaptConfig":
        if self.style == AdaptStyle.CUSTOM and not (self.custom_instructions or "").strip():
            raise ValueError("custom_instructions is required when style is 'custom'")
        return self


class TranslateConfig(_BaseConfig):
    operation: Literal["translate"] = "translate"
    source_language: str | None = None
    target_language: str = Field(..., min_length=1)
    provider: Literal["openai", "gemini", "grok"]
    max_pages: int | None = Field(None, ge=1)


OperationConfig = Annotated[
    Union[AdjustConfig, UpdateConfig, ImproveConfig, AdaptConfig, TranslateConfig],
    Field(discriminator="operation"),
]

operation_config_adapter: TypeAdapter = TypeAdapter(OperationConfig)


# ═══════════════════════════════════════════════════════════
#  Stage metadata
# ═══════════════════════════════════════════════════════════

class _BaseMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    duration_seconds: float = 0.0
    cost_usd: float = 0.0
    items_generated: int = 0
    items_processed: int = 0
    provider: str | None = None
    model: str | None = None
    provider_calls: int = 0
    applied_at: datetime | None = None


class AdjustMetadata(_BaseMetadata):
    operation: Literal["adjust"] = "adjust"


class UpdateMetadata(_BaseMetadata):
    operation: Literal["update"] = "update"
    total_references: int = 0
    vigentes: int = 0
    alteradas: int = 0
    revogadas: int = 0
    substituidas: int = 0
    manual_review: int = 0


class ImproveMetadata(_BaseMetadata):
    operation: Literal["improve"] = "improve"
    sections_analyzed: int = 0


class AdaptMetadata(_BaseMetadata):
    operation: Literal["adapt"] = "adapt"
    style: AdaptStyle | None = None
    by_adaptation_type: dict[str, int] = Field(default_factory=dict)


class TranslateMetadata(_BaseMetadata):
    operation: Literal["translate"] = "translate"
    source_language: str | None = None
    target_language: str | None = None
    total_chunks: int = 0


StageMetadata = Annotated[
    Union[AdjustMetadata, UpdateMetadata, ImproveMetadata, AdaptMetadata, TranslateMetadata],
    Field(discriminator="operation"),
]


# ═══════════════════════════════════════════════════════════
#  Suggestion
# ═══════════════════════════════════════════════════════════

class Suggestion(BaseModel):
    """One proposed edit produced by a stage's analysis phase."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    original_text: str
    proposed_text: str
    reason: str = ""
    category: str | None = None
    paragraph_index: int | None = None
    details: dict[str, Any] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════
#  Persisted records
# ═══════════════════════════════════════════════════════════

class OperationResult(BaseModel):
    """One entry of `PipelineJob.operation_results`."""

    operation: OperationKind
    operation_index: int
    status: StageStatus
    output_document_path: str | None = None
    output_document_size: int | None = None
    operation_job_id: str | None = None
    requires_approval: bool = False
    approval_status: ApprovalStatus | None = None
    approved_items: list[str] = Field(default_factory=list)
    metadata: StageMetadata
    completed_at: datetime | None = None


class DocumentRecord(BaseModel):
    id: str
    filename: str
    storage_path: str
    content_type: str | None = None
    size_bytes: int | None = None
    created_at: datetime | None = None


class PipelineJobRecord(BaseModel):
    id: str
    document_id: str
    selected_operations: list[OperationKind]
    operation_configs: dict[OperationKind, OperationConfig]
    status: JobStatus
    current_operation_index: int = 0
    operation_results: list[OperationResult] = Field(default_factory=list)
    final_document_path: str | None = None
    total_cost_usd: float = 0.0
    total_duration_seconds: float = 0.0
    error_message: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def total_operations(self) -> int:
        return len(self.selected_operations)

    def current_result(self) -> OperationResult | None:
        """Result row of the stage at `current_operation_index`, if written."""
        index = self.current_operation_index
        if index < len(self.operation_results):
            return self.operation_results[index]
        return None


class IntermediateDocumentRecord(BaseModel):
    id: str
    pipeline_job_id: str
    operation_index: int
    operation_name: OperationKind
    storage_path: str
    file_size_bytes: int
    operation_job_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class OperationJobRecord(BaseModel):
    """Sub-operation tracking record (one per stage run)."""

    id: str
    operation: OperationKind
    document_id: str
    pipeline_job_id: str | None = None
    status: SubJobStatus
    current_section: int = 0
    total_sections: int = 0
    progress_percentage: int = 0
    progress_message: str | None = None
    result: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def suggestions(self) -> list[Suggestion]:
        return [Suggestion.model_validate(s) for s in self.result.get("suggestions", [])]
