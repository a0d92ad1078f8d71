"""Tests for pipeline/models.py — operation config variants and records."""

from __future__ import annotations

import pydantic
import pytest

from docpipeline.core.config import PipelineConfig
from docpipeline.core.constants import AdaptStyle, JobStatus, OperationKind, Provider, StageStatus
from docpipeline.pipeline.models import (
    AdaptConfig,
    AdjustMetadata,
    OperationResult,
    PipelineJobRecord,
    UpdateConfig,
    operation_config_adapter,
)


class TestOperationConfigs:

    def test_discriminates_on_operation(self):
        config = operation_config_adapter.validate_python(
            {"operation": "adapt", "model": "gpt-4o", "provider": "openai", "style": "academic"}
        )
        assert isinstance(config, AdaptConfig)
        assert config.style == AdaptStyle.ACADEMIC

    def test_update_defaults_to_gemini(self):
        config = operation_config_adapter.validate_python({"operation": "update", "model": "gemini-2.5-flash"})
        assert isinstance(config, UpdateConfig)
        assert config.provider == "gemini"

    def test_custom_style_requires_instructions(self):
        with pytest.raises(pydantic.ValidationError, match="custom_instructions"):
            AdaptConfig(model="gpt-4o", provider="openai", style="custom", custom_instructions="  ")

    def test_translate_rejects_unsupported_provider(self):
        with pytest.raises(pydantic.ValidationError):
            operation_config_adapter.validate_python(
                {"operation": "translate", "model": "m", "provider": "anthropic", "target_language": "en"}
            )

    def test_unknown_fields_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            operation_config_adapter.validate_python(
                {"operation": "improve", "model": "m", "provider": "openai", "temperature": 1}
            )

    def test_configs_are_frozen(self):
        config = UpdateConfig(model="gemini-2.5-flash")
        with pytest.raises(pydantic.ValidationError):
            config.model = "other"


class TestPipelineJobRecord:

    def _job(self, **overrides) -> PipelineJobRecord:
        values = {
            "id": "job-1",
            "document_id": "doc-1",
            "selected_operations": ["translate", "adjust"],
            "operation_configs": {
                "translate": {"operation": "translate", "model": "m", "provider": "openai", "target_language": "en"},
                "adjust": {"operation": "adjust", "model": "m", "provider": "openai", "instructions": "x"},
            },
            "status": "running",
        }
        values.update(overrides)
        return PipelineJobRecord.model_validate(values)

    def test_parses_persisted_json(self):
        job = self._job()
        assert job.selected_operations == [OperationKind.TRANSLATE, OperationKind.ADJUST]
        assert job.total_operations == 2
        assert job.is_terminal is False
        assert job.current_result() is None

    def test_current_result(self):
        result = OperationResult(
            operation=OperationKind.TRANSLATE,
            operation_index=0,
            status=StageStatus.COMPLETED,
            metadata=AdjustMetadata(),
        )
        job = self._job(operation_results=[result.model_dump(mode="json")], status=JobStatus.COMPLETED)

        assert job.current_result() == job.operation_results[0]
        assert job.is_terminal is True


class TestPipelineConfig:

    def test_price_per_million_tokens(self):
        config = PipelineConfig()
        assert config.price("gpt-4o-mini", 1_000_000, 1_000_000) == pytest.approx(0.75)
        assert config.price("unknown-model", 10, 10) == 0.0

    def test_provider_retry_policies(self):
        config = PipelineConfig()
        assert config.retry_policy_for(Provider.GEMINI).max_attempts == 4
        assert config.retry_policy_for(Provider.OPENAI).max_attempts == 10
