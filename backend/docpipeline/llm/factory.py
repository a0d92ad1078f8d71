"""Builds the retry-wrapped provider session for a stage configuration."""

from __future__ import annotations

from docpipeline.core.config import PipelineConfig
from docpipeline.core.constants import Provider
from docpipeline.llm.base import ProviderSession, TextGenerator
from docpipeline.llm.gemini import GeminiGenerator
from docpipeline.llm.openai_client import OpenAIGenerator
from docpipeline.llm.retry import RetryableCaller


def build_generator(provider: Provider, model: str, config: PipelineConfig) -> TextGenerator:
    credentials = config.credentials
    match provider:
        case Provider.GEMINI:
            return GeminiGenerator(
                model,
                api_key=credentials.google_api_key,
                max_output_tokens=config.max_output_tokens,
            )
        case Provider.OPENAI:
            return OpenAIGenerator(model, api_key=credentials.openai_api_key)
        case Provider.GROK:
            return OpenAIGenerator(
                model,
                api_key=credentials.xai_api_key,
                base_url=credentials.xai_base_url,
                provider=Provider.GROK,
            )
    raise ValueError(f"Unsupported provider: {provider}")


def build_session(provider: Provider, model: str, config: PipelineConfig) -> ProviderSession:
    """Generator + its provider's retry policy + a fresh usage tally."""
    generator = build_generator(provider, model, config)
    caller = RetryableCaller(config.retry_policy_for(provider), provider=str(provider))
    return ProviderSession(generator, caller, config)
