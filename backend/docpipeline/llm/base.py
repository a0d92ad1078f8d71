"""
TextGenerator — the narrow interface every provider client implements,
plus the retry-wrapped handle executors actually call.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from docpipeline.core.config import PipelineConfig
from docpipeline.core.logging import get_logger
from docpipeline.llm.retry import RetryableCaller
from docpipeline.pipeline.errors import ProviderFatal

logger = get_logger(__name__)


@dataclass
class Generation:
    """One provider answer with its token usage."""

    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


class TextGenerator(ABC):
    """A single provider/model pair."""

    provider: str = "unknown"

    def __init__(self, model: str) -> None:
        self.model = model

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.3,
        json_mode: bool = True,
    ) -> Generation:
        """Send one prompt.  Raise EmptyResponseError when nothing usable comes back."""
        ...


class ProviderSession:
    """
    What executors hold: a generator, its retry wrapper and a running
    usage/cost tally for the stage.
    """

    def __init__(
        self,
        generator: TextGenerator,
        caller: RetryableCaller,
        config: PipelineConfig,
    ) -> None:
        self.generator = generator
        self.caller = caller
        self.config = config
        self.calls = 0
        self.input_tokens = 0
        self.output_tokens = 0
        self.cost_usd = 0.0

    @property
    def model(self) -> str:
        return self.generator.model

    async def generate(self, prompt: str, **kwargs: Any) -> Generation:
        generation = await self.caller.call(self.generator.generate, prompt, **kwargs)
        self.calls += 1
        self.input_tokens += generation.input_tokens
        self.output_tokens += generation.output_tokens
        self.cost_usd += self.config.price(
            generation.model, generation.input_tokens, generation.output_tokens
        )
        return generation

    async def generate_json(self, prompt: str, **kwargs: Any) -> Any:
        """Generate and parse a JSON answer; malformed JSON is fatal."""
        generation = await self.generate(prompt, json_mode=True, **kwargs)
        return parse_json_payload(generation.text)


def parse_json_payload(text: str) -> Any:
    """Parse model output as JSON, tolerating a markdown code fence."""
    response_text = text.strip()

    # Strip markdown code block if present
    if response_text.startswith("```"):
        lines = response_text.split("\n")
        response_text = "\n".join(lines[1:-1])

    try:
        return json.loads(response_text)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse provider JSON", error=str(exc), preview=response_text[:300])
        raise ProviderFatal(f"Provider returned malformed JSON: {exc}") from exc
