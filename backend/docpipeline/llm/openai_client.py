"""OpenAI chat-completions client; also serves Grok through its compatible API."""

from __future__ import annotations

from openai import AsyncOpenAI

from docpipeline.core.constants import Provider
from docpipeline.core.logging import get_logger
from docpipeline.core.tracing import traceable_step
from docpipeline.llm.base import Generation, TextGenerator
from docpipeline.pipeline.errors import EmptyResponseError

logger = get_logger(__name__)


class OpenAIGenerator(TextGenerator):
    provider = Provider.OPENAI

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        base_url: str | None = None,
        provider: Provider = Provider.OPENAI,
    ) -> None:
        super().__init__(model)
        self.provider = provider
        # Retries and timeouts are handled by RetryableCaller
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    @traceable_step(name="openai_generate", run_type="llm", tags=["llm", "openai"])
    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.3,
        json_mode: bool = True,
    ) -> Generation:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            **kwargs,
        )

        content = response.choices[0].message.content if response.choices else None
        text = (content or "").strip()
        if not text:
            raise EmptyResponseError(
                f"{self.provider} returned an empty response (model={self.model})"
            )

        usage = response.usage
        logger.debug("Chat completion received", provider=str(self.provider), model=self.model)
        return Generation(
            text=text,
            model=self.model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )
