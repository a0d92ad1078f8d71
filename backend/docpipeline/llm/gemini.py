"""Google Gemini client (google-genai)."""

from __future__ import annotations

from google import genai

from docpipeline.core.constants import Provider
from docpipeline.core.logging import get_logger
from docpipeline.core.tracing import traceable_step
from docpipeline.llm.base import Generation, TextGenerator
from docpipeline.pipeline.errors import EmptyResponseError

logger = get_logger(__name__)


class GeminiGenerator(TextGenerator):
    provider = Provider.GEMINI

    def __init__(self, model: str, *, api_key: str, max_output_tokens: int = 8192) -> None:
        super().__init__(model)
        self.client = genai.Client(api_key=api_key)
        self.max_output_tokens = max_output_tokens

    @traceable_step(name="gemini_generate", run_type="llm", tags=["llm", "gemini"])
    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.3,
        json_mode: bool = True,
    ) -> Generation:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=genai.types.GenerateContentConfig(
                system_instruction=system,
                temperature=temperature,
                max_output_tokens=self.max_output_tokens,
                response_mime_type="application/json" if json_mode else None,
            ),
        )

        text = (response.text or "").strip()
        if not text:
            raise EmptyResponseError(f"Gemini returned an empty response (model={self.model})")

        usage = response.usage_metadata
        logger.debug("Gemini response received", model=self.model, response_length=len(text))
        return Generation(
            text=text,
            model=self.model,
            input_tokens=(usage.prompt_token_count or 0) if usage else 0,
            output_tokens=(usage.candidates_token_count or 0) if usage else 0,
        )
