"""
Pydantic Settings — centralized configuration loaded from environment variables.

`Settings` is only read at process entry points (API lifespan, Celery
tasks, Alembic).  Everything below those entry points receives an
immutable `PipelineConfig` built from it.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

from docpipeline.core.constants import Provider


class RetryPolicy(BaseModel):
    """Retry discipline for one provider family."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(..., ge=1)
    rate_limit_delay_seconds: float = Field(..., ge=0)
    timeout_delay_seconds: float = Field(15.0, ge=0)
    request_timeout_seconds: float = Field(120.0, gt=0)


class ModelPricing(BaseModel):
    """USD per one million tokens."""

    model_config = ConfigDict(frozen=True)

    input_per_million: float = 0.0
    output_per_million: float = 0.0


class ProviderCredentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    google_api_key: str = ""
    openai_api_key: str = ""
    xai_api_key: str = ""
    xai_base_url: str = "https://api.x.ai/v1"


DEFAULT_PRICING: dict[str, ModelPricing] = {
    "gemini-2.5-flash": ModelPricing(input_per_million=0.30, output_per_million=2.50),
    "gemini-2.5-pro": ModelPricing(input_per_million=1.25, output_per_million=10.00),
    "gpt-4o": ModelPricing(input_per_million=2.50, output_per_million=10.00),
    "gpt-4o-mini": ModelPricing(input_per_million=0.15, output_per_million=0.60),
    "gpt-4.1": ModelPricing(input_per_million=2.00, output_per_million=8.00),
    "gpt-4.1-mini": ModelPricing(input_per_million=0.40, output_per_million=1.60),
    "grok-3": ModelPricing(input_per_million=3.00, output_per_million=15.00),
}


class PipelineConfig(BaseModel):
    """
    Immutable runtime configuration handed to the engine, executors,
    provider clients and the service at construction time.
    """

    model_config = ConfigDict(frozen=True)

    credentials: ProviderCredentials = Field(default_factory=ProviderCredentials)
    pricing: dict[str, ModelPricing] = Field(default_factory=lambda: dict(DEFAULT_PRICING))
    retry_policies: dict[Provider, RetryPolicy] = Field(
        default_factory=lambda: {
            # Gemini mostly fails on quota; back off ~30s, give up early
            Provider.GEMINI: RetryPolicy(max_attempts=4, rate_limit_delay_seconds=30.0),
            # OpenAI-compatible APIs hard rate-limit per minute
            Provider.OPENAI: RetryPolicy(max_attempts=10, rate_limit_delay_seconds=50.0),
            Provider.GROK: RetryPolicy(max_attempts=10, rate_limit_delay_seconds=50.0),
        }
    )
    batch_size: int = Field(15, ge=1)
    pause_poll_interval_seconds: float = Field(2.0, gt=0)
    max_output_tokens: int = 8192
    intermediate_prefix: str = "pipeline-outputs"

    def retry_policy_for(self, provider: Provider) -> RetryPolicy:
        return self.retry_policies[provider]

    def price(self, model: str, input_tokens: int, output_tokens: int) -> float:
        """Cost in USD of one call; unknown models are free."""
        pricing = self.pricing.get(model)
        if pricing is None:
            return 0.0
        return (
            input_tokens * pricing.input_per_million
            + output_tokens * pricing.output_per_million
        ) / 1_000_000


class Settings(BaseSettings):
    # ── Database ──────────────────────────────
    POSTGRES_USER: str = "docpipeline_user"
    POSTGRES_PASSWORD: str = "docpipeline_pass"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "docpipeline_db"

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for app runtime (asyncpg)."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def DATABASE_URL_SYNC(self) -> str:
        """Sync URL for Alembic migrations (psycopg2)."""
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # ── Redis / Celery ────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # ── File Storage ──────────────────────────
    STORAGE_BACKEND: str = "s3"             # s3 | local
    STORAGE_ENDPOINT: str = "http://localhost:9000"
    STORAGE_ACCESS_KEY: str = "minioadmin"
    STORAGE_SECRET_KEY: str = "minioadmin"
    STORAGE_BUCKET_NAME: str = "documents"
    STORAGE_REGION: str = "us-east-1"
    STORAGE_LOCAL_ROOT: str = "/tmp/docpipeline"

    # ── LLM Providers ─────────────────────────
    GOOGLE_API_KEY: str = ""
    OPENAI_API_KEY: str = ""
    XAI_API_KEY: str = ""
    XAI_BASE_URL: str = "https://api.x.ai/v1"
    LLM_MAX_TOKENS: int = 8192

    # ── LangSmith Tracing ────────────────────
    LANGSMITH_API_KEY: str = ""
    LANGSMITH_ENDPOINT: str = "https://api.smith.langchain.com"
    LANGSMITH_PROJECT: str = "docpipeline"
    LANGSMITH_TRACING: bool = False

    # ── Pipeline ──────────────────────────────
    PIPELINE_BATCH_SIZE: int = 15
    PIPELINE_DISPATCH_MODE: str = "celery"  # celery | inline
    PROVIDER_REQUEST_TIMEOUT_SECONDS: float = 120.0
    PAUSE_POLL_INTERVAL_SECONDS: float = 2.0

    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_LEVEL: str = ""

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}

    @property
    def log_level(self) -> str:
        if self.LOG_LEVEL:
            return self.LOG_LEVEL.upper()
        return "DEBUG" if self.APP_ENV == "development" else "INFO"

    def to_pipeline_config(self) -> PipelineConfig:
        """Freeze the parts of the environment the pipeline needs."""
        timeout = self.PROVIDER_REQUEST_TIMEOUT_SECONDS
        base = PipelineConfig()
        return PipelineConfig(
            credentials=ProviderCredentials(
                google_api_key=self.GOOGLE_API_KEY,
                openai_api_key=self.OPENAI_API_KEY,
                xai_api_key=self.XAI_API_KEY,
                xai_base_url=self.XAI_BASE_URL,
            ),
            retry_policies={
                provider: policy.model_copy(update={"request_timeout_seconds": timeout})
                for provider, policy in base.retry_policies.items()
            },
            batch_size=self.PIPELINE_BATCH_SIZE,
            pause_poll_interval_seconds=self.PAUSE_POLL_INTERVAL_SECONDS,
            max_output_tokens=self.LLM_MAX_TOKENS,
        )


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
