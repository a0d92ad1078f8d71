"""
Domain-specific exception hierarchy for the pipeline engine.

All pipeline exceptions inherit from PipelineError so callers can
catch broadly or narrowly as needed.  Each exception carries structured
context (job ID, operation, etc.) for logging/debugging.

Request-time errors (ValidationError, NotFoundError, InvalidStateError)
are raised synchronously to the caller.  Everything else is raised
inside background stages and ends up in `job.error_message`.
"""

from __future__ import annotations

from docpipeline.core.constants import ErrorKind


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(
        self,
        message: str,
        *,
        pipeline_job_id: str | None = None,
        operation: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.pipeline_job_id = pipeline_job_id
        self.operation = operation
        self.details = details or {}
        super().__init__(message)


# ─── Request-time errors ──────────────────────────────

class ValidationError(PipelineError):
    """Malformed request; rejected before any job mutation."""
    pass


class NotFoundError(PipelineError):
    """Unknown job, document or stage."""
    pass


class InvalidStateError(PipelineError):
    """The job is not in a status that allows the requested action."""

    def __init__(self, message: str, *, status: str | None = None, **kwargs) -> None:
        self.status = status
        super().__init__(message, **kwargs)


# ─── Provider errors ──────────────────────────────────

class ProviderError(PipelineError):
    """A call to an external text-generation provider failed."""
    pass


class ProviderRateLimited(ProviderError):
    """HTTP 429 / quota exceeded.  Retried internally."""
    pass


class ProviderTimeout(ProviderError):
    """Request exceeded its wall-clock limit or the connection dropped."""
    pass


class ProviderFatal(ProviderError):
    """Unusable provider output (malformed JSON, refused request...)."""
    pass


class EmptyResponseError(ProviderFatal):
    """The provider answered without usable content."""
    pass


class RetryExhaustedError(ProviderError):
    """A retryable provider failure persisted past the attempt cap."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 0,
        error_kind: ErrorKind | None = None,
        last_error: BaseException | None = None,
        **kwargs,
    ) -> None:
        self.attempts = attempts
        self.error_kind = error_kind
        self.last_error = last_error
        super().__init__(message, **kwargs)


# ─── Stage errors ─────────────────────────────────────

class ApplyError(PipelineError):
    """Materializing approved edits into a new document failed."""
    pass


class StorageError(PipelineError):
    """Object storage download/upload failed."""
    pass


class PipelineCancelled(PipelineError):
    """Raised at a checkpoint when the job was cancelled underneath us."""
    pass
