"""
Retry discipline for provider calls.

Providers rarely expose structured error codes, so failures are
classified from the exception type, a status code attribute when one
exists, and finally the message text.  `classify_error` is the only
place that does this.

    rate_limited       retry after the provider's "retry in Ns" hint,
                       or the policy default
    transient_timeout  retry after a short fixed delay
    empty_response     never retried
    fatal              never retried
"""

from __future__ import annotations

import asyncio
import math
import re
from typing import Any, Awaitable, Callable, Iterator

import httpx
import openai

from docpipeline.core.config import RetryPolicy
from docpipeline.core.constants import ErrorKind
from docpipeline.core.logging import get_logger
from docpipeline.pipeline.errors import (
    EmptyResponseError,
    PipelineError,
    ProviderFatal,
    ProviderRateLimited,
    ProviderTimeout,
    RetryExhaustedError,
)

logger = get_logger(__name__)

_RETRY_IN_RE = re.compile(r"retry\s+in\s+([\d.]+)\s*s", re.IGNORECASE)
_SECONDS_RE = re.compile(r"([\d.]+)\s*seconds?", re.IGNORECASE)

_RATE_LIMIT_MARKERS = (
    "429",
    "too many requests",
    "rate limit",
    "rate_limit",
    "quota",
    "resource_exhausted",
)
_TIMEOUT_MARKERS = (
    "timeout",
    "timed out",
    "etimedout",
    "econnreset",
    "connection reset",
    "aborterror",
    "503",
    "overloaded",
    "unavailable",
)

# Transport failures, often wrapped by the SDK (openai raises
# APIConnectionError("Connection error.") around the socket error)
_TRANSPORT_ERRORS = (
    openai.APIConnectionError,
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)


def _error_chain(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or (None if current.__suppress_context__ else current.__context__)


def classify_error(error: BaseException) -> ErrorKind:
    """Map any exception raised by a provider call to an ErrorKind."""
    if isinstance(error, EmptyResponseError):
        return ErrorKind.EMPTY_RESPONSE
    if isinstance(error, ProviderRateLimited):
        return ErrorKind.RATE_LIMITED
    if isinstance(error, ProviderTimeout):
        return ErrorKind.TRANSIENT_TIMEOUT
    if isinstance(error, ProviderFatal):
        return ErrorKind.FATAL
    if any(isinstance(link, _TRANSPORT_ERRORS) for link in _error_chain(error)):
        return ErrorKind.TRANSIENT_TIMEOUT

    status = getattr(error, "status_code", None) or getattr(error, "code", None)
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status in (408, 503, 504):
        return ErrorKind.TRANSIENT_TIMEOUT

    message = f"{type(error).__name__}: {error}".lower()
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMITED
    if any(marker in message for marker in _TIMEOUT_MARKERS):
        return ErrorKind.TRANSIENT_TIMEOUT
    return ErrorKind.FATAL


def parse_retry_delay_ms(message: str) -> int | None:
    """Extract a provider-suggested delay ("retry in 5.5s") in milliseconds."""
    match = _RETRY_IN_RE.search(message) or _SECONDS_RE.search(message)
    if match is None:
        return None
    try:
        seconds = float(match.group(1))
    except ValueError:
        return None
    if seconds <= 0:
        return None
    return math.ceil(seconds * 1000)


def compute_delay_ms(kind: ErrorKind, error: BaseException, policy: RetryPolicy) -> int:
    """Delay before the next attempt of a retryable failure."""
    if kind == ErrorKind.RATE_LIMITED:
        suggested = parse_retry_delay_ms(str(error))
        if suggested is not None:
            return suggested
        return math.ceil(policy.rate_limit_delay_seconds * 1000)
    return math.ceil(policy.timeout_delay_seconds * 1000)


class RetryableCaller:
    """
    Wraps one provider call with the retry policy of its provider.

    Each attempt is bounded by `policy.request_timeout_seconds`.
    Empty and fatal results propagate on the first attempt; the
    retryable kinds raise RetryExhaustedError once the cap is hit.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        provider: str,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self.provider = provider
        self._sleep = sleep

    async def call(self, fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        max_attempts = self.policy.max_attempts
        log = logger.bind(provider=self.provider)

        for attempt in range(1, max_attempts + 1):
            try:
                return await asyncio.wait_for(
                    fn(*args, **kwargs),
                    timeout=self.policy.request_timeout_seconds,
                )
            except Exception as exc:
                kind = classify_error(exc)

                if kind == ErrorKind.EMPTY_RESPONSE:
                    log.warning("Provider returned empty response, not retrying")
                    raise
                if kind == ErrorKind.FATAL:
                    if isinstance(exc, PipelineError):
                        raise
                    raise ProviderFatal(f"{self.provider} call failed: {exc}") from exc

                if attempt >= max_attempts:
                    raise RetryExhaustedError(
                        f"{self.provider} call failed after {attempt} attempts ({kind}): {exc}",
                        attempts=attempt,
                        error_kind=kind,
                        last_error=exc,
                    ) from exc

                delay_ms = compute_delay_ms(kind, exc, self.policy)
                log.warning(
                    f"Provider call failed (attempt {attempt}/{max_attempts}), retrying in {delay_ms}ms",
                    error_kind=str(kind),
                    error=str(exc),
                )
                await self._sleep(delay_ms / 1000)

        # max_attempts >= 1, the loop always returns or raises
        raise RetryExhaustedError(f"{self.provider} call never attempted", attempts=0)
