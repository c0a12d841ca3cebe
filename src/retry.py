"""
Bounded retry for calls to external collaborators.

Errors raised by the OpenAI client, httpx or the socket layer are first
classified into the collaborator taxonomy in exceptions.py. The retry helper
then returns a RetryOutcome instead of raising, so callers decide whether a
failure becomes an exception or a fallback value.
"""

import asyncio
import errno
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import httpx
import openai

from exceptions import (
    CollaboratorError, CollaboratorFailure, MalformedResponseError, NetworkTimeout,
    NonRetryableCollaboratorError, RateLimited, TransientCollaboratorError,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_ERRNOS = {errno.ETIMEDOUT, errno.ECONNRESET, errno.ECONNREFUSED}
_TRANSIENT_CODES = {"ETIMEDOUT", "ECONNRESET", "ECONNREFUSED"}


def _from_status(status: int, message: str) -> CollaboratorError:
    if status == 429:
        return RateLimited(message)
    if status >= 500:
        return UpstreamUnavailable(message)
    return NonRetryableCollaboratorError(message)


def classify_error(exc: BaseException) -> CollaboratorError:
    """Map any exception raised by a collaborator call onto the taxonomy."""
    if isinstance(exc, CollaboratorError):
        return exc

    message = f"{type(exc).__name__}: {exc}"

    # APITimeoutError subclasses APIConnectionError
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return NetworkTimeout(message)
    if isinstance(exc, openai.APIStatusError):
        return _from_status(exc.status_code, message)
    if isinstance(exc, httpx.HTTPStatusError):
        return _from_status(exc.response.status_code, message)
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return NetworkTimeout(message)
    if isinstance(exc, (TimeoutError, ConnectionResetError, ConnectionRefusedError)):
        return NetworkTimeout(message)
    if isinstance(exc, OSError) and exc.errno in _TRANSIENT_ERRNOS:
        return NetworkTimeout(message)

    status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
    if isinstance(status, int):
        return _from_status(status, message)
    if getattr(exc, "code", None) in _TRANSIENT_CODES:
        return NetworkTimeout(message)

    lowered = str(exc).lower()
    if "network" in lowered or "timeout" in lowered:
        return NetworkTimeout(message)

    return NonRetryableCollaboratorError(message)


def is_retryable(error: CollaboratorError) -> bool:
    """Transient errors and malformed model output are retried."""
    return isinstance(error, (TransientCollaboratorError, MalformedResponseError))


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    retry_delay: float = 1.0
    retryable: Callable[[CollaboratorError], bool] = is_retryable

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        return self.retry_delay * attempt


@dataclass
class RetryOutcome(Generic[T]):
    """Either the value of a successful call or the last classified error."""
    value: Optional[T] = None
    error: Optional[CollaboratorError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self, label: str = "collaborator call") -> T:
        if self.error is not None:
            raise CollaboratorFailure(
                f"{label} failed after {self.attempts} attempt(s): {self.error}",
                attempts=self.attempts,
                cause=self.error,
            ) from self.error
        return self.value


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    label: str = "collaborator call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RetryOutcome[T]:
    """Call `fn` until it succeeds, fails terminally or the budget runs out.

    Cancellation is never retried and propagates to the caller.
    """
    last_error: Optional[CollaboratorError] = None
    attempts = 0

    for attempt in range(policy.max_retries + 1):
        if attempt > 0:
            await sleep(policy.delay_for(attempt))
            logger.info(f"Retry attempt {attempt} for {label}")

        attempts += 1
        try:
            return RetryOutcome(value=await fn(), attempts=attempts)
        except Exception as exc:
            last_error = classify_error(exc)
            if not policy.retryable(last_error):
                logger.error(f"{label} failed with non-retryable error: {last_error}")
                return RetryOutcome(error=last_error, attempts=attempts)
            logger.warning(f"{label} attempt {attempts} failed: {last_error}")

    logger.error(f"{label} exhausted {attempts} attempt(s): {last_error}")
    return RetryOutcome(error=last_error, attempts=attempts)
