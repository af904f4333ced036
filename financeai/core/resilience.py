"""
Timeout, retry and failure classification for calls to the hosted LLM.

Every AI-facing service goes through ``call_with_retry`` so the timeout and
backoff rules live in one place. Failures are classified by the text of the
exception message (case-insensitive substring match), which is how the
upstream SDKs and our own ``LLMError`` surface their cause.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from financeai.core.config import Settings
from financeai.core.llm import LLMConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorType(str, Enum):
    API_ERROR = "api_error"
    RATE_LIMIT = "rate_limit"
    NETWORK_ERROR = "network_error"
    VALIDATION_ERROR = "validation_error"


ERROR_MESSAGES = {
    ErrorType.RATE_LIMIT: "I'm currently handling a lot of requests. Please wait a moment and try again.",
    ErrorType.NETWORK_ERROR: "I'm having trouble connecting right now. Please check your internet connection and try again.",
    ErrorType.VALIDATION_ERROR: "I didn't understand your question. Could you please rephrase it?",
    ErrorType.API_ERROR: "I encountered an unexpected issue. Please try again in a moment.",
}

# Order matters: the first matching class wins
_CLASSIFICATION_RULES = [
    (ErrorType.RATE_LIMIT, ("rate limit", "quota")),
    (ErrorType.NETWORK_ERROR, ("network", "timeout", "fetch")),
    (ErrorType.VALIDATION_ERROR, ("validation", "invalid")),
]

TRANSIENT_PATTERNS = (
    "overloaded",
    "service unavailable",
    "503",
    "502",
    "500",
    "timeout",
    "network error",
    "connection error",
    "rate limit",
    "quota exceeded",
)


class CallTimeoutError(Exception):
    pass


def categorize_error(error: Optional[BaseException]) -> ErrorType:
    message = str(error).lower() if error is not None else ""
    for error_type, needles in _CLASSIFICATION_RULES:
        if any(needle in message for needle in needles):
            return error_type
    return ErrorType.API_ERROR


def get_error_message(error: Optional[BaseException]) -> str:
    return ERROR_MESSAGES[categorize_error(error)]


def is_transient_error(error: BaseException) -> bool:
    """Temporary upstream conditions worth another attempt."""
    message = str(error).lower()
    return any(pattern in message for pattern in TRANSIENT_PATTERNS)


def retry_any(error: BaseException) -> bool:
    return True


def is_retryable(error: BaseException) -> bool:
    """Skip failures that another attempt cannot fix (opt-in, see ``RetryPolicy.fail_fast``)."""
    if isinstance(error, LLMConfigurationError):
        return False
    return categorize_error(error) != ErrorType.VALIDATION_ERROR


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    timeout: float = 30.0
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: float = 0.0
    # Classify before retrying: validation and configuration failures fail fast
    fail_fast: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "RetryPolicy":
        values = dict(
            max_retries=settings.LLM_MAX_RETRIES,
            timeout=settings.LLM_TIMEOUT_SECONDS,
            base_delay=settings.LLM_BACKOFF_BASE_SECONDS,
            max_delay=settings.LLM_BACKOFF_MAX_SECONDS,
            fail_fast=settings.LLM_RETRY_FAIL_FAST,
        )
        values.update(overrides)
        return cls(**values)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (attempt is zero-based)."""
        delay = self.base_delay * (2 ** attempt)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return min(delay, self.max_delay)


@dataclass
class RetryOutcome:
    attempts: int = 0


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    outcome: Optional[RetryOutcome] = None,
) -> T:
    """Run ``func`` with a hard per-attempt timeout and exponential backoff.

    Makes at most ``policy.max_retries + 1`` attempts and re-raises the last
    failure. Every exception is retried unless ``should_retry`` says otherwise
    or the policy has ``fail_fast`` set. ``outcome.attempts`` is updated as
    attempts are made.
    """
    if should_retry is None:
        should_retry = is_retryable if policy.fail_fast else retry_any

    for attempt in range(policy.max_retries + 1):
        if outcome is not None:
            outcome.attempts = attempt + 1
        try:
            return await asyncio.wait_for(func(), timeout=policy.timeout)
        except asyncio.TimeoutError:
            error: Exception = CallTimeoutError(f"Request timeout after {policy.timeout:g} seconds")
        except Exception as e:
            error = e

        if attempt == policy.max_retries or not should_retry(error):
            raise error

        delay = policy.delay_for(attempt)
        logger.warning(
            f"LLM call failed ({type(error).__name__}: {error}), retrying in {delay:.1f}s "
            f"(attempt {attempt + 1}/{policy.max_retries + 1})"
        )
        await sleep(delay)

    # max_retries < 0 is the only way to get here
    raise ValueError("RetryPolicy.max_retries must be >= 0")
