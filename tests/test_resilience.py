import asyncio
import pytest

from financeai.core.config import Settings
from financeai.core.llm import LLMError, LLMConfigurationError
from financeai.core.resilience import (
    CallTimeoutError,
    ErrorType,
    RetryOutcome,
    RetryPolicy,
    call_with_retry,
    categorize_error,
    get_error_message,
    is_retryable,
    is_transient_error,
)
from conftest import SleepRecorder


@pytest.mark.parametrize("message, expected", [
    ("Rate limit exceeded", ErrorType.RATE_LIMIT),
    ("Quota exceeded for this project", ErrorType.RATE_LIMIT),
    ("invalid quota header", ErrorType.RATE_LIMIT),
    ("Network unreachable", ErrorType.NETWORK_ERROR),
    ("Request timeout after 30 seconds", ErrorType.NETWORK_ERROR),
    ("Failed to fetch", ErrorType.NETWORK_ERROR),
    ("Validation failed for field", ErrorType.VALIDATION_ERROR),
    ("INVALID argument", ErrorType.VALIDATION_ERROR),
    ("something exploded", ErrorType.API_ERROR),
    ("", ErrorType.API_ERROR),
])
def test_categorize_error(message, expected):
    assert categorize_error(Exception(message)) == expected


def test_categorize_none():
    assert categorize_error(None) == ErrorType.API_ERROR


def test_user_facing_messages():
    assert get_error_message(Exception("quota")) == (
        "I'm currently handling a lot of requests. Please wait a moment and try again."
    )
    assert get_error_message(Exception("network down")) == (
        "I'm having trouble connecting right now. Please check your internet connection and try again."
    )
    assert get_error_message(Exception("invalid")) == (
        "I didn't understand your question. Could you please rephrase it?"
    )
    assert get_error_message(Exception("boom")) == (
        "I encountered an unexpected issue. Please try again in a moment."
    )


def test_fail_fast_classification():
    assert is_retryable(Exception("boom"))
    assert is_retryable(LLMError("gemini rate limit exceeded (429)"))
    assert not is_retryable(Exception("Invalid request"))
    assert not is_retryable(LLMConfigurationError("gemini authentication failed (401): check the API key"))


def test_transient_patterns():
    assert is_transient_error(Exception("The model is overloaded"))
    assert is_transient_error(Exception("gemini service unavailable (503)"))
    assert is_transient_error(Exception("Request timeout after 30 seconds"))
    assert not is_transient_error(Exception("Invalid API key"))


def test_backoff_schedule():
    policy = RetryPolicy()
    assert [policy.delay_for(n) for n in range(5)] == [1, 2, 4, 8, 10]


def test_backoff_jitter_stays_in_range():
    policy = RetryPolicy(jitter=1.0)
    for attempt in range(3):
        delay = policy.delay_for(attempt)
        assert 2 ** attempt <= delay <= 2 ** attempt + 1
    assert policy.delay_for(6) == 10


async def test_always_failing_call_is_attempted_four_times():
    sleeper = SleepRecorder()
    outcome = RetryOutcome()
    calls = []

    async def failing():
        calls.append(1)
        raise RuntimeError("upstream exploded")

    with pytest.raises(RuntimeError):
        await call_with_retry(failing, RetryPolicy(), sleep=sleeper, outcome=outcome)

    assert len(calls) == 4
    assert outcome.attempts == 4
    assert sleeper.delays == [1, 2, 4]


async def test_recovers_after_transient_failures():
    sleeper = SleepRecorder()
    results = [RuntimeError("network blip"), RuntimeError("network blip"), "ok"]

    async def flaky():
        result = results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    assert await call_with_retry(flaky, RetryPolicy(), sleep=sleeper) == "ok"
    assert sleeper.delays == [1, 2]


async def test_validation_failures_are_retried_by_default():
    sleeper = SleepRecorder()
    calls = []

    async def blocked():
        calls.append(1)
        raise LLMError("gemini returned an invalid response: SAFETY")

    with pytest.raises(LLMError):
        await call_with_retry(blocked, RetryPolicy(), sleep=sleeper)

    assert len(calls) == 4
    assert sleeper.delays == [1, 2, 4]


async def test_configuration_failures_are_retried_by_default():
    calls = []

    async def unauthorized():
        calls.append(1)
        raise LLMConfigurationError("gemini authentication failed (401): check the API key")

    with pytest.raises(LLMConfigurationError):
        await call_with_retry(unauthorized, RetryPolicy(), sleep=SleepRecorder())
    assert len(calls) == 4


async def test_fail_fast_policy_skips_validation_failures():
    sleeper = SleepRecorder()
    calls = []

    async def invalid():
        calls.append(1)
        raise LLMError("gemini rejected the request as invalid (400)")

    with pytest.raises(LLMError):
        await call_with_retry(invalid, RetryPolicy(fail_fast=True), sleep=sleeper)

    assert len(calls) == 1
    assert sleeper.delays == []


async def test_fail_fast_policy_skips_configuration_failures():
    calls = []

    async def unauthorized():
        calls.append(1)
        raise LLMConfigurationError("gemini authentication failed (401): check the API key")

    with pytest.raises(LLMConfigurationError):
        await call_with_retry(unauthorized, RetryPolicy(fail_fast=True), sleep=SleepRecorder())
    assert len(calls) == 1


async def test_fail_fast_policy_still_retries_other_failures():
    calls = []

    async def failing():
        calls.append(1)
        raise RuntimeError("upstream exploded")

    with pytest.raises(RuntimeError):
        await call_with_retry(failing, RetryPolicy(fail_fast=True), sleep=SleepRecorder())
    assert len(calls) == 4


def test_policy_from_settings_reads_fail_fast():
    settings = Settings(LLM_RETRY_FAIL_FAST=True, LLM_MAX_RETRIES=2)
    policy = RetryPolicy.from_settings(settings)
    assert policy.fail_fast is True
    assert policy.max_retries == 2
    assert RetryPolicy.from_settings(Settings()).fail_fast is False


async def test_custom_retry_predicate():
    calls = []

    async def failing():
        calls.append(1)
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await call_with_retry(failing, RetryPolicy(), should_retry=is_transient_error, sleep=SleepRecorder())
    assert len(calls) == 1


async def test_slow_call_times_out():
    async def slow():
        await asyncio.sleep(5)
        return "late"

    with pytest.raises(CallTimeoutError) as exc_info:
        await call_with_retry(slow, RetryPolicy(max_retries=0, timeout=0.05), sleep=SleepRecorder())

    assert "timeout" in str(exc_info.value).lower()
    assert categorize_error(exc_info.value) == ErrorType.NETWORK_ERROR
