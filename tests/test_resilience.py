"""Tests for the retry/timeout wrapper."""

import asyncio

import pytest

from shared.errors import TransientBackendError
from shared.resilience import RetryPolicy, resilient_call

POLICY = RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, timeout=1.0)


class Flaky:
    def __init__(self, failures: int, error: Exception):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return value * 2


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures():
    fn = Flaky(failures=2, error=ConnectionError("reset"))

    result = await resilient_call(fn, 21, policy=POLICY)

    assert result == 42
    assert fn.calls == 3


@pytest.mark.asyncio
async def test_exhausted_retries_raise_transient_error():
    fn = Flaky(failures=10, error=ConnectionError("refused"))

    with pytest.raises(TransientBackendError) as exc_info:
        await resilient_call(fn, 1, policy=POLICY, description="embed")

    assert fn.calls == POLICY.max_attempts
    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert "embed" in str(exc_info.value)


@pytest.mark.asyncio
async def test_non_retryable_errors_propagate_immediately():
    fn = Flaky(failures=10, error=ValueError("bad payload"))

    with pytest.raises(ValueError):
        await resilient_call(fn, 1, policy=POLICY)

    assert fn.calls == 1


@pytest.mark.asyncio
async def test_each_attempt_is_bounded_by_timeout():
    calls = 0

    async def slow():
        nonlocal calls
        calls += 1
        await asyncio.sleep(5)

    policy = RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0, timeout=0.05)
    with pytest.raises(TransientBackendError):
        await resilient_call(slow, policy=policy)

    assert calls == 2


@pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"timeout": 0}])
def test_invalid_policy_is_rejected(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
