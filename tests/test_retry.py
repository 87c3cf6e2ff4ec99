"""Tests for RetryPolicy."""

from __future__ import annotations

import time

import pytest

from reliable_topic import RetryPolicy, RingbufferConnectionError, StaleSequenceError


@pytest.mark.parametrize(
    ("attempt", "expected"), [(0, False), (1, True), (3, True), (4, False)]
)
def test_should_retry(attempt: int, expected: bool) -> None:
    policy = RetryPolicy(max_attempts=4)
    assert policy.should_retry(attempt) is expected


def test_delay_doubles_until_capped() -> None:
    policy = RetryPolicy(base_delay=0.5, max_delay=3.0, jitter=False)
    assert [policy.delay_for_attempt(n) for n in range(1, 6)] == [
        0.5,
        1.0,
        2.0,
        3.0,
        3.0,
    ]
    assert policy.delay_for_attempt(0) == 0.0


def test_jitter_stays_within_half_and_one_and_a_half() -> None:
    policy = RetryPolicy(base_delay=1.0, max_delay=10.0, jitter=True)
    for _ in range(50):
        # attempt 3 -> 4.0, jittered into [2.0, 6.0]
        assert 2.0 <= policy.delay_for_attempt(3) <= 6.0


def test_invalid_arguments_raise() -> None:
    with pytest.raises(ValueError, match=r"max_attempts"):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError, match="base_delay and max_delay"):
        RetryPolicy(base_delay=-1.0)
    with pytest.raises(ValueError, match="base_delay must be <= max_delay"):
        RetryPolicy(base_delay=2.0, max_delay=1.0)


@pytest.mark.asyncio
async def test_wait_before_retry_sleeps() -> None:
    policy = RetryPolicy(base_delay=0.02, jitter=False)

    started = time.monotonic()
    await policy.wait_before_retry(1)

    assert time.monotonic() - started >= 0.015


@pytest.mark.asyncio
async def test_run_retries_transient_failures() -> None:
    policy = RetryPolicy(max_attempts=3, base_delay=0.001, max_delay=0.01)
    calls: list[int] = []
    retried: list[int] = []

    async def flaky() -> str:
        calls.append(len(calls) + 1)
        if len(calls) < 3:
            raise RingbufferConnectionError("down")
        return "ok"

    result = await policy.run(
        flaky, on_retry=lambda attempt, _e: retried.append(attempt)
    )

    assert result == "ok"
    assert calls == [1, 2, 3]
    assert retried == [1, 2]


@pytest.mark.asyncio
async def test_run_gives_up_after_max_attempts() -> None:
    policy = RetryPolicy(max_attempts=2, base_delay=0.001, max_delay=0.01)
    attempts = 0

    async def always_down() -> None:
        nonlocal attempts
        attempts += 1
        raise RingbufferConnectionError("down")

    with pytest.raises(RingbufferConnectionError):
        await policy.run(always_down)

    assert attempts == 2


@pytest.mark.asyncio
async def test_run_does_not_retry_other_errors() -> None:
    policy = RetryPolicy(max_attempts=5, base_delay=0.001, max_delay=0.01)
    attempts = 0

    async def broken() -> None:
        nonlocal attempts
        attempts += 1
        raise StaleSequenceError(0, 4)

    with pytest.raises(StaleSequenceError):
        await policy.run(broken)

    assert attempts == 1
