"""Tests for PollWaiter and PollPolicy."""

import pytest
from pydantic import ValidationError

from cfdev_lifecycle.models import PollPolicy, WaitOutcome
from cfdev_lifecycle.poll import PollWaiter


class CountingProbe:
    """Becomes ready on the ``ready_on``-th check (never if None)."""

    def __init__(self, ready_on: int | None = 1, errors: list[BaseException] | None = None) -> None:
        self.ready_on = ready_on
        self.errors = list(errors or [])
        self.checks = 0

    async def check(self) -> bool:
        self.checks += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.ready_on is not None and self.checks >= self.ready_on

    def __str__(self) -> str:
        return "counting probe"


# ============================================================================
# PollPolicy
# ============================================================================


class TestPollPolicy:
    def test_default_interval(self) -> None:
        assert PollPolicy(timeout=10).interval == 1.0

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            PollPolicy(timeout=0)

    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            PollPolicy(timeout=1, interval=0)

    def test_timeout_below_interval_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must be >= interval"):
            PollPolicy(timeout=0.5, interval=1)

    def test_frozen(self) -> None:
        policy = PollPolicy(timeout=5)
        with pytest.raises(ValidationError):
            policy.timeout = 10  # type: ignore[misc]


# ============================================================================
# PollWaiter
# ============================================================================


class TestPollWaiter:
    async def test_ready_on_first_check(self) -> None:
        probe = CountingProbe(ready_on=1)
        result = await PollWaiter().wait(probe, PollPolicy(timeout=5, interval=1))

        assert result.outcome == WaitOutcome.READY
        assert result.ready
        assert result.attempts == 1
        assert probe.checks == 1

    async def test_ready_after_retries(self) -> None:
        probe = CountingProbe(ready_on=3)
        result = await PollWaiter().wait(probe, PollPolicy(timeout=5, interval=0.01))

        assert result.ready
        assert result.attempts == 3

    async def test_sleeps_fixed_interval(self) -> None:
        """No backoff: every pause is exactly the policy interval."""
        slept: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            slept.append(seconds)

        result = await PollWaiter(sleep=fake_sleep).wait(CountingProbe(ready_on=4), PollPolicy(timeout=60, interval=2.5))

        assert result.ready
        assert slept == [2.5, 2.5, 2.5]

    async def test_times_out(self) -> None:
        probe = CountingProbe(ready_on=None)
        result = await PollWaiter().wait(probe, PollPolicy(timeout=0.3, interval=0.05))

        assert result.outcome == WaitOutcome.TIMED_OUT
        assert not result.ready
        assert result.elapsed >= 0.3
        assert result.attempts >= 2
        assert probe.checks == result.attempts

    async def test_transient_errors_are_not_ready(self) -> None:
        probe = CountingProbe(ready_on=1, errors=[ConnectionRefusedError(), FileNotFoundError()])
        result = await PollWaiter().wait(probe, PollPolicy(timeout=5, interval=0.01))

        assert result.ready
        assert result.attempts == 3

    async def test_transient_errors_until_deadline_time_out(self) -> None:
        probe = CountingProbe(ready_on=1, errors=[OSError("unreachable")] * 1000)
        result = await PollWaiter().wait(probe, PollPolicy(timeout=0.2, interval=0.05))

        assert result.outcome == WaitOutcome.TIMED_OUT

    async def test_programming_errors_propagate(self) -> None:
        probe = CountingProbe(ready_on=1, errors=[ValueError("bad probe")])

        with pytest.raises(ValueError, match="bad probe"):
            await PollWaiter().wait(probe, PollPolicy(timeout=5, interval=0.01))
        assert probe.checks == 1
