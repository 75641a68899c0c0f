"""Fixed-interval polling of readiness probes.

PollWaiter re-evaluates a probe every ``policy.interval`` seconds until it
reports ready or ``policy.timeout`` seconds have passed since the first
check. There is no backoff and no external cancellation: a deadline is the
only way a wait ends without success.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

import psutil
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)

from cfdev_lifecycle._logging import get_logger
from cfdev_lifecycle.models import PollPolicy, WaitOutcome, WaitResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from cfdev_lifecycle.probes import Probe

logger = get_logger(__name__)

# Exceptions a probe may raise while its target is still coming up
TRANSIENT_PROBE_ERRORS: tuple[type[BaseException], ...] = (OSError, psutil.Error)


def _not_ready(ready: bool) -> bool:
    return not ready


class PollWaiter:
    """Waits for probes under a PollPolicy.

    Args:
        sleep: Coroutine used between checks (injectable for tests)
    """

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self._sleep = sleep

    async def wait(self, probe: Probe, policy: PollPolicy) -> WaitResult:
        """Poll ``probe`` until it is ready or the policy deadline passes.

        Args:
            probe: Readiness probe to evaluate
            policy: Timeout and constant interval

        Returns:
            WaitResult with READY as soon as a check succeeds, or TIMED_OUT
            once at least ``policy.timeout`` seconds have elapsed.

        Raises:
            Exception: Any non-transient error raised by the probe itself
                (a programming error, not a readiness signal).
        """
        attempts = 0

        async def attempt() -> bool:
            nonlocal attempts
            attempts += 1
            return await probe.check()

        retrying = AsyncRetrying(
            stop=stop_after_delay(policy.timeout),
            wait=wait_fixed(policy.interval),
            retry=retry_if_result(_not_ready) | retry_if_exception_type(TRANSIENT_PROBE_ERRORS),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            sleep=self._sleep,
        )

        start = time.monotonic()
        try:
            await retrying(attempt)
        except RetryError:
            elapsed = time.monotonic() - start
            logger.debug(
                "Probe timed out",
                extra={"probe": str(probe), "timeout": policy.timeout, "elapsed": elapsed, "attempts": attempts},
            )
            return WaitResult(outcome=WaitOutcome.TIMED_OUT, elapsed=elapsed, attempts=attempts)

        elapsed = time.monotonic() - start
        logger.debug(
            "Probe ready",
            extra={"probe": str(probe), "elapsed": elapsed, "attempts": attempts},
        )
        return WaitResult(outcome=WaitOutcome.READY, elapsed=elapsed, attempts=attempts)
