"""Fixed-interval polling of a vendor job handle.

States: waiting -> succeeded | vendor_failed | timed_out.

Each iteration sleeps ``interval`` then polls once. Vendor renders take
minutes, so there is no backoff. Transient poll failures keep the driver
waiting. The progress callback fires only when the observed vendor status
changes, not on every poll.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from media_jobs.errors import VendorPollTransientError
from media_jobs.vendors.base import PollResult, PollState, VendorClient

logger = logging.getLogger(__name__)

StatusCallback = Callable[[PollResult], Awaitable[None]]


class PollOutcome(str, Enum):
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    VENDOR_FAILED = "vendor_failed"
    TIMED_OUT = "timed_out"


@dataclass
class PollingResult:
    outcome: PollOutcome
    url: Optional[str] = None
    reason: Optional[str] = None
    polls: int = 0
    elapsed_seconds: float = 0.0


class PollingDriver:
    def __init__(
        self,
        interval_seconds: float = 20.0,
        timeout_seconds: float = 15 * 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep
        self._clock = clock

    async def run(
        self,
        client: VendorClient,
        handle: str,
        on_status_change: Optional[StatusCallback] = None,
        log_prefix: str = "",
    ) -> PollingResult:
        start = self._clock()
        polls = 0
        last_status: Optional[str] = None

        while self._clock() - start < self.timeout_seconds:
            await self._sleep(self.interval_seconds)
            polls += 1
            try:
                result = await client.poll(handle)
            except VendorPollTransientError as e:
                logger.warning("%s %s poll %d for %s failed: %s", log_prefix, client.name, polls, handle, e)
                continue

            if result.state == PollState.POLL_FAILED:
                continue

            observed = result.observed_status
            if observed != last_status:
                logger.info("%s %s %s status: %s", log_prefix, client.name, handle, observed)
                last_status = observed
                if on_status_change is not None:
                    await on_status_change(result)

            if result.state == PollState.DONE:
                return PollingResult(
                    PollOutcome.SUCCEEDED,
                    url=result.url,
                    polls=polls,
                    elapsed_seconds=self._clock() - start,
                )
            if result.state == PollState.FAILED:
                return PollingResult(
                    PollOutcome.VENDOR_FAILED,
                    reason=result.reason,
                    polls=polls,
                    elapsed_seconds=self._clock() - start,
                )

        elapsed = self._clock() - start
        logger.error("%s %s polling for %s timed out after %d poll(s)", log_prefix, client.name, handle, polls)
        return PollingResult(PollOutcome.TIMED_OUT, polls=polls, elapsed_seconds=elapsed)
