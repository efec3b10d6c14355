"""In-process job queue using asyncio.

Each queue runs ``concurrency`` worker tasks that pull deliveries and await
the handler. Handlers are coroutines, so a job suspended on vendor I/O or on
a poll interval does not hold a thread. Failed deliveries are retried with
exponential backoff up to ``max_attempts`` unless the error says it is not
retryable.
"""

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from media_jobs.jobs.dispatcher import JobQueue, QueueHandler
from media_jobs.jobs.models import EntryStatus, QueueEntry

logger = logging.getLogger(__name__)

_FINISHED = (EntryStatus.COMPLETED, EntryStatus.FAILED)


class InProcessQueue(JobQueue):
    """Local async job queue with bounded concurrency."""

    def __init__(
        self,
        name: str,
        handler: QueueHandler,
        concurrency: int = 5,
        max_attempts: int = 1,
        backoff_seconds: float = 5.0,
        shutdown_grace_seconds: float = 30.0,
        retain_finished: int = 1000,
    ):
        self.name = name
        self._handler = handler
        self._concurrency = max(1, concurrency)
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = backoff_seconds
        self._grace = shutdown_grace_seconds
        self._retain_finished = retain_finished
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._entries: "OrderedDict[str, QueueEntry]" = OrderedDict()
        self._workers: List[asyncio.Task] = []
        self._retry_timers: Set[asyncio.Task] = set()
        self._active = 0
        self._outstanding = 0  # enqueued deliveries not yet completed or failed
        self._running = False

    async def enqueue(self, name: str, payload: Dict[str, Any]) -> str:
        entry = QueueEntry(
            queue=self.name,
            name=name,
            payload=payload,
            max_attempts=self._max_attempts,
        )
        self._entries[entry.id] = entry
        self._outstanding += 1
        await self._queue.put(entry.id)
        self._trim()
        return entry.id

    async def get_entry(self, entry_id: str) -> Optional[QueueEntry]:
        return self._entries.get(entry_id)

    async def start(self) -> None:
        self._running = True
        self._workers = [
            asyncio.create_task(self._worker_loop(i), name=f"{self.name}-worker-{i}")
            for i in range(self._concurrency)
        ]
        logger.info("Queue %s started with concurrency %d", self.name, self._concurrency)

    async def stop(self) -> None:
        """Stop taking new deliveries, let in-flight ones finish, then cancel."""
        self._running = False
        for timer in list(self._retry_timers):
            timer.cancel()
        if not self._workers:
            return
        done, pending = await asyncio.wait(self._workers, timeout=self._grace)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(
                "Queue %s: cancelled %d worker(s) still busy after %.0fs grace",
                self.name, len(pending), self._grace,
            )
            await asyncio.gather(*pending, return_exceptions=True)
        self._workers = []
        logger.info("Queue %s stopped", self.name)

    def stats(self) -> Dict[str, int]:
        return {
            "waiting": self._queue.qsize(),
            "active": self._active,
            "retry_scheduled": len(self._retry_timers),
            "concurrency": self._concurrency,
        }

    async def drain(self) -> None:
        """Wait until every enqueued delivery has completed or failed."""
        while self._outstanding:
            await asyncio.sleep(0.01)

    async def _worker_loop(self, index: int) -> None:
        while self._running:
            try:
                entry_id = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            entry = self._entries.get(entry_id)
            if entry is None:
                continue

            self._active += 1
            try:
                await self._run_attempt(entry)
            finally:
                self._active -= 1

    async def _run_attempt(self, entry: QueueEntry) -> None:
        entry.status = EntryStatus.RUNNING
        entry.attempts_made += 1
        entry.started_at = entry.started_at or datetime.utcnow()

        try:
            entry.result = await self._handler(entry)
        except Exception as e:
            entry.error = f"{type(e).__name__}: {e}"
            retryable = getattr(e, "retryable", True)
            if retryable and not entry.is_final_attempt and self._running:
                delay = self._backoff_seconds * (2 ** (entry.attempts_made - 1))
                entry.status = EntryStatus.RETRY_SCHEDULED
                logger.warning(
                    "Queue %s: delivery %s attempt %d/%d failed (%s), retrying in %.1fs",
                    self.name, entry.id, entry.attempts_made, entry.max_attempts,
                    entry.error, delay,
                )
                self._schedule_retry(entry.id, delay)
                return
            entry.status = EntryStatus.FAILED
            entry.completed_at = datetime.utcnow()
            self._outstanding -= 1
            logger.error(
                "Queue %s: delivery %s failed after %d attempt(s): %s",
                self.name, entry.id, entry.attempts_made, entry.error,
            )
            return

        entry.status = EntryStatus.COMPLETED
        entry.error = None
        entry.completed_at = datetime.utcnow()
        self._outstanding -= 1
        logger.info("Queue %s: delivery %s completed", self.name, entry.id)

    def _schedule_retry(self, entry_id: str, delay: float) -> None:
        async def _requeue() -> None:
            await asyncio.sleep(delay)
            await self._queue.put(entry_id)

        timer = asyncio.create_task(_requeue())
        self._retry_timers.add(timer)
        timer.add_done_callback(self._retry_timers.discard)

    def _trim(self) -> None:
        finished = [k for k, e in self._entries.items() if e.status in _FINISHED]
        for key in finished[: max(0, len(finished) - self._retain_finished)]:
            del self._entries[key]
