"""Job orchestrator: the per-job state machine shared by every pipeline.

A run of one job:

1. Claim the job (guarded move from ``pending`` to the first stage status).
2. ``execute`` the kind-specific stages. Each stage persists its in-progress
   status before doing external work, so a reader of the job row can see
   which stage is active.
3. The final stage marks the job ``complete`` with its output.
4. ``after_complete`` publishes and notifies. Failures there are logged and
   never undo the completed job.

Any error escaping steps 1-3 is persisted on the job row and re-raised so
the queue's retry policy decides whether the delivery runs again. Only the
final attempt writes ``failed``; earlier attempts record the error message
and leave the job in progress for the retry to re-enter.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

from media_jobs.config import Settings
from media_jobs.db.repository import JobRepository
from media_jobs.errors import (
    AssetLookupError,
    AssetNotFoundError,
    JobOwnershipError,
    PollingTimeoutError,
    VendorTerminalFailure,
)
from media_jobs.jobs.models import JobKind, JobRequest, JobStatus, NotificationMessage, QueueEntry
from media_jobs.notifications import NotificationDispatcher
from media_jobs.polling import PollingDriver, PollOutcome, StatusCallback
from media_jobs.storage.assets import AssetReference, AssetResolver
from media_jobs.vendors.base import VendorClient

logger = logging.getLogger(__name__)


@dataclass
class JobContext:
    request: Any
    owner: str
    attempt: int = 1
    max_attempts: int = 1

    @property
    def job_id(self) -> str:
        return self.request.job_id

    @property
    def user_id(self) -> str:
        return self.request.user_id

    @property
    def log_prefix(self) -> str:
        return f"[job {self.request.job_id}]"

    @property
    def is_final_attempt(self) -> bool:
        return self.attempt >= self.max_attempts


class Orchestrator(ABC):
    """Base class for one job kind's pipeline."""

    kind: JobKind
    request_model: Type[JobRequest]
    first_status: JobStatus
    required_settings: Tuple[str, ...] = ()

    def __init__(
        self,
        repository: JobRepository,
        notifier: NotificationDispatcher,
        settings: Settings,
        polling: Optional[PollingDriver] = None,
        assets: Optional[AssetResolver] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.repository = repository
        self.notifier = notifier
        self.settings = settings
        self.polling = polling or PollingDriver(
            interval_seconds=settings.poll_interval_seconds,
            timeout_seconds=settings.poll_timeout_seconds,
        )
        self.assets = assets
        self._sleep = sleep

    # -- entry points -------------------------------------------------------

    async def handle(self, entry: QueueEntry) -> Any:
        """Queue handler: one call per delivery attempt."""
        request = self.request_model.model_validate(entry.payload)
        return await self.run(
            request,
            owner=entry.id,
            attempt=entry.attempts_made,
            max_attempts=entry.max_attempts,
        )

    async def run(self, request: JobRequest, owner: str, attempt: int = 1, max_attempts: int = 1) -> Any:
        ctx = JobContext(request=request, owner=owner, attempt=attempt, max_attempts=max_attempts)
        logger.info(
            "%s Processing %s job for user %s (attempt %d/%d)",
            ctx.log_prefix, self.kind.value, ctx.user_id, attempt, max_attempts,
        )

        try:
            await self.repository.claim(
                self.kind, ctx.job_id, self.first_status, owner, self.claim_fields(request)
            )
        except JobOwnershipError as e:
            logger.warning("%s Not processing: %s", ctx.log_prefix, e)
            raise

        try:
            self.settings.require(*self.required_settings)
            result = await self.execute(ctx)
        except JobOwnershipError as e:
            logger.warning("%s Stopped: %s", ctx.log_prefix, e)
            raise
        except Exception as e:
            await self._record_failure(ctx, e)
            raise

        logger.info("%s Completed", ctx.log_prefix)
        await self.after_complete(ctx, result)
        return result

    # -- pipeline hooks -----------------------------------------------------

    @abstractmethod
    async def execute(self, ctx: JobContext) -> Dict[str, Any]:
        """Run every stage and mark the job complete. Returns the delivery result."""
        ...

    async def after_complete(self, ctx: JobContext, result: Dict[str, Any]) -> None:
        """Best-effort work once the job is complete (publish, notify)."""

    def claim_fields(self, request: JobRequest) -> Dict[str, Any]:
        return {}

    def failure_fields(self, exc: Exception) -> Dict[str, Any]:
        """Extra columns written alongside ``failed``."""
        return {}

    async def on_final_failure(self, ctx: JobContext, exc: Exception) -> None:
        """Called once the job has been marked failed by this execution."""

    # -- stage helpers ------------------------------------------------------

    async def advance(self, ctx: JobContext, status: JobStatus, fields: Optional[Dict[str, Any]] = None) -> None:
        moved = await self.repository.advance(self.kind, ctx.job_id, status, fields)
        if moved:
            logger.info("%s Status -> %s", ctx.log_prefix, status.value)

    async def update(self, ctx: JobContext, fields: Dict[str, Any]) -> None:
        await self.repository.update_fields(self.kind, ctx.job_id, fields)

    async def update_quietly(self, ctx: JobContext, fields: Dict[str, Any]) -> None:
        """Progress write whose failure must not abort the stage."""
        try:
            await self.repository.update_fields(self.kind, ctx.job_id, fields)
        except Exception as e:
            logger.warning("%s Could not record %s: %s", ctx.log_prefix, ", ".join(fields), e)

    async def complete(self, ctx: JobContext, fields: Dict[str, Any]) -> None:
        await self.repository.complete(self.kind, ctx.job_id, fields)
        logger.info("%s Status -> %s", ctx.log_prefix, JobStatus.COMPLETE.value)

    async def resolve_asset(self, ctx: JobContext, ref: AssetReference) -> str:
        """Signed URL for a required asset.

        Listing failures are retried a few times within this run. A missing
        asset fails immediately.
        """
        if self.assets is None:
            raise AssetNotFoundError(f"No asset resolver configured for {ref.pattern}")

        retries = max(1, self.settings.asset_lookup_retries)
        url = None
        for attempt in range(1, retries + 1):
            try:
                url = await self.assets.resolve(ref)
                break
            except AssetLookupError as e:
                if attempt == retries:
                    raise
                logger.warning(
                    "%s Asset lookup for %s failed (%d/%d): %s",
                    ctx.log_prefix, ref.pattern, attempt, retries, e,
                )
                await self._sleep(self.settings.asset_lookup_retry_delay_seconds)

        if not url:
            raise AssetNotFoundError(f"Asset not found in bucket {ref.bucket}: {ref.pattern}")
        logger.info("%s Resolved %s", ctx.log_prefix, ref.pattern)
        return url

    async def submit_and_wait(
        self,
        ctx: JobContext,
        stage: str,
        client: VendorClient,
        payload: Any,
        on_submitted: Optional[Callable[[str], Awaitable[None]]] = None,
        on_status_change: Optional[StatusCallback] = None,
    ) -> Tuple[str, str]:
        """Submit to a vendor and poll to a terminal state. Returns (handle, result url)."""
        handle = await client.submit(payload)
        logger.info("%s %s %s submitted: %s", ctx.log_prefix, client.name, stage, handle)
        if on_submitted is not None:
            await on_submitted(handle)

        result = await self.polling.run(
            client, handle, on_status_change=on_status_change, log_prefix=ctx.log_prefix
        )
        if result.outcome == PollOutcome.SUCCEEDED:
            logger.info("%s %s %s done after %d poll(s): %s", ctx.log_prefix, client.name, stage, result.polls, result.url)
            return handle, result.url
        if result.outcome == PollOutcome.VENDOR_FAILED:
            raise VendorTerminalFailure(client.name, stage, result.reason or "no reason given")
        raise PollingTimeoutError(client.name, stage, result.elapsed_seconds)

    # -- publish / notify ---------------------------------------------------

    def site_link(self, path: str = "") -> str:
        return f"{self.settings.site_url.rstrip('/')}{path}"

    async def publish_share_link(
        self,
        ctx: JobContext,
        my_card_id: Optional[str],
        thumbnail_url: Optional[str],
        render_id: Optional[str],
    ) -> str:
        """Create the public share row and return its absolute link.

        Falls back to the site root when anything goes wrong.
        """
        fallback = self.site_link()
        if not my_card_id or not render_id:
            logger.warning("%s Missing card id or render id, cannot create share link", ctx.log_prefix)
            return fallback

        try:
            public_id = await self.repository.insert_public_share(my_card_id, thumbnail_url)
            path = f"/ecard/view/{public_id}?renderId={render_id}"
            await self.repository.set_share_link(my_card_id, path)
        except Exception as e:
            logger.error("%s Publishing share link failed: %s", ctx.log_prefix, e)
            return fallback

        link = self.site_link(path)
        logger.info("%s Share link %s", ctx.log_prefix, link)
        return link

    async def notify(self, ctx: JobContext, type_: str, message: str, link: Optional[str]) -> bool:
        try:
            await self.notifier.dispatch(
                NotificationMessage(user_id=ctx.user_id, type=type_, message=message, link=link)
            )
        except Exception as e:
            logger.error("%s Could not queue %s notification: %s", ctx.log_prefix, type_, e)
            return False
        return True

    # -- failure ------------------------------------------------------------

    async def _record_failure(self, ctx: JobContext, exc: Exception) -> None:
        message = str(exc) or type(exc).__name__
        final = ctx.is_final_attempt or not getattr(exc, "retryable", True)
        logger.error("%s Failed (%s): %s", ctx.log_prefix, "final" if final else "will retry", message)

        if not final:
            try:
                await self.repository.record_error(self.kind, ctx.job_id, message)
            except Exception as e:
                logger.warning("%s Could not record error: %s", ctx.log_prefix, e)
            return

        try:
            marked = await self.repository.fail(self.kind, ctx.job_id, message, self.failure_fields(exc))
        except Exception as e:
            logger.error("%s Could not mark job failed: %s", ctx.log_prefix, e)
            return
        if not marked:
            logger.warning("%s Already terminal, failure not recorded", ctx.log_prefix)
            return
        await self.on_final_failure(ctx, exc)
