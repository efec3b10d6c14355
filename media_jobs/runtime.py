"""Worker runtime: builds the clients, one queue per job kind, and the notification queue."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from supabase import Client

from media_jobs.config import Settings
from media_jobs.db.repository import JobRepository
from media_jobs.db.supabase_client import create_supabase
from media_jobs.errors import ConfigurationError
from media_jobs.jobs.in_process_queue import InProcessQueue
from media_jobs.jobs.models import JobKind
from media_jobs.notifications import NOTIFICATION_QUEUE, NotificationConsumer, NotificationDispatcher
from media_jobs.pipelines.ai_video_card import AIVideoCardPipeline
from media_jobs.pipelines.faceswap import FaceSwapPipeline
from media_jobs.pipelines.orchestrator import Orchestrator
from media_jobs.pipelines.slideshow_card import SlideshowCardPipeline
from media_jobs.pipelines.templates import FaceSwapTemplateCatalogue
from media_jobs.polling import PollingDriver
from media_jobs.storage.assets import AssetResolver, HttpFetcher, ObjectStore
from media_jobs.vendors.hedra import HedraClient
from media_jobs.vendors.segmind import FaceSwapClient
from media_jobs.vendors.shotstack import ShotstackClient

logger = logging.getLogger(__name__)


class WorkerRuntime:
    """Owns the queues. Start the notification queue before the job queues
    and stop it after them, so completions always have somewhere to go."""

    def __init__(
        self,
        settings: Settings,
        repository: JobRepository,
        pipelines: Dict[JobKind, Orchestrator],
        queues: Dict[JobKind, InProcessQueue],
        notification_queue: InProcessQueue,
    ):
        self.settings = settings
        self.repository = repository
        self.pipelines = pipelines
        self.queues = queues
        self.notification_queue = notification_queue
        self.started = False
        self.executor: Optional[ThreadPoolExecutor] = None

    def verify(self) -> None:
        """Check every pipeline's required settings. Raises ConfigurationError."""
        missing: List[str] = []
        for pipeline in self.pipelines.values():
            for name in pipeline.required_settings:
                if not getattr(self.settings, name, None) and name not in missing:
                    missing.append(name)
        if missing:
            raise ConfigurationError(missing)

    async def start(self) -> None:
        # Every blocking call goes through the loop's default executor; size it so
        # one kind's long vendor calls cannot take every thread
        self.executor = ThreadPoolExecutor(
            max_workers=self.settings.io_threads(), thread_name_prefix="media-io"
        )
        asyncio.get_running_loop().set_default_executor(self.executor)

        await self.notification_queue.start()
        for queue in self.queues.values():
            await queue.start()
        self.started = True
        logger.info("Worker runtime started: %s", ", ".join(q.name for q in self.queues.values()))

    async def stop(self) -> None:
        for queue in self.queues.values():
            await queue.stop()
        await self.notification_queue.stop()
        self.started = False
        logger.info("Worker runtime stopped")

    async def submit(self, kind: JobKind, payload: Dict[str, Any]) -> str:
        """Validate a job payload and enqueue it. Returns the delivery id."""
        request = self.pipelines[kind].request_model.model_validate(payload)
        delivery_id = await self.queues[kind].enqueue(kind.value, request.model_dump())
        logger.info("[job %s] Queued on %s as delivery %s", request.job_id, kind.value, delivery_id)
        return delivery_id

    async def get_job(self, kind: JobKind, job_id: str) -> Optional[Dict[str, Any]]:
        return await self.repository.get(kind, job_id)

    def stats(self) -> Dict[str, Dict[str, int]]:
        stats = {kind.value: queue.stats() for kind, queue in self.queues.items()}
        stats[NOTIFICATION_QUEUE] = self.notification_queue.stats()
        return stats


def _queue(settings: Settings, name: str, handler) -> InProcessQueue:
    return InProcessQueue(
        name,
        handler,
        concurrency=settings.concurrency_for(name) or 5,
        max_attempts=settings.job_max_attempts,
        backoff_seconds=settings.job_backoff_seconds,
        shutdown_grace_seconds=settings.shutdown_grace_seconds,
    )


def build_runtime(settings: Settings, client: Optional[Client] = None) -> WorkerRuntime:
    """Wire clients, pipelines and queues from settings."""
    client = client or create_supabase(settings)
    repository = JobRepository(client)
    store = ObjectStore(client, page_size=settings.asset_listing_page_size)
    assets = AssetResolver(store, expires_in=settings.signed_url_expiry_seconds)
    fetcher = HttpFetcher(timeout=settings.vendor_request_timeout_seconds)
    polling = PollingDriver(
        interval_seconds=settings.poll_interval_seconds,
        timeout_seconds=settings.poll_timeout_seconds,
    )

    notification_queue = _queue(settings, NOTIFICATION_QUEUE, NotificationConsumer(repository).handle)
    notifier = NotificationDispatcher(notification_queue)

    shotstack = ShotstackClient(
        settings.shotstack_api_key,
        settings.shotstack_owner_id,
        base_url=settings.shotstack_api_base_url,
        cdn_base_url=settings.shotstack_cdn_base_url,
        timeout=settings.vendor_request_timeout_seconds,
    )
    common = dict(settings=settings, polling=polling, assets=assets)

    pipelines: Dict[JobKind, Orchestrator] = {
        JobKind.FACE_SWAP: FaceSwapPipeline(
            repository,
            notifier,
            catalogue=FaceSwapTemplateCatalogue(settings.faceswap_templates_csv, settings.site_url),
            face_swap=FaceSwapClient(
                settings.segmind_api_key,
                settings.segmind_api_endpoint_url,
                timeout=settings.segmind_timeout_seconds,
            ),
            fetcher=fetcher,
            store=store,
            **common,
        ),
        JobKind.AI_VIDEO_CARD: AIVideoCardPipeline(
            repository,
            notifier,
            hedra=HedraClient(
                settings.hedra_api_key,
                base_url=settings.hedra_api_base_url,
                timeout=settings.vendor_request_timeout_seconds,
            ),
            shotstack=shotstack,
            fetcher=fetcher,
            **common,
        ),
        JobKind.SLIDESHOW_CARD: SlideshowCardPipeline(
            repository,
            notifier,
            shotstack=shotstack,
            **common,
        ),
    }
    queues = {kind: _queue(settings, kind.value, pipeline.handle) for kind, pipeline in pipelines.items()}

    return WorkerRuntime(settings, repository, pipelines, queues, notification_queue)
