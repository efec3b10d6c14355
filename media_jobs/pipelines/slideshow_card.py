"""Birthday slideshow card pipeline.

pending -> processing_slideshow -> rendering_slideshow -> complete

A single Shotstack render: the user's photos, a themed background and a
personalised song (named after the recipient) merged into the genre's
slideshow template.
"""

import logging
from typing import Any, Dict

from media_jobs.errors import PollingTimeoutError
from media_jobs.jobs.models import JobKind, JobRequest, JobStatus, SlideshowCardRequest
from media_jobs.pipelines.orchestrator import JobContext, Orchestrator
from media_jobs.pipelines.templates import SLIDESHOW_TEMPLATES, slideshow_merge_fields, template_for_genre
from media_jobs.storage.assets import AssetReference
from media_jobs.vendors.base import PollResult
from media_jobs.vendors.shotstack import RenderRequest, ShotstackClient

logger = logging.getLogger(__name__)

MUSIC_SUFFIX = "_50sec.mp3"


class SlideshowCardPipeline(Orchestrator):
    kind = JobKind.SLIDESHOW_CARD
    request_model = SlideshowCardRequest
    first_status = JobStatus.PROCESSING_SLIDESHOW
    required_settings = ("shotstack_api_key", "shotstack_owner_id", "bucket_slideshow_music")

    def __init__(self, *args, shotstack: ShotstackClient, **kwargs):
        super().__init__(*args, **kwargs)
        self.shotstack = shotstack

    def claim_fields(self, request: JobRequest) -> Dict[str, Any]:
        return {"shotstack_render_id": None, "shotstack_status": "queued"}

    async def execute(self, ctx: JobContext) -> Dict[str, Any]:
        request: SlideshowCardRequest = ctx.request

        # 1. Template and music
        template_id = template_for_genre(SLIDESHOW_TEMPLATES, request.selected_song_genre)
        logger.info("%s Using template %s for genre %s", ctx.log_prefix, template_id, request.selected_song_genre)
        music_url = await self.resolve_asset(ctx, AssetReference(
            bucket=self.settings.bucket_slideshow_music,
            name=request.recipient_name,
            category=request.selected_song_genre,
            suffix=MUSIC_SUFFIX,
        ))
        if not request.image_urls:
            logger.warning("%s No images supplied, filling every slot with the theme render", ctx.log_prefix)

        render = RenderRequest(template_id=template_id, merge=slideshow_merge_fields(request, music_url))

        # 2. Render
        async def start_rendering(render_id: str) -> None:
            await self.advance(ctx, JobStatus.RENDERING_SLIDESHOW, {
                "shotstack_render_id": render_id,
                "shotstack_status": "rendering",
            })

        async def record_render_status(result: PollResult) -> None:
            await self.update_quietly(ctx, {"shotstack_status": result.observed_status})

        render_id, video_url = await self.submit_and_wait(
            ctx,
            "render",
            self.shotstack,
            render,
            on_submitted=start_rendering,
            on_status_change=record_render_status,
        )

        # 3. Done
        await self.complete(ctx, {"video_url": video_url, "shotstack_status": "complete"})
        return {"video_url": video_url, "render_id": render_id}

    def failure_fields(self, exc: Exception) -> Dict[str, Any]:
        if isinstance(exc, PollingTimeoutError):
            return {"shotstack_status": "timeout"}
        return {}

    async def after_complete(self, ctx: JobContext, result: Dict[str, Any]) -> None:
        request: SlideshowCardRequest = ctx.request
        link = await self.publish_share_link(
            ctx, request.my_card_id, request.initial_thumbnail_url, result.get("render_id")
        )
        title = request.display_name or request.recipient_name or "your slideshow"
        await self.notify(
            ctx,
            "card_ready",
            f'Your Birthday Slideshow "{title}" is ready! Click here to view.',
            link,
        )
