"""AI video ("singing selfie") card pipeline.

pending -> processing_assets -> generating_ai_video -> compositing_final_video -> complete

Hedra animates the user's photo to a voice track; Shotstack then composites
that clip into the genre's card template with the backing music.
"""

import logging
from typing import Any, Dict

from media_jobs.errors import PollingTimeoutError
from media_jobs.jobs.models import AIVideoCardRequest, JobKind, JobStatus
from media_jobs.pipelines.orchestrator import JobContext, Orchestrator
from media_jobs.pipelines.templates import AI_VIDEO_TEMPLATES, ai_video_merge_fields, template_for_genre
from media_jobs.storage.assets import AssetReference, HttpFetcher, normalize_name
from media_jobs.vendors.base import PollResult
from media_jobs.vendors.hedra import GenerationRequest, HedraClient
from media_jobs.vendors.shotstack import RenderRequest, ShotstackClient

logger = logging.getLogger(__name__)

HEDRA_AUDIO_SUFFIX = "_30sec_hedra.mp3"
MUSIC_SUFFIX = "_30sec.mp3"


class AIVideoCardPipeline(Orchestrator):
    kind = JobKind.AI_VIDEO_CARD
    request_model = AIVideoCardRequest
    first_status = JobStatus.PROCESSING_ASSETS
    required_settings = (
        "hedra_api_key",
        "shotstack_api_key",
        "shotstack_owner_id",
        "bucket_hedra_audio",
        "bucket_music",
    )

    def __init__(
        self,
        *args,
        hedra: HedraClient,
        shotstack: ShotstackClient,
        fetcher: HttpFetcher,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.hedra = hedra
        self.shotstack = shotstack
        self.fetcher = fetcher

    async def execute(self, ctx: JobContext) -> Dict[str, Any]:
        request: AIVideoCardRequest = ctx.request

        # 1. Inputs for the AI video: the photo and the voice track
        image_bytes = await self.fetcher.fetch(request.source_image_url)
        voice_url = await self.resolve_asset(ctx, AssetReference(
            bucket=self.settings.bucket_hedra_audio,
            name=request.song_name,
            category=request.genre,
            suffix=HEDRA_AUDIO_SUFFIX,
        ))
        voice_bytes = await self.fetcher.fetch(voice_url)

        # 2. AI video
        await self.advance(ctx, JobStatus.GENERATING_AI_VIDEO)
        generation = GenerationRequest(
            image_bytes=image_bytes,
            image_name=request.input_image_name,
            audio_bytes=voice_bytes,
            audio_name=f"{normalize_name(request.song_name)}({normalize_name(request.genre)}){HEDRA_AUDIO_SUFFIX}",
            text_prompt=request.text_prompt,
            resolution=request.resolution,
            aspect_ratio=request.aspect_ratio,
            duration_ms=request.duration_ms,
            seed=request.seed,
        )

        async def record_generation(generation_id: str) -> None:
            await self.update_quietly(ctx, {"hedra_generation_id": generation_id})

        _, ai_video_url = await self.submit_and_wait(
            ctx, "video generation", self.hedra, generation, on_submitted=record_generation
        )

        # 3. Composite into the card template
        await self.advance(ctx, JobStatus.COMPOSITING_FINAL_VIDEO, {
            "hedra_video_url": ai_video_url,
            "shotstack_status": "queued",
        })
        music_url = await self.resolve_asset(ctx, AssetReference(
            bucket=self.settings.bucket_music,
            name=request.song_name,
            category=request.genre,
            suffix=MUSIC_SUFFIX,
        ))
        render = RenderRequest(
            template_id=template_for_genre(AI_VIDEO_TEMPLATES, request.genre),
            merge=ai_video_merge_fields(request, ai_video_url, music_url),
        )

        async def record_render(render_id: str) -> None:
            await self.update(ctx, {"shotstack_render_id": render_id})

        async def record_render_status(result: PollResult) -> None:
            await self.update_quietly(ctx, {"shotstack_status": result.observed_status})

        render_id, video_url = await self.submit_and_wait(
            ctx,
            "render",
            self.shotstack,
            render,
            on_submitted=record_render,
            on_status_change=record_render_status,
        )

        # 4. Done
        await self.complete(ctx, {"video_url": video_url, "shotstack_status": "complete"})
        return {"video_url": video_url, "render_id": render_id}

    def failure_fields(self, exc: Exception) -> Dict[str, Any]:
        if isinstance(exc, PollingTimeoutError) and exc.vendor == ShotstackClient.name:
            return {"shotstack_status": "timeout"}
        return {}

    async def after_complete(self, ctx: JobContext, result: Dict[str, Any]) -> None:
        request: AIVideoCardRequest = ctx.request
        link = await self.publish_share_link(
            ctx, request.my_card_id, request.initial_thumbnail_url, result.get("render_id")
        )
        await self.notify(
            ctx,
            "card_ready",
            f"Your Singing Selfie for {request.song_name} is ready! Click here to view.",
            link,
        )
