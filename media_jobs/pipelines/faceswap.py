"""Face swap pipeline.

pending -> processing_assets -> swapping_face -> storing_result -> complete

The vendor call is synchronous (no polling): the swapped image comes back in
the response body and is stored under ``user_faceswaps/<user>/<job>.jpg``.
"""

import logging
from typing import Any, Dict

from media_jobs.errors import PersistenceError
from media_jobs.jobs.models import FaceSwapRequest, JobKind, JobStatus
from media_jobs.pipelines.orchestrator import JobContext, Orchestrator
from media_jobs.pipelines.templates import FaceSwapTemplateCatalogue
from media_jobs.storage.assets import HttpFetcher, ObjectStore
from media_jobs.vendors.segmind import FaceSwapClient

logger = logging.getLogger(__name__)


def result_key(user_id: str, job_id: str) -> str:
    return f"user_faceswaps/{user_id}/{job_id}.jpg"


class FaceSwapPipeline(Orchestrator):
    kind = JobKind.FACE_SWAP
    request_model = FaceSwapRequest
    first_status = JobStatus.PROCESSING_ASSETS
    required_settings = ("segmind_api_key", "segmind_api_endpoint_url", "bucket_user", "site_url")

    def __init__(
        self,
        *args,
        catalogue: FaceSwapTemplateCatalogue,
        face_swap: FaceSwapClient,
        fetcher: HttpFetcher,
        store: ObjectStore,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.catalogue = catalogue
        self.face_swap = face_swap
        self.fetcher = fetcher
        self.store = store

    async def execute(self, ctx: JobContext) -> Dict[str, Any]:
        request: FaceSwapRequest = ctx.request

        # 1. Template render image and both inputs
        template_url = self.catalogue.render_image_url(request.template_id)
        logger.info("%s Template %s -> %s", ctx.log_prefix, request.template_id, template_url)
        source_image = await self.fetcher.fetch(request.source_image_url)
        target_image = await self.fetcher.fetch(template_url)
        logger.info(
            "%s Fetched source (%d bytes) and template (%d bytes)",
            ctx.log_prefix, len(source_image), len(target_image),
        )

        # 2. Swap
        await self.advance(ctx, JobStatus.SWAPPING_FACE)
        swapped = await self.face_swap.swap(source_image, target_image)

        # 3. Store the image, then its row
        await self.advance(ctx, JobStatus.STORING_RESULT)
        key = result_key(request.user_id, request.job_id)
        try:
            await self.store.put_async(self.settings.bucket_user, key, swapped, "image/jpeg")
        except Exception as e:
            raise PersistenceError(self.settings.bucket_user, "upload", str(e)) from e
        logger.info("%s Stored result at %s", ctx.log_prefix, key)

        database_id = await self.repository.insert_faceswap(
            user_id=request.user_id,
            s3_path=key,
            source_image_url=request.source_image_url,
            template_image_url=template_url,
        )
        logger.info("%s Saved faceswap record %s", ctx.log_prefix, database_id)

        # 4. Done
        await self.complete(ctx, {"result_path": key, "database_id": database_id})
        return {"s3_path": key, "database_id": database_id}

    async def after_complete(self, ctx: JobContext, result: Dict[str, Any]) -> None:
        await self.notify(
            ctx,
            "faceswap_complete",
            "Your faceswap is ready! Click here to view.",
            self.site_link(f"/profile?faceswapId={result['database_id']}"),
        )

    async def on_final_failure(self, ctx: JobContext, exc: Exception) -> None:
        await self.notify(
            ctx,
            "faceswap_failed",
            "Your faceswap could not be created. Please try again.",
            self.site_link(),
        )
