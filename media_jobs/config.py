"""Worker configuration via environment variables."""

from typing import Optional

from pydantic_settings import BaseSettings

from media_jobs.errors import ConfigurationError


class Settings(BaseSettings):
    # Supabase (database + storage)
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Public site, used for share links and notification fallbacks
    site_url: str = "http://localhost:3000"

    # Hedra (AI video)
    hedra_api_key: str = ""
    hedra_api_base_url: str = "https://api.hedra.com/web-app/public"

    # Shotstack (template compositing)
    shotstack_api_key: str = ""
    shotstack_owner_id: str = ""
    shotstack_api_base_url: str = "https://api.shotstack.io/edit/v1"
    shotstack_cdn_base_url: str = "https://cdn.shotstack.io/au/v1"

    # Segmind (face swap)
    segmind_api_key: str = ""
    segmind_api_endpoint_url: str = ""
    segmind_timeout_seconds: float = 90.0

    # Every other vendor / asset HTTP call
    vendor_request_timeout_seconds: float = 60.0

    # Polling driver
    poll_interval_seconds: float = 20.0
    poll_timeout_seconds: float = 15 * 60.0

    # Asset resolution
    signed_url_expiry_seconds: int = 1200
    asset_listing_page_size: int = 100
    asset_lookup_retries: int = 3
    asset_lookup_retry_delay_seconds: float = 2.0

    # Storage buckets per asset category
    bucket_hedra_audio: str = ""
    bucket_music: str = ""
    bucket_slideshow_music: str = "smhbaudio547"
    bucket_user: str = ""

    # Worker concurrency, one queue per job kind
    faceswap_concurrency: int = 5
    ai_video_concurrency: int = 5
    slideshow_concurrency: int = 5
    notification_concurrency: int = 5

    # Threads for blocking vendor, storage and database calls; 0 sizes it from the concurrency above
    io_thread_pool_size: int = 0

    # Outer retry policy
    job_max_attempts: int = 1
    job_backoff_seconds: float = 5.0
    shutdown_grace_seconds: float = 30.0

    # Face swap template catalogue (ID,Name,Image,RenderImage)
    faceswap_templates_csv: str = "data/faceswap_templates.csv"

    log_level: str = "INFO"
    port: int = 8002

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def require(self, *names: str) -> None:
        """Raise ConfigurationError listing every named field that is empty."""
        missing = [name for name in names if not getattr(self, name, None)]
        if missing:
            raise ConfigurationError(missing)

    def io_threads(self) -> int:
        """Size of the blocking-call pool: two threads per worker slot across all queues, plus headroom."""
        if self.io_thread_pool_size:
            return self.io_thread_pool_size
        slots = (
            self.faceswap_concurrency
            + self.ai_video_concurrency
            + self.slideshow_concurrency
            + self.notification_concurrency
        )
        return 2 * slots + 8

    def concurrency_for(self, queue_name: str) -> Optional[int]:
        return {
            "face-swap": self.faceswap_concurrency,
            "ai-video-card": self.ai_video_concurrency,
            "slideshow-card": self.slideshow_concurrency,
            "notification-processing": self.notification_concurrency,
        }.get(queue_name)


settings = Settings()
