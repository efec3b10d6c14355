"""In-memory stand-ins for the repository, notifier, storage and vendor clients."""

from typing import Any, Dict, List, Optional

from media_jobs.config import Settings
from media_jobs.errors import AssetLookupError, JobOwnershipError, PersistenceError
from media_jobs.jobs.models import (
    JobKind,
    JobStatus,
    NotificationMessage,
    STATUS_SEQUENCES,
    is_terminal,
    non_terminal_statuses,
)
from media_jobs.storage.assets import AssetReference, ListPage
from media_jobs.vendors.base import PollResult, PollState, VendorClient


def make_settings(**overrides) -> Settings:
    values = dict(
        supabase_url="https://db.example.test",
        supabase_service_role_key="service-key",
        site_url="https://cards.example.test",
        hedra_api_key="hedra-key",
        shotstack_api_key="shotstack-key",
        shotstack_owner_id="owner1",
        segmind_api_key="segmind-key",
        segmind_api_endpoint_url="https://segmind.example.test/faceswap",
        bucket_hedra_audio="hedra-audio",
        bucket_music="music",
        bucket_slideshow_music="slideshow-music",
        bucket_user="user-media",
        poll_interval_seconds=20,
        poll_timeout_seconds=900,
        asset_lookup_retries=2,
        asset_lookup_retry_delay_seconds=0,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeClock:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeRepository:
    """Job rows in memory with the same guarded transitions as JobRepository."""

    def __init__(self):
        self.rows: Dict[tuple, Dict[str, Any]] = {}
        self.status_history: Dict[str, List[str]] = {}
        self.faceswaps: List[Dict[str, Any]] = []
        self.public_shares: List[Dict[str, Any]] = []
        self.share_links: Dict[str, str] = {}
        self.notifications: List[NotificationMessage] = []
        self.fail_public_share = False
        self.fail_notification_insert = False

    def add_job(self, kind: JobKind, job_id: str, status: str = "pending", **fields) -> Dict[str, Any]:
        row = {"job_id": job_id, "status": status, "claimed_by": None, "error_message": None, **fields}
        self.rows[(kind, job_id)] = row
        self.status_history[job_id] = [status]
        return row

    def row(self, kind: JobKind, job_id: str) -> Dict[str, Any]:
        return self.rows[(kind, job_id)]

    def _set_status(self, row: Dict[str, Any], status: str) -> None:
        row["status"] = status
        self.status_history[row["job_id"]].append(status)

    async def claim(self, kind, job_id, status, owner, fields=None):
        row = self.rows.get((kind, job_id))
        if row is None:
            raise JobOwnershipError(job_id, None)
        if row["status"] == JobStatus.PENDING.value:
            row.update(fields or {})
            row["claimed_by"] = owner
            self._set_status(row, status.value)
            return
        if row["claimed_by"] == owner and not is_terminal(row["status"]):
            row["error_message"] = None
            return
        raise JobOwnershipError(job_id, row["status"])

    async def advance(self, kind, job_id, status, fields=None):
        row = self.rows.get((kind, job_id))
        if row is None or is_terminal(row["status"]):
            raise JobOwnershipError(job_id, row["status"] if row else None)
        sequence = [s.value for s in STATUS_SEQUENCES[kind]]
        row.update(fields or {})
        if sequence.index(row["status"]) < sequence.index(status.value):
            self._set_status(row, status.value)
            return True
        return False

    async def update_fields(self, kind, job_id, fields):
        row = self.rows.get((kind, job_id))
        if row is not None and row["status"] in [s.value for s in non_terminal_statuses(kind)]:
            row.update(fields)

    async def complete(self, kind, job_id, fields):
        row = self.rows.get((kind, job_id))
        if row is None or is_terminal(row["status"]):
            raise JobOwnershipError(job_id, row["status"] if row else None)
        row.update(fields)
        self._set_status(row, JobStatus.COMPLETE.value)

    async def fail(self, kind, job_id, message, fields=None):
        row = self.rows.get((kind, job_id))
        if row is None or is_terminal(row["status"]):
            return False
        row.update(fields or {})
        row["error_message"] = message
        self._set_status(row, JobStatus.FAILED.value)
        return True

    async def record_error(self, kind, job_id, message):
        await self.update_fields(kind, job_id, {"error_message": message})

    async def get(self, kind, job_id):
        return self.rows.get((kind, job_id))

    async def get_status(self, kind, job_id):
        row = self.rows.get((kind, job_id))
        return row["status"] if row else None

    async def insert_faceswap(self, user_id, s3_path, source_image_url, template_image_url):
        row_id = f"fs-{len(self.faceswaps) + 1}"
        self.faceswaps.append({
            "id": row_id,
            "user_id": user_id,
            "s3_path": s3_path,
            "source_image_url": source_image_url,
            "template_image_url": template_image_url,
        })
        return row_id

    async def insert_public_share(self, my_card_id, thumbnail_url):
        if self.fail_public_share:
            raise PersistenceError("public_shared_cards", "insert", "simulated outage")
        row_id = f"pub-{len(self.public_shares) + 1}"
        self.public_shares.append({"id": row_id, "my_card_id": my_card_id, "thumbnail_url": thumbnail_url})
        return row_id

    async def set_share_link(self, my_card_id, link):
        self.share_links[my_card_id] = link

    async def insert_notification(self, message):
        if self.fail_notification_insert:
            raise PersistenceError("notifications", "insert", "simulated outage")
        self.notifications.append(message)
        return len(self.notifications)


class FakeNotifier:
    def __init__(self):
        self.messages: List[NotificationMessage] = []

    async def dispatch(self, message: NotificationMessage) -> str:
        self.messages.append(message)
        return f"n-{len(self.messages)}"


class FakeAssets:
    """Asset resolver backed by a fixed set of object keys."""

    def __init__(self, keys: Optional[Dict[str, List[str]]] = None, errors: int = 0):
        self.keys = keys or {}
        self.errors = errors
        self.lookups: List[AssetReference] = []

    async def resolve(self, ref: AssetReference) -> Optional[str]:
        self.lookups.append(ref)
        if self.errors:
            self.errors -= 1
            raise AssetLookupError(f"listing {ref.bucket} failed")
        for key in self.keys.get(ref.bucket, []):
            if ref.pattern in key:
                return f"https://signed.example.test/{ref.bucket}/{key}?token=abc"
        return None


class FakeListingStore:
    """ObjectStore stand-in serving a fixed listing in pages."""

    def __init__(self, keys: List[str], page_size: int = 2, fail_listing: bool = False):
        self.keys = keys
        self.page_size = page_size
        self.fail_listing = fail_listing
        self.pages_served = 0
        self.signed: List[str] = []

    def list_page(self, bucket: str, token: Optional[str] = None) -> ListPage:
        if self.fail_listing:
            raise ConnectionError("storage unreachable")
        offset = int(token) if token else 0
        self.pages_served += 1
        chunk = self.keys[offset:offset + self.page_size]
        next_offset = offset + self.page_size
        return ListPage(keys=chunk, next_token=str(next_offset) if next_offset < len(self.keys) else None)

    def signed_url(self, bucket: str, key: str, expires_in: int) -> str:
        self.signed.append(key)
        return f"https://signed.example.test/{bucket}/{key}?expires={expires_in}"


class FakeFetcher:
    def __init__(self, content: Optional[Dict[str, bytes]] = None, default: bytes = b"bytes"):
        self.content = content or {}
        self.default = default
        self.fetched: List[str] = []

    async def fetch(self, url: str) -> bytes:
        self.fetched.append(url)
        return self.content.get(url, self.default)


class FakeObjectStore:
    def __init__(self, fail: bool = False):
        self.puts: List[tuple] = []
        self.fail = fail

    async def put_async(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        if self.fail:
            raise ConnectionError("upload refused")
        self.puts.append((bucket, key, data, content_type))


class ScriptedVendor(VendorClient):
    """Vendor whose poll answers follow a script; the last answer repeats."""

    def __init__(self, name: str, handle: str, script: List[PollResult], submit_error: Exception = None):
        self.name = name
        self.handle = handle
        self.script = list(script)
        self.submit_error = submit_error
        self.submitted: List[Any] = []
        self.polls = 0

    async def submit(self, payload: Any) -> str:
        self.submitted.append(payload)
        if self.submit_error is not None:
            raise self.submit_error
        return self.handle

    async def poll(self, handle: str) -> PollResult:
        result = self.script[min(self.polls, len(self.script) - 1)]
        self.polls += 1
        return result


def rendering(n: int, vendor_status: str = "rendering") -> List[PollResult]:
    return [PollResult(PollState.PROCESSING, vendor_status=vendor_status)] * n


def done(url: str) -> PollResult:
    return PollResult(PollState.DONE, url=url, vendor_status="done")


def failed(reason: str) -> PollResult:
    return PollResult(PollState.FAILED, reason=reason, vendor_status="failed")
