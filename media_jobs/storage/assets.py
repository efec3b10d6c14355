"""Asset lookup and transfer against Supabase Storage.

Assets (songs, voice tracks) are stored flat in per-category buckets under
names like ``Happy_Birthday(HipHop)_30sec.mp3``. The resolver scans the
bucket listing page by page for the first key containing the normalized
pattern and hands back a short-lived signed URL.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

import requests
from supabase import Client

from media_jobs.errors import AssetLookupError, AssetNotFoundError

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Whitespace runs in a name become underscores."""
    return re.sub(r"\s+", "_", name.strip())


def normalize_category(category: str) -> str:
    """Whitespace is dropped from a category (genre) key."""
    return re.sub(r"\s+", "", category)


@dataclass(frozen=True)
class AssetReference:
    bucket: str
    name: str
    category: str
    suffix: str

    @property
    def pattern(self) -> str:
        return f"{normalize_name(self.name)}({normalize_category(self.category)}){self.suffix}"


@dataclass
class ListPage:
    keys: List[str]
    next_token: Optional[str] = None


class ObjectStore:
    """Thin wrapper over the Supabase Storage API.

    Listing is offset-paginated; the offset of the next page is exposed as an
    opaque continuation token.
    """

    def __init__(self, client: Client, page_size: int = 100):
        self._client = client
        self._page_size = page_size

    def list_page(self, bucket: str, token: Optional[str] = None) -> ListPage:
        offset = int(token) if token else 0
        items = self._client.storage.from_(bucket).list(
            None,
            {"limit": self._page_size, "offset": offset, "sortBy": {"column": "name", "order": "asc"}},
        )
        keys = [item["name"] for item in items or [] if item.get("name")]
        next_token = str(offset + len(items)) if len(items or []) >= self._page_size else None
        return ListPage(keys=keys, next_token=next_token)

    def signed_url(self, bucket: str, key: str, expires_in: int) -> str:
        result = self._client.storage.from_(bucket).create_signed_url(key, expires_in)
        url = result.get("signedURL") or result.get("signedUrl")
        if not url:
            raise AssetLookupError(f"No signed URL returned for {bucket}/{key}")
        return url

    def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = "31536000",
    ) -> None:
        self._client.storage.from_(bucket).upload(
            key,
            data,
            {"content-type": content_type, "cache-control": cache_control, "upsert": "true"},
        )

    async def put_async(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(self.put, bucket, key, data, content_type)


class AssetResolver:
    """Find an asset by name/category pattern and sign a URL for it."""

    def __init__(self, store: ObjectStore, expires_in: int = 1200):
        self._store = store
        self._expires_in = expires_in

    async def resolve(self, ref: AssetReference) -> Optional[str]:
        """Signed URL for the first matching key, or None when nothing matches.

        Raises AssetLookupError when the listing or signing call fails.
        """
        return await asyncio.to_thread(self._resolve, ref)

    def _resolve(self, ref: AssetReference) -> Optional[str]:
        if not ref.bucket:
            raise AssetNotFoundError(f"No bucket configured for asset {ref.pattern}")

        pattern = ref.pattern
        token = None
        pages = 0
        while True:
            try:
                page = self._store.list_page(ref.bucket, token)
            except Exception as e:
                raise AssetLookupError(f"Listing bucket {ref.bucket} failed: {e}") from e
            pages += 1

            for key in page.keys:
                if pattern in key:
                    try:
                        return self._store.signed_url(ref.bucket, key, self._expires_in)
                    except AssetLookupError:
                        raise
                    except Exception as e:
                        raise AssetLookupError(f"Signing {ref.bucket}/{key} failed: {e}") from e

            token = page.next_token
            if not token:
                break

        logger.info("No object matching %s in bucket %s (%d page(s))", pattern, ref.bucket, pages)
        return None


class HttpFetcher:
    """Downloads source media (user uploads, signed asset URLs)."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60.0):
        self._session = session or requests.Session()
        self._timeout = timeout

    async def fetch(self, url: str) -> bytes:
        return await asyncio.to_thread(self._fetch, url)

    def _fetch(self, url: str) -> bytes:
        try:
            resp = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            raise AssetLookupError(f"Failed to fetch {url}: {e}") from e
        if resp.status_code >= 500:
            raise AssetLookupError(f"Failed to fetch {url}: HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise AssetNotFoundError(f"Failed to fetch {url}: HTTP {resp.status_code}")
        return resp.content
