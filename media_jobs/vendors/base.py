"""Vendor client interface and shared HTTP plumbing.

Every rendering/generation vendor is driven through the same two calls:

    handle = await client.submit(payload)
    result = await client.poll(handle)

Only ``submit`` is vendor-specific in shape. ``poll`` always answers with a
``PollResult`` and never raises on a transient HTTP failure; it reports
``PollState.POLL_FAILED`` so the polling driver simply tries again.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import requests

from media_jobs.errors import VendorSubmissionError, VendorTimeoutError
from media_jobs.logging_config import safe_preview

logger = logging.getLogger(__name__)


class PollState(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"
    POLL_FAILED = "poll_failed"


@dataclass
class PollResult:
    state: PollState
    url: Optional[str] = None
    reason: Optional[str] = None
    vendor_status: Optional[str] = None  # raw status string as reported

    @property
    def observed_status(self) -> Optional[str]:
        if self.state == PollState.POLL_FAILED:
            return None
        return self.vendor_status or self.state.value


class VendorClient(ABC):
    """Submit a unit of work to a vendor and poll it to a terminal state."""

    name: str = "vendor"

    @abstractmethod
    async def submit(self, payload: Any) -> str:
        """Start the work. Returns the vendor job handle."""
        ...

    @abstractmethod
    async def poll(self, handle: str) -> PollResult:
        """Query the current state of a previously submitted handle."""
        ...


class HttpVendorClient(VendorClient):
    """Base for vendors reached over HTTP with an ``x-api-key`` header."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def _headers(self, **extra: str) -> dict:
        return {"x-api-key": self._api_key, **extra}

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send a request, mapping transport failures to vendor errors.

        A request-level timeout becomes VendorTimeoutError so callers can
        report it separately from other transport failures.
        """
        kwargs.setdefault("timeout", self._timeout)
        try:
            return self._session.request(method, url, **kwargs)
        except requests.Timeout as e:
            raise VendorTimeoutError(
                self.name, f"{self.name} request timed out after {kwargs['timeout']}s: {method} {url}"
            ) from e
        except requests.RequestException as e:
            raise VendorSubmissionError(self.name, f"{self.name} request failed: {e}") from e

    def _expect_ok(self, resp: requests.Response, what: str) -> Any:
        """Return the JSON body of a 2xx response or raise VendorSubmissionError."""
        if not resp.ok:
            body = _body_text(resp)
            logger.error("%s %s failed: HTTP %s %s", self.name, what, resp.status_code, safe_preview(body))
            raise VendorSubmissionError(
                self.name,
                f"{self.name} {what} failed with status {resp.status_code}",
                status_code=resp.status_code,
                body=body,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise VendorSubmissionError(
                self.name,
                f"{self.name} {what} returned a non-JSON body",
                status_code=resp.status_code,
                body=_body_text(resp),
            ) from e

    def _poll_json(self, url: str, handle: str) -> Optional[Any]:
        """GET a status document. Returns None on any transient failure."""
        try:
            resp = self._session.get(url, headers=self._headers(Accept="application/json"), timeout=self._timeout)
        except requests.RequestException as e:
            logger.warning("%s status poll for %s failed: %s", self.name, handle, e)
            return None
        if not resp.ok:
            logger.warning("%s status poll failed with status %s for %s", self.name, resp.status_code, handle)
            return None
        try:
            return resp.json()
        except ValueError:
            logger.warning("%s status poll for %s returned a non-JSON body", self.name, handle)
            return None

    async def _in_thread(self, fn, *args):
        return await asyncio.to_thread(fn, *args)


def _body_text(resp: requests.Response) -> str:
    try:
        return resp.text
    except Exception:
        return "Could not read error body."
