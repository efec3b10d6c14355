"""Shotstack template renders: submit a saved template with merge fields, poll the render."""

import logging
import posixpath
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

import requests

from media_jobs.errors import VendorSubmissionError
from media_jobs.logging_config import safe_preview
from media_jobs.vendors.base import HttpVendorClient, PollResult, PollState

logger = logging.getLogger(__name__)


@dataclass
class MergeField:
    find: str
    replace: str

    def as_dict(self) -> dict:
        return {"find": self.find, "replace": self.replace}


@dataclass
class RenderRequest:
    template_id: str
    merge: List[MergeField] = field(default_factory=list)


class ShotstackClient(HttpVendorClient):
    name = "Shotstack"

    def __init__(
        self,
        api_key: str,
        owner_id: str,
        base_url: str = "https://api.shotstack.io/edit/v1",
        cdn_base_url: str = "https://cdn.shotstack.io/au/v1",
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(api_key, base_url, timeout=timeout, session=session)
        self._owner_id = owner_id
        self._cdn_base_url = cdn_base_url.rstrip("/")

    async def submit(self, payload: RenderRequest) -> str:
        return await self._in_thread(self._submit, payload)

    async def poll(self, handle: str) -> PollResult:
        return await self._in_thread(self._poll, handle)

    def cdn_url(self, raw_url: str) -> str:
        """Rewrite a render output URL onto the owner's CDN path."""
        filename = posixpath.basename(urlparse(raw_url).path)
        return f"{self._cdn_base_url}/{self._owner_id}/{filename}"

    def _submit(self, payload: RenderRequest) -> str:
        body = {"id": payload.template_id, "merge": [m.as_dict() for m in payload.merge]}
        logger.info("Submitting Shotstack template %s with %d merge fields", payload.template_id, len(payload.merge))
        resp = self._request(
            "POST",
            f"{self._base_url}/templates/render",
            json=body,
            headers=self._headers(**{"Content-Type": "application/json", "Accept": "application/json"}),
        )
        data = self._expect_ok(resp, "render submission")
        if not isinstance(data, dict):
            data = {}
        response = data.get("response")
        if not data.get("success") or not isinstance(response, dict) or not response.get("id"):
            message = data.get("message") or (response if isinstance(response, dict) else {}).get("message") or "no render id returned"
            raise VendorSubmissionError(
                self.name,
                f"Shotstack render failed to queue: {message}",
                status_code=resp.status_code,
                body=safe_preview(data, 2000),
            )
        return response["id"]

    def _poll(self, render_id: str) -> PollResult:
        data = self._poll_json(f"{self._base_url}/render/{render_id}", render_id)
        if not isinstance(data, dict):
            return PollResult(PollState.POLL_FAILED)

        response = data.get("response")
        if not data.get("success") or not isinstance(response, dict):
            logger.warning("Unexpected Shotstack status response for %s: %s", render_id, data.get("message"))
            return PollResult(PollState.POLL_FAILED)

        status = response.get("status")
        if status == "done" and response.get("url"):
            return PollResult(PollState.DONE, url=self.cdn_url(response["url"]), vendor_status=status)
        if status == "failed":
            return PollResult(
                PollState.FAILED,
                reason=response.get("error") or "Unknown Shotstack error",
                vendor_status=status,
            )
        if status == "queued":
            return PollResult(PollState.QUEUED, vendor_status=status)
        return PollResult(PollState.PROCESSING, vendor_status=status)
