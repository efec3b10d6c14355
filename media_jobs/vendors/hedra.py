"""Hedra AI video generation: upload a keyframe image and an audio track, then generate."""

import logging
import re
from dataclasses import dataclass
from typing import Optional

import requests

from media_jobs.errors import VendorSubmissionError
from media_jobs.vendors.base import HttpVendorClient, PollResult, PollState

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")


@dataclass
class GenerationRequest:
    image_bytes: bytes
    image_name: str
    audio_bytes: bytes
    audio_name: str
    text_prompt: str
    resolution: str
    aspect_ratio: str
    duration_ms: Optional[int] = None
    seed: Optional[int] = None


def extract_generation_id(raw_id: str) -> Optional[str]:
    """Hedra ids are sometimes returned wrapped in a longer string; pull out the UUID."""
    match = _UUID_RE.search(raw_id or "")
    return match.group(0) if match else None


class HedraClient(HttpVendorClient):
    name = "Hedra"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.hedra.com/web-app/public",
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(api_key, base_url, timeout=timeout, session=session)

    async def submit(self, payload: GenerationRequest) -> str:
        return await self._in_thread(self._submit, payload)

    async def poll(self, handle: str) -> PollResult:
        return await self._in_thread(self._poll, handle)

    def _submit(self, payload: GenerationRequest) -> str:
        model_id = self._first_model_id()
        image_asset = self._upload_asset(payload.image_name, "image", payload.image_bytes, None)
        audio_asset = self._upload_asset(payload.audio_name, "audio", payload.audio_bytes, "audio/mpeg")

        inputs = {
            "text_prompt": payload.text_prompt,
            "resolution": payload.resolution,
            "aspect_ratio": payload.aspect_ratio,
        }
        if payload.duration_ms is not None:
            inputs["duration_ms"] = payload.duration_ms
        if payload.seed is not None:
            inputs["seed"] = payload.seed

        resp = self._request(
            "POST",
            f"{self._base_url}/generations",
            json={
                "type": "video",
                "ai_model_id": model_id,
                "start_keyframe_id": image_asset,
                "audio_id": audio_asset,
                "generated_video_inputs": inputs,
            },
            headers=self._headers(**{"Content-Type": "application/json"}),
        )
        data = self._expect_ok(resp, "generation submission")
        raw_id = data.get("id") if isinstance(data, dict) else None
        generation_id = extract_generation_id(raw_id or "")
        if not generation_id:
            raise VendorSubmissionError(
                self.name,
                f"Hedra returned no usable generation id: {raw_id!r}",
                status_code=resp.status_code,
            )
        logger.info("Submitted Hedra generation %s", generation_id)
        return generation_id

    def _first_model_id(self) -> str:
        resp = self._request("GET", f"{self._base_url}/models", headers=self._headers())
        models = self._expect_ok(resp, "model listing")
        model_id = models[0].get("id") if isinstance(models, list) and models else None
        if not model_id:
            raise VendorSubmissionError(self.name, "Could not retrieve Hedra model ID", status_code=resp.status_code)
        return model_id

    def _upload_asset(self, name: str, asset_type: str, data: bytes, content_type: Optional[str]) -> str:
        resp = self._request(
            "POST",
            f"{self._base_url}/assets",
            json={"name": name, "type": asset_type},
            headers=self._headers(**{"Content-Type": "application/json"}),
        )
        asset = self._expect_ok(resp, f"{asset_type} asset creation")
        asset_id = asset.get("id") if isinstance(asset, dict) else None
        if not asset_id:
            raise VendorSubmissionError(self.name, f"Hedra {asset_type} asset has no id", status_code=resp.status_code)

        file_tuple = (name, data, content_type) if content_type else (name, data)
        resp = self._request(
            "POST",
            f"{self._base_url}/assets/{asset_id}/upload",
            files={"file": file_tuple},
            headers=self._headers(),
        )
        self._expect_ok(resp, f"{asset_type} upload")
        logger.info("Uploaded %s to Hedra asset %s", asset_type, asset_id)
        return asset_id

    def _poll(self, generation_id: str) -> PollResult:
        data = self._poll_json(f"{self._base_url}/generations/{generation_id}/status", generation_id)
        if not isinstance(data, dict):
            return PollResult(PollState.POLL_FAILED)

        status = data.get("status")
        if status == "complete" and data.get("url"):
            return PollResult(PollState.DONE, url=data["url"], vendor_status=status)
        if status == "error":
            return PollResult(
                PollState.FAILED,
                reason=data.get("error_message") or "Unknown Hedra error",
                vendor_status=status,
            )
        if status == "pending":
            return PollResult(PollState.QUEUED, vendor_status=status)
        return PollResult(PollState.PROCESSING, vendor_status=status)
