"""Segmind face swap: a single synchronous call that returns the swapped image."""

import asyncio
import base64
import binascii
import logging
from typing import Optional

import requests

from media_jobs.errors import VendorSubmissionError, VendorTimeoutError
from media_jobs.logging_config import safe_preview

logger = logging.getLogger(__name__)


class FaceSwapClient:
    name = "Segmind"

    def __init__(
        self,
        api_key: str,
        endpoint_url: str,
        timeout: float = 90.0,
        session: Optional[requests.Session] = None,
    ):
        self._api_key = api_key
        self._endpoint_url = endpoint_url
        self._timeout = timeout
        self._session = session or requests.Session()

    async def swap(self, source_image: bytes, target_image: bytes) -> bytes:
        """Put the face from ``source_image`` onto ``target_image``. Returns JPEG bytes."""
        return await asyncio.to_thread(self._swap, source_image, target_image)

    def _swap(self, source_image: bytes, target_image: bytes) -> bytes:
        body = {
            "source_image": base64.b64encode(source_image).decode("ascii"),
            "target_image": base64.b64encode(target_image).decode("ascii"),
            "model_type": "speed",
            "swap_type": "face",
            "style_type": "normal",
            "image_format": "jpg",
            "image_quality": 50,
            "base64": True,
        }
        try:
            resp = self._session.post(
                self._endpoint_url,
                json=body,
                headers={"x-api-key": self._api_key, "Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.Timeout as e:
            raise VendorTimeoutError(
                self.name, f"Face swap call timed out after {self._timeout:.0f} seconds."
            ) from e
        except requests.RequestException as e:
            raise VendorSubmissionError(self.name, f"Face swap request failed: {e}") from e

        logger.info("Segmind response status %s", resp.status_code)
        if not resp.ok:
            body_text = resp.text
            logger.error("Segmind error body: %s", safe_preview(body_text))
            raise VendorSubmissionError(
                self.name,
                f"Segmind API request failed with status {resp.status_code}",
                status_code=resp.status_code,
                body=body_text,
            )

        try:
            image_b64 = resp.json().get("image")
        except (ValueError, AttributeError) as e:
            raise VendorSubmissionError(
                self.name, "Segmind returned an unreadable response", status_code=resp.status_code
            ) from e
        if not image_b64:
            raise VendorSubmissionError(
                self.name, "Faceswap failed: No image data returned.", status_code=resp.status_code
            )
        try:
            return base64.b64decode(image_b64)
        except (binascii.Error, ValueError) as e:
            raise VendorSubmissionError(self.name, "Faceswap returned invalid base64 image data") from e
