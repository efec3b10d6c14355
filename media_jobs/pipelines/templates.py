"""Render templates and merge fields for the card pipelines, plus the face swap template catalogue."""

import csv
import os
from typing import Dict, List, Optional
from urllib.parse import urljoin

from media_jobs.errors import AssetNotFoundError, ConfigurationError
from media_jobs.jobs.models import AIVideoCardRequest, SlideshowCardRequest
from media_jobs.storage.assets import normalize_category
from media_jobs.vendors.shotstack import MergeField

# Shotstack template per genre (genre keys have spaces removed)
AI_VIDEO_TEMPLATES: Dict[str, str] = {
    "Metal": "53d55f74-8a8a-4c34-bc2b-c0abfb6d1e2a",
    "Punk": "9a6c2d30-384c-4087-b9f1-ced55aef2809",
    "LatinJazz": "24b4423d-f2d9-4f72-b7c7-94307732619f",
    "OutlawCountry": "e948f56c-12df-4438-86e6-c96dc2e59035",
    "Folk": "8e9a90b6-1d6e-46b5-9c07-c35c7325c83c",
    "AltPop": "f3e830e3-758b-4873-b572-fceacf4a2f21",
    "Gospel": "ce86bafa-151b-4d3f-b755-5f6b32c644fd",
    "JiveBlues": "3543ed64-8556-4745-ae90-3c5e754a578b",
    "Jazz": "b14a681e-eba1-4557-9082-ea5308f14774",
    "Reggae": "9e5217ff-21b4-4086-8f1b-1c60691cd2ed",
    "Pop": "019e78b2-7bc3-4f5e-a560-9c2a8964f07b",
    "TradJazz": "0e170786-99b5-498d-859a-c7a806c8290c",
    "FolkPop": "29f0faa8-597e-43ad-966c-94c2d4bae269",
    "Classical": "1e9552c2-be82-42cb-8b2e-4f4aa7e4ef43",
    "Country": "71f2a9c6-bfdf-446c-83cb-69786b474023",
    "HipHop": "32c13059-ff08-4c89-86b9-dd855cc6acc2",
}

SLIDESHOW_TEMPLATES: Dict[str, str] = {
    "Metal": "d4343b1b-c0f6-4e18-afe6-e37f1f9e3fb8",
    "Punk": "2dde82ce-4dff-4755-8a34-f1e50386e30d",
    "LatinJazz": "de540b0d-53f9-4437-9212-e3e7c764cb4c",
    "OutlawCountry": "b5f3bca2-9589-490c-bb06-08199d7959fa",
    "Folk": "e08fb960-94d8-4871-ac5b-47077e1e9adf",
    "AltPop": "0237998f-9587-45d1-a313-76faad477831",
    "Gospel": "fadc6d68-3b33-481c-9313-1f05f7878824",
    "JiveBlues": "2361108b-3ec9-482c-8382-db3d4c12b4d5",
    "Jazz": "b6151c01-fb17-40f3-ad23-40d675f15e45",
    "Reggae": "cbfa9889-9411-4764-88f9-8decffdf09d4",
    "Pop": "310e6e56-451e-4fc4-8392-780a0ab19d1d",
    "TradJazz": "04a2cd60-2319-4d21-9630-2e3093926573",
    "FolkPop": "98b24939-9e5a-402c-8048-c2f536f43b4b",
    "Classical": "5bf760f0-2f58-4104-8e2d-790c3265bc41",
    "Country": "7196d8dc-b582-404b-b032-7edc8c9702f0",
    "HipHop": "0935cae7-e97d-41d3-b9af-ff583da909cf",
}

SLIDESHOW_IMAGE_SLOTS = 7
# 0-based fallback for slots beyond the four guaranteed images
_SLOT_FALLBACKS = {4: 1, 5: 2, 6: 0}


def template_for_genre(mapping: Dict[str, str], genre: str) -> str:
    template_id = mapping.get(normalize_category(genre))
    if not template_id:
        raise AssetNotFoundError(
            f"No Shotstack template ID found for genre: {genre} (normalized: {normalize_category(genre)})"
        )
    return template_id


def ai_video_merge_fields(
    request: AIVideoCardRequest, ai_video_url: str, music_url: str
) -> List[MergeField]:
    """Merge fields for the singing selfie template.

    A bespoke background replaces the theme render and clears every text
    overlay, since the text is already baked into the background.
    """
    bespoke = request.bespoke_background_url
    fields = {
        "hedra": ai_video_url,
        "name": "",
        "altn": "" if bespoke else request.display_name or "",
        "happy": "",
        "alth": "" if bespoke else "Happy Birthday",
        "greetingbg": bespoke or request.theme_render_url,
        "message": "" if bespoke else request.message or "",
        "sender": "" if bespoke else request.your_name or "",
        "thumbnail_url": request.initial_thumbnail_url or "",
        "music": music_url,
        "christmas": "",
        "jinglemusic": "0",
    }
    return [MergeField(find, replace) for find, replace in fields.items()]


def slideshow_merge_fields(request: SlideshowCardRequest, music_url: str) -> List[MergeField]:
    bespoke = request.bespoke_background_url
    fields = [
        MergeField("name", ""),
        MergeField("greetingbg", bespoke or request.theme_render_url),
        MergeField("happy", ""),
        MergeField("alth", "" if bespoke else "Happy Birthday"),
        MergeField("altn", "" if bespoke else request.display_name or ""),
        MergeField("message", "" if bespoke else request.message or ""),
        MergeField("sender", "" if bespoke else request.sender_name or ""),
        MergeField("music", music_url),
    ]
    images = slideshow_image_slots(request.image_urls, request.theme_render_url)
    fields.extend(MergeField(f"image{i + 1}", url) for i, url in enumerate(images))
    return fields


def slideshow_image_slots(image_urls: List[str], theme_render_url: str) -> List[str]:
    """Fill the seven image slots of the slideshow template.

    The first four slots take the first four images. Slots five to seven
    use their own image when present, otherwise images 2, 3 and 1. With no
    images at all every slot shows the theme render, since the template
    rejects empty sources.
    """
    images = [url for url in image_urls if url]
    if not images:
        return [theme_render_url] * SLIDESHOW_IMAGE_SLOTS

    def pick(index: int) -> str:
        if index < len(images):
            return images[index]
        fallback = _SLOT_FALLBACKS.get(index, 0)
        if fallback < len(images):
            return images[fallback]
        return images[0]

    return [pick(i) for i in range(SLIDESHOW_IMAGE_SLOTS)]


class FaceSwapTemplateCatalogue:
    """Template lookup from the CSV catalogue (columns ID, Name, Image, RenderImage)."""

    def __init__(self, csv_path: str, site_url: str):
        self._csv_path = csv_path
        self._site_url = site_url
        self._records: Optional[Dict[str, Dict[str, str]]] = None

    def render_image_url(self, template_id: str) -> str:
        record = self._load().get(str(template_id))
        if not record or not record.get("RenderImage"):
            raise AssetNotFoundError(f"Template ID {template_id} not found or missing RenderImage in CSV.")
        return urljoin(self._site_url.rstrip("/") + "/", record["RenderImage"].lstrip("/"))

    def _load(self) -> Dict[str, Dict[str, str]]:
        if self._records is None:
            if not os.path.exists(self._csv_path):
                raise ConfigurationError(["faceswap_templates_csv"])
            with open(self._csv_path, newline="", encoding="utf-8") as f:
                self._records = {row["ID"]: row for row in csv.DictReader(f) if row.get("ID")}
        return self._records
