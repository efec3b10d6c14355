"""Job kinds, status sequences, request payloads and queue entries."""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobKind(str, Enum):
    FACE_SWAP = "face-swap"
    AI_VIDEO_CARD = "ai-video-card"
    SLIDESHOW_CARD = "slideshow-card"


class JobStatus(str, Enum):
    PENDING = "pending"
    # face swap
    PROCESSING_ASSETS = "processing_assets"
    SWAPPING_FACE = "swapping_face"
    STORING_RESULT = "storing_result"
    # ai video card
    GENERATING_AI_VIDEO = "generating_ai_video"
    COMPOSITING_FINAL_VIDEO = "compositing_final_video"
    # slideshow card
    PROCESSING_SLIDESHOW = "processing_slideshow"
    RENDERING_SLIDESHOW = "rendering_slideshow"
    # terminal
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETE, JobStatus.FAILED})

# Forward-only progression per kind. FAILED is reachable from any
# non-terminal entry and is therefore not part of the sequence.
STATUS_SEQUENCES: Dict[JobKind, List[JobStatus]] = {
    JobKind.FACE_SWAP: [
        JobStatus.PENDING,
        JobStatus.PROCESSING_ASSETS,
        JobStatus.SWAPPING_FACE,
        JobStatus.STORING_RESULT,
        JobStatus.COMPLETE,
    ],
    JobKind.AI_VIDEO_CARD: [
        JobStatus.PENDING,
        JobStatus.PROCESSING_ASSETS,
        JobStatus.GENERATING_AI_VIDEO,
        JobStatus.COMPOSITING_FINAL_VIDEO,
        JobStatus.COMPLETE,
    ],
    JobKind.SLIDESHOW_CARD: [
        JobStatus.PENDING,
        JobStatus.PROCESSING_SLIDESHOW,
        JobStatus.RENDERING_SLIDESHOW,
        JobStatus.COMPLETE,
    ],
}


def statuses_before(kind: JobKind, status: JobStatus) -> List[JobStatus]:
    """Statuses a job of ``kind`` may hold when moving forward to ``status``."""
    sequence = STATUS_SEQUENCES[kind]
    if status not in sequence:
        raise ValueError(f"{status.value} is not a {kind.value} status")
    return sequence[: sequence.index(status)]


def non_terminal_statuses(kind: JobKind) -> List[JobStatus]:
    return [s for s in STATUS_SEQUENCES[kind] if s not in TERMINAL_STATUSES]


def is_terminal(status: Optional[str]) -> bool:
    return status in {s.value for s in TERMINAL_STATUSES}


class JobRequest(BaseModel):
    """Inbound queue payload. Field names are accepted in camelCase or snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    kind: ClassVar[JobKind]

    job_id: str
    user_id: str


class FaceSwapRequest(JobRequest):
    kind: ClassVar[JobKind] = JobKind.FACE_SWAP

    source_image_url: str
    template_id: str


class AIVideoCardRequest(JobRequest):
    kind: ClassVar[JobKind] = JobKind.AI_VIDEO_CARD

    my_card_id: str
    source_image_url: str
    input_image_name: str
    text_prompt: str
    aspect_ratio: str
    resolution: str
    duration_ms: Optional[int] = None
    seed: Optional[int] = None
    song_name: str
    genre: str
    display_name: str = ""
    message: Optional[str] = None
    your_name: str = ""
    theme_render_url: str
    initial_thumbnail_url: Optional[str] = None
    bespoke_background_url: Optional[str] = None


class SlideshowCardRequest(JobRequest):
    kind: ClassVar[JobKind] = JobKind.SLIDESHOW_CARD

    my_card_id: str
    recipient_name: str
    display_name: str = ""
    selected_song_genre: str
    theme_render_url: str
    message: Optional[str] = None
    sender_name: str = ""
    image_urls: List[str] = Field(default_factory=list)
    initial_thumbnail_url: Optional[str] = None
    bespoke_background_url: Optional[str] = None


class NotificationMessage(BaseModel):
    """Fire-and-forget message for the per-user notification feed."""

    user_id: str
    type: str  # e.g. faceswap_complete, card_ready
    message: str
    link: Optional[str] = None


class EntryStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    RETRY_SCHEDULED = "retry_scheduled"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueEntry(BaseModel):
    """Tracks one delivery through a queue, across all of its attempts.

    ``id`` is the queue-internal delivery id. It is distinct from the
    caller-supplied job id inside ``payload`` and stays the same across
    retry attempts of this delivery.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    queue: str
    name: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: EntryStatus = EntryStatus.PENDING
    attempts_made: int = 0
    max_attempts: int = 1
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_final_attempt(self) -> bool:
        return self.attempts_made >= self.max_attempts
