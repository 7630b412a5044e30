"""Domain models for GIFs, media references and remote jobs."""

from dataclasses import dataclass
from enum import Enum


class MediaKind(str, Enum):
    """Kind of media a face is swapped into."""

    IMAGE = "image"
    GIF = "gif"


class MediaSource(str, Enum):
    """Where the bytes of a media reference can be fetched from."""

    URL = "url"
    TELEGRAM = "telegram"


@dataclass(frozen=True)
class MediaRef:
    """Locator for a piece of media plus how to fetch it."""

    locator: str
    kind: MediaKind
    source: MediaSource = MediaSource.URL


@dataclass(frozen=True)
class GifResult:
    """Single GIF search result."""

    id: str
    title: str
    url: str
    preview_url: str


@dataclass(frozen=True)
class GifSearchPage:
    """Results returned by one GIF search call."""

    results: list[GifResult]
    next_cursor: str | None = None


class JobState(str, Enum):
    """Normalized remote job status."""

    PENDING = "pending"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class JobStatus:
    """Snapshot of a remote face swap job."""

    state: JobState
    result_url: str | None = None
    credits_charged: int | None = None
    error_message: str | None = None
    error_code: str | None = None


@dataclass(frozen=True)
class InboundUpload:
    """Image attachment collected from a chat message."""

    file_id: str
    file_name: str | None
    mime_type: str | None
    file_size: int | None
    message_id: int


@dataclass(frozen=True)
class DeliveredMedia:
    """Result asset ready to be sent back to the chat."""

    content: bytes
    extension: str

    @property
    def is_animation(self) -> bool:
        return self.extension == "gif"

    @property
    def is_video(self) -> bool:
        return self.extension in {"mp4", "mov", "webm", "m4v"}
