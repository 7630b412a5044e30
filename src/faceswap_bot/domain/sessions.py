"""Domain models for interactive sessions."""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from faceswap_bot.domain.media import GifResult, MediaRef


class SessionState(str, Enum):
    """Externally observable state of a session."""

    CREATED = "CREATED"
    AWAITING_SELECTION = "AWAITING_SELECTION"
    FACE_CHOSEN = "FACE_CHOSEN"
    AWAITING_UPLOAD = "AWAITING_UPLOAD"
    SUBMITTING = "SUBMITTING"
    POLLING = "POLLING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_cancellable(self) -> bool:
        return self in {
            SessionState.CREATED,
            SessionState.AWAITING_SELECTION,
            SessionState.FACE_CHOSEN,
            SessionState.AWAITING_UPLOAD,
        }


TERMINAL_STATES = frozenset(
    {
        SessionState.DELIVERED,
        SessionState.FAILED,
        SessionState.CANCELLED,
        SessionState.EXPIRED,
    }
)


class SessionKind(str, Enum):
    """Kind of session, each with its own TTL."""

    SEARCH = "search"
    SWAP = "swap"


@dataclass(frozen=True)
class SearchSession:
    """Paged GIF search owned by one user."""

    id: str
    query: str
    results: tuple[GifResult, ...]
    page_size: int
    current_page: int
    total_pages: int
    owner_id: int
    origin_chat_id: int
    last_touched: datetime
    state: SessionState = SessionState.CREATED
    selected_result: GifResult | None = None
    prompt_chat_id: int | None = None
    prompt_message_id: int | None = None

    kind = SessionKind.SEARCH

    def page_results(self) -> list[tuple[int, GifResult]]:
        """Return (absolute index, result) pairs on the current page."""
        start = self.current_page * self.page_size
        page = self.results[start : start + self.page_size]
        return [(start + offset, result) for offset, result in enumerate(page)]


@dataclass(frozen=True)
class SwapSession:
    """Single-shot face swap into one target media."""

    id: str
    target: MediaRef
    owner_id: int
    origin_chat_id: int
    origin_message_id: int | None
    last_touched: datetime
    state: SessionState = SessionState.CREATED
    selected_face: str | None = None
    selected_face_name: str | None = None
    job_id: str | None = None
    poll_attempts: int = 0
    prompt_chat_id: int | None = None
    prompt_message_id: int | None = None

    kind = SessionKind.SWAP


Session = SearchSession | SwapSession


def total_pages_for(result_count: int, page_size: int) -> int:
    """Return the number of pages needed for ``result_count`` results."""
    return math.ceil(result_count / page_size)
