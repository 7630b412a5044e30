"""Domain models for saved faces, preferences and swap history."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class SavedFace:
    """A face image a user stored for reuse."""

    id: UUID
    owner_id: int
    name: str
    storage_path: str
    thumbnail_ref: str | None
    usage_count: int
    created_at: datetime


@dataclass(frozen=True)
class UserPreferences:
    """Per-user bot preferences."""

    user_id: int
    default_face_id: UUID | None = None
    auto_save_faces: bool = False
    max_gif_duration: int = 20


@dataclass(frozen=True)
class SwapRecord:
    """Append-only history row for a completed swap."""

    user_id: int
    swap_type: str
    credits_used: int
    created_at: datetime


@dataclass(frozen=True)
class LeaderboardEntry:
    """Aggregated swap counts for one user."""

    user_id: int
    total_swaps: int
    total_credits: int


@dataclass(frozen=True)
class Leaderboard:
    """Top users plus global totals."""

    entries: list[LeaderboardEntry]
    total_swaps: int
    total_credits: int
    total_users: int
