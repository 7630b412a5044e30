"""Swap history and leaderboard."""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Protocol

from faceswap_bot.domain.faces import Leaderboard, LeaderboardEntry, SwapRecord
from faceswap_bot.services.clock import Clock, SystemClock


class SwapHistoryRepository(Protocol):
    """Persistence interface for swap history."""

    def add_record(self, record: SwapRecord) -> None:
        """Append a history row."""

    def list_records(self) -> list[SwapRecord]:
        """Return all history rows."""


@dataclass
class HistoryService:
    """Record completed swaps and aggregate them."""

    repository: SwapHistoryRepository
    clock: Clock = field(default_factory=SystemClock)

    def record_swap(self, user_id: int, swap_type: str, credits_used: int) -> SwapRecord:
        """Append a completed swap to the history."""
        record = SwapRecord(
            user_id=user_id,
            swap_type=swap_type,
            credits_used=credits_used,
            created_at=self.clock.now(),
        )
        self.repository.add_record(record)
        return record

    def leaderboard(self, limit: int = 10) -> Leaderboard:
        """Return the top users by number of swaps."""
        swaps: dict[int, int] = defaultdict(int)
        credits: dict[int, int] = defaultdict(int)
        for record in self.repository.list_records():
            swaps[record.user_id] += 1
            credits[record.user_id] += record.credits_used
        entries = sorted(
            (
                LeaderboardEntry(
                    user_id=user_id,
                    total_swaps=count,
                    total_credits=credits[user_id],
                )
                for user_id, count in swaps.items()
            ),
            key=lambda entry: (-entry.total_swaps, -entry.total_credits, entry.user_id),
        )
        return Leaderboard(
            entries=entries[:limit],
            total_swaps=sum(swaps.values()),
            total_credits=sum(credits.values()),
            total_users=len(swaps),
        )
