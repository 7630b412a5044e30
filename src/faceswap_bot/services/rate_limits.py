"""Sliding-window rate limiting per user and action kind."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from faceswap_bot.services.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

RETENTION = timedelta(hours=24)


class ActionKind(str, Enum):
    """Rate limited actions."""

    FACESWAP = "faceswap"
    GIFSEARCH = "gifsearch"


class RateLimitRepository(Protocol):
    """Persistence interface for rate limit windows."""

    def get_timestamps(self, user_id: int, action: str) -> list[datetime]:
        """Return recorded action timestamps for a user and action."""

    def save_timestamps(
        self, user_id: int, action: str, timestamps: list[datetime]
    ) -> None:
        """Replace the stored timestamps for a user and action."""

    def clear(self, user_id: int) -> None:
        """Delete all windows for a user."""


@dataclass(frozen=True)
class RateLimitRule:
    """At most ``max_actions`` within ``window``."""

    max_actions: int
    window: timedelta
    description: str


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check."""

    allowed: bool
    retry_after_minutes: int | None = None
    message: str | None = None


def default_rules(  # noqa: PLR0913
    faceswap_hourly: int = 5,
    faceswap_burst: int = 3,
    faceswap_burst_window_seconds: int = 600,
    gifsearch_hourly: int = 10,
) -> dict[ActionKind, list[RateLimitRule]]:
    """Build the rule table; the broad window is checked before the burst one."""
    hour = timedelta(hours=1)
    return {
        ActionKind.FACESWAP: [
            RateLimitRule(faceswap_hourly, hour, "in the last hour"),
            RateLimitRule(
                faceswap_burst,
                timedelta(seconds=faceswap_burst_window_seconds),
                f"in the last {faceswap_burst_window_seconds // 60} minutes",
            ),
        ],
        ActionKind.GIFSEARCH: [
            RateLimitRule(gifsearch_hourly, hour, "in the last hour"),
        ],
    }


_ACTION_NAMES = {
    ActionKind.FACESWAP: "face swaps",
    ActionKind.GIFSEARCH: "GIF searches",
}


@dataclass
class RateLimiter:
    """Check and record actions against layered sliding windows."""

    repository: RateLimitRepository
    rules: dict[ActionKind, list[RateLimitRule]] = field(default_factory=default_rules)
    clock: Clock = field(default_factory=SystemClock)

    def check(self, user_id: int, action: ActionKind) -> RateLimitDecision:
        """Return whether the action is allowed, without recording it.

        Storage failures deny the action since it gates paid provider work.
        """
        try:
            timestamps = self.repository.get_timestamps(user_id, action.value)
        except Exception:
            logger.exception(
                "Rate limit lookup failed",
                extra={"user_id": user_id, "action": action.value},
            )
            return RateLimitDecision(
                allowed=False,
                message="Rate limiting is temporarily unavailable. Please try again later.",
            )

        now = self.clock.now()
        for rule in self.rules.get(action, []):
            window_start = now - rule.window
            recent = [ts for ts in timestamps if ts > window_start]
            if len(recent) >= rule.max_actions:
                wait_minutes = _wait_minutes(min(recent) + rule.window - now)
                logger.info(
                    "Rate limit hit",
                    extra={
                        "user_id": user_id,
                        "action": action.value,
                        "wait_minutes": wait_minutes,
                    },
                )
                return RateLimitDecision(
                    allowed=False,
                    retry_after_minutes=wait_minutes,
                    message=(
                        f"Rate limit exceeded! You've used {rule.max_actions} "
                        f"{_ACTION_NAMES[action]} {rule.description}. "
                        f"Please wait {wait_minutes} minute(s)."
                    ),
                )
        return RateLimitDecision(allowed=True)

    def record(self, user_id: int, action: ActionKind) -> None:
        """Append the current time and prune entries past the retention ceiling."""
        now = self.clock.now()
        timestamps = self.repository.get_timestamps(user_id, action.value)
        cutoff = now - RETENTION
        kept = [ts for ts in timestamps if ts > cutoff]
        kept.append(now)
        self.repository.save_timestamps(user_id, action.value, kept)
        logger.debug(
            "Recorded user action", extra={"user_id": user_id, "action": action.value}
        )

    def remaining(self, user_id: int, action: ActionKind) -> int:
        """Return how many actions are left in the broadest window."""
        rules = self.rules.get(action, [])
        if not rules:
            return 0
        broad = rules[0]
        timestamps = self.repository.get_timestamps(user_id, action.value)
        window_start = self.clock.now() - broad.window
        used = sum(1 for ts in timestamps if ts > window_start)
        return max(0, broad.max_actions - used)

    def clear(self, user_id: int) -> None:
        """Reset all windows for a user."""
        self.repository.clear(user_id)
        logger.info("Cleared rate limits for user", extra={"user_id": user_id})


def _wait_minutes(remaining: timedelta) -> int:
    return max(1, math.ceil(remaining.total_seconds() / 60))
