"""Supabase repository for rate limit windows."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from faceswap_bot.services.rate_limits import RateLimitRepository


@dataclass
class SupabaseRateLimitRepository(RateLimitRepository):
    """Stores each (user, action) window as a JSON list of ISO timestamps."""

    client: Client

    def get_timestamps(self, user_id: int, action: str) -> list[datetime]:
        """Return recorded action timestamps."""
        response = (
            self.client.table("rate_limits")
            .select("timestamps")
            .eq("user_id", user_id)
            .eq("action_type", action)
            .limit(1)
            .execute()
        )
        if not response.data:
            return []
        raw = response.data[0].get("timestamps") or []
        return [datetime.fromisoformat(value) for value in raw if isinstance(value, str)]

    def save_timestamps(
        self, user_id: int, action: str, timestamps: list[datetime]
    ) -> None:
        """Replace the stored window."""
        self.client.table("rate_limits").upsert(
            {
                "user_id": user_id,
                "action_type": action,
                "timestamps": [ts.isoformat() for ts in timestamps],
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="user_id,action_type",
        ).execute()

    def clear(self, user_id: int) -> None:
        """Delete all windows for a user."""
        self.client.table("rate_limits").delete().eq("user_id", user_id).execute()
