"""Supabase repository for user preferences."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from faceswap_bot.domain.faces import UserPreferences
from faceswap_bot.services.preferences import PreferencesRepository


@dataclass
class SupabasePreferencesRepository(PreferencesRepository):
    """Supabase implementation for user preferences."""

    client: Client

    def get_preferences(self, user_id: int) -> UserPreferences | None:
        """Return stored preferences for a user."""
        response = (
            self.client.table("user_preferences")
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        default_face = row.get("default_face_id")
        return UserPreferences(
            user_id=int(row["user_id"]),
            default_face_id=UUID(str(default_face)) if default_face else None,
            auto_save_faces=bool(row.get("auto_save_faces", False)),
            max_gif_duration=int(row.get("max_gif_duration", 20)),
        )

    def save_preferences(self, preferences: UserPreferences) -> None:
        """Insert or update a user's preferences."""
        self.client.table("user_preferences").upsert(
            {
                "user_id": preferences.user_id,
                "default_face_id": (
                    str(preferences.default_face_id)
                    if preferences.default_face_id
                    else None
                ),
                "auto_save_faces": preferences.auto_save_faces,
                "max_gif_duration": preferences.max_gif_duration,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="user_id",
        ).execute()
