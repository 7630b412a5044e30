"""User preference service."""

from dataclasses import dataclass, replace
from typing import Protocol
from uuid import UUID

from faceswap_bot.domain.faces import UserPreferences


class PreferencesRepository(Protocol):
    """Persistence interface for user preferences."""

    def get_preferences(self, user_id: int) -> UserPreferences | None:
        """Return stored preferences, if any."""

    def save_preferences(self, preferences: UserPreferences) -> None:
        """Insert or update preferences."""


@dataclass
class PreferencesService:
    """Read and update per-user preferences with defaults."""

    repository: PreferencesRepository
    default_max_duration: int = 20
    min_duration: int = 1
    max_duration: int = 30

    def get(self, user_id: int) -> UserPreferences:
        """Return preferences, falling back to defaults."""
        stored = self.repository.get_preferences(user_id)
        if stored is None:
            return UserPreferences(
                user_id=user_id, max_gif_duration=self.default_max_duration
            )
        return stored

    def set_default_face(self, user_id: int, face_id: UUID | None) -> UserPreferences:
        """Set or clear the default face."""
        return self._save(replace(self.get(user_id), default_face_id=face_id))

    def set_auto_save(self, user_id: int, enabled: bool) -> UserPreferences:
        """Toggle saving uploaded faces automatically."""
        return self._save(replace(self.get(user_id), auto_save_faces=enabled))

    def set_max_duration(self, user_id: int, seconds: int) -> UserPreferences:
        """Set the GIF duration cap, clamped to the allowed range."""
        clamped = max(self.min_duration, min(self.max_duration, seconds))
        return self._save(replace(self.get(user_id), max_gif_duration=clamped))

    def _save(self, preferences: UserPreferences) -> UserPreferences:
        self.repository.save_preferences(preferences)
        return preferences
