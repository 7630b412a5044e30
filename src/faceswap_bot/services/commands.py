"""Command handlers for account-level Telegram commands."""

from dataclasses import dataclass

from faceswap_bot.adapters.telegram_client import TelegramClient
from faceswap_bot.domain.errors import UserInputError
from faceswap_bot.services.faces import FaceService, parse_face_id
from faceswap_bot.services.history import HistoryService
from faceswap_bot.services.preferences import PreferencesService
from faceswap_bot.services.presentation import (
    format_faces,
    format_leaderboard,
    format_settings,
    help_text,
)
from faceswap_bot.services.rate_limits import ActionKind, RateLimiter

_SETTINGS_USAGE = (
    "Usage: /settings [view | default_face <id> | auto_save on|off | "
    "max_duration <seconds>]"
)


@dataclass
class AccountCommands:
    """Handle /myfaces, /deletemyface, /settings, /leaderboard and /help."""

    faces: FaceService
    preferences: PreferencesService
    history: HistoryService
    rate_limiter: RateLimiter
    telegram_client: TelegramClient

    async def my_faces(self, user_id: int, chat_id: int) -> None:
        """List the user's saved faces, default first."""
        faces = self.faces.list_faces(user_id)
        default_face_id = self.preferences.get(user_id).default_face_id
        await self.telegram_client.send_message(
            chat_id=chat_id,
            text=format_faces(faces, default_face_id, self.faces.max_faces),
        )

    async def delete_face(self, user_id: int, chat_id: int, raw_face_id: str) -> None:
        """Delete a saved face; clear it as default when needed."""
        if not raw_face_id.strip():
            raise UserInputError("Usage: /deletemyface <id>. Use /myfaces to see IDs.")
        face_id = parse_face_id(raw_face_id)
        face = self.faces.delete_face(face_id, user_id)
        if self.preferences.get(user_id).default_face_id == face_id:
            self.preferences.set_default_face(user_id, None)
        await self.telegram_client.send_message(
            chat_id=chat_id, text=f'Deleted face "{face.name}".'
        )

    async def settings(self, user_id: int, chat_id: int, args: str) -> None:
        """View or change preferences."""
        parts = args.split()
        action = parts[0].lower() if parts else "view"
        value = parts[1] if len(parts) > 1 else ""
        if action == "view":
            text = self._render_settings(user_id)
        elif action == "default_face":
            text = self._set_default_face(user_id, value)
        elif action == "auto_save":
            text = self._set_auto_save(user_id, value)
        elif action == "max_duration":
            text = self._set_max_duration(user_id, value)
        else:
            raise UserInputError(_SETTINGS_USAGE)
        await self.telegram_client.send_message(chat_id=chat_id, text=text)

    async def leaderboard(self, chat_id: int) -> None:
        """Show the top swappers."""
        await self.telegram_client.send_message(
            chat_id=chat_id, text=format_leaderboard(self.history.leaderboard())
        )

    async def help(self, chat_id: int) -> None:
        """Show the usage guide."""
        await self.telegram_client.send_message(chat_id=chat_id, text=help_text())

    def _render_settings(self, user_id: int) -> str:
        preferences = self.preferences.get(user_id)
        default_name = None
        if preferences.default_face_id is not None:
            face = self.faces.repository.get_face(preferences.default_face_id)
            default_name = face.name if face else None
        return format_settings(
            preferences,
            default_name,
            remaining_swaps=self.rate_limiter.remaining(user_id, ActionKind.FACESWAP),
            remaining_searches=self.rate_limiter.remaining(user_id, ActionKind.GIFSEARCH),
        )

    def _set_default_face(self, user_id: int, value: str) -> str:
        if not value:
            raise UserInputError("Usage: /settings default_face <id>")
        face = self.faces.get_owned_face(parse_face_id(value), user_id)
        self.preferences.set_default_face(user_id, face.id)
        return f'Default face set to "{face.name}".'

    def _set_auto_save(self, user_id: int, value: str) -> str:
        toggles = {"on": True, "off": False}
        if value.lower() not in toggles:
            raise UserInputError("Usage: /settings auto_save on|off")
        enabled = toggles[value.lower()]
        self.preferences.set_auto_save(user_id, enabled)
        return f"Auto-save faces is now {'on' if enabled else 'off'}."

    def _set_max_duration(self, user_id: int, value: str) -> str:
        low = self.preferences.min_duration
        high = self.preferences.max_duration
        if not value.isdigit():
            raise UserInputError(f"Usage: /settings max_duration <{low}-{high}>")
        updated = self.preferences.set_max_duration(user_id, int(value))
        return f"Max GIF duration set to {updated.max_gif_duration} seconds."
