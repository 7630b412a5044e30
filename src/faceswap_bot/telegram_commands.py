"""Telegram bot command configuration."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class TelegramCommand:
    """Declarative bot command definition."""

    command: str
    description: str


class BotCommand(Enum):
    """Enum of bot commands (single source of truth)."""

    GIFSEARCH = TelegramCommand("gifsearch", "Search GIFs to swap your face into")
    FACESWAPGIF = TelegramCommand("faceswapgif", "Reply to a GIF or image to swap")
    SAVEMYFACE = TelegramCommand("savemyface", "Save a face for later swaps")
    MYFACES = TelegramCommand("myfaces", "List your saved faces")
    DELETEMYFACE = TelegramCommand("deletemyface", "Delete a saved face")
    SETTINGS = TelegramCommand("settings", "View or change your preferences")
    LEADERBOARD = TelegramCommand("leaderboard", "Top face swappers")
    CANCEL = TelegramCommand("cancel", "Cancel what you're doing")
    HELP = TelegramCommand("help", "Quick guide and commands")


def telegram_commands() -> list[dict[str, str]]:
    """Return commands formatted for Telegram API."""
    return [
        {"command": entry.value.command, "description": entry.value.description}
        for entry in BotCommand
    ]


CHAT_MENU_BUTTON: dict[str, object] = {"type": "commands"}
