"""Pure builders that turn session state into chat prompts."""

from dataclasses import dataclass
from uuid import UUID

from faceswap_bot.domain.callbacks import (
    CallbackCommand,
    CancelSearch,
    CancelSwap,
    NextPage,
    Noop,
    PrevPage,
    SelectFace,
    SelectResult,
    StartSwap,
    UploadFace,
    encode_callback,
)
from faceswap_bot.domain.faces import Leaderboard, SavedFace, UserPreferences
from faceswap_bot.domain.media import MediaKind
from faceswap_bot.domain.sessions import SearchSession

RESULT_BUTTONS_PER_ROW = 3


@dataclass(frozen=True)
class ChoicePrompt:
    """Text plus an optional inline keyboard."""

    text: str
    reply_markup: dict | None = None


def build_result_page(session: SearchSession) -> ChoicePrompt:
    """Render the current page of a search session."""
    lines = [
        f'GIF results for "{session.query}" '
        f"(page {session.current_page + 1}/{session.total_pages})",
        "",
    ]
    select_buttons: list[tuple[str, CallbackCommand]] = []
    for index, result in session.page_results():
        title = result.title or "Untitled"
        lines.append(f"{index + 1}. {title}: {result.preview_url}")
        select_buttons.append((str(index + 1), SelectResult(session.id, index)))
    lines.append("")
    lines.append("Pick a number to swap your face into that GIF.")

    rows = [
        select_buttons[start : start + RESULT_BUTTONS_PER_ROW]
        for start in range(0, len(select_buttons), RESULT_BUTTONS_PER_ROW)
    ]
    has_prev = session.current_page > 0
    has_next = session.current_page < session.total_pages - 1
    rows.append(
        [
            ("Previous", PrevPage(session.id)) if has_prev else ("-", Noop()),
            (f"{session.current_page + 1}/{session.total_pages}", Noop()),
            ("Next", NextPage(session.id)) if has_next else ("-", Noop()),
        ]
    )
    rows.append([("Cancel", CancelSearch(session.id))])
    return ChoicePrompt(text="\n".join(lines), reply_markup=_inline_keyboard(rows))


def build_face_choices(
    session_id: str,
    faces: list[SavedFace],
    default_face_id: UUID | None,
    target_kind: MediaKind = MediaKind.GIF,
    window_seconds: int = 120,
) -> ChoicePrompt:
    """Render saved-face shortcuts plus the upload option.

    With no saved faces this is the upload-only prompt.
    """
    if not faces:
        return build_upload_prompt(session_id, target_kind, window_seconds)

    target = "GIF" if target_kind is MediaKind.GIF else "image"
    rows: list[list[tuple[str, CallbackCommand]]] = [
        [(_face_label(face, default_face_id), SelectFace(session_id, face.id))]
        for face in _default_first(faces, default_face_id)
    ]
    rows.append([("Upload a new face", UploadFace(session_id))])
    rows.append([("Cancel", CancelSwap(session_id))])
    return ChoicePrompt(
        text=f"Which face should go into this {target}?",
        reply_markup=_inline_keyboard(rows),
    )


def build_upload_prompt(
    session_id: str, target_kind: MediaKind = MediaKind.GIF, window_seconds: int = 120
) -> ChoicePrompt:
    """Ask for a face image, with a cancel button."""
    target = "GIF" if target_kind is MediaKind.GIF else "image"
    return ChoicePrompt(
        text=(
            f"Send a photo with a clear face to put into this {target}. "
            f"I'll wait {_describe_seconds(window_seconds)}."
        ),
        reply_markup=_inline_keyboard([[("Cancel", CancelSwap(session_id))]]),
    )


def build_gif_offer(session_id: str) -> ChoicePrompt:
    """Offer a face swap for a GIF posted in chat."""
    return ChoicePrompt(
        text="GIF detected! Want to swap your face into it?",
        reply_markup=_inline_keyboard(
            [
                [("Face swap this GIF", StartSwap(session_id))],
                [("No thanks", CancelSwap(session_id))],
            ]
        ),
    )


def build_face_save_prompt(name: str, window_seconds: int) -> ChoicePrompt:
    """Ask for the image to store under a face name."""
    return ChoicePrompt(
        text=(
            f'Send the photo to save as "{name}". '
            f"I'll wait {_describe_seconds(window_seconds)}. Use /cancel to stop."
        )
    )


def format_faces(faces: list[SavedFace], default_face_id: UUID | None, limit: int) -> str:
    """Render the /myfaces listing."""
    if not faces:
        return "You have no saved faces yet. Save one with /savemyface <name>."
    lines = [f"Your saved faces ({len(faces)}/{limit}):"]
    for face in _default_first(faces, default_face_id):
        lines.append(
            f"- {_face_label(face, default_face_id)}: used {face.usage_count} "
            f"time{'s' if face.usage_count != 1 else ''}"
        )
        lines.append(f"  ID: {face.id}")
    return "\n".join(lines)


def format_settings(
    preferences: UserPreferences,
    default_face_name: str | None,
    remaining_swaps: int,
    remaining_searches: int,
) -> str:
    """Render the /settings view."""
    if preferences.default_face_id is None:
        default_face = "Not set"
    else:
        default_face = (
            f"{default_face_name or 'Unknown'} (ID: {preferences.default_face_id})"
        )
    return "\n".join(
        [
            "Your settings:",
            f"Default face: {default_face}",
            f"Auto-save faces: {'on' if preferences.auto_save_faces else 'off'}",
            f"Max GIF duration: {preferences.max_gif_duration} seconds",
            f"Face swaps left this hour: {remaining_swaps}",
            f"GIF searches left this hour: {remaining_searches}",
        ]
    )


def format_leaderboard(board: Leaderboard) -> str:
    """Render the /leaderboard text."""
    if not board.entries:
        return "No face swaps yet. Be the first!"
    lines = ["Top face swappers:"]
    for rank, entry in enumerate(board.entries, start=1):
        lines.append(
            f"{rank}. user {entry.user_id}: {entry.total_swaps} swaps, "
            f"{entry.total_credits} credits"
        )
    lines.append("")
    lines.append(
        f"Total: {board.total_swaps} swaps by {board.total_users} users, "
        f"{board.total_credits} credits"
    )
    return "\n".join(lines)


def help_text() -> str:
    """Render the /help text."""
    return "\n".join(
        [
            "Face Swap Bot",
            "",
            "Swap your face into GIFs and images:",
            "1. /gifsearch <query> and pick a GIF, or post a GIF and tap "
            '"Face swap this GIF", or reply /faceswapgif to any GIF or image.',
            "2. Pick a saved face or upload a photo.",
            "3. The result is posted in the chat.",
            "",
            "Commands:",
            "/gifsearch <query> - search GIFs",
            "/faceswapgif - reply to a GIF or image to swap into it",
            "/savemyface <name> - save a face (max 3)",
            "/myfaces - list saved faces",
            "/deletemyface <id> - delete a saved face",
            "/settings - view or change preferences",
            "/leaderboard - top swappers",
            "/cancel - cancel what you're doing",
            "",
            "Settings:",
            "/settings default_face <id>",
            "/settings auto_save on|off",
            "/settings max_duration <1-30>",
        ]
    )


def _default_first(faces: list[SavedFace], default_face_id: UUID | None) -> list[SavedFace]:
    return sorted(faces, key=lambda face: face.id != default_face_id)


def _face_label(face: SavedFace, default_face_id: UUID | None) -> str:
    if face.id == default_face_id:
        return f"* {face.name}"
    return face.name


def _describe_seconds(seconds: int) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds} seconds"


def _inline_keyboard(rows: list[list[tuple[str, CallbackCommand]]]) -> dict:
    """Build a Telegram inline keyboard payload."""
    return {
        "inline_keyboard": [
            [
                {"text": label, "callback_data": encode_callback(command)}
                for label, command in row
            ]
            for row in rows
        ]
    }
