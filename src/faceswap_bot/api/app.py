"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request

from faceswap_bot.api.admin import router as admin_router
from faceswap_bot.api.telegram_models import (
    TelegramCallbackQuery,
    TelegramMessage,
    TelegramPhotoSize,
    TelegramUpdate,
)
from faceswap_bot.app_logging import configure_logging
from faceswap_bot.config import Settings, parse_allowed_user_ids
from faceswap_bot.containers import AppContainer
from faceswap_bot.domain.callbacks import decode_callback
from faceswap_bot.domain.errors import FaceSwapBotError
from faceswap_bot.domain.media import InboundUpload, MediaKind, MediaRef, MediaSource
from faceswap_bot.services.gif_detection import detect_gif_link, is_gif_mime_type
from faceswap_bot.telegram_commands import CHAT_MENU_BUTTON, telegram_commands

logger = logging.getLogger(__name__)

GENERIC_ERROR = FaceSwapBotError.default_message


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    allowed_user_ids = parse_allowed_user_ids(
        container.settings.telegram_allowed_user_ids
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            await state_container.telegram_client.set_my_commands(telegram_commands())
            await state_container.telegram_client.set_chat_menu_button(CHAT_MENU_BUTTON)
        except Exception:
            logger.exception("Failed to sync Telegram bot commands")
        sweeper = asyncio.create_task(
            state_container.orchestrator.run_sweeper(
                state_container.settings.session_sweep_interval_seconds
            )
        )
        yield
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
        await state_container.orchestrator.shutdown()
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/telegram/webhook")
    async def telegram_webhook(update: TelegramUpdate, request: Request) -> dict[str, str]:
        """Handle Telegram webhook updates."""
        state_container: AppContainer = request.app.state.container
        user_id = _extract_user_id(update)
        if user_id is None:
            return {"status": "ok"}
        if not _is_user_allowed(user_id, allowed_user_ids):
            if update.callback_query:
                await state_container.telegram_client.answer_callback_query(
                    update.callback_query.id, text="Not authorized."
                )
            elif update.message and update.message.text:
                await state_container.telegram_client.send_message(
                    chat_id=update.message.chat.id, text="This bot is private."
                )
            return {"status": "ok"}

        if update.callback_query:
            await _handle_callback(state_container, update.callback_query)
        elif update.message:
            await _handle_message(state_container, user_id, update.message)
        return {"status": "ok"}

    return app


async def _handle_callback(container: AppContainer, callback: TelegramCallbackQuery) -> None:
    """Decode a button press, run it, and answer the query exactly once."""
    telegram_client = container.telegram_client
    command = decode_callback(callback.data or "")
    if command is None:
        logger.warning("Unknown callback data", extra={"data": callback.data})
        await telegram_client.answer_callback_query(callback.id, text="Unknown action.")
        return
    message = callback.message
    chat_id = message.chat.id if message else callback.from_user.id
    message_id = message.message_id if message else None
    try:
        await container.orchestrator.handle_callback(
            callback.from_user.id, chat_id, message_id, command
        )
    except FaceSwapBotError as exc:
        await telegram_client.answer_callback_query(
            callback.id, text=exc.user_message, show_alert=True
        )
        return
    except Exception as exc:
        logger.exception("Callback failed", extra={"data": callback.data})
        await telegram_client.answer_callback_query(
            callback.id,
            text=_format_error(container.settings, exc, GENERIC_ERROR),
            show_alert=True,
        )
        return
    await telegram_client.answer_callback_query(callback.id)


async def _handle_message(
    container: AppContainer, user_id: int, message: TelegramMessage
) -> None:
    """Route a message and report any failure back to the chat."""
    try:
        await _dispatch_message(container, user_id, message)
    except FaceSwapBotError as exc:
        await container.telegram_client.send_message(
            chat_id=message.chat.id, text=exc.user_message
        )
    except Exception as exc:
        logger.exception(
            "Message handling failed",
            extra={"chat_id": message.chat.id, "message_id": message.message_id},
        )
        await container.telegram_client.send_message(
            chat_id=message.chat.id,
            text=_format_error(container.settings, exc, GENERIC_ERROR),
        )


async def _dispatch_message(  # noqa: PLR0911
    container: AppContainer, user_id: int, message: TelegramMessage
) -> None:
    chat_id = message.chat.id
    orchestrator = container.orchestrator
    commands = container.account_commands

    upload = _inbound_image(message)
    if upload is not None and orchestrator.accept_upload(user_id, chat_id, upload):
        return

    command, args = _parse_command(message.text)
    if command is None:
        gif = _detected_gif(message)
        if gif is not None:
            await orchestrator.offer_detected_gif(user_id, chat_id, message.message_id, gif)
        return

    if command == "gifsearch":
        await orchestrator.start_search(user_id, chat_id, args, message.message_id)
    elif command in {"faceswapgif", "faceswap"}:
        reply = message.reply_to_message
        await orchestrator.start_context_swap(
            user_id,
            chat_id,
            message.message_id,
            _media_target(reply) if reply else None,
            reply.message_id if reply else None,
        )
    elif command == "savemyface":
        await orchestrator.start_face_save(user_id, chat_id, args)
    elif command == "myfaces":
        await commands.my_faces(user_id, chat_id)
    elif command == "deletemyface":
        await commands.delete_face(user_id, chat_id, args)
    elif command == "settings":
        await commands.settings(user_id, chat_id, args)
    elif command == "leaderboard":
        await commands.leaderboard(chat_id)
    elif command in {"help", "start"}:
        await commands.help(chat_id)
    elif command == "cancel":
        cancelled = await orchestrator.cancel_user_flows(user_id, chat_id)
        await container.telegram_client.send_message(
            chat_id=chat_id,
            text="Cancelled." if cancelled else "Nothing to cancel.",
        )


def _parse_command(text: str | None) -> tuple[str | None, str]:
    """Split "/cmd@bot args" into ("cmd", "args")."""
    if not text or not text.startswith("/"):
        return None, ""
    head, _, args = text.partition(" ")
    name = head[1:].split("@", 1)[0].lower()
    if not name:
        return None, ""
    return name, args.strip()


def _detected_gif(message: TelegramMessage) -> MediaRef | None:
    """Return the GIF a plain message carries, if any."""
    if message.animation:
        return _telegram_ref(message.animation.file_id, MediaKind.GIF)
    if message.document and is_gif_mime_type(message.document.mime_type):
        return _telegram_ref(message.document.file_id, MediaKind.GIF)
    link = detect_gif_link(message.text or message.caption)
    if link:
        return MediaRef(locator=link, kind=MediaKind.GIF)
    return None


def _media_target(message: TelegramMessage) -> MediaRef | None:
    """Return the GIF or image a replied-to message carries, if any."""
    gif = _detected_gif(message)
    if gif is not None:
        return gif
    if message.photo:
        return _telegram_ref(_select_largest_photo(message.photo).file_id, MediaKind.IMAGE)
    document = message.document
    if document and (document.mime_type or "").lower().startswith("video/"):
        return _telegram_ref(document.file_id, MediaKind.GIF)
    if document and (document.mime_type or "").lower().startswith("image/"):
        return _telegram_ref(document.file_id, MediaKind.IMAGE)
    return None


def _inbound_image(message: TelegramMessage) -> InboundUpload | None:
    """Describe a photo or image document as a candidate face upload."""
    if message.photo:
        photo = _select_largest_photo(message.photo)
        return InboundUpload(
            file_id=photo.file_id,
            file_name=None,
            mime_type="image/jpeg",
            file_size=photo.file_size,
            message_id=message.message_id,
        )
    document = message.document
    if document and (document.mime_type or "").lower().startswith("image/"):
        return InboundUpload(
            file_id=document.file_id,
            file_name=document.file_name,
            mime_type=document.mime_type,
            file_size=document.file_size,
            message_id=message.message_id,
        )
    return None


def _telegram_ref(file_id: str, kind: MediaKind) -> MediaRef:
    return MediaRef(locator=file_id, kind=kind, source=MediaSource.TELEGRAM)


def _select_largest_photo(photos: list[TelegramPhotoSize]) -> TelegramPhotoSize:
    """Select the largest photo size from the Telegram payload."""
    return max(photos, key=lambda photo: (photo.width * photo.height))


def _extract_user_id(update: TelegramUpdate) -> int | None:
    """Extract Telegram user id from update, if present."""
    if update.callback_query:
        return update.callback_query.from_user.id
    if update.message and update.message.from_user:
        return update.message.from_user.id
    return None


def _is_user_allowed(user_id: int, allowed: set[int] | None) -> bool:
    """Return true when the user is allowed to interact with the bot."""
    return allowed is None or user_id in allowed


def _format_error(settings: Settings, exc: Exception, fallback: str) -> str:
    """Return a user-facing error message with local debug info."""
    if settings.environment == "local":
        detail = f"{type(exc).__name__}: {exc}".strip()
        if detail:
            return f"{fallback} (debug: {detail})"
    return fallback
