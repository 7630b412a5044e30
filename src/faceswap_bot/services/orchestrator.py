"""Session orchestrator for GIF search and face swap flows.

Every trigger (command, button, detected GIF, collected upload) lands here.
The orchestrator moves sessions through their states in the session store,
calls the providers, and reports back through the Telegram client. Triggers
raise ``FaceSwapBotError`` for the caller to show; background flows (upload
collection, job polling) report their own failures.
"""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Coroutine, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from faceswap_bot.adapters.media_client import MediaClient
from faceswap_bot.adapters.telegram_client import TelegramClient
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
)
from faceswap_bot.domain.errors import (
    FaceSwapBotError,
    OwnershipError,
    ProviderError,
    RateLimitedError,
    SessionExpiredError,
    UserInputError,
    VerificationFailedError,
)
from faceswap_bot.domain.media import (
    DeliveredMedia,
    InboundUpload,
    MediaKind,
    MediaRef,
    MediaSource,
)
from faceswap_bot.domain.sessions import (
    SearchSession,
    Session,
    SessionState,
    SwapSession,
)
from faceswap_bot.services.cache import Cache, InMemoryCache
from faceswap_bot.services.clock import Clock, SystemClock
from faceswap_bot.services.faces import FaceService
from faceswap_bot.services.history import HistoryService
from faceswap_bot.services.input_collector import OfferResult, UploadCollector
from faceswap_bot.services.media_types import (
    detect_extension,
    is_face_image,
    is_video_extension,
    upload_extension,
)
from faceswap_bot.services.polling import (
    FaceSwapClient,
    GifSearchClient,
    RetryPolicy,
    poll_job,
)
from faceswap_bot.services.preferences import PreferencesService
from faceswap_bot.services.presentation import (
    ChoicePrompt,
    build_face_choices,
    build_face_save_prompt,
    build_gif_offer,
    build_result_page,
    build_upload_prompt,
)
from faceswap_bot.services.rate_limits import ActionKind, RateLimiter
from faceswap_bot.services.session_store import (
    SessionStore,
    UpdateResult,
    new_session_id,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR = FaceSwapBotError.default_message
_BUSY_STATES = frozenset({SessionState.SUBMITTING, SessionState.POLLING})


@dataclass(frozen=True)
class OrchestratorConfig:
    """Tunables for the session flows."""

    page_size: int = 9
    search_limit: int = 50
    inline_upload_window_seconds: int = 120
    face_save_window_seconds: int = 300
    image_poll_policy: RetryPolicy = RetryPolicy(max_attempts=60, delay_seconds=5)
    media_poll_policy: RetryPolicy = RetryPolicy(max_attempts=120, delay_seconds=5)
    max_upload_bytes: int = 25 * 1024 * 1024
    dedup_ttl_seconds: int = 60
    private_prompts: bool = True
    terminal_history_size: int = 1000


@dataclass
class SessionOrchestrator:
    """Drive search and swap sessions from trigger to terminal state."""

    store: SessionStore
    rate_limiter: RateLimiter
    faces: FaceService
    preferences: PreferencesService
    history: HistoryService
    swap_client: FaceSwapClient
    gif_client: GifSearchClient
    telegram: TelegramClient
    media: MediaClient
    collector: UploadCollector = field(default_factory=UploadCollector)
    seen: Cache = field(default_factory=InMemoryCache)
    clock: Clock = field(default_factory=SystemClock)
    config: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    _tasks: set[asyncio.Task[None]] = field(default_factory=set)
    _terminal: OrderedDict[str, SessionState] = field(default_factory=OrderedDict)

    # Search flow

    async def start_search(
        self, user_id: int, chat_id: int, query: str, trigger_id: int
    ) -> SearchSession:
        """Search GIFs and post the first page of results."""
        query = query.strip()
        if not query:
            raise UserInputError(
                "Tell me what to search for, e.g. /gifsearch excited"
            )
        self._check_rate_limit(user_id, ActionKind.GIFSEARCH)
        try:
            page = await self.gif_client.search(query, self.config.search_limit)
        except FaceSwapBotError:
            raise
        except Exception as exc:
            logger.exception("GIF search failed", extra={"query": query})
            raise ProviderError(
                "GIF search is unavailable right now. Please try again later."
            ) from exc
        self.rate_limiter.record(user_id, ActionKind.GIFSEARCH)
        if not page.results:
            raise UserInputError(f'No GIFs found for "{query}". Try a different search.')

        session = self.store.create_search(
            session_id=new_session_id(trigger_id),
            query=query,
            results=page.results,
            owner_id=user_id,
            origin_chat_id=chat_id,
            page_size=self.config.page_size,
        )
        with self._fail_on_error(session.id):
            prompt = build_result_page(session)
            self._transition(session.id, state=SessionState.AWAITING_SELECTION)
            message_id = await self.telegram.send_message(
                chat_id, prompt.text, prompt.reply_markup
            )
            updated = self._search(
                self._transition(
                    session.id, prompt_chat_id=chat_id, prompt_message_id=message_id
                )
            )
        return updated

    async def navigate(self, user_id: int, session_id: str, delta: int) -> None:
        """Move a search session by ``delta`` pages; out-of-range moves do nothing."""
        session = self._load_search(session_id, user_id)
        if session.state is not SessionState.AWAITING_SELECTION:
            return
        page = session.current_page + delta
        if not 0 <= page < session.total_pages:
            return
        with self._fail_on_error(session_id):
            updated = self._search(self._transition(session_id, current_page=page))
            await self._show(
                updated.prompt_chat_id or updated.origin_chat_id,
                updated.prompt_message_id,
                build_result_page(updated),
            )

    async def select_result(self, user_id: int, session_id: str, index: int) -> SwapSession:
        """Pick a GIF from the results and hand it off to a new swap session."""
        search = self._load_search(session_id, user_id)
        if search.state is not SessionState.AWAITING_SELECTION:
            raise UserInputError("You already picked a GIF from this search.")
        if not 0 <= index < len(search.results):
            raise UserInputError("That GIF isn't in these results anymore.")
        self._check_rate_limit(user_id, ActionKind.FACESWAP)

        with self._fail_on_error(session_id):
            result = search.results[index]
            selected = self._transition(session_id, selected_result=result)
            swap = self.store.create_swap(
                session_id=new_session_id(user_id),
                target=MediaRef(locator=result.url, kind=MediaKind.GIF),
                owner_id=user_id,
                origin_chat_id=search.origin_chat_id,
                origin_message_id=None,
            )
            self._finish(selected, SessionState.DELIVERED)
        logger.info(
            "Search handed off to swap",
            extra={"search_id": session_id, "swap_id": swap.id, "gif_id": result.id},
        )
        await self._present_face_choices(
            swap,
            chat_id=search.prompt_chat_id or search.origin_chat_id,
            message_id=search.prompt_message_id,
        )
        return swap

    async def cancel_search(self, user_id: int, session_id: str) -> None:
        """Cancel a search session."""
        session = self._load_search(session_id, user_id)
        self._finish(session, SessionState.CANCELLED)
        if session.prompt_message_id is not None:
            await self._show(
                session.prompt_chat_id or session.origin_chat_id,
                session.prompt_message_id,
                ChoicePrompt("Search cancelled."),
            )

    # Swap flow

    async def offer_detected_gif(
        self, user_id: int, chat_id: int, message_id: int, target: MediaRef
    ) -> bool:
        """Offer a face swap for a GIF posted in chat, once per message."""
        if not self.seen.add(f"{chat_id}:{message_id}", True, self.config.dedup_ttl_seconds):
            logger.info(
                "Ignoring already seen GIF message",
                extra={"chat_id": chat_id, "message_id": message_id},
            )
            return False
        swap = self.store.create_swap(
            session_id=new_session_id(message_id),
            target=target,
            owner_id=user_id,
            origin_chat_id=chat_id,
            origin_message_id=message_id,
        )
        with self._fail_on_error(swap.id):
            shown_chat, shown_id = await self._send_private(
                user_id, chat_id, build_gif_offer(swap.id)
            )
            self._transition(swap.id, prompt_chat_id=shown_chat, prompt_message_id=shown_id)
        return True

    async def start_swap(
        self, user_id: int, session_id: str, chat_id: int, message_id: int | None
    ) -> None:
        """Accept a GIF offer and present face choices in its place."""
        swap = self._load_swap(session_id, user_id)
        if swap.state is not SessionState.CREATED:
            return
        self._check_rate_limit(user_id, ActionKind.FACESWAP)
        await self._present_face_choices(swap, chat_id=chat_id, message_id=message_id)

    async def start_context_swap(
        self,
        user_id: int,
        chat_id: int,
        trigger_message_id: int,
        target: MediaRef | None,
        target_message_id: int | None = None,
    ) -> SwapSession:
        """Start a swap on a replied-to GIF or image."""
        if target is None:
            raise UserInputError(
                "Reply to a GIF or image with /faceswapgif to swap your face into it."
            )
        self._check_rate_limit(user_id, ActionKind.FACESWAP)
        swap = self.store.create_swap(
            session_id=new_session_id(trigger_message_id),
            target=target,
            owner_id=user_id,
            origin_chat_id=chat_id,
            origin_message_id=target_message_id,
        )
        await self._present_face_choices(swap, chat_id=chat_id, private=True)
        return swap

    async def select_face(self, user_id: int, session_id: str, face_id: UUID) -> None:
        """Use a saved face and start the job in the background."""
        swap = self._load_swap(session_id, user_id)
        _reject_if_busy(swap)
        if swap.state is not SessionState.AWAITING_SELECTION:
            raise UserInputError("This face swap isn't waiting for a face choice.")
        face = self.faces.get_owned_face(face_id, user_id)

        with self._fail_on_error(session_id):
            swap = self._swap(
                self._transition(
                    session_id,
                    state=SessionState.FACE_CHOSEN,
                    selected_face=face.storage_path,
                    selected_face_name=face.name,
                )
            )
            chat_id = swap.prompt_chat_id or swap.origin_chat_id
            self._spawn(self._run_flow(session_id, chat_id, self._run_job(session_id)))
            self.faces.mark_used(face.id)
            await self._show(
                chat_id,
                swap.prompt_message_id,
                ChoicePrompt(f'Swapping in "{face.name}"... This can take a minute.'),
            )

    async def request_upload(self, user_id: int, session_id: str, chat_id: int) -> None:
        """Switch a swap session to waiting for a freshly uploaded face."""
        swap = self._load_swap(session_id, user_id)
        _reject_if_busy(swap)
        if swap.state is SessionState.AWAITING_UPLOAD:
            raise UserInputError("I'm already waiting for your photo.")
        if swap.state is not SessionState.AWAITING_SELECTION:
            raise UserInputError("This face swap isn't waiting for a face choice.")
        prompt = build_upload_prompt(
            swap.id, swap.target.kind, self.config.inline_upload_window_seconds
        )
        await self._present(
            swap, prompt, SessionState.AWAITING_UPLOAD, chat_id, swap.prompt_message_id
        )

    async def cancel_swap(self, user_id: int, session_id: str) -> None:
        """Cancel a swap session that hasn't been submitted yet."""
        swap = self._load_swap(session_id, user_id)
        if not swap.state.is_cancellable:
            raise UserInputError(
                "This face swap is already being processed and can't be cancelled."
            )
        if swap.state is SessionState.AWAITING_UPLOAD and swap.prompt_chat_id is not None:
            self.collector.cancel(swap.owner_id, swap.prompt_chat_id)
        self._finish(swap, SessionState.CANCELLED)
        if swap.prompt_message_id is not None:
            await self._show(
                swap.prompt_chat_id or swap.origin_chat_id,
                swap.prompt_message_id,
                ChoicePrompt("Face swap cancelled."),
            )

    # Saved faces

    async def start_face_save(self, user_id: int, chat_id: int, name: str) -> None:
        """Ask for a face image and save it under ``name`` when it arrives."""
        name = name.strip()
        if not name:
            raise UserInputError("Give the face a name, e.g. /savemyface Me")
        self.faces.ensure_slot_available(user_id)
        window = self.config.face_save_window_seconds
        shown_chat, _ = await self._send_private(
            user_id, chat_id, build_face_save_prompt(name, window)
        )
        self._spawn(
            self._run_flow(None, shown_chat, self._collect_face_save(user_id, shown_chat, name))
        )

    # Button dispatch

    async def handle_callback(
        self,
        user_id: int,
        chat_id: int,
        message_id: int | None,
        command: CallbackCommand,
    ) -> None:
        """Apply a decoded button press."""
        match command:
            case NextPage(session_id):
                await self.navigate(user_id, session_id, 1)
            case PrevPage(session_id):
                await self.navigate(user_id, session_id, -1)
            case SelectResult(session_id, index):
                await self.select_result(user_id, session_id, index)
            case CancelSearch(session_id):
                await self.cancel_search(user_id, session_id)
            case StartSwap(session_id):
                await self.start_swap(user_id, session_id, chat_id, message_id)
            case SelectFace(session_id, face_id):
                await self.select_face(user_id, session_id, face_id)
            case UploadFace(session_id):
                await self.request_upload(user_id, session_id, chat_id)
            case CancelSwap(session_id):
                await self.cancel_swap(user_id, session_id)
            case Noop():
                return

    def accept_upload(self, user_id: int, chat_id: int, upload: InboundUpload) -> bool:
        """Hand an inbound image to a waiting flow; return True when consumed.

        An image the open window can't use raises ``UserInputError`` and the
        window stays open for another try.
        """
        result = self.collector.offer(user_id, chat_id, upload)
        if result is OfferResult.REJECTED:
            raise UserInputError(_rejected_upload_message(upload, self.config.max_upload_bytes))
        return result is OfferResult.CONSUMED

    # Cancellation, expiry, observation

    async def cancel_user_flows(self, user_id: int, chat_id: int) -> int:
        """Cancel the user's pending flows in a chat and return how many stopped."""
        window_closed = self.collector.cancel(user_id, chat_id)
        cancelled = [
            session
            for session in self.store.active_sessions()
            if session.owner_id == user_id
            and session.state.is_cancellable
            and chat_id in {session.origin_chat_id, session.prompt_chat_id}
        ]
        for session in cancelled:
            if session.state is SessionState.AWAITING_UPLOAD and session.prompt_chat_id:
                window_closed = (
                    self.collector.cancel(session.owner_id, session.prompt_chat_id)
                    or window_closed
                )
            self._finish(session, SessionState.CANCELLED)
        waiting_swap = any(s.state is SessionState.AWAITING_UPLOAD for s in cancelled)
        if window_closed and not waiting_swap:
            return len(cancelled) + 1
        return len(cancelled)

    async def sweep_expired(self) -> list[Session]:
        """Expire idle sessions and tell their owners."""
        expired = self.store.sweep_expired()
        for session in expired:
            self._remember(session.id, SessionState.EXPIRED)
            if session.state is SessionState.AWAITING_UPLOAD and session.prompt_chat_id:
                self.collector.cancel(session.owner_id, session.prompt_chat_id)
            notice = ChoicePrompt(
                "This session expired. Start again with /gifsearch "
                "or by replying /faceswapgif to a GIF."
            )
            try:
                await self._show(
                    session.prompt_chat_id or session.origin_chat_id,
                    session.prompt_message_id,
                    notice,
                )
            except Exception:
                logger.exception(
                    "Failed to send expiry notice", extra={"session_id": session.id}
                )
        return expired

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep expired sessions and dedup entries forever."""
        while True:
            await self.clock.sleep(interval_seconds)
            try:
                await self.sweep_expired()
                self.seen.sweep()
            except Exception:
                logger.exception("Session sweep failed")

    def session_state(self, session_id: str) -> SessionState | None:
        """Return the live or final state of a session."""
        session = self.store.get(session_id)
        if session is not None:
            return session.state
        return self._terminal.get(session_id)

    def describe_sessions(self) -> list[dict[str, object]]:
        """Summarize live sessions."""
        return [
            {
                "id": session.id,
                "kind": session.kind.value,
                "state": session.state.value,
                "owner_id": session.owner_id,
                "last_touched": session.last_touched.isoformat(),
            }
            for session in self.store.active_sessions()
        ]

    async def wait_idle(self) -> None:
        """Wait for all background flows to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel background flows."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Background flows

    async def _collect_face_and_swap(self, session_id: str, user_id: int, chat_id: int) -> None:
        try:
            upload = await self.collector.next_upload(
                user_id,
                chat_id,
                self.config.inline_upload_window_seconds,
                self._accepts_face,
            )
        except TimeoutError:
            session = self.store.get(session_id)
            if session is not None and session.state is SessionState.AWAITING_UPLOAD:
                self._finish(session, SessionState.EXPIRED)
                await self.telegram.send_message(
                    chat_id,
                    "Upload timed out. Start the face swap again when you're ready.",
                )
            return
        if upload is None:
            return
        session = self.store.get(session_id)
        if not isinstance(session, SwapSession):
            return
        if session.state is not SessionState.AWAITING_UPLOAD:
            return

        face_path = await self._stage_upload(upload)
        await self._auto_save_face(user_id, chat_id, face_path)
        self._transition(session_id, selected_face=face_path)
        await self._run_job(session_id)

    async def _collect_face_save(self, user_id: int, chat_id: int, name: str) -> None:
        try:
            upload = await self.collector.next_upload(
                user_id, chat_id, self.config.face_save_window_seconds, self._accepts_face
            )
        except TimeoutError:
            await self.telegram.send_message(
                chat_id, "Face upload timed out. Run /savemyface again when you're ready."
            )
            return
        if upload is None:
            return
        self.faces.ensure_slot_available(user_id)
        face_path = await self._stage_upload(upload)
        face = self.faces.save_face(user_id, name, face_path)
        await self.telegram.send_message(
            chat_id, f'Saved your face "{face.name}".\nID: {face.id}'
        )

    async def _run_job(self, session_id: str) -> None:
        session = self.store.get(session_id)
        if not isinstance(session, SwapSession):
            raise SessionExpiredError()
        if session.state not in {SessionState.FACE_CHOSEN, SessionState.AWAITING_UPLOAD}:
            logger.warning(
                "Refusing to submit a job twice",
                extra={"session_id": session_id, "state": session.state.value},
            )
            return
        if session.selected_face is None:
            raise UserInputError("No face was chosen for this swap.")

        # Check and record with no await in between.
        self._check_rate_limit(session.owner_id, ActionKind.FACESWAP)
        swap = self._swap(self._transition(session_id, state=SessionState.SUBMITTING))
        self.rate_limiter.record(swap.owner_id, ActionKind.FACESWAP)
        target_bytes = await self.media.fetch(swap.target)
        fallback = "gif" if swap.target.kind is MediaKind.GIF else "jpg"
        target_extension = detect_extension(target_bytes, swap.target.locator, fallback)
        target_path = await self.swap_client.stage_asset(target_bytes, target_extension)

        if is_video_extension(target_extension):
            job_kind = MediaKind.GIF
            policy = self.config.media_poll_policy
            max_duration = self.preferences.get(swap.owner_id).max_gif_duration
            job_id = await self.swap_client.submit_media_job(
                swap.selected_face, target_path, max_duration
            )
        else:
            job_kind = MediaKind.IMAGE
            policy = self.config.image_poll_policy
            job_id = await self.swap_client.submit_image_job(swap.selected_face, target_path)
        self._transition(session_id, state=SessionState.POLLING, job_id=job_id)
        logger.info(
            "Face swap job submitted",
            extra={"session_id": session_id, "job_id": job_id, "kind": job_kind.value},
        )

        async def touch(attempt: int) -> None:
            self._transition(session_id, poll_attempts=attempt)

        status = await poll_job(
            self.swap_client, job_id, job_kind, policy, self.clock, on_attempt=touch
        )
        result_url = status.result_url or ""
        content = await self.media.download(result_url)
        delivered = DeliveredMedia(
            content=content,
            extension=detect_extension(
                content, result_url, "mp4" if job_kind is MediaKind.GIF else "jpg"
            ),
        )
        self.history.record_swap(swap.owner_id, job_kind.value, status.credits_charged or 0)
        await self.telegram.send_media(
            swap.origin_chat_id,
            delivered,
            caption=_result_caption(swap),
            reply_to_message_id=swap.origin_message_id,
        )
        self._finish(self.store.get(session_id) or swap, SessionState.DELIVERED)

    async def _run_flow(
        self,
        session_id: str | None,
        chat_id: int,
        flow: Coroutine[Any, Any, None],
    ) -> None:
        """Run a background flow; every failure ends the session with one notice."""
        try:
            await flow
        except asyncio.CancelledError:
            if session_id is not None:
                session = self.store.get(session_id)
                if session is not None:
                    self._finish(session, SessionState.FAILED)
            raise
        except SessionExpiredError:
            logger.info("Flow stopped, session is gone", extra={"session_id": session_id})
        except FaceSwapBotError as exc:
            logger.warning(
                "Flow failed",
                extra={"session_id": session_id, "error": exc.user_message},
            )
            await self._fail(session_id, chat_id, exc.user_message)
        except Exception:
            logger.exception("Flow crashed", extra={"session_id": session_id})
            await self._fail(session_id, chat_id, GENERIC_ERROR)

    async def _fail(self, session_id: str | None, chat_id: int, text: str) -> None:
        if session_id is not None:
            session = self.store.get(session_id)
            if session is not None:
                self._finish(session, SessionState.FAILED)
        try:
            await self.telegram.send_message(chat_id, text)
        except Exception:
            logger.exception("Failed to send failure notice", extra={"chat_id": chat_id})

    # Helpers

    async def _present_face_choices(
        self,
        swap: SwapSession,
        chat_id: int,
        message_id: int | None = None,
        private: bool = False,
    ) -> None:
        """Show saved faces, or go straight to upload when there are none."""
        faces = self.faces.list_faces(swap.owner_id)
        if faces:
            prompt = build_face_choices(
                swap.id,
                faces,
                self.preferences.get(swap.owner_id).default_face_id,
                swap.target.kind,
            )
            state = SessionState.AWAITING_SELECTION
        else:
            prompt = build_upload_prompt(
                swap.id, swap.target.kind, self.config.inline_upload_window_seconds
            )
            state = SessionState.AWAITING_UPLOAD
        await self._present(swap, prompt, state, chat_id, message_id, private)

    async def _present(  # noqa: PLR0913
        self,
        swap: SwapSession,
        prompt: ChoicePrompt,
        state: SessionState,
        chat_id: int,
        message_id: int | None,
        private: bool = False,
    ) -> None:
        """Move to ``state`` and show its prompt; open the upload window if needed."""
        if (
            state is SessionState.AWAITING_UPLOAD
            and not private
            and self.collector.is_waiting(swap.owner_id, chat_id)
        ):
            raise UserInputError(
                "I'm already waiting for an image from you here. "
                "Send it or use /cancel first."
            )
        with self._fail_on_error(swap.id):
            self._transition(swap.id, state=state)
            if message_id is not None:
                await self.telegram.edit_message_text(
                    chat_id, message_id, prompt.text, prompt.reply_markup
                )
                shown_chat, shown_id = chat_id, message_id
            elif private:
                shown_chat, shown_id = await self._send_private(
                    swap.owner_id, chat_id, prompt
                )
            else:
                shown_chat = chat_id
                shown_id = await self.telegram.send_message(
                    chat_id, prompt.text, prompt.reply_markup
                )
            self._transition(swap.id, prompt_chat_id=shown_chat, prompt_message_id=shown_id)
            if state is SessionState.AWAITING_UPLOAD:
                self._spawn(
                    self._run_flow(
                        swap.id,
                        shown_chat,
                        self._collect_face_and_swap(swap.id, swap.owner_id, shown_chat),
                    )
                )

    async def _send_private(
        self, user_id: int, chat_id: int, prompt: ChoicePrompt
    ) -> tuple[int, int | None]:
        """Send a prompt by direct message when configured, else to the chat."""
        if self.config.private_prompts and chat_id != user_id:
            try:
                message_id = await self.telegram.send_message(
                    user_id, prompt.text, prompt.reply_markup
                )
                return user_id, message_id
            except Exception:
                logger.warning(
                    "Direct message failed, replying in chat",
                    extra={"user_id": user_id, "chat_id": chat_id},
                    exc_info=True,
                )
        message_id = await self.telegram.send_message(chat_id, prompt.text, prompt.reply_markup)
        return chat_id, message_id

    async def _show(
        self, chat_id: int, message_id: int | None, prompt: ChoicePrompt
    ) -> int | None:
        """Edit the prompt message in place, or send a new one."""
        if message_id is None:
            return await self.telegram.send_message(chat_id, prompt.text, prompt.reply_markup)
        await self.telegram.edit_message_text(
            chat_id, message_id, prompt.text, prompt.reply_markup
        )
        return message_id

    async def _stage_upload(self, upload: InboundUpload) -> str:
        content = await self.media.fetch(
            MediaRef(locator=upload.file_id, kind=MediaKind.IMAGE, source=MediaSource.TELEGRAM)
        )
        return await self.swap_client.stage_asset(content, upload_extension(upload))

    async def _auto_save_face(self, user_id: int, chat_id: int, face_path: str) -> None:
        if not self.preferences.get(user_id).auto_save_faces:
            return
        if not self.faces.has_free_slot(user_id):
            return
        face = self.faces.save_face(
            user_id, f"Face {self.clock.now():%Y-%m-%d %H:%M}", face_path
        )
        await self.telegram.send_message(chat_id, f'Auto-saved this face as "{face.name}".')

    def _accepts_face(self, upload: InboundUpload) -> bool:
        return is_face_image(upload, self.config.max_upload_bytes)

    def _check_rate_limit(self, user_id: int, action: ActionKind) -> None:
        decision = self.rate_limiter.check(user_id, action)
        if not decision.allowed:
            raise RateLimitedError(
                decision.message or "You're going too fast. Please try again later.",
                decision.retry_after_minutes,
            )

    def _load_owned(self, session_id: str, user_id: int) -> Session:
        session = self.store.get(session_id)
        if session is None:
            raise SessionExpiredError()
        if session.owner_id != user_id:
            logger.info(
                "Rejected action from non-owner",
                extra={"session_id": session_id, "user_id": user_id},
            )
            raise OwnershipError()
        return session

    def _load_search(self, session_id: str, user_id: int) -> SearchSession:
        return self._search(self._load_owned(session_id, user_id))

    def _load_swap(self, session_id: str, user_id: int) -> SwapSession:
        session = self._load_owned(session_id, user_id)
        return self._swap(session)

    @staticmethod
    def _search(session: Session) -> SearchSession:
        if not isinstance(session, SearchSession):
            raise SessionExpiredError()
        return session

    @staticmethod
    def _swap(session: Session) -> SwapSession:
        if not isinstance(session, SwapSession):
            raise SessionExpiredError()
        return session

    def _transition(self, session_id: str, **fields: object) -> Session:
        """Apply a verified update; invalidate the session when verification fails."""
        result = self.store.update(session_id, **fields)
        if result is UpdateResult.NOT_FOUND:
            raise SessionExpiredError()
        if result is UpdateResult.VERIFICATION_FAILED:
            stale = self.store.get(session_id)
            if stale is not None:
                self._finish(stale, SessionState.FAILED)
            else:
                self._remember(session_id, SessionState.FAILED)
            raise VerificationFailedError()
        session = self.store.get(session_id)
        if session is None:
            raise SessionExpiredError()
        if "state" in fields:
            logger.info(
                "Session transitioned",
                extra={"session_id": session_id, "state": session.state.value},
            )
        return session

    def _finish(self, session: Session, state: SessionState) -> None:
        """Delete a session and remember its terminal state."""
        self.store.delete(session.id)
        self._remember(session.id, state)
        logger.info(
            "Session finished",
            extra={"session_id": session.id, "state": state.value, "from": session.state.value},
        )

    def _remember(self, session_id: str, state: SessionState) -> None:
        self._terminal[session_id] = state
        self._terminal.move_to_end(session_id)
        while len(self._terminal) > self.config.terminal_history_size:
            self._terminal.popitem(last=False)

    @contextmanager
    def _fail_on_error(self, session_id: str) -> Iterator[None]:
        """Fail the session on unexpected errors; user-facing errors leave it intact."""
        try:
            yield
        except FaceSwapBotError:
            raise
        except Exception:
            session = self.store.get(session_id)
            if session is not None:
                self._finish(session, SessionState.FAILED)
            raise

    def _spawn(self, flow: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(flow)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


def _reject_if_busy(swap: SwapSession) -> None:
    if swap.state in _BUSY_STATES:
        raise UserInputError("This face swap is already in progress.")


def _result_caption(swap: SwapSession) -> str:
    if swap.selected_face_name:
        return f'Face swap with "{swap.selected_face_name}"'
    return "Here's your face swap!"


def _rejected_upload_message(upload: InboundUpload, max_bytes: int) -> str:
    if upload.file_size is not None and upload.file_size > max_bytes:
        return (
            f"That image is too large. Please send one under {max_bytes // (1024 * 1024)} MB."
        )
    return "Please upload a valid image (JPEG, PNG or WEBP) with a clear face."
