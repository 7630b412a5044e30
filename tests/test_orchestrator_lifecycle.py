"""Tests for face saving, cancellation and expiry in the orchestrator."""

import asyncio
from contextlib import suppress
from dataclasses import replace

import pytest

from faceswap_bot.domain.errors import FaceLimitError, UserInputError
from faceswap_bot.domain.media import InboundUpload, MediaKind, MediaRef
from faceswap_bot.domain.sessions import SessionState
from faceswap_bot.services.orchestrator import SessionOrchestrator
from tests.conftest import (
    FakeClock,
    FakeFaceSwapClient,
    FakeTelegramClient,
    InMemoryFaceRepository,
    settle,
)

OWNER = 42
GROUP = -1001
GIF_TARGET = MediaRef(locator="https://media.tenor.com/abc/full.gif", kind=MediaKind.GIF)


def _photo(message_id: int) -> InboundUpload:
    return InboundUpload(
        file_id="photo-file",
        file_name=None,
        mime_type="image/jpeg",
        file_size=4096,
        message_id=message_id,
    )


def test_face_save_stores_uploaded_photo(
    orchestrator: SessionOrchestrator,
    face_repository: InMemoryFaceRepository,
    swap_client: FakeFaceSwapClient,
    telegram_client: FakeTelegramClient,
) -> None:
    async def scenario() -> None:
        await orchestrator.start_face_save(OWNER, OWNER, "  Me  ")
        await settle()
        assert orchestrator.accept_upload(OWNER, OWNER, _photo(10))
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    faces = face_repository.list_faces(OWNER)
    assert [face.name for face in faces] == ["Me"]
    assert faces[0].storage_path == "api-assets/staged-1.jpg"
    assert swap_client.staged[0][1] == "jpg"
    assert telegram_client.messages[0][1].startswith('Send the photo to save as "Me".')
    assert telegram_client.messages[-1][1] == f'Saved your face "Me".\nID: {faces[0].id}'


def test_face_save_in_group_waits_in_private_chat(
    orchestrator: SessionOrchestrator,
    face_repository: InMemoryFaceRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    async def scenario() -> None:
        await orchestrator.start_face_save(OWNER, GROUP, "Me")
        await settle()
        assert not orchestrator.accept_upload(OWNER, GROUP, _photo(10))
        assert orchestrator.accept_upload(OWNER, OWNER, _photo(11))
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert telegram_client.messages[0][0] == OWNER
    assert len(face_repository.list_faces(OWNER)) == 1


def test_face_save_rejects_when_full(
    orchestrator: SessionOrchestrator, face_repository: InMemoryFaceRepository
) -> None:
    for name in ("One", "Two", "Three"):
        face_repository.add(OWNER, name)

    with pytest.raises(FaceLimitError, match="limit of 3 saved faces"):
        asyncio.run(orchestrator.start_face_save(OWNER, OWNER, "Four"))

    assert not orchestrator.collector.is_waiting(OWNER, OWNER)


def test_face_save_needs_a_name(orchestrator: SessionOrchestrator) -> None:
    with pytest.raises(UserInputError, match="Give the face a name"):
        asyncio.run(orchestrator.start_face_save(OWNER, OWNER, " "))


def test_face_save_timeout_sends_notice(
    orchestrator: SessionOrchestrator,
    face_repository: InMemoryFaceRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    orchestrator.config = replace(orchestrator.config, face_save_window_seconds=0.01)

    async def scenario() -> None:
        await orchestrator.start_face_save(OWNER, OWNER, "Me")
        await orchestrator.wait_idle()

    asyncio.run(scenario())

    assert face_repository.list_faces(OWNER) == []
    assert telegram_client.messages[-1][1].startswith("Face upload timed out.")


def test_cancel_user_flows_closes_face_save_window(
    orchestrator: SessionOrchestrator, face_repository: InMemoryFaceRepository
) -> None:
    async def scenario() -> int:
        await orchestrator.start_face_save(OWNER, OWNER, "Me")
        await settle()
        cancelled = await orchestrator.cancel_user_flows(OWNER, OWNER)
        await orchestrator.wait_idle()
        return cancelled

    assert asyncio.run(scenario()) == 1
    assert face_repository.list_faces(OWNER) == []
    assert not orchestrator.collector.is_waiting(OWNER, OWNER)


def test_cancel_user_flows_cancels_pending_swaps(
    orchestrator: SessionOrchestrator, face_repository: InMemoryFaceRepository
) -> None:
    face_repository.add(OWNER, "Me")

    async def scenario() -> tuple[str, int]:
        swap = await orchestrator.start_context_swap(OWNER, OWNER, 900, GIF_TARGET)
        return swap.id, await orchestrator.cancel_user_flows(OWNER, OWNER)

    session_id, cancelled = asyncio.run(scenario())

    assert cancelled == 1
    assert orchestrator.session_state(session_id) is SessionState.CANCELLED


def test_cancel_user_flows_with_upload_window_counts_session_once(
    orchestrator: SessionOrchestrator,
) -> None:
    async def scenario() -> int:
        await orchestrator.start_context_swap(OWNER, OWNER, 900, GIF_TARGET)
        await settle()
        cancelled = await orchestrator.cancel_user_flows(OWNER, OWNER)
        await orchestrator.wait_idle()
        return cancelled

    assert asyncio.run(scenario()) == 1
    assert orchestrator.store.active_sessions() == []


def test_cancel_user_flows_from_group_closes_private_upload_window(
    orchestrator: SessionOrchestrator,
) -> None:
    async def scenario() -> tuple[str, int]:
        swap = await orchestrator.start_context_swap(OWNER, GROUP, 900, GIF_TARGET)
        await settle()
        assert orchestrator.store.get(swap.id).prompt_chat_id == OWNER
        assert orchestrator.collector.is_waiting(OWNER, OWNER)
        cancelled = await orchestrator.cancel_user_flows(OWNER, GROUP)
        await orchestrator.wait_idle()
        assert not orchestrator.collector.is_waiting(OWNER, OWNER)
        assert not orchestrator.accept_upload(OWNER, OWNER, _photo(10))
        await orchestrator.start_context_swap(OWNER, OWNER, 901, GIF_TARGET)
        await settle()
        assert orchestrator.collector.is_waiting(OWNER, OWNER)
        await orchestrator.shutdown()
        return swap.id, cancelled

    session_id, cancelled = asyncio.run(scenario())

    assert cancelled == 1
    assert orchestrator.session_state(session_id) is SessionState.CANCELLED


def test_cancel_user_flows_with_nothing_pending(orchestrator: SessionOrchestrator) -> None:
    assert asyncio.run(orchestrator.cancel_user_flows(OWNER, OWNER)) == 0


def test_sweep_expires_idle_sessions_and_notifies(
    orchestrator: SessionOrchestrator,
    clock: FakeClock,
    telegram_client: FakeTelegramClient,
) -> None:
    session = asyncio.run(orchestrator.start_search(OWNER, OWNER, "cats", trigger_id=1))

    clock.advance(599)
    assert asyncio.run(orchestrator.sweep_expired()) == []
    assert orchestrator.store.get(session.id) is not None

    clock.advance(2)
    expired = asyncio.run(orchestrator.sweep_expired())

    assert [s.id for s in expired] == [session.id]
    assert orchestrator.store.get(session.id) is None
    assert orchestrator.session_state(session.id) is SessionState.EXPIRED
    chat_id, message_id, text, _ = telegram_client.edits[-1]
    assert (chat_id, message_id) == (OWNER, session.prompt_message_id)
    assert text.startswith("This session expired.")


def test_sweep_closes_upload_window(
    orchestrator: SessionOrchestrator, clock: FakeClock
) -> None:
    async def scenario() -> str:
        swap = await orchestrator.start_context_swap(OWNER, OWNER, 900, GIF_TARGET)
        await settle()
        clock.advance(301)
        await orchestrator.sweep_expired()
        await orchestrator.wait_idle()
        return swap.id

    session_id = asyncio.run(scenario())

    assert orchestrator.session_state(session_id) is SessionState.EXPIRED
    assert not orchestrator.collector.is_waiting(OWNER, OWNER)


def test_sweeper_loop_runs_on_the_clock(
    orchestrator: SessionOrchestrator, clock: FakeClock
) -> None:
    async def scenario() -> str:
        session = await orchestrator.start_search(OWNER, OWNER, "cats", trigger_id=1)
        sweeper = asyncio.create_task(orchestrator.run_sweeper(600))
        await settle()
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
        return session.id

    session_id = asyncio.run(scenario())

    assert orchestrator.session_state(session_id) is SessionState.EXPIRED


def test_terminal_history_is_bounded(orchestrator: SessionOrchestrator) -> None:
    orchestrator.config = replace(orchestrator.config, terminal_history_size=2)

    async def scenario() -> list[str]:
        ids = []
        for trigger in range(3):
            session = await orchestrator.start_search(OWNER, OWNER, "cats", trigger_id=trigger)
            await orchestrator.cancel_search(OWNER, session.id)
            ids.append(session.id)
        return ids

    first, second, third = asyncio.run(scenario())

    assert orchestrator.session_state(first) is None
    assert orchestrator.session_state(second) is SessionState.CANCELLED
    assert orchestrator.session_state(third) is SessionState.CANCELLED


def test_describe_sessions_lists_live_sessions(orchestrator: SessionOrchestrator) -> None:
    session = asyncio.run(orchestrator.start_search(OWNER, OWNER, "cats", trigger_id=1))

    described = orchestrator.describe_sessions()

    assert described == [
        {
            "id": session.id,
            "kind": "search",
            "state": "AWAITING_SELECTION",
            "owner_id": OWNER,
            "last_touched": "2026-01-01T12:00:00+00:00",
        }
    ]
