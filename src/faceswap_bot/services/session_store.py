"""In-memory session store with verified writes and TTL eviction."""

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from typing import Protocol

from faceswap_bot.domain.media import GifResult, MediaRef
from faceswap_bot.domain.sessions import (
    SearchSession,
    Session,
    SessionKind,
    SwapSession,
    total_pages_for,
)
from faceswap_bot.services.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class UpdateResult(str, Enum):
    """Outcome of a session update."""

    UPDATED = "updated"
    NOT_FOUND = "not_found"
    VERIFICATION_FAILED = "verification_failed"


class SessionStore(Protocol):
    """Keyed storage for search and swap sessions."""

    def create_search(  # noqa: PLR0913
        self,
        session_id: str,
        query: str,
        results: list[GifResult],
        owner_id: int,
        origin_chat_id: int,
        page_size: int,
    ) -> SearchSession:
        """Create a search session on page 0."""

    def create_swap(
        self,
        session_id: str,
        target: MediaRef,
        owner_id: int,
        origin_chat_id: int,
        origin_message_id: int | None,
    ) -> SwapSession:
        """Create a swap session in the CREATED state."""

    def get(self, session_id: str) -> Session | None:
        """Return a session by id, if present."""

    def update(self, session_id: str, **fields: object) -> UpdateResult:
        """Apply a partial update and verify it by reading back."""

    def delete(self, session_id: str) -> bool:
        """Delete a session; return True when it existed."""

    def sweep_expired(self) -> list[Session]:
        """Remove and return sessions idle longer than their TTL."""

    def active_sessions(self) -> list[Session]:
        """Return all live sessions."""


def new_session_id(trigger_id: int) -> str:
    """Build a session id from a trigger id and a nanosecond timestamp."""
    return f"{_to_base36(trigger_id)}-{_to_base36(time.time_ns())}"


def _to_base36(value: int) -> str:
    value = abs(value)
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


@dataclass
class InMemorySessionStore(SessionStore):
    """Process-local session store; sessions do not survive a restart."""

    clock: Clock = field(default_factory=SystemClock)
    search_ttl: timedelta = timedelta(minutes=10)
    swap_ttl: timedelta = timedelta(minutes=5)
    _sessions: dict[str, Session] = field(default_factory=dict)

    def create_search(  # noqa: PLR0913
        self,
        session_id: str,
        query: str,
        results: list[GifResult],
        owner_id: int,
        origin_chat_id: int,
        page_size: int = 9,
    ) -> SearchSession:
        """Create a search session on page 0."""
        if not results:
            raise ValueError("A search session needs at least one result")
        session = SearchSession(
            id=session_id,
            query=query,
            results=tuple(results),
            page_size=page_size,
            current_page=0,
            total_pages=total_pages_for(len(results), page_size),
            owner_id=owner_id,
            origin_chat_id=origin_chat_id,
            last_touched=self.clock.now(),
        )
        self._insert(session)
        logger.info(
            "Search session created",
            extra={
                "session_id": session_id,
                "owner_id": owner_id,
                "results": len(results),
                "total_pages": session.total_pages,
            },
        )
        return session

    def create_swap(
        self,
        session_id: str,
        target: MediaRef,
        owner_id: int,
        origin_chat_id: int,
        origin_message_id: int | None,
    ) -> SwapSession:
        """Create a swap session in the CREATED state."""
        session = SwapSession(
            id=session_id,
            target=target,
            owner_id=owner_id,
            origin_chat_id=origin_chat_id,
            origin_message_id=origin_message_id,
            last_touched=self.clock.now(),
        )
        self._insert(session)
        logger.info(
            "Swap session created",
            extra={
                "session_id": session_id,
                "owner_id": owner_id,
                "media_kind": target.kind.value,
            },
        )
        return session

    def get(self, session_id: str) -> Session | None:
        """Return a session by id, if present."""
        return self._read(session_id)

    def update(self, session_id: str, **fields: object) -> UpdateResult:
        """Apply a partial update, then re-read and compare every field."""
        current = self._read(session_id)
        if current is None:
            logger.warning("Cannot update missing session", extra={"session_id": session_id})
            return UpdateResult.NOT_FOUND
        if "id" in fields:
            raise ValueError("Session ids are immutable")

        updated = replace(current, **fields, last_touched=self.clock.now())
        if isinstance(updated, SearchSession):
            _check_page_bounds(updated)
        self._write(session_id, updated)

        stored = self._read(session_id)
        if stored is None:
            logger.error(
                "Verification failed, session disappeared",
                extra={"session_id": session_id},
            )
            return UpdateResult.VERIFICATION_FAILED
        for key, expected in fields.items():
            actual = getattr(stored, key, None)
            if actual != expected:
                logger.error(
                    "Verification failed, update not applied",
                    extra={
                        "session_id": session_id,
                        "field": key,
                        "expected": repr(expected),
                        "actual": repr(actual),
                    },
                )
                return UpdateResult.VERIFICATION_FAILED
        return UpdateResult.UPDATED

    def delete(self, session_id: str) -> bool:
        """Delete a session; return True when it existed."""
        existed = self._sessions.pop(session_id, None) is not None
        if existed:
            logger.info("Session deleted", extra={"session_id": session_id})
        return existed

    def sweep_expired(self) -> list[Session]:
        """Remove and return sessions idle longer than their kind's TTL."""
        now = self.clock.now()
        expired = [
            session
            for session in self._sessions.values()
            if now - session.last_touched > self._ttl_for(session)
        ]
        for session in expired:
            del self._sessions[session.id]
        if expired:
            logger.info("Swept expired sessions", extra={"count": len(expired)})
        return expired

    def active_sessions(self) -> list[Session]:
        """Return all live sessions."""
        return list(self._sessions.values())

    def _ttl_for(self, session: Session) -> timedelta:
        if session.kind is SessionKind.SEARCH:
            return self.search_ttl
        return self.swap_ttl

    def _insert(self, session: Session) -> None:
        if session.id in self._sessions:
            raise RuntimeError(f"Session id collision: {session.id}")
        self._sessions[session.id] = session

    def _read(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def _write(self, session_id: str, session: Session) -> None:
        self._sessions[session_id] = session


def _check_page_bounds(session: SearchSession) -> None:
    if not 0 <= session.current_page < session.total_pages:
        raise ValueError(
            f"Page {session.current_page} out of range for {session.total_pages} pages"
        )
