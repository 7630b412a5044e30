"""Awaitable "next qualifying upload" primitive for chat flows."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from faceswap_bot.domain.errors import UserInputError
from faceswap_bot.domain.media import InboundUpload

logger = logging.getLogger(__name__)

UploadPredicate = Callable[[InboundUpload], bool]


class OfferResult(str, Enum):
    """Outcome of offering an upload to the collector."""

    CONSUMED = "consumed"
    REJECTED = "rejected"
    NO_WAITER = "no_waiter"


@dataclass
class _Waiter:
    future: asyncio.Future[InboundUpload | None]
    predicate: UploadPredicate


@dataclass
class UploadCollector:
    """Hand the next qualifying upload from a user in a chat to one waiter.

    Each (user, chat) pair has at most one waiter. The first matching upload
    resolves it and closes the window, so later uploads are not consumed.
    """

    _waiters: dict[tuple[int, int], _Waiter] = field(default_factory=dict)

    async def next_upload(
        self,
        user_id: int,
        chat_id: int,
        timeout_seconds: float,
        predicate: UploadPredicate,
    ) -> InboundUpload | None:
        """Wait for the next qualifying upload.

        Returns None when the window is cancelled; raises TimeoutError when it
        closes without a match.
        """
        key = (user_id, chat_id)
        if key in self._waiters:
            raise UserInputError(
                "I'm already waiting for an image from you here. "
                "Send it or use /cancel first."
            )
        future: asyncio.Future[InboundUpload | None] = (
            asyncio.get_running_loop().create_future()
        )
        waiter = _Waiter(future=future, predicate=predicate)
        self._waiters[key] = waiter
        logger.info(
            "Upload window opened",
            extra={"user_id": user_id, "chat_id": chat_id, "timeout": timeout_seconds},
        )
        try:
            return await asyncio.wait_for(future, timeout_seconds)
        finally:
            if self._waiters.get(key) is waiter:
                del self._waiters[key]

    def offer(self, user_id: int, chat_id: int, upload: InboundUpload) -> OfferResult:
        """Offer an upload to the waiter for the user in the chat.

        A rejected upload leaves the window open for another try.
        """
        key = (user_id, chat_id)
        waiter = self._waiters.get(key)
        if waiter is None or waiter.future.done():
            return OfferResult.NO_WAITER
        if not waiter.predicate(upload):
            logger.info(
                "Ignoring upload that doesn't qualify",
                extra={"user_id": user_id, "mime_type": upload.mime_type},
            )
            return OfferResult.REJECTED
        del self._waiters[key]
        waiter.future.set_result(upload)
        return OfferResult.CONSUMED

    def cancel(self, user_id: int, chat_id: int) -> bool:
        """Close a pending window; its waiter receives None."""
        waiter = self._waiters.pop((user_id, chat_id), None)
        if waiter is None:
            return False
        if not waiter.future.done():
            waiter.future.set_result(None)
        return True

    def is_waiting(self, user_id: int, chat_id: int) -> bool:
        """Return True when a window is open for the user in the chat."""
        return (user_id, chat_id) in self._waiters

    def pending_count(self) -> int:
        """Return the number of open windows."""
        return len(self._waiters)
