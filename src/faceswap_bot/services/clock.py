"""Clock abstraction so time-driven code can run on a fake clock in tests."""

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Source of wall-clock time and delays."""

    def now(self) -> datetime:
        """Return the current UTC time."""

    async def sleep(self, seconds: float) -> None:
        """Suspend for the given number of seconds."""


@dataclass
class SystemClock(Clock):
    """Clock backed by the system time and asyncio.sleep."""

    def now(self) -> datetime:
        return datetime.now(tz=UTC)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
