"""Media download client for GIF targets, uploaded faces and job results."""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from faceswap_bot.domain.errors import UserInputError
from faceswap_bot.domain.media import MediaRef, MediaSource

logger = logging.getLogger(__name__)


class MediaClient(Protocol):
    """Interface for fetching media bytes."""

    async def fetch(self, ref: MediaRef) -> bytes:
        """Download the bytes behind a media reference."""

    async def download(self, url: str) -> bytes:
        """Download bytes from a public URL."""


@dataclass
class HttpxMediaClient(MediaClient):
    """Media client for public URLs and Telegram file ids."""

    bot_token: str
    http_client: httpx.AsyncClient
    max_bytes: int = 25 * 1024 * 1024

    @classmethod
    def create(cls, bot_token: str, max_bytes: int) -> "HttpxMediaClient":
        """Create a media client with a managed httpx session."""
        return cls(
            bot_token=bot_token,
            http_client=httpx.AsyncClient(follow_redirects=True),
            max_bytes=max_bytes,
        )

    async def fetch(self, ref: MediaRef) -> bytes:
        """Download a URL or a Telegram file, depending on the reference."""
        if ref.source is MediaSource.TELEGRAM:
            return await self.download_telegram_file(ref.locator)
        return await self.download(ref.locator)

    async def download(self, url: str) -> bytes:
        """Download a public URL."""
        response = await self.http_client.get(url, timeout=30)
        response.raise_for_status()
        return self._checked(response.content, url)

    async def download_telegram_file(self, file_id: str) -> bytes:
        """Download Telegram file bytes via getFile."""
        get_file_url = f"https://api.telegram.org/bot{self.bot_token}/getFile"
        response = await self.http_client.get(
            get_file_url, params={"file_id": file_id}, timeout=10
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("ok"):
            raise RuntimeError("Telegram getFile failed")
        file_path = payload["result"]["file_path"]
        download_url = f"https://api.telegram.org/file/bot{self.bot_token}/{file_path}"
        file_response = await self.http_client.get(download_url, timeout=20)
        file_response.raise_for_status()
        return self._checked(file_response.content, file_path)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    def _checked(self, content: bytes, source: str) -> bytes:
        if len(content) > self.max_bytes:
            logger.warning(
                "Downloaded media too large",
                extra={"source": source, "bytes": len(content)},
            )
            raise UserInputError(
                f"That file is too large. The limit is {self.max_bytes // (1024 * 1024)} MB."
            )
        return content
