"""Tenor v2 GIF search client."""

import logging
from dataclasses import dataclass

import httpx

from faceswap_bot.domain.errors import ProviderError
from faceswap_bot.domain.media import GifResult, GifSearchPage
from faceswap_bot.services.polling import GifSearchClient

logger = logging.getLogger(__name__)

MAX_TENOR_LIMIT = 50


@dataclass
class HttpxTenorClient(GifSearchClient):
    """HTTPX-backed Tenor client."""

    api_key: str
    client_key: str
    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(
        cls, api_key: str, client_key: str, base_url: str
    ) -> "HttpxTenorClient":
        """Create a Tenor client with a managed httpx session."""
        return cls(
            api_key=api_key,
            client_key=client_key,
            base_url=base_url,
            http_client=httpx.AsyncClient(),
        )

    async def search(
        self, query: str, limit: int, cursor: str | None = None
    ) -> GifSearchPage:
        """Search GIFs by query."""
        params: dict[str, str | int] = {
            "q": query,
            "key": self.api_key,
            "client_key": self.client_key,
            "limit": min(limit, MAX_TENOR_LIMIT),
            "media_filter": "gif,tinygif",
        }
        if cursor:
            params["pos"] = cursor
        try:
            response = await self.http_client.get(
                f"{self.base_url}/search", params=params, timeout=15
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.exception("Tenor search failed", extra={"query": query})
            raise ProviderError(
                "GIF search is unavailable right now. Please try again later."
            ) from exc

        payload = response.json()
        results = [
            result
            for result in (_parse_result(item) for item in payload.get("results", []))
            if result is not None
        ]
        logger.info("Tenor results received", extra={"query": query, "count": len(results)})
        return GifSearchPage(results=results, next_cursor=payload.get("next") or None)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _parse_result(item: dict[str, object]) -> GifResult | None:
    """Parse a Tenor result, skipping entries without a GIF rendition."""
    formats = item.get("media_formats")
    if not isinstance(formats, dict):
        return None
    gif = formats.get("gif")
    if not isinstance(gif, dict) or not gif.get("url"):
        return None
    tiny = formats.get("tinygif")
    preview_url = tiny.get("url") if isinstance(tiny, dict) else None
    return GifResult(
        id=str(item.get("id", "")),
        title=str(item.get("title") or item.get("content_description") or ""),
        url=str(gif["url"]),
        preview_url=str(preview_url or gif["url"]),
    )
