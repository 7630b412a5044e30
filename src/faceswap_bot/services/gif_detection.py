"""Detect GIF links in chat message text."""

import logging
import re
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)
_GIF_HOSTS = ("media.tenor.com", "c.tenor.com", "giphy.com")


def detect_gif_link(text: str | None) -> str | None:
    """Return the first direct GIF URL in the text, if any.

    Matches links whose path ends in ``.gif`` and media links from Tenor and
    GIPHY. Tenor/GIPHY page links are skipped since they resolve to HTML.
    """
    if not text:
        return None
    for match in _URL_PATTERN.finditer(text):
        url = match.group(0).rstrip(").,!?")
        parsed = urlparse(url)
        host = parsed.netloc.lower()
        path = parsed.path.lower()
        if path.endswith(".gif"):
            logger.debug("GIF link detected", extra={"url": url})
            return url
        if _is_media_host(host) and path.endswith((".mp4", ".webm")):
            logger.debug("GIF video link detected", extra={"url": url})
            return url
    return None


def is_gif_mime_type(mime_type: str | None) -> bool:
    """Return True for GIF documents."""
    return (mime_type or "").lower() == "image/gif"


def _is_media_host(host: str) -> bool:
    if host.startswith("media") and host.endswith(".giphy.com"):
        return True
    return any(host == candidate for candidate in _GIF_HOSTS)
