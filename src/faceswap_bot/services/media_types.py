"""Media type detection for uploads and provider results."""

from urllib.parse import urlparse

from faceswap_bot.domain.media import InboundUpload

FACE_MIME_TYPES = frozenset({"image/png", "image/jpeg", "image/jpg", "image/webp"})
VIDEO_EXTENSIONS = frozenset({"gif", "mp4", "mov", "webm", "m4v"})

_MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
}


def is_face_image(upload: InboundUpload, max_bytes: int) -> bool:
    """Return True when an upload is a still image small enough to use as a face."""
    if upload.file_size is not None and upload.file_size > max_bytes:
        return False
    return (upload.mime_type or "").lower() in FACE_MIME_TYPES


def upload_extension(upload: InboundUpload) -> str:
    """Return the file extension for an upload, defaulting to jpg."""
    mime = (upload.mime_type or "").lower()
    if mime in _MIME_EXTENSIONS:
        return _MIME_EXTENSIONS[mime]
    if upload.file_name and "." in upload.file_name:
        return upload.file_name.rsplit(".", 1)[1].lower()
    return "jpg"


def detect_extension(content: bytes, url: str | None = None, fallback: str = "jpg") -> str:
    """Detect a file extension from magic bytes, then the URL path."""
    if content.startswith((b"GIF87a", b"GIF89a")):
        return "gif"
    if content.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if content.startswith(b"\xff\xd8\xff"):
        return "jpg"
    if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
        return "webp"
    if content[4:8] == b"ftyp":
        return "mov" if content[8:10] == b"qt" else "mp4"
    if content.startswith(b"\x1a\x45\xdf\xa3"):
        return "webm"
    if url:
        path = urlparse(url).path.lower()
        if "." in path.rsplit("/", 1)[-1]:
            suffix = path.rsplit(".", 1)[1]
            if suffix in VIDEO_EXTENSIONS or suffix in {"png", "jpg", "jpeg", "webp"}:
                return "jpg" if suffix == "jpeg" else suffix
    return fallback


def is_video_extension(extension: str) -> bool:
    """Return True for animated or video formats."""
    return extension.lower() in VIDEO_EXTENSIONS
