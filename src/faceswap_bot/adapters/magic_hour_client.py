"""Magic Hour face swap API client."""

import logging
from dataclasses import dataclass

import httpx

from faceswap_bot.domain.errors import ProviderError
from faceswap_bot.domain.media import JobState, JobStatus, MediaKind
from faceswap_bot.services.media_types import is_video_extension
from faceswap_bot.services.polling import FaceSwapClient, friendly_provider_message

logger = logging.getLogger(__name__)

_PENDING_STATUSES = {"draft", "queued", "rendering"}
_ERROR_STATUSES = {"error", "canceled"}


@dataclass
class HttpxMagicHourClient(FaceSwapClient):
    """HTTPX-backed Magic Hour client."""

    api_key: str
    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, api_key: str, base_url: str) -> "HttpxMagicHourClient":
        """Create a Magic Hour client with a managed httpx session."""
        return cls(api_key=api_key, base_url=base_url, http_client=httpx.AsyncClient())

    async def stage_asset(self, content: bytes, extension: str) -> str:
        """Request a presigned upload URL, PUT the bytes, return the file path."""
        file_type = "video" if is_video_extension(extension) else "image"
        response = await self.http_client.post(
            f"{self.base_url}/v1/files/upload-urls",
            headers=self._headers(),
            json={"items": [{"type": file_type, "extension": extension}]},
            timeout=15,
        )
        _raise_for_status(response, "upload-urls")
        item = response.json()["items"][0]

        upload = await self.http_client.put(item["upload_url"], content=content, timeout=60)
        _raise_for_status(upload, "upload")
        logger.info(
            "Uploaded file to Magic Hour",
            extra={"file_path": item["file_path"], "bytes": len(content)},
        )
        return str(item["file_path"])

    async def submit_image_job(self, source_path: str, target_path: str) -> str:
        """Create a photo face swap project."""
        response = await self.http_client.post(
            f"{self.base_url}/v1/face-swap-photo",
            headers=self._headers(),
            json={
                "name": "Telegram face swap",
                "assets": {
                    "face_swap_mode": "all-faces",
                    "source_file_path": source_path,
                    "target_file_path": target_path,
                },
            },
            timeout=15,
        )
        _raise_for_status(response, "face-swap-photo")
        project_id = str(response.json()["id"])
        logger.info("Face swap job created", extra={"job_id": project_id})
        return project_id

    async def submit_media_job(
        self, source_path: str, target_path: str, max_duration_seconds: int
    ) -> str:
        """Create a video face swap project for a GIF or video."""
        response = await self.http_client.post(
            f"{self.base_url}/v1/face-swap",
            headers=self._headers(),
            json={
                "name": "Telegram GIF face swap",
                "start_seconds": 0,
                "end_seconds": max_duration_seconds,
                "assets": {
                    "face_swap_mode": "all-faces",
                    "image_file_path": source_path,
                    "video_file_path": target_path,
                    "video_source": "file",
                },
            },
            timeout=15,
        )
        _raise_for_status(response, "face-swap")
        project_id = str(response.json()["id"])
        logger.info(
            "Video face swap job created",
            extra={"job_id": project_id, "max_duration": max_duration_seconds},
        )
        return project_id

    async def get_job_status(self, job_id: str, kind: MediaKind) -> JobStatus:
        """Fetch an image or video project and normalize its status."""
        collection = "image-projects" if kind is MediaKind.IMAGE else "video-projects"
        response = await self.http_client.get(
            f"{self.base_url}/v1/{collection}/{job_id}",
            headers=self._headers(),
            timeout=15,
        )
        _raise_for_status(response, collection)
        return _parse_status(response.json())

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}


def _parse_status(payload: dict[str, object]) -> JobStatus:
    """Normalize a project payload into a JobStatus."""
    status = str(payload.get("status", "")).lower()
    credits = payload.get("credits_charged")
    credits_charged = int(credits) if isinstance(credits, int | float) else None
    if status == "complete":
        downloads = payload.get("downloads")
        url = None
        if isinstance(downloads, list) and downloads:
            url = downloads[0].get("url")
        return JobStatus(
            state=JobState.COMPLETE, result_url=url, credits_charged=credits_charged
        )
    if status in _ERROR_STATUSES:
        error = payload.get("error")
        error = error if isinstance(error, dict) else {}
        return JobStatus(
            state=JobState.ERROR,
            credits_charged=credits_charged,
            error_message=error.get("message") or f"Project {status}",
            error_code=error.get("code"),
        )
    if status not in _PENDING_STATUSES:
        logger.warning("Unknown Magic Hour status", extra={"status": status})
    return JobStatus(state=JobState.PENDING, credits_charged=credits_charged)


def _raise_for_status(response: httpx.Response, action: str) -> None:
    """Convert HTTP errors into ProviderError with a friendly message."""
    if response.is_success:
        return
    code = str(response.status_code)
    message = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(body.get("code"), str):
            code = body["code"]
    logger.error(
        "Magic Hour request failed",
        extra={"action": action, "status": response.status_code, "code": code},
    )
    raise ProviderError(friendly_provider_message(code, message), code=code)
