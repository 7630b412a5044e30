"""Remote provider interfaces and the job polling loop."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from faceswap_bot.domain.errors import FaceSwapBotError, JobTimeoutError, ProviderError
from faceswap_bot.domain.media import GifSearchPage, JobState, JobStatus, MediaKind
from faceswap_bot.services.clock import Clock

logger = logging.getLogger(__name__)


class FaceSwapClient(Protocol):
    """Interface for the face swap job provider."""

    async def stage_asset(self, content: bytes, extension: str) -> str:
        """Upload bytes to provider storage and return the asset locator."""

    async def submit_image_job(self, source_path: str, target_path: str) -> str:
        """Start a photo face swap and return its job id."""

    async def submit_media_job(
        self, source_path: str, target_path: str, max_duration_seconds: int
    ) -> str:
        """Start a GIF/video face swap and return its job id."""

    async def get_job_status(self, job_id: str, kind: MediaKind) -> JobStatus:
        """Return the current status of a job."""


class GifSearchClient(Protocol):
    """Interface for the GIF search provider."""

    async def search(
        self, query: str, limit: int, cursor: str | None = None
    ) -> GifSearchPage:
        """Search GIFs and return one page of results."""


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay polling with a hard attempt ceiling."""

    max_attempts: int
    delay_seconds: float


_FRIENDLY_MESSAGES = {
    "no_source_face": (
        "No face detected in the source image. "
        "Please use a different image with a clear face."
    ),
    "no_target_face": (
        "No face detected in the target image. "
        "Please pick a GIF or image with a clear face."
    ),
    "invalid_file": (
        "Invalid image file. Please upload a valid PNG, JPG, JPEG, or WEBP image."
    ),
    "rate_limit": "The face swap service is busy. Please try again in a few moments.",
    "429": "The face swap service is busy. Please try again in a few moments.",
    "insufficient_credits": (
        "The face swap service is out of credits. Please let the bot owner know."
    ),
    "401": "The face swap service rejected our credentials. Please let the bot owner know.",
    "422": "The face swap service couldn't read those files. Please check the image formats.",
}


def friendly_provider_message(code: str | None, message: str | None) -> str:
    """Map a provider error code to a plain-language message."""
    if code and code.lower() in _FRIENDLY_MESSAGES:
        return _FRIENDLY_MESSAGES[code.lower()]
    if message:
        return f"Face swap failed: {message}"
    return ProviderError.default_message


async def poll_job(  # noqa: PLR0913
    client: FaceSwapClient,
    job_id: str,
    kind: MediaKind,
    policy: RetryPolicy,
    clock: Clock,
    on_attempt: Callable[[int], Awaitable[None]] | None = None,
) -> JobStatus:
    """Poll a job until it completes, errors, or hits the attempt ceiling.

    A failed status lookup is retried on the next attempt. ``on_attempt`` runs
    before each lookup and may raise to abort polling.
    """
    for attempt in range(1, policy.max_attempts + 1):
        await clock.sleep(policy.delay_seconds)
        if on_attempt is not None:
            await on_attempt(attempt)
        try:
            status = await client.get_job_status(job_id, kind)
        except FaceSwapBotError as exc:
            logger.warning(
                "Job status lookup failed",
                extra={"job_id": job_id, "attempt": attempt, "error": exc.user_message},
            )
            continue
        except Exception:
            logger.exception(
                "Job status lookup failed", extra={"job_id": job_id, "attempt": attempt}
            )
            continue

        logger.debug(
            "Polled job status",
            extra={
                "job_id": job_id,
                "state": status.state.value,
                "attempt": attempt,
                "max_attempts": policy.max_attempts,
            },
        )
        if status.state is JobState.COMPLETE:
            if not status.result_url:
                raise ProviderError("The face swap finished without a result to download.")
            logger.info(
                "Job completed",
                extra={"job_id": job_id, "credits": status.credits_charged},
            )
            return status
        if status.state is JobState.ERROR:
            raise ProviderError(
                friendly_provider_message(status.error_code, status.error_message),
                code=status.error_code,
            )

    logger.warning(
        "Job polling hit the attempt ceiling",
        extra={"job_id": job_id, "max_attempts": policy.max_attempts},
    )
    raise JobTimeoutError()
