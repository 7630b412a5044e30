"""Error taxonomy for bot flows.

Every error carries a plain-language ``user_message`` that trigger boundaries
send back to the chat as-is.
"""


class FaceSwapBotError(Exception):
    """Base class for errors that are reported to the user."""

    default_message = "Something went wrong. Please try again."

    def __init__(self, user_message: str | None = None) -> None:
        self.user_message = user_message or self.default_message
        super().__init__(self.user_message)


class UserInputError(FaceSwapBotError):
    """Invalid attachment, oversized file, missing target, bad arguments."""

    default_message = "That input isn't valid. Please try again."


class FaceLimitError(UserInputError):
    """The user already has the maximum number of saved faces."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"You've reached the limit of {limit} saved faces. "
            "Delete one with /deletemyface first."
        )
        self.limit = limit


class OwnershipError(FaceSwapBotError):
    """A user acted on a session or button that belongs to someone else."""

    default_message = "This isn't yours! Start your own with /gifsearch."


class SessionExpiredError(FaceSwapBotError):
    """The session is gone, either finished or expired."""

    default_message = (
        "This session has expired. Please start again with /gifsearch "
        "or by replying /faceswapgif to a GIF."
    )


class ProviderError(FaceSwapBotError):
    """A remote provider call failed or returned a terminal error."""

    default_message = "The face swap service failed. Please try again later."

    def __init__(self, user_message: str | None = None, code: str | None = None):
        super().__init__(user_message)
        self.code = code


class JobTimeoutError(ProviderError):
    """The remote job did not finish within the polling ceiling."""

    default_message = (
        "The face swap took too long and timed out. Please try again later."
    )


class VerificationFailedError(FaceSwapBotError):
    """A session write could not be read back intact."""

    default_message = (
        "Your session got out of sync and was reset. Please start again."
    )


class RateLimitedError(FaceSwapBotError):
    """The user exceeded a rate limit."""

    def __init__(self, user_message: str, retry_after_minutes: int | None = None):
        super().__init__(user_message)
        self.retry_after_minutes = retry_after_minutes
