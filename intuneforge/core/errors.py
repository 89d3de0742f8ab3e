"""Error taxonomy for the publishing pipeline.

Every error is fatal to the publish attempt it occurs in.  Nothing in the
pipeline retries; callers get the original failure with enough structure
(HTTP status, server error code and message) to decide for themselves.
"""

from __future__ import annotations


class IntuneForgeError(RuntimeError):
    """Base class for all publishing errors.

    ``cleanup_error`` is set by the publisher when a compensating deletion
    failed after this error; the original error is still the one raised.
    """

    cleanup_error: BaseException | None = None


class NotFoundError(IntuneForgeError):
    """A local file, archive entry, or metadata record is missing."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class FormatError(IntuneForgeError):
    """The archive metadata could not be decoded."""


class AuthFailedError(IntuneForgeError):
    """The credential was rejected. Never compensated, never retried."""


class RemoteApiError(IntuneForgeError):
    """The management API answered with a non-success status.

    ``status_code`` is 0 when the request never got a response.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        error_code: str = "",
        method: str = "",
        url: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.method = method
        self.url = url

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code:
            return f"{base} (HTTP {self.status_code}{', ' + self.error_code if self.error_code else ''})"
        return base


class UploadError(IntuneForgeError):
    """A block PUT or the block-list finalize PUT failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        block_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.block_id = block_id


class CommitFailedError(IntuneForgeError):
    """The service reported a terminal failure while processing a commit."""

    def __init__(self, message: str, *, upload_state: str = "", detail: str = "") -> None:
        super().__init__(message)
        self.upload_state = upload_state
        self.detail = detail


class PublishTimeoutError(IntuneForgeError, TimeoutError):
    """Storage URI assignment or commit polling exceeded its budget."""

    def __init__(self, message: str, *, attempts: int = 0, elapsed_seconds: float = 0.0) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds


class CapacityExceededError(IntuneForgeError):
    """The payload needs more blocks than the block-id scheme can address."""
