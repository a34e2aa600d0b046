"""
Error taxonomy shared by the submission and alert subsystems.

Collaborators (stores, blob uploads, HTTP adapters) raise these classified
errors; the submission pipeline and sync engine decide what to do based on
the class, never on message text.
"""

import socket
from typing import Optional

import requests


class RescueError(Exception):
    """Base class for all errors raised by this project."""


# ═══════════════════════════════════════════════════════════════════════════
# DELIVERY ERRORS
# ═══════════════════════════════════════════════════════════════════════════
class SubmissionError(RescueError):
    """A delivery attempt failed. `reason` is a short machine-friendly tag."""

    reason = "unknown"

    def __init__(self, message: str = "", reason: Optional[str] = None):
        super().__init__(message or self.reason)
        if reason:
            self.reason = reason


class ValidationError(SubmissionError):
    """Bad input. Never retried, surfaced immediately."""
    reason = "validation"


class UnavailableError(SubmissionError):
    """Network or service down. Retryable: the report gets queued."""
    reason = "unavailable"


class SubmissionTimeout(SubmissionError, TimeoutError):
    """Submission exceeded its time budget."""
    reason = "timeout"


class UnknownDeliveryError(SubmissionError):
    """Any other delivery failure."""
    reason = "unknown"


# ═══════════════════════════════════════════════════════════════════════════
# AI / STORAGE ERRORS
# ═══════════════════════════════════════════════════════════════════════════
class RateLimitedError(RescueError):
    """The AI analysis service answered 429."""


class InvalidAnalysisError(RescueError):
    """The AI response did not have the expected shape."""


class StorageError(RescueError):
    """Local durable storage is unavailable or corrupt."""


_UNAVAILABLE_TYPES = (
    requests.ConnectionError,
    requests.Timeout,
    ConnectionError,
    socket.timeout,
    OSError,
)


def classify_error(exc: BaseException) -> SubmissionError:
    """Map an arbitrary collaborator exception onto the delivery taxonomy."""
    if isinstance(exc, SubmissionError):
        return exc
    # HTTPError is an OSError too, so it has to be checked first
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return classify_status(exc.response.status_code)
    if isinstance(exc, _UNAVAILABLE_TYPES):
        return UnavailableError(str(exc) or "network unavailable")
    return UnknownDeliveryError(str(exc) or exc.__class__.__name__)


def classify_status(status_code: int, detail: str = "") -> SubmissionError:
    """Map an HTTP status code from a delivery collaborator onto the taxonomy."""
    message = f"HTTP {status_code}" + (f": {detail}" if detail else "")
    if status_code in (400, 404, 409, 422):
        return ValidationError(message)
    if status_code in (408, 429) or status_code >= 500:
        return UnavailableError(message)
    return UnknownDeliveryError(message)
