"""Typed exceptions for the webhook handshake, payload parsing and Strava API access.

Webhook errors are the only ones that ever reach the HTTP layer as a non-200
response.  Strava API errors carry a ``kind`` so the importer can classify a
failure without inspecting messages.
"""

from __future__ import annotations

from stravaimport.outcome import FailureKind

RATE_LIMIT_SHORT_TERM = "short_term"  # 15-minute Strava window
RATE_LIMIT_LONG_TERM = "long_term"  # daily Strava window (resets midnight UTC)

# ---- webhook -----------------------------------------------------------------


class WebhookError(Exception):
    """Base class for errors raised while handling a webhook request."""

    status_code = 400


class Misconfigured(WebhookError):
    """No verify token is configured; an operator error, not a client error."""

    status_code = 500


class ValidationRejected(WebhookError):
    """Handshake mode or verify token did not match."""

    status_code = 403


class MalformedPayload(WebhookError):
    """Notification body could not be decoded or lacks a required field."""

    status_code = 400


# ---- Strava API --------------------------------------------------------------


class StravaAPIError(RuntimeError):
    """Base error for Strava API failures."""

    kind = FailureKind.UNEXPECTED

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ActivityNotFoundError(StravaAPIError):
    """The activity (or one of its resources) does not exist any more."""

    kind = FailureKind.NOT_FOUND


class ActivityForbiddenError(StravaAPIError):
    """The activity was made private or the token may not read it."""

    kind = FailureKind.FORBIDDEN


class StravaUnauthorizedError(StravaAPIError):
    """The access token was revoked or expired and could not be refreshed."""

    kind = FailureKind.UNAUTHORIZED


class StravaRateLimitError(StravaAPIError):
    """Raised when a Strava API rate limit is hit.

    ``limit_type`` is ``RATE_LIMIT_SHORT_TERM`` (15-minute window) or
    ``RATE_LIMIT_LONG_TERM`` (daily window, resets at midnight UTC).
    """

    kind = FailureKind.RATE_LIMITED

    def __init__(
        self,
        message: str,
        limit_type: str,
        reset_at: int | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, status_code=429)
        self.limit_type = limit_type
        self.reset_at = reset_at
        self.retry_after = retry_after  # seconds; only set for short-term


class StravaNetworkError(StravaAPIError):
    """Connection failure or timeout talking to Strava."""

    kind = FailureKind.NETWORK


class StravaDecodeError(StravaAPIError):
    """Strava answered, but not with the shape we expected."""

    kind = FailureKind.DECODE


# ---- orchestration -----------------------------------------------------------


class ImportInProgressError(RuntimeError):
    """Another import for the same activity held the lock for too long."""

    kind = FailureKind.BUSY


__all__ = [
    "RATE_LIMIT_LONG_TERM",
    "RATE_LIMIT_SHORT_TERM",
    "ActivityForbiddenError",
    "ActivityNotFoundError",
    "ImportInProgressError",
    "MalformedPayload",
    "Misconfigured",
    "StravaAPIError",
    "StravaDecodeError",
    "StravaNetworkError",
    "StravaRateLimitError",
    "StravaUnauthorizedError",
    "ValidationRejected",
    "WebhookError",
]
