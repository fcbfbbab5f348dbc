"""Strava API access for single-activity imports, via stravalib.

Every stravalib / requests failure is translated into one of the typed
``stravaimport.errors`` exceptions so the importer can tell a deleted or
private activity apart from a rate limit, a network problem or a bad payload.
"""

import logging
import time
from typing import Any

import requests
from stravalib import Client
from stravalib.exc import AccessUnauthorized, Fault, ObjectNotFound, RateLimitExceeded, RateLimitTimeout

from stravaimport.activity_id import ActivityId
from stravaimport.errors import (
    RATE_LIMIT_LONG_TERM,
    RATE_LIMIT_SHORT_TERM,
    ActivityForbiddenError,
    ActivityNotFoundError,
    StravaAPIError,
    StravaDecodeError,
    StravaNetworkError,
    StravaRateLimitError,
    StravaUnauthorizedError,
)
from stravaimport.remote_activity import RemoteActivity, to_plain_dict
from stravaimport.utils import next_midnight_utc

log = logging.getLogger(__name__)

STREAM_TYPES = [
    "time",
    "distance",
    "latlng",
    "altitude",
    "velocity_smooth",
    "heartrate",
    "cadence",
    "watts",
    "temp",
    "moving",
    "grade_smooth",
]
PHOTO_SIZE = 5000


class _TimeoutSession(requests.Session):
    """requests.Session that applies a default timeout to every call stravalib makes."""

    def __init__(self, timeout: float) -> None:
        super().__init__()
        self.default_timeout = timeout

    def request(self, method, url, **kwargs):
        kwargs.setdefault("timeout", self.default_timeout)
        return super().request(method, url, **kwargs)


class _RaisingRateLimiter:
    """Stravalib-compatible rate limiter that raises StravaRateLimitError.

    stravalib's default SleepingRateLimitRule calls ``time.sleep()`` for up to
    the rest of the day when the long-term limit is exceeded, which would park
    a webhook handler indefinitely.  This replacement raises immediately.
    """

    def __init__(self) -> None:
        self.log = logging.getLogger(f"{__name__}._RaisingRateLimiter")

    def __call__(self, response_headers: dict, method) -> None:
        from stravalib.util.limiter import (
            get_rates_from_response_headers,
            get_seconds_until_next_quarter,
        )

        rates = get_rates_from_response_headers(response_headers, method)
        if rates is None:
            self.log.debug("No rates present in response headers")
            return

        if rates.long_usage >= rates.long_limit:
            raise StravaRateLimitError(
                "Strava daily rate limit exceeded, resets at midnight UTC",
                limit_type=RATE_LIMIT_LONG_TERM,
                reset_at=next_midnight_utc(),
            )

        if rates.short_usage >= rates.short_limit:
            timeout = get_seconds_until_next_quarter()
            raise StravaRateLimitError(
                f"Strava short-term rate limit hit, resets in {timeout}s",
                limit_type=RATE_LIMIT_SHORT_TERM,
                reset_at=int(time.time()) + timeout,
                retry_after=timeout,
            )


class StravaActivitySource:
    """Fetches activity metadata, streams and photos from the Strava API."""

    def __init__(
        self,
        token: str,
        refresh_token: str | None = None,
        token_expires: str | None = "0",
        config: dict[str, Any] | None = None,
        timeout: float = 30,
    ):
        self.config = config or {}
        self.client = Client(
            access_token=token,
            refresh_token=refresh_token or None,
            token_expires=int(token_expires or 0),
            rate_limiter=_RaisingRateLimiter(),
            requests_session=_TimeoutSession(timeout),
        )

    @classmethod
    def from_config(cls, strava_cfg: dict[str, Any], timeout: float = 30) -> "StravaActivitySource":
        return cls(
            token=strava_cfg.get("access_token", ""),
            refresh_token=strava_cfg.get("refresh_token", ""),
            token_expires=strava_cfg.get("token_expires", "0"),
            config=strava_cfg,
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Error translation
    # ------------------------------------------------------------------

    @staticmethod
    def _translate(exc: Exception, operation: str, activity_id: ActivityId) -> StravaAPIError:
        """Map a stravalib/requests exception onto the typed error taxonomy."""
        if isinstance(exc, StravaAPIError):
            return exc
        context = f"{operation} {activity_id}"
        if isinstance(exc, ObjectNotFound):
            return ActivityNotFoundError(f"{context}: not found", status_code=404)
        if isinstance(exc, AccessUnauthorized):
            return StravaUnauthorizedError(f"{context}: token revoked or expired, please re-authorize", 401)
        if isinstance(exc, RateLimitExceeded):
            timeout = getattr(exc, "timeout", None)
            if isinstance(exc, RateLimitTimeout) and timeout and timeout <= 920:
                return StravaRateLimitError(
                    f"{context}: short-term rate limit, retry in {timeout}s",
                    limit_type=RATE_LIMIT_SHORT_TERM,
                    reset_at=int(time.time()) + int(timeout),
                    retry_after=int(timeout),
                )
            return StravaRateLimitError(
                f"{context}: daily rate limit exceeded",
                limit_type=RATE_LIMIT_LONG_TERM,
                reset_at=next_midnight_utc(),
            )
        if isinstance(exc, Fault):
            status = getattr(getattr(exc, "response", None), "status_code", None)
            if status == 403:
                return ActivityForbiddenError(f"{context}: forbidden (private activity?)", status_code=403)
            if status == 404:
                return ActivityNotFoundError(f"{context}: not found", status_code=404)
            if status == 429:
                return StravaRateLimitError(f"{context}: rate limited", limit_type=RATE_LIMIT_SHORT_TERM)
            return StravaAPIError(f"{context}: Strava API error {status}: {exc}", status_code=status)
        if isinstance(exc, requests.exceptions.RequestException):
            return StravaNetworkError(f"{context}: {exc.__class__.__name__}: {exc}")
        if isinstance(exc, (ValueError, TypeError, KeyError, AttributeError)):
            return StravaDecodeError(f"{context}: unexpected response: {exc}")
        return StravaAPIError(f"{context}: {exc}")

    def _call(self, operation: str, activity_id: ActivityId, fn):
        """Run ``fn(strava_id)``, translating any failure into a typed StravaAPIError."""
        self._ensure_fresh_token()
        try:
            return fn(int(activity_id.to_unprefixed_string()))
        except Exception as exc:
            raise self._translate(exc, operation, activity_id) from exc

    # ------------------------------------------------------------------
    # Token handling
    # ------------------------------------------------------------------

    def _ensure_fresh_token(self) -> None:
        """Refresh the access token if it is expired or about to expire.

        Requires client_id, client_secret and refresh_token in ``self.config``.
        New tokens are written back to the config store so the next import
        (and the web process) see them.
        """
        try:
            expires_at = int(getattr(self.client, "token_expires", 0) or 0)
        except (TypeError, ValueError):
            expires_at = 0

        # Still valid with a 60-second buffer.
        if expires_at > 0 and time.time() < expires_at - 60:
            return

        client_id = str(self.config.get("client_id", "")).strip()
        client_secret = str(self.config.get("client_secret", "")).strip()
        refresh_token = str(self.config.get("refresh_token", "")).strip()
        if not (client_id and client_secret and refresh_token):
            return  # Can't refresh; let the API call fail naturally.

        try:
            log.info("Strava access token expired, refreshing")
            token_info = self.client.refresh_access_token(
                client_id=int(client_id),
                client_secret=client_secret,
                refresh_token=refresh_token,
            )
        except AccessUnauthorized as exc:
            raise StravaUnauthorizedError("Strava refresh token rejected, please re-authorize", 401) from exc
        except Exception as e:
            log.warning("Strava token refresh failed: %s. Proceeding with existing token.", e)
            return

        self.client.access_token = str(token_info["access_token"])
        self.client.refresh_token = str(token_info.get("refresh_token", refresh_token))
        self.client.token_expires = int(token_info.get("expires_at", 0))
        self.config["refresh_token"] = self.client.refresh_token

        from stravaimport.appconfig import save_strava_tokens

        save_strava_tokens(token_info)
        log.info("Strava token refreshed and saved")

    # ------------------------------------------------------------------
    # Fetches
    # ------------------------------------------------------------------

    def fetch_activity(self, activity_id: ActivityId) -> RemoteActivity:
        """Fetch the detailed activity, including all segment efforts and laps."""
        model = self._call(
            "fetch_activity",
            activity_id,
            lambda strava_id: self.client.get_activity(strava_id, include_all_efforts=True),
        )
        if model is None:
            raise ActivityNotFoundError(f"fetch_activity {activity_id}: empty response", status_code=404)
        try:
            return RemoteActivity.from_strava(model)
        except StravaAPIError:
            raise
        except (TypeError, ValueError) as exc:
            raise StravaDecodeError(f"fetch_activity {activity_id}: {exc}") from exc

    def fetch_streams(self, activity_id: ActivityId) -> dict[str, Any]:
        """Return ``{stream_type: {"data": [...], "series_type": ..., ...}}``."""
        def _fetch(strava_id):
            streams = self.client.get_activity_streams(strava_id, types=STREAM_TYPES) or {}
            return {str(getattr(kind, "value", kind)): to_plain_dict(stream) for kind, stream in streams.items()}

        return self._call("fetch_streams", activity_id, _fetch)

    def fetch_photos(self, activity_id: ActivityId) -> list[dict[str, Any]]:
        return self._call(
            "fetch_photos",
            activity_id,
            lambda strava_id: [to_plain_dict(p) for p in self.client.get_activity_photos(strava_id, size=PHOTO_SIZE)],
        )
