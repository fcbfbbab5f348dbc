"""Strava push-subscription management (create / view / delete).

Strava allows one push subscription per API application.  Creating one makes
Strava call our callback URL with the GET handshake before it answers, so the
web process must already be running and reachable when ``subscribe`` is used.
"""

import logging
from typing import Any

import requests

from stravaimport.appconfig import (
    get_or_create_webhook_verify_token,
    get_strava_config,
    get_webhook_config,
    save_webhook_subscription_id,
)

STRAVA_PUSH_SUBSCRIPTIONS_URL = "https://www.strava.com/api/v3/push_subscriptions"

log = logging.getLogger(__name__)


class SubscriptionError(RuntimeError):
    """Strava refused a push-subscription request, or credentials are missing."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _credentials() -> tuple[str, str]:
    strava_cfg = get_strava_config()
    client_id = str(strava_cfg.get("client_id") or "").strip()
    client_secret = str(strava_cfg.get("client_secret") or "").strip()
    if not client_id or not client_secret:
        raise SubscriptionError("Strava client_id and client_secret not configured")
    return client_id, client_secret


def list_subscriptions(timeout: float = 10) -> list[dict[str, Any]]:
    """Return the subscriptions Strava knows about for this application."""
    client_id, client_secret = _credentials()
    resp = requests.get(
        STRAVA_PUSH_SUBSCRIPTIONS_URL,
        params={"client_id": client_id, "client_secret": client_secret},
        timeout=timeout,
    )
    if not resp.ok:
        raise SubscriptionError(resp.text, resp.status_code)
    return resp.json() or []


def subscription_status(timeout: float = 10) -> dict[str, Any]:
    """Combine the locally stored subscription id with what Strava reports."""
    local_sub_id = get_webhook_config().get("subscription_id")
    strava_subs: list[dict[str, Any]] = []
    error = None
    try:
        strava_subs = list_subscriptions(timeout=timeout)
    except (SubscriptionError, requests.exceptions.RequestException) as e:
        log.warning("Could not fetch Strava subscriptions from API: %s", e)
        error = str(e)
    return {"subscription_id": local_sub_id, "strava_subscriptions": strava_subs, "error": error}


def subscribe(callback_url: str, timeout: float = 30) -> int:
    """Create the push subscription and store its id; return the id."""
    client_id, client_secret = _credentials()
    verify_token = get_or_create_webhook_verify_token()

    log.info("Creating Strava push subscription for %s", callback_url)
    resp = requests.post(
        STRAVA_PUSH_SUBSCRIPTIONS_URL,
        data={
            "client_id": client_id,
            "client_secret": client_secret,
            "callback_url": callback_url,
            "verify_token": verify_token,
        },
        timeout=timeout,
    )
    if not resp.ok:
        raise SubscriptionError(resp.text, resp.status_code)

    sub_id = resp.json().get("id")
    save_webhook_subscription_id(sub_id)
    log.info("Strava push subscription %s created", sub_id)
    return sub_id


def unsubscribe(timeout: float = 30) -> None:
    """Delete the stored push subscription at Strava and forget its id.

    A 404 from Strava means the subscription is already gone, which is treated
    as success.
    """
    client_id, client_secret = _credentials()
    sub_id = get_webhook_config().get("subscription_id")
    if not sub_id:
        raise SubscriptionError("No active subscription found locally")

    resp = requests.delete(
        f"{STRAVA_PUSH_SUBSCRIPTIONS_URL}/{sub_id}",
        params={"client_id": client_id, "client_secret": client_secret},
        timeout=timeout,
    )
    if not (resp.ok or resp.status_code == 404):
        raise SubscriptionError(resp.text, resp.status_code)

    save_webhook_subscription_id(None)
    log.info("Strava push subscription %s deleted", sub_id)
