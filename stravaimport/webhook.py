"""Strava push-subscription handshake and notification parsing.

Both functions are pure apart from logging; the Flask blueprint in
``app/routes/strava_webhook.py`` turns their exceptions into status codes.
"""

from __future__ import annotations

import hmac
import json
import logging
from enum import Enum
from typing import Any, NamedTuple

from stravaimport.activity_id import ActivityId
from stravaimport.errors import MalformedPayload, Misconfigured, ValidationRejected

log = logging.getLogger(__name__)

SUBSCRIBE_MODE = "subscribe"
REQUIRED_FIELDS = ("object_type", "aspect_type", "object_id")


class ObjectType(Enum):
    ACTIVITY = "activity"
    ATHLETE = "athlete"


class AspectType(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class WebhookEvent(NamedTuple):
    # Unrecognized values are kept as the raw string rather than rejected.
    object_type: ObjectType | str
    aspect_type: AspectType | str
    object_id: ActivityId
    owner_id: Any = None
    event_time: Any = None
    updates: dict | None = None

    @property
    def is_activity_create(self) -> bool:
        return self.object_type == ObjectType.ACTIVITY and self.aspect_type == AspectType.CREATE

    def describe(self) -> str:
        object_type = getattr(self.object_type, "value", self.object_type)
        aspect_type = getattr(self.aspect_type, "value", self.aspect_type)
        return f"{object_type}.{aspect_type} object_id={self.object_id.to_unprefixed_string()} owner_id={self.owner_id}"


# ---------------------------------------------------------------------------
# Handshake
# ---------------------------------------------------------------------------


def validate_handshake(
    mode: str | None,
    verify_token: str | None,
    challenge: str | None,
    expected_token: str | None,
) -> dict[str, str | None]:
    """Answer Strava's one-time subscription validation request.

    Returns the JSON body to send back, echoing ``challenge`` unchanged.
    Raises ``Misconfigured`` when no verify token is set up and
    ``ValidationRejected`` on a mode or token mismatch.
    """
    if not expected_token:
        log.error("Strava webhook verify token is not configured (set STRAVA_WEBHOOK_VERIFY_TOKEN)")
        raise Misconfigured("Webhook not configured")

    token_matches = verify_token is not None and hmac.compare_digest(
        str(verify_token).encode(), str(expected_token).encode()
    )
    if mode == SUBSCRIBE_MODE and token_matches:
        log.info("Strava webhook validation successful")
        return {"hub.challenge": challenge}

    log.warning("Strava webhook validation failed: mode=%s token_matches=%s", mode, token_matches)
    raise ValidationRejected("Webhook validation failed")


# ---------------------------------------------------------------------------
# Notification payload
# ---------------------------------------------------------------------------


def _is_empty(value: Any) -> bool:
    # Strava never sends 0 or "0" as a real id or type.
    return not value or value == "0"


def _coerce(enum_cls, raw: Any):
    try:
        return enum_cls(raw)
    except ValueError:
        return raw


def parse_event(raw_body: bytes | str) -> WebhookEvent:
    """Decode and validate a webhook notification body.

    Raises ``MalformedPayload`` if the body is not a JSON object or if any of
    ``object_type``, ``aspect_type`` or ``object_id`` is missing or empty.
    """
    try:
        payload = json.loads(raw_body or b"")
    except (TypeError, ValueError) as exc:
        log.warning("Webhook payload is not valid JSON: %s", exc)
        raise MalformedPayload("Invalid payload") from exc

    if not isinstance(payload, dict):
        log.warning("Webhook payload is not a JSON object: %r", payload)
        raise MalformedPayload("Invalid payload")

    missing = [field for field in REQUIRED_FIELDS if _is_empty(payload.get(field))]
    if missing:
        log.warning("Webhook payload missing required fields %s: %s", missing, payload)
        raise MalformedPayload(f"Missing required fields: {', '.join(missing)}")

    try:
        object_id = ActivityId.from_value(payload["object_id"])
    except ValueError as exc:
        log.warning("Webhook payload has an unusable object_id: %r", payload["object_id"])
        raise MalformedPayload("Invalid object_id") from exc
    # Strava object ids are always integers.
    if not object_id.to_unprefixed_string().isdigit():
        log.warning("Webhook payload has a non-numeric object_id: %r", payload["object_id"])
        raise MalformedPayload("Invalid object_id")

    updates = payload.get("updates")
    return WebhookEvent(
        object_type=_coerce(ObjectType, payload["object_type"]),
        aspect_type=_coerce(AspectType, payload["aspect_type"]),
        object_id=object_id,
        owner_id=payload.get("owner_id"),
        event_time=payload.get("event_time"),
        updates=updates if isinstance(updates, dict) else None,
    )
