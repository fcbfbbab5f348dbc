"""Notification model: operator-facing messages about imports that need attention."""

import logging
from datetime import UTC, datetime, timedelta

from peewee import BooleanField, CharField, IntegerField, Model

from stravaimport.db import db

log = logging.getLogger(__name__)


class Notification(Model):
    message = CharField()
    category = CharField(default="info")  # "info" | "error"
    read = BooleanField(default=False)
    created = IntegerField()  # Unix timestamp
    expires = IntegerField(null=True, default=None)  # Unix timestamp; NULL = never expires

    class Meta:
        database = db
        table_name = "notification"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "message": self.message,
            "category": self.category,
            "read": self.read,
            "created": self.created,
            "expires": self.expires,
        }


def create_notification(
    message: str,
    category: str = "info",
    expires: int | None = None,
) -> Notification | None:
    """Insert a new notification row.  Safe to call from anywhere.

    Returns ``None`` when the database is not configured in this process or
    the insert fails; a notification must never break the import that
    triggered it.
    """
    try:
        from stravaimport import db as db_module

        if not db_module._configured:
            log.debug("Database not configured; dropping notification: %s", message)
            return None

        db_instance = db_module.get_db()
        db_instance.connect(reuse_if_open=True)
        return Notification.create(
            message=message,
            category=category,
            created=int(datetime.now(UTC).timestamp()),
            expires=expires,
        )
    except Exception as e:
        log.warning("Failed to create notification: %s", e)
        return None


def unread_notifications() -> list[Notification]:
    """Unread, unexpired notifications, newest first."""
    now = int(datetime.now(UTC).timestamp())
    return list(
        Notification.select()
        .where((Notification.read == False) & ((Notification.expires.is_null()) | (Notification.expires > now)))  # noqa: E712
        .order_by(Notification.created.desc())
    )


def expiry_timestamp(hours: int = 24) -> int:
    """Return a Unix timestamp ``hours`` from now."""
    return int((datetime.now(UTC) + timedelta(hours=hours)).timestamp())


def notify_failed_import(outcome) -> Notification | None:
    """Raise an operator notification for a Failed import outcome; no-op otherwise."""
    from stravaimport.outcome import FailureKind, OutcomeStatus

    if outcome.status != OutcomeStatus.FAILED:
        return None
    if outcome.kind == FailureKind.UNAUTHORIZED:
        message = f"Strava import of {outcome.activity_id} failed: Strava access was revoked, please re-authorize"
    else:
        kind = outcome.kind.value if outcome.kind else "unexpected"
        message = f"Strava import of {outcome.activity_id} failed [{kind}]: {outcome.cause}"
    # Rate limits clear on their own; don't keep the message around forever.
    expires = expiry_timestamp(24) if outcome.kind == FailureKind.RATE_LIMITED else None
    return create_notification(message, category="error", expires=expires)
