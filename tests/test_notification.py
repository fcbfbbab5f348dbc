import time

from stravaimport.activity_id import ActivityId
from stravaimport.notification import (
    Notification,
    create_notification,
    expiry_timestamp,
    notify_failed_import,
    unread_notifications,
)
from stravaimport.outcome import FailureKind, ImportOutcome

ACTIVITY_ID = ActivityId("321")


def test_create_and_list_unread(clean_tables):
    create_notification("first")
    latest = create_notification("second", category="error")
    Notification.update(created=Notification.created + 10).where(Notification.id == latest.id).execute()
    read = create_notification("seen")
    read.read = True
    read.save()
    create_notification("stale", expires=int(time.time()) - 1)

    assert [n.message for n in unread_notifications()] == ["second", "first"]


def test_create_without_db_returns_none(monkeypatch):
    import stravaimport.db as sdb

    monkeypatch.setattr(sdb, "_configured", False)

    assert create_notification("dropped") is None


def test_expiry_timestamp():
    assert abs(expiry_timestamp(24) - (time.time() + 86400)) < 5


def test_failed_import_notifies(clean_tables):
    outcome = ImportOutcome.failed(ACTIVITY_ID, FailureKind.PERSISTENCE, "OperationalError: disk full", [])

    note = notify_failed_import(outcome)

    assert note.category == "error"
    assert note.message == "Strava import of activity-321 failed [persistence]: OperationalError: disk full"
    assert note.expires is None


def test_rate_limited_notification_expires(clean_tables):
    outcome = ImportOutcome.failed(ACTIVITY_ID, FailureKind.RATE_LIMITED, "daily limit", [])

    note = notify_failed_import(outcome)

    assert note.expires > time.time()


def test_unauthorized_asks_for_reauthorization(clean_tables):
    outcome = ImportOutcome.failed(ACTIVITY_ID, FailureKind.UNAUTHORIZED, "401", [])

    assert "please re-authorize" in notify_failed_import(outcome).message


def test_success_does_not_notify(clean_tables):
    assert notify_failed_import(ImportOutcome.imported(ACTIVITY_ID, [])) is None
    assert Notification.select().count() == 0
