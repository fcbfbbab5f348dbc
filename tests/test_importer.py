import threading
import time
from datetime import datetime
from unittest.mock import Mock

import peewee
import pytest
import requests

from stravaimport.activity_id import ActivityId
from stravaimport.errors import (
    ActivityForbiddenError,
    ActivityNotFoundError,
    StravaDecodeError,
    StravaNetworkError,
    StravaRateLimitError,
    StravaUnauthorizedError,
)
from stravaimport.events import EventBus, SegmentEffortsInvalidated
from stravaimport.filters import ImportFilterChain
from stravaimport.importer import ActivityImporter, classify_failure
from stravaimport.locks import KeyedLock
from stravaimport.outcome import FailureKind, OutcomeStatus, Step, StepStatus
from stravaimport.output import BufferedOutput
from stravaimport.remote_activity import RemoteActivity

ACTIVITY_ID = ActivityId("123")


def _remote(visibility="everyone", start=datetime(2024, 5, 1, 8, 0)):
    return RemoteActivity(
        activity_id=ACTIVITY_ID,
        name="Lunch Run",
        sport_type="Run",
        visibility=visibility,
        start_date_local=start,
        laps=[{"id": 1}],
        segment_efforts=[{"id": 11}, {"id": 12}],
    )


@pytest.fixture
def calls():
    return []


@pytest.fixture
def source(calls):
    source = Mock()

    def fetch_activity(activity_id):
        calls.append("fetch_activity")
        return _remote()

    def fetch_streams(activity_id):
        calls.append("fetch_streams")
        return {"time": {"data": [0, 1, 2]}}

    def fetch_photos(activity_id):
        calls.append("fetch_photos")
        return [{"unique_id": "p1", "urls": {"5000": "https://example.com/p1.jpg"}}]

    source.fetch_activity.side_effect = fetch_activity
    source.fetch_streams.side_effect = fetch_streams
    source.fetch_photos.side_effect = fetch_photos
    return source


def _store(calls, name):
    store = Mock()
    store.save.side_effect = lambda *args, **kwargs: calls.append(name)
    return store


@pytest.fixture
def importer(source, calls):
    activity_store = Mock()
    activity_store.exists.return_value = False
    activity_store.upsert.side_effect = lambda *args, **kwargs: calls.append("upsert_activity")
    event_bus = Mock()
    event_bus.publish.side_effect = lambda event: calls.append("publish")
    return ActivityImporter(
        source=source,
        activity_store=activity_store,
        stream_store=_store(calls, "save_streams"),
        lap_store=_store(calls, "save_laps"),
        segment_effort_store=_store(calls, "save_segment_efforts"),
        photo_store=_store(calls, "save_photos"),
        event_bus=event_bus,
        filters=ImportFilterChain.from_config({}),
        locks=KeyedLock(),
        lock_timeout=2,
    )


class TestNewActivity:
    def test_runs_every_step_in_order(self, importer, calls):
        outcome = importer.import_activity(ACTIVITY_ID, BufferedOutput())

        assert outcome.status == OutcomeStatus.IMPORTED
        assert calls == [
            "fetch_activity",
            "upsert_activity",
            "fetch_streams",
            "save_streams",
            "save_laps",
            "save_segment_efforts",
            "fetch_photos",
            "save_photos",
        ]
        assert outcome.completed_steps == [
            Step.FETCH_ACTIVITY,
            Step.FILTERS,
            Step.SAVE_ACTIVITY,
            Step.STREAMS,
            Step.LAPS,
            Step.SEGMENT_EFFORTS,
            Step.PHOTOS,
        ]
        assert outcome.failed_steps == []

    def test_passes_embedded_children_and_output(self, importer):
        output = BufferedOutput()

        importer.import_activity(ACTIVITY_ID, output)

        remote = importer.activity_store.upsert.call_args.args[0]
        importer.activity_store.upsert.assert_called_once_with(remote, output)
        importer.lap_store.save.assert_called_once_with(ACTIVITY_ID, [{"id": 1}], output)
        importer.segment_effort_store.save.assert_called_once_with(ACTIVITY_ID, [{"id": 11}, {"id": 12}], output)
        importer.stream_store.save.assert_called_once_with(ACTIVITY_ID, {"time": {"data": [0, 1, 2]}}, output)
        assert output.lines[0] == "Importing single activity: activity-123"
        assert output.lines[-1] == "Successfully imported activity: activity-123"

    def test_no_invalidation_for_new_activity(self, importer):
        importer.import_activity(ACTIVITY_ID, BufferedOutput())

        importer.event_bus.publish.assert_not_called()

    @pytest.mark.parametrize("raw", [123, "123", "activity-123"])
    def test_accepts_raw_ids(self, importer, source, raw):
        outcome = importer.import_activity(raw, BufferedOutput())

        assert outcome.activity_id == ACTIVITY_ID
        source.fetch_activity.assert_called_once_with(ACTIVITY_ID)


class TestExistingActivity:
    def test_invalidates_segment_efforts_before_resaving(self, importer, calls):
        importer.activity_store.exists.return_value = True
        output = BufferedOutput()

        outcome = importer.import_activity(ACTIVITY_ID, output)

        assert outcome.status == OutcomeStatus.IMPORTED
        importer.event_bus.publish.assert_called_once_with(SegmentEffortsInvalidated(ACTIVITY_ID))
        assert calls.index("publish") < calls.index("upsert_activity") < calls.index("save_segment_efforts")
        assert Step.INVALIDATE_SEGMENT_EFFORTS in outcome.completed_steps
        assert "Activity activity-123 already exists, updating..." in output.lines

    def test_failed_invalidation_stops_before_resave(self, importer, calls):
        importer.activity_store.exists.return_value = True
        importer.event_bus.publish.side_effect = peewee.OperationalError("database is locked")

        outcome = importer.import_activity(ACTIVITY_ID, BufferedOutput())

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.kind == FailureKind.PERSISTENCE
        assert outcome.failed_steps == [Step.INVALIDATE_SEGMENT_EFFORTS]
        assert "upsert_activity" not in calls


class TestFilters:
    def test_rejected_activity_is_not_persisted(self, importer, source, calls):
        importer.filters = ImportFilterChain.from_config(
            {"visibilities_to_import": ["everyone"], "activities_to_skip": ["123"]}
        )
        source.fetch_activity.side_effect = None
        source.fetch_activity.return_value = _remote(visibility="only_me")
        output = BufferedOutput()

        outcome = importer.import_activity(ACTIVITY_ID, output)

        assert outcome.status == OutcomeStatus.SKIPPED_FILTERED
        assert outcome.rejection.reason == "visibility"
        assert calls == []
        source.fetch_streams.assert_not_called()
        importer.activity_store.exists.assert_not_called()
        assert output.lines[-1] == 'Skipping activity activity-123: visibility "only_me" should not be imported'

    def test_skip_list(self, importer, calls):
        importer.filters = ImportFilterChain.from_config({"activities_to_skip": ["123"]})

        outcome = importer.import_activity(ACTIVITY_ID, BufferedOutput())

        assert outcome.status == OutcomeStatus.SKIPPED_FILTERED
        assert outcome.rejection.reason == "skip_list"
        assert calls == ["fetch_activity"]


class TestNotFound:
    @pytest.mark.parametrize(
        "error,kind",
        [
            (ActivityNotFoundError("404", status_code=404), FailureKind.NOT_FOUND),
            (ActivityForbiddenError("403", status_code=403), FailureKind.FORBIDDEN),
        ],
    )
    def test_metadata_not_found_skips_without_persistence(self, importer, source, calls, error, kind):
        source.fetch_activity.side_effect = error

        outcome = importer.import_activity(ACTIVITY_ID, BufferedOutput())

        assert outcome.status == OutcomeStatus.SKIPPED_NOT_FOUND
        assert outcome.kind == kind
        assert calls == []
        importer.activity_store.upsert.assert_not_called()

    def test_streams_not_found_after_save(self, importer, source, calls):
        source.fetch_streams.side_effect = ActivityNotFoundError("gone", status_code=404)

        outcome = importer.import_activity(ACTIVITY_ID, BufferedOutput())

        assert outcome.status == OutcomeStatus.SKIPPED_NOT_FOUND
        assert outcome.completed_steps == [Step.FETCH_ACTIVITY, Step.FILTERS, Step.SAVE_ACTIVITY]
        assert outcome.failed_steps == [Step.STREAMS]

    def test_logs_at_info(self, importer, source, caplog):
        source.fetch_activity.side_effect = ActivityNotFoundError("gone")

        with caplog.at_level("INFO", logger="stravaimport.importer"):
            importer.import_activity(ACTIVITY_ID, BufferedOutput())

        records = [r for r in caplog.records if r.name == "stravaimport.importer"]
        assert records
        assert all(r.levelname == "INFO" for r in records)


class TestFailures:
    @pytest.mark.parametrize(
        "error,kind",
        [
            (StravaRateLimitError("slow down", limit_type="short_term", retry_after=60), FailureKind.RATE_LIMITED),
            (StravaNetworkError("timed out"), FailureKind.NETWORK),
            (StravaDecodeError("bad shape"), FailureKind.DECODE),
            (StravaUnauthorizedError("revoked", 401), FailureKind.UNAUTHORIZED),
            (requests.exceptions.ConnectionError("reset"), FailureKind.NETWORK),
            (RuntimeError("boom"), FailureKind.UNEXPECTED),
        ],
    )
    def test_fetch_failures_are_classified(self, importer, source, error, kind):
        source.fetch_activity.side_effect = error

        outcome = importer.import_activity(ACTIVITY_ID, BufferedOutput())

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.kind == kind
        assert outcome.failed_steps == [Step.FETCH_ACTIVITY]
        importer.activity_store.upsert.assert_not_called()

    def test_persistence_failure_keeps_partial_state_visible(self, importer, calls, caplog):
        importer.lap_store.save.side_effect = peewee.IntegrityError("UNIQUE constraint failed")

        with caplog.at_level("ERROR", logger="stravaimport.importer"):
            outcome = importer.import_activity(ACTIVITY_ID, BufferedOutput())

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.kind == FailureKind.PERSISTENCE
        assert outcome.completed_steps == [Step.FETCH_ACTIVITY, Step.FILTERS, Step.SAVE_ACTIVITY, Step.STREAMS]
        assert outcome.failed_steps == [Step.LAPS]
        assert "save_segment_efforts" not in calls
        assert "fetch_photos" not in calls
        message = caplog.records[-1].getMessage()
        assert "activity-123" in message
        assert "save_activity" in message
        assert "UNIQUE constraint failed" in message

    def test_failure_does_not_raise(self, importer):
        importer.activity_store.upsert.side_effect = Exception("anything")

        outcome = importer.import_activity(ACTIVITY_ID, BufferedOutput())

        assert outcome.status == OutcomeStatus.FAILED
        assert "anything" in outcome.cause


class TestPhotos:
    def test_photo_download_failure_keeps_import(self, importer, calls, caplog):
        importer.photo_store.save.side_effect = requests.exceptions.HTTPError("503 Service Unavailable")
        output = BufferedOutput()

        with caplog.at_level("WARNING", logger="stravaimport.importer"):
            outcome = importer.import_activity(ACTIVITY_ID, output)

        assert outcome.status == OutcomeStatus.IMPORTED
        assert outcome.failed_steps == [Step.PHOTOS]
        failed = [s for s in outcome.steps if s.step == Step.PHOTOS][0]
        assert failed.status == StepStatus.FAILED
        assert "503" in failed.detail
        assert "save_segment_efforts" in calls
        assert any(r.levelname == "WARNING" for r in caplog.records)
        assert "with failed steps: photos" in str(outcome)

    def test_photo_fetch_failure_keeps_import(self, importer, source):
        source.fetch_photos.side_effect = StravaRateLimitError("limit", limit_type="long_term")

        outcome = importer.import_activity(ACTIVITY_ID, BufferedOutput())

        assert outcome.status == OutcomeStatus.IMPORTED
        assert outcome.failed_steps == [Step.PHOTOS]


class TestLocking:
    def test_concurrent_imports_of_same_id_do_not_interleave(self, importer, source, calls):
        original = source.fetch_activity.side_effect

        def slow_fetch(activity_id):
            time.sleep(0.2)
            return original(activity_id)

        source.fetch_activity.side_effect = slow_fetch
        outcomes = []
        threads = [
            threading.Thread(target=lambda: outcomes.append(importer.import_activity(ACTIVITY_ID, BufferedOutput())))
            for _ in range(2)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert [o.status for o in outcomes] == [OutcomeStatus.IMPORTED, OutcomeStatus.IMPORTED]
        single_run = calls[: len(calls) // 2]
        assert calls == single_run * 2

    def test_lock_timeout_reports_busy(self, importer, source):
        importer.lock_timeout = 0.05

        with importer.locks.hold(ACTIVITY_ID):
            outcome = importer.import_activity(ACTIVITY_ID, BufferedOutput())

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.kind == FailureKind.BUSY
        source.fetch_activity.assert_not_called()

    def test_different_ids_do_not_block(self, importer):
        importer.lock_timeout = 0.05

        with importer.locks.hold(ActivityId("999")):
            outcome = importer.import_activity(ACTIVITY_ID, BufferedOutput())

        assert outcome.status == OutcomeStatus.IMPORTED


class TestWithEventBus:
    def test_invalidation_reaches_subscribed_store(self, importer):
        bus = EventBus()
        handler = Mock()
        bus.subscribe(SegmentEffortsInvalidated, handler)
        importer.event_bus = bus
        importer.activity_store.exists.return_value = True

        importer.import_activity(ACTIVITY_ID, BufferedOutput())

        handler.assert_called_once_with(SegmentEffortsInvalidated(ACTIVITY_ID))


def test_classify_failure_defaults():
    assert classify_failure(peewee.DatabaseError("x")) == FailureKind.PERSISTENCE
    assert classify_failure(KeyError("x")) == FailureKind.UNEXPECTED
    assert classify_failure(ActivityNotFoundError("x")) == FailureKind.NOT_FOUND
