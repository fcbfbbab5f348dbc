"""Single-activity import pipeline triggered by a Strava create notification.

Steps run strictly in order, each depending on the metadata fetched first:

    fetch activity -> filters -> (existing? invalidate segment efforts)
    -> save activity -> streams -> laps -> segment efforts -> photos

Nothing here raises to the caller.  ``import_activity`` always returns an
``ImportOutcome`` listing which steps completed, so a partially imported
activity (no rollback happens) is visible in logs and to tests.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator

import requests
from peewee import PeeweeException

from stravaimport.activity_id import ActivityId
from stravaimport.errors import ActivityForbiddenError, ActivityNotFoundError, ImportInProgressError
from stravaimport.events import SegmentEffortsInvalidated
from stravaimport.filters import ImportFilterChain
from stravaimport.interfaces import (
    ActivityStore,
    ChildStore,
    DomainEventSink,
    ExternalActivitySource,
    OutputSink,
)
from stravaimport.locks import KeyedLock, RedisKeyedLock, activity_locks
from stravaimport.outcome import FailureKind, ImportOutcome, Step, StepResult, StepStatus

log = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 300


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception raised inside the pipeline onto a FailureKind."""
    kind = getattr(exc, "kind", None)
    if isinstance(kind, FailureKind):
        return kind
    if isinstance(exc, PeeweeException):
        return FailureKind.PERSISTENCE
    if isinstance(exc, requests.exceptions.RequestException):
        return FailureKind.NETWORK
    return FailureKind.UNEXPECTED


@contextlib.contextmanager
def _recording(steps: list[StepResult], step: Step, detail: str | None = None) -> Iterator[None]:
    """Append a StepResult for *step*: OK on normal exit, FAILED (and re-raise) otherwise."""
    try:
        yield
    except Exception as exc:
        steps.append(StepResult(step, StepStatus.FAILED, f"{exc.__class__.__name__}: {exc}"))
        raise
    steps.append(StepResult(step, StepStatus.OK, detail))


class ActivityImporter:
    """Imports one Strava activity and its child collections into local storage."""

    def __init__(
        self,
        source: ExternalActivitySource,
        activity_store: ActivityStore,
        stream_store: ChildStore,
        lap_store: ChildStore,
        segment_effort_store: ChildStore,
        photo_store: ChildStore,
        event_bus: DomainEventSink,
        filters: ImportFilterChain,
        locks: KeyedLock | RedisKeyedLock | None = None,
        lock_timeout: float | None = DEFAULT_LOCK_TIMEOUT,
    ):
        self.source = source
        self.activity_store = activity_store
        self.stream_store = stream_store
        self.lap_store = lap_store
        self.segment_effort_store = segment_effort_store
        self.photo_store = photo_store
        self.event_bus = event_bus
        self.filters = filters
        self.locks = locks if locks is not None else activity_locks
        self.lock_timeout = lock_timeout

    def import_activity(self, activity_id: ActivityId | int | str, output: OutputSink) -> ImportOutcome:
        """Run the whole pipeline for *activity_id* while holding its single-flight lock."""
        if not isinstance(activity_id, ActivityId):
            activity_id = ActivityId.from_value(activity_id)

        steps: list[StepResult] = []
        try:
            with self.locks.hold(activity_id, timeout=self.lock_timeout):
                return self._run(activity_id, output, steps)
        except ImportInProgressError as exc:
            log.error("Gave up importing %s: %s", activity_id, exc)
            output.writeln(f"Error importing activity {activity_id}: {exc}")
            return ImportOutcome.failed(activity_id, FailureKind.BUSY, str(exc), steps)

    def _run(self, activity_id: ActivityId, output: OutputSink, steps: list[StepResult]) -> ImportOutcome:
        output.writeln(f"Importing single activity: {activity_id}")

        try:
            with _recording(steps, Step.FETCH_ACTIVITY):
                remote = self.source.fetch_activity(activity_id)

            rejection = self.filters.evaluate(activity_id, remote)
            steps.append(StepResult(Step.FILTERS, StepStatus.OK, rejection.reason if rejection else None))
            if rejection is not None:
                log.info("Skipping %s: %s", activity_id, rejection.message)
                output.writeln(f"Skipping activity {activity_id}: {rejection.message}")
                return ImportOutcome.skipped_filtered(activity_id, rejection, steps)

            if self.activity_store.exists(activity_id):
                output.writeln(f"Activity {activity_id} already exists, updating...")
                with _recording(steps, Step.INVALIDATE_SEGMENT_EFFORTS):
                    self.event_bus.publish(SegmentEffortsInvalidated(activity_id))

            with _recording(steps, Step.SAVE_ACTIVITY):
                self.activity_store.upsert(remote, output)

            with _recording(steps, Step.STREAMS):
                streams = self.source.fetch_streams(activity_id)
                self.stream_store.save(activity_id, streams, output)

            with _recording(steps, Step.LAPS):
                self.lap_store.save(activity_id, remote.laps, output)

            with _recording(steps, Step.SEGMENT_EFFORTS):
                self.segment_effort_store.save(activity_id, remote.segment_efforts, output)

        except (ActivityNotFoundError, ActivityForbiddenError) as exc:
            log.info("Activity %s not found or private, skipping: %s", activity_id, exc)
            output.writeln(f"Activity {activity_id} not found or private, skipping")
            return ImportOutcome.skipped_not_found(activity_id, exc.kind, str(exc), steps)

        except Exception as exc:
            kind = classify_failure(exc)
            completed = ", ".join(s.step.value for s in steps if s.ok) or "none"
            log.error(
                "Error importing activity %s [%s]: %s (completed steps: %s)",
                activity_id,
                kind.value,
                exc,
                completed,
                exc_info=kind == FailureKind.UNEXPECTED,
            )
            output.writeln(f"Error importing activity {activity_id}: {exc}")
            return ImportOutcome.failed(activity_id, kind, f"{exc.__class__.__name__}: {exc}", steps)

        self._import_photos(activity_id, output, steps)

        output.writeln(f"Successfully imported activity: {activity_id}")
        return ImportOutcome.imported(activity_id, steps)

    def _import_photos(self, activity_id: ActivityId, output: OutputSink, steps: list[StepResult]) -> None:
        # A photo failure is recorded on the outcome but never undoes the saved activity.
        try:
            with _recording(steps, Step.PHOTOS):
                photos = self.source.fetch_photos(activity_id)
                self.photo_store.save(activity_id, photos, output)
        except Exception as exc:
            log.warning(
                "Photos for %s could not be imported [%s]: %s",
                activity_id,
                classify_failure(exc).value,
                exc,
            )
            output.writeln(f"Could not download photos for activity {activity_id}: {exc}")
