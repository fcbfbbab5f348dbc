"""Filters deciding whether a fetched activity should be imported at all.

Each filter looks only at activity metadata, so the chain runs right after the
metadata fetch and before anything is persisted.  Filters are evaluated in a
fixed order and the first rejection wins.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from typing import Any, NamedTuple

from dateutil.parser import isoparse

from stravaimport.activity_id import ActivityId
from stravaimport.remote_activity import RemoteActivity


class FilterRejection(NamedTuple):
    reason: str  # "visibility" | "skip_list" | "recorded_before"
    activity_id: ActivityId
    value: Any
    message: str


class ActivityVisibilitiesToImport:
    """Allow-set of visibilities; an empty set imports every visibility."""

    reason = "visibility"

    def __init__(self, visibilities: Iterable[str] = ()):
        self.visibilities = frozenset(v.strip() for v in visibilities if v and v.strip())

    def should_import(self, visibility: str | None) -> bool:
        if not self.visibilities:
            return True
        return visibility in self.visibilities

    def check(self, activity_id: ActivityId, remote: RemoteActivity) -> FilterRejection | None:
        if self.should_import(remote.visibility):
            return None
        return FilterRejection(
            self.reason,
            activity_id,
            remote.visibility,
            f'visibility "{remote.visibility}" should not be imported',
        )


class ActivitiesToSkipDuringImport:
    """Deny-set of unprefixed activity ids."""

    reason = "skip_list"

    def __init__(self, activity_ids: Iterable[Any] = ()):
        self.activity_ids = frozenset(str(a).strip() for a in activity_ids if str(a).strip())

    def should_skip(self, unprefixed_id: str) -> bool:
        return unprefixed_id in self.activity_ids

    def check(self, activity_id: ActivityId, remote: RemoteActivity) -> FilterRejection | None:
        unprefixed = activity_id.to_unprefixed_string()
        if not self.should_skip(unprefixed):
            return None
        return FilterRejection(self.reason, activity_id, unprefixed, "configured to be skipped")


class SkipActivitiesRecordedBefore:
    """Skip activities whose local start is earlier than a cutoff; no cutoff skips nothing."""

    reason = "recorded_before"

    def __init__(self, cutoff: datetime | date | str | None = None):
        if isinstance(cutoff, str):
            cutoff = isoparse(cutoff) if cutoff.strip() else None
        if isinstance(cutoff, date) and not isinstance(cutoff, datetime):
            cutoff = datetime(cutoff.year, cutoff.month, cutoff.day)
        self.cutoff = cutoff.replace(tzinfo=None) if cutoff else None

    def should_skip(self, start_date_local: datetime | None) -> bool:
        if self.cutoff is None or start_date_local is None:
            return False
        return start_date_local < self.cutoff

    def check(self, activity_id: ActivityId, remote: RemoteActivity) -> FilterRejection | None:
        if not self.should_skip(remote.start_date_local):
            return None
        return FilterRejection(self.reason, activity_id, remote.start_date_local, f"recorded before {self}")

    def __str__(self) -> str:
        return self.cutoff.strftime("%Y-%m-%d %H:%M:%S") if self.cutoff else "(no cutoff)"


class ImportFilterChain:
    """Ordered, short-circuiting sequence of import filters."""

    def __init__(self, filters: Iterable[Any]):
        self.filters = list(filters)

    @classmethod
    def from_config(cls, import_config: dict[str, Any]) -> ImportFilterChain:
        return cls(
            [
                ActivityVisibilitiesToImport(import_config.get("visibilities_to_import") or []),
                ActivitiesToSkipDuringImport(import_config.get("activities_to_skip") or []),
                SkipActivitiesRecordedBefore(import_config.get("skip_activities_recorded_before")),
            ]
        )

    def evaluate(self, activity_id: ActivityId, remote: RemoteActivity) -> FilterRejection | None:
        """Return the first rejection, or None when every filter lets the activity through."""
        for activity_filter in self.filters:
            rejection = activity_filter.check(activity_id, remote)
            if rejection is not None:
                return rejection
        return None
