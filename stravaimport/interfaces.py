"""Collaborator interfaces consumed by the importer.

Concrete implementations are the peewee-backed stores (``stravaimport.activity`` etc.) and
``stravaimport.providers.strava`` (stravalib); tests substitute fakes.
"""

from __future__ import annotations

from typing import Any, Protocol

from stravaimport.activity_id import ActivityId
from stravaimport.remote_activity import RemoteActivity


class OutputSink(Protocol):
    def writeln(self, message: str) -> None: ...


class ExternalActivitySource(Protocol):
    """Fetches activity data from Strava; raises ``stravaimport.errors.StravaAPIError`` subclasses."""

    def fetch_activity(self, activity_id: ActivityId) -> RemoteActivity: ...

    def fetch_streams(self, activity_id: ActivityId) -> dict[str, Any]: ...

    def fetch_photos(self, activity_id: ActivityId) -> list[dict[str, Any]]: ...


class ActivityStore(Protocol):
    def exists(self, activity_id: ActivityId) -> bool: ...

    def upsert(self, remote: RemoteActivity, output: OutputSink) -> None: ...


class ChildStore(Protocol):
    """Shape shared by the stream, lap, segment effort and photo stores."""

    def save(self, activity_id: ActivityId, data: Any, output: OutputSink) -> None: ...


class DomainEventSink(Protocol):
    def publish(self, event: Any) -> None: ...
