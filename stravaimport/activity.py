"""Local Activity record, keyed by the prefixed ActivityId."""

import json
from datetime import UTC, datetime

from peewee import (
    CharField,
    DateTimeField,
    FloatField,
    IntegerField,
    Model,
    TextField,
)

from stravaimport.activity_id import ActivityId
from stravaimport.db import db
from stravaimport.remote_activity import RemoteActivity


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Activity(Model):
    """
    One imported Strava activity.

    Child data (streams, laps, segment efforts, photos) live in their own
    tables and reference this row through ``activity_id``.
    """

    activity_id = CharField(max_length=64, primary_key=True)  # "activity-<strava id>"

    name = CharField(max_length=255, null=True)
    sport_type = CharField(max_length=64, null=True)
    visibility = CharField(max_length=32, null=True)
    start_date_local = DateTimeField(null=True, index=True)

    distance = FloatField(null=True)  # metres
    moving_time = IntegerField(null=True)  # seconds
    elapsed_time = IntegerField(null=True)  # seconds
    total_elevation_gain = FloatField(null=True)  # metres
    photo_count = IntegerField(default=0)

    # Full detailed-activity payload from Strava
    raw_data = TextField(null=True)

    imported_at = DateTimeField(default=_utcnow)
    updated_at = DateTimeField(default=_utcnow)

    class Meta:
        database = db
        table_name = "activity"

    @property
    def strava_id(self) -> str:
        return ActivityId.from_value(self.activity_id).to_unprefixed_string()

    def __str__(self) -> str:
        return f"Activity({self.activity_id}: {self.name or 'Unnamed'})"


class ActivityStore:
    """Existence check and upsert for Activity rows."""

    def exists(self, activity_id: ActivityId) -> bool:
        return Activity.select().where(Activity.activity_id == str(activity_id)).exists()

    def find(self, activity_id: ActivityId) -> Activity | None:
        return Activity.get_or_none(Activity.activity_id == str(activity_id))

    def upsert(self, remote: RemoteActivity, output) -> None:
        """Insert the activity, or overwrite every field of the existing row."""
        now = _utcnow()
        values = {
            Activity.name: remote.name,
            Activity.sport_type: remote.sport_type,
            Activity.visibility: remote.visibility,
            Activity.start_date_local: remote.start_date_local,
            Activity.distance: remote.distance,
            Activity.moving_time: remote.moving_time,
            Activity.elapsed_time: remote.elapsed_time,
            Activity.total_elevation_gain: remote.total_elevation_gain,
            Activity.photo_count: remote.photo_count,
            Activity.raw_data: json.dumps(remote.raw, default=str),
            Activity.updated_at: now,
        }
        (
            Activity.insert({Activity.activity_id: str(remote.activity_id), Activity.imported_at: now, **values})
            .on_conflict(conflict_target=[Activity.activity_id], update=values)
            .execute()
        )
        output.writeln(f"  => Saved activity {remote.activity_id} ({remote.name or 'Unnamed'})")
