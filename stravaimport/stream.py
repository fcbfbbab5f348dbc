"""Time-series streams (heart rate, watts, latlng, ...) of an activity."""

import json
from typing import Any

from peewee import CharField, IntegerField, Model, TextField

from stravaimport.activity_id import ActivityId
from stravaimport.db import db


class ActivityStream(Model):
    activity_id = CharField(max_length=64, index=True)
    stream_type = CharField(max_length=32)  # e.g. "heartrate", "watts", "latlng"
    series_type = CharField(max_length=32, null=True)  # "time" | "distance"
    original_size = IntegerField(null=True)
    resolution = CharField(max_length=16, null=True)
    data = TextField()  # JSON-encoded list

    class Meta:
        database = db
        table_name = "activity_stream"
        indexes = ((("activity_id", "stream_type"), True),)  # unique together

    @property
    def values(self) -> list:
        return json.loads(self.data)


class StreamStore:
    """Replaces all streams of an activity with a freshly fetched set."""

    def save(self, activity_id: ActivityId, streams: dict[str, Any], output) -> None:
        key = str(activity_id)
        rows = []
        for stream_type, stream in (streams or {}).items():
            stream = stream or {}
            rows.append(
                {
                    "activity_id": key,
                    "stream_type": stream_type,
                    "series_type": stream.get("series_type"),
                    "original_size": stream.get("original_size"),
                    "resolution": stream.get("resolution"),
                    "data": json.dumps(stream.get("data") or []),
                }
            )

        with db.atomic():
            ActivityStream.delete().where(ActivityStream.activity_id == key).execute()
            if rows:
                ActivityStream.insert_many(rows).execute()

        output.writeln(f"  => Saved {len(rows)} stream(s) for {activity_id}")

    def find(self, activity_id: ActivityId) -> dict[str, list]:
        query = ActivityStream.select().where(ActivityStream.activity_id == str(activity_id))
        return {row.stream_type: row.values for row in query}
