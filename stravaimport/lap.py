"""Laps embedded in the detailed activity payload."""

import json
from typing import Any

from peewee import CharField, FloatField, IntegerField, Model, TextField

from stravaimport.activity_id import ActivityId
from stravaimport.db import db
from stravaimport.remote_activity import to_seconds


class ActivityLap(Model):
    lap_id = CharField(max_length=64, primary_key=True)
    activity_id = CharField(max_length=64, index=True)
    lap_index = IntegerField()
    name = CharField(max_length=255, null=True)
    distance = FloatField(null=True)  # metres
    moving_time = IntegerField(null=True)  # seconds
    elapsed_time = IntegerField(null=True)  # seconds
    average_speed = FloatField(null=True)
    max_speed = FloatField(null=True)
    average_heartrate = FloatField(null=True)
    total_elevation_gain = FloatField(null=True)
    raw_data = TextField(null=True)

    class Meta:
        database = db
        table_name = "activity_lap"


def _number(value: Any) -> float | None:
    return float(value) if value is not None and value != "" else None


class LapStore:
    """Replaces the laps of an activity."""

    def save(self, activity_id: ActivityId, laps: list[dict[str, Any]], output) -> None:
        key = str(activity_id)
        rows = []
        for position, lap in enumerate(laps or [], start=1):
            lap_index = int(lap.get("lap_index") or position)
            rows.append(
                {
                    "lap_id": str(lap.get("id") or f"{key}-{lap_index}"),
                    "activity_id": key,
                    "lap_index": lap_index,
                    "name": lap.get("name"),
                    "distance": _number(lap.get("distance")),
                    "moving_time": to_seconds(lap.get("moving_time")),
                    "elapsed_time": to_seconds(lap.get("elapsed_time")),
                    "average_speed": _number(lap.get("average_speed")),
                    "max_speed": _number(lap.get("max_speed")),
                    "average_heartrate": _number(lap.get("average_heartrate")),
                    "total_elevation_gain": _number(lap.get("total_elevation_gain")),
                    "raw_data": json.dumps(lap, default=str),
                }
            )

        with db.atomic():
            ActivityLap.delete().where(ActivityLap.activity_id == key).execute()
            if rows:
                ActivityLap.insert_many(rows).execute()

        output.writeln(f"  => Saved {len(rows)} lap(s) for {activity_id}")
