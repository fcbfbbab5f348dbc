"""Segment efforts embedded in the detailed activity payload.

Re-importing an activity publishes ``SegmentEffortsInvalidated`` first; this
store deletes the old efforts in response, so ``save`` only ever inserts.
"""

import json
import logging
from typing import Any

from peewee import CharField, DateTimeField, FloatField, IntegerField, Model, TextField

from stravaimport.activity_id import ActivityId
from stravaimport.db import db
from stravaimport.events import EventBus, SegmentEffortsInvalidated
from stravaimport.remote_activity import parse_local_datetime, to_seconds

log = logging.getLogger(__name__)


class SegmentEffort(Model):
    segment_effort_id = CharField(max_length=64, primary_key=True)
    activity_id = CharField(max_length=64, index=True)
    segment_id = CharField(max_length=64, index=True, null=True)
    segment_name = CharField(max_length=255, null=True)
    name = CharField(max_length=255, null=True)
    start_date_local = DateTimeField(null=True)
    distance = FloatField(null=True)  # metres
    elapsed_time = IntegerField(null=True)  # seconds
    moving_time = IntegerField(null=True)  # seconds
    average_watts = FloatField(null=True)
    average_heartrate = FloatField(null=True)
    pr_rank = IntegerField(null=True)
    kom_rank = IntegerField(null=True)
    raw_data = TextField(null=True)

    class Meta:
        database = db
        table_name = "segment_effort"


def _effort_row(key: str, effort: dict[str, Any]) -> dict[str, Any]:
    segment = effort.get("segment") or {}
    return {
        "segment_effort_id": str(effort["id"]),
        "activity_id": key,
        "segment_id": str(segment["id"]) if segment.get("id") else None,
        "segment_name": segment.get("name"),
        "name": effort.get("name"),
        "start_date_local": parse_local_datetime(effort.get("start_date_local")),
        "distance": effort.get("distance"),
        "elapsed_time": to_seconds(effort.get("elapsed_time")),
        "moving_time": to_seconds(effort.get("moving_time")),
        "average_watts": effort.get("average_watts"),
        "average_heartrate": effort.get("average_heartrate"),
        "pr_rank": effort.get("pr_rank"),
        "kom_rank": effort.get("kom_rank"),
        "raw_data": json.dumps(effort, default=str),
    }


class SegmentEffortStore:
    def save(self, activity_id: ActivityId, efforts: list[dict[str, Any]], output) -> None:
        key = str(activity_id)
        rows = [_effort_row(key, effort) for effort in efforts or [] if effort.get("id")]
        if rows:
            with db.atomic():
                SegmentEffort.insert_many(rows).execute()
        output.writeln(f"  => Saved {len(rows)} segment effort(s) for {activity_id}")

    def delete_for_activity(self, activity_id: ActivityId) -> int:
        deleted = SegmentEffort.delete().where(SegmentEffort.activity_id == str(activity_id)).execute()
        log.info("Deleted %d segment effort(s) for %s", deleted, activity_id)
        return deleted

    def on_segment_efforts_invalidated(self, event: SegmentEffortsInvalidated) -> None:
        self.delete_for_activity(event.activity_id)

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(SegmentEffortsInvalidated, self.on_segment_efforts_invalidated)

    def count_for_activity(self, activity_id: ActivityId) -> int:
        return SegmentEffort.select().where(SegmentEffort.activity_id == str(activity_id)).count()
