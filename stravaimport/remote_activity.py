"""Strava's view of an activity, as fetched for a single import."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from dateutil.parser import isoparse

from stravaimport.activity_id import ActivityId
from stravaimport.errors import StravaDecodeError


def to_plain_dict(model: Any) -> dict[str, Any]:
    """Turn a stravalib model (or anything dict-like) into JSON-safe primitives."""
    if hasattr(model, "model_dump"):
        raw = model.model_dump()
    elif hasattr(model, "dict"):
        raw = model.dict()
    else:
        raw = dict(model)
    return json.loads(json.dumps(raw, default=str))


def parse_local_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = isoparse(str(value))
        except ValueError as exc:
            raise StravaDecodeError(f"Unparseable start_date_local: {value!r}") from exc
    # Strava tags local wall-clock time with "Z"; the zone is meaningless here.
    return parsed.replace(tzinfo=None)


@dataclass
class RemoteActivity:
    """Metadata plus the child collections embedded in the detailed activity."""

    activity_id: ActivityId
    name: str | None = None
    sport_type: str | None = None
    visibility: str | None = None
    start_date_local: datetime | None = None
    distance: float | None = None
    moving_time: int | None = None
    elapsed_time: int | None = None
    total_elevation_gain: float | None = None
    photo_count: int = 0
    laps: list[dict[str, Any]] = field(default_factory=list)
    segment_efforts: list[dict[str, Any]] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteActivity:
        """Build from the detailed-activity JSON returned by ``GET /activities/{id}``."""
        if not isinstance(data, dict) or not data.get("id"):
            raise StravaDecodeError("Activity payload has no id")

        laps = data.get("laps") or []
        segment_efforts = data.get("segment_efforts") or []
        if not isinstance(laps, list) or not isinstance(segment_efforts, list):
            raise StravaDecodeError("Activity payload has malformed laps or segment_efforts")

        photos = data.get("photos") or {}
        try:
            return cls(
                activity_id=ActivityId.from_value(data["id"]),
                name=data.get("name"),
                sport_type=data.get("sport_type") or data.get("type"),
                visibility=data.get("visibility"),
                start_date_local=parse_local_datetime(data.get("start_date_local")),
                distance=float(data["distance"]) if data.get("distance") is not None else None,
                moving_time=to_seconds(data.get("moving_time")),
                elapsed_time=to_seconds(data.get("elapsed_time")),
                total_elevation_gain=(
                    float(data["total_elevation_gain"]) if data.get("total_elevation_gain") is not None else None
                ),
                photo_count=int(photos.get("count") or 0) if isinstance(photos, dict) else 0,
                laps=laps,
                segment_efforts=segment_efforts,
                raw=data,
            )
        except (TypeError, ValueError) as exc:
            raise StravaDecodeError(f"Unexpected activity payload: {exc}") from exc

    @classmethod
    def from_strava(cls, model: Any) -> RemoteActivity:
        """Build from a stravalib ``DetailedActivity``."""
        return cls.from_dict(to_plain_dict(model))


def to_seconds(value: Any) -> int | None:
    """Durations arrive as int seconds, or as "H:MM:SS" once stringified from a timedelta."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value)
    if ":" in text:
        days = 0
        if " day" in text:
            day_part, text = text.split(", ")
            days = int(day_part.split()[0])
        hours, minutes, seconds = text.split(":")
        return days * 86400 + int(hours) * 3600 + int(minutes) * 60 + int(float(seconds))
    return int(float(text))
