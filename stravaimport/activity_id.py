"""Identifier of an activity in Strava's namespace, also our local primary key."""

from __future__ import annotations

from dataclasses import dataclass

PREFIX = "activity-"


@dataclass(frozen=True)
class ActivityId:
    """Immutable activity identifier.

    ``str()`` gives the prefixed form (``activity-123``) used in logs and as the
    stored key; ``to_unprefixed_string()`` gives the bare Strava id (``123``)
    used for API calls and skip-list matching.
    """

    value: str

    def __post_init__(self) -> None:
        if not self.value or self.value.startswith(PREFIX):
            raise ValueError(f"Invalid activity id: {self.value!r}")

    @classmethod
    def from_value(cls, raw: int | str) -> ActivityId:
        """Build an ActivityId from an int, a bare string or a prefixed string."""
        if isinstance(raw, bool):
            raise ValueError(f"Invalid activity id: {raw!r}")
        text = str(raw).strip()
        if text.startswith(PREFIX):
            text = text[len(PREFIX) :]
        return cls(text)

    def to_unprefixed_string(self) -> str:
        return self.value

    def __str__(self) -> str:
        return f"{PREFIX}{self.value}"
