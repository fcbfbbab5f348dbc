"""Synchronous in-process domain event bus.

Handlers run in subscription order inside ``publish``.  Unlike a fire-and-forget
bus, a failing handler propagates: the importer must not re-save segment
efforts when the invalidation of the old ones did not happen.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from stravaimport.activity_id import ActivityId

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SegmentEffortsInvalidated:
    """Previously stored segment efforts of ``activity_id`` must be deleted."""

    activity_id: ActivityId


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[Any], None]]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Callable[[Any], None]) -> None:
        self._handlers[event_type].append(handler)
        log.debug("Subscribed %s to %s", getattr(handler, "__name__", handler), event_type.__name__)

    def publish(self, event: Any) -> None:
        handlers = self._handlers.get(type(event), [])
        if not handlers:
            log.warning("No handler subscribed for %s", type(event).__name__)
        for handler in handlers:
            handler(event)
