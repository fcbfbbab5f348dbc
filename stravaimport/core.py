"""Wiring: database bootstrap and construction of a ready-to-use ActivityImporter."""

from typing import Any

from .activity import ActivityStore
from .appconfig import get_db_path_from_env, get_lock_redis_url, get_strava_config, load_config
from .database import get_all_models, migrate_tables
from .db import configure_db, get_db
from .events import EventBus
from .filters import ImportFilterChain
from .importer import DEFAULT_LOCK_TIMEOUT, ActivityImporter
from .interfaces import ExternalActivitySource
from .lap import LapStore
from .locks import RedisKeyedLock
from .photo import PhotoStore
from .providers.strava import StravaActivitySource
from .segment_effort import SegmentEffortStore
from .stream import StreamStore


def init_db(db_path: str | None = None):
    """Configure the database, connect, and make sure every table exists."""
    configure_db(db_path or get_db_path_from_env())
    db = get_db()
    db.connect(reuse_if_open=True)
    migrate_tables(get_all_models())
    return db


def build_importer(
    config: dict[str, Any] | None = None,
    source: ExternalActivitySource | None = None,
) -> ActivityImporter:
    """Assemble an ActivityImporter from configuration.

    Args:
        config: Full config dict (``strava``/``webhook``/``import`` sections).
                Loaded from the config store when omitted.
        source: Activity source to use instead of the stravalib-backed one.
    """
    if config is None:
        config = load_config()
        config["strava"] = get_strava_config()

    import_cfg = config.get("import", {})
    timeout = float(import_cfg.get("request_timeout") or 30)
    lock_timeout = import_cfg.get("lock_timeout", DEFAULT_LOCK_TIMEOUT)

    if source is None:
        source = StravaActivitySource.from_config(dict(config.get("strava", {})), timeout=timeout)

    redis_url = get_lock_redis_url(import_cfg)
    locks = RedisKeyedLock.from_url(redis_url) if redis_url else None

    bus = EventBus()
    segment_effort_store = SegmentEffortStore()
    segment_effort_store.subscribe(bus)

    return ActivityImporter(
        source=source,
        activity_store=ActivityStore(),
        stream_store=StreamStore(),
        lap_store=LapStore(),
        segment_effort_store=segment_effort_store,
        photo_store=PhotoStore(import_cfg.get("media_root") or "media", timeout=timeout),
        event_bus=bus,
        filters=ImportFilterChain.from_config(import_cfg),
        locks=locks,
        lock_timeout=float(lock_timeout) if lock_timeout is not None else None,
    )


class StravaImport:
    """Context manager giving CLI commands and workers a configured DB and importer."""

    def __init__(self, db_path: str | None = None):
        init_db(db_path)
        self.config = load_config()
        self.config["strava"] = get_strava_config()
        self._importer: ActivityImporter | None = None

    @property
    def importer(self) -> ActivityImporter:
        if self._importer is None:
            self._importer = build_importer(self.config)
        return self._importer

    def cleanup(self):
        """Close the database connection if one is open."""
        try:
            db = get_db()
            if not db.is_closed():
                db.close()
        except RuntimeError:
            # Database not configured, nothing to clean up
            pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.cleanup()
