"""Application configuration model and helpers.

The DB (``appconfig`` table) is always the source of truth.

On every ``load_config()`` call the file is checked:
  - If a JSON config file exists *and* its contents differ from the DB,
    the DB is updated to match the file.
  - If the DB is empty and no file exists, built-in defaults are seeded.

Secrets and deployment settings can also come from the environment, which always wins:
``STRAVA_WEBHOOK_VERIFY_TOKEN``, ``STRAVA_CLIENT_ID``, ``STRAVA_CLIENT_SECRET``
and ``LOCK_REDIS_URL``.
"""

import copy
import json
import logging
import os
import secrets
from pathlib import Path
from typing import Any

from peewee import CharField, Model, TextField

from .db import db

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: dict[str, Any] = {
    "strava": {
        "client_id": "",
        "client_secret": "",
        "access_token": "",
        "refresh_token": "",
        "token_expires": "0",
    },
    "webhook": {
        "verify_token": "",
        "subscription_id": None,
        "async_import": False,
    },
    "import": {
        "visibilities_to_import": [],  # empty = every visibility
        "activities_to_skip": [],
        "skip_activities_recorded_before": None,  # ISO date, e.g. "2020-01-01"
        "media_root": "media",
        "request_timeout": 30,  # seconds, per Strava / photo request
        "lock_timeout": 300,  # seconds to wait for a concurrent import of the same activity
        "lock_redis_url": None,  # share the per-activity lock across processes, e.g. "redis://localhost:6379/2"
    },
}

# Candidate JSON config file locations (searched in order)
_FILE_PATHS: list[Path] = [
    Path("stravaimport_config.json"),
    Path("../stravaimport_config.json"),
]


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class AppConfig(Model):
    """Key-value store for application configuration.

    Each top-level key from the config dict (``strava``, ``webhook``,
    ``import``) is stored as one row with the value JSON-encoded.
    """

    key = CharField(max_length=128, unique=True)
    value = TextField()  # JSON-encoded value

    class Meta:
        database = db
        table_name = "appconfig"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_from_db() -> dict[str, Any] | None:
    """Return config dict from DB rows, or ``None`` if the table is empty."""
    try:
        rows = list(AppConfig.select())
        if not rows:
            return None
        return {r.key: json.loads(r.value) for r in rows}
    except Exception as e:
        log.warning("Could not read config from DB: %s", e)
        return None


def _load_from_file() -> dict[str, Any] | None:
    """Try each candidate path; return parsed JSON or ``None``."""
    for path in _FILE_PATHS:
        if path.exists():
            try:
                with open(path) as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                log.warning("Ignoring unreadable config file %s: %s", path, e)
    return None


def _with_defaults(config: dict[str, Any]) -> dict[str, Any]:
    """Fill sections/keys missing from *config* with built-in defaults."""
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for key, value in config.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config() -> dict[str, Any]:
    """Return the current configuration, always using the DB as source of truth.

    On every call:
      1. If a JSON config file exists and its top-level keys differ from what
         is stored in the DB, the DB is updated to match the file.
      2. If the DB is empty (first boot, no file), built-in defaults are seeded.
      3. The DB contents are returned, with defaults filled in.

    If the DB is not yet configured (early startup edge-case) the function
    falls back to the JSON file or built-in defaults without persisting.
    """
    try:
        from .db import get_db

        get_db()  # raises RuntimeError if not yet configured
    except RuntimeError:
        # DB not available, best-effort fallback, nothing persisted
        return _with_defaults(_load_from_file() or {})

    file_cfg = _load_from_file()
    db_cfg = _load_from_db()

    if db_cfg is None:
        # First boot: seed from file or defaults
        source = file_cfg if file_cfg is not None else copy.deepcopy(DEFAULT_CONFIG)
        save_config(source)
        return _with_defaults(source)

    if file_cfg is not None and file_cfg != db_cfg:
        # Key-level merge so keys only present in the DB are kept.
        merged = {**db_cfg, **file_cfg}
        save_config(merged)
        return _with_defaults(merged)

    return _with_defaults(db_cfg)


def save_config(config: dict[str, Any]) -> None:
    """Persist every top-level key of *config* to the DB as JSON values.

    Uses upsert semantics so it is safe to call repeatedly.
    """
    try:
        for key, value in config.items():
            (
                AppConfig.insert(key=key, value=json.dumps(value))
                .on_conflict(
                    conflict_target=[AppConfig.key],
                    update={AppConfig.value: json.dumps(value)},
                )
                .execute()
            )
    except Exception as e:
        log.warning("Could not save config to DB: %s", e)


def _update_section(section: str, **values: Any) -> None:
    config = load_config()
    updated = config.get(section, {}).copy()
    updated.update(values)
    save_config({section: updated})


# ---------------------------------------------------------------------------
# Strava credentials
# ---------------------------------------------------------------------------


def get_strava_config() -> dict[str, Any]:
    """Return the ``strava`` section with env-var credentials applied on top."""
    strava_cfg = dict(load_config().get("strava", {}))
    for env_var, key in (("STRAVA_CLIENT_ID", "client_id"), ("STRAVA_CLIENT_SECRET", "client_secret")):
        value = os.environ.get(env_var, "").strip()
        if value:
            strava_cfg[key] = value
    return strava_cfg


def save_strava_tokens(token_dict: dict[str, Any]) -> None:
    """Persist Strava OAuth tokens returned by stravalib into the config store.

    Args:
        token_dict: Dict with keys ``access_token``, ``refresh_token``,
                    ``expires_at`` as returned by
                    ``stravalib.Client.refresh_access_token()``.
    """
    _update_section(
        "strava",
        access_token=str(token_dict["access_token"]),
        refresh_token=str(token_dict.get("refresh_token", "")),
        token_expires=str(token_dict.get("expires_at", "0")),
    )


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


def get_webhook_config() -> dict[str, Any]:
    return dict(load_config().get("webhook", {}))


def get_webhook_verify_token() -> str:
    """Return the configured verify token; the environment overrides the DB."""
    env_token = os.environ.get("STRAVA_WEBHOOK_VERIFY_TOKEN", "").strip()
    if env_token:
        return env_token
    return str(get_webhook_config().get("verify_token") or "")


def get_or_create_webhook_verify_token() -> str:
    """Return the webhook verify_token, generating and saving one if absent."""
    token = get_webhook_verify_token()
    if not token:
        token = secrets.token_urlsafe(32)
        _update_section("webhook", verify_token=token)
    return token


def save_webhook_subscription_id(sub_id: int | None) -> None:
    """Save (or clear) the Strava webhook subscription ID."""
    _update_section("webhook", subscription_id=sub_id)


# ---------------------------------------------------------------------------
# Import settings
# ---------------------------------------------------------------------------


def get_import_config() -> dict[str, Any]:
    return dict(load_config().get("import", {}))


def get_db_path_from_env() -> str:
    """Return the SQLite path to use when no DATABASE_URL is set.

    Checks the ``METADATA_DB`` environment variable first, then falls back
    to ``metadata.sqlite3`` in the current working directory.
    """
    return os.environ.get("METADATA_DB", "metadata.sqlite3")


def get_lock_redis_url(import_cfg: dict[str, Any] | None = None) -> str | None:
    """Redis URL for the cross-process import lock, or ``None`` for the in-process one."""
    env_url = os.environ.get("LOCK_REDIS_URL", "").strip()
    if env_url:
        return env_url
    if import_cfg is None:
        import_cfg = get_import_config()
    return import_cfg.get("lock_redis_url") or None
