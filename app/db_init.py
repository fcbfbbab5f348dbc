"""Database initialisation for the stravaimport web app."""

import logging

log = logging.getLogger(__name__)

_db_initialized = False


def _init_db() -> bool:
    """Configure the DB and ensure all tables exist.

    Resolution order (no config file needed):
      1. DATABASE_URL env var  → PostgreSQL
      2. METADATA_DB env var   → SQLite at that path
      3. Default               → metadata.sqlite3 in cwd
    """
    global _db_initialized
    if not _db_initialized:
        try:
            from stravaimport.core import init_db

            init_db()
            _db_initialized = True
        except Exception as e:
            log.error("DB init failed: %s", e)
            return False
    return True

