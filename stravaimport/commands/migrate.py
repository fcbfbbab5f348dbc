"""Database migration/bootstrap command.

Ensures all tables exist for the configured backend (SQLite or PostgreSQL).
Idempotent, so it is safe to run on every container start.  On Postgres the
connection is retried for up to ~60 s in case the database container is still
starting.
"""

import os
import time

from stravaimport.core import StravaImport

_MAX_RETRIES = 12
_RETRY_DELAY = 5  # seconds


def run():
    """Bootstrap / migrate the database schema."""
    database_url = os.environ.get("DATABASE_URL", "")
    backend = "PostgreSQL" if database_url else "SQLite"
    print(f"🗄️  Running database migrations ({backend})...")

    for attempt in range(1, _MAX_RETRIES + 1):
        try:
            with StravaImport():
                print("✅ Migrations complete.")
                return
        except Exception as e:
            if attempt < _MAX_RETRIES and database_url:
                print(f"⏳ Database not ready (attempt {attempt}/{_MAX_RETRIES}): {e}")
                time.sleep(_RETRY_DELAY)
            else:
                print(f"❌ Migration failed: {e}")
                raise
