import os

import pytest

from stravaimport.database import get_all_models, migrate_tables
from stravaimport.db import configure_db, get_db


@pytest.fixture(scope="session", autouse=True)
def test_db():
    import stravaimport.db as sdb

    test_db_path = "test.sqlite3"
    # App tests may have pointed the proxy at their own temp DB.
    sdb._configured = False
    configure_db(test_db_path)
    db = get_db()
    # Rebind all models to the test DB
    for model in get_all_models():
        model._meta.set_database(db)
    db.connect(reuse_if_open=True)
    migrate_tables(get_all_models())
    yield
    db.close()
    if os.path.exists(test_db_path):
        os.remove(test_db_path)


@pytest.fixture
def clean_tables():
    """Empty every table before the test; the session DB is shared."""
    for model in get_all_models():
        model.delete().execute()
    yield


@pytest.fixture(autouse=True)
def no_config_file(monkeypatch):
    """Keep a real stravaimport_config.json in the cwd out of the tests."""
    import stravaimport.appconfig as scfg

    monkeypatch.setattr(scfg, "_FILE_PATHS", [])
    for var in (
        "STRAVA_WEBHOOK_VERIFY_TOKEN",
        "STRAVA_CLIENT_ID",
        "STRAVA_CLIENT_SECRET",
        "DATABASE_URL",
        "LOCK_REDIS_URL",
    ):
        monkeypatch.delenv(var, raising=False)
