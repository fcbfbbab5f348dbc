from peewee import Model

from .activity import Activity
from .appconfig import AppConfig
from .db import get_db
from .lap import ActivityLap
from .notification import Notification
from .photo import ActivityPhoto
from .segment_effort import SegmentEffort
from .stream import ActivityStream


def migrate_tables(models: list[type[Model]]) -> None:
    db = get_db()
    db.connect(reuse_if_open=True)
    db.create_tables(models, safe=True)


def get_all_models() -> list[type[Model]]:
    return [
        AppConfig,
        Activity,
        ActivityStream,
        ActivityLap,
        SegmentEffort,
        ActivityPhoto,
        Notification,
    ]
