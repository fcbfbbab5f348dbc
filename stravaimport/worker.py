"""Celery worker for webhook-triggered imports.

Used when ``webhook.async_import`` is enabled so the web process can answer
Strava immediately and leave the import to a worker.

Start the worker:
    celery -A stravaimport.worker worker --loglevel=info --concurrency=1

With more than one worker process, set ``import.lock_redis_url`` (or
``LOCK_REDIS_URL``) so imports of the same activity are serialised across
processes, not only within one.
"""

import logging
import os

from celery import Celery

BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

log = logging.getLogger(__name__)

celery_app = Celery("stravaimport", broker=BROKER_URL, backend=RESULT_BACKEND)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Keep task results for 24 hours for inspection
    result_expires=86400,
    # Emit task events so Flower can display task history and details
    worker_send_task_events=True,
    task_send_sent_event=True,
    task_track_started=True,
)


@celery_app.task(name="stravaimport.worker.import_activity")
def import_activity(activity_id: str) -> dict:
    """Import one activity and return the outcome summary.

    Failures are reported through the returned summary and an operator
    notification; the task itself does not retry.
    """
    from stravaimport.core import StravaImport
    from stravaimport.notification import notify_failed_import
    from stravaimport.output import LoggerOutput

    with StravaImport() as si:
        outcome = si.importer.import_activity(activity_id, LoggerOutput())
        log.info("%s", outcome)
        notify_failed_import(outcome)
    return outcome.to_dict()
