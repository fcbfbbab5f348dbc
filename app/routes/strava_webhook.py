"""Strava webhook endpoint: subscription handshake and activity notifications.

Strava disables a push subscription after repeated non-2xx answers, so the
POST handler answers 200 for everything except a malformed body, including
events we ignore and imports that failed.
"""

import logging

from flask import Blueprint, jsonify, request

from stravaimport.errors import MalformedPayload, Misconfigured, WebhookError
from stravaimport.outcome import OutcomeStatus
from stravaimport.output import LoggerOutput
from stravaimport.webhook import WebhookEvent, parse_event, validate_handshake

strava_webhook_bp = Blueprint("strava_webhook", __name__)

WEBHOOK_PATH = "/webhook/strava"
ALLOWED_METHODS = "GET, POST"

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _query_param(name: str) -> str | None:
    """Read ``hub.<name>``, falling back to the ``hub_<name>`` spelling."""
    value = request.args.get(f"hub.{name}")
    if value is None:
        value = request.args.get(f"hub_{name}")
    return value


def _method_not_allowed():
    return "", 405, {"Allow": ALLOWED_METHODS}


def _get_importer():
    from stravaimport.core import build_importer

    return build_importer()


def _notify_admin(message: str, category: str = "info") -> None:
    from stravaimport.notification import create_notification

    create_notification(message, category=category)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@strava_webhook_bp.route(WEBHOOK_PATH, methods=["GET"], provide_automatic_options=False)
def webhook_verify():
    """Respond to Strava's hub challenge during subscription creation."""
    # Flask routes HEAD to GET views; only GET and POST are part of the contract.
    if request.method != "GET":
        return _method_not_allowed()

    from db_init import _init_db

    from stravaimport.appconfig import get_webhook_verify_token

    _init_db()
    try:
        body = validate_handshake(
            _query_param("mode"),
            _query_param("verify_token"),
            _query_param("challenge"),
            get_webhook_verify_token(),
        )
    except Misconfigured as e:
        _notify_admin("Strava webhook handshake refused: no verify token configured", "error")
        return jsonify({"error": str(e)}), e.status_code
    except WebhookError as e:
        return jsonify({"error": str(e)}), e.status_code

    return jsonify(body)


@strava_webhook_bp.route(WEBHOOK_PATH, methods=["POST"], provide_automatic_options=False)
def webhook_event():
    """Handle incoming Strava webhook events."""
    try:
        event = parse_event(request.get_data())
    except MalformedPayload as e:
        return jsonify({"error": str(e)}), e.status_code

    log.info("Strava webhook event: %s", event.describe())

    if not event.is_activity_create:
        log.info("Strava webhook: ignoring %s event", event.describe())
        return "OK", 200

    _handle_activity_create(event)
    return "OK", 200


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------


def _handle_activity_create(event: WebhookEvent) -> None:
    """Import the new activity, inline or on the worker; never raises."""
    from db_init import _init_db

    from stravaimport.appconfig import get_webhook_config
    from stravaimport.notification import notify_failed_import

    activity_id = event.object_id
    try:
        _init_db()
        if get_webhook_config().get("async_import"):
            from stravaimport.worker import import_activity

            import_activity.delay(activity_id.to_unprefixed_string())
            log.info("Strava webhook: queued import of %s", activity_id)
            return

        outcome = _get_importer().import_activity(activity_id, LoggerOutput())
    except Exception as e:
        log.exception("Strava webhook: error handling create event for %s", activity_id)
        _notify_admin(f"Strava webhook: error importing {activity_id}: {e}", "error")
        return

    if outcome.status == OutcomeStatus.FAILED:
        log.error("Strava webhook: %s", outcome)
        notify_failed_import(outcome)
    else:
        log.info("Strava webhook: %s", outcome)
