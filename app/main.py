"""stravaimport web application: entry point and blueprint registration.

Run with ``gunicorn main:app`` (or ``python main.py`` for development) from
this directory.
"""

import logging
import os

# ---------------------------------------------------------------------------
# Sentry: initialise before anything else so all errors are captured
# ---------------------------------------------------------------------------
if _sentry_dsn := os.environ.get("SENTRY_DSN"):
    import sentry_sdk

    def _traces_sampler(sampling_context: dict) -> float:
        if sampling_context.get("wsgi_environ", {}).get("PATH_INFO") == "/health":
            return 0.0
        return 1.0

    sentry_sdk.init(
        dsn=_sentry_dsn,
        environment=os.getenv("SENTRY_ENV", "production"),
        traces_sampler=_traces_sampler,
        enable_logs=True,
    )

from flask import Flask, request

_access_log = logging.getLogger("stravaimport.access")


def _configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    # Avoid duplicate handlers when the module is reloaded in tests.
    if not any(isinstance(h, logging.StreamHandler) and hasattr(h, "stream") for h in root.handlers):
        root.addHandler(handler)
    root.setLevel(logging.INFO)


_configure_logging()


# ---------------------------------------------------------------------------
# Flask app
# ---------------------------------------------------------------------------

app = Flask(__name__)


@app.after_request
def _log_request(response):
    if request.endpoint != "api.health":
        _access_log.info("%s %s %s", request.method, request.path, response.status_code)
    return response


# ---------------------------------------------------------------------------
# Blueprint registration
# ---------------------------------------------------------------------------

from routes.api import api_bp
from routes.strava_webhook import strava_webhook_bp

app.register_blueprint(api_bp)
app.register_blueprint(strava_webhook_bp)

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    from dotenv import load_dotenv

    load_dotenv()

    print("Starting stravaimport web app...")
    print("Server starting at: http://localhost:5000")
    print("  Webhook:  http://localhost:5000/webhook/strava")
    print("  Health:   http://localhost:5000/health")
    print("\nPress Ctrl+C to stop")

    try:
        app.run(debug=os.environ.get("FLASK_DEBUG") == "1", host="0.0.0.0", port=5000, threaded=True)
    except Exception as e:
        print(f"Server failed to start: {e}")
        exit(1)
