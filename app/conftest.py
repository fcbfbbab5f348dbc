"""Root conftest for the app test suite.

Makes the app directory importable the way gunicorn runs it (``main:app``)
and keeps tests away from any real Sentry project.
"""

import os
import sys

sys.path.insert(0, os.path.dirname(__file__))

os.environ.pop("SENTRY_DSN", None)
