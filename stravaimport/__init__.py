"""This is the init module for stravaimport"""

from .activity_id import ActivityId
from .importer import ActivityImporter
from .outcome import FailureKind, ImportOutcome, OutcomeStatus
from .webhook import WebhookEvent, parse_event, validate_handshake

__version__ = "0.1.0"
__all__ = [
    "ActivityId",
    "ActivityImporter",
    "FailureKind",
    "ImportOutcome",
    "OutcomeStatus",
    "WebhookEvent",
    "parse_event",
    "validate_handshake",
]
