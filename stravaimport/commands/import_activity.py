"""CLI command: import-activity: re-run the webhook import for one activity by hand."""

from stravaimport.core import StravaImport
from stravaimport.outcome import ImportOutcome, OutcomeStatus
from stravaimport.output import ConsoleOutput


def run(activity_id: str) -> ImportOutcome:
    with StravaImport() as si:
        outcome = si.importer.import_activity(activity_id, ConsoleOutput())

    for step in outcome.steps:
        marker = "✓" if step.ok else "✗"
        detail = f"  ({step.detail})" if step.detail else ""
        print(f"  {marker} {step.step.value}{detail}")

    if outcome.status == OutcomeStatus.FAILED:
        print(f"❌ {outcome}")
    else:
        print(f"✅ {outcome}")
    return outcome
