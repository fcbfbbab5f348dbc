# pylint: disable=import-outside-toplevel
"""Main entry point for the stravaimport CLI.

Operator commands around the webhook importer: schema bootstrap, manual
re-import of a single activity, and Strava push-subscription management.
"""

import argparse
import logging
import sys

from dotenv import load_dotenv

load_dotenv()


def main(argv=None):
    """Main function for the stravaimport CLI."""
    parser = argparse.ArgumentParser(description="stravaimport CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "migrate",
        help="Bootstrap / migrate the database schema (safe to run on every start)",
    )

    import_parser = subparsers.add_parser(
        "import-activity",
        help="Import (or re-import) a single Strava activity, as a create webhook would",
    )
    import_parser.add_argument("activity_id", type=str, help="Strava activity id, e.g. 123456789")

    subscribe_parser = subparsers.add_parser("webhook-subscribe", help="Create the Strava push subscription")
    subscribe_parser.add_argument(
        "--callback-url",
        required=True,
        help="Public URL of the webhook endpoint, e.g. https://example.com/webhook/strava",
    )
    subparsers.add_parser("webhook-status", help="Show the local and Strava-side push subscription")
    subparsers.add_parser("webhook-unsubscribe", help="Delete the Strava push subscription")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "migrate":
        from stravaimport.commands.migrate import run

        run()
        return 0
    elif args.command == "import-activity":
        from stravaimport.commands.import_activity import run
        from stravaimport.outcome import OutcomeStatus

        outcome = run(args.activity_id)
        return 1 if outcome.status == OutcomeStatus.FAILED else 0
    elif args.command == "webhook-subscribe":
        from stravaimport.commands.webhook import run_subscribe

        return run_subscribe(args.callback_url)
    elif args.command == "webhook-status":
        from stravaimport.commands.webhook import run_status

        return run_status()
    elif args.command == "webhook-unsubscribe":
        from stravaimport.commands.webhook import run_unsubscribe

        return run_unsubscribe()

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
