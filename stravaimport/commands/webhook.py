"""CLI commands managing the Strava push subscription."""

from tabulate import tabulate

from stravaimport.core import init_db
from stravaimport.subscription import SubscriptionError, subscribe, subscription_status, unsubscribe


def run_subscribe(callback_url: str) -> int:
    init_db()
    try:
        sub_id = subscribe(callback_url)
    except SubscriptionError as e:
        print(f"❌ Could not create subscription: {e}")
        return 1
    print(f"✅ Subscribed: id={sub_id} callback={callback_url}")
    return 0


def run_status() -> int:
    init_db()
    status = subscription_status()
    print(f"Local subscription id: {status['subscription_id'] or '-'}")

    if status["error"]:
        print(f"⚠️  Could not query Strava: {status['error']}")
        return 1

    rows = [
        [sub.get("id"), sub.get("callback_url"), sub.get("created_at") or "-", sub.get("updated_at") or "-"]
        for sub in status["strava_subscriptions"]
    ]
    if rows:
        print(tabulate(rows, headers=["ID", "Callback URL", "Created", "Updated"], tablefmt="simple"))
    else:
        print("No subscription registered at Strava.")

    from stravaimport.notification import unread_notifications

    errors = [n for n in unread_notifications() if n.category == "error"]
    if errors:
        print(f"\n{len(errors)} unread import error(s):")
        for n in errors[:10]:
            print(f"  - {n.message}")
    return 0


def run_unsubscribe() -> int:
    init_db()
    try:
        unsubscribe()
    except SubscriptionError as e:
        print(f"❌ Could not delete subscription: {e}")
        return 1
    print("✅ Unsubscribed.")
    return 0
