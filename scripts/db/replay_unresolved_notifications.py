"""
Re-run unresolved payment notifications through reconciliation.

Notifications end up ``unresolved`` when the gateway reports a payment before
the checkout record exists locally. Once the record is there, replaying them
applies the pending status change and grants the enrollment.

Usage:
    python scripts/db/replay_unresolved_notifications.py [--limit N] [--flagged-only]
"""

import argparse
import asyncio
import os
import sys

# Add the project root to the Python path
sys.path.append(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
)

from src.api.webhooks.audit import NotificationAuditor
from src.api.webhooks.reconciler import PaymentReconciler
from src.config.constants import NotificationStatus
from src.config.settings import settings
from src.database.connection import Database
from src.integrations.outbound_webhooks.dispatcher import OutboundWebhookDispatcher
from src.shared.utils import get_logger

logger = get_logger(__name__)


async def list_flagged(auditor: NotificationAuditor, limit: int) -> None:
    rows = await auditor.list_notifications(
        NotificationStatus.UNRESOLVED, flagged=True, limit=limit
    )
    if not rows:
        print("No notifications flagged for review.")
        return
    print(f"{len(rows)} notifications flagged for review:")
    for row in rows:
        print(
            f"  #{row.id} {row.gateway} payment={row.external_payment_id} "
            f"declared={row.declared_status} received={row.created_at:%Y-%m-%d %H:%M:%S}"
        )


async def replay(limit: int, flagged_only: bool) -> None:
    database = Database.from_settings(settings)
    auditor = NotificationAuditor(database, settings.UNKNOWN_PAYMENT_REVIEW_THRESHOLD)
    try:
        if flagged_only:
            await list_flagged(auditor, limit)
            return

        dispatcher = OutboundWebhookDispatcher(
            database,
            timeout=settings.OUTBOUND_WEBHOOK_TIMEOUT,
            user_agent=settings.OUTBOUND_WEBHOOK_USER_AGENT,
        )
        summary = await auditor.replay_unresolved(
            PaymentReconciler(database), limit=limit, dispatcher=dispatcher
        )
        print("=" * 60)
        print(f"Total:            {summary.total}")
        print(f"Processed:        {summary.processed}")
        print(f"Events sent:      {summary.events_dispatched}")
        print(f"Still unresolved: {summary.still_unresolved}")
        print(f"Failed:           {summary.failed}")
        print("=" * 60)
    finally:
        await database.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Replay unresolved payment notifications.")
    parser.add_argument("--limit", type=int, default=100, help="Maximum notifications to replay")
    parser.add_argument(
        "--flagged-only",
        action="store_true",
        help="Only list notifications flagged for manual review, without replaying",
    )
    args = parser.parse_args()

    asyncio.run(replay(limit=args.limit, flagged_only=args.flagged_only))
