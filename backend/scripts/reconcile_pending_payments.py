"""
Reconcile Pending Payments Script
Asks the payment gateway for the current status of orders that are still
PENDING after a cut-off, and applies it the same way a webhook would.

Use when webhooks were missed (gateway outage, wrong notification URL).

    python scripts/reconcile_pending_payments.py --older-than-minutes 30 --limit 200
"""

import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import database
from services.errors import ServiceError
from services.order_workflow import PaymentStatus
from services.payment_service import reconcile_payment
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def find_pending_orders(older_than_minutes: int, limit: int):
    db = database.get_db()
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
    return await db.orders.find(
        {"payment_status": PaymentStatus.PENDING.value, "created_at": {"$lt": cutoff}},
        {"_id": 0, "order_id": 1}
    ).sort("created_at", 1).to_list(length=limit)


async def reconcile_all(older_than_minutes: int, limit: int) -> dict:
    results = {"checked": 0, "changed": 0, "failed": 0, "errors": []}
    for order in await find_pending_orders(older_than_minutes, limit):
        order_id = order["order_id"]
        results["checked"] += 1
        try:
            outcome = await reconcile_payment(order_id)
        except ServiceError as e:
            results["failed"] += 1
            results["errors"].append({"order_id": order_id, "error": e.message})
            continue
        if outcome["changed"]:
            results["changed"] += 1
            logger.info(f"{order_id}: now {outcome['payment_status']}")
    return results


async def main():
    parser = argparse.ArgumentParser(description="Reconcile PENDING payments against the gateway")
    parser.add_argument("--older-than-minutes", type=int, default=30)
    parser.add_argument("--limit", type=int, default=200)
    args = parser.parse_args()

    await database.connect()
    try:
        results = await reconcile_all(args.older_than_minutes, args.limit)
    finally:
        await database.close()

    logger.info("=" * 60)
    logger.info(f"Checked: {results['checked']}  Changed: {results['changed']}  Failed: {results['failed']}")
    for error in results["errors"]:
        logger.info(f"  - {error['order_id']}: {error['error']}")


if __name__ == "__main__":
    asyncio.run(main())
