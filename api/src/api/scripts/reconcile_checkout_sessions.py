"""Complete pending checkout sessions that Stripe reports as paid."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from typing import Any

from kliqt.config import get_settings
from kliqt.database import close_engine, get_session_factory

from api.services.checkout_reconciliation import run_checkout_reconciliation
from api.services.stripe_service import PaymentGateway


async def reconcile_pending_sessions(
    *,
    older_than_minutes: int,
    lookback_hours: int,
    limit: int,
    dry_run: bool,
) -> dict[str, Any]:
    gateway = PaymentGateway.from_settings(get_settings())
    factory = get_session_factory()
    try:
        async with factory() as db:
            summary = await run_checkout_reconciliation(
                db,
                gateway,
                older_than=timedelta(minutes=older_than_minutes),
                lookback=timedelta(hours=lookback_hours),
                limit=limit,
                trigger="cli",
            )
            if dry_run:
                await db.rollback()
            else:
                await db.commit()
    finally:
        await close_engine()
    return summary


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reconcile pending checkout sessions with Stripe.")
    parser.add_argument(
        "--older-than-minutes",
        type=int,
        default=30,
        help="Only check sessions opened at least this long ago (default: 30).",
    )
    parser.add_argument(
        "--lookback-hours",
        type=int,
        default=48,
        help="Skip sessions opened more than this long ago; Stripe has expired them (default: 48).",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=200,
        help="Maximum sessions to check in one run (default: 200).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Query Stripe without committing database writes.",
    )
    return parser


def main() -> None:
    args = _parser().parse_args()
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        stream=sys.stdout,
    )
    summary = asyncio.run(
        reconcile_pending_sessions(
            older_than_minutes=max(args.older_than_minutes, 0),
            lookback_hours=max(args.lookback_hours, 1),
            limit=max(args.limit, 1),
            dry_run=bool(args.dry_run),
        )
    )
    print(
        "checkout-reconcile:",
        f"status={summary['status']}",
        f"scanned={summary.get('scanned', 0)}",
        f"completed={summary.get('completed', 0)}",
        f"still_open={summary.get('still_open', 0)}",
        f"expired={summary.get('expired', 0)}",
        f"failures={summary.get('failures', 0)}",
        "(dry-run)" if args.dry_run else "",
    )


if __name__ == "__main__":
    main()
