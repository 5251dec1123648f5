#!/usr/bin/env python3
"""
Periodic maintenance for the QR Pay core.

Runs:
  - the expiry sweep (ACTIVE/LOCKED bills past their window -> EXPIRED)
  - optionally, a settlement run for every merchant with unsettled orders
    in a period (--settle-from / --settle-to, inclusive dates)

Meant for cron; uses the same DATABASE_URL as the API.

    python scripts/run_maintenance.py
    python scripts/run_maintenance.py --settle-from 2024-03-01 --settle-to 2024-03-07
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from qrpay.core.config import settings  # noqa: E402
from qrpay.core.database import Base, SessionLocal, engine  # noqa: E402
from qrpay.core.logging import setup_logging  # noqa: E402
from qrpay.services.billing.sweeper import sweep_expired_bills  # noqa: E402
from qrpay.services.settlement.batch import run_settlements  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--settle-from", type=date.fromisoformat, default=None)
    parser.add_argument("--settle-to", type=date.fromisoformat, default=None)
    args = parser.parse_args(argv)
    if (args.settle_from is None) != (args.settle_to is None):
        parser.error("--settle-from and --settle-to must be given together")
    if args.settle_from and args.settle_to < args.settle_from:
        parser.error("--settle-to is before --settle-from")
    return args


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)

    print("=" * 70)
    print("QR Pay - Maintenance")
    print("=" * 70)

    db = SessionLocal()
    try:
        print("\n[1/2] Sweeping expired bills...")
        expired = sweep_expired_bills(db)
        print(f"  -> {expired} bills marked EXPIRED")

        if args.settle_from is None:
            print("\n[2/2] Settlement run skipped (no period given)")
        else:
            print(
                f"\n[2/2] Settling {args.settle_from} .. {args.settle_to}..."
            )
            settlement_ids, skipped = run_settlements(
                db, args.settle_from, args.settle_to
            )
            print(f"  -> {len(settlement_ids)} settlements created")
            for merchant_id in skipped:
                print(f"     skipped merchant {merchant_id} (concurrent run)")
    finally:
        db.close()

    print("\nDone!")


if __name__ == "__main__":
    main()
