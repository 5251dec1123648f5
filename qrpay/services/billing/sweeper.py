"""Periodic expiry sweep for stale bills."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from qrpay.core.logging import get_logger
from qrpay.models.bill import Bill
from qrpay.models.enums import BillStatus

logger = get_logger(__name__)


def sweep_expired_bills(db: Session, now: Optional[datetime] = None) -> int:
    """Mark every ACTIVE or LOCKED bill past its expiry as EXPIRED.

    LOCKED bills go to EXPIRED, not back to ACTIVE: their single-use window
    is over and the payer needs a fresh bill.

    Returns:
        Number of bills expired by this sweep.
    """
    now = now or datetime.utcnow()
    result = db.execute(
        update(Bill)
        .where(
            Bill.status.in_((BillStatus.ACTIVE, BillStatus.LOCKED)),
            Bill.expires_at < now,
        )
        .values(status=BillStatus.EXPIRED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    logger.info("Expiry sweep: expired=%d at=%s", result.rowcount, now.isoformat())
    return result.rowcount
