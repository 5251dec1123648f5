"""Conditional bill status writes.

A transition is an UPDATE guarded by the expected prior status, so of two
concurrent attempts on the same bill only one sees ``rowcount == 1``.  No
in-process locks are involved; the guarantee holds across processes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Union

from sqlalchemy import update
from sqlalchemy.orm import Session

from qrpay.core.logging import get_logger
from qrpay.models.bill import Bill
from qrpay.models.enums import BillStatus, ensure_transition

logger = get_logger(__name__)


def compare_and_set_status(
    db: Session,
    bill: Bill,
    expected: Union[BillStatus, Iterable[BillStatus]],
    target: BillStatus,
    now: datetime,
    **values,
) -> bool:
    """Move ``bill`` to ``target`` only if its stored status is ``expected``.

    The caller owns the transaction (commit / rollback).  On success the
    in-session ``bill`` is refreshed from the row.

    Returns:
        True if this call performed the transition, False if another writer
        got there first (or the bill was never in an expected status).
    """
    if isinstance(expected, BillStatus):
        expected = (expected,)
    expected = tuple(expected)
    for prior in expected:
        ensure_transition(prior, target)

    result = db.execute(
        update(Bill)
        .where(Bill.id == bill.id, Bill.status.in_(expected))
        .values(status=target, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info(
            "Bill transition lost: bill=%s expected=%s target=%s",
            bill.id,
            [s.value for s in expected],
            target.value,
        )
        return False

    db.refresh(bill)
    return True


def expire_bill(db: Session, bill: Bill, now: datetime) -> bool:
    """Mark a live (ACTIVE or LOCKED) bill EXPIRED.  Caller commits."""
    return compare_and_set_status(
        db,
        bill,
        (BillStatus.ACTIVE, BillStatus.LOCKED),
        BillStatus.EXPIRED,
        now,
    )


def release_lock(db: Session, bill: Bill, now: datetime) -> BillStatus:
    """Return a LOCKED bill to ACTIVE so the payer can retry.

    A bill whose window has already closed goes to EXPIRED instead.
    Caller commits.  Returns the status the bill ends up in.
    """
    if bill.is_expired(now):
        expire_bill(db, bill, now)
    else:
        compare_and_set_status(
            db,
            bill,
            BillStatus.LOCKED,
            BillStatus.ACTIVE,
            now,
            locked_by=None,
            locked_at=None,
            processor_reference=None,
        )
    db.refresh(bill)
    return bill.status
