"""Order ledger: append-only record of completed transactions.

``record_order`` is the single write path and is only called from the
payment orchestrator's success branch, inside its transaction.  The only
mutation after insert is ``attach_settlement``, which sets an order's
settlement reference exactly once.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from qrpay.core.errors import AlreadySettled, UnknownOrder
from qrpay.core.logging import get_logger
from qrpay.models.bill import Bill
from qrpay.models.order import Order
from qrpay.models.payment import PaymentAttempt

logger = get_logger(__name__)


def day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """Half-open datetime range covering ``start``..``end`` inclusive."""
    return (
        datetime.combine(start, time.min),
        datetime.combine(end + timedelta(days=1), time.min),
    )


class OrderLedger:
    """Reads and the two permitted writes against the ``orders`` table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Writes ───────────────────────────────────────────────────────

    def record_order(
        self,
        bill: Bill,
        attempt: PaymentAttempt,
        platform_fee: int,
        paid_at: datetime,
    ) -> Order:
        """Append the Order for a bill that just became PAID.

        Flushes but does not commit; the caller's transaction also carries
        the bill's LOCKED -> PAID transition.  The unique constraints on
        ``bill_id`` and ``processor_reference`` reject a second row.
        """
        merchant_net = bill.net_payable - platform_fee
        if bill.discount_amount + platform_fee + merchant_net != bill.gross_amount:
            raise ValueError(f"Order amounts do not add up for bill {bill.id}")
        if merchant_net < 0:
            raise ValueError(f"Platform fee exceeds net payable for bill {bill.id}")

        order = Order(
            id=uuid.uuid4(),
            bill_id=bill.id,
            merchant_id=bill.merchant_id,
            payer_id=attempt.payer_id,
            gross_amount=bill.gross_amount,
            discount_rate=bill.discount_rate,
            discount_amount=bill.discount_amount,
            platform_fee=platform_fee,
            net_paid=bill.net_payable,
            merchant_net=merchant_net,
            currency=attempt.currency,
            processor_reference=attempt.processor_reference,
            processor_payment_id=attempt.processor_payment_id,
            settlement_mode=attempt.settlement_mode,
            paid_at=paid_at,
        )
        self.db.add(order)
        self.db.flush()
        return order

    def attach_settlement(
        self,
        order_ids: list[uuid.UUID],
        settlement_id: uuid.UUID,
        now: datetime,
    ) -> int:
        """Set ``settlement_id`` on every order, each only if still unset.

        Caller owns the transaction.

        Raises:
            AlreadySettled: At least one order already carries a settlement;
                nothing should be committed in that case.
        """
        if not order_ids:
            return 0

        result = self.db.execute(
            update(Order)
            .where(Order.id.in_(order_ids), Order.settlement_id.is_(None))
            .values(settlement_id=settlement_id, settled_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(order_ids):
            logger.warning(
                "Settlement attach conflict: settlement=%s wanted=%d attached=%d",
                settlement_id,
                len(order_ids),
                result.rowcount,
            )
            raise AlreadySettled()
        return result.rowcount

    # ── Reads ────────────────────────────────────────────────────────

    def get_order(self, order_id: uuid.UUID) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if order is None:
            raise UnknownOrder()
        return order

    def get_by_processor_reference(self, reference: str) -> Optional[Order]:
        return (
            self.db.query(Order)
            .filter(Order.processor_reference == reference)
            .first()
        )

    def list_orders(
        self,
        merchant_id: Optional[uuid.UUID] = None,
        payer_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        unsettled: Optional[bool] = None,
        page: int = 1,
        limit: int = 50,
    ) -> list[Order]:
        """List orders with optional filters, newest first."""
        query = self.db.query(Order)

        if merchant_id is not None:
            query = query.filter(Order.merchant_id == merchant_id)
        if payer_id is not None:
            query = query.filter(Order.payer_id == payer_id)
        if date_from is not None:
            query = query.filter(Order.paid_at >= day_bounds(date_from, date_from)[0])
        if date_to is not None:
            query = query.filter(Order.paid_at < day_bounds(date_to, date_to)[1])
        if unsettled is True:
            query = query.filter(Order.settlement_id.is_(None))
        elif unsettled is False:
            query = query.filter(Order.settlement_id.isnot(None))

        offset = (page - 1) * limit
        return (
            query.order_by(Order.paid_at.desc()).offset(offset).limit(limit).all()
        )

    def unsettled_orders(
        self,
        merchant_id: uuid.UUID,
        period_start: date,
        period_end: date,
    ) -> list[Order]:
        """Settlement-pending orders for one merchant in a day range."""
        start, end = day_bounds(period_start, period_end)
        return (
            self.db.query(Order)
            .filter(
                Order.merchant_id == merchant_id,
                Order.settlement_id.is_(None),
                Order.paid_at >= start,
                Order.paid_at < end,
            )
            .order_by(Order.paid_at)
            .all()
        )

    def merchants_with_unsettled(
        self,
        period_start: date,
        period_end: date,
    ) -> list[uuid.UUID]:
        start, end = day_bounds(period_start, period_end)
        rows = (
            self.db.query(Order.merchant_id)
            .filter(
                Order.settlement_id.is_(None),
                Order.paid_at >= start,
                Order.paid_at < end,
            )
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    def payer_savings(self, payer_id: str) -> dict:
        """Total discount a payer has received and how many orders."""
        total_discount, total_paid, order_count = (
            self.db.query(
                func.coalesce(func.sum(Order.discount_amount), 0),
                func.coalesce(func.sum(Order.net_paid), 0),
                func.count(Order.id),
            )
            .filter(Order.payer_id == payer_id)
            .one()
        )
        return {
            "payer_id": payer_id,
            "order_count": int(order_count),
            "total_discount": int(total_discount),
            "total_paid": int(total_paid),
        }

    def merchant_stats(
        self,
        merchant_id: uuid.UUID,
        now: datetime,
        recent_limit: int = 5,
    ) -> dict:
        """Order count, revenue and discount given for today, this month and
        all time, plus the merchant's most recent orders.

        Revenue is what payers were charged (``net_paid``).  Day and month
        boundaries are UTC.
        """
        today = datetime.combine(now.date(), time.min)
        month = today.replace(day=1)
        return {
            "merchant_id": merchant_id,
            "today": self._totals(merchant_id, since=today),
            "this_month": self._totals(merchant_id, since=month),
            "all_time": self._totals(merchant_id),
            "recent_orders": self.list_orders(merchant_id=merchant_id, limit=recent_limit),
        }

    def _totals(self, merchant_id: uuid.UUID, since: Optional[datetime] = None) -> dict:
        query = self.db.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.net_paid), 0),
            func.coalesce(func.sum(Order.discount_amount), 0),
        ).filter(Order.merchant_id == merchant_id)
        if since is not None:
            query = query.filter(Order.paid_at >= since)
        order_count, revenue, discount = query.one()
        return {
            "order_count": int(order_count),
            "revenue": int(revenue),
            "discount": int(discount),
        }
