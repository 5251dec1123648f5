"""Settlement engine: turns ledger rows into merchant payout statements.

A computation:
  1. Locks the merchant row (one settlement writer per merchant at a time).
  2. Resolves the merchant's payout mode, applying the direct-payout fallback.
  3. Selects the merchant's unsettled orders in the period.
  4. Writes a PENDING settlement.  Each order counts by the mode it was
     paid under: platform-collected orders are payable, split orders are
     reported as already paid out.
  5. Attaches the settlement to each order, each only if still unset.
All of it commits or none of it does.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from qrpay.core.config import Settings
from qrpay.core.errors import AlreadyPaid, AlreadySettled, UnknownMerchant, UnknownSettlement
from qrpay.core.logging import get_logger
from qrpay.models.enums import SettlementMode, SettlementStatus, ensure_transition
from qrpay.models.merchant import Merchant
from qrpay.models.settlement import Settlement
from qrpay.services.ledger.ledger import OrderLedger
from qrpay.services.settlement.payout import resolve_payout_method

logger = get_logger(__name__)


class SettlementEngine:
    """Computes and closes merchant settlements."""

    def __init__(self, db: Session, config: Settings) -> None:
        self.db = db
        self.config = config
        self.ledger = OrderLedger(db)

    # ── Public API ───────────────────────────────────────────────────

    def compute_settlement(
        self,
        merchant_id: uuid.UUID,
        period_start: date,
        period_end: date,
        now: Optional[datetime] = None,
    ) -> Settlement:
        """Settle every unsettled order of ``merchant_id`` paid in the period.

        Args:
            merchant_id: Merchant to settle.
            period_start: First day of the period (inclusive).
            period_end: Last day of the period (inclusive).

        Returns:
            The persisted PENDING ``Settlement``.

        Raises:
            ValueError: ``period_end`` is before ``period_start``.
            UnknownMerchant: No such merchant.
            AlreadySettled: A concurrent run claimed one of the orders; this
                run is rolled back entirely.
        """
        if period_end < period_start:
            raise ValueError("period_end must not be before period_start")
        now = now or datetime.utcnow()

        merchant = (
            self.db.query(Merchant)
            .filter(Merchant.id == merchant_id)
            .with_for_update()
            .first()
        )
        if merchant is None:
            self.db.rollback()
            raise UnknownMerchant()

        merchant_mode, fallback_applied = resolve_payout_method(merchant, now)
        orders = self.ledger.unsettled_orders(merchant_id, period_start, period_end)

        # Orders paid under a split already sent merchant_net to the merchant.
        collected = [o for o in orders if o.settlement_mode == SettlementMode.PLATFORM_MANAGED]
        split = [o for o in orders if o.settlement_mode == SettlementMode.DIRECT]
        payout_method = SettlementMode.PLATFORM_MANAGED
        if merchant_mode == SettlementMode.DIRECT and not collected:
            payout_method = SettlementMode.DIRECT

        settlement = Settlement(
            id=uuid.uuid4(),
            merchant_id=merchant_id,
            period_start=period_start,
            period_end=period_end,
            order_count=len(orders),
            gross_total=sum(o.gross_amount for o in orders),
            fee_total=sum(o.platform_fee for o in orders),
            payable_total=sum(o.net_paid - o.platform_fee for o in collected),
            direct_paid_total=sum(o.merchant_net for o in split),
            payout_method=payout_method,
            fallback_applied=fallback_applied,
            status=SettlementStatus.PENDING,
        )
        self.db.add(settlement)
        self.db.flush()

        try:
            self.ledger.attach_settlement([o.id for o in orders], settlement.id, now)
        except AlreadySettled:
            self.db.rollback()
            raise

        self.db.commit()
        self.db.refresh(settlement)

        logger.info(
            "Settlement computed: id=%s merchant=%s period=%s..%s orders=%d "
            "payable=%d direct_paid=%d method=%s fallback=%s",
            settlement.id,
            merchant_id,
            period_start,
            period_end,
            settlement.order_count,
            settlement.payable_total,
            settlement.direct_paid_total,
            payout_method.value,
            fallback_applied,
        )
        return settlement

    def mark_paid(
        self,
        settlement_id: uuid.UUID,
        payout_reference: str,
        now: Optional[datetime] = None,
    ) -> Settlement:
        """Record the payout reference and move PENDING -> PAID.

        Raises:
            UnknownSettlement: No such settlement.
            AlreadyPaid: The settlement is already PAID.
        """
        now = now or datetime.utcnow()
        settlement = self.get_settlement(settlement_id)

        ensure_transition(SettlementStatus.PENDING, SettlementStatus.PAID)
        result = self.db.execute(
            update(Settlement)
            .where(
                Settlement.id == settlement_id,
                Settlement.status == SettlementStatus.PENDING,
            )
            .values(
                status=SettlementStatus.PAID,
                payout_reference=payout_reference,
                paid_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise AlreadyPaid()

        self.db.commit()
        self.db.refresh(settlement)
        logger.info(
            "Settlement paid: id=%s payout_reference=%s", settlement.id, payout_reference
        )
        return settlement

    def get_settlement(self, settlement_id: uuid.UUID) -> Settlement:
        settlement = (
            self.db.query(Settlement).filter(Settlement.id == settlement_id).first()
        )
        if settlement is None:
            raise UnknownSettlement()
        return settlement

    def list_settlements(
        self,
        merchant_id: Optional[uuid.UUID] = None,
        status: Optional[SettlementStatus] = None,
    ) -> list[Settlement]:
        query = self.db.query(Settlement)
        if merchant_id is not None:
            query = query.filter(Settlement.merchant_id == merchant_id)
        if status is not None:
            query = query.filter(Settlement.status == status)
        return query.order_by(Settlement.created_at.desc()).all()
