"""Payment orchestration: opening processor orders and applying their outcomes.

Two decoupled halves:

  1. ``initiate_payment`` opens a processor order for a LOCKED bill's net
     payable and records it as a ``PaymentAttempt``.
  2. ``confirm_payment`` ingests the processor's asynchronous outcome.  The
     channel delivers at least once; the effect happens exactly once.  On
     success the bill's LOCKED -> PAID move, the attempt's CREATED ->
     SUCCEEDED move and the Order insert share one transaction.

Both confirmation sources (processor webhook, payer checkout callback)
arrive here as a ``Confirmation`` and go through the same handler.
"""

from __future__ import annotations

import enum
import json
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from qrpay.core.config import Settings
from qrpay.core.errors import (
    BillExpired,
    BillNotActive,
    InvalidSignature,
    NotBillOwner,
    PaymentInitiationFailed,
    ProcessorError,
    UnknownBill,
)
from qrpay.core.logging import get_logger
from qrpay.models.bill import Bill
from qrpay.models.enums import (
    AttemptStatus,
    BillStatus,
    ConfirmationOutcome,
    PaymentEventKind,
    SettlementMode,
    ensure_transition,
)
from qrpay.models.payment import PaymentAttempt, PaymentEvent
from qrpay.services.billing.discount import calculate_platform_fee
from qrpay.services.billing.transitions import (
    compare_and_set_status,
    expire_bill,
    release_lock,
)
from qrpay.services.ledger.ledger import OrderLedger
from qrpay.services.payments.processor import PaymentProcessor, Transfer
from qrpay.services.payments.signatures import checkout_message, verify_signature

logger = get_logger(__name__)

# Processor webhook event -> outcome.  Anything else is acknowledged and ignored.
WEBHOOK_EVENTS: dict[str, ConfirmationOutcome] = {
    "payment.captured": ConfirmationOutcome.SUCCESS,
    "order.paid": ConfirmationOutcome.SUCCESS,
    "payment.failed": ConfirmationOutcome.FAILURE,
}

# Captures that could not become an Order; one event per reference.
REFUND_EVENT_KINDS = (PaymentEventKind.LATE_CAPTURE, PaymentEventKind.ORPHAN_CAPTURE)


class ConfirmationChannel(str, enum.Enum):
    WEBHOOK = "WEBHOOK"
    CHECKOUT = "CHECKOUT"


class ConfirmationResult(str, enum.Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    FAILURE_RECORDED = "failure_recorded"
    LATE_CAPTURE = "late_capture"
    ORPHAN_CAPTURE = "orphan_capture"
    UNKNOWN_REFERENCE = "unknown_reference"
    IGNORED = "ignored"


@dataclass(frozen=True)
class Confirmation:
    """One delivery from the confirmation channel.

    ``signed_payload`` is the exact bytes the processor signed: the raw
    webhook body, or ``order_id|payment_id`` for a checkout callback.
    """

    processor_reference: str
    outcome: ConfirmationOutcome
    signature: str
    signed_payload: bytes
    channel: ConfirmationChannel = ConfirmationChannel.WEBHOOK
    processor_payment_id: Optional[str] = None
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class ConfirmationReceipt:
    result: ConfirmationResult
    processor_reference: Optional[str] = None
    order_id: Optional[uuid.UUID] = None
    bill_status: Optional[BillStatus] = None


@dataclass(frozen=True)
class PaymentInitiation:
    attempt: PaymentAttempt
    checkout: dict


class PaymentOrchestrator:
    """Opens processor orders and applies their confirmations exactly once."""

    def __init__(
        self,
        db: Session,
        config: Settings,
        processor: Optional[PaymentProcessor] = None,
    ) -> None:
        self.db = db
        self.config = config
        self.processor = processor
        self.ledger = OrderLedger(db)

    # ── Initiation ───────────────────────────────────────────────────

    def initiate_payment(
        self,
        bill_id: uuid.UUID,
        payer_id: str,
        now: Optional[datetime] = None,
    ) -> PaymentInitiation:
        """Open a processor order for the net payable of a LOCKED bill.

        Only the payer holding the lock may initiate.  Calling again while
        the current attempt is still open returns that same attempt.  If the
        processor call fails the bill goes back to ACTIVE (or EXPIRED if its
        window closed) and ``PaymentInitiationFailed`` is raised.
        """
        now = now or datetime.utcnow()

        bill = self.db.query(Bill).filter(Bill.id == bill_id).first()
        if bill is None:
            raise UnknownBill()

        if bill.is_expired(now):
            if expire_bill(self.db, bill, now):
                self.db.commit()
            else:
                self.db.rollback()
            raise BillExpired()
        if bill.status != BillStatus.LOCKED:
            raise BillNotActive()
        if bill.locked_by != payer_id:
            raise NotBillOwner()

        if bill.processor_reference:
            existing = self._get_attempt(bill.processor_reference)
            if existing is not None and existing.status == AttemptStatus.CREATED:
                logger.info(
                    "Payment re-initiated, reusing attempt: bill=%s reference=%s",
                    bill.id,
                    existing.processor_reference,
                )
                return PaymentInitiation(
                    attempt=existing,
                    checkout=self._checkout(existing, bill),
                )

        merchant = bill.merchant
        platform_fee = min(
            calculate_platform_fee(bill.gross_amount, self.config.platform_fee_percent),
            bill.net_payable,
        )
        transfers: list[Transfer] = []
        mode = SettlementMode.PLATFORM_MANAGED
        if merchant.direct_payout_eligible:
            mode = SettlementMode.DIRECT
            transfers.append(
                Transfer(
                    account=merchant.payout_account_ref,
                    amount=bill.net_payable - platform_fee,
                )
            )

        try:
            processor_order = self.processor.create_order(
                amount=bill.net_payable,
                currency=self.config.currency,
                receipt=f"bill_{bill.id.hex[:24]}",
                notes={
                    "bill_id": str(bill.id),
                    "merchant_id": str(bill.merchant_id),
                },
                transfers=transfers or None,
            )
        except ProcessorError:
            final_status = release_lock(self.db, bill, now)
            self.db.commit()
            logger.error(
                "Payment initiation failed: bill=%s released_to=%s",
                bill.id,
                final_status.value,
            )
            raise PaymentInitiationFailed()

        reference = processor_order.reference
        result = self.db.execute(
            update(Bill)
            .where(
                Bill.id == bill.id,
                Bill.status == BillStatus.LOCKED,
                Bill.locked_by == payer_id,
            )
            .values(processor_reference=reference, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Bill moved (swept or cancelled) while the order was opening;
            # the processor order is simply never handed to the payer.
            self.db.rollback()
            raise BillNotActive()

        attempt = PaymentAttempt(
            id=uuid.uuid4(),
            bill_id=bill.id,
            payer_id=payer_id,
            processor_reference=reference,
            amount=bill.net_payable,
            currency=self.config.currency,
            settlement_mode=mode,
            transfer_account=transfers[0].account if transfers else None,
            status=AttemptStatus.CREATED,
            created_at=now,
        )
        self.db.add(attempt)
        self._record_event(reference, bill.id, PaymentEventKind.INITIATED)
        self.db.commit()
        self.db.refresh(bill)

        logger.info(
            "Payment initiated: bill=%s reference=%s amount=%d mode=%s",
            bill.id,
            reference,
            bill.net_payable,
            mode.value,
        )
        return PaymentInitiation(attempt=attempt, checkout=self._checkout(attempt, bill))

    # ── Confirmation ─────────────────────────────────────────────────

    def handle_webhook(
        self,
        raw_body: bytes,
        signature: str,
        now: Optional[datetime] = None,
    ) -> ConfirmationReceipt:
        """Verify, parse, and apply one processor webhook delivery.

        Raises:
            InvalidSignature: The body was not signed with the webhook secret.
        """
        self._verify(
            raw_body,
            signature,
            self.config.processor_webhook_secret,
            ConfirmationChannel.WEBHOOK,
        )

        try:
            body = json.loads(raw_body)
            event = body.get("event")
            outcome = WEBHOOK_EVENTS.get(event)
            if outcome is None:
                logger.info("Webhook event ignored: event=%s", event)
                return ConfirmationReceipt(result=ConfirmationResult.IGNORED)
            entity = body["payload"]["payment"]["entity"]
            reference = entity["order_id"]
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.error("Signed webhook body could not be parsed")
            return ConfirmationReceipt(result=ConfirmationResult.IGNORED)

        return self._apply(
            Confirmation(
                processor_reference=reference,
                outcome=outcome,
                signature=signature,
                signed_payload=raw_body,
                channel=ConfirmationChannel.WEBHOOK,
                processor_payment_id=entity.get("id"),
                failure_reason=entity.get("error_description"),
            ),
            now or datetime.utcnow(),
        )

    def confirm_payment(
        self,
        confirmation: Confirmation,
        now: Optional[datetime] = None,
    ) -> ConfirmationReceipt:
        """Verify the confirmation's signature, then apply it idempotently.

        Raises:
            InvalidSignature: Logged and raised; the caller drops the message.
        """
        if confirmation.channel == ConfirmationChannel.CHECKOUT:
            expected = checkout_message(
                confirmation.processor_reference,
                confirmation.processor_payment_id or "",
            )
            if confirmation.signed_payload != expected:
                logger.warning(
                    "Checkout confirmation payload mismatch: reference=%s",
                    confirmation.processor_reference,
                )
                raise InvalidSignature()
            secret = self.config.processor_key_secret
        else:
            secret = self.config.processor_webhook_secret

        self._verify(
            confirmation.signed_payload,
            confirmation.signature,
            secret,
            confirmation.channel,
        )
        return self._apply(confirmation, now or datetime.utcnow())

    # ── Private helpers ──────────────────────────────────────────────

    def _verify(
        self,
        message: bytes,
        signature: str,
        secret: str,
        channel: ConfirmationChannel,
    ) -> None:
        if not verify_signature(message, signature, secret):
            logger.warning("Confirmation dropped, invalid signature: channel=%s", channel.value)
            raise InvalidSignature()

    def _apply(self, confirmation: Confirmation, now: datetime) -> ConfirmationReceipt:
        reference = confirmation.processor_reference
        attempt = self._get_attempt(reference)
        if attempt is None:
            logger.warning(
                "Confirmation for unknown reference: reference=%s outcome=%s",
                reference,
                confirmation.outcome.value,
            )
            if confirmation.outcome != ConfirmationOutcome.SUCCESS:
                return ConfirmationReceipt(
                    result=ConfirmationResult.UNKNOWN_REFERENCE,
                    processor_reference=reference,
                )
            if self._refund_flagged(reference):
                return ConfirmationReceipt(
                    result=ConfirmationResult.DUPLICATE,
                    processor_reference=reference,
                )
            self._record_event(
                reference,
                None,
                PaymentEventKind.ORPHAN_CAPTURE,
                "capture for a reference this platform never opened",
            )
            self.db.commit()
            return ConfirmationReceipt(
                result=ConfirmationResult.UNKNOWN_REFERENCE,
                processor_reference=reference,
            )

        bill = self.db.query(Bill).filter(Bill.id == attempt.bill_id).one()

        if confirmation.outcome == ConfirmationOutcome.SUCCESS:
            return self._apply_success(confirmation, attempt, bill, now)
        return self._apply_failure(confirmation, attempt, bill, now)

    def _apply_success(
        self,
        confirmation: Confirmation,
        attempt: PaymentAttempt,
        bill: Bill,
        now: datetime,
    ) -> ConfirmationReceipt:
        reference = attempt.processor_reference

        existing = self.ledger.get_by_processor_reference(reference)
        if existing is not None:
            logger.info("Duplicate confirmation ignored: reference=%s", reference)
            return ConfirmationReceipt(
                result=ConfirmationResult.DUPLICATE,
                processor_reference=reference,
                order_id=existing.id,
                bill_status=bill.status,
            )

        if self._refund_flagged(reference):
            logger.info("Duplicate capture already flagged for refund: reference=%s", reference)
            return ConfirmationReceipt(
                result=ConfirmationResult.DUPLICATE,
                processor_reference=reference,
                bill_status=bill.status,
            )

        if bill.is_expired(now) and bill.status != BillStatus.PAID:
            expire_bill(self.db, bill, now)
            self._close_attempt(
                attempt, AttemptStatus.FAILED, now, confirmation, "captured after bill expiry"
            )
            self._record_event(
                reference,
                bill.id,
                PaymentEventKind.LATE_CAPTURE,
                "captured after bill expiry; refund required",
            )
            self.db.commit()
            logger.warning("Late capture, no order written: bill=%s reference=%s", bill.id, reference)
            return ConfirmationReceipt(
                result=ConfirmationResult.LATE_CAPTURE,
                processor_reference=reference,
                bill_status=bill.status,
            )

        if bill.status != BillStatus.LOCKED or bill.processor_reference != reference:
            return self._orphan_capture(confirmation, attempt, bill, now)

        paid = compare_and_set_status(
            self.db,
            bill,
            BillStatus.LOCKED,
            BillStatus.PAID,
            now,
            paid_at=now,
        )
        if not paid or not self._close_attempt(
            attempt, AttemptStatus.SUCCEEDED, now, confirmation
        ):
            self.db.rollback()
            return self._after_lost_race(confirmation, now)

        self.db.refresh(attempt)
        platform_fee = min(
            calculate_platform_fee(bill.gross_amount, self.config.platform_fee_percent),
            bill.net_payable,
        )
        try:
            order = self.ledger.record_order(bill, attempt, platform_fee, now)
            self._record_event(reference, bill.id, PaymentEventKind.SUCCEEDED)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self._after_lost_race(confirmation, now)

        logger.info(
            "Payment confirmed: bill=%s order=%s reference=%s net_paid=%d",
            bill.id,
            order.id,
            reference,
            order.net_paid,
        )
        return ConfirmationReceipt(
            result=ConfirmationResult.APPLIED,
            processor_reference=reference,
            order_id=order.id,
            bill_status=BillStatus.PAID,
        )

    def _apply_failure(
        self,
        confirmation: Confirmation,
        attempt: PaymentAttempt,
        bill: Bill,
        now: datetime,
    ) -> ConfirmationReceipt:
        reference = attempt.processor_reference

        if attempt.status != AttemptStatus.CREATED or not self._close_attempt(
            attempt, AttemptStatus.FAILED, now, confirmation, confirmation.failure_reason
        ):
            self.db.rollback()
            logger.info("Duplicate failure ignored: reference=%s", reference)
            return ConfirmationReceipt(
                result=ConfirmationResult.DUPLICATE,
                processor_reference=reference,
                bill_status=bill.status,
            )

        if bill.status == BillStatus.LOCKED and bill.processor_reference == reference:
            release_lock(self.db, bill, now)
        self._record_event(
            reference,
            bill.id,
            PaymentEventKind.FAILED,
            confirmation.failure_reason,
        )
        self.db.commit()

        logger.info(
            "Payment failed: bill=%s reference=%s bill_status=%s",
            bill.id,
            reference,
            bill.status.value,
        )
        return ConfirmationReceipt(
            result=ConfirmationResult.FAILURE_RECORDED,
            processor_reference=reference,
            bill_status=bill.status,
        )

    def _orphan_capture(
        self,
        confirmation: Confirmation,
        attempt: PaymentAttempt,
        bill: Bill,
        now: datetime,
    ) -> ConfirmationReceipt:
        """Funds captured for an attempt that can no longer pay its bill."""
        reference = attempt.processor_reference
        if self._refund_flagged(reference):
            return ConfirmationReceipt(
                result=ConfirmationResult.DUPLICATE,
                processor_reference=reference,
                bill_status=bill.status,
            )
        if attempt.status == AttemptStatus.CREATED:
            self._close_attempt(
                attempt, AttemptStatus.FAILED, now, confirmation, "captured for a closed bill"
            )
        self._record_event(
            reference,
            bill.id,
            PaymentEventKind.ORPHAN_CAPTURE,
            f"bill status {bill.status.value}; refund required",
        )
        self.db.commit()
        logger.warning(
            "Orphan capture, no order written: bill=%s reference=%s bill_status=%s",
            bill.id,
            reference,
            bill.status.value,
        )
        return ConfirmationReceipt(
            result=ConfirmationResult.ORPHAN_CAPTURE,
            processor_reference=reference,
            bill_status=bill.status,
        )

    def _after_lost_race(self, confirmation: Confirmation, now: datetime) -> ConfirmationReceipt:
        """A concurrent delivery won; report what it left behind."""
        self.db.expire_all()
        reference = confirmation.processor_reference
        existing = self.ledger.get_by_processor_reference(reference)
        if existing is not None:
            logger.info("Concurrent duplicate confirmation: reference=%s", reference)
            return ConfirmationReceipt(
                result=ConfirmationResult.DUPLICATE,
                processor_reference=reference,
                order_id=existing.id,
                bill_status=BillStatus.PAID,
            )
        attempt = self._get_attempt(reference)
        bill = self.db.query(Bill).filter(Bill.id == attempt.bill_id).one()
        return self._orphan_capture(confirmation, attempt, bill, now)

    def _close_attempt(
        self,
        attempt: PaymentAttempt,
        target: AttemptStatus,
        now: datetime,
        confirmation: Confirmation,
        reason: Optional[str] = None,
    ) -> bool:
        """Conditional CREATED -> ``target`` on the attempt.  Caller commits."""
        ensure_transition(AttemptStatus.CREATED, target)
        result = self.db.execute(
            update(PaymentAttempt)
            .where(
                PaymentAttempt.id == attempt.id,
                PaymentAttempt.status == AttemptStatus.CREATED,
            )
            .values(
                status=target,
                completed_at=now,
                processor_payment_id=confirmation.processor_payment_id,
                failure_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _get_attempt(self, reference: str) -> Optional[PaymentAttempt]:
        return (
            self.db.query(PaymentAttempt)
            .filter(PaymentAttempt.processor_reference == reference)
            .first()
        )

    def _refund_flagged(self, reference: str) -> bool:
        """Whether a capture on ``reference`` is already on the refund worklist."""
        return (
            self.db.query(PaymentEvent.id)
            .filter(
                PaymentEvent.processor_reference == reference,
                PaymentEvent.kind.in_(REFUND_EVENT_KINDS),
            )
            .first()
            is not None
        )

    def _record_event(
        self,
        reference: str,
        bill_id: Optional[uuid.UUID],
        kind: PaymentEventKind,
        detail: Optional[str] = None,
    ) -> None:
        self.db.add(
            PaymentEvent(
                id=uuid.uuid4(),
                processor_reference=reference,
                bill_id=bill_id,
                kind=kind,
                detail=detail,
            )
        )

    def _checkout(self, attempt: PaymentAttempt, bill: Bill) -> dict:
        params = self.processor.checkout_params(
            attempt.processor_reference,
            attempt.amount,
            attempt.currency,
        )
        params["bill_id"] = str(bill.id)
        return params
