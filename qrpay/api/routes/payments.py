"""Payment endpoints: open a processor order, and the two confirmation sources.

Both the payer's checkout callback and the processor webhook end up in
``PaymentOrchestrator``'s single idempotent handler.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from qrpay.api.deps import Principal, require_role
from qrpay.core.config import settings
from qrpay.core.database import get_db
from qrpay.core.errors import InvalidSignature
from qrpay.models.enums import ConfirmationOutcome
from qrpay.schemas.payment import (
    CheckoutVerifyRequest,
    ConfirmationResponse,
    InitiateRequest,
    InitiateResponse,
)
from qrpay.services.payments.orchestrator import (
    Confirmation,
    ConfirmationChannel,
    ConfirmationReceipt,
    PaymentOrchestrator,
)
from qrpay.services.payments.processor import PaymentProcessor, get_processor
from qrpay.services.payments.signatures import checkout_message

router = APIRouter()


def _to_response(receipt: ConfirmationReceipt) -> ConfirmationResponse:
    return ConfirmationResponse(
        result=receipt.result.value,
        processor_reference=receipt.processor_reference,
        order_id=receipt.order_id,
        bill_status=receipt.bill_status,
    )


@router.post("/initiate", response_model=InitiateResponse)
def initiate_payment(
    body: InitiateRequest,
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_processor),
    principal: Principal = Depends(require_role("payer")),
) -> InitiateResponse:
    """Open a processor order for the net payable of a bill this payer locked.

    On processor failure the bill is returned to ACTIVE and a 502 tells the
    payer no money moved and they may retry.
    """
    orchestrator = PaymentOrchestrator(db, settings, processor)
    initiation = orchestrator.initiate_payment(body.bill_id, principal.id)
    attempt = initiation.attempt
    return InitiateResponse(
        bill_id=attempt.bill_id,
        processor_reference=attempt.processor_reference,
        amount=attempt.amount,
        currency=attempt.currency,
        settlement_mode=attempt.settlement_mode,
        status=attempt.status,
        checkout=initiation.checkout,
    )


@router.post("/verify", response_model=ConfirmationResponse)
def verify_checkout(
    body: CheckoutVerifyRequest,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_role("payer")),
) -> ConfirmationResponse:
    """Apply the checkout callback the payer's client received.

    A callback with a bad signature is logged and dropped.  The payer only
    sees a pending result; the processor webhook settles the outcome.
    """
    confirmation = Confirmation(
        processor_reference=body.order_id,
        outcome=ConfirmationOutcome.SUCCESS,
        signature=body.signature,
        signed_payload=checkout_message(body.order_id, body.payment_id),
        channel=ConfirmationChannel.CHECKOUT,
        processor_payment_id=body.payment_id,
    )
    try:
        receipt = PaymentOrchestrator(db, settings).confirm_payment(confirmation)
    except InvalidSignature:
        return ConfirmationResponse(result="pending", processor_reference=body.order_id)
    return _to_response(receipt)


@router.post("/webhook")
async def processor_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> dict:
    """Processor webhook receiver.

    Always answers 200 once the body is read: a forged delivery is logged
    and dropped, and a genuine one is applied at most once however often
    it is redelivered.  Storage errors propagate as 500 so the processor
    retries.
    """
    raw_body = await request.body()
    orchestrator = PaymentOrchestrator(db, settings)
    try:
        receipt = orchestrator.handle_webhook(raw_body, x_razorpay_signature or "")
    except InvalidSignature:
        return {"status": "dropped"}
    return {"status": "ok", **_to_response(receipt).model_dump(mode="json")}
