"""Pydantic schemas for payment initiation and confirmation."""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from qrpay.models.enums import AttemptStatus, BillStatus, SettlementMode


class InitiateRequest(BaseModel):
    bill_id: UUID


class InitiateResponse(BaseModel):
    """Processor order opened for the bill plus what the client needs to pay."""

    bill_id: UUID
    processor_reference: str
    amount: int = Field(..., description="Net payable in minor units")
    currency: str
    settlement_mode: SettlementMode
    status: AttemptStatus
    checkout: dict[str, Any]


class CheckoutVerifyRequest(BaseModel):
    """Callback relayed by the payer's client after checkout completes."""

    order_id: str = Field(..., description="Processor order id (reference)")
    payment_id: str
    signature: str


class ConfirmationResponse(BaseModel):
    result: str
    processor_reference: Optional[str] = None
    order_id: Optional[UUID] = None
    bill_status: Optional[BillStatus] = None
