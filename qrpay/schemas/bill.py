"""Pydantic schemas for bill issuance and redemption."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from qrpay.models.enums import BillStatus


class BillCreate(BaseModel):
    """Request body to issue a bill.

    Only the gross amount is accepted from the caller; the discount rate
    always comes from the merchant record.
    """

    merchant_id: UUID
    gross_amount: int = Field(
        ...,
        description="Bill total in minor currency units (paise)",
    )
    description: Optional[str] = Field(None, max_length=200)


class BillResponse(BaseModel):
    """Issued bill with its scannable token and full breakdown."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    merchant_id: UUID
    token: str
    gross_amount: int
    discount_rate: int
    discount_amount: int
    net_payable: int
    description: Optional[str] = None
    status: BillStatus
    created_at: datetime
    expires_at: datetime


class RedeemRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=512)


class RedeemedMerchant(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_name: str
    category: Optional[str] = None


class RedeemResponse(BaseModel):
    """Read-only breakdown shown to the payer after a successful scan."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    merchant: RedeemedMerchant
    gross_amount: int
    discount_rate: int
    discount_amount: int
    net_payable: int
    description: Optional[str] = None
    status: BillStatus
    expires_at: datetime


class SweepResponse(BaseModel):
    expired: int = Field(..., description="Bills moved to EXPIRED by this sweep")
