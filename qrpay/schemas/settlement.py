"""Pydantic schemas for settlement computation and payout."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from qrpay.models.enums import SettlementMode, SettlementStatus


class SettlementRequest(BaseModel):
    """Request body to compute one merchant's settlement."""

    merchant_id: UUID
    period_start: date = Field(
        ...,
        description="First day of the period (inclusive)",
    )
    period_end: date = Field(
        ...,
        description="Last day of the period (inclusive)",
    )


class SettlementRunRequest(BaseModel):
    """Request body to settle every merchant with unsettled orders."""

    period_start: date
    period_end: date


class MarkPaidRequest(BaseModel):
    payout_reference: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Bank or processor transfer reference",
    )


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    merchant_id: UUID
    period_start: date
    period_end: date
    order_count: int
    gross_total: int
    fee_total: int
    payable_total: int
    direct_paid_total: int
    payout_method: SettlementMode
    fallback_applied: bool
    status: SettlementStatus
    payout_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
