"""Pydantic schemas for ledger reads."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from qrpay.models.enums import SettlementMode


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    bill_id: UUID
    merchant_id: UUID
    payer_id: str
    gross_amount: int
    discount_rate: int
    discount_amount: int
    platform_fee: int
    net_paid: int
    merchant_net: int
    currency: str
    processor_reference: str
    processor_payment_id: Optional[str] = None
    settlement_mode: SettlementMode
    settlement_id: Optional[UUID] = None
    settled_at: Optional[datetime] = None
    paid_at: datetime


class SavingsResponse(BaseModel):
    """How much a payer has saved through discounts."""

    payer_id: str
    order_count: int
    total_discount: int
    total_paid: int


class OrderTotals(BaseModel):
    order_count: int
    revenue: int = Field(..., description="Sum of net_paid, in minor units")
    discount: int


class MerchantStatsResponse(BaseModel):
    """Merchant dashboard summary of the ledger."""

    merchant_id: UUID
    today: OrderTotals
    this_month: OrderTotals
    all_time: OrderTotals
    recent_orders: list[OrderResponse]
