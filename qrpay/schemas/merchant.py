"""Pydantic schemas for merchant administration."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from qrpay.models.enums import SettlementMode, VerificationStatus


class MerchantCreate(BaseModel):
    """Request body to register a merchant."""

    business_name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = Field(None, max_length=30)
    discount_rate: int = Field(
        ...,
        description="Whole percent, one of the configured discount slabs",
    )
    settlement_mode: SettlementMode = SettlementMode.PLATFORM_MANAGED
    payout_account_ref: Optional[str] = Field(
        None,
        max_length=100,
        description="Processor linked-account id for direct payouts",
    )


class VerificationUpdate(BaseModel):
    status: VerificationStatus
    reason: Optional[str] = Field(None, max_length=255)


class SettlementUpdate(BaseModel):
    """Partial update of how the merchant is paid."""

    settlement_mode: Optional[SettlementMode] = None
    payout_account_ref: Optional[str] = Field(None, max_length=100)
    discount_rate: Optional[int] = None


class PayoutEligibilityUpdate(BaseModel):
    enabled: bool
    reason: Optional[str] = Field(None, max_length=255)


class SplitFailureReport(BaseModel):
    reason: str = Field(..., min_length=1, max_length=200)


class MerchantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_name: str
    category: Optional[str] = None
    discount_rate: int
    settlement_mode: SettlementMode
    payout_account_ref: Optional[str] = None
    verification_status: VerificationStatus
    direct_payout_enabled: bool
    direct_payout_eligible: bool
    payout_block_reason: Optional[str] = None
    direct_fallback_active: bool
    fallback_since: Optional[datetime] = None
    created_at: Optional[datetime] = None
