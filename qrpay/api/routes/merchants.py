"""Merchant administration endpoints.

Registration, compliance review and payout controls are admin-only; a
merchant may read its own record.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from qrpay.api.deps import Principal, ensure_merchant_access, require_role
from qrpay.core.config import settings
from qrpay.core.database import get_db
from qrpay.models.merchant import Merchant
from qrpay.schemas.merchant import (
    MerchantCreate,
    MerchantResponse,
    PayoutEligibilityUpdate,
    SettlementUpdate,
    SplitFailureReport,
    VerificationUpdate,
)
from qrpay.services.merchants.registry import MerchantRegistry

router = APIRouter()


@router.post("", response_model=MerchantResponse, status_code=201)
def register_merchant(
    body: MerchantCreate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_role("admin")),
) -> Merchant:
    """Register a merchant.  New merchants start PENDING verification."""
    return MerchantRegistry(db, settings).register(
        business_name=body.business_name,
        discount_rate=body.discount_rate,
        category=body.category,
        settlement_mode=body.settlement_mode,
        payout_account_ref=body.payout_account_ref,
    )


@router.get("/{merchant_id}", response_model=MerchantResponse)
def get_merchant(
    merchant_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_role("merchant", "admin")),
) -> Merchant:
    ensure_merchant_access(principal, merchant_id)
    return MerchantRegistry(db, settings).get(merchant_id)


@router.patch("/{merchant_id}/verification", response_model=MerchantResponse)
def update_verification(
    merchant_id: UUID,
    body: VerificationUpdate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_role("admin")),
) -> Merchant:
    """Record the outcome of compliance review (or a suspension)."""
    return MerchantRegistry(db, settings).set_verification(
        merchant_id, body.status, body.reason
    )


@router.patch("/{merchant_id}/settlement", response_model=MerchantResponse)
def update_settlement(
    merchant_id: UUID,
    body: SettlementUpdate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_role("admin")),
) -> Merchant:
    return MerchantRegistry(db, settings).update_settlement(
        merchant_id,
        settlement_mode=body.settlement_mode,
        payout_account_ref=body.payout_account_ref,
        discount_rate=body.discount_rate,
    )


@router.post("/{merchant_id}/payout-eligibility", response_model=MerchantResponse)
def update_payout_eligibility(
    merchant_id: UUID,
    body: PayoutEligibilityUpdate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_role("admin")),
) -> Merchant:
    """Revoke or restore direct payout for a DIRECT-mode merchant."""
    return MerchantRegistry(db, settings).set_payout_eligibility(
        merchant_id, body.enabled, body.reason
    )


@router.post("/{merchant_id}/split-failures", response_model=MerchantResponse)
def report_split_failure(
    merchant_id: UUID,
    body: SplitFailureReport,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_role("admin")),
) -> Merchant:
    """A split transfer bounced; future payouts fall back to the platform."""
    return MerchantRegistry(db, settings).record_split_failure(
        merchant_id, body.reason
    )
