"""Bill endpoints: issue, list, cancel, redeem, and the expiry sweep."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from qrpay.api.deps import Principal, ensure_merchant_access, require_role
from qrpay.core.config import settings
from qrpay.core.database import get_db
from qrpay.models.bill import Bill
from qrpay.schemas.bill import (
    BillCreate,
    BillResponse,
    RedeemRequest,
    RedeemResponse,
    SweepResponse,
)
from qrpay.services.billing.issuer import BillIssuer
from qrpay.services.billing.redeemer import BillRedeemer
from qrpay.services.billing.sweeper import sweep_expired_bills

router = APIRouter()


@router.post("", response_model=BillResponse, status_code=201)
def issue_bill(
    body: BillCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_role("merchant", "admin")),
) -> Bill:
    """Issue a bill for the merchant and return its token and breakdown.

    The discount rate is taken from the merchant record, never from the
    request.
    """
    ensure_merchant_access(principal, body.merchant_id)
    return BillIssuer(db, settings).issue_bill(
        body.merchant_id,
        body.gross_amount,
        description=body.description,
    )


@router.get("/active", response_model=List[BillResponse])
def list_active_bills(
    merchant_id: UUID = Query(..., description="Merchant whose live bills to list"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_role("merchant", "admin")),
) -> list[Bill]:
    ensure_merchant_access(principal, merchant_id)
    return BillIssuer(db, settings).list_active_bills(merchant_id)


@router.delete("/{bill_id}", response_model=BillResponse)
def cancel_bill(
    bill_id: UUID,
    merchant_id: UUID = Query(...),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_role("merchant", "admin")),
) -> Bill:
    """Cancel an ACTIVE bill before anyone scans it."""
    ensure_merchant_access(principal, merchant_id)
    return BillIssuer(db, settings).cancel_bill(merchant_id, bill_id)


@router.post("/redeem", response_model=RedeemResponse)
def redeem_bill(
    body: RedeemRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_role("payer")),
) -> Bill:
    """Scan a token: lock the bill for this payer and show the breakdown."""
    return BillRedeemer(db, settings).redeem_token(body.token, principal.id)


@router.post("/sweep", response_model=SweepResponse)
def sweep_bills(
    db: Session = Depends(get_db),
    _: Principal = Depends(require_role("admin")),
) -> SweepResponse:
    """Mark every ACTIVE or LOCKED bill past its expiry as EXPIRED."""
    return SweepResponse(expired=sweep_expired_bills(db))
