"""Order ledger read endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from qrpay.api.deps import Principal, ensure_merchant_access, get_principal, require_role
from qrpay.core.database import get_db
from qrpay.models.order import Order
from qrpay.schemas.order import MerchantStatsResponse, OrderResponse, SavingsResponse
from qrpay.services.ledger.ledger import OrderLedger

router = APIRouter()


@router.get("", response_model=List[OrderResponse])
def list_orders(
    merchant_id: Optional[UUID] = Query(None, description="Filter by merchant"),
    payer_id: Optional[str] = Query(None, description="Filter by payer"),
    date_from: Optional[date] = Query(None, description="Paid on or after"),
    date_to: Optional[date] = Query(None, description="Paid on or before"),
    unsettled: Optional[bool] = Query(
        None, description="True = settlement pending, False = settled"
    ),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=500, description="Items per page"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> list[Order]:
    """List orders, newest first.

    Payers only ever see their own orders and merchants only their own.
    """
    if principal.role == "payer":
        payer_id = principal.id
    elif principal.role == "merchant":
        if merchant_id is None:
            raise HTTPException(status_code=400, detail="merchant_id is required")
        ensure_merchant_access(principal, merchant_id)

    return OrderLedger(db).list_orders(
        merchant_id=merchant_id,
        payer_id=payer_id,
        date_from=date_from,
        date_to=date_to,
        unsettled=unsettled,
        page=page,
        limit=limit,
    )


@router.get("/savings", response_model=SavingsResponse)
def payer_savings(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> dict:
    """Total discount the calling payer has received."""
    if principal.role != "payer":
        raise HTTPException(status_code=403, detail="Not allowed for this role")
    return OrderLedger(db).payer_savings(principal.id)


@router.get("/merchant-stats", response_model=MerchantStatsResponse)
def merchant_stats(
    merchant_id: UUID = Query(..., description="Merchant to summarize"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_role("merchant", "admin")),
) -> dict:
    """Today, this month and all-time order totals plus recent orders."""
    ensure_merchant_access(principal, merchant_id)
    return OrderLedger(db).merchant_stats(merchant_id, datetime.utcnow())


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
) -> Order:
    order = OrderLedger(db).get_order(order_id)
    if principal.role == "payer" and order.payer_id != principal.id:
        raise HTTPException(status_code=404, detail="Order not found")
    if principal.role == "merchant":
        ensure_merchant_access(principal, order.merchant_id)
    return order
