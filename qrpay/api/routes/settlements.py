"""Settlement endpoints (admin only).

Compute a merchant's settlement for a period, record its payout, list and
fetch settlements, and run the whole period for every merchant as a
background job.
"""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from qrpay.api.deps import Principal, require_role
from qrpay.core.config import settings
from qrpay.core.database import get_db
from qrpay.core.logging import get_logger
from qrpay.models.enums import SettlementStatus
from qrpay.models.settlement import Settlement
from qrpay.schemas.settlement import (
    MarkPaidRequest,
    SettlementRequest,
    SettlementResponse,
    SettlementRunRequest,
)
from qrpay.services.settlement.engine import SettlementEngine

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_role("admin"))])


@router.post("/compute", response_model=SettlementResponse, status_code=201)
def compute_settlement(
    body: SettlementRequest,
    db: Session = Depends(get_db),
) -> Settlement:
    """Settle the merchant's unsettled orders paid within the period.

    DIRECT merchants that are no longer direct-eligible are settled
    PLATFORM_MANAGED and flagged ``fallback_applied``.  Orders whose split
    already paid the merchant are reported in ``direct_paid_total``.
    """
    logger.info(
        "Settlement requested: merchant=%s %s to %s",
        body.merchant_id,
        body.period_start,
        body.period_end,
    )
    engine = SettlementEngine(db, settings)
    try:
        return engine.compute_settlement(
            body.merchant_id,
            body.period_start,
            body.period_end,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/{settlement_id}/mark-paid", response_model=SettlementResponse)
def mark_settlement_paid(
    settlement_id: UUID,
    body: MarkPaidRequest,
    db: Session = Depends(get_db),
) -> Settlement:
    return SettlementEngine(db, settings).mark_paid(
        settlement_id, body.payout_reference
    )


@router.get("", response_model=List[SettlementResponse])
def list_settlements(
    merchant_id: Optional[UUID] = Query(None, description="Filter by merchant"),
    status: Optional[SettlementStatus] = Query(None, description="PENDING or PAID"),
    db: Session = Depends(get_db),
) -> list[Settlement]:
    return SettlementEngine(db, settings).list_settlements(merchant_id, status)


# ── Batch / async settlement endpoints ───────────────────────────────
# Declared before /{settlement_id} so "jobs" is not parsed as an id.


@router.post("/run-async")
def run_settlements_async(
    request: SettlementRunRequest,
    background_tasks: BackgroundTasks,
):
    """Submit a settlement run for every merchant as a background job.

    Returns immediately with a job_id that can be polled via GET /jobs/{id}.
    """
    from qrpay.core.database import SessionLocal
    from qrpay.services.settlement.batch import submit_settlement_run

    if request.period_end < request.period_start:
        raise HTTPException(status_code=400, detail="period_end is before period_start")

    job_id = submit_settlement_run(
        db_factory=SessionLocal,
        period_start=request.period_start,
        period_end=request.period_end,
        background_tasks=background_tasks,
    )
    return {
        "job_id": job_id,
        "status": "pending",
        "message": "Settlement run submitted",
    }


@router.get("/jobs")
def list_jobs():
    """List all submitted settlement runs."""
    from qrpay.services.settlement.batch import list_jobs as _list_jobs

    return {"jobs": _list_jobs()}


@router.get("/jobs/{job_id}")
def get_job(job_id: str):
    """Poll a specific job's status by its ID."""
    from qrpay.services.settlement.batch import get_job_status

    job = get_job_status(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.get("/{settlement_id}", response_model=SettlementResponse)
def get_settlement(
    settlement_id: UUID,
    db: Session = Depends(get_db),
) -> Settlement:
    return SettlementEngine(db, settings).get_settlement(settlement_id)
