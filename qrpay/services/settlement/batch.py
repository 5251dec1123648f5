"""Batch settlement job management.

Allows submitting a settlement run (every merchant with unsettled orders
in a period) as a background task and tracking its progress.  Uses an
in-memory dict for job tracking, so job state is per-process and lost on
restart; settlements themselves are durable.
"""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from qrpay.core.config import settings
from qrpay.core.errors import AlreadySettled
from qrpay.core.logging import get_logger
from qrpay.services.ledger.ledger import OrderLedger
from qrpay.services.settlement.engine import SettlementEngine

logger = get_logger(__name__)

# In-memory job tracker
_jobs: dict[str, dict] = {}


def submit_settlement_run(
    db_factory,  # callable that creates a new session
    period_start: date,
    period_end: date,
    background_tasks: BackgroundTasks,
) -> str:
    """Submit a settlement run to execute in the background.

    Returns job_id immediately so the caller can poll for status later.
    """
    job_id = str(uuid.uuid4())
    _jobs[job_id] = {
        "job_id": job_id,
        "status": "pending",
        "period_start": str(period_start),
        "period_end": str(period_end),
        "settlement_ids": [],
        "skipped_merchants": [],
        "error": None,
    }
    background_tasks.add_task(_run_job, job_id, db_factory, period_start, period_end)
    return job_id


def run_settlements(
    db: Session,
    period_start: date,
    period_end: date,
) -> tuple[list[str], list[str]]:
    """Compute a settlement for every merchant with unsettled orders.

    A merchant whose orders were claimed by a concurrent run is skipped,
    not retried.

    Returns:
        ``(settlement_ids, skipped_merchant_ids)``
    """
    engine = SettlementEngine(db, settings)
    merchant_ids = OrderLedger(db).merchants_with_unsettled(period_start, period_end)

    settlement_ids: list[str] = []
    skipped: list[str] = []
    for merchant_id in merchant_ids:
        try:
            settlement = engine.compute_settlement(merchant_id, period_start, period_end)
            settlement_ids.append(str(settlement.id))
        except AlreadySettled:
            logger.warning("Settlement run skipped merchant=%s (concurrent run)", merchant_id)
            skipped.append(str(merchant_id))

    logger.info(
        "Settlement run complete: period=%s..%s settlements=%d skipped=%d",
        period_start,
        period_end,
        len(settlement_ids),
        len(skipped),
    )
    return settlement_ids, skipped


def _run_job(
    job_id: str,
    db_factory,
    period_start: date,
    period_end: date,
) -> None:
    """Background task that runs the full settlement cycle."""
    _jobs[job_id]["status"] = "running"
    try:
        db: Session = db_factory()
        try:
            settlement_ids, skipped = run_settlements(db, period_start, period_end)
            _jobs[job_id]["status"] = "completed"
            _jobs[job_id]["settlement_ids"] = settlement_ids
            _jobs[job_id]["skipped_merchants"] = skipped
        finally:
            db.close()
    except Exception as e:
        logger.error(f"Job {job_id} failed: {e}")
        _jobs[job_id]["status"] = "failed"
        _jobs[job_id]["error"] = str(e)


def get_job_status(job_id: str) -> dict | None:
    """Look up a job by ID.  Returns None if not found."""
    return _jobs.get(job_id)


def list_jobs() -> list[dict]:
    """Return all tracked jobs (in submission order)."""
    return list(_jobs.values())
