"""Tests for the time-based expiry sweep."""

from __future__ import annotations

from datetime import timedelta

from qrpay.models.bill import Bill
from qrpay.models.enums import BillStatus
from qrpay.services.billing.issuer import BillIssuer
from qrpay.services.billing.redeemer import BillRedeemer
from qrpay.services.billing.sweeper import sweep_expired_bills


def test_sweep_expires_stale_active_and_locked(db_session, config, make_merchant, now):
    merchant = make_merchant()
    issuer = BillIssuer(db_session, config)
    stale_active = issuer.issue_bill(merchant.id, 1000, now=now - timedelta(minutes=20))
    stale_locked = issuer.issue_bill(merchant.id, 2000, now=now - timedelta(minutes=20))
    BillRedeemer(db_session, config).redeem_token(
        stale_locked.token, "payer-1", now=now - timedelta(minutes=19)
    )
    fresh = issuer.issue_bill(merchant.id, 3000, now=now)

    expired = sweep_expired_bills(db_session, now=now)

    assert expired == 2
    db_session.expire_all()
    assert db_session.get(Bill, stale_active.id).status == BillStatus.EXPIRED
    assert db_session.get(Bill, stale_locked.id).status == BillStatus.EXPIRED
    assert db_session.get(Bill, fresh.id).status == BillStatus.ACTIVE


def test_sweep_leaves_terminal_bills_alone(db_session, config, make_merchant, now):
    merchant = make_merchant()
    issuer = BillIssuer(db_session, config)
    bill = issuer.issue_bill(merchant.id, 1000, now=now - timedelta(minutes=20))
    issuer.cancel_bill(merchant.id, bill.id, now=now - timedelta(minutes=19))

    assert sweep_expired_bills(db_session, now=now) == 0
    db_session.expire_all()
    assert db_session.get(Bill, bill.id).status == BillStatus.CANCELLED


def test_sweep_is_idempotent(db_session, config, make_merchant, now):
    merchant = make_merchant()
    BillIssuer(db_session, config).issue_bill(
        merchant.id, 1000, now=now - timedelta(minutes=20)
    )
    assert sweep_expired_bills(db_session, now=now) == 1
    assert sweep_expired_bills(db_session, now=now) == 0
