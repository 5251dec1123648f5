"""Tests for token redemption: the single-use ACTIVE -> LOCKED move."""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from qrpay.core.errors import BillExpired, BillNotActive, MalformedToken
from qrpay.models.bill import Bill
from qrpay.models.enums import BillStatus
from qrpay.services.billing.issuer import BillIssuer
from qrpay.services.billing.redeemer import BillRedeemer
from qrpay.services.billing.token import TokenPayload, encode_token


@pytest.fixture
def bill(db_session, config, make_merchant, now) -> Bill:
    merchant = make_merchant(discount_rate=6)
    return BillIssuer(db_session, config).issue_bill(merchant.id, 54000, now=now)


def test_redeem_locks_bill_and_returns_stored_breakdown(db_session, config, bill, now):
    redeemed = BillRedeemer(db_session, config).redeem_token(
        bill.token, "payer-1", now=now + timedelta(minutes=1)
    )

    assert redeemed.id == bill.id
    assert redeemed.status == BillStatus.LOCKED
    assert redeemed.locked_by == "payer-1"
    assert redeemed.discount_amount == 3240
    assert redeemed.net_payable == 50760
    assert redeemed.merchant.business_name == "Chai Point"


def test_second_redeem_fails(db_session, config, bill, now):
    redeemer = BillRedeemer(db_session, config)
    redeemer.redeem_token(bill.token, "payer-1", now=now)

    with pytest.raises(BillNotActive) as exc_info:
        redeemer.redeem_token(bill.token, "payer-2", now=now)
    assert exc_info.value.message == "This code has already been used."


def test_expired_bill_is_marked_expired(db_session, config, bill, now):
    with pytest.raises(BillExpired):
        BillRedeemer(db_session, config).redeem_token(
            bill.token, "payer-1", now=bill.expires_at + timedelta(seconds=1)
        )

    db_session.expire_all()
    assert db_session.get(Bill, bill.id).status == BillStatus.EXPIRED


def test_expiry_wins_over_status(db_session, config, bill, now):
    """A LOCKED bill scanned after its window reports expiry, not 'used'."""
    BillRedeemer(db_session, config).redeem_token(bill.token, "payer-1", now=now)

    with pytest.raises(BillExpired):
        BillRedeemer(db_session, config).redeem_token(
            bill.token, "payer-2", now=bill.expires_at + timedelta(minutes=1)
        )


def test_cancelled_bill_is_not_active(db_session, config, bill, now):
    BillIssuer(db_session, config).cancel_bill(bill.merchant_id, bill.id, now=now)
    with pytest.raises(BillNotActive):
        BillRedeemer(db_session, config).redeem_token(bill.token, "payer-1", now=now)


def test_garbage_token(db_session, config, bill, now):
    with pytest.raises(MalformedToken):
        BillRedeemer(db_session, config).redeem_token("%%%not-a-token", "payer-1", now=now)


def test_validly_signed_token_for_unknown_bill(db_session, config, bill, now):
    forged = encode_token(
        TokenPayload(uuid.uuid4(), bill.merchant_id, 1709294700),
        config.token_secret,
    )
    with pytest.raises(MalformedToken):
        BillRedeemer(db_session, config).redeem_token(forged, "payer-1", now=now)


def test_concurrent_redemption_only_one_wins(db_session, session_factory, config, bill, now):
    """Two workers both read the bill as ACTIVE; only one lock sticks."""
    worker_a = session_factory()
    worker_b = session_factory()

    # Both load the row before either writes (stale ACTIVE in worker_b).
    assert worker_a.get(Bill, bill.id).status == BillStatus.ACTIVE
    assert worker_b.get(Bill, bill.id).status == BillStatus.ACTIVE

    BillRedeemer(worker_a, config).redeem_token(bill.token, "payer-a", now=now)
    with pytest.raises(BillNotActive):
        BillRedeemer(worker_b, config).redeem_token(bill.token, "payer-b", now=now)

    db_session.expire_all()
    stored = db_session.get(Bill, bill.id)
    assert stored.status == BillStatus.LOCKED
    assert stored.locked_by == "payer-a"
