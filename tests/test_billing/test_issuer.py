"""Tests for bill issuance, cancellation and the active-bill listing."""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from qrpay.core.errors import (
    BillNotActive,
    InvalidAmount,
    InvalidRate,
    MerchantNotEligible,
    UnknownBill,
    UnknownMerchant,
)
from qrpay.models.bill import Bill
from qrpay.models.enums import BillStatus, VerificationStatus
from qrpay.services.billing.issuer import BillIssuer
from qrpay.services.billing.token import decode_token


class TestIssueBill:
    def test_issues_active_bill_with_breakdown(self, db_session, config, make_merchant, now):
        merchant = make_merchant(discount_rate=6)

        bill = BillIssuer(db_session, config).issue_bill(
            merchant.id, 54000, description="Table 4", now=now
        )

        assert bill.status == BillStatus.ACTIVE
        assert bill.gross_amount == 54000
        assert bill.discount_rate == 6
        assert bill.discount_amount == 3240
        assert bill.net_payable == 50760
        assert bill.description == "Table 4"
        assert bill.created_at == now
        assert bill.expires_at == now + timedelta(minutes=config.bill_expiry_minutes)

    def test_token_references_bill_and_merchant(self, db_session, config, make_merchant, now):
        merchant = make_merchant()
        bill = BillIssuer(db_session, config).issue_bill(merchant.id, 1000, now=now)

        payload = decode_token(bill.token, config.token_secret)
        assert payload.bill_id == bill.id
        assert payload.merchant_id == merchant.id

    def test_each_bill_gets_its_own_token(self, db_session, config, make_merchant, now):
        merchant = make_merchant()
        issuer = BillIssuer(db_session, config)
        first = issuer.issue_bill(merchant.id, 1000, now=now)
        second = issuer.issue_bill(merchant.id, 1000, now=now)
        assert first.id != second.id
        assert first.token != second.token

    @pytest.mark.parametrize(
        "status",
        [
            VerificationStatus.PENDING,
            VerificationStatus.UNDER_REVIEW,
            VerificationStatus.SUSPENDED,
            VerificationStatus.REJECTED,
        ],
    )
    def test_unverified_merchant_cannot_issue(
        self, db_session, config, make_merchant, now, status
    ):
        merchant = make_merchant(verification_status=status)
        with pytest.raises(MerchantNotEligible):
            BillIssuer(db_session, config).issue_bill(merchant.id, 1000, now=now)
        assert db_session.query(Bill).count() == 0

    def test_unknown_merchant(self, db_session, config, now):
        with pytest.raises(UnknownMerchant):
            BillIssuer(db_session, config).issue_bill(uuid.uuid4(), 1000, now=now)

    def test_non_positive_amount(self, db_session, config, make_merchant, now):
        merchant = make_merchant()
        with pytest.raises(InvalidAmount):
            BillIssuer(db_session, config).issue_bill(merchant.id, 0, now=now)

    def test_amount_above_limit(self, db_session, config, make_merchant, now):
        merchant = make_merchant()
        with pytest.raises(InvalidAmount):
            BillIssuer(db_session, config).issue_bill(
                merchant.id, config.max_bill_amount + 1, now=now
            )

    def test_amount_below_minimum(self, db_session, config, make_merchant, now):
        merchant = make_merchant()
        with pytest.raises(InvalidAmount):
            BillIssuer(db_session, config).issue_bill(
                merchant.id, config.min_bill_amount - 1, now=now
            )

    def test_merchant_rate_outside_slabs(self, db_session, config, make_merchant, now):
        """A stored rate no longer offered is refused, never trusted."""
        merchant = make_merchant(discount_rate=12)
        with pytest.raises(InvalidRate):
            BillIssuer(db_session, config).issue_bill(merchant.id, 1000, now=now)

    def test_suspension_blocks_later_issuance(self, db_session, config, make_merchant, now):
        merchant = make_merchant()
        issuer = BillIssuer(db_session, config)
        issuer.issue_bill(merchant.id, 1000, now=now)

        merchant.verification_status = VerificationStatus.SUSPENDED
        db_session.commit()

        with pytest.raises(MerchantNotEligible):
            issuer.issue_bill(merchant.id, 1000, now=now)
        assert db_session.query(Bill).count() == 1


class TestCancelAndList:
    def test_cancel_active_bill(self, db_session, config, make_merchant, now):
        merchant = make_merchant()
        issuer = BillIssuer(db_session, config)
        bill = issuer.issue_bill(merchant.id, 1000, now=now)

        cancelled = issuer.cancel_bill(merchant.id, bill.id, now=now)
        assert cancelled.status == BillStatus.CANCELLED

    def test_cancel_twice_fails(self, db_session, config, make_merchant, now):
        merchant = make_merchant()
        issuer = BillIssuer(db_session, config)
        bill = issuer.issue_bill(merchant.id, 1000, now=now)
        issuer.cancel_bill(merchant.id, bill.id, now=now)

        with pytest.raises(BillNotActive):
            issuer.cancel_bill(merchant.id, bill.id, now=now)

    def test_cannot_cancel_other_merchants_bill(self, db_session, config, make_merchant, now):
        owner = make_merchant()
        other = make_merchant(business_name="Other")
        bill = BillIssuer(db_session, config).issue_bill(owner.id, 1000, now=now)

        with pytest.raises(UnknownBill):
            BillIssuer(db_session, config).cancel_bill(other.id, bill.id, now=now)

    def test_list_active_excludes_expired_and_cancelled(
        self, db_session, config, make_merchant, now
    ):
        merchant = make_merchant()
        issuer = BillIssuer(db_session, config)
        old = issuer.issue_bill(merchant.id, 1000, now=now - timedelta(minutes=30))
        cancelled = issuer.issue_bill(merchant.id, 2000, now=now)
        issuer.cancel_bill(merchant.id, cancelled.id, now=now)
        live = issuer.issue_bill(merchant.id, 3000, now=now)

        active = issuer.list_active_bills(merchant.id, now=now)
        assert [b.id for b in active] == [live.id]
        assert old.id not in [b.id for b in active]
