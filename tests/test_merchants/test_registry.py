"""Tests for merchant administration."""

from __future__ import annotations

import uuid

import pytest

from qrpay.core.errors import InvalidRate, UnknownMerchant
from qrpay.models.enums import SettlementMode, VerificationStatus
from qrpay.services.merchants.registry import MerchantRegistry


def test_register_starts_pending(db_session, config):
    merchant = MerchantRegistry(db_session, config).register("Chai Point", 6, category="CAFE")

    assert merchant.verification_status == VerificationStatus.PENDING
    assert merchant.settlement_mode == SettlementMode.PLATFORM_MANAGED
    assert merchant.is_verified is False


def test_register_rejects_unoffered_rate(db_session, config):
    with pytest.raises(InvalidRate):
        MerchantRegistry(db_session, config).register("Chai Point", 5)


def test_verification_lifecycle(db_session, config):
    registry = MerchantRegistry(db_session, config)
    merchant = registry.register("Chai Point", 6)

    registry.set_verification(merchant.id, VerificationStatus.UNDER_REVIEW)
    verified = registry.set_verification(merchant.id, VerificationStatus.VERIFIED)
    assert verified.is_verified is True

    suspended = registry.set_verification(
        merchant.id, VerificationStatus.SUSPENDED, reason="chargebacks"
    )
    assert suspended.is_verified is False
    assert suspended.payout_block_reason == "chargebacks"


def test_update_settlement_to_direct(db_session, config, make_merchant):
    merchant = make_merchant()
    updated = MerchantRegistry(db_session, config).update_settlement(
        merchant.id,
        settlement_mode=SettlementMode.DIRECT,
        payout_account_ref="acc_direct_1",
    )
    assert updated.settlement_mode == SettlementMode.DIRECT
    assert updated.direct_payout_eligible is True


def test_update_settlement_rejects_bad_rate(db_session, config, make_merchant):
    merchant = make_merchant()
    with pytest.raises(InvalidRate):
        MerchantRegistry(db_session, config).update_settlement(merchant.id, discount_rate=7)
    db_session.refresh(merchant)
    assert merchant.discount_rate == 6


def test_split_failure_revokes_direct_payout(db_session, config, make_merchant):
    merchant = make_merchant(
        settlement_mode=SettlementMode.DIRECT, payout_account_ref="acc_direct_1"
    )
    updated = MerchantRegistry(db_session, config).record_split_failure(
        merchant.id, "account closed"
    )
    assert updated.direct_payout_enabled is False
    assert updated.direct_payout_eligible is False
    assert "account closed" in updated.payout_block_reason


def test_restoring_eligibility_clears_fallback(db_session, config, make_merchant, now):
    merchant = make_merchant(
        settlement_mode=SettlementMode.DIRECT,
        payout_account_ref="acc_direct_1",
        direct_payout_enabled=False,
        direct_fallback_active=True,
        fallback_since=now,
    )
    restored = MerchantRegistry(db_session, config).set_payout_eligibility(
        merchant.id, enabled=True
    )
    assert restored.direct_fallback_active is False
    assert restored.fallback_since is None
    assert restored.payout_block_reason is None


def test_unknown_merchant(db_session, config):
    with pytest.raises(UnknownMerchant):
        MerchantRegistry(db_session, config).set_verification(
            uuid.uuid4(), VerificationStatus.VERIFIED
        )
