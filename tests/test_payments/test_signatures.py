"""Unit tests for confirmation signature helpers."""

from __future__ import annotations

import hashlib
import hmac

from qrpay.services.payments.signatures import (
    checkout_message,
    compute_signature,
    verify_signature,
)


def test_compute_signature_is_hex_hmac_sha256():
    expected = hmac.new(b"secret", b"payload", hashlib.sha256).hexdigest()
    assert compute_signature(b"payload", "secret") == expected


def test_checkout_message_format():
    assert checkout_message("order_1", "pay_1") == b"order_1|pay_1"


def test_verify_accepts_matching_signature():
    signature = compute_signature(b"payload", "secret")
    assert verify_signature(b"payload", signature, "secret") is True


def test_verify_rejects_other_secret_or_body():
    signature = compute_signature(b"payload", "secret")
    assert verify_signature(b"payload", signature, "other") is False
    assert verify_signature(b"payload2", signature, "secret") is False


def test_empty_secret_never_verifies():
    """An unconfigured secret must not turn into 'sign with empty key'."""
    signature = compute_signature(b"payload", "")
    assert verify_signature(b"payload", signature, "") is False


def test_empty_signature_never_verifies():
    assert verify_signature(b"payload", "", "secret") is False
