"""HMAC-SHA256 signature checks for processor confirmations."""

from __future__ import annotations

import hashlib
import hmac

from qrpay.core.logging import get_logger

logger = get_logger(__name__)


def compute_signature(message: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of ``message`` under ``secret``."""
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def checkout_message(processor_reference: str, processor_payment_id: str) -> bytes:
    """The string the processor signs for a client checkout callback."""
    return f"{processor_reference}|{processor_payment_id}".encode("utf-8")


def verify_signature(message: bytes, signature: str, secret: str) -> bool:
    """Constant-time check of a hex signature.  Empty secret never verifies."""
    if not secret:
        logger.warning("Signature secret not configured, rejecting")
        return False
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(message, secret), signature.strip())
