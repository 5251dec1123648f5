"""Domain error taxonomy.

Every error carries the HTTP status the API should answer with, a stable
machine-readable ``code`` and a ``message`` that is safe to show a payer.
Services raise these; ``qrpay.main`` turns them into JSON responses.
"""

from __future__ import annotations

from typing import Optional


class QRPayError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400
    code: str = "error"
    message: str = "Request could not be processed."

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


# -- Validation and gate failures (returned to the caller) --


class InvalidAmount(QRPayError):
    status_code = 422
    code = "invalid_amount"
    message = "Amount must be a positive whole number of minor units."


class InvalidRate(QRPayError):
    status_code = 422
    code = "invalid_rate"
    message = "Discount rate is not one of the allowed rates."


class MerchantNotEligible(QRPayError):
    status_code = 403
    code = "merchant_not_eligible"
    message = "This merchant cannot accept payments right now."


class MalformedToken(QRPayError):
    status_code = 400
    code = "malformed_token"
    message = "This code could not be read, please rescan."


class BillExpired(QRPayError):
    status_code = 410
    code = "bill_expired"
    message = "This code has expired, please rescan."


class BillNotActive(QRPayError):
    status_code = 409
    code = "bill_not_active"
    message = "This code has already been used."


class NotBillOwner(QRPayError):
    status_code = 403
    code = "not_bill_owner"
    message = "This bill is not reserved for you."


class PaymentInitiationFailed(QRPayError):
    status_code = 502
    code = "payment_failed"
    message = "Payment failed, no funds moved. Please retry."


# -- Lookup failures --


class UnknownMerchant(QRPayError):
    status_code = 404
    code = "unknown_merchant"
    message = "Merchant not found."


class UnknownBill(QRPayError):
    status_code = 404
    code = "unknown_bill"
    message = "Bill not found."


class UnknownOrder(QRPayError):
    status_code = 404
    code = "unknown_order"
    message = "Order not found."


class UnknownSettlement(QRPayError):
    status_code = 404
    code = "unknown_settlement"
    message = "Settlement not found."


# -- Ledger / settlement --


class AlreadySettled(QRPayError):
    status_code = 409
    code = "already_settled"
    message = "Order is already part of a settlement."


class AlreadyPaid(QRPayError):
    status_code = 409
    code = "already_paid"
    message = "Settlement is already marked as paid."


# -- Confirmation channel (never surfaced to the payer) --


class InvalidSignature(QRPayError):
    status_code = 400
    code = "invalid_signature"
    message = "Signature verification failed."


class ProcessorError(QRPayError):
    """The external payment processor rejected or failed a request."""

    status_code = 502
    code = "processor_error"
    message = "Payment processor request failed."
