"""SQLAlchemy models for the QR bill payment core."""

from qrpay.models.merchant import Merchant
from qrpay.models.bill import Bill
from qrpay.models.payment import PaymentAttempt, PaymentEvent
from qrpay.models.order import Order
from qrpay.models.settlement import Settlement

__all__ = [
    "Merchant",
    "Bill",
    "PaymentAttempt",
    "PaymentEvent",
    "Order",
    "Settlement",
]
