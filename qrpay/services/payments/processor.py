"""External payment processor client.

The core talks to the processor through ``PaymentProcessor``; the only
production implementation speaks the Razorpay Orders API over httpx.
Tests swap in a MagicMock through the ``get_processor`` dependency.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from qrpay.core.config import Settings, settings
from qrpay.core.errors import ProcessorError
from qrpay.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Transfer:
    """A split of the captured amount to a merchant's linked account."""

    account: str
    amount: int


@dataclass(frozen=True)
class ProcessorOrder:
    reference: str
    amount: int
    currency: str
    status: str = "created"
    raw: dict[str, Any] = field(default_factory=dict)


class PaymentProcessor(ABC):
    """Interface every processor integration must implement."""

    name: str

    @abstractmethod
    def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
        transfers: Optional[list[Transfer]] = None,
    ) -> ProcessorOrder:
        """Open a processor order for ``amount`` minor units.

        Raises:
            ProcessorError: The processor could not be reached or refused.
        """

    @abstractmethod
    def checkout_params(self, reference: str, amount: int, currency: str) -> dict:
        """Parameters the payer's client needs to authorize the payment."""


class RazorpayProcessor(PaymentProcessor):
    """Razorpay Orders API (with Route transfers for direct settlement)."""

    name = "razorpay"

    def __init__(self, config: Settings, client: Optional[httpx.Client] = None) -> None:
        self.config = config
        self.client = client or httpx.Client(
            base_url=config.processor_base_url,
            auth=(config.processor_key_id, config.processor_key_secret),
            timeout=config.processor_timeout_seconds,
        )

    def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
        transfers: Optional[list[Transfer]] = None,
    ) -> ProcessorOrder:
        body: dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        if transfers:
            body["transfers"] = [
                {
                    "account": t.account,
                    "amount": t.amount,
                    "currency": currency,
                    "on_hold": False,
                }
                for t in transfers
            ]

        try:
            response = self.client.post("/orders", json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Processor rejected order: status=%d receipt=%s",
                exc.response.status_code,
                receipt,
            )
            raise ProcessorError() from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Processor unreachable: receipt=%s error=%s", receipt, exc)
            raise ProcessorError() from exc

        if "id" not in data:
            raise ProcessorError("Processor response had no order id.")

        return ProcessorOrder(
            reference=data["id"],
            amount=int(data.get("amount", amount)),
            currency=data.get("currency", currency),
            status=data.get("status", "created"),
            raw=data,
        )

    def checkout_params(self, reference: str, amount: int, currency: str) -> dict:
        return {
            "processor": self.name,
            "key": self.config.processor_key_id,
            "order_id": reference,
            "amount": amount,
            "currency": currency,
        }


def get_processor() -> PaymentProcessor:
    """FastAPI dependency returning the configured processor client."""
    return RazorpayProcessor(settings)
