"""Payment attempt and payment event models.

A ``PaymentAttempt`` is one processor order opened for a locked bill.  A
bill may see several attempts (a failure returns it to ACTIVE for retry),
but at most one attempt ever reaches SUCCEEDED.

``PaymentEvent`` is the append-only audit of what the confirmation channel
delivered, including captures that could not become an Order.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Enum, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from qrpay.core.database import Base
from qrpay.models.enums import AttemptStatus, PaymentEventKind, SettlementMode


class PaymentAttempt(Base):
    __tablename__ = "payment_attempts"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    bill_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bills.id"),
        nullable=False,
        index=True,
    )
    payer_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    processor_reference: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
    )
    processor_payment_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )
    settlement_mode: Mapped[SettlementMode] = mapped_column(
        Enum(SettlementMode, native_enum=False, length=20),
        nullable=False,
        comment="Mode in effect when the processor order was opened",
    )
    transfer_account: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    status: Mapped[AttemptStatus] = mapped_column(
        Enum(AttemptStatus, native_enum=False, length=20),
        nullable=False,
        default=AttemptStatus.CREATED,
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentAttempt(reference={self.processor_reference!r}, "
            f"status={self.status.value!r})>"
        )


class PaymentEvent(Base):
    __tablename__ = "payment_events"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    processor_reference: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    bill_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("bills.id"),
        nullable=True,
    )
    kind: Mapped[PaymentEventKind] = mapped_column(
        Enum(PaymentEventKind, native_enum=False, length=20),
        nullable=False,
    )
    detail: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentEvent(reference={self.processor_reference!r}, "
            f"kind={self.kind.value!r})>"
        )
