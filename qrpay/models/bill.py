"""Bill model: one pending, single-use, expiring discounted charge."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from qrpay.core.database import Base
from qrpay.models.enums import BillStatus


class Bill(Base):
    """A bill presented by a merchant as a scannable token.

    Amounts are integer minor currency units.  The discount is computed
    once at issuance and never recomputed: what the payer sees at
    redemption is exactly what is charged and ledgered.

    Status moves forward only through conditional updates (see
    ``qrpay.services.billing.transitions``).  Rows are retained after
    expiry for audit.
    """

    __tablename__ = "bills"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    merchant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("merchants.id"),
        nullable=False,
        index=True,
    )
    gross_amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    discount_rate: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    discount_amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    net_payable: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
    )
    token: Mapped[str] = mapped_column(
        String(512),
        unique=True,
        nullable=False,
    )
    status: Mapped[BillStatus] = mapped_column(
        Enum(BillStatus, native_enum=False, length=20),
        nullable=False,
        default=BillStatus.ACTIVE,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        index=True,
    )
    locked_by: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Payer principal holding the redemption lock",
    )
    locked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    processor_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Processor order id of the current payment attempt",
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    # -- Relationships --
    merchant: Mapped[Merchant] = relationship(
        "Merchant",
        lazy="joined",
    )

    __table_args__ = (
        Index("ix_bills_status_expires", "status", "expires_at"),
        Index("ix_bills_merchant_created", "merchant_id", "created_at"),
    )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def __repr__(self) -> str:
        return (
            f"<Bill(id={self.id!r}, gross={self.gross_amount}, "
            f"status={self.status.value!r})>"
        )
