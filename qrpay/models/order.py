"""Order model: the immutable ledger row for one paid bill."""

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
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from qrpay.core.database import Base
from qrpay.models.enums import SettlementMode


class Order(Base):
    """One completed transaction, written exactly once per paid bill.

    Money identity: ``discount_amount + platform_fee + merchant_net ==
    gross_amount`` and ``net_paid == gross_amount - discount_amount``.

    Nothing on this row changes after insert except ``settlement_id`` /
    ``settled_at``, which are set once by the settlement engine.
    """

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    bill_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bills.id"),
        unique=True,
        nullable=False,
    )
    merchant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("merchants.id"),
        nullable=False,
        index=True,
    )
    payer_id: Mapped[str] = mapped_column(
        String(100),
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
    platform_fee: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    net_paid: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Amount charged to the payer",
    )
    merchant_net: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="net_paid - platform_fee, owed to the merchant",
    )
    currency: Mapped[str] = mapped_column(
        String(3),
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
    settlement_mode: Mapped[SettlementMode] = mapped_column(
        Enum(SettlementMode, native_enum=False, length=20),
        nullable=False,
    )
    settlement_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("settlements.id"),
        nullable=True,
        index=True,
    )
    settled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    paid_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    # -- Relationships --
    settlement: Mapped[Optional[Settlement]] = relationship(
        "Settlement",
        back_populates="orders",
        lazy="select",
    )

    __table_args__ = (
        Index("ix_orders_merchant_paid", "merchant_id", "paid_at"),
        Index("ix_orders_payer_paid", "payer_id", "paid_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id!r}, gross={self.gross_amount}, "
            f"net_paid={self.net_paid}, settlement_id={self.settlement_id!r})>"
        )
