"""Settlement model: one payout computation for a merchant and period."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from qrpay.core.database import Base
from qrpay.models.enums import SettlementMode, SettlementStatus


class Settlement(Base):
    """Aggregate of a merchant's previously unsettled orders in a period.

    Each order is reconciled by the mode it was paid under.  Orders the
    platform collected make up ``payable_total``; orders whose split already
    reached the merchant are reported in ``direct_paid_total`` and owe
    nothing.  ``payout_method`` is DIRECT only when nothing is payable by the
    platform and the merchant is not in fallback.
    """

    __tablename__ = "settlements"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    merchant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("merchants.id"),
        nullable=False,
        index=True,
    )
    period_start: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    period_end: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    order_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    gross_total: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
    )
    fee_total: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
    )
    payable_total: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
    )
    direct_paid_total: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        comment="merchant_net already paid out through split transfers",
    )
    payout_method: Mapped[SettlementMode] = mapped_column(
        Enum(SettlementMode, native_enum=False, length=20),
        nullable=False,
    )
    fallback_applied: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    status: Mapped[SettlementStatus] = mapped_column(
        Enum(SettlementStatus, native_enum=False, length=20),
        nullable=False,
        default=SettlementStatus.PENDING,
    )
    payout_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    # -- Relationships --
    orders: Mapped[list[Order]] = relationship(
        "Order",
        back_populates="settlement",
        lazy="select",
    )

    def __repr__(self) -> str:
        return (
            f"<Settlement(id={self.id!r}, payable={self.payable_total}, "
            f"status={self.status.value!r})>"
        )
