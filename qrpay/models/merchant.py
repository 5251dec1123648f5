"""Merchant model: a business that issues bills and receives payouts."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from qrpay.core.database import Base
from qrpay.models.enums import SettlementMode, VerificationStatus


class Merchant(Base):
    """A merchant as known to the payment core.

    Created at onboarding, changed by administrative review, never deleted
    (only suspended).  Bills may be issued only while
    ``verification_status`` is VERIFIED.
    """

    __tablename__ = "merchants"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    business_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    category: Mapped[Optional[str]] = mapped_column(
        String(30),
        comment="RESTAURANT | CAFE | RETAIL | GROCERY | SALON | ... | OTHER",
    )
    discount_rate: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Whole percent, one of the configured discount slabs",
    )
    settlement_mode: Mapped[SettlementMode] = mapped_column(
        Enum(SettlementMode, native_enum=False, length=20),
        nullable=False,
        default=SettlementMode.PLATFORM_MANAGED,
    )
    payout_account_ref: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Processor linked-account id used for split transfers",
    )
    verification_status: Mapped[VerificationStatus] = mapped_column(
        Enum(VerificationStatus, native_enum=False, length=20),
        nullable=False,
        default=VerificationStatus.PENDING,
    )
    direct_payout_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    payout_block_reason: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    direct_fallback_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    fallback_since: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        onupdate=func.now(),
    )

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VerificationStatus.VERIFIED

    @property
    def direct_payout_eligible(self) -> bool:
        """Whether funds can be split to the merchant at payment time."""
        return (
            self.settlement_mode == SettlementMode.DIRECT
            and self.is_verified
            and self.direct_payout_enabled
            and bool(self.payout_account_ref)
        )

    def __repr__(self) -> str:
        return (
            f"<Merchant(id={self.id!r}, business_name={self.business_name!r}, "
            f"status={self.verification_status.value!r})>"
        )
