"""Closed status and mode types shared by the ORM models.

Each status enum knows which statuses it may move to.  Services must go
through ``ensure_transition`` before issuing a conditional update, so an
illegal move (e.g. PAID -> ACTIVE) fails before it ever reaches the DB.
"""

from __future__ import annotations

import enum


class BillStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    LOCKED = "LOCKED"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[BillStatus][self.value]


class AttemptStatus(str, enum.Enum):
    CREATED = "CREATED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class SettlementStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class SettlementMode(str, enum.Enum):
    PLATFORM_MANAGED = "PLATFORM_MANAGED"
    DIRECT = "DIRECT"


class VerificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    VERIFIED = "VERIFIED"
    SUSPENDED = "SUSPENDED"
    REJECTED = "REJECTED"


class ConfirmationOutcome(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class PaymentEventKind(str, enum.Enum):
    INITIATED = "INITIATED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    DUPLICATE = "DUPLICATE"
    # Funds captured but no Order can be written; needs a refund.
    LATE_CAPTURE = "LATE_CAPTURE"
    ORPHAN_CAPTURE = "ORPHAN_CAPTURE"


_TRANSITIONS: dict[type, dict[str, frozenset]] = {
    BillStatus: {
        "ACTIVE": frozenset({"LOCKED", "EXPIRED", "CANCELLED"}),
        "LOCKED": frozenset({"PAID", "ACTIVE", "EXPIRED"}),
        "PAID": frozenset(),
        "EXPIRED": frozenset(),
        "CANCELLED": frozenset(),
    },
    AttemptStatus: {
        "CREATED": frozenset({"SUCCEEDED", "FAILED"}),
        "SUCCEEDED": frozenset(),
        "FAILED": frozenset(),
    },
    SettlementStatus: {
        "PENDING": frozenset({"PAID"}),
        "PAID": frozenset(),
    },
}


def can_transition(current: enum.Enum, target: enum.Enum) -> bool:
    """Return True when ``current -> target`` is a legal move."""
    if type(current) is not type(target):
        return False
    table = _TRANSITIONS.get(type(current), {})
    return target.value in table.get(current.value, frozenset())


def ensure_transition(current: enum.Enum, target: enum.Enum) -> None:
    """Raise ``ValueError`` for an illegal status move."""
    if not can_transition(current, target):
        raise ValueError(
            f"Illegal transition {current.value} -> {target.value}"
        )
