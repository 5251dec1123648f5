"""Request-scoped dependencies shared by the routers.

Authentication happens upstream; by the time a request reaches us the
gateway has resolved the caller to a principal id and a role and passes
them in the ``X-Principal-Id`` / ``X-Principal-Role`` headers.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, HTTPException

ROLES = ("payer", "merchant", "admin")


@dataclass(frozen=True)
class Principal:
    id: str
    role: str

    def owns_merchant(self, merchant_id: UUID) -> bool:
        return self.role == "admin" or (
            self.role == "merchant" and self.id == str(merchant_id)
        )


def get_principal(
    x_principal_id: str = Header(..., min_length=1, max_length=100),
    x_principal_role: str = Header(...),
) -> Principal:
    role = x_principal_role.strip().lower()
    if role not in ROLES:
        raise HTTPException(status_code=401, detail="Unknown principal role")
    return Principal(id=x_principal_id.strip(), role=role)


def require_role(*roles: str):
    """Dependency factory that admits only the given roles."""

    def _check(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=403, detail="Not allowed for this role")
        return principal

    return _check


def ensure_merchant_access(principal: Principal, merchant_id: UUID) -> None:
    if not principal.owns_merchant(merchant_id):
        raise HTTPException(status_code=403, detail="Not allowed for this merchant")
