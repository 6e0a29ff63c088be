from __future__ import annotations

from dataclasses import dataclass
from typing import Any


ROLE_BUYER = "buyer"
ROLE_SELLER = "seller"
ROLE_ADMIN = "admin"

ROLES = frozenset({ROLE_BUYER, ROLE_SELLER, ROLE_ADMIN})


def normalize_role(value: Any) -> str | None:
    """Lowercase a role string; unknown or empty roles resolve to None."""
    low = str(value or "").strip().lower()
    if low in ("administrator", "ops"):
        low = ROLE_ADMIN
    return low if low in ROLES else None


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, threaded explicitly through every policy call."""

    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_seller(self) -> bool:
        return self.role == ROLE_SELLER

    @property
    def is_buyer(self) -> bool:
        return self.role == ROLE_BUYER
