from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Role(StrEnum):
    ADMIN = "admin"
    SALES_REP = "sales_rep"


@dataclass(frozen=True, slots=True)
class Principal:
    """Trusted identity, role and account for one request.

    Role and account always come from the local user store, never from claims
    carried by the credential artifact.
    """

    user_id: int
    account_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
