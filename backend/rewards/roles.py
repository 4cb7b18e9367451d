"""
Role tiers.

Capabilities are ordered: every tier can do everything the tiers below it can,
so "manager or higher" is a single ``>=`` comparison.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class Role(IntEnum):
    REGULAR = 1
    CASHIER = 2
    MANAGER = 3
    SUPERUSER = 4

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown role: {value}") from None


ROLE_LABELS = [role.label for role in Role]

# Roles a manager may hand out; superusers may assign any role.
MANAGER_ASSIGNABLE_ROLES = {Role.REGULAR, Role.CASHIER}


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as seen by services: who they are and their tier."""
    id: int
    utorid: str
    role: Role

    @property
    def is_manager(self) -> bool:
        return self.role >= Role.MANAGER
