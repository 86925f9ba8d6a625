"""
Principal and PermissionSet -- explicit authorization values.

Responsibility:
    Represent the authenticated actor and its capabilities as immutable
    values.  A principal is resolved once per request by the identity
    collaborator and passed explicitly into every guard check; nothing
    looks permissions up ad hoc from a mutable role map.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - PermissionSet is frozen; membership tests are the only operations.
    - A principal without an actor id cannot be constructed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable
from uuid import UUID


@dataclass(frozen=True)
class PermissionSet:
    """Immutable set of permission strings (e.g. ``deployments:approve``)."""

    permissions: frozenset[str] = frozenset()

    @classmethod
    def of(cls, *permissions: str) -> PermissionSet:
        return cls(frozenset(permissions))

    def has(self, permission: str) -> bool:
        return permission in self.permissions

    def has_any(self, permissions: Iterable[str]) -> bool:
        return any(p in self.permissions for p in permissions)


@dataclass(frozen=True)
class Principal:
    """The authenticated actor performing an operation.

    ``business_unit_id`` of None means the principal is not scoped to a
    single business unit (e.g. a super administrator).
    """

    actor_id: UUID
    role_code: str | None = None
    business_unit_id: UUID | None = None
    permissions: PermissionSet = field(default_factory=PermissionSet)
    is_active: bool = True
    display_name: str | None = None

    def __post_init__(self) -> None:
        if self.actor_id is None:
            raise ValueError("Principal requires an actor_id")

    def can_access(self, business_unit_id: UUID | None) -> bool:
        """True if records of ``business_unit_id`` are visible to this principal."""
        if self.business_unit_id is None:
            return True
        return business_unit_id == self.business_unit_id
