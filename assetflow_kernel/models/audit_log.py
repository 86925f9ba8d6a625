"""
Module: assetflow_kernel.models.audit_log
Responsibility: ORM persistence for the system-wide compliance audit log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: entries are inserted by AuditorService and never updated.
    - Exactly one entry per mutating lifecycle operation, written in the
      same transaction as the domain mutation.

Audit relevance:
    AuditLogModel IS the compliance trail.  old_values/new_values record
    the before/after images of the mutated record as JSON.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from assetflow_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Mutation kinds recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditLogModel(Base):
    """
    One compliance audit record.

    Table: ``audit_logs``
    """

    __tablename__ = "audit_logs"

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False)
    record_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    business_unit_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    old_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    __table_args__ = (
        Index("idx_audit_logs_record", "table_name", "record_id"),
        Index("idx_audit_logs_actor", "actor_id"),
        Index("idx_audit_logs_occurred_at", "occurred_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLogModel(id={self.id!r}, action={self.action!r}, "
            f"table={self.table_name!r}, record_id={self.record_id!r})>"
        )
