"""
AuditorService -- system-wide compliance audit log.

Responsibility:
    Creates append-only audit log rows for every create/update/delete of
    a lifecycle record and answers trace queries for a single record.

Architecture position:
    Kernel > Services -- imperative shell, called by the
    TransactionCoordinator inside its atomic unit.

Invariants enforced:
    - Flush-only: never commits, so the audit row is visible iff the
      domain mutation it describes is committed.
    - Values are stored as JSON-safe primitives (UUID, Decimal, date and
      Enum are stringified) so the log is portable across backends.

Failure modes:
    - IntegrityError / OperationalError from flush propagate to the caller,
      which rolls back the whole unit.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from assetflow_kernel.domain.clock import Clock, SystemClock
from assetflow_kernel.logging_config import get_logger
from assetflow_kernel.models.audit_log import AuditAction, AuditLogModel

logger = get_logger("services.auditor")


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable view of one audit log row."""

    id: UUID
    actor_id: UUID
    action: AuditAction
    table_name: str
    record_id: UUID
    business_unit_id: UUID | None
    old_values: dict[str, Any] | None
    new_values: dict[str, Any] | None
    occurred_at: datetime

    @classmethod
    def from_model(cls, model: AuditLogModel) -> "AuditLogEntry":
        return cls(
            id=model.id,
            actor_id=model.actor_id,
            action=AuditAction(model.action),
            table_name=model.table_name,
            record_id=model.record_id,
            business_unit_id=model.business_unit_id,
            old_values=model.old_values,
            new_values=model.new_values,
            occurred_at=model.occurred_at,
        )


@dataclass(frozen=True)
class AuditTrace:
    """All audit entries for one record, oldest first."""

    table_name: str
    record_id: UUID
    entries: tuple[AuditLogEntry, ...]


class AuditorService:
    """
    Writes and reads compliance audit log rows.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def record(
        self,
        *,
        action: AuditAction,
        table_name: str,
        record_id: UUID,
        actor_id: UUID,
        business_unit_id: UUID | None = None,
        old_values: Mapping[str, Any] | None = None,
        new_values: Mapping[str, Any] | None = None,
    ) -> AuditLogEntry:
        """Append one audit row and flush it into the current transaction."""
        model = AuditLogModel(
            actor_id=actor_id,
            action=action.value,
            table_name=table_name,
            record_id=record_id,
            business_unit_id=business_unit_id,
            old_values=_jsonable(old_values) if old_values is not None else None,
            new_values=_jsonable(new_values) if new_values is not None else None,
            occurred_at=self._clock.now(),
        )
        self.session.add(model)
        self.session.flush()

        logger.debug(
            "audit_log_recorded",
            extra={
                "audit_action": action.value,
                "table_name": table_name,
                "record_id": str(record_id),
            },
        )
        return AuditLogEntry.from_model(model)

    def get_trace(self, table_name: str, record_id: UUID) -> AuditTrace:
        """Return every audit row for a record in insertion order."""
        rows = self.session.scalars(
            select(AuditLogModel)
            .where(
                AuditLogModel.table_name == table_name,
                AuditLogModel.record_id == record_id,
            )
            .order_by(AuditLogModel.occurred_at, AuditLogModel.id)
        ).all()
        return AuditTrace(
            table_name=table_name,
            record_id=record_id,
            entries=tuple(AuditLogEntry.from_model(r) for r in rows),
        )
