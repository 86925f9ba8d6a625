"""
Asset Lifecycle ORM Models (``assetflow_modules.assets.orm``).

Responsibility
--------------
SQLAlchemy persistence models for assets, deployments, retirements,
disposals, transfers, maintenance records, status history and
units-of-production usage.  Maps the frozen
domain dataclasses from ``models.py`` to database tables.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``assetflow_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``assetflow_kernel``.

Invariants enforced
-------------------
* One open deployment per asset: partial unique index on
  ``assets_deployments.asset_id`` over the open statuses (PostgreSQL and
  SQLite both honour ``*_where``).
* At most one retirement and one disposal per asset (unique ``asset_id``).
* One open transfer per asset, by the same partial-index technique on
  ``assets_transfers.asset_id``.
* Relationships are plain foreign-key ids; no ORM back-references, so no
  in-memory object cycles between asset, deployment and history.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from assetflow_kernel.db.base import TrackedBase
from assetflow_modules.assets.models import OPEN_DEPLOYMENT_STATUSES, OPEN_TRANSFER_STATUSES


def _status_in(statuses: tuple[str, ...]):
    return text("status IN ({})".format(", ".join(f"'{s}'" for s in statuses)))


_OPEN_DEPLOYMENT_PREDICATE = _status_in(OPEN_DEPLOYMENT_STATUSES)
_OPEN_TRANSFER_PREDICATE = _status_in(OPEN_TRANSFER_STATUSES)


# ---------------------------------------------------------------------------
# AssetModel
# ---------------------------------------------------------------------------

class AssetModel(TrackedBase):
    """
    ORM model for ``Asset``.

    Table: ``assets_assets``
    """

    __tablename__ = "assets_assets"

    business_unit_id: Mapped[UUID]
    item_code: Mapped[str] = mapped_column(String(100))
    description: Mapped[str] = mapped_column(String(500))
    serial_number: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(30), default="AVAILABLE")
    purchase_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    salvage_value: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    useful_life_months: Mapped[int | None] = mapped_column(nullable=True)
    depreciation_method: Mapped[str] = mapped_column(String(30), default="STRAIGHT_LINE")
    purchase_date: Mapped[date | None] = mapped_column(nullable=True)
    total_expected_units: Mapped[Decimal | None] = mapped_column(nullable=True)
    currently_assigned_to: Mapped[UUID | None] = mapped_column(nullable=True)
    current_deployment_id: Mapped[UUID | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True)

    __table_args__ = (
        UniqueConstraint("business_unit_id", "item_code", name="uq_assets_assets_item_code"),
        Index("idx_assets_assets_business_unit_status", "business_unit_id", "status"),
    )

    def to_dto(self):
        from assetflow_engines.depreciation import DepreciationMethod
        from assetflow_modules.assets.models import Asset, AssetStatus
        return Asset(
            id=self.id,
            business_unit_id=self.business_unit_id,
            item_code=self.item_code,
            description=self.description,
            status=AssetStatus(self.status),
            purchase_price=self.purchase_price,
            salvage_value=self.salvage_value,
            useful_life_months=self.useful_life_months,
            depreciation_method=DepreciationMethod(self.depreciation_method),
            purchase_date=self.purchase_date,
            total_expected_units=self.total_expected_units,
            serial_number=self.serial_number,
            currently_assigned_to=self.currently_assigned_to,
            current_deployment_id=self.current_deployment_id,
            is_active=self.is_active,
        )

    @classmethod
    def from_registration(cls, dto, business_unit_id: UUID, created_by_id: UUID) -> "AssetModel":
        return cls(
            business_unit_id=business_unit_id,
            item_code=dto.item_code,
            description=dto.description,
            serial_number=dto.serial_number,
            status="AVAILABLE",
            purchase_price=dto.purchase_price,
            salvage_value=dto.salvage_value,
            useful_life_months=dto.useful_life_months,
            depreciation_method=dto.depreciation_method.value,
            purchase_date=dto.purchase_date,
            total_expected_units=dto.total_expected_units,
            is_active=True,
            created_by_id=created_by_id,
        )

    def snapshot(self) -> dict[str, Any]:
        """Fields recorded in audit old/new images."""
        return {
            "status": self.status,
            "business_unit_id": self.business_unit_id,
            "currently_assigned_to": self.currently_assigned_to,
            "current_deployment_id": self.current_deployment_id,
        }

    def __repr__(self) -> str:
        return (
            f"<AssetModel(id={self.id!r}, item_code={self.item_code!r}, "
            f"status={self.status!r})>"
        )


# ---------------------------------------------------------------------------
# DeploymentModel
# ---------------------------------------------------------------------------

class DeploymentModel(TrackedBase):
    """
    ORM model for ``Deployment``.

    Table: ``assets_deployments``
    """

    __tablename__ = "assets_deployments"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    employee_id: Mapped[UUID]
    business_unit_id: Mapped[UUID]
    transmittal_number: Mapped[str] = mapped_column(String(30))
    status: Mapped[str] = mapped_column(
        String(40), default="PENDING_ACCOUNTING_APPROVAL",
    )
    expected_return_date: Mapped[date | None] = mapped_column(nullable=True)
    deployed_date: Mapped[date | None] = mapped_column(nullable=True)
    returned_date: Mapped[date | None] = mapped_column(nullable=True)
    deployment_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    return_condition: Mapped[str | None] = mapped_column(String(50), nullable=True)
    return_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    accounting_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    accounting_approver_id: Mapped[UUID | None] = mapped_column(nullable=True)
    accounting_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("transmittal_number", name="uq_assets_deployments_transmittal"),
        Index(
            "uq_assets_deployments_open_asset",
            "asset_id",
            unique=True,
            sqlite_where=_OPEN_DEPLOYMENT_PREDICATE,
            postgresql_where=_OPEN_DEPLOYMENT_PREDICATE,
        ),
        Index("idx_assets_deployments_business_unit_status", "business_unit_id", "status"),
    )

    def to_dto(self):
        from assetflow_modules.assets.models import Deployment, DeploymentStatus
        return Deployment(
            id=self.id,
            asset_id=self.asset_id,
            employee_id=self.employee_id,
            business_unit_id=self.business_unit_id,
            transmittal_number=self.transmittal_number,
            status=DeploymentStatus(self.status),
            expected_return_date=self.expected_return_date,
            deployed_date=self.deployed_date,
            returned_date=self.returned_date,
            deployment_notes=self.deployment_notes,
            return_condition=self.return_condition,
            return_notes=self.return_notes,
            accounting_notes=self.accounting_notes,
            accounting_approver_id=self.accounting_approver_id,
            accounting_approved_at=self.accounting_approved_at,
        )

    def snapshot(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "accounting_notes": self.accounting_notes,
            "deployed_date": self.deployed_date,
            "returned_date": self.returned_date,
        }

    def __repr__(self) -> str:
        return (
            f"<DeploymentModel(id={self.id!r}, asset_id={self.asset_id!r}, "
            f"status={self.status!r})>"
        )


# ---------------------------------------------------------------------------
# RetirementModel
# ---------------------------------------------------------------------------

class RetirementModel(TrackedBase):
    """
    ORM model for ``Retirement``.

    Table: ``assets_retirements``
    """

    __tablename__ = "assets_retirements"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    business_unit_id: Mapped[UUID]
    retirement_date: Mapped[date]
    reason: Mapped[str] = mapped_column(String(50))
    condition: Mapped[str | None] = mapped_column(String(50), nullable=True)
    disposal_planned: Mapped[bool] = mapped_column(default=False)
    disposal_date: Mapped[date | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("asset_id", name="uq_assets_retirements_asset"),
        Index("idx_assets_retirements_business_unit", "business_unit_id"),
    )

    def to_dto(self):
        from assetflow_modules.assets.models import (
            AssetCondition,
            Retirement,
            RetirementReason,
        )
        return Retirement(
            id=self.id,
            asset_id=self.asset_id,
            business_unit_id=self.business_unit_id,
            retirement_date=self.retirement_date,
            reason=RetirementReason(self.reason),
            condition=AssetCondition(self.condition) if self.condition else None,
            disposal_planned=self.disposal_planned,
            disposal_date=self.disposal_date,
            notes=self.notes,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
        )

    @property
    def approval_state(self) -> str:
        return "APPROVED" if self.approved_at is not None else "PENDING_APPROVAL"

    def snapshot(self) -> dict[str, Any]:
        return {
            "reason": self.reason,
            "disposal_planned": self.disposal_planned,
            "notes": self.notes,
            "approved_by_id": self.approved_by_id,
            "approved_at": self.approved_at,
        }

    def __repr__(self) -> str:
        return (
            f"<RetirementModel(id={self.id!r}, asset_id={self.asset_id!r}, "
            f"approved={self.approved_at is not None!r})>"
        )


# ---------------------------------------------------------------------------
# DisposalModel
# ---------------------------------------------------------------------------

class DisposalModel(TrackedBase):
    """
    ORM model for ``Disposal``.

    Table: ``assets_disposals``
    """

    __tablename__ = "assets_disposals"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    business_unit_id: Mapped[UUID]
    retirement_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("assets_retirements.id"), nullable=True,
    )
    disposal_date: Mapped[date]
    reason: Mapped[str] = mapped_column(String(50))
    disposal_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    disposal_value: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    disposal_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    book_value_at_disposal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    gain_loss: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("asset_id", name="uq_assets_disposals_asset"),
        Index("idx_assets_disposals_business_unit", "business_unit_id"),
    )

    def to_dto(self):
        from assetflow_modules.assets.models import Disposal, DisposalReason
        return Disposal(
            id=self.id,
            asset_id=self.asset_id,
            business_unit_id=self.business_unit_id,
            disposal_date=self.disposal_date,
            reason=DisposalReason(self.reason),
            disposal_method=self.disposal_method,
            disposal_value=self.disposal_value,
            disposal_cost=self.disposal_cost,
            book_value_at_disposal=self.book_value_at_disposal,
            gain_loss=self.gain_loss,
            retirement_id=self.retirement_id,
            notes=self.notes,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
        )

    @property
    def approval_state(self) -> str:
        return "APPROVED" if self.approved_at is not None else "PENDING_APPROVAL"

    def snapshot(self) -> dict[str, Any]:
        return {
            "reason": self.reason,
            "disposal_value": self.disposal_value,
            "gain_loss": self.gain_loss,
            "approved_by_id": self.approved_by_id,
            "approved_at": self.approved_at,
        }

    def __repr__(self) -> str:
        return (
            f"<DisposalModel(id={self.id!r}, asset_id={self.asset_id!r}, "
            f"gain_loss={self.gain_loss!r})>"
        )


# ---------------------------------------------------------------------------
# AssetHistoryModel
# ---------------------------------------------------------------------------

class AssetHistoryModel(TrackedBase):
    """
    ORM model for ``AssetHistoryEntry`` -- append-only status history.

    Table: ``assets_history``
    """

    __tablename__ = "assets_history"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    business_unit_id: Mapped[UUID]
    action: Mapped[str] = mapped_column(String(30))
    previous_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    performed_by_id: Mapped[UUID]
    performed_at: Mapped[datetime]
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    deployment_id: Mapped[UUID | None] = mapped_column(nullable=True)
    employee_id: Mapped[UUID | None] = mapped_column(nullable=True)
    start_date: Mapped[date | None] = mapped_column(nullable=True)
    end_date: Mapped[date | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_assets_history_asset", "asset_id", "performed_at"),
        Index("idx_assets_history_deployment", "deployment_id"),
    )

    def to_dto(self):
        from assetflow_modules.assets.models import (
            AssetHistoryEntry,
            AssetStatus,
            HistoryAction,
        )
        return AssetHistoryEntry(
            id=self.id,
            asset_id=self.asset_id,
            business_unit_id=self.business_unit_id,
            action=HistoryAction(self.action),
            previous_status=AssetStatus(self.previous_status) if self.previous_status else None,
            new_status=AssetStatus(self.new_status) if self.new_status else None,
            performed_by_id=self.performed_by_id,
            performed_at=self.performed_at,
            notes=self.notes,
            details=self.details,
            deployment_id=self.deployment_id,
            employee_id=self.employee_id,
            start_date=self.start_date,
            end_date=self.end_date,
        )

    def __repr__(self) -> str:
        return (
            f"<AssetHistoryModel(id={self.id!r}, asset_id={self.asset_id!r}, "
            f"action={self.action!r})>"
        )


# ---------------------------------------------------------------------------
# AssetUsageModel
# ---------------------------------------------------------------------------

class AssetUsageModel(TrackedBase):
    """
    ORM model for ``AssetUsage`` -- units-of-production usage per period.

    Table: ``assets_usage``
    """

    __tablename__ = "assets_usage"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    period: Mapped[int]
    units: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint("asset_id", "period", name="uq_assets_usage_asset_period"),
    )

    def to_dto(self):
        from assetflow_modules.assets.models import AssetUsage
        return AssetUsage(
            id=self.id,
            asset_id=self.asset_id,
            period=self.period,
            units=self.units,
        )

    def __repr__(self) -> str:
        return (
            f"<AssetUsageModel(asset_id={self.asset_id!r}, period={self.period!r}, "
            f"units={self.units!r})>"
        )


# ---------------------------------------------------------------------------
# TransferModel
# ---------------------------------------------------------------------------

class TransferModel(TrackedBase):
    """
    ORM model for ``Transfer`` -- asset moves between business units.

    Table: ``assets_transfers``
    """

    __tablename__ = "assets_transfers"

    transfer_number: Mapped[str] = mapped_column(String(30))
    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    from_business_unit_id: Mapped[UUID]
    to_business_unit_id: Mapped[UUID]
    from_location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    to_location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    transfer_date: Mapped[date]
    reason: Mapped[str] = mapped_column(String(1000))
    transfer_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    condition_before: Mapped[str | None] = mapped_column(String(50), nullable=True)
    condition_after: Mapped[str | None] = mapped_column(String(50), nullable=True)
    transfer_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    transfer_notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    status: Mapped[str] = mapped_column(String(30), default="PENDING_APPROVAL")
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(nullable=True)
    received_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    completed_date: Mapped[date | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("transfer_number", name="uq_assets_transfers_number"),
        Index(
            "uq_assets_transfers_open_asset",
            "asset_id",
            unique=True,
            sqlite_where=_OPEN_TRANSFER_PREDICATE,
            postgresql_where=_OPEN_TRANSFER_PREDICATE,
        ),
        Index("idx_assets_transfers_from_unit", "from_business_unit_id", "status"),
        Index("idx_assets_transfers_to_unit", "to_business_unit_id", "status"),
    )

    def to_dto(self):
        from assetflow_modules.assets.models import AssetCondition, Transfer, TransferStatus
        return Transfer(
            id=self.id,
            transfer_number=self.transfer_number,
            asset_id=self.asset_id,
            from_business_unit_id=self.from_business_unit_id,
            to_business_unit_id=self.to_business_unit_id,
            transfer_date=self.transfer_date,
            reason=self.reason,
            status=TransferStatus(self.status),
            from_location=self.from_location,
            to_location=self.to_location,
            transfer_method=self.transfer_method,
            tracking_number=self.tracking_number,
            condition_before=AssetCondition(self.condition_before) if self.condition_before else None,
            condition_after=AssetCondition(self.condition_after) if self.condition_after else None,
            transfer_cost=self.transfer_cost,
            transfer_notes=self.transfer_notes,
            requested_by_id=self.created_by_id,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            rejection_reason=self.rejection_reason,
            dispatched_at=self.dispatched_at,
            received_by_id=self.received_by_id,
            completed_date=self.completed_date,
        )

    def snapshot(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "approved_by_id": self.approved_by_id,
            "transfer_notes": self.transfer_notes,
            "completed_date": self.completed_date,
        }

    def __repr__(self) -> str:
        return (
            f"<TransferModel(id={self.id!r}, number={self.transfer_number!r}, "
            f"status={self.status!r})>"
        )


# ---------------------------------------------------------------------------
# MaintenanceRecordModel
# ---------------------------------------------------------------------------

class MaintenanceRecordModel(TrackedBase):
    """
    ORM model for ``MaintenanceRecord``.

    Table: ``assets_maintenance``
    """

    __tablename__ = "assets_maintenance"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    business_unit_id: Mapped[UUID]
    maintenance_type: Mapped[str] = mapped_column(String(30))
    description: Mapped[str] = mapped_column(String(1000))
    status: Mapped[str] = mapped_column(String(30), default="SCHEDULED")
    scheduled_date: Mapped[date]
    start_date: Mapped[date | None] = mapped_column(nullable=True)
    completed_date: Mapped[date | None] = mapped_column(nullable=True)
    performed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    __table_args__ = (
        Index("idx_assets_maintenance_asset", "asset_id"),
        Index("idx_assets_maintenance_schedule", "business_unit_id", "status", "scheduled_date"),
    )

    def to_dto(self):
        from assetflow_modules.assets.models import (
            MaintenanceRecord,
            MaintenanceStatus,
            MaintenanceType,
        )
        return MaintenanceRecord(
            id=self.id,
            asset_id=self.asset_id,
            business_unit_id=self.business_unit_id,
            maintenance_type=MaintenanceType(self.maintenance_type),
            description=self.description,
            scheduled_date=self.scheduled_date,
            status=MaintenanceStatus(self.status),
            start_date=self.start_date,
            completed_date=self.completed_date,
            performed_by=self.performed_by,
            cost=self.cost,
            notes=self.notes,
        )

    def snapshot(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "start_date": self.start_date,
            "completed_date": self.completed_date,
            "cost": self.cost,
        }

    def __repr__(self) -> str:
        return (
            f"<MaintenanceRecordModel(id={self.id!r}, asset_id={self.asset_id!r}, "
            f"status={self.status!r})>"
        )
