"""
Asset Lifecycle Selectors.

Read-only queries over assets, deployments, retirements, disposals,
transfers, maintenance records, history and usage.  Returns frozen DTOs from ``models.py``; never
mutates the session.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from assetflow_engines.schedule import DepreciationBasis
from assetflow_modules.assets.models import (
    OPEN_DEPLOYMENT_STATUSES,
    OPEN_TRANSFER_STATUSES,
    Asset,
    AssetHistoryEntry,
    AssetStatus,
    Deployment,
    DeploymentStatus,
    Disposal,
    MaintenanceRecord,
    MaintenanceStatus,
    Retirement,
    Transfer,
    TransferStatus,
)
from assetflow_modules.assets.orm import (
    AssetHistoryModel,
    AssetModel,
    AssetUsageModel,
    DeploymentModel,
    DisposalModel,
    MaintenanceRecordModel,
    RetirementModel,
    TransferModel,
)


def basis_from_asset(
    asset: AssetModel,
    usage: Mapping[int, Decimal] | None = None,
    fallback_date: date | None = None,
) -> DepreciationBasis:
    """
    Depreciation basis for a stored asset.

    Assets without a purchase date are depreciated from their creation
    date, or ``fallback_date`` when that is not loaded yet.
    """
    purchase_date = asset.purchase_date
    if purchase_date is None:
        purchase_date = asset.created_at.date() if asset.created_at else fallback_date
    return DepreciationBasis.build(
        purchase_price=asset.purchase_price,
        useful_life_months=asset.useful_life_months,
        purchase_date=purchase_date or date.today(),
        method=asset.depreciation_method,
        salvage_value=asset.salvage_value,
        total_expected_units=asset.total_expected_units,
        usage=usage,
        asset_id=str(asset.id),
    )


class AssetSelector:
    """Queries for the asset lifecycle."""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Single records
    # ------------------------------------------------------------------

    def get_asset(self, asset_id: UUID) -> Asset | None:
        model = self.session.get(AssetModel, asset_id)
        return model.to_dto() if model is not None else None

    def get_deployment(self, deployment_id: UUID) -> Deployment | None:
        model = self.session.get(DeploymentModel, deployment_id)
        return model.to_dto() if model is not None else None

    # ------------------------------------------------------------------
    # Guard inputs
    # ------------------------------------------------------------------

    def open_deployment_count(self, asset_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(DeploymentModel)
            .where(
                DeploymentModel.asset_id == asset_id,
                DeploymentModel.status.in_(OPEN_DEPLOYMENT_STATUSES),
            )
        ).scalar_one()

    def has_disposal(self, asset_id: UUID) -> bool:
        return self.session.execute(
            select(func.count())
            .select_from(DisposalModel)
            .where(DisposalModel.asset_id == asset_id)
        ).scalar_one() > 0

    def open_transfer_count(self, asset_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(TransferModel)
            .where(
                TransferModel.asset_id == asset_id,
                TransferModel.status.in_(OPEN_TRANSFER_STATUSES),
            )
        ).scalar_one()

    def usage_for(self, asset_id: UUID) -> dict[int, Decimal]:
        rows = self.session.execute(
            select(AssetUsageModel.period, AssetUsageModel.units)
            .where(AssetUsageModel.asset_id == asset_id)
        ).all()
        return {period: units for period, units in rows}

    def asset_model(self, asset_id: UUID) -> AssetModel | None:
        """Raw model for engine inputs; callers must not mutate it."""
        return self.session.get(AssetModel, asset_id)

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    def list_asset_models(
        self,
        business_unit_id: UUID,
        statuses: Iterable[AssetStatus] | None = None,
        exclude: Iterable[AssetStatus] | None = None,
    ) -> list[AssetModel]:
        stmt = select(AssetModel).where(
            AssetModel.business_unit_id == business_unit_id,
            AssetModel.is_active.is_(True),
        )
        if statuses is not None:
            stmt = stmt.where(AssetModel.status.in_([s.value for s in statuses]))
        if exclude is not None:
            stmt = stmt.where(AssetModel.status.not_in([s.value for s in exclude]))
        return list(self.session.execute(stmt.order_by(AssetModel.item_code)).scalars())

    def deployments(
        self,
        business_unit_id: UUID,
        status: DeploymentStatus | None = None,
    ) -> tuple[Deployment, ...]:
        stmt = select(DeploymentModel).where(DeploymentModel.business_unit_id == business_unit_id)
        if status is not None:
            stmt = stmt.where(DeploymentModel.status == status.value)
        stmt = stmt.order_by(DeploymentModel.transmittal_number)
        return tuple(m.to_dto() for m in self.session.execute(stmt).scalars())

    def pending_retirements(self, business_unit_id: UUID) -> tuple[Retirement, ...]:
        stmt = (
            select(RetirementModel)
            .where(
                RetirementModel.business_unit_id == business_unit_id,
                RetirementModel.approved_at.is_(None),
            )
            .order_by(RetirementModel.retirement_date)
        )
        return tuple(m.to_dto() for m in self.session.execute(stmt).scalars())

    def disposals(self, business_unit_id: UUID) -> tuple[Disposal, ...]:
        stmt = (
            select(DisposalModel)
            .where(DisposalModel.business_unit_id == business_unit_id)
            .order_by(DisposalModel.disposal_date)
        )
        return tuple(m.to_dto() for m in self.session.execute(stmt).scalars())

    def pending_disposals(self, business_unit_id: UUID) -> tuple[Disposal, ...]:
        return tuple(d for d in self.disposals(business_unit_id) if d.approved_at is None)

    def history(self, asset_id: UUID) -> tuple[AssetHistoryEntry, ...]:
        stmt = (
            select(AssetHistoryModel)
            .where(AssetHistoryModel.asset_id == asset_id)
            .order_by(AssetHistoryModel.performed_at, AssetHistoryModel.created_at)
        )
        return tuple(m.to_dto() for m in self.session.execute(stmt).scalars())

    def transfers(
        self,
        business_unit_id: UUID,
        status: TransferStatus | None = None,
    ) -> tuple[Transfer, ...]:
        """Transfers leaving or entering ``business_unit_id``, newest first."""
        stmt = select(TransferModel).where(
            or_(
                TransferModel.from_business_unit_id == business_unit_id,
                TransferModel.to_business_unit_id == business_unit_id,
            )
        )
        if status is not None:
            stmt = stmt.where(TransferModel.status == status.value)
        stmt = stmt.order_by(TransferModel.transfer_date.desc(), TransferModel.transfer_number.desc())
        return tuple(m.to_dto() for m in self.session.execute(stmt).scalars())

    def maintenance_records(self, asset_id: UUID) -> tuple[MaintenanceRecord, ...]:
        stmt = (
            select(MaintenanceRecordModel)
            .where(MaintenanceRecordModel.asset_id == asset_id)
            .order_by(MaintenanceRecordModel.scheduled_date.desc())
        )
        return tuple(m.to_dto() for m in self.session.execute(stmt).scalars())

    def open_maintenance(
        self,
        business_unit_id: UUID,
        scheduled_to: date,
    ) -> list[tuple[MaintenanceRecord, str]]:
        """Unfinished records due by ``scheduled_to``, with the asset's item code."""
        stmt = (
            select(MaintenanceRecordModel, AssetModel.item_code)
            .join(AssetModel, AssetModel.id == MaintenanceRecordModel.asset_id)
            .where(
                MaintenanceRecordModel.business_unit_id == business_unit_id,
                MaintenanceRecordModel.status != MaintenanceStatus.COMPLETED.value,
                MaintenanceRecordModel.scheduled_date <= scheduled_to,
            )
            .order_by(MaintenanceRecordModel.scheduled_date, AssetModel.item_code)
        )
        return [(record.to_dto(), item_code) for record, item_code in self.session.execute(stmt)]
