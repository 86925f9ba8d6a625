"""
Asset ORM tests.

Round-trips each model through SQLite and checks the schema-level
invariants: one open deployment per asset, unique transmittal numbers,
one retirement per asset, one open transfer per asset.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from assetflow_modules.assets.models import (
    AssetRegistration,
    AssetStatus,
    DeploymentStatus,
    RetirementReason,
    TransferStatus,
)
from assetflow_modules.assets.orm import (
    AssetHistoryModel,
    AssetModel,
    DeploymentModel,
    RetirementModel,
    TransferModel,
)
from tests.conftest import TEST_ACTOR_ID, TEST_BUSINESS_UNIT_ID, TEST_EMPLOYEE_ID


def _asset(session, item_code="ORM-0001"):
    asset = AssetModel.from_registration(
        AssetRegistration(
            item_code=item_code,
            description="Forklift",
            purchase_price=Decimal("50000.00"),
            salvage_value=Decimal("5000.00"),
            useful_life_months=60,
            purchase_date=date(2024, 1, 1),
        ),
        TEST_BUSINESS_UNIT_ID,
        TEST_ACTOR_ID,
    )
    session.add(asset)
    session.flush()
    return asset


def _deployment(session, asset, number, status=DeploymentStatus.PENDING_ACCOUNTING_APPROVAL):
    deployment = DeploymentModel(
        asset_id=asset.id,
        employee_id=TEST_EMPLOYEE_ID,
        business_unit_id=asset.business_unit_id,
        transmittal_number=number,
        status=status.value,
        created_by_id=TEST_ACTOR_ID,
    )
    session.add(deployment)
    session.flush()
    return deployment


class TestAssetModel:

    def test_round_trip(self, session):
        asset = _asset(session)
        session.commit()

        loaded = session.get(AssetModel, asset.id)
        dto = loaded.to_dto()
        assert dto.status == AssetStatus.AVAILABLE
        assert dto.purchase_price == Decimal("50000.00")
        assert dto.useful_life_months == 60
        assert loaded.created_at is not None

    def test_item_code_unique_per_business_unit(self, session):
        _asset(session, "DUP-1")
        with pytest.raises(IntegrityError):
            _asset(session, "DUP-1")
        session.rollback()


class TestDeploymentModel:

    def test_one_open_deployment_per_asset(self, session):
        asset = _asset(session)
        _deployment(session, asset, "TN-2024-0001")
        with pytest.raises(IntegrityError):
            _deployment(session, asset, "TN-2024-0002", DeploymentStatus.DEPLOYED)
        session.rollback()

    def test_closed_deployments_do_not_block(self, session):
        asset = _asset(session)
        _deployment(session, asset, "TN-2024-0001", DeploymentStatus.CANCELLED)
        _deployment(session, asset, "TN-2024-0002", DeploymentStatus.RETURNED)
        open_one = _deployment(session, asset, "TN-2024-0003")
        session.commit()
        assert open_one.to_dto().status == DeploymentStatus.PENDING_ACCOUNTING_APPROVAL

    def test_transmittal_number_unique(self, session):
        first = _asset(session, "A-1")
        second = _asset(session, "A-2")
        _deployment(session, first, "TN-2024-0001")
        with pytest.raises(IntegrityError):
            _deployment(session, second, "TN-2024-0001")
        session.rollback()


class TestRetirementModel:

    def test_one_retirement_per_asset(self, session):
        asset = _asset(session)
        for _ in range(2):
            session.add(RetirementModel(
                asset_id=asset.id,
                business_unit_id=asset.business_unit_id,
                retirement_date=date(2024, 6, 1),
                reason=RetirementReason.END_OF_USEFUL_LIFE.value,
                created_by_id=TEST_ACTOR_ID,
            ))
        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()

    def test_approval_state(self, session):
        asset = _asset(session)
        retirement = RetirementModel(
            asset_id=asset.id,
            business_unit_id=asset.business_unit_id,
            retirement_date=date(2024, 6, 1),
            reason=RetirementReason.DAMAGED_BEYOND_REPAIR.value,
            created_by_id=TEST_ACTOR_ID,
        )
        session.add(retirement)
        session.flush()
        assert retirement.approval_state == "PENDING_APPROVAL"


class TestHistoryModel:

    def test_json_details_round_trip(self, session):
        asset = _asset(session)
        entry = AssetHistoryModel(
            asset_id=asset.id,
            business_unit_id=asset.business_unit_id,
            action="CREATED",
            previous_status=None,
            new_status="AVAILABLE",
            performed_by_id=TEST_ACTOR_ID,
            performed_at=session.get(AssetModel, asset.id).created_at,
            details={"source": "test", "ref": str(uuid4())},
            created_by_id=TEST_ACTOR_ID,
        )
        session.add(entry)
        session.commit()
        dto = session.get(AssetHistoryModel, entry.id).to_dto()
        assert dto.details["source"] == "test"
        assert dto.previous_status is None


def _transfer(session, asset, number, status=TransferStatus.PENDING_APPROVAL):
    transfer = TransferModel(
        transfer_number=number,
        asset_id=asset.id,
        from_business_unit_id=asset.business_unit_id,
        to_business_unit_id=uuid4(),
        transfer_date=date(2024, 2, 1),
        reason="Relocation",
        status=status.value,
        created_by_id=TEST_ACTOR_ID,
    )
    session.add(transfer)
    session.flush()
    return transfer


class TestTransferModel:

    def test_one_open_transfer_per_asset(self, session):
        asset = _asset(session)
        _transfer(session, asset, "TR-2024-0001", TransferStatus.IN_TRANSIT)
        with pytest.raises(IntegrityError):
            _transfer(session, asset, "TR-2024-0002")
        session.rollback()

    def test_closed_transfers_do_not_block(self, session):
        asset = _asset(session)
        _transfer(session, asset, "TR-2024-0001", TransferStatus.REJECTED)
        _transfer(session, asset, "TR-2024-0002", TransferStatus.COMPLETED)
        open_transfer = _transfer(session, asset, "TR-2024-0003")
        assert open_transfer.to_dto().status == TransferStatus.PENDING_APPROVAL
