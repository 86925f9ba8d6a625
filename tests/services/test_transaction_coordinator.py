"""
TransactionCoordinator tests.

Each transition is one atomic unit: guards re-checked on the locked
rows, status compare-and-set, history and audit written in the same
commit, everything rolled back on failure.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from assetflow_engines.depreciation import DepreciationMethod
from assetflow_kernel.exceptions import (
    AssetNotFoundError,
    AuthorizationError,
    DeploymentNotFoundError,
    GuardViolationError,
    InvalidDepreciationInput,
    MaintenanceRecordNotFoundError,
    TransactionFailure,
    TransferNotFoundError,
)
from assetflow_kernel.models.audit_log import AuditAction
from assetflow_kernel.services.auditor_service import AuditorService
from assetflow_modules.assets.models import (
    AssetRegistration,
    AssetReturn,
    AssetStatus,
    DeploymentApproval,
    DeploymentRejection,
    DeploymentRequest,
    DeploymentStatus,
    DisposalReason,
    DisposalRequest,
    HistoryAction,
    MaintenanceCompletion,
    MaintenanceRequest,
    MaintenanceStatus,
    MaintenanceType,
    RecordApproval,
    RetirementReason,
    RetirementRequest,
    StatusChange,
    TransferApproval,
    TransferReceipt,
    TransferRejection,
    TransferRequest,
    TransferStatus,
)
from assetflow_kernel.domain.permissions import Principal
from assetflow_modules.assets.orm import AssetModel, DeploymentModel, TransferModel
from assetflow_modules.assets.selectors import AssetSelector
from assetflow_services.transaction_coordinator import (
    TransactionCoordinator,
    TransitionKind,
    TransitionTarget,
)
from tests.conftest import OTHER_BUSINESS_UNIT_ID, TEST_BUSINESS_UNIT_ID, TEST_EMPLOYEE_ID


@pytest.fixture
def coordinator(session, deterministic_clock, config):
    return TransactionCoordinator(session, clock=deterministic_clock, config=config)


@pytest.fixture
def new_asset(coordinator, approver):
    counter = iter(range(1, 1000))

    def _create(method=DepreciationMethod.STRAIGHT_LINE, **overrides):
        values = dict(
            item_code=f"CO-{next(counter):03d}",
            description="Monitor",
            purchase_price=Decimal("120000"),
            salvage_value=Decimal("10000"),
            useful_life_months=5,
            depreciation_method=method,
            purchase_date=date(2024, 1, 1),
        )
        values.update(overrides)
        outcome = coordinator.register_asset(TEST_BUSINESS_UNIT_ID, approver, AssetRegistration(**values))
        return outcome.updated_asset.id

    return _create


@pytest.fixture
def pending(coordinator, approver, new_asset):
    """(asset_id, deployment_id) with the deployment pending approval."""

    def _create():
        asset_id = new_asset()
        outcome = coordinator.apply_transition(
            TransitionKind.REQUEST_DEPLOYMENT,
            TransitionTarget(business_unit_id=TEST_BUSINESS_UNIT_ID),
            approver,
            DeploymentRequest(asset_id=asset_id, employee_id=TEST_EMPLOYEE_ID),
        )
        return asset_id, outcome.record.id

    return _create


def _approve(coordinator, actor, deployment_id, notes=None):
    return coordinator.apply_transition(
        TransitionKind.APPROVE_DEPLOYMENT,
        TransitionTarget(deployment_id=deployment_id),
        actor,
        DeploymentApproval(deployment_id, notes),
    )


class TestRegisterAsset:

    def test_creates_history_and_audit(self, coordinator, approver, session):
        outcome = coordinator.register_asset(
            TEST_BUSINESS_UNIT_ID,
            approver,
            AssetRegistration(item_code="REG-1", description="Desk", purchase_price=Decimal("500")),
        )
        assert outcome.updated_asset.status == AssetStatus.AVAILABLE
        assert outcome.history_entry.action == HistoryAction.CREATED
        assert outcome.audit_log_entry.action == AuditAction.CREATE
        assert outcome.audit_log_entry.table_name == "assets_assets"

    def test_rejects_salvage_above_price(self, coordinator, approver):
        with pytest.raises(InvalidDepreciationInput):
            coordinator.register_asset(
                TEST_BUSINESS_UNIT_ID,
                approver,
                AssetRegistration(
                    item_code="REG-2", description="Desk",
                    purchase_price=Decimal("100"), salvage_value=Decimal("200"),
                ),
            )

    def test_other_business_unit_refused(self, coordinator, approver):
        with pytest.raises(AuthorizationError):
            coordinator.register_asset(
                OTHER_BUSINESS_UNIT_ID,
                approver,
                AssetRegistration(item_code="REG-3", description="Desk"),
            )


class TestRequestDeployment:

    def test_transmittal_numbers_sequential(self, pending, session):
        _, first = pending()
        _, second = pending()
        numbers = [session.get(DeploymentModel, d).transmittal_number for d in (first, second)]
        assert numbers == ["TN-2024-0001", "TN-2024-0002"]

    def test_second_open_request_refused(self, coordinator, approver, pending):
        asset_id, _ = pending()
        with pytest.raises(GuardViolationError) as exc_info:
            coordinator.apply_transition(
                TransitionKind.REQUEST_DEPLOYMENT,
                TransitionTarget(business_unit_id=TEST_BUSINESS_UNIT_ID),
                approver,
                DeploymentRequest(asset_id=asset_id, employee_id=TEST_EMPLOYEE_ID),
            )
        assert str(exc_info.value) == "Asset already has an open deployment"

    def test_request_leaves_asset_available(self, pending, session):
        asset_id, _ = pending()
        assert session.get(AssetModel, asset_id).status == AssetStatus.AVAILABLE.value

    def test_asset_in_other_business_unit_not_found(self, coordinator, approver, new_asset):
        asset_id = new_asset()
        with pytest.raises(AssetNotFoundError):
            coordinator.apply_transition(
                TransitionKind.REQUEST_DEPLOYMENT,
                TransitionTarget(business_unit_id=OTHER_BUSINESS_UNIT_ID),
                approver,
                DeploymentRequest(asset_id=asset_id, employee_id=TEST_EMPLOYEE_ID),
            )


class TestApproveDeployment:

    def test_deploys_asset(self, coordinator, approver, pending, session):
        asset_id, deployment_id = pending()
        outcome = _approve(coordinator, approver, deployment_id, "ok")

        assert outcome.updated_asset.status == AssetStatus.DEPLOYED
        assert outcome.updated_asset.currently_assigned_to == TEST_EMPLOYEE_ID
        assert outcome.updated_asset.current_deployment_id == deployment_id
        assert outcome.record.status == DeploymentStatus.DEPLOYED
        assert outcome.record.accounting_approver_id == approver.actor_id
        assert outcome.history_entry.notes == "Asset deployed - Approved by accounting"

    def test_audit_images(self, coordinator, approver, pending, session):
        _, deployment_id = pending()
        _approve(coordinator, approver, deployment_id)

        trace = AuditorService(session).get_trace("assets_deployments", deployment_id)
        assert [e.action for e in trace.entries] == [AuditAction.CREATE, AuditAction.UPDATE]
        update = trace.entries[-1]
        assert update.old_values["status"] == "PENDING_ACCOUNTING_APPROVAL"
        assert update.new_values["status"] == "DEPLOYED"

    def test_closes_open_history_entry(self, coordinator, approver, pending, session, deterministic_clock):
        asset_id, deployment_id = pending()
        deterministic_clock.advance(60 * 86400)
        _approve(coordinator, approver, deployment_id)

        history = AssetSelector(session).history(asset_id)
        assert [h.action for h in history] == [HistoryAction.CREATED, HistoryAction.DEPLOYED]
        assert history[0].end_date == deterministic_clock.today()
        assert history[1].end_date is None

    def test_requester_cannot_approve(self, coordinator, requester, pending, session):
        _, deployment_id = pending()
        with pytest.raises(AuthorizationError) as exc_info:
            _approve(coordinator, requester, deployment_id)
        assert str(exc_info.value) == "You do not have permission to approve deployments"
        assert session.get(DeploymentModel, deployment_id).status == _pending_value()

    def test_second_approval_refused(self, coordinator, approver, pending):
        _, deployment_id = pending()
        _approve(coordinator, approver, deployment_id)
        with pytest.raises(GuardViolationError) as exc_info:
            _approve(coordinator, approver, deployment_id)
        assert str(exc_info.value) == "Deployment is not pending approval"

    def test_missing_deployment(self, coordinator, approver):
        with pytest.raises(DeploymentNotFoundError):
            _approve(coordinator, approver, uuid4())

    def test_commit_failure_rolls_back(self, coordinator, approver, pending, session, monkeypatch):
        asset_id, deployment_id = pending()

        def _fail():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "commit", _fail)
        with pytest.raises(TransactionFailure):
            _approve(coordinator, approver, deployment_id)
        monkeypatch.undo()

        assert session.get(DeploymentModel, deployment_id).status == _pending_value()
        assert session.get(AssetModel, asset_id).status == AssetStatus.AVAILABLE.value


class TestRejectCancelReturn:

    def test_reject_notes(self, coordinator, approver, pending):
        _, deployment_id = pending()
        outcome = coordinator.apply_transition(
            TransitionKind.REJECT_DEPLOYMENT,
            TransitionTarget(deployment_id=deployment_id),
            approver,
            DeploymentRejection(deployment_id, "Budget frozen", "Try next quarter"),
        )
        assert outcome.record.status == DeploymentStatus.CANCELLED
        assert outcome.record.accounting_notes == "REJECTED: Budget frozen. Try next quarter"

    def test_reject_without_notes(self, coordinator, approver, pending):
        _, deployment_id = pending()
        outcome = coordinator.apply_transition(
            TransitionKind.REJECT_DEPLOYMENT,
            TransitionTarget(deployment_id=deployment_id),
            approver,
            DeploymentRejection(deployment_id, "Budget frozen"),
        )
        assert outcome.record.accounting_notes == "REJECTED: Budget frozen."

    def test_cancel_keeps_asset_status(self, coordinator, approver, pending):
        asset_id, deployment_id = pending()
        outcome = coordinator.apply_transition(
            TransitionKind.CANCEL_DEPLOYMENT, TransitionTarget(deployment_id=deployment_id), approver,
        )
        assert outcome.record.status == DeploymentStatus.CANCELLED
        assert outcome.updated_asset.status == AssetStatus.AVAILABLE

    def test_cancel_deployed_refused(self, coordinator, approver, pending):
        _, deployment_id = pending()
        _approve(coordinator, approver, deployment_id)
        with pytest.raises(GuardViolationError) as exc_info:
            coordinator.apply_transition(
                TransitionKind.CANCEL_DEPLOYMENT, TransitionTarget(deployment_id=deployment_id), approver,
            )
        assert str(exc_info.value) == "Cannot cancel deployed asset. Use return instead."

    def test_return(self, coordinator, approver, pending):
        asset_id, deployment_id = pending()
        _approve(coordinator, approver, deployment_id)
        outcome = coordinator.apply_transition(
            TransitionKind.RETURN_ASSET,
            TransitionTarget(deployment_id=deployment_id),
            approver,
            AssetReturn(deployment_id, "GOOD", returned_date=date(2024, 2, 1)),
        )
        assert outcome.updated_asset.status == AssetStatus.AVAILABLE
        assert outcome.updated_asset.currently_assigned_to is None
        assert outcome.record.status == DeploymentStatus.RETURNED
        assert outcome.record.returned_date == date(2024, 2, 1)

    def test_return_pending_refused(self, coordinator, approver, pending):
        _, deployment_id = pending()
        with pytest.raises(GuardViolationError) as exc_info:
            coordinator.apply_transition(
                TransitionKind.RETURN_ASSET,
                TransitionTarget(deployment_id=deployment_id),
                approver,
                AssetReturn(deployment_id, "GOOD"),
            )
        assert str(exc_info.value) == "Asset is not currently deployed"


class TestRetireAndDispose:

    def test_retire_then_approve_once(self, coordinator, approver, new_asset):
        asset_id = new_asset()
        outcome = coordinator.apply_transition(
            TransitionKind.RETIRE_ASSET,
            TransitionTarget(business_unit_id=TEST_BUSINESS_UNIT_ID),
            approver,
            RetirementRequest(asset_id, date(2024, 6, 1), RetirementReason.OBSOLETE),
        )
        assert outcome.updated_asset.status == AssetStatus.RETIRED
        retirement_id = outcome.record.id

        approved = coordinator.apply_transition(
            TransitionKind.APPROVE_RETIREMENT,
            TransitionTarget(retirement_id=retirement_id),
            approver,
            RecordApproval("checked"),
        )
        assert approved.record.approved_by_id == approver.actor_id
        assert approved.record.notes.endswith("Approval Notes: checked")

        with pytest.raises(GuardViolationError) as exc_info:
            coordinator.apply_transition(
                TransitionKind.APPROVE_RETIREMENT,
                TransitionTarget(retirement_id=retirement_id),
                approver,
                RecordApproval(),
            )
        assert str(exc_info.value) == "Retirement already approved"

    def test_disposal_gain_loss_uses_book_value_at_date(self, coordinator, approver, new_asset):
        asset_id = new_asset()
        outcome = coordinator.apply_transition(
            TransitionKind.DISPOSE_ASSET,
            TransitionTarget(business_unit_id=TEST_BUSINESS_UNIT_ID),
            approver,
            DisposalRequest(
                asset_id, date(2024, 3, 15), DisposalReason.SOLD,
                disposal_value=Decimal("70000"), disposal_cost=Decimal("500"),
            ),
        )
        assert outcome.updated_asset.status == AssetStatus.DISPOSED
        assert outcome.record.book_value_at_disposal == Decimal("54000.00")
        assert outcome.record.gain_loss == Decimal("16000.00")
        assert outcome.history_entry.notes == "Asset disposed - SOLD"

    def test_disposal_links_retirement(self, coordinator, approver, new_asset):
        asset_id = new_asset()
        retired = coordinator.apply_transition(
            TransitionKind.RETIRE_ASSET,
            TransitionTarget(business_unit_id=TEST_BUSINESS_UNIT_ID),
            approver,
            RetirementRequest(asset_id, date(2024, 6, 1), RetirementReason.OBSOLETE),
        )
        disposed = coordinator.apply_transition(
            TransitionKind.DISPOSE_ASSET,
            TransitionTarget(business_unit_id=TEST_BUSINESS_UNIT_ID),
            approver,
            DisposalRequest(asset_id, date(2024, 7, 1), DisposalReason.SCRAPPED),
        )
        assert disposed.record.retirement_id == retired.record.id

    def test_dispose_deployed_refused(self, coordinator, approver, pending):
        asset_id, deployment_id = pending()
        _approve(coordinator, approver, deployment_id)
        with pytest.raises(GuardViolationError) as exc_info:
            coordinator.apply_transition(
                TransitionKind.DISPOSE_ASSET,
                TransitionTarget(business_unit_id=TEST_BUSINESS_UNIT_ID),
                approver,
                DisposalRequest(asset_id, date(2024, 3, 1), DisposalReason.SOLD),
            )
        assert str(exc_info.value) == "Cannot dispose asset with active deployments"


class TestBulkOperations:

    def test_bulk_approve_skips_ineligible(self, coordinator, approver, pending):
        asset_1, d1 = pending()
        _, d2 = pending()
        coordinator.apply_transition(
            TransitionKind.CHANGE_STATUS,
            TransitionTarget(asset_id=asset_1),
            approver,
            StatusChange("send_to_maintenance"),
        )

        outcome = coordinator.bulk_approve([d1, d2], approver, "batch")

        assert outcome.approved_count == 1
        assert outcome.requested_count == 2
        assert outcome.eligible_count == 2
        assert outcome.skipped[0].entity_id == d1
        assert outcome.skipped[0].reason == "Asset is no longer available for deployment"
        assert outcome.approved[0].history_entry.notes == "Asset deployed - Bulk approved by accounting"

    def test_bulk_approve_requires_capability(self, coordinator, requester, pending):
        _, d1 = pending()
        with pytest.raises(AuthorizationError):
            coordinator.bulk_approve([d1], requester)

    def test_bulk_dispose_all_or_nothing(self, coordinator, approver, new_asset, pending, session):
        free = new_asset()
        busy, deployment_id = pending()
        _approve(coordinator, approver, deployment_id)

        outcome = coordinator.bulk_dispose(
            TEST_BUSINESS_UNIT_ID, [free, busy], approver,
            DisposalRequest(free, date(2024, 3, 1), DisposalReason.RECYCLED),
        )

        assert outcome.processed == ()
        assert [e.entity_id for e in outcome.errors] == [busy]
        assert session.get(AssetModel, free).status == AssetStatus.AVAILABLE.value

    def test_bulk_dispose_success(self, coordinator, approver, new_asset):
        ids = [new_asset(), new_asset()]
        outcome = coordinator.bulk_dispose(
            TEST_BUSINESS_UNIT_ID, ids, approver,
            DisposalRequest(ids[0], date(2024, 3, 1), DisposalReason.RECYCLED),
        )
        assert outcome.errors == ()
        assert set(outcome.processed_asset_ids) == set(ids)
        assert outcome.processed[0].history_entry.details == {
            "disposal_id": str(outcome.processed[0].record.id),
            "bulk_operation": True,
        }


class TestUsage:

    def test_units_of_production_only(self, coordinator, approver, new_asset):
        asset_id = new_asset()
        with pytest.raises(GuardViolationError) as exc_info:
            coordinator.record_usage(asset_id, approver, 1, Decimal("10"))
        assert str(exc_info.value) == "Asset does not use units of production depreciation method"

    def test_records_and_overwrites(self, coordinator, approver, new_asset, session):
        asset_id = new_asset(
            method=DepreciationMethod.UNITS_OF_PRODUCTION, total_expected_units=Decimal("1000"),
        )
        coordinator.record_usage(asset_id, approver, 1, Decimal("10"))
        outcome = coordinator.record_usage(asset_id, approver, 1, Decimal("25"))
        assert outcome.audit_log_entry.action == AuditAction.UPDATE
        assert AssetSelector(session).usage_for(asset_id) == {1: Decimal("25")}

    def test_period_outside_life(self, coordinator, approver, new_asset):
        asset_id = new_asset(
            method=DepreciationMethod.UNITS_OF_PRODUCTION, total_expected_units=Decimal("1000"),
        )
        with pytest.raises(InvalidDepreciationInput):
            coordinator.record_usage(asset_id, approver, 6, Decimal("10"))



class TestAssetAuditRows:

    def test_approval_audits_asset_row(self, coordinator, approver, pending, session):
        asset_id, deployment_id = pending()
        _approve(coordinator, approver, deployment_id)

        trace = AuditorService(session).get_trace("assets_assets", asset_id)
        assert {e.action for e in trace.entries} == {AuditAction.CREATE, AuditAction.UPDATE}
        update = next(e for e in trace.entries if e.action == AuditAction.UPDATE)
        assert update.old_values["status"] == "AVAILABLE"
        assert update.new_values["status"] == "DEPLOYED"

    def test_return_audits_asset_row(self, coordinator, approver, pending, session):
        asset_id, deployment_id = pending()
        _approve(coordinator, approver, deployment_id)
        coordinator.apply_transition(
            TransitionKind.RETURN_ASSET,
            TransitionTarget(deployment_id=deployment_id),
            approver,
            AssetReturn(deployment_id, "GOOD"),
        )

        trace = AuditorService(session).get_trace("assets_assets", asset_id)
        updates = [e for e in trace.entries if e.action == AuditAction.UPDATE]
        assert sorted(e.new_values["status"] for e in updates) == ["AVAILABLE", "DEPLOYED"]

def _pending_value():
    return DeploymentStatus.PENDING_ACCOUNTING_APPROVAL.value


# =============================================================================
# Business-unit transfers
# =============================================================================


@pytest.fixture
def receiver():
    """Asset manager of the destination business unit."""
    return Principal(
        actor_id=uuid4(),
        role_code="ASSET_MANAGER",
        business_unit_id=OTHER_BUSINESS_UNIT_ID,
        display_name="Receiver",
    )


def _request_transfer(coordinator, actor, asset_id, to=OTHER_BUSINESS_UNIT_ID):
    return coordinator.apply_transition(
        TransitionKind.REQUEST_TRANSFER,
        TransitionTarget(business_unit_id=TEST_BUSINESS_UNIT_ID),
        actor,
        TransferRequest(asset_id, to, date(2024, 1, 5), "Office move"),
    )


def _approve_transfer(coordinator, actor, transfer_id):
    return coordinator.apply_transition(
        TransitionKind.APPROVE_TRANSFER,
        TransitionTarget(transfer_id=transfer_id),
        actor,
        TransferApproval(transfer_id, "Go ahead"),
    )


def _dispatch(coordinator, actor, transfer_id):
    return coordinator.apply_transition(
        TransitionKind.DISPATCH_TRANSFER, TransitionTarget(transfer_id=transfer_id), actor,
    )


def _complete(coordinator, actor, transfer_id):
    return coordinator.apply_transition(
        TransitionKind.COMPLETE_TRANSFER,
        TransitionTarget(transfer_id=transfer_id),
        actor,
        TransferReceipt(transfer_id, received_notes="Arrived intact"),
    )


class TestTransfers:

    def test_request_keeps_asset_in_place(self, coordinator, requester, new_asset):
        asset_id = new_asset()
        outcome = _request_transfer(coordinator, requester, asset_id)

        assert outcome.record.status == TransferStatus.PENDING_APPROVAL
        assert outcome.record.transfer_number == "TR-2024-0001"
        assert outcome.record.from_business_unit_id == TEST_BUSINESS_UNIT_ID
        assert outcome.record.requested_by_id == requester.actor_id
        assert outcome.updated_asset.status == AssetStatus.AVAILABLE
        assert outcome.history_entry.action == HistoryAction.TRANSFERRED
        assert outcome.audit_log_entry.table_name == "assets_transfers"

    def test_second_open_transfer_refused(self, coordinator, requester, new_asset):
        asset_id = new_asset()
        _request_transfer(coordinator, requester, asset_id)
        with pytest.raises(GuardViolationError) as exc_info:
            _request_transfer(coordinator, requester, asset_id)
        assert str(exc_info.value) == "Asset already has a pending or active transfer"

    def test_same_business_unit_refused(self, coordinator, requester, new_asset):
        asset_id = new_asset()
        with pytest.raises(GuardViolationError) as exc_info:
            _request_transfer(coordinator, requester, asset_id, to=TEST_BUSINESS_UNIT_ID)
        assert str(exc_info.value) == "Cannot transfer asset to the same business unit"

    def test_disposed_asset_refused(self, coordinator, approver, requester, new_asset):
        asset_id = new_asset()
        coordinator.apply_transition(
            TransitionKind.DISPOSE_ASSET,
            TransitionTarget(business_unit_id=TEST_BUSINESS_UNIT_ID),
            approver,
            DisposalRequest(asset_id, date(2024, 3, 1), DisposalReason.SCRAPPED),
        )
        with pytest.raises(GuardViolationError) as exc_info:
            _request_transfer(coordinator, requester, asset_id)
        assert str(exc_info.value) == "Cannot transfer disposed asset"

    def test_accounting_cannot_approve(self, coordinator, requester, approver, new_asset):
        transfer_id = _request_transfer(coordinator, requester, new_asset()).record.id
        with pytest.raises(AuthorizationError) as exc_info:
            _approve_transfer(coordinator, approver, transfer_id)
        assert str(exc_info.value) == "You do not have permission to approve transfers"

    def test_reject_closes_transfer(self, coordinator, requester, new_asset, session):
        asset_id = new_asset()
        transfer_id = _request_transfer(coordinator, requester, asset_id).record.id
        outcome = coordinator.apply_transition(
            TransitionKind.REJECT_TRANSFER,
            TransitionTarget(transfer_id=transfer_id),
            requester,
            TransferRejection(transfer_id, "Not budgeted"),
        )
        assert outcome.record.status == TransferStatus.REJECTED
        assert outcome.record.rejection_reason == "Not budgeted"
        assert outcome.history_entry.notes == "Transfer rejected: Not budgeted"
        # A rejected transfer no longer blocks a new request.
        assert _request_transfer(coordinator, requester, asset_id).record.status == (
            TransferStatus.PENDING_APPROVAL
        )

    def test_full_move_changes_business_unit(
        self, coordinator, requester, receiver, new_asset, session, deterministic_clock,
    ):
        asset_id = new_asset()
        deterministic_clock.advance(86400)
        transfer_id = _request_transfer(coordinator, requester, asset_id).record.id
        deterministic_clock.advance(86400)
        approved = _approve_transfer(coordinator, requester, transfer_id)
        assert approved.record.status == TransferStatus.APPROVED
        assert approved.record.transfer_notes.endswith("Approval Notes: Go ahead")
        deterministic_clock.advance(86400)
        dispatched = _dispatch(coordinator, requester, transfer_id)
        assert dispatched.updated_asset.status == AssetStatus.IN_TRANSIT
        deterministic_clock.advance(86400)

        outcome = _complete(coordinator, receiver, transfer_id)

        assert outcome.record.status == TransferStatus.COMPLETED
        assert outcome.record.received_by_id == receiver.actor_id
        assert outcome.record.completed_date == deterministic_clock.today()
        assert outcome.updated_asset.status == AssetStatus.AVAILABLE
        assert outcome.updated_asset.business_unit_id == OTHER_BUSINESS_UNIT_ID
        assert outcome.history_entry.business_unit_id == OTHER_BUSINESS_UNIT_ID
        assert outcome.history_entry.notes == "Transfer completed - Asset received"
        assert session.get(AssetModel, asset_id).business_unit_id == OTHER_BUSINESS_UNIT_ID

        history = AssetSelector(session).history(asset_id)
        assert [h.action for h in history] == [
            HistoryAction.CREATED,
            HistoryAction.TRANSFERRED,
            HistoryAction.TRANSFERRED,
            HistoryAction.TRANSFERRED,
            HistoryAction.TRANSFERRED,
        ]
        asset_trace = AuditorService(session).get_trace("assets_assets", asset_id)
        moved = [
            e for e in asset_trace.entries
            if e.action == AuditAction.UPDATE
            and e.new_values.get("status") == AssetStatus.AVAILABLE.value
        ]
        assert len(moved) == 1
        assert moved[0].old_values["business_unit_id"] == str(TEST_BUSINESS_UNIT_ID)
        assert moved[0].new_values["business_unit_id"] == str(OTHER_BUSINESS_UNIT_ID)

    def test_complete_before_dispatch_refused(self, coordinator, requester, receiver, new_asset):
        transfer_id = _request_transfer(coordinator, requester, new_asset()).record.id
        _approve_transfer(coordinator, requester, transfer_id)
        with pytest.raises(GuardViolationError) as exc_info:
            _complete(coordinator, receiver, transfer_id)
        assert str(exc_info.value) == "Transfer is not in transit"

    def test_dispatch_deployed_asset_refused(self, coordinator, approver, requester, pending):
        asset_id, deployment_id = pending()
        _approve(coordinator, approver, deployment_id)
        transfer_id = _request_transfer(coordinator, requester, asset_id).record.id
        _approve_transfer(coordinator, requester, transfer_id)
        with pytest.raises(GuardViolationError) as exc_info:
            _dispatch(coordinator, requester, transfer_id)
        assert str(exc_info.value) == "Cannot transfer asset with active deployments"

    def test_cancel_in_transit_refused(self, coordinator, requester, new_asset):
        transfer_id = _request_transfer(coordinator, requester, new_asset()).record.id
        _approve_transfer(coordinator, requester, transfer_id)
        _dispatch(coordinator, requester, transfer_id)
        with pytest.raises(GuardViolationError) as exc_info:
            coordinator.apply_transition(
                TransitionKind.CANCEL_TRANSFER, TransitionTarget(transfer_id=transfer_id), requester,
            )
        assert str(exc_info.value) == "Only pending or approved transfers can be cancelled"

    def test_cancel_pending(self, coordinator, requester, new_asset, session):
        transfer_id = _request_transfer(coordinator, requester, new_asset()).record.id
        outcome = coordinator.apply_transition(
            TransitionKind.CANCEL_TRANSFER,
            TransitionTarget(transfer_id=transfer_id),
            requester,
            "Plans changed",
        )
        assert outcome.record.status == TransferStatus.CANCELLED
        assert session.get(TransferModel, transfer_id).status == TransferStatus.CANCELLED.value

    def test_unrelated_unit_cannot_see_transfer(self, coordinator, requester, new_asset):
        transfer_id = _request_transfer(coordinator, requester, new_asset()).record.id
        outsider = Principal(
            actor_id=uuid4(), role_code="ASSET_MANAGER", business_unit_id=uuid4(),
        )
        with pytest.raises(TransferNotFoundError):
            _approve_transfer(coordinator, outsider, transfer_id)


# =============================================================================
# Maintenance records
# =============================================================================


def _maintenance(coordinator, actor, asset_id, **overrides):
    values = dict(
        asset_id=asset_id,
        maintenance_type=MaintenanceType.PREVENTIVE,
        description="Replace fan",
        scheduled_date=date(2024, 1, 10),
    )
    values.update(overrides)
    return coordinator.apply_transition(
        TransitionKind.CREATE_MAINTENANCE,
        TransitionTarget(business_unit_id=TEST_BUSINESS_UNIT_ID),
        actor,
        MaintenanceRequest(**values),
    )


class TestMaintenance:

    def test_scheduled_record_leaves_asset_available(self, coordinator, approver, new_asset):
        outcome = _maintenance(coordinator, approver, new_asset())
        assert outcome.record.status == MaintenanceStatus.SCHEDULED
        assert outcome.updated_asset.status == AssetStatus.AVAILABLE
        assert outcome.history_entry is None
        assert outcome.audit_log_entry.table_name == "assets_maintenance"

    def test_started_record_takes_asset_out_of_service(self, coordinator, approver, new_asset):
        outcome = _maintenance(coordinator, approver, new_asset(), start_date=date(2024, 1, 1))
        assert outcome.record.status == MaintenanceStatus.IN_PROGRESS
        assert outcome.updated_asset.status == AssetStatus.IN_MAINTENANCE
        assert outcome.history_entry.action == HistoryAction.MAINTENANCE_START
        assert outcome.history_entry.notes == "Maintenance started: Replace fan"

    def test_start_then_complete_returns_asset(
        self, coordinator, approver, new_asset, session, deterministic_clock,
    ):
        asset_id = new_asset()
        record_id = _maintenance(coordinator, approver, asset_id).record.id
        started = coordinator.apply_transition(
            TransitionKind.START_MAINTENANCE, TransitionTarget(maintenance_id=record_id), approver,
        )
        assert started.updated_asset.status == AssetStatus.IN_MAINTENANCE
        deterministic_clock.advance(2 * 86400)

        outcome = coordinator.apply_transition(
            TransitionKind.COMPLETE_MAINTENANCE,
            TransitionTarget(maintenance_id=record_id),
            approver,
            MaintenanceCompletion(record_id, cost=Decimal("150.004")),
        )

        assert outcome.record.status == MaintenanceStatus.COMPLETED
        assert outcome.record.cost == Decimal("150.00")
        assert outcome.record.completed_date == deterministic_clock.today()
        assert outcome.updated_asset.status == AssetStatus.AVAILABLE
        assert outcome.history_entry.action == HistoryAction.MAINTENANCE_END

    def test_complete_scheduled_record_keeps_asset_status(self, coordinator, approver, new_asset):
        asset_id = new_asset()
        record_id = _maintenance(coordinator, approver, asset_id).record.id
        outcome = coordinator.apply_transition(
            TransitionKind.COMPLETE_MAINTENANCE,
            TransitionTarget(maintenance_id=record_id),
            approver,
            MaintenanceCompletion(record_id),
        )
        assert outcome.record.status == MaintenanceStatus.COMPLETED
        assert outcome.updated_asset.status == AssetStatus.AVAILABLE
        assert outcome.history_entry is None

    def test_second_completion_refused(self, coordinator, approver, new_asset):
        record_id = _maintenance(coordinator, approver, new_asset()).record.id
        complete = MaintenanceCompletion(record_id)
        coordinator.apply_transition(
            TransitionKind.COMPLETE_MAINTENANCE, TransitionTarget(), approver, complete,
        )
        with pytest.raises(GuardViolationError) as exc_info:
            coordinator.apply_transition(
                TransitionKind.COMPLETE_MAINTENANCE, TransitionTarget(), approver, complete,
            )
        assert str(exc_info.value) == "Maintenance record already completed"

    def test_disposed_asset_refused(self, coordinator, approver, new_asset):
        asset_id = new_asset()
        coordinator.apply_transition(
            TransitionKind.DISPOSE_ASSET,
            TransitionTarget(business_unit_id=TEST_BUSINESS_UNIT_ID),
            approver,
            DisposalRequest(asset_id, date(2024, 3, 1), DisposalReason.SCRAPPED),
        )
        with pytest.raises(GuardViolationError) as exc_info:
            _maintenance(coordinator, approver, asset_id)
        assert str(exc_info.value) == "Cannot record maintenance for disposed asset"

    def test_missing_record(self, coordinator, approver):
        with pytest.raises(MaintenanceRecordNotFoundError):
            coordinator.apply_transition(
                TransitionKind.START_MAINTENANCE, TransitionTarget(maintenance_id=uuid4()), approver,
            )
