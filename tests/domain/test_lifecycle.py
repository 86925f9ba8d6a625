"""
LifecycleStateMachine and GuardExecutor tests.

Pure decision logic: no database.  Checks guard order, the error family
of each failure, and the lifecycle_transition trace record.
"""

from uuid import uuid4

import pytest

from assetflow_kernel.domain.workflow import Guard
from assetflow_kernel.exceptions import (
    AuthorizationError,
    BusinessRuleViolation,
    GuardViolationError,
    InvalidTransitionError,
)
from assetflow_modules.assets.lifecycle import (
    APPROVE_DEPLOYMENTS_CAPABILITY,
    APPROVE_TRANSFERS_CAPABILITY,
    GuardExecutor,
    LifecycleStateMachine,
    TransitionContext,
)
from assetflow_modules.assets.workflows import (
    ASSET_WORKFLOW,
    DEPLOYMENT_WORKFLOW,
    MAINTENANCE_WORKFLOW,
    RETIREMENT_WORKFLOW,
    TRANSFER_WORKFLOW,
)

APPROVER_CAPS = frozenset({APPROVE_DEPLOYMENTS_CAPABILITY})


@pytest.fixture
def machine():
    return LifecycleStateMachine()


class TestGuardExecutor:

    def test_missing_evaluator_fails_closed(self):
        executor = GuardExecutor()
        assert executor.evaluate(Guard("unknown", "", "nope")) is False

    def test_raising_evaluator_fails_closed(self):
        executor = GuardExecutor()
        executor.register("boom", lambda ctx: 1 / 0)
        assert executor.evaluate(Guard("boom", "", "nope"), {}) is False

    def test_dict_context(self):
        executor = GuardExecutor()
        executor.register("flag", lambda ctx: ctx.get("flag"))
        assert executor.evaluate(Guard("flag", "", ""), {"flag": True}) is True


class TestDeploymentApproval:

    def test_allowed(self, machine):
        ctx = TransitionContext(
            asset_status="AVAILABLE",
            deployment_status="PENDING_ACCOUNTING_APPROVAL",
            capabilities=APPROVER_CAPS,
        )
        t = machine.check(DEPLOYMENT_WORKFLOW, "approve", "PENDING_ACCOUNTING_APPROVAL", ctx)
        assert t.to_state == "DEPLOYED"

    def test_missing_capability_is_authorization_error(self, machine):
        ctx = TransitionContext(
            asset_status="AVAILABLE", deployment_status="PENDING_ACCOUNTING_APPROVAL",
        )
        with pytest.raises(AuthorizationError) as exc_info:
            machine.check(DEPLOYMENT_WORKFLOW, "approve", "PENDING_ACCOUNTING_APPROVAL", ctx)
        assert str(exc_info.value) == "You do not have permission to approve deployments"

    def test_already_deployed(self, machine):
        ctx = TransitionContext(
            asset_status="DEPLOYED", deployment_status="DEPLOYED", capabilities=APPROVER_CAPS,
        )
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(DEPLOYMENT_WORKFLOW, "approve", "DEPLOYED", ctx)
        assert str(exc_info.value) == "Deployment is not pending approval"

    def test_asset_no_longer_available(self, machine):
        ctx = TransitionContext(
            asset_status="IN_MAINTENANCE",
            deployment_status="PENDING_ACCOUNTING_APPROVAL",
            capabilities=APPROVER_CAPS,
        )
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(DEPLOYMENT_WORKFLOW, "approve", "PENDING_ACCOUNTING_APPROVAL", ctx)
        assert str(exc_info.value) == "Asset is no longer available for deployment"

    def test_authorization_checked_first(self, machine):
        ctx = TransitionContext(asset_status="DEPLOYED", deployment_status="DEPLOYED")
        with pytest.raises(AuthorizationError):
            machine.check(DEPLOYMENT_WORKFLOW, "approve", "DEPLOYED", ctx)

    def test_cancel_deployed(self, machine):
        ctx = TransitionContext(deployment_status="DEPLOYED")
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(DEPLOYMENT_WORKFLOW, "cancel", "DEPLOYED", ctx)
        assert str(exc_info.value) == "Cannot cancel deployed asset. Use return instead."


class TestAssetTransitions:

    def test_deploying_deployed_asset_is_business_rule_violation(self, machine):
        ctx = TransitionContext(asset_status="DEPLOYED")
        with pytest.raises(BusinessRuleViolation):
            machine.check(ASSET_WORKFLOW, "deploy", "DEPLOYED", ctx)

    def test_retire_with_open_deployment(self, machine):
        ctx = TransitionContext(asset_status="DEPLOYED", open_deployment_count=1)
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(ASSET_WORKFLOW, "retire", "DEPLOYED", ctx)
        assert str(exc_info.value) == "Cannot retire asset with active deployments"

    def test_retire_already_retired(self, machine):
        ctx = TransitionContext(asset_status="RETIRED")
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(ASSET_WORKFLOW, "retire", "RETIRED", ctx)
        assert str(exc_info.value) == "Asset is already retired"

    def test_retire_from_maintenance_has_no_transition(self, machine):
        ctx = TransitionContext(asset_status="IN_MAINTENANCE")
        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.check(ASSET_WORKFLOW, "retire", "IN_MAINTENANCE", ctx)
        assert str(exc_info.value) == "Cannot retire when status is IN_MAINTENANCE"

    def test_dispose_disposed(self, machine):
        ctx = TransitionContext(asset_status="DISPOSED", has_disposal=True)
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(ASSET_WORKFLOW, "dispose", "DISPOSED", ctx)
        assert str(exc_info.value) == "Asset has already been disposed"

    def test_request_on_unavailable_asset(self, machine):
        ctx = TransitionContext(asset_status="IN_MAINTENANCE")
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(ASSET_WORKFLOW, "request_deployment", "IN_MAINTENANCE", ctx)
        assert str(exc_info.value) == "Asset is not available for deployment"

    def test_can_returns_bool(self, machine):
        ctx = TransitionContext(asset_status="AVAILABLE")
        assert machine.can(ASSET_WORKFLOW, "send_to_maintenance", "AVAILABLE", ctx) is True
        assert machine.can(ASSET_WORKFLOW, "complete_maintenance", "AVAILABLE", ctx) is False


class TestApprovalWorkflows:

    def test_second_approval_rejected(self, machine):
        ctx = TransitionContext(record_approved=True)
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(RETIREMENT_WORKFLOW, "approve", "APPROVED", ctx)
        assert str(exc_info.value) == "Retirement already approved"



class TestTransferTransitions:

    def test_same_business_unit(self, machine):
        unit = uuid4()
        ctx = TransitionContext(
            asset_status="AVAILABLE", source_business_unit_id=unit, target_business_unit_id=unit,
        )
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(ASSET_WORKFLOW, "request_transfer", "AVAILABLE", ctx)
        assert str(exc_info.value) == "Cannot transfer asset to the same business unit"

    def test_disposed_asset_checked_before_open_transfer(self, machine):
        ctx = TransitionContext(asset_status="DISPOSED", has_disposal=True, open_transfer_count=1)
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(ASSET_WORKFLOW, "request_transfer", "DISPOSED", ctx)
        assert str(exc_info.value) == "Cannot transfer disposed asset"

    def test_in_transit_asset_has_open_transfer(self, machine):
        ctx = TransitionContext(
            asset_status="IN_TRANSIT", open_transfer_count=1,
            source_business_unit_id=uuid4(), target_business_unit_id=uuid4(),
        )
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(ASSET_WORKFLOW, "request_transfer", "IN_TRANSIT", ctx)
        assert str(exc_info.value) == "Asset already has a pending or active transfer"

    def test_approve_requires_transfer_capability(self, machine):
        ctx = TransitionContext(transfer_status="PENDING_APPROVAL", capabilities=APPROVER_CAPS)
        with pytest.raises(AuthorizationError) as exc_info:
            machine.check(TRANSFER_WORKFLOW, "approve", "PENDING_APPROVAL", ctx)
        assert str(exc_info.value) == "You do not have permission to approve transfers"

    def test_approve_allowed(self, machine):
        ctx = TransitionContext(
            transfer_status="PENDING_APPROVAL",
            capabilities=frozenset({APPROVE_TRANSFERS_CAPABILITY}),
        )
        assert machine.check(TRANSFER_WORKFLOW, "approve", "PENDING_APPROVAL", ctx).to_state == "APPROVED"

    def test_complete_requires_transit(self, machine):
        ctx = TransitionContext(transfer_status="APPROVED")
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(TRANSFER_WORKFLOW, "complete", "APPROVED", ctx)
        assert str(exc_info.value) == "Transfer is not in transit"

    def test_cancel_in_transit(self, machine):
        ctx = TransitionContext(transfer_status="IN_TRANSIT")
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(TRANSFER_WORKFLOW, "cancel", "IN_TRANSIT", ctx)
        assert str(exc_info.value) == "Only pending or approved transfers can be cancelled"


class TestMaintenanceTransitions:

    def test_start_twice(self, machine):
        ctx = TransitionContext(maintenance_status="IN_PROGRESS")
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(MAINTENANCE_WORKFLOW, "start", "IN_PROGRESS", ctx)
        assert str(exc_info.value) == "Maintenance has already started"

    def test_complete_completed(self, machine):
        ctx = TransitionContext(maintenance_status="COMPLETED")
        with pytest.raises(GuardViolationError) as exc_info:
            machine.check(MAINTENANCE_WORKFLOW, "complete", "COMPLETED", ctx)
        assert str(exc_info.value) == "Maintenance record already completed"

class TestTransitionTrace:

    def test_allowed_decision_logged(self, machine, captured_logs):
        entity_id = uuid4()
        ctx = TransitionContext(asset_status="AVAILABLE")
        machine.check(ASSET_WORKFLOW, "report_lost", "AVAILABLE", ctx, entity_id)

        traces = [r for r in captured_logs() if r["message"] == "lifecycle_transition"]
        assert traces[-1]["outcome"] == "allowed"
        assert traces[-1]["to_state"] == "LOST"
        assert traces[-1]["entity_id"] == str(entity_id)

    def test_guard_failure_logged(self, machine, captured_logs):
        ctx = TransitionContext(asset_status="RETIRED")
        with pytest.raises(GuardViolationError):
            machine.check(ASSET_WORKFLOW, "retire", "RETIRED", ctx)

        traces = [r for r in captured_logs() if r["message"] == "lifecycle_transition"]
        assert traces[-1]["outcome"] == "guard_failed"
        assert traces[-1]["reason"] == "not_retired"
