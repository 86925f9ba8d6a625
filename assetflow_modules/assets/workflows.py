"""
Asset Lifecycle Workflows.

State machines for assets, deployments, retirements, disposals,
business-unit transfers and maintenance records.
Guards are declared here with their violation messages; evaluation lives
in ``lifecycle.py``.
"""

from assetflow_kernel.domain.workflow import Guard, GuardKind, Transition, Workflow
from assetflow_kernel.logging_config import get_logger
from assetflow_modules.assets.models import (
    ApprovalState,
    AssetStatus,
    DeploymentStatus,
    MaintenanceStatus,
    TransferStatus,
)

logger = get_logger("modules.assets.workflows")

_A = AssetStatus
_D = DeploymentStatus


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

CAN_APPROVE_DEPLOYMENTS = Guard(
    name="can_approve_deployments",
    description="Principal holds the deployment approval capability",
    message="You do not have permission to approve deployments",
    kind=GuardKind.AUTHORIZATION,
)

CAN_REJECT_DEPLOYMENTS = Guard(
    name="can_reject_deployments",
    description="Principal holds the deployment approval capability",
    message="You do not have permission to reject deployments",
    kind=GuardKind.AUTHORIZATION,
)

DEPLOYMENT_PENDING = Guard(
    name="deployment_pending",
    description="Deployment awaits accounting approval",
    message="Deployment is not pending approval",
)

ASSET_STILL_AVAILABLE = Guard(
    name="asset_available",
    description="Asset has not been taken by another operation since the request",
    message="Asset is no longer available for deployment",
)

ASSET_AVAILABLE_FOR_REQUEST = Guard(
    name="asset_available",
    description="Asset is AVAILABLE",
    message="Asset is not available for deployment",
)

NO_OPEN_DEPLOYMENT = Guard(
    name="no_open_deployment",
    description="Asset has no pending or active deployment",
    message="Asset already has an open deployment",
)

DEPLOYMENT_NOT_DEPLOYED = Guard(
    name="deployment_not_deployed",
    description="Deployment has not been approved yet",
    message="Cannot cancel deployed asset. Use return instead.",
)

DEPLOYMENT_ACTIVE = Guard(
    name="deployment_active",
    description="Deployment is DEPLOYED",
    message="Asset is not currently deployed",
)

NOT_RETIRED = Guard(
    name="not_retired",
    description="Asset is not RETIRED",
    message="Asset is already retired",
)

NOT_DISPOSED = Guard(
    name="not_disposed",
    description="Asset is not DISPOSED and has no disposal record",
    message="Asset has already been disposed",
)

NO_ACTIVE_DEPLOYMENTS_FOR_RETIRE = Guard(
    name="no_open_deployments",
    description="Asset has zero open deployments",
    message="Cannot retire asset with active deployments",
)

NO_ACTIVE_DEPLOYMENTS_FOR_DISPOSE = Guard(
    name="no_open_deployments",
    description="Asset has zero open deployments",
    message="Cannot dispose asset with active deployments",
)

RETIREMENT_NOT_APPROVED = Guard(
    name="record_not_approved",
    description="Retirement has no approval yet",
    message="Retirement already approved",
)

DISPOSAL_NOT_APPROVED = Guard(
    name="record_not_approved",
    description="Disposal has no approval yet",
    message="Disposal already approved",
)

CAN_APPROVE_TRANSFERS = Guard(
    name="can_approve_transfers",
    description="Principal holds the transfer approval capability",
    message="You do not have permission to approve transfers",
    kind=GuardKind.AUTHORIZATION,
)

CAN_REJECT_TRANSFERS = Guard(
    name="can_reject_transfers",
    description="Principal holds the transfer approval capability",
    message="You do not have permission to reject transfers",
    kind=GuardKind.AUTHORIZATION,
)

NOT_DISPOSED_FOR_TRANSFER = Guard(
    name="not_disposed",
    description="Asset is not DISPOSED",
    message="Cannot transfer disposed asset",
)

NO_OPEN_TRANSFER = Guard(
    name="no_open_transfer",
    description="Asset has no pending, approved or in-transit transfer",
    message="Asset already has a pending or active transfer",
)

DIFFERENT_BUSINESS_UNIT = Guard(
    name="different_business_unit",
    description="Destination differs from the asset's current business unit",
    message="Cannot transfer asset to the same business unit",
)

NO_ACTIVE_DEPLOYMENTS_FOR_TRANSFER = Guard(
    name="no_open_deployments",
    description="Asset has zero open deployments",
    message="Cannot transfer asset with active deployments",
)

TRANSFER_PENDING = Guard(
    name="transfer_pending",
    description="Transfer awaits approval",
    message="Transfer is not pending approval",
)

TRANSFER_APPROVED = Guard(
    name="transfer_approved",
    description="Transfer was approved and not yet dispatched",
    message="Transfer is not approved",
)

TRANSFER_IN_TRANSIT = Guard(
    name="transfer_in_transit",
    description="Asset has left the source unit",
    message="Transfer is not in transit",
)

TRANSFER_CANCELLABLE = Guard(
    name="transfer_cancellable",
    description="Transfer has not been dispatched or closed",
    message="Only pending or approved transfers can be cancelled",
)

NOT_DISPOSED_FOR_MAINTENANCE = Guard(
    name="not_disposed",
    description="Asset is not DISPOSED",
    message="Cannot record maintenance for disposed asset",
)

MAINTENANCE_SCHEDULED = Guard(
    name="maintenance_scheduled",
    description="Maintenance has not started",
    message="Maintenance has already started",
)

MAINTENANCE_OPEN = Guard(
    name="maintenance_open",
    description="Maintenance is not COMPLETED",
    message="Maintenance record already completed",
)

logger.info(
    "asset_workflow_guards_defined",
    extra={
        "guards": sorted({
            CAN_APPROVE_DEPLOYMENTS.name,
            DEPLOYMENT_PENDING.name,
            ASSET_STILL_AVAILABLE.name,
            NO_OPEN_DEPLOYMENT.name,
            DEPLOYMENT_NOT_DEPLOYED.name,
            DEPLOYMENT_ACTIVE.name,
            NOT_RETIRED.name,
            NOT_DISPOSED.name,
            NO_ACTIVE_DEPLOYMENTS_FOR_RETIRE.name,
            RETIREMENT_NOT_APPROVED.name,
            CAN_APPROVE_TRANSFERS.name,
            NO_OPEN_TRANSFER.name,
            DIFFERENT_BUSINESS_UNIT.name,
            TRANSFER_PENDING.name,
            TRANSFER_APPROVED.name,
            TRANSFER_IN_TRANSIT.name,
            TRANSFER_CANCELLABLE.name,
            MAINTENANCE_SCHEDULED.name,
            MAINTENANCE_OPEN.name,
        }),
    },
)


# -----------------------------------------------------------------------------
# Asset Workflow
# -----------------------------------------------------------------------------

_RETIRE_GUARDS = (NOT_RETIRED, NOT_DISPOSED, NO_ACTIVE_DEPLOYMENTS_FOR_RETIRE)
_DISPOSE_GUARDS = (NOT_DISPOSED, NO_ACTIVE_DEPLOYMENTS_FOR_DISPOSE)
_REQUEST_GUARDS = (ASSET_AVAILABLE_FOR_REQUEST, NO_OPEN_DEPLOYMENT)
_TRANSFER_GUARDS = (NOT_DISPOSED_FOR_TRANSFER, NO_OPEN_TRANSFER, DIFFERENT_BUSINESS_UNIT)

# States an asset can be transferred out of, or have maintenance recorded in.
_TRANSFERABLE = (_A.AVAILABLE, _A.DEPLOYED, _A.IN_MAINTENANCE, _A.RETIRED, _A.LOST, _A.DAMAGED)
_MAINTAINABLE = _TRANSFERABLE + (_A.IN_TRANSIT,)

ASSET_WORKFLOW = Workflow(
    name="asset",
    description="Physical asset lifecycle",
    initial_state=_A.AVAILABLE.value,
    states=tuple(s.value for s in AssetStatus),
    transitions=(
        # Requesting keeps the asset AVAILABLE until accounting approves.
        Transition(_A.AVAILABLE.value, _A.AVAILABLE.value, "request_deployment", guards=_REQUEST_GUARDS),
        Transition(_A.AVAILABLE.value, _A.DEPLOYED.value, "deploy", guards=(ASSET_STILL_AVAILABLE,)),
        Transition(_A.DEPLOYED.value, _A.AVAILABLE.value, "return"),
        Transition(_A.AVAILABLE.value, _A.RETIRED.value, "retire", guards=_RETIRE_GUARDS),
        Transition(_A.DAMAGED.value, _A.RETIRED.value, "retire", guards=_RETIRE_GUARDS),
        Transition(_A.LOST.value, _A.RETIRED.value, "retire", guards=_RETIRE_GUARDS),
        Transition(_A.RETIRED.value, _A.DISPOSED.value, "dispose", guards=_DISPOSE_GUARDS),
        Transition(_A.AVAILABLE.value, _A.DISPOSED.value, "dispose", guards=_DISPOSE_GUARDS),
        Transition(_A.IN_MAINTENANCE.value, _A.DISPOSED.value, "dispose", guards=_DISPOSE_GUARDS),
        Transition(_A.DAMAGED.value, _A.DISPOSED.value, "dispose", guards=_DISPOSE_GUARDS),
        Transition(_A.LOST.value, _A.DISPOSED.value, "dispose", guards=_DISPOSE_GUARDS),
        Transition(_A.AVAILABLE.value, _A.IN_MAINTENANCE.value, "send_to_maintenance"),
        Transition(_A.DAMAGED.value, _A.IN_MAINTENANCE.value, "send_to_maintenance"),
        Transition(_A.IN_MAINTENANCE.value, _A.AVAILABLE.value, "complete_maintenance"),
        Transition(_A.AVAILABLE.value, _A.LOST.value, "report_lost"),
        Transition(_A.IN_MAINTENANCE.value, _A.LOST.value, "report_lost"),
        Transition(_A.AVAILABLE.value, _A.DAMAGED.value, "report_damaged"),
        Transition(_A.IN_MAINTENANCE.value, _A.DAMAGED.value, "report_damaged"),
        # Transfer requests and maintenance records leave the asset status unchanged.
        *(
            Transition(s.value, s.value, "request_transfer", guards=_TRANSFER_GUARDS)
            for s in _TRANSFERABLE
        ),
        Transition(
            _A.AVAILABLE.value, _A.IN_TRANSIT.value, "dispatch_transfer",
            guards=(NO_ACTIVE_DEPLOYMENTS_FOR_TRANSFER,),
        ),
        Transition(_A.IN_TRANSIT.value, _A.AVAILABLE.value, "receive_transfer"),
        *(
            Transition(s.value, s.value, "record_maintenance", guards=(NOT_DISPOSED_FOR_MAINTENANCE,))
            for s in _MAINTAINABLE
        ),
    ),
    terminal_states=(_A.DISPOSED.value,),
)

# Actions callers may drive through change_asset_status.
STATUS_CHANGE_ACTIONS: tuple[str, ...] = (
    "send_to_maintenance",
    "complete_maintenance",
    "report_lost",
    "report_damaged",
)


# -----------------------------------------------------------------------------
# Deployment Workflow
# -----------------------------------------------------------------------------

DEPLOYMENT_WORKFLOW = Workflow(
    name="deployment",
    description="Asset deployment with accounting approval",
    initial_state=_D.PENDING_ACCOUNTING_APPROVAL.value,
    states=tuple(s.value for s in DeploymentStatus),
    transitions=(
        Transition(
            _D.PENDING_ACCOUNTING_APPROVAL.value, _D.DEPLOYED.value, "approve",
            guards=(CAN_APPROVE_DEPLOYMENTS, DEPLOYMENT_PENDING, ASSET_STILL_AVAILABLE),
        ),
        Transition(
            _D.PENDING_ACCOUNTING_APPROVAL.value, _D.CANCELLED.value, "reject",
            guards=(CAN_REJECT_DEPLOYMENTS, DEPLOYMENT_PENDING),
        ),
        Transition(
            _D.PENDING_ACCOUNTING_APPROVAL.value, _D.CANCELLED.value, "cancel",
            guards=(DEPLOYMENT_NOT_DEPLOYED, DEPLOYMENT_PENDING),
        ),
        Transition(
            _D.DEPLOYED.value, _D.RETURNED.value, "return",
            guards=(DEPLOYMENT_ACTIVE,),
        ),
    ),
    terminal_states=(_D.RETURNED.value, _D.CANCELLED.value),
)


# -----------------------------------------------------------------------------
# Approval Workflows
# -----------------------------------------------------------------------------

RETIREMENT_WORKFLOW = Workflow(
    name="retirement",
    description="Retirement approval",
    initial_state=ApprovalState.PENDING_APPROVAL.value,
    states=tuple(s.value for s in ApprovalState),
    transitions=(
        Transition(
            ApprovalState.PENDING_APPROVAL.value, ApprovalState.APPROVED.value, "approve",
            guards=(RETIREMENT_NOT_APPROVED,),
        ),
    ),
    terminal_states=(ApprovalState.APPROVED.value,),
)

DISPOSAL_WORKFLOW = Workflow(
    name="disposal",
    description="Disposal approval",
    initial_state=ApprovalState.PENDING_APPROVAL.value,
    states=tuple(s.value for s in ApprovalState),
    transitions=(
        Transition(
            ApprovalState.PENDING_APPROVAL.value, ApprovalState.APPROVED.value, "approve",
            guards=(DISPOSAL_NOT_APPROVED,),
        ),
    ),
    terminal_states=(ApprovalState.APPROVED.value,),
)


# -----------------------------------------------------------------------------
# Transfer Workflow
# -----------------------------------------------------------------------------

_T = TransferStatus

TRANSFER_WORKFLOW = Workflow(
    name="transfer",
    description="Asset transfer between business units",
    initial_state=_T.PENDING_APPROVAL.value,
    states=tuple(s.value for s in TransferStatus),
    transitions=(
        Transition(
            _T.PENDING_APPROVAL.value, _T.APPROVED.value, "approve",
            guards=(CAN_APPROVE_TRANSFERS, TRANSFER_PENDING),
        ),
        Transition(
            _T.PENDING_APPROVAL.value, _T.REJECTED.value, "reject",
            guards=(CAN_REJECT_TRANSFERS, TRANSFER_PENDING),
        ),
        Transition(_T.APPROVED.value, _T.IN_TRANSIT.value, "dispatch", guards=(TRANSFER_APPROVED,)),
        Transition(_T.IN_TRANSIT.value, _T.COMPLETED.value, "complete", guards=(TRANSFER_IN_TRANSIT,)),
        Transition(_T.PENDING_APPROVAL.value, _T.CANCELLED.value, "cancel", guards=(TRANSFER_CANCELLABLE,)),
        Transition(_T.APPROVED.value, _T.CANCELLED.value, "cancel", guards=(TRANSFER_CANCELLABLE,)),
    ),
    terminal_states=(_T.COMPLETED.value, _T.REJECTED.value, _T.CANCELLED.value),
)


# -----------------------------------------------------------------------------
# Maintenance Workflow
# -----------------------------------------------------------------------------

_M = MaintenanceStatus

MAINTENANCE_WORKFLOW = Workflow(
    name="maintenance",
    description="Maintenance work order",
    initial_state=_M.SCHEDULED.value,
    states=tuple(s.value for s in MaintenanceStatus),
    transitions=(
        Transition(_M.SCHEDULED.value, _M.IN_PROGRESS.value, "start", guards=(MAINTENANCE_SCHEDULED,)),
        Transition(_M.SCHEDULED.value, _M.COMPLETED.value, "complete", guards=(MAINTENANCE_OPEN,)),
        Transition(_M.IN_PROGRESS.value, _M.COMPLETED.value, "complete", guards=(MAINTENANCE_OPEN,)),
    ),
    terminal_states=(_M.COMPLETED.value,),
)

ALL_WORKFLOWS: tuple[Workflow, ...] = (
    ASSET_WORKFLOW,
    DEPLOYMENT_WORKFLOW,
    RETIREMENT_WORKFLOW,
    DISPOSAL_WORKFLOW,
    TRANSFER_WORKFLOW,
    MAINTENANCE_WORKFLOW,
)
