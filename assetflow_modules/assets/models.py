"""
Asset Lifecycle Domain Models.

The nouns of the asset lifecycle: assets, deployments, retirements,
disposals, transfers between business units, maintenance records,
history, usage, and the request payloads callers submit.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from assetflow_engines.depreciation import DepreciationMethod


class AssetStatus(str, Enum):
    """Asset lifecycle states."""
    AVAILABLE = "AVAILABLE"
    DEPLOYED = "DEPLOYED"
    IN_MAINTENANCE = "IN_MAINTENANCE"
    RETIRED = "RETIRED"
    DISPOSED = "DISPOSED"
    LOST = "LOST"
    DAMAGED = "DAMAGED"
    IN_TRANSIT = "IN_TRANSIT"


class DeploymentStatus(str, Enum):
    """Deployment lifecycle states."""
    PENDING_ACCOUNTING_APPROVAL = "PENDING_ACCOUNTING_APPROVAL"
    DEPLOYED = "DEPLOYED"
    RETURNED = "RETURNED"
    CANCELLED = "CANCELLED"


# At most one deployment per asset may be in one of these states.
OPEN_DEPLOYMENT_STATUSES: tuple[str, ...] = (
    DeploymentStatus.PENDING_ACCOUNTING_APPROVAL.value,
    DeploymentStatus.DEPLOYED.value,
)


class ApprovalState(str, Enum):
    """Approval state of a retirement or disposal record."""
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"


class TransferStatus(str, Enum):
    """Transfer of an asset between business units."""
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    IN_TRANSIT = "IN_TRANSIT"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# At most one transfer per asset may be in one of these states.
OPEN_TRANSFER_STATUSES: tuple[str, ...] = (
    TransferStatus.PENDING_APPROVAL.value,
    TransferStatus.APPROVED.value,
    TransferStatus.IN_TRANSIT.value,
)


class MaintenanceType(str, Enum):
    PREVENTIVE = "PREVENTIVE"
    CORRECTIVE = "CORRECTIVE"
    EMERGENCY = "EMERGENCY"
    INSPECTION = "INSPECTION"
    CALIBRATION = "CALIBRATION"


class MaintenanceStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class RetirementReason(str, Enum):
    END_OF_USEFUL_LIFE = "END_OF_USEFUL_LIFE"
    DAMAGED_BEYOND_REPAIR = "DAMAGED_BEYOND_REPAIR"
    OBSOLETE = "OBSOLETE"
    LOST = "LOST"
    STOLEN = "STOLEN"
    UPGRADE = "UPGRADE"
    COST_OF_REPAIR = "COST_OF_REPAIR"
    OTHER = "OTHER"


class DisposalReason(str, Enum):
    SOLD = "SOLD"
    DONATED = "DONATED"
    SCRAPPED = "SCRAPPED"
    RECYCLED = "RECYCLED"
    TRADED_IN = "TRADED_IN"
    OTHER = "OTHER"


class AssetCondition(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    DAMAGED = "DAMAGED"


class HistoryAction(str, Enum):
    """What a history entry records."""
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    DEPLOYED = "DEPLOYED"
    RETURNED = "RETURNED"
    RETIRED = "RETIRED"
    DISPOSED = "DISPOSED"
    TRANSFERRED = "TRANSFERRED"
    MAINTENANCE_START = "MAINTENANCE_START"
    MAINTENANCE_END = "MAINTENANCE_END"


class RecommendedAction(str, Enum):
    RETIRE = "RETIRE"
    MAINTAIN = "MAINTAIN"
    MONITOR = "MONITOR"


class NotificationType(str, Enum):
    FULLY_DEPRECIATED = "FULLY_DEPRECIATED"
    APPROACHING_END_OF_LIFE = "APPROACHING_END_OF_LIFE"
    DEPLOYMENT_APPROVED = "DEPLOYMENT_APPROVED"
    DEPLOYMENT_REJECTED = "DEPLOYMENT_REJECTED"
    ASSET_RETURNED = "ASSET_RETURNED"
    ASSET_RETIRED = "ASSET_RETIRED"
    ASSET_DISPOSED = "ASSET_DISPOSED"


# -----------------------------------------------------------------------------
# Records
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Asset:
    """A tracked physical asset."""
    id: UUID
    business_unit_id: UUID
    item_code: str
    description: str
    status: AssetStatus = AssetStatus.AVAILABLE
    purchase_price: Decimal | None = None
    salvage_value: Decimal = Decimal("0")
    useful_life_months: int | None = None
    depreciation_method: DepreciationMethod = DepreciationMethod.STRAIGHT_LINE
    purchase_date: date | None = None
    total_expected_units: Decimal | None = None
    serial_number: str | None = None
    currently_assigned_to: UUID | None = None
    current_deployment_id: UUID | None = None
    is_active: bool = True


@dataclass(frozen=True)
class Deployment:
    """Assignment of one asset to one employee."""
    id: UUID
    asset_id: UUID
    employee_id: UUID
    business_unit_id: UUID
    transmittal_number: str
    status: DeploymentStatus = DeploymentStatus.PENDING_ACCOUNTING_APPROVAL
    expected_return_date: date | None = None
    deployed_date: date | None = None
    returned_date: date | None = None
    deployment_notes: str | None = None
    return_condition: str | None = None
    return_notes: str | None = None
    accounting_notes: str | None = None
    accounting_approver_id: UUID | None = None
    accounting_approved_at: datetime | None = None


@dataclass(frozen=True)
class Retirement:
    """Formal removal of an asset from active service."""
    id: UUID
    asset_id: UUID
    business_unit_id: UUID
    retirement_date: date
    reason: RetirementReason
    condition: AssetCondition | None = None
    disposal_planned: bool = False
    disposal_date: date | None = None
    notes: str | None = None
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None

    @property
    def approval_state(self) -> ApprovalState:
        return ApprovalState.APPROVED if self.approved_at else ApprovalState.PENDING_APPROVAL


@dataclass(frozen=True)
class Disposal:
    """Final removal of an asset, realizing a gain or loss against book value."""
    id: UUID
    asset_id: UUID
    business_unit_id: UUID
    disposal_date: date
    reason: DisposalReason
    disposal_method: str | None = None
    disposal_value: Decimal = Decimal("0")
    disposal_cost: Decimal = Decimal("0")
    book_value_at_disposal: Decimal = Decimal("0")
    gain_loss: Decimal = Decimal("0")
    retirement_id: UUID | None = None
    notes: str | None = None
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None

    @property
    def approval_state(self) -> ApprovalState:
        return ApprovalState.APPROVED if self.approved_at else ApprovalState.PENDING_APPROVAL


@dataclass(frozen=True)
class AssetHistoryEntry:
    """One immutable entry of an asset's status history."""
    id: UUID
    asset_id: UUID
    business_unit_id: UUID
    action: HistoryAction
    previous_status: AssetStatus | None
    new_status: AssetStatus | None
    performed_by_id: UUID
    performed_at: datetime
    notes: str | None = None
    details: dict[str, Any] | None = None
    deployment_id: UUID | None = None
    employee_id: UUID | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass(frozen=True)
class AssetUsage:
    """Units consumed by an asset in one depreciation period."""
    id: UUID
    asset_id: UUID
    period: int
    units: Decimal


@dataclass(frozen=True)
class Transfer:
    """Move of one asset from one business unit to another."""
    id: UUID
    transfer_number: str
    asset_id: UUID
    from_business_unit_id: UUID
    to_business_unit_id: UUID
    transfer_date: date
    reason: str
    status: TransferStatus = TransferStatus.PENDING_APPROVAL
    from_location: str | None = None
    to_location: str | None = None
    transfer_method: str | None = None
    tracking_number: str | None = None
    condition_before: AssetCondition | None = None
    condition_after: AssetCondition | None = None
    transfer_cost: Decimal | None = None
    transfer_notes: str | None = None
    requested_by_id: UUID | None = None
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    dispatched_at: datetime | None = None
    received_by_id: UUID | None = None
    completed_date: date | None = None


@dataclass(frozen=True)
class MaintenanceRecord:
    """Scheduled, running or finished maintenance work on an asset."""
    id: UUID
    asset_id: UUID
    business_unit_id: UUID
    maintenance_type: MaintenanceType
    description: str
    scheduled_date: date
    status: MaintenanceStatus = MaintenanceStatus.SCHEDULED
    start_date: date | None = None
    completed_date: date | None = None
    performed_by: str | None = None
    cost: Decimal | None = None
    notes: str | None = None


# -----------------------------------------------------------------------------
# Request payloads
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetRegistration:
    item_code: str
    description: str
    purchase_price: Decimal | None = None
    salvage_value: Decimal = Decimal("0")
    useful_life_months: int | None = None
    depreciation_method: DepreciationMethod = DepreciationMethod.STRAIGHT_LINE
    purchase_date: date | None = None
    total_expected_units: Decimal | None = None
    serial_number: str | None = None


@dataclass(frozen=True)
class DeploymentRequest:
    asset_id: UUID
    employee_id: UUID
    expected_return_date: date | None = None
    deployment_notes: str | None = None


@dataclass(frozen=True)
class DeploymentApproval:
    deployment_id: UUID
    accounting_notes: str | None = None


@dataclass(frozen=True)
class DeploymentRejection:
    deployment_id: UUID
    rejection_reason: str
    accounting_notes: str | None = None


@dataclass(frozen=True)
class AssetReturn:
    deployment_id: UUID
    return_condition: str
    return_notes: str | None = None
    returned_date: date | None = None


@dataclass(frozen=True)
class RetirementRequest:
    asset_id: UUID
    retirement_date: date
    reason: RetirementReason
    condition: AssetCondition | None = None
    disposal_planned: bool = False
    disposal_date: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class DisposalRequest:
    asset_id: UUID
    disposal_date: date
    reason: DisposalReason
    disposal_value: Decimal = Decimal("0")
    disposal_cost: Decimal = Decimal("0")
    disposal_method: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class RecordApproval:
    """Approval of a retirement or disposal record."""
    notes: str | None = None


@dataclass(frozen=True)
class StatusChange:
    """Maintenance, lost or damaged transition requested for an asset."""
    action: str
    notes: str | None = None


@dataclass(frozen=True)
class TransferRequest:
    asset_id: UUID
    to_business_unit_id: UUID
    transfer_date: date
    reason: str
    from_location: str | None = None
    to_location: str | None = None
    transfer_method: str | None = None
    tracking_number: str | None = None
    condition_before: AssetCondition | None = None
    transfer_cost: Decimal | None = None
    transfer_notes: str | None = None


@dataclass(frozen=True)
class TransferApproval:
    transfer_id: UUID
    approval_notes: str | None = None


@dataclass(frozen=True)
class TransferRejection:
    transfer_id: UUID
    rejection_reason: str


@dataclass(frozen=True)
class TransferReceipt:
    """Destination unit confirming the asset arrived."""
    transfer_id: UUID
    condition_after: AssetCondition | None = None
    received_notes: str | None = None


@dataclass(frozen=True)
class MaintenanceRequest:
    """
    New maintenance record.  A ``start_date`` without ``completed_date``
    means the work is already under way and takes the asset out of service.
    """
    asset_id: UUID
    maintenance_type: MaintenanceType
    description: str
    scheduled_date: date
    start_date: date | None = None
    completed_date: date | None = None
    performed_by: str | None = None
    cost: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class MaintenanceCompletion:
    maintenance_id: UUID
    completed_date: date | None = None
    cost: Decimal | None = None
    notes: str | None = None


# -----------------------------------------------------------------------------
# Read models
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class DepreciationSummary:
    """Depreciation totals for one business unit (configured assets only)."""
    total_assets: int
    total_original_value: Decimal
    total_current_value: Decimal
    total_depreciation: Decimal
    fully_depreciated_assets: int


@dataclass(frozen=True)
class DisposalReasonTotal:
    reason: DisposalReason
    count: int
    total_value: Decimal


@dataclass(frozen=True)
class DisposalSummary:
    total_disposals: int
    total_disposal_value: Decimal
    total_disposal_cost: Decimal
    net_disposal_value: Decimal
    total_gain_loss: Decimal
    pending_approvals: int
    disposals_by_reason: tuple[DisposalReasonTotal, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RetirementCandidate:
    """An asset eligible for retirement with a recommended action."""
    asset: Asset
    current_book_value: Decimal
    age_years: Decimal
    depreciation_percent: Decimal
    recommended_action: RecommendedAction


@dataclass(frozen=True)
class MaintenanceScheduleItem:
    """An open maintenance record due inside a schedule window."""
    record: MaintenanceRecord
    item_code: str
    is_overdue: bool
    days_until_due: int
