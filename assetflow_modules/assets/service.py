"""
Asset Lifecycle Module Service (``assetflow_modules.assets.service``).

Responsibility
--------------
Public entry point for every asset lifecycle operation: depreciation
schedules and book values, deployment request/approval/rejection/
cancellation/return, retirement, disposal, business-unit transfers,
maintenance records, status changes, usage, and the read models behind
approval queues and end-of-life notices.

Architecture position
---------------------
**Modules layer** -- thin facade.  Resolves the acting principal once per
call, hands mutations to ``TransactionCoordinator`` (which owns the
transaction boundary), computes schedules with ``ScheduleGenerator``, and
relays committed outcomes to the notification dispatcher.

Invariants enforced
-------------------
* Every operation requires an authenticated principal ("Unauthorized").
* Every operation returns ``OperationResult``; no business error escapes.
* Read operations end their transaction (rollback) before returning so a
  reader never holds the SQLite write lock.
* Notifications are dispatched only after commit; dispatch failures are
  logged and do not change the result.

Failure modes
-------------
* Typed kernel errors  -> ``OperationResult(success=False, message=str(e))``.
* Anything else  -> logged with ``exc_info`` and reported with the
  operation's generic message (e.g. "Failed to approve deployment").

Usage::

    service = AssetLifecycleService(session, identity, clock=clock)
    result = service.approve_deployment(DeploymentApproval(deployment_id))
    if not result.success:
        print(result.message)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from assetflow_config import get_active_config
from assetflow_config.schema import LifecycleConfig
from assetflow_engines.schedule import ScheduleGenerator
from assetflow_kernel.db.types import ZERO, round_money
from assetflow_kernel.domain.clock import Clock, SystemClock
from assetflow_kernel.domain.permissions import Principal
from assetflow_kernel.exceptions import (
    AssetKernelError,
    AssetNotFoundError,
    DepreciationNotConfigured,
    TransactionFailure,
    UnauthenticatedError,
)
from assetflow_kernel.logging_config import LogContext, get_logger
from assetflow_modules.assets.models import (
    AssetRegistration,
    AssetReturn,
    AssetStatus,
    DeploymentApproval,
    DeploymentRejection,
    DeploymentRequest,
    DeploymentStatus,
    DepreciationSummary,
    DisposalReasonTotal,
    DisposalRequest,
    DisposalSummary,
    MaintenanceCompletion,
    MaintenanceRequest,
    MaintenanceScheduleItem,
    NotificationType,
    RecommendedAction,
    RecordApproval,
    RetirementCandidate,
    RetirementRequest,
    StatusChange,
    TransferApproval,
    TransferReceipt,
    TransferRejection,
    TransferRequest,
    TransferStatus,
)
from assetflow_modules.assets.orm import AssetModel
from assetflow_modules.assets.selectors import AssetSelector, basis_from_asset
from assetflow_services.notifications import (
    IdentityProvider,
    LoggingNotificationDispatcher,
    Notification,
    NotificationDispatcher,
    dispatch_all,
)
from assetflow_services.transaction_coordinator import (
    TransactionCoordinator,
    TransitionKind,
    TransitionOutcome,
    TransitionTarget,
)

logger = get_logger("modules.assets.service")

_DAYS_PER_YEAR = Decimal("365.25")
_ONE_PLACE = Decimal("0.1")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class OperationResult:
    """
    Result of one service operation.

    ``data`` carries the operation-specific payload (``schedule``,
    ``retirement_id``, ``approved_count`` ...).
    """

    success: bool
    message: str = ""
    code: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str = "", **data: Any) -> OperationResult:
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, message: str, code: str | None = None, **data: Any) -> OperationResult:
        return cls(success=False, message=message, code=code, data=data)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


class AssetLifecycleService:
    """
    Orchestrates the asset lifecycle through the coordinator and engines.

    Contract
    --------
    * Every public method returns ``OperationResult``.
    * Mutations commit inside ``TransactionCoordinator``; this facade never
      commits itself.

    Non-goals
    ---------
    * Does NOT authenticate; the IdentityProvider supplies the principal.
    * Does NOT cache book values; they are recomputed on every read.
    """

    def __init__(
        self,
        session: Session,
        identity: IdentityProvider,
        config: LifecycleConfig | None = None,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
        schedule_generator: ScheduleGenerator | None = None,
    ):
        self._session = session
        self._identity = identity
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._dispatcher = dispatcher or LoggingNotificationDispatcher()
        self._schedules = schedule_generator or ScheduleGenerator()
        self._selector = AssetSelector(session)
        self._coordinator = TransactionCoordinator(
            session,
            clock=self._clock,
            config=self._config,
            schedule_generator=self._schedules,
        )

    # =========================================================================
    # Depreciation read models
    # =========================================================================

    def get_depreciation_schedule(self, asset_id: UUID) -> OperationResult:
        """Full schedule for one asset; read only."""

        def work(principal: Principal) -> OperationResult:
            asset = self._visible_asset(asset_id, principal)
            if asset is None:
                raise DepreciationNotConfigured(asset_id)
            basis = basis_from_asset(
                asset, self._selector.usage_for(asset.id), fallback_date=self._clock.today(),
            )
            schedule = self._schedules.generate_schedule(basis)
            summary = ScheduleGenerator.summarize(schedule, basis.salvage_value or ZERO)
            return OperationResult.ok(schedule=schedule, summary=summary)

        return self._read("get_depreciation_schedule", "Failed to get depreciation schedule", work)

    def get_book_value(self, asset_id: UUID, as_of: date | None = None) -> OperationResult:
        """Book value of one asset on ``as_of`` (default: today)."""

        def work(principal: Principal) -> OperationResult:
            asset = self._visible_asset(asset_id, principal)
            if asset is None:
                raise AssetNotFoundError(asset_id)
            on = as_of or self._clock.today()
            return OperationResult.ok(book_value=self._book_value(asset, on), as_of=on)

        return self._read("get_book_value", "Failed to get book value", work)

    def get_depreciation_summary(self, business_unit_id: UUID) -> OperationResult:
        """Totals over the unit's assets that have a purchase price."""

        def work(principal: Principal) -> OperationResult:
            self._require_unit(business_unit_id, principal)
            today = self._clock.today()
            total_assets = 0
            original = round_money(ZERO)
            current = round_money(ZERO)
            fully_depreciated = 0
            for asset in self._selector.list_asset_models(business_unit_id):
                if asset.purchase_price is None:
                    continue
                total_assets += 1
                book_value = self._book_value(asset, today)
                original += round_money(asset.purchase_price)
                current += book_value
                if asset.useful_life_months is not None and book_value <= round_money(asset.salvage_value):
                    fully_depreciated += 1
            summary = DepreciationSummary(
                total_assets=total_assets,
                total_original_value=original,
                total_current_value=current,
                total_depreciation=original - current,
                fully_depreciated_assets=fully_depreciated,
            )
            return OperationResult.ok(summary=summary)

        return self._read("get_depreciation_summary", "Failed to get depreciation summary", work)

    # =========================================================================
    # Registration and usage
    # =========================================================================

    def register_asset(self, business_unit_id: UUID, data: AssetRegistration) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.register_asset(business_unit_id, principal, data)
            return OperationResult.ok(
                "Asset created successfully", asset_id=outcome.updated_asset.id,
            )

        return self._write("register_asset", "Failed to create asset", work)

    def record_asset_usage(self, asset_id: UUID, period: int, units: Decimal) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            self._coordinator.record_usage(asset_id, principal, period, units)
            return OperationResult.ok("Asset usage recorded successfully")

        return self._write("record_asset_usage", "Failed to record asset usage", work)

    def change_asset_status(
        self, asset_id: UUID, action: str, notes: str | None = None,
    ) -> OperationResult:
        """send_to_maintenance, complete_maintenance, report_lost or report_damaged."""

        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.CHANGE_STATUS,
                TransitionTarget(asset_id=asset_id),
                principal,
                StatusChange(action, notes),
            )
            return OperationResult.ok(
                "Asset status updated successfully", status=outcome.updated_asset.status,
            )

        return self._write("change_asset_status", "Failed to update asset status", work)

    # =========================================================================
    # Deployments
    # =========================================================================

    def request_deployment(self, business_unit_id: UUID, data: DeploymentRequest) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.REQUEST_DEPLOYMENT,
                TransitionTarget(asset_id=data.asset_id, business_unit_id=business_unit_id),
                principal,
                data,
            )
            return OperationResult.ok(
                "Deployment created successfully",
                deployment_id=outcome.record.id,
                transmittal_number=outcome.record.transmittal_number,
            )

        return self._write("request_deployment", "Failed to create deployment", work)

    def approve_deployment(self, data: DeploymentApproval) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.APPROVE_DEPLOYMENT,
                TransitionTarget(deployment_id=data.deployment_id),
                principal,
                data,
            )
            self._notify_employee(outcome, NotificationType.DEPLOYMENT_APPROVED, "Deployment approved")
            return OperationResult.ok("Deployment approved successfully")

        with LogContext.bind(deployment_id=data.deployment_id):
            return self._write("approve_deployment", "Failed to approve deployment", work)

    def reject_deployment(self, data: DeploymentRejection) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.REJECT_DEPLOYMENT,
                TransitionTarget(deployment_id=data.deployment_id),
                principal,
                data,
            )
            self._notify_employee(outcome, NotificationType.DEPLOYMENT_REJECTED, "Deployment rejected")
            return OperationResult.ok("Deployment rejected successfully")

        with LogContext.bind(deployment_id=data.deployment_id):
            return self._write("reject_deployment", "Failed to reject deployment", work)

    def cancel_deployment(self, deployment_id: UUID) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            self._coordinator.apply_transition(
                TransitionKind.CANCEL_DEPLOYMENT,
                TransitionTarget(deployment_id=deployment_id),
                principal,
            )
            return OperationResult.ok("Deployment cancelled successfully")

        with LogContext.bind(deployment_id=deployment_id):
            return self._write("cancel_deployment", "Failed to cancel deployment", work)

    def return_asset(self, data: AssetReturn) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.RETURN_ASSET,
                TransitionTarget(deployment_id=data.deployment_id),
                principal,
                data,
            )
            self._notify_employee(outcome, NotificationType.ASSET_RETURNED, "Asset returned")
            return OperationResult.ok("Asset returned successfully")

        with LogContext.bind(deployment_id=data.deployment_id):
            return self._write("return_asset", "Failed to return asset", work)

    def bulk_approve_deployments(
        self,
        deployment_ids: Sequence[UUID],
        accounting_notes: str | None = None,
    ) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.bulk_approve(deployment_ids, principal, accounting_notes)
            if outcome.eligible_count == 0:
                return OperationResult.failure(
                    "No valid deployments found for approval", approved_count=0,
                )
            for approved in outcome.approved:
                self._notify_employee(
                    approved, NotificationType.DEPLOYMENT_APPROVED, "Deployment approved",
                )
            return OperationResult.ok(
                f"Successfully approved {outcome.approved_count} out of "
                f"{outcome.requested_count} deployments",
                approved_count=outcome.approved_count,
                skipped=outcome.skipped,
            )

        return self._write("bulk_approve_deployments", "Failed to approve deployments", work)

    def get_deployed_assets(self, business_unit_id: UUID) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            self._require_unit(business_unit_id, principal)
            return OperationResult.ok(
                deployments=self._selector.deployments(business_unit_id, DeploymentStatus.DEPLOYED),
            )

        return self._read("get_deployed_assets", "Failed to get deployed assets", work)

    def get_pending_approvals(self, business_unit_id: UUID) -> OperationResult:
        """Deployments, retirements and disposals still awaiting approval."""

        def work(principal: Principal) -> OperationResult:
            self._require_unit(business_unit_id, principal)
            return OperationResult.ok(
                deployments=self._selector.deployments(
                    business_unit_id, DeploymentStatus.PENDING_ACCOUNTING_APPROVAL,
                ),
                retirements=self._selector.pending_retirements(business_unit_id),
                disposals=self._selector.pending_disposals(business_unit_id),
            )

        return self._read("get_pending_approvals", "Failed to get pending approvals", work)

    # =========================================================================
    # Retirement
    # =========================================================================

    def create_asset_retirement(self, business_unit_id: UUID, data: RetirementRequest) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.RETIRE_ASSET,
                TransitionTarget(asset_id=data.asset_id, business_unit_id=business_unit_id),
                principal,
                data,
            )
            return OperationResult.ok(
                "Asset retirement created successfully", retirement_id=outcome.record.id,
            )

        with LogContext.bind(asset_id=data.asset_id, business_unit_id=business_unit_id):
            return self._write("create_asset_retirement", "Failed to create asset retirement", work)

    def approve_asset_retirement(self, retirement_id: UUID, notes: str | None = None) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.APPROVE_RETIREMENT,
                TransitionTarget(retirement_id=retirement_id),
                principal,
                RecordApproval(notes),
            )
            self._notify_roles(
                outcome, NotificationType.ASSET_RETIRED, "Asset retirement approved",
            )
            return OperationResult.ok("Asset retirement approved successfully")

        return self._write("approve_asset_retirement", "Failed to approve asset retirement", work)

    def get_assets_eligible_for_retirement(self, business_unit_id: UUID) -> OperationResult:
        """Assets not yet retired or disposed, each with a recommended action."""

        def work(principal: Principal) -> OperationResult:
            self._require_unit(business_unit_id, principal)
            policy = self._config.retirement
            today = self._clock.today()
            candidates = []
            for asset in self._selector.list_asset_models(
                business_unit_id, exclude=(AssetStatus.DISPOSED, AssetStatus.RETIRED),
            ):
                book_value, age, percent = self._metrics(asset, today)
                if percent >= policy.retire_depreciation_percent or age >= policy.retire_age_years:
                    action = RecommendedAction.RETIRE
                elif percent >= policy.maintain_depreciation_percent or age >= policy.maintain_age_years:
                    action = RecommendedAction.MAINTAIN
                else:
                    action = RecommendedAction.MONITOR
                if asset.status in (AssetStatus.DAMAGED.value, AssetStatus.LOST.value):
                    action = RecommendedAction.RETIRE
                candidates.append(
                    RetirementCandidate(
                        asset=asset.to_dto(),
                        current_book_value=book_value,
                        age_years=age,
                        depreciation_percent=percent,
                        recommended_action=action,
                    )
                )
            return OperationResult.ok(assets=tuple(candidates))

        return self._read(
            "get_assets_eligible_for_retirement",
            "Failed to fetch assets eligible for retirement",
            work,
        )

    def generate_end_of_life_notifications(self, business_unit_id: UUID) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            self._require_unit(business_unit_id, principal)
            policy = self._config.end_of_life
            today = self._clock.today()
            alerts: list[tuple[AssetModel, NotificationType, str, str]] = []
            for asset in self._selector.list_asset_models(
                business_unit_id, exclude=(AssetStatus.DISPOSED, AssetStatus.RETIRED),
            ):
                _, age, percent = self._metrics(asset, today)
                years = int(age.to_integral_value(rounding=ROUND_HALF_UP))
                if percent >= policy.fully_depreciated_percent:
                    alerts.append((
                        asset, NotificationType.FULLY_DEPRECIATED, "MEDIUM",
                        f"Asset {asset.item_code} is fully depreciated and may need "
                        f"retirement consideration.",
                    ))
                if policy.approaching_age_years <= age < policy.past_life_age_years:
                    alerts.append((
                        asset, NotificationType.APPROACHING_END_OF_LIFE, "LOW",
                        f"Asset {asset.item_code} is {years} years old and approaching "
                        f"end of useful life.",
                    ))
                if age >= policy.past_life_age_years:
                    alerts.append((
                        asset, NotificationType.APPROACHING_END_OF_LIFE, "HIGH",
                        f"Asset {asset.item_code} is {years} years old and past typical "
                        f"useful life.",
                    ))
            recipients = self._identity.recipients(business_unit_id, policy.recipient_roles)
            notifications = [
                Notification(
                    recipient_id=recipient,
                    type=kind,
                    title="Asset End-of-Life Alert",
                    message=message,
                    asset_id=asset.id,
                    priority=priority,
                )
                for asset, kind, priority, message in alerts
                for recipient in recipients
            ]
            created = dispatch_all(self._dispatcher, notifications)
            return OperationResult.ok(
                f"Generated {created} end-of-life notifications", notifications_created=created,
            )

        return self._read(
            "generate_end_of_life_notifications",
            "Failed to generate end-of-life notifications",
            work,
            notifications_created=0,
        )

    # =========================================================================
    # Disposal
    # =========================================================================

    def create_asset_disposal(self, business_unit_id: UUID, data: DisposalRequest) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.DISPOSE_ASSET,
                TransitionTarget(asset_id=data.asset_id, business_unit_id=business_unit_id),
                principal,
                data,
            )
            return OperationResult.ok(
                "Asset disposal created successfully",
                disposal_id=outcome.record.id,
                gain_loss=outcome.record.gain_loss,
            )

        with LogContext.bind(asset_id=data.asset_id, business_unit_id=business_unit_id):
            return self._write("create_asset_disposal", "Failed to create asset disposal", work)

    def approve_asset_disposal(self, disposal_id: UUID, notes: str | None = None) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.APPROVE_DISPOSAL,
                TransitionTarget(disposal_id=disposal_id),
                principal,
                RecordApproval(notes),
            )
            self._notify_roles(outcome, NotificationType.ASSET_DISPOSED, "Asset disposal approved")
            return OperationResult.ok("Asset disposal approved successfully")

        return self._write("approve_asset_disposal", "Failed to approve asset disposal", work)

    def create_bulk_disposals(
        self,
        business_unit_id: UUID,
        asset_ids: Sequence[UUID],
        data: DisposalRequest,
    ) -> OperationResult:
        """Dispose all of ``asset_ids`` or none of them."""
        total = len(asset_ids)

        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.bulk_dispose(business_unit_id, asset_ids, principal, data)
            if outcome.errors:
                active = any("active deployments" in e.reason for e in outcome.errors)
                return OperationResult.failure(
                    "Some assets have active deployments and cannot be disposed" if active
                    else "Some assets are not eligible for disposal",
                    processed_count=0,
                    failed_count=total,
                    processed_asset_ids=(),
                    errors=outcome.errors,
                )
            processed = len(outcome.processed)
            return OperationResult.ok(
                f"Successfully disposed {processed} assets",
                processed_count=processed,
                failed_count=total - processed,
                processed_asset_ids=outcome.processed_asset_ids,
                errors=(),
            )

        return self._write(
            "create_bulk_disposals", "Failed to dispose assets", work,
            processed_count=0, failed_count=total,
        )

    def get_disposal_summary(self, business_unit_id: UUID) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            self._require_unit(business_unit_id, principal)
            disposals = self._selector.disposals(business_unit_id)
            total_value = sum((d.disposal_value for d in disposals), round_money(ZERO))
            total_cost = sum((d.disposal_cost for d in disposals), round_money(ZERO))
            by_reason: dict[Any, list] = {}
            for d in disposals:
                by_reason.setdefault(d.reason, []).append(d)
            summary = DisposalSummary(
                total_disposals=len(disposals),
                total_disposal_value=round_money(total_value),
                total_disposal_cost=round_money(total_cost),
                net_disposal_value=round_money(total_value - total_cost),
                total_gain_loss=round_money(
                    sum((d.gain_loss for d in disposals), round_money(ZERO))
                ),
                pending_approvals=sum(1 for d in disposals if d.approved_at is None),
                disposals_by_reason=tuple(
                    DisposalReasonTotal(
                        reason=reason,
                        count=len(items),
                        total_value=round_money(sum((i.disposal_value for i in items), ZERO)),
                    )
                    for reason, items in by_reason.items()
                ),
            )
            return OperationResult.ok(summary=summary)

        return self._read("get_disposal_summary", "Failed to get disposal summary", work)

    def get_assets_eligible_for_disposal(self, business_unit_id: UUID) -> OperationResult:
        """Active, undisposed assets with no disposal record and no open deployment."""

        def work(principal: Principal) -> OperationResult:
            self._require_unit(business_unit_id, principal)
            eligible = tuple(
                asset.to_dto()
                for asset in self._selector.list_asset_models(
                    business_unit_id, exclude=(AssetStatus.DISPOSED,),
                )
                if not self._selector.has_disposal(asset.id)
                and self._selector.open_deployment_count(asset.id) == 0
            )
            return OperationResult.ok(assets=eligible)

        return self._read(
            "get_assets_eligible_for_disposal",
            "Failed to fetch assets eligible for disposal",
            work,
        )

    # =========================================================================
    # Business-unit transfers
    # =========================================================================

    def create_asset_transfer(self, business_unit_id: UUID, data: TransferRequest) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.REQUEST_TRANSFER,
                TransitionTarget(asset_id=data.asset_id, business_unit_id=business_unit_id),
                principal,
                data,
            )
            return OperationResult.ok(
                "Asset transfer request created successfully",
                transfer_id=outcome.record.id,
                transfer_number=outcome.record.transfer_number,
            )

        with LogContext.bind(asset_id=data.asset_id, business_unit_id=business_unit_id):
            return self._write("create_asset_transfer", "Failed to create asset transfer", work)

    def approve_asset_transfer(self, data: TransferApproval) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            self._coordinator.apply_transition(
                TransitionKind.APPROVE_TRANSFER,
                TransitionTarget(transfer_id=data.transfer_id),
                principal,
                data,
            )
            return OperationResult.ok("Asset transfer approved successfully")

        return self._write("approve_asset_transfer", "Failed to approve asset transfer", work)

    def reject_asset_transfer(self, data: TransferRejection) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            self._coordinator.apply_transition(
                TransitionKind.REJECT_TRANSFER,
                TransitionTarget(transfer_id=data.transfer_id),
                principal,
                data,
            )
            return OperationResult.ok("Asset transfer rejected successfully")

        return self._write("reject_asset_transfer", "Failed to reject asset transfer", work)

    def dispatch_asset_transfer(self, transfer_id: UUID) -> OperationResult:
        """Ship an approved transfer; the asset goes IN_TRANSIT."""

        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.DISPATCH_TRANSFER,
                TransitionTarget(transfer_id=transfer_id),
                principal,
            )
            return OperationResult.ok(
                "Asset transfer dispatched successfully", status=outcome.updated_asset.status,
            )

        return self._write("dispatch_asset_transfer", "Failed to dispatch asset transfer", work)

    def complete_asset_transfer(self, data: TransferReceipt) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.COMPLETE_TRANSFER,
                TransitionTarget(transfer_id=data.transfer_id),
                principal,
                data,
            )
            return OperationResult.ok(
                "Asset transfer completed successfully",
                business_unit_id=outcome.updated_asset.business_unit_id,
            )

        return self._write("complete_asset_transfer", "Failed to complete asset transfer", work)

    def cancel_asset_transfer(self, transfer_id: UUID, reason: str | None = None) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            self._coordinator.apply_transition(
                TransitionKind.CANCEL_TRANSFER,
                TransitionTarget(transfer_id=transfer_id),
                principal,
                reason,
            )
            return OperationResult.ok("Asset transfer cancelled successfully")

        return self._write("cancel_asset_transfer", "Failed to cancel asset transfer", work)

    def get_asset_transfers(
        self, business_unit_id: UUID, status: TransferStatus | None = None,
    ) -> OperationResult:
        """Transfers leaving or entering the unit."""

        def work(principal: Principal) -> OperationResult:
            self._require_unit(business_unit_id, principal)
            return OperationResult.ok(transfers=self._selector.transfers(business_unit_id, status))

        return self._read("get_asset_transfers", "Failed to get asset transfers", work)

    def get_assets_eligible_for_transfer(self, business_unit_id: UUID) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            self._require_unit(business_unit_id, principal)
            eligible = tuple(
                asset.to_dto()
                for asset in self._selector.list_asset_models(
                    business_unit_id, exclude=(AssetStatus.DISPOSED, AssetStatus.IN_TRANSIT),
                )
                if self._selector.open_transfer_count(asset.id) == 0
            )
            return OperationResult.ok(assets=eligible)

        return self._read(
            "get_assets_eligible_for_transfer",
            "Failed to fetch assets eligible for transfer",
            work,
        )

    # =========================================================================
    # Maintenance records
    # =========================================================================

    def create_maintenance_record(
        self, business_unit_id: UUID, data: MaintenanceRequest,
    ) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            outcome = self._coordinator.apply_transition(
                TransitionKind.CREATE_MAINTENANCE,
                TransitionTarget(asset_id=data.asset_id, business_unit_id=business_unit_id),
                principal,
                data,
            )
            return OperationResult.ok(
                "Maintenance record created successfully",
                maintenance_id=outcome.record.id,
                status=outcome.record.status,
            )

        with LogContext.bind(asset_id=data.asset_id, business_unit_id=business_unit_id):
            return self._write("create_maintenance_record", "Failed to create maintenance record", work)

    def start_maintenance_record(self, maintenance_id: UUID) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            self._coordinator.apply_transition(
                TransitionKind.START_MAINTENANCE,
                TransitionTarget(maintenance_id=maintenance_id),
                principal,
            )
            return OperationResult.ok("Maintenance record updated successfully")

        return self._write("start_maintenance_record", "Failed to update maintenance record", work)

    def complete_maintenance_record(self, data: MaintenanceCompletion) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            self._coordinator.apply_transition(
                TransitionKind.COMPLETE_MAINTENANCE,
                TransitionTarget(maintenance_id=data.maintenance_id),
                principal,
                data,
            )
            return OperationResult.ok("Maintenance record updated successfully")

        return self._write("complete_maintenance_record", "Failed to update maintenance record", work)

    def get_maintenance_records(self, asset_id: UUID) -> OperationResult:
        def work(principal: Principal) -> OperationResult:
            if self._visible_asset(asset_id, principal) is None:
                raise AssetNotFoundError(asset_id)
            return OperationResult.ok(records=self._selector.maintenance_records(asset_id))

        return self._read("get_maintenance_records", "Failed to get maintenance records", work)

    def get_maintenance_schedule(
        self, business_unit_id: UUID, days_ahead: int = 90,
    ) -> OperationResult:
        """
        Unfinished maintenance due within ``days_ahead`` days.

        Overdue work (scheduled before today) is always included and sorts
        first.
        """

        def work(principal: Principal) -> OperationResult:
            self._require_unit(business_unit_id, principal)
            today = self._clock.today()
            items = tuple(
                MaintenanceScheduleItem(
                    record=record,
                    item_code=item_code,
                    is_overdue=record.scheduled_date < today,
                    days_until_due=(record.scheduled_date - today).days,
                )
                for record, item_code in self._selector.open_maintenance(
                    business_unit_id, scheduled_to=today + timedelta(days=days_ahead),
                )
            )
            return OperationResult.ok(schedule=items)

        return self._read("get_maintenance_schedule", "Failed to get maintenance schedule", work)

    # =========================================================================
    # Internals
    # =========================================================================

    def _principal(self) -> Principal:
        principal = self._identity.current_principal()
        if principal is None or not principal.is_active:
            raise UnauthenticatedError()
        return principal

    def _run(
        self,
        operation: str,
        failure_message: str,
        work: Callable[[Principal], OperationResult],
        read_only: bool,
        failure_data: dict[str, Any],
    ) -> OperationResult:
        try:
            principal = self._principal()
            with LogContext.bind(actor_id=principal.actor_id):
                return work(principal)
        except TransactionFailure as exc:
            logger.error(
                f"{operation}_failed",
                extra={"operation": operation, "error_code": exc.code},
            )
            return OperationResult.failure(failure_message, code=exc.code, **failure_data)
        except AssetKernelError as exc:
            logger.info(
                f"{operation}_rejected",
                extra={"operation": operation, "error_code": exc.code, "reason": str(exc)},
            )
            return OperationResult.failure(str(exc), code=exc.code, **failure_data)
        except Exception:  # noqa: BLE001
            logger.error(f"{operation}_error", extra={"operation": operation}, exc_info=True)
            self._session.rollback()
            return OperationResult.failure(failure_message, **failure_data)
        finally:
            if read_only:
                self._session.rollback()

    def _read(
        self,
        operation: str,
        failure_message: str,
        work: Callable[[Principal], OperationResult],
        **failure_data: Any,
    ) -> OperationResult:
        return self._run(operation, failure_message, work, True, failure_data)

    def _write(
        self,
        operation: str,
        failure_message: str,
        work: Callable[[Principal], OperationResult],
        **failure_data: Any,
    ) -> OperationResult:
        return self._run(operation, failure_message, work, False, failure_data)

    def _require_unit(self, business_unit_id: UUID, principal: Principal) -> None:
        if not principal.can_access(business_unit_id):
            raise AssetNotFoundError(business_unit_id)

    def _visible_asset(self, asset_id: UUID, principal: Principal) -> AssetModel | None:
        asset = self._selector.asset_model(asset_id)
        if asset is None or not asset.is_active or not principal.can_access(asset.business_unit_id):
            return None
        return asset

    def _book_value(self, asset: AssetModel, on: date) -> Decimal:
        basis = basis_from_asset(asset, self._selector.usage_for(asset.id), fallback_date=on)
        return round_money(self._schedules.book_value_as_of(basis, on))

    def _metrics(self, asset: AssetModel, today: date) -> tuple[Decimal, Decimal, Decimal]:
        """(book value, age in years, depreciation percent), one decimal place."""
        book_value = self._book_value(asset, today)
        start = asset.purchase_date or (asset.created_at.date() if asset.created_at else today)
        age = (Decimal((today - start).days) / _DAYS_PER_YEAR).quantize(_ONE_PLACE, ROUND_HALF_UP)
        price = asset.purchase_price or ZERO
        percent = ZERO
        if price > 0:
            percent = ((price - book_value) / price * _HUNDRED).quantize(_ONE_PLACE, ROUND_HALF_UP)
        return book_value, age, percent

    def _notify_employee(
        self, outcome: TransitionOutcome, kind: NotificationType, title: str,
    ) -> None:
        deployment = outcome.record
        if deployment is None or outcome.updated_asset is None:
            return
        dispatch_all(self._dispatcher, [
            Notification(
                recipient_id=deployment.employee_id,
                type=kind,
                title=title,
                message=(
                    f"{title}: asset {outcome.updated_asset.item_code} "
                    f"({deployment.transmittal_number})"
                ),
                asset_id=outcome.updated_asset.id,
            )
        ])

    def _notify_roles(
        self, outcome: TransitionOutcome, kind: NotificationType, title: str,
    ) -> None:
        asset = outcome.updated_asset
        if asset is None:
            return
        recipients: Iterable[UUID] = self._identity.recipients(
            asset.business_unit_id, self._config.end_of_life.recipient_roles,
        )
        dispatch_all(self._dispatcher, [
            Notification(
                recipient_id=recipient,
                type=kind,
                title=title,
                message=f"{title}: asset {asset.item_code}",
                asset_id=asset.id,
            )
            for recipient in recipients
        ])
