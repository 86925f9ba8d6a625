"""
assetflow_services.transaction_coordinator -- Atomic lifecycle transitions.

Responsibility:
    Applies one lifecycle transition as one atomic unit: lock the rows
    involved, re-validate guards on the state just read, compare-and-set
    the status columns, write the record/history/audit rows, commit.
    Any failure rolls the whole unit back.

Architecture position:
    Services layer.  Owns transaction boundaries (commit/rollback) for
    mutating lifecycle operations.  Delegates decisions to the
    LifecycleStateMachine, book values to the ScheduleGenerator, audit
    rows to AuditorService, transmittal and transfer numbers to
    SequenceService.

Invariants enforced:
    - Guards are evaluated inside the same transaction that mutates, after
      ``SELECT ... FOR UPDATE`` (PostgreSQL) or under ``BEGIN IMMEDIATE``
      (SQLite), so two concurrent approvals of one deployment give one
      success and one "Deployment is not pending approval".
    - Status changes use ``UPDATE ... WHERE status = :expected`` and check
      the row count; a miss raises ConcurrentModificationError.
    - Every committed unit writes one audit row for each record it creates
      or changes, the asset row included whenever its status, assignment
      or business unit moves.
    - Only the open history entry of an asset is ever updated (its
      ``end_date``), when the next entry is appended.

Failure modes:
    - AuthorizationError / NotFoundError / BusinessRuleViolation: rolled
      back and re-raised unchanged.
    - SQLAlchemyError (constraint, lock timeout, commit failure): rolled
      back and raised as TransactionFailure.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assetflow_config.schema import LifecycleConfig
from assetflow_engines.depreciation import DepreciationMethod
from assetflow_engines.schedule import ScheduleGenerator
from assetflow_kernel.db.types import round_money
from assetflow_kernel.domain.clock import Clock, SystemClock
from assetflow_kernel.domain.permissions import Principal
from assetflow_kernel.exceptions import (
    AssetKernelError,
    AssetNotFoundError,
    AuthorizationError,
    BusinessRuleViolation,
    ConcurrentModificationError,
    DeploymentNotFoundError,
    DisposalNotFoundError,
    GuardViolationError,
    InvalidDepreciationInput,
    InvalidTransitionError,
    MaintenanceRecordNotFoundError,
    NotFoundError,
    RetirementNotFoundError,
    TransactionFailure,
    TransferNotFoundError,
)
from assetflow_kernel.logging_config import LogContext, get_logger
from assetflow_kernel.models.audit_log import AuditAction
from assetflow_kernel.services.auditor_service import AuditLogEntry, AuditorService
from assetflow_kernel.services.sequence_service import SequenceService
from assetflow_modules.assets.lifecycle import LifecycleStateMachine, TransitionContext
from assetflow_modules.assets.models import (
    ApprovalState,
    Asset,
    AssetHistoryEntry,
    AssetRegistration,
    AssetReturn,
    AssetStatus,
    DeploymentApproval,
    DeploymentRejection,
    DeploymentRequest,
    DeploymentStatus,
    DisposalRequest,
    HistoryAction,
    MaintenanceCompletion,
    MaintenanceRequest,
    MaintenanceStatus,
    RecordApproval,
    RetirementRequest,
    StatusChange,
    TransferApproval,
    TransferReceipt,
    TransferRejection,
    TransferRequest,
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
from assetflow_modules.assets.selectors import AssetSelector, basis_from_asset
from assetflow_modules.assets.workflows import (
    ASSET_WORKFLOW,
    DEPLOYMENT_WORKFLOW,
    DISPOSAL_WORKFLOW,
    MAINTENANCE_WORKFLOW,
    RETIREMENT_WORKFLOW,
    STATUS_CHANGE_ACTIONS,
    TRANSFER_WORKFLOW,
)
from assetflow_services.authorization import resolve_capabilities

logger = get_logger("services.transaction_coordinator")

T = TypeVar("T")

_PENDING = DeploymentStatus.PENDING_ACCOUNTING_APPROVAL.value


class TransitionKind(str, Enum):
    """Mutating lifecycle operations handled by ``apply_transition``."""

    REQUEST_DEPLOYMENT = "request_deployment"
    APPROVE_DEPLOYMENT = "approve_deployment"
    REJECT_DEPLOYMENT = "reject_deployment"
    CANCEL_DEPLOYMENT = "cancel_deployment"
    RETURN_ASSET = "return_asset"
    RETIRE_ASSET = "retire_asset"
    APPROVE_RETIREMENT = "approve_retirement"
    DISPOSE_ASSET = "dispose_asset"
    APPROVE_DISPOSAL = "approve_disposal"
    CHANGE_STATUS = "change_status"
    REQUEST_TRANSFER = "request_transfer"
    APPROVE_TRANSFER = "approve_transfer"
    REJECT_TRANSFER = "reject_transfer"
    DISPATCH_TRANSFER = "dispatch_transfer"
    COMPLETE_TRANSFER = "complete_transfer"
    CANCEL_TRANSFER = "cancel_transfer"
    CREATE_MAINTENANCE = "create_maintenance"
    START_MAINTENANCE = "start_maintenance"
    COMPLETE_MAINTENANCE = "complete_maintenance"


@dataclass(frozen=True)
class TransitionTarget:
    """Ids a transition operates on.  Unused ids stay None."""

    asset_id: UUID | None = None
    deployment_id: UUID | None = None
    retirement_id: UUID | None = None
    disposal_id: UUID | None = None
    transfer_id: UUID | None = None
    maintenance_id: UUID | None = None
    business_unit_id: UUID | None = None


@dataclass(frozen=True)
class TransitionOutcome:
    """What one committed transition produced."""

    kind: TransitionKind | str
    updated_asset: Asset | None
    history_entry: AssetHistoryEntry | None
    audit_log_entry: AuditLogEntry
    record: Any = None


@dataclass(frozen=True)
class BulkSkip:
    entity_id: UUID
    reason: str


@dataclass(frozen=True)
class BulkApprovalOutcome:
    approved_count: int
    requested_count: int
    eligible_count: int
    approved: tuple[TransitionOutcome, ...] = ()
    skipped: tuple[BulkSkip, ...] = ()


@dataclass(frozen=True)
class BulkDisposalOutcome:
    """All-or-nothing: either every asset was disposed or none was."""

    processed: tuple[TransitionOutcome, ...] = ()
    errors: tuple[BulkSkip, ...] = ()

    @property
    def processed_asset_ids(self) -> tuple[UUID, ...]:
        return tuple(o.updated_asset.id for o in self.processed if o.updated_asset)


class TransactionCoordinator:
    """
    Runs lifecycle transitions as atomic units of work.

    Contract:
        Each public method commits on success and rolls back on failure.
        Outcomes carry frozen DTOs only; no ORM instance escapes.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: LifecycleConfig | None = None,
        state_machine: LifecycleStateMachine | None = None,
        schedule_generator: ScheduleGenerator | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or LifecycleConfig()
        self._machine = state_machine or LifecycleStateMachine()
        self._schedules = schedule_generator or ScheduleGenerator()
        self._auditor = AuditorService(session, self._clock)
        self._sequences = SequenceService(session)
        self._selector = AssetSelector(session)
        self._handlers: dict[TransitionKind, Callable[..., TransitionOutcome]] = {
            TransitionKind.REQUEST_DEPLOYMENT: self._request_deployment,
            TransitionKind.APPROVE_DEPLOYMENT: self._approve_deployment,
            TransitionKind.REJECT_DEPLOYMENT: self._reject_deployment,
            TransitionKind.CANCEL_DEPLOYMENT: self._cancel_deployment,
            TransitionKind.RETURN_ASSET: self._return_asset,
            TransitionKind.RETIRE_ASSET: self._retire_asset,
            TransitionKind.APPROVE_RETIREMENT: self._approve_retirement,
            TransitionKind.DISPOSE_ASSET: self._dispose_asset,
            TransitionKind.APPROVE_DISPOSAL: self._approve_disposal,
            TransitionKind.CHANGE_STATUS: self._change_status,
            TransitionKind.REQUEST_TRANSFER: self._request_transfer,
            TransitionKind.APPROVE_TRANSFER: self._approve_transfer,
            TransitionKind.REJECT_TRANSFER: self._reject_transfer,
            TransitionKind.DISPATCH_TRANSFER: self._dispatch_transfer,
            TransitionKind.COMPLETE_TRANSFER: self._complete_transfer,
            TransitionKind.CANCEL_TRANSFER: self._cancel_transfer,
            TransitionKind.CREATE_MAINTENANCE: self._create_maintenance,
            TransitionKind.START_MAINTENANCE: self._start_maintenance,
            TransitionKind.COMPLETE_MAINTENANCE: self._complete_maintenance,
        }

    # ==================================================================
    # Public API
    # ==================================================================

    def apply_transition(
        self,
        kind: TransitionKind,
        entity_ids: TransitionTarget,
        actor: Principal,
        payload: Any = None,
    ) -> TransitionOutcome:
        """
        Apply one lifecycle transition atomically.

        Raises:
            AuthorizationError, NotFoundError, BusinessRuleViolation:
                nothing was written.
            TransactionFailure: the store rejected the unit; safe to retry.
        """
        handler = self._handlers[TransitionKind(kind)]
        with LogContext.bind(actor_id=actor.actor_id):
            return self._run_unit(
                TransitionKind(kind).value,
                lambda: handler(entity_ids, actor, payload),
            )

    def bulk_approve(
        self,
        deployment_ids: Iterable[UUID],
        actor: Principal,
        accounting_notes: str | None = None,
    ) -> BulkApprovalOutcome:
        """
        Approve many deployments in one transaction, one SAVEPOINT each.

        A deployment that is missing, not pending, or whose asset is no
        longer available is skipped; the others still commit.

        Raises:
            AuthorizationError: the actor may not approve deployments.
        """
        requested = list(dict.fromkeys(deployment_ids))
        if "deployments:approve" not in resolve_capabilities(actor, self._config):
            raise AuthorizationError(
                "You do not have permission to approve deployments",
                capability="deployments:approve",
                actor_id=actor.actor_id,
            )

        def work() -> BulkApprovalOutcome:
            eligible = self._count_pending(requested, actor)
            approved: list[TransitionOutcome] = []
            skipped: list[BulkSkip] = []
            for deployment_id in requested:
                try:
                    with self._session.begin_nested():
                        outcome = self._approve_deployment(
                            TransitionTarget(deployment_id=deployment_id),
                            actor,
                            DeploymentApproval(deployment_id, accounting_notes),
                            bulk=True,
                        )
                    approved.append(outcome)
                except (NotFoundError, BusinessRuleViolation) as exc:
                    skipped.append(BulkSkip(deployment_id, str(exc)))
                    logger.info(
                        "bulk_approval_skipped",
                        extra={"deployment_id": str(deployment_id), "reason": str(exc)},
                    )
            return BulkApprovalOutcome(
                approved_count=len(approved),
                requested_count=len(requested),
                eligible_count=eligible,
                approved=tuple(approved),
                skipped=tuple(skipped),
            )

        with LogContext.bind(actor_id=actor.actor_id):
            outcome = self._run_unit("bulk_approve", work)
        logger.info(
            "bulk_approval_completed",
            extra={
                "approved_count": outcome.approved_count,
                "requested_count": outcome.requested_count,
                "skipped_count": len(outcome.skipped),
            },
        )
        return outcome

    def bulk_dispose(
        self,
        business_unit_id: UUID,
        asset_ids: Iterable[UUID],
        actor: Principal,
        template: DisposalRequest,
    ) -> BulkDisposalOutcome:
        """
        Dispose every asset in ``asset_ids`` with the values of ``template``,
        or none of them if any asset is ineligible.
        """
        requested = list(dict.fromkeys(asset_ids))

        def work() -> BulkDisposalOutcome:
            processed: list[TransitionOutcome] = []
            errors: list[BulkSkip] = []
            for asset_id in requested:
                try:
                    with self._session.begin_nested():
                        processed.append(
                            self._dispose_asset(
                                TransitionTarget(business_unit_id=business_unit_id),
                                actor,
                                replace(template, asset_id=asset_id),
                                bulk=True,
                            )
                        )
                except (NotFoundError, BusinessRuleViolation) as exc:
                    errors.append(BulkSkip(asset_id, str(exc)))
            if errors:
                self._session.rollback()
                return BulkDisposalOutcome(errors=tuple(errors))
            return BulkDisposalOutcome(processed=tuple(processed))

        with LogContext.bind(actor_id=actor.actor_id, business_unit_id=business_unit_id):
            return self._run_unit("bulk_dispose", work)

    def register_asset(
        self,
        business_unit_id: UUID,
        actor: Principal,
        registration: AssetRegistration,
    ) -> TransitionOutcome:
        """Create an AVAILABLE asset with a CREATED history entry and CREATE audit row."""
        if not actor.can_access(business_unit_id):
            raise AuthorizationError("Unauthorized", actor_id=actor.actor_id)
        _validate_registration(registration)

        def work() -> TransitionOutcome:
            asset = AssetModel.from_registration(registration, business_unit_id, actor.actor_id)
            self._session.add(asset)
            self._session.flush()
            history = self._append_history(
                asset,
                action=HistoryAction.CREATED,
                previous_status=None,
                new_status=AssetStatus.AVAILABLE.value,
                actor=actor,
                notes=f"Asset {registration.item_code} registered",
                start_date=self._clock.today(),
            )
            audit = self._audit(
                AuditAction.CREATE, AssetModel.__tablename__, asset.id, actor,
                business_unit_id,
                new_values={
                    "item_code": asset.item_code,
                    "status": asset.status,
                    "purchase_price": asset.purchase_price,
                    "useful_life_months": asset.useful_life_months,
                    "depreciation_method": asset.depreciation_method,
                },
            )
            return TransitionOutcome("register_asset", asset.to_dto(), history.to_dto(), audit)

        with LogContext.bind(actor_id=actor.actor_id, business_unit_id=business_unit_id):
            return self._run_unit("register_asset", work)

    def record_usage(
        self,
        asset_id: UUID,
        actor: Principal,
        period: int,
        units: Decimal,
    ) -> TransitionOutcome:
        """Record (or overwrite) units consumed in ``period`` for a units-of-production asset."""

        def work() -> TransitionOutcome:
            asset = self._load_asset(asset_id, None, actor)
            if asset.depreciation_method != DepreciationMethod.UNITS_OF_PRODUCTION.value:
                raise GuardViolationError(
                    "units_of_production",
                    "Asset does not use units of production depreciation method",
                )
            if asset.useful_life_months is not None and not 1 <= period <= asset.useful_life_months:
                raise InvalidDepreciationInput(
                    "period", f"must be between 1 and {asset.useful_life_months}",
                )
            if period < 1:
                raise InvalidDepreciationInput("period", "must be at least 1")
            value = Decimal(str(units))
            if value < 0:
                raise InvalidDepreciationInput("units_in_period", "must not be negative")

            usage = self._session.execute(
                select(AssetUsageModel).where(
                    AssetUsageModel.asset_id == asset.id,
                    AssetUsageModel.period == period,
                )
            ).scalar_one_or_none()
            old_units = usage.units if usage is not None else None
            if usage is None:
                usage = AssetUsageModel(
                    asset_id=asset.id, period=period, units=value,
                    created_by_id=actor.actor_id,
                )
                self._session.add(usage)
            else:
                usage.units = value
                usage.updated_by_id = actor.actor_id
            self._session.flush()

            history = self._append_history(
                asset,
                action=HistoryAction.UPDATED,
                previous_status=asset.status,
                new_status=asset.status,
                actor=actor,
                notes=f"Usage recorded for period {period}",
                details={"period": period, "units": str(value)},
            )
            audit = self._audit(
                AuditAction.CREATE if old_units is None else AuditAction.UPDATE,
                AssetUsageModel.__tablename__, usage.id, actor, asset.business_unit_id,
                old_values={"units": old_units} if old_units is not None else None,
                new_values={"asset_id": asset.id, "period": period, "units": value},
            )
            return TransitionOutcome(
                "record_usage", asset.to_dto(), history.to_dto(), audit, usage.to_dto(),
            )

        with LogContext.bind(actor_id=actor.actor_id, asset_id=asset_id):
            return self._run_unit("record_usage", work)

    # ==================================================================
    # Unit of work
    # ==================================================================

    def _run_unit(self, operation: str, work: Callable[[], T]) -> T:
        start = time.monotonic()
        try:
            result = work()
            self._session.commit()
        except AssetKernelError as exc:
            self._session.rollback()
            logger.info(
                "transition_rejected",
                extra={"operation": operation, "error_code": exc.code, "reason": str(exc)},
            )
            raise
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "transition_commit_failed",
                extra={"operation": operation, "error": str(exc)},
                exc_info=True,
            )
            raise TransactionFailure(operation, str(exc)) from exc
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "transition_committed",
            extra={
                "operation": operation,
                "duration_ms": round((time.monotonic() - start) * 1000, 3),
            },
        )
        return result

    # ==================================================================
    # Deployment transitions
    # ==================================================================

    def _request_deployment(
        self, target: TransitionTarget, actor: Principal, payload: DeploymentRequest,
    ) -> TransitionOutcome:
        asset = self._load_asset(payload.asset_id, target.business_unit_id, actor)
        context = self._context(
            actor,
            asset_status=asset.status,
            open_deployment_count=self._selector.open_deployment_count(asset.id),
        )
        self._machine.check(ASSET_WORKFLOW, "request_deployment", asset.status, context, asset.id)

        deployment = DeploymentModel(
            asset_id=asset.id,
            employee_id=payload.employee_id,
            business_unit_id=asset.business_unit_id,
            transmittal_number=self._next_transmittal_number(),
            status=_PENDING,
            expected_return_date=payload.expected_return_date,
            deployment_notes=payload.deployment_notes,
            created_by_id=actor.actor_id,
        )
        self._session.add(deployment)
        self._session.flush()

        audit = self._audit(
            AuditAction.CREATE, DeploymentModel.__tablename__, deployment.id, actor,
            asset.business_unit_id,
            new_values={
                "asset_id": asset.id,
                "employee_id": payload.employee_id,
                "transmittal_number": deployment.transmittal_number,
                "status": _PENDING,
            },
        )
        return TransitionOutcome(
            TransitionKind.REQUEST_DEPLOYMENT, asset.to_dto(), None, audit, deployment.to_dto(),
        )

    def _approve_deployment(
        self,
        target: TransitionTarget,
        actor: Principal,
        payload: DeploymentApproval,
        bulk: bool = False,
    ) -> TransitionOutcome:
        deployment = self._load_deployment(payload.deployment_id or target.deployment_id, actor)
        asset = self._lock_asset_of(deployment)
        context = self._context(
            actor, asset_status=asset.status, deployment_status=deployment.status,
        )
        self._machine.check(DEPLOYMENT_WORKFLOW, "approve", deployment.status, context, deployment.id)
        self._machine.check(ASSET_WORKFLOW, "deploy", asset.status, context, asset.id)

        now = self._clock.now()
        today = now.date()
        old_values = deployment.snapshot()
        self._compare_and_set(
            deployment, "deployment", DeploymentModel.status == _PENDING, _PENDING,
            "Deployment is not pending approval", actor,
            status=DeploymentStatus.DEPLOYED.value,
            accounting_approver_id=actor.actor_id,
            accounting_approved_at=now,
            deployed_date=today,
            accounting_notes=payload.accounting_notes,
        )
        previous_status = asset.status
        asset_before = asset.snapshot()
        self._compare_and_set(
            asset, "asset", AssetModel.status == AssetStatus.AVAILABLE.value,
            AssetStatus.AVAILABLE.value, "Asset is no longer available for deployment", actor,
            status=AssetStatus.DEPLOYED.value,
            currently_assigned_to=deployment.employee_id,
            current_deployment_id=deployment.id,
        )
        self._audit_asset(asset, actor, asset_before)
        history = self._append_history(
            asset,
            action=HistoryAction.DEPLOYED,
            previous_status=previous_status,
            new_status=AssetStatus.DEPLOYED.value,
            actor=actor,
            notes=(
                "Asset deployed - Bulk approved by accounting" if bulk
                else "Asset deployed - Approved by accounting"
            ),
            deployment_id=deployment.id,
            employee_id=deployment.employee_id,
            start_date=today,
        )
        audit = self._audit(
            AuditAction.UPDATE, DeploymentModel.__tablename__, deployment.id, actor,
            deployment.business_unit_id,
            old_values=old_values,
            new_values={
                "status": DeploymentStatus.DEPLOYED.value,
                "accounting_approver_id": actor.actor_id,
                "accounting_approved_at": now,
                "deployed_date": today,
                "accounting_notes": payload.accounting_notes,
            },
        )
        return TransitionOutcome(
            TransitionKind.APPROVE_DEPLOYMENT, asset.to_dto(), history.to_dto(), audit,
            deployment.to_dto(),
        )

    def _reject_deployment(
        self, target: TransitionTarget, actor: Principal, payload: DeploymentRejection,
    ) -> TransitionOutcome:
        deployment = self._load_deployment(payload.deployment_id or target.deployment_id, actor)
        asset = self._lock_asset_of(deployment)
        context = self._context(
            actor, asset_status=asset.status, deployment_status=deployment.status,
        )
        self._machine.check(DEPLOYMENT_WORKFLOW, "reject", deployment.status, context, deployment.id)

        now = self._clock.now()
        notes = f"REJECTED: {payload.rejection_reason}. {payload.accounting_notes or ''}".rstrip()
        old_values = deployment.snapshot()
        self._compare_and_set(
            deployment, "deployment", DeploymentModel.status == _PENDING, _PENDING,
            "Deployment is not pending approval", actor,
            status=DeploymentStatus.CANCELLED.value,
            accounting_approver_id=actor.actor_id,
            accounting_approved_at=now,
            accounting_notes=notes,
        )
        history = self._append_history(
            asset,
            action=HistoryAction.STATUS_CHANGED,
            previous_status=asset.status,
            new_status=asset.status,
            actor=actor,
            notes=f"Deployment rejected by accounting: {payload.rejection_reason}",
            deployment_id=deployment.id,
            employee_id=deployment.employee_id,
        )
        audit = self._audit(
            AuditAction.UPDATE, DeploymentModel.__tablename__, deployment.id, actor,
            deployment.business_unit_id,
            old_values=old_values,
            new_values={
                "status": DeploymentStatus.CANCELLED.value,
                "rejection_reason": payload.rejection_reason,
                "accounting_notes": payload.accounting_notes,
            },
        )
        return TransitionOutcome(
            TransitionKind.REJECT_DEPLOYMENT, asset.to_dto(), history.to_dto(), audit,
            deployment.to_dto(),
        )

    def _cancel_deployment(
        self, target: TransitionTarget, actor: Principal, payload: Any = None,
    ) -> TransitionOutcome:
        deployment = self._load_deployment(target.deployment_id, actor)
        asset = self._lock_asset_of(deployment)
        context = self._context(
            actor, asset_status=asset.status, deployment_status=deployment.status,
        )
        self._machine.check(DEPLOYMENT_WORKFLOW, "cancel", deployment.status, context, deployment.id)

        old_values = deployment.snapshot()
        self._compare_and_set(
            deployment, "deployment", DeploymentModel.status == _PENDING, _PENDING,
            "Deployment is not pending approval", actor,
            status=DeploymentStatus.CANCELLED.value,
        )
        history = self._append_history(
            asset,
            action=HistoryAction.STATUS_CHANGED,
            previous_status=asset.status,
            new_status=asset.status,
            actor=actor,
            notes="Deployment request cancelled",
            deployment_id=deployment.id,
            employee_id=deployment.employee_id,
        )
        audit = self._audit(
            AuditAction.UPDATE, DeploymentModel.__tablename__, deployment.id, actor,
            deployment.business_unit_id,
            old_values=old_values,
            new_values={"status": DeploymentStatus.CANCELLED.value},
        )
        return TransitionOutcome(
            TransitionKind.CANCEL_DEPLOYMENT, asset.to_dto(), history.to_dto(), audit,
            deployment.to_dto(),
        )

    def _return_asset(
        self, target: TransitionTarget, actor: Principal, payload: AssetReturn,
    ) -> TransitionOutcome:
        deployment = self._load_deployment(payload.deployment_id or target.deployment_id, actor)
        asset = self._lock_asset_of(deployment)
        context = self._context(
            actor, asset_status=asset.status, deployment_status=deployment.status,
        )
        self._machine.check(DEPLOYMENT_WORKFLOW, "return", deployment.status, context, deployment.id)
        self._machine.check(ASSET_WORKFLOW, "return", asset.status, context, asset.id)

        returned = payload.returned_date or self._clock.today()
        old_values = deployment.snapshot()
        self._compare_and_set(
            deployment, "deployment",
            DeploymentModel.status == DeploymentStatus.DEPLOYED.value,
            DeploymentStatus.DEPLOYED.value, "Asset is not currently deployed", actor,
            status=DeploymentStatus.RETURNED.value,
            returned_date=returned,
            return_condition=payload.return_condition,
            return_notes=payload.return_notes,
        )
        asset_before = asset.snapshot()
        self._compare_and_set(
            asset, "asset", AssetModel.status == AssetStatus.DEPLOYED.value,
            AssetStatus.DEPLOYED.value, "Asset is not currently deployed", actor,
            status=AssetStatus.AVAILABLE.value,
            currently_assigned_to=None,
            current_deployment_id=None,
        )
        self._audit_asset(asset, actor, asset_before)
        history = self._append_history(
            asset,
            action=HistoryAction.RETURNED,
            previous_status=AssetStatus.DEPLOYED.value,
            new_status=AssetStatus.AVAILABLE.value,
            actor=actor,
            notes=f"Asset returned - condition: {payload.return_condition}",
            details={"return_condition": payload.return_condition},
            deployment_id=deployment.id,
            employee_id=deployment.employee_id,
            start_date=returned,
            closing_date=returned,
        )
        audit = self._audit(
            AuditAction.UPDATE, DeploymentModel.__tablename__, deployment.id, actor,
            deployment.business_unit_id,
            old_values=old_values,
            new_values={
                "status": DeploymentStatus.RETURNED.value,
                "returned_date": returned,
                "return_condition": payload.return_condition,
                "return_notes": payload.return_notes,
            },
        )
        return TransitionOutcome(
            TransitionKind.RETURN_ASSET, asset.to_dto(), history.to_dto(), audit,
            deployment.to_dto(),
        )

    # ==================================================================
    # Retirement and disposal
    # ==================================================================

    def _retire_asset(
        self, target: TransitionTarget, actor: Principal, payload: RetirementRequest,
    ) -> TransitionOutcome:
        asset = self._load_asset(payload.asset_id, target.business_unit_id, actor)
        context = self._context(
            actor,
            asset_status=asset.status,
            open_deployment_count=self._selector.open_deployment_count(asset.id),
            has_disposal=self._selector.has_disposal(asset.id),
        )
        self._machine.check(ASSET_WORKFLOW, "retire", asset.status, context, asset.id)

        retirement = RetirementModel(
            asset_id=asset.id,
            business_unit_id=asset.business_unit_id,
            retirement_date=payload.retirement_date,
            reason=payload.reason.value,
            condition=payload.condition.value if payload.condition else None,
            disposal_planned=payload.disposal_planned,
            disposal_date=payload.disposal_date,
            notes=payload.notes,
            created_by_id=actor.actor_id,
        )
        self._session.add(retirement)
        self._session.flush()

        previous_status = asset.status
        asset_before = asset.snapshot()
        self._compare_and_set(
            asset, "asset", AssetModel.status == previous_status, previous_status,
            "Asset status changed during retirement", actor,
            status=AssetStatus.RETIRED.value,
        )
        self._audit_asset(asset, actor, asset_before)
        history = self._append_history(
            asset,
            action=HistoryAction.RETIRED,
            previous_status=previous_status,
            new_status=AssetStatus.RETIRED.value,
            actor=actor,
            notes=f"Asset retired - {payload.reason.value}",
            details={
                "retirement_id": str(retirement.id),
                "reason": payload.reason.value,
                "disposal_planned": payload.disposal_planned,
            },
            start_date=payload.retirement_date,
        )
        audit = self._audit(
            AuditAction.CREATE, RetirementModel.__tablename__, retirement.id, actor,
            asset.business_unit_id,
            new_values={
                "asset_id": asset.id,
                "reason": payload.reason.value,
                "disposal_planned": payload.disposal_planned,
            },
        )
        return TransitionOutcome(
            TransitionKind.RETIRE_ASSET, asset.to_dto(), history.to_dto(), audit,
            retirement.to_dto(),
        )

    def _approve_retirement(
        self, target: TransitionTarget, actor: Principal, payload: RecordApproval | None,
    ) -> TransitionOutcome:
        retirement = self._lock(RetirementModel, target.retirement_id)
        if retirement is None or not actor.can_access(retirement.business_unit_id):
            raise RetirementNotFoundError(target.retirement_id)
        notes = payload.notes if payload else None
        return self._approve_record(
            retirement, RETIREMENT_WORKFLOW, RetirementModel, "Retirement already approved",
            TransitionKind.APPROVE_RETIREMENT, actor, notes,
        )

    def _dispose_asset(
        self,
        target: TransitionTarget,
        actor: Principal,
        payload: DisposalRequest,
        bulk: bool = False,
    ) -> TransitionOutcome:
        asset = self._load_asset(payload.asset_id, target.business_unit_id, actor)
        context = self._context(
            actor,
            asset_status=asset.status,
            open_deployment_count=self._selector.open_deployment_count(asset.id),
            has_disposal=self._selector.has_disposal(asset.id),
        )
        self._machine.check(ASSET_WORKFLOW, "dispose", asset.status, context, asset.id)

        basis = basis_from_asset(
            asset, self._selector.usage_for(asset.id), fallback_date=payload.disposal_date,
        )
        book_value = round_money(self._schedules.book_value_as_of(basis, payload.disposal_date))
        disposal_value = round_money(Decimal(str(payload.disposal_value or 0)))
        disposal_cost = round_money(Decimal(str(payload.disposal_cost or 0)))
        gain_loss = round_money(disposal_value - book_value)
        retirement = self._session.execute(
            select(RetirementModel).where(RetirementModel.asset_id == asset.id)
        ).scalar_one_or_none()

        disposal = DisposalModel(
            asset_id=asset.id,
            business_unit_id=asset.business_unit_id,
            retirement_id=retirement.id if retirement is not None else None,
            disposal_date=payload.disposal_date,
            reason=payload.reason.value,
            disposal_method=payload.disposal_method,
            disposal_value=disposal_value,
            disposal_cost=disposal_cost,
            book_value_at_disposal=book_value,
            gain_loss=gain_loss,
            notes=payload.notes,
            created_by_id=actor.actor_id,
        )
        self._session.add(disposal)
        self._session.flush()

        previous_status = asset.status
        asset_before = asset.snapshot()
        self._compare_and_set(
            asset, "asset", AssetModel.status == previous_status, previous_status,
            "Asset status changed during disposal", actor,
            status=AssetStatus.DISPOSED.value,
            currently_assigned_to=None,
            current_deployment_id=None,
        )
        self._audit_asset(asset, actor, asset_before)
        details: dict[str, Any] = {"disposal_id": str(disposal.id)}
        if bulk:
            details["bulk_operation"] = True
        else:
            details.update(
                reason=payload.reason.value,
                disposal_value=str(disposal_value),
                gain_loss=str(gain_loss),
            )
        history = self._append_history(
            asset,
            action=HistoryAction.DISPOSED,
            previous_status=previous_status,
            new_status=AssetStatus.DISPOSED.value,
            actor=actor,
            notes=(
                f"Bulk disposal - {payload.reason.value}" if bulk
                else f"Asset disposed - {payload.reason.value}"
            ),
            details=details,
            start_date=payload.disposal_date,
        )
        audit = self._audit(
            AuditAction.CREATE, DisposalModel.__tablename__, disposal.id, actor,
            asset.business_unit_id,
            new_values={
                "asset_id": asset.id,
                "reason": payload.reason.value,
                "disposal_value": disposal_value,
                "book_value_at_disposal": book_value,
                "gain_loss": gain_loss,
                "bulk_operation": bulk,
            },
        )
        return TransitionOutcome(
            TransitionKind.DISPOSE_ASSET, asset.to_dto(), history.to_dto(), audit,
            disposal.to_dto(),
        )

    def _approve_disposal(
        self, target: TransitionTarget, actor: Principal, payload: RecordApproval | None,
    ) -> TransitionOutcome:
        disposal = self._lock(DisposalModel, target.disposal_id)
        if disposal is None or not actor.can_access(disposal.business_unit_id):
            raise DisposalNotFoundError(target.disposal_id)
        notes = payload.notes if payload else None
        return self._approve_record(
            disposal, DISPOSAL_WORKFLOW, DisposalModel, "Disposal already approved",
            TransitionKind.APPROVE_DISPOSAL, actor, notes,
        )

    def _approve_record(
        self,
        record: RetirementModel | DisposalModel,
        workflow,
        model: type[RetirementModel] | type[DisposalModel],
        already_approved: str,
        kind: TransitionKind,
        actor: Principal,
        notes: str | None,
    ) -> TransitionOutcome:
        context = self._context(actor, record_approved=record.approved_at is not None)
        self._machine.check(workflow, "approve", record.approval_state, context, record.id)

        now = self._clock.now()
        new_notes = f"{record.notes or ''}\n\nApproval Notes: {notes}" if notes else record.notes
        old_values = record.snapshot()
        self._compare_and_set(
            record, workflow.name, model.approved_at.is_(None),
            ApprovalState.PENDING_APPROVAL.value, already_approved, actor,
            approved_by_id=actor.actor_id,
            approved_at=now,
            notes=new_notes,
        )
        audit = self._audit(
            AuditAction.UPDATE, model.__tablename__, record.id, actor, record.business_unit_id,
            old_values=old_values,
            new_values={
                "approved_by_id": actor.actor_id,
                "approved_at": now,
                "approval_notes": notes,
            },
        )
        asset = self._session.get(AssetModel, record.asset_id)
        return TransitionOutcome(
            kind, asset.to_dto() if asset is not None else None, None, audit, record.to_dto(),
        )

    # ==================================================================
    # Maintenance / lost / damaged
    # ==================================================================

    def _change_status(
        self, target: TransitionTarget, actor: Principal, payload: StatusChange,
    ) -> TransitionOutcome:
        asset = self._load_asset(target.asset_id, target.business_unit_id, actor)
        if payload.action not in STATUS_CHANGE_ACTIONS:
            raise InvalidTransitionError(ASSET_WORKFLOW.name, payload.action, asset.status)
        context = self._context(actor, asset_status=asset.status)
        transition = self._machine.check(
            ASSET_WORKFLOW, payload.action, asset.status, context, asset.id,
        )

        previous_status = asset.status
        self._compare_and_set(
            asset, "asset", AssetModel.status == previous_status, previous_status,
            f"Asset status changed before {payload.action.replace('_', ' ')}", actor,
            status=transition.to_state,
        )
        history = self._append_history(
            asset,
            action=HistoryAction.STATUS_CHANGED,
            previous_status=previous_status,
            new_status=transition.to_state,
            actor=actor,
            notes=payload.notes or f"Status changed from {previous_status} to {transition.to_state}",
            details={"action": payload.action},
            start_date=self._clock.today(),
        )
        audit = self._audit(
            AuditAction.UPDATE, AssetModel.__tablename__, asset.id, actor, asset.business_unit_id,
            old_values={"status": previous_status},
            new_values={"status": transition.to_state},
        )
        return TransitionOutcome(TransitionKind.CHANGE_STATUS, asset.to_dto(), history.to_dto(), audit)

    # ==================================================================
    # Business-unit transfers
    # ==================================================================

    def _request_transfer(
        self, target: TransitionTarget, actor: Principal, payload: TransferRequest,
    ) -> TransitionOutcome:
        asset = self._load_asset(payload.asset_id, target.business_unit_id, actor)
        context = self._context(
            actor,
            asset_status=asset.status,
            has_disposal=self._selector.has_disposal(asset.id),
            open_transfer_count=self._selector.open_transfer_count(asset.id),
            source_business_unit_id=asset.business_unit_id,
            target_business_unit_id=payload.to_business_unit_id,
        )
        self._machine.check(ASSET_WORKFLOW, "request_transfer", asset.status, context, asset.id)

        transfer = TransferModel(
            transfer_number=self._next_transfer_number(),
            asset_id=asset.id,
            from_business_unit_id=asset.business_unit_id,
            to_business_unit_id=payload.to_business_unit_id,
            from_location=payload.from_location,
            to_location=payload.to_location,
            transfer_date=payload.transfer_date,
            reason=payload.reason,
            transfer_method=payload.transfer_method,
            tracking_number=payload.tracking_number,
            condition_before=payload.condition_before.value if payload.condition_before else None,
            transfer_cost=(
                round_money(Decimal(str(payload.transfer_cost)))
                if payload.transfer_cost is not None else None
            ),
            transfer_notes=payload.transfer_notes,
            status=TransferStatus.PENDING_APPROVAL.value,
            created_by_id=actor.actor_id,
        )
        self._session.add(transfer)
        self._session.flush()

        history = self._append_history(
            asset,
            action=HistoryAction.TRANSFERRED,
            previous_status=asset.status,
            new_status=asset.status,
            actor=actor,
            notes=f"Transfer requested to {payload.to_business_unit_id} - {payload.reason}",
            details={
                "transfer_id": str(transfer.id),
                "transfer_number": transfer.transfer_number,
                "from_business_unit_id": str(asset.business_unit_id),
                "to_business_unit_id": str(payload.to_business_unit_id),
                "reason": payload.reason,
            },
        )
        audit = self._audit(
            AuditAction.CREATE, TransferModel.__tablename__, transfer.id, actor,
            asset.business_unit_id,
            new_values={
                "asset_id": asset.id,
                "transfer_number": transfer.transfer_number,
                "from_business_unit_id": asset.business_unit_id,
                "to_business_unit_id": payload.to_business_unit_id,
                "reason": payload.reason,
            },
        )
        return TransitionOutcome(
            TransitionKind.REQUEST_TRANSFER, asset.to_dto(), history.to_dto(), audit,
            transfer.to_dto(),
        )

    def _approve_transfer(
        self, target: TransitionTarget, actor: Principal, payload: TransferApproval,
    ) -> TransitionOutcome:
        transfer = self._load_transfer(payload.transfer_id or target.transfer_id, actor)
        asset = self._lock_asset(transfer.asset_id)
        context = self._context(actor, transfer_status=transfer.status)
        self._machine.check(TRANSFER_WORKFLOW, "approve", transfer.status, context, transfer.id)

        now = self._clock.now()
        notes = transfer.transfer_notes
        if payload.approval_notes:
            notes = f"{notes or ''}\n\nApproval Notes: {payload.approval_notes}"
        old_values = transfer.snapshot()
        self._compare_and_set(
            transfer, "transfer",
            TransferModel.status == TransferStatus.PENDING_APPROVAL.value,
            TransferStatus.PENDING_APPROVAL.value, "Transfer is not pending approval", actor,
            status=TransferStatus.APPROVED.value,
            approved_by_id=actor.actor_id,
            approved_at=now,
            transfer_notes=notes,
        )
        history = self._append_history(
            asset,
            action=HistoryAction.TRANSFERRED,
            previous_status=asset.status,
            new_status=asset.status,
            actor=actor,
            notes=f"Transfer approved by {actor.display_name or actor.actor_id}",
            details={"transfer_id": str(transfer.id), "transfer_number": transfer.transfer_number},
        )
        audit = self._audit(
            AuditAction.UPDATE, TransferModel.__tablename__, transfer.id, actor,
            transfer.from_business_unit_id,
            old_values=old_values,
            new_values={
                "status": TransferStatus.APPROVED.value,
                "approved_by_id": actor.actor_id,
                "approved_at": now,
                "approval_notes": payload.approval_notes,
            },
        )
        return TransitionOutcome(
            TransitionKind.APPROVE_TRANSFER, asset.to_dto(), history.to_dto(), audit,
            transfer.to_dto(),
        )

    def _reject_transfer(
        self, target: TransitionTarget, actor: Principal, payload: TransferRejection,
    ) -> TransitionOutcome:
        transfer = self._load_transfer(payload.transfer_id or target.transfer_id, actor)
        asset = self._lock_asset(transfer.asset_id)
        context = self._context(actor, transfer_status=transfer.status)
        self._machine.check(TRANSFER_WORKFLOW, "reject", transfer.status, context, transfer.id)

        old_values = transfer.snapshot()
        self._compare_and_set(
            transfer, "transfer",
            TransferModel.status == TransferStatus.PENDING_APPROVAL.value,
            TransferStatus.PENDING_APPROVAL.value, "Transfer is not pending approval", actor,
            status=TransferStatus.REJECTED.value,
            rejection_reason=payload.rejection_reason,
        )
        history = self._append_history(
            asset,
            action=HistoryAction.TRANSFERRED,
            previous_status=asset.status,
            new_status=asset.status,
            actor=actor,
            notes=f"Transfer rejected: {payload.rejection_reason}",
            details={"transfer_id": str(transfer.id), "transfer_number": transfer.transfer_number},
        )
        audit = self._audit(
            AuditAction.UPDATE, TransferModel.__tablename__, transfer.id, actor,
            transfer.from_business_unit_id,
            old_values=old_values,
            new_values={
                "status": TransferStatus.REJECTED.value,
                "rejection_reason": payload.rejection_reason,
            },
        )
        return TransitionOutcome(
            TransitionKind.REJECT_TRANSFER, asset.to_dto(), history.to_dto(), audit,
            transfer.to_dto(),
        )

    def _dispatch_transfer(
        self, target: TransitionTarget, actor: Principal, payload: Any = None,
    ) -> TransitionOutcome:
        transfer = self._load_transfer(target.transfer_id, actor)
        asset = self._lock_asset(transfer.asset_id)
        context = self._context(
            actor,
            asset_status=asset.status,
            transfer_status=transfer.status,
            open_deployment_count=self._selector.open_deployment_count(asset.id),
        )
        self._machine.check(TRANSFER_WORKFLOW, "dispatch", transfer.status, context, transfer.id)
        self._machine.check(ASSET_WORKFLOW, "dispatch_transfer", asset.status, context, asset.id)

        now = self._clock.now()
        old_values = transfer.snapshot()
        self._compare_and_set(
            transfer, "transfer",
            TransferModel.status == TransferStatus.APPROVED.value,
            TransferStatus.APPROVED.value, "Transfer is not approved", actor,
            status=TransferStatus.IN_TRANSIT.value,
            dispatched_at=now,
        )
        asset_before = asset.snapshot()
        self._compare_and_set(
            asset, "asset", AssetModel.status == AssetStatus.AVAILABLE.value,
            AssetStatus.AVAILABLE.value, "Asset status changed before dispatch", actor,
            status=AssetStatus.IN_TRANSIT.value,
        )
        self._audit_asset(asset, actor, asset_before)
        history = self._append_history(
            asset,
            action=HistoryAction.TRANSFERRED,
            previous_status=AssetStatus.AVAILABLE.value,
            new_status=AssetStatus.IN_TRANSIT.value,
            actor=actor,
            notes=f"Asset dispatched - Transfer {transfer.transfer_number}",
            details={"transfer_id": str(transfer.id), "transfer_number": transfer.transfer_number},
            start_date=now.date(),
        )
        audit = self._audit(
            AuditAction.UPDATE, TransferModel.__tablename__, transfer.id, actor,
            transfer.from_business_unit_id,
            old_values=old_values,
            new_values={"status": TransferStatus.IN_TRANSIT.value, "dispatched_at": now},
        )
        return TransitionOutcome(
            TransitionKind.DISPATCH_TRANSFER, asset.to_dto(), history.to_dto(), audit,
            transfer.to_dto(),
        )

    def _complete_transfer(
        self, target: TransitionTarget, actor: Principal, payload: TransferReceipt,
    ) -> TransitionOutcome:
        transfer = self._load_transfer(payload.transfer_id or target.transfer_id, actor)
        asset = self._lock_asset(transfer.asset_id)
        context = self._context(actor, asset_status=asset.status, transfer_status=transfer.status)
        self._machine.check(TRANSFER_WORKFLOW, "complete", transfer.status, context, transfer.id)
        self._machine.check(ASSET_WORKFLOW, "receive_transfer", asset.status, context, asset.id)

        today = self._clock.today()
        notes = transfer.transfer_notes
        if payload.received_notes:
            notes = f"{notes or ''}\n\nReceived Notes: {payload.received_notes}"
        condition_after = payload.condition_after.value if payload.condition_after else None
        old_values = transfer.snapshot()
        self._compare_and_set(
            transfer, "transfer",
            TransferModel.status == TransferStatus.IN_TRANSIT.value,
            TransferStatus.IN_TRANSIT.value, "Transfer is not in transit", actor,
            status=TransferStatus.COMPLETED.value,
            completed_date=today,
            condition_after=condition_after,
            received_by_id=actor.actor_id,
            transfer_notes=notes,
        )
        # Ownership and status move together; the history entry below is
        # written under the destination unit.
        asset_before = asset.snapshot()
        self._compare_and_set(
            asset, "asset", AssetModel.status == AssetStatus.IN_TRANSIT.value,
            AssetStatus.IN_TRANSIT.value, "Asset is not in transit", actor,
            status=AssetStatus.AVAILABLE.value,
            business_unit_id=transfer.to_business_unit_id,
        )
        self._audit_asset(asset, actor, asset_before)
        history = self._append_history(
            asset,
            action=HistoryAction.TRANSFERRED,
            previous_status=AssetStatus.IN_TRANSIT.value,
            new_status=AssetStatus.AVAILABLE.value,
            actor=actor,
            notes="Transfer completed - Asset received",
            details={
                "transfer_id": str(transfer.id),
                "transfer_number": transfer.transfer_number,
                "condition_after": condition_after,
                "received_notes": payload.received_notes,
            },
            start_date=today,
        )
        audit = self._audit(
            AuditAction.UPDATE, TransferModel.__tablename__, transfer.id, actor,
            transfer.to_business_unit_id,
            old_values=old_values,
            new_values={
                "status": TransferStatus.COMPLETED.value,
                "completed_date": today,
                "received_by_id": actor.actor_id,
            },
        )
        return TransitionOutcome(
            TransitionKind.COMPLETE_TRANSFER, asset.to_dto(), history.to_dto(), audit,
            transfer.to_dto(),
        )

    def _cancel_transfer(
        self, target: TransitionTarget, actor: Principal, payload: str | None = None,
    ) -> TransitionOutcome:
        transfer = self._load_transfer(target.transfer_id, actor)
        asset = self._lock_asset(transfer.asset_id)
        context = self._context(actor, transfer_status=transfer.status)
        self._machine.check(TRANSFER_WORKFLOW, "cancel", transfer.status, context, transfer.id)

        previous = transfer.status
        old_values = transfer.snapshot()
        self._compare_and_set(
            transfer, "transfer", TransferModel.status == previous, previous,
            "Only pending or approved transfers can be cancelled", actor,
            status=TransferStatus.CANCELLED.value,
        )
        history = self._append_history(
            asset,
            action=HistoryAction.STATUS_CHANGED,
            previous_status=asset.status,
            new_status=asset.status,
            actor=actor,
            notes=f"Transfer {transfer.transfer_number} cancelled" + (f": {payload}" if payload else ""),
            details={"transfer_id": str(transfer.id)},
        )
        audit = self._audit(
            AuditAction.UPDATE, TransferModel.__tablename__, transfer.id, actor,
            transfer.from_business_unit_id,
            old_values=old_values,
            new_values={"status": TransferStatus.CANCELLED.value, "reason": payload},
        )
        return TransitionOutcome(
            TransitionKind.CANCEL_TRANSFER, asset.to_dto(), history.to_dto(), audit,
            transfer.to_dto(),
        )

    # ==================================================================
    # Maintenance records
    # ==================================================================

    def _create_maintenance(
        self, target: TransitionTarget, actor: Principal, payload: MaintenanceRequest,
    ) -> TransitionOutcome:
        asset = self._load_asset(payload.asset_id, target.business_unit_id, actor)
        context = self._context(
            actor, asset_status=asset.status, has_disposal=self._selector.has_disposal(asset.id),
        )
        self._machine.check(ASSET_WORKFLOW, "record_maintenance", asset.status, context, asset.id)
        starts_now = payload.start_date is not None and payload.completed_date is None
        if starts_now:
            self._machine.check(ASSET_WORKFLOW, "send_to_maintenance", asset.status, context, asset.id)

        if payload.completed_date is not None:
            status = MaintenanceStatus.COMPLETED
        elif starts_now:
            status = MaintenanceStatus.IN_PROGRESS
        else:
            status = MaintenanceStatus.SCHEDULED
        record = MaintenanceRecordModel(
            asset_id=asset.id,
            business_unit_id=asset.business_unit_id,
            maintenance_type=payload.maintenance_type.value,
            description=payload.description,
            status=status.value,
            scheduled_date=payload.scheduled_date,
            start_date=payload.start_date,
            completed_date=payload.completed_date,
            performed_by=payload.performed_by,
            cost=round_money(Decimal(str(payload.cost))) if payload.cost is not None else None,
            notes=payload.notes,
            created_by_id=actor.actor_id,
        )
        self._session.add(record)
        self._session.flush()

        history = None
        if starts_now:
            history = self._take_out_of_service(asset, record, actor, payload.start_date)
        audit = self._audit(
            AuditAction.CREATE, MaintenanceRecordModel.__tablename__, record.id, actor,
            asset.business_unit_id,
            new_values={
                "asset_id": asset.id,
                "maintenance_type": payload.maintenance_type.value,
                "status": status.value,
                "scheduled_date": payload.scheduled_date,
                "description": payload.description,
            },
        )
        return TransitionOutcome(
            TransitionKind.CREATE_MAINTENANCE, asset.to_dto(),
            history.to_dto() if history is not None else None, audit, record.to_dto(),
        )

    def _start_maintenance(
        self, target: TransitionTarget, actor: Principal, payload: Any = None,
    ) -> TransitionOutcome:
        record = self._load_maintenance(target.maintenance_id, actor)
        asset = self._lock_asset(record.asset_id)
        context = self._context(
            actor, asset_status=asset.status, maintenance_status=record.status,
        )
        self._machine.check(MAINTENANCE_WORKFLOW, "start", record.status, context, record.id)
        self._machine.check(ASSET_WORKFLOW, "send_to_maintenance", asset.status, context, asset.id)

        today = self._clock.today()
        old_values = record.snapshot()
        self._compare_and_set(
            record, "maintenance",
            MaintenanceRecordModel.status == MaintenanceStatus.SCHEDULED.value,
            MaintenanceStatus.SCHEDULED.value, "Maintenance has already started", actor,
            status=MaintenanceStatus.IN_PROGRESS.value,
            start_date=today,
        )
        history = self._take_out_of_service(asset, record, actor, today)
        audit = self._audit(
            AuditAction.UPDATE, MaintenanceRecordModel.__tablename__, record.id, actor,
            record.business_unit_id,
            old_values=old_values,
            new_values={"status": MaintenanceStatus.IN_PROGRESS.value, "start_date": today},
        )
        return TransitionOutcome(
            TransitionKind.START_MAINTENANCE, asset.to_dto(), history.to_dto(), audit,
            record.to_dto(),
        )

    def _complete_maintenance(
        self, target: TransitionTarget, actor: Principal, payload: MaintenanceCompletion,
    ) -> TransitionOutcome:
        record = self._load_maintenance(payload.maintenance_id or target.maintenance_id, actor)
        asset = self._lock_asset(record.asset_id)
        context = self._context(
            actor, asset_status=asset.status, maintenance_status=record.status,
        )
        self._machine.check(MAINTENANCE_WORKFLOW, "complete", record.status, context, record.id)
        # Only work that took the asset out of service puts it back.
        returns_asset = (
            record.status == MaintenanceStatus.IN_PROGRESS.value
            and asset.status == AssetStatus.IN_MAINTENANCE.value
        )
        if returns_asset:
            self._machine.check(ASSET_WORKFLOW, "complete_maintenance", asset.status, context, asset.id)

        completed = payload.completed_date or self._clock.today()
        cost = round_money(Decimal(str(payload.cost))) if payload.cost is not None else record.cost
        notes = f"{record.notes or ''}\n\n{payload.notes}".strip() if payload.notes else record.notes
        previous = record.status
        old_values = record.snapshot()
        self._compare_and_set(
            record, "maintenance", MaintenanceRecordModel.status == previous, previous,
            "Maintenance record already completed", actor,
            status=MaintenanceStatus.COMPLETED.value,
            completed_date=completed,
            cost=cost,
            notes=notes,
        )
        history = None
        if returns_asset:
            asset_before = asset.snapshot()
            self._compare_and_set(
                asset, "asset", AssetModel.status == AssetStatus.IN_MAINTENANCE.value,
                AssetStatus.IN_MAINTENANCE.value, "Asset is no longer in maintenance", actor,
                status=AssetStatus.AVAILABLE.value,
            )
            self._audit_asset(asset, actor, asset_before)
            history = self._append_history(
                asset,
                action=HistoryAction.MAINTENANCE_END,
                previous_status=AssetStatus.IN_MAINTENANCE.value,
                new_status=AssetStatus.AVAILABLE.value,
                actor=actor,
                notes=f"Maintenance completed: {record.description}",
                details={"maintenance_id": str(record.id), "cost": str(cost) if cost is not None else None},
                start_date=completed,
                closing_date=completed,
            )
        audit = self._audit(
            AuditAction.UPDATE, MaintenanceRecordModel.__tablename__, record.id, actor,
            record.business_unit_id,
            old_values=old_values,
            new_values={
                "status": MaintenanceStatus.COMPLETED.value,
                "completed_date": completed,
                "cost": cost,
            },
        )
        return TransitionOutcome(
            TransitionKind.COMPLETE_MAINTENANCE, asset.to_dto(),
            history.to_dto() if history is not None else None, audit, record.to_dto(),
        )

    def _take_out_of_service(
        self,
        asset: AssetModel,
        record: MaintenanceRecordModel,
        actor: Principal,
        start: date,
    ) -> AssetHistoryModel:
        previous_status = asset.status
        asset_before = asset.snapshot()
        self._compare_and_set(
            asset, "asset", AssetModel.status == previous_status, previous_status,
            "Asset status changed before maintenance", actor,
            status=AssetStatus.IN_MAINTENANCE.value,
        )
        self._audit_asset(asset, actor, asset_before)
        return self._append_history(
            asset,
            action=HistoryAction.MAINTENANCE_START,
            previous_status=previous_status,
            new_status=AssetStatus.IN_MAINTENANCE.value,
            actor=actor,
            notes=f"Maintenance started: {record.description}",
            details={
                "maintenance_id": str(record.id),
                "maintenance_type": record.maintenance_type,
            },
            start_date=start,
        )

    # ==================================================================
    # Helpers
    # ==================================================================

    def _lock(self, model: type[T], entity_id: UUID | None) -> T | None:
        if entity_id is None:
            return None
        return self._session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _load_asset(
        self,
        asset_id: UUID | None,
        business_unit_id: UUID | None,
        actor: Principal,
    ) -> AssetModel:
        asset = self._lock(AssetModel, asset_id)
        if (
            asset is None
            or not asset.is_active
            or (business_unit_id is not None and asset.business_unit_id != business_unit_id)
            or not actor.can_access(asset.business_unit_id)
        ):
            raise AssetNotFoundError(asset_id)
        return asset

    def _load_deployment(self, deployment_id: UUID | None, actor: Principal) -> DeploymentModel:
        deployment = self._lock(DeploymentModel, deployment_id)
        if deployment is None or not actor.can_access(deployment.business_unit_id):
            raise DeploymentNotFoundError(deployment_id)
        return deployment

    def _lock_asset_of(self, deployment: DeploymentModel) -> AssetModel:
        return self._lock_asset(deployment.asset_id)

    def _lock_asset(self, asset_id: UUID) -> AssetModel:
        asset = self._lock(AssetModel, asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        return asset

    def _load_transfer(self, transfer_id: UUID | None, actor: Principal) -> TransferModel:
        transfer = self._lock(TransferModel, transfer_id)
        # Either side of the move may act on it.
        if transfer is None or not (
            actor.can_access(transfer.from_business_unit_id)
            or actor.can_access(transfer.to_business_unit_id)
        ):
            raise TransferNotFoundError(transfer_id)
        return transfer

    def _load_maintenance(
        self, maintenance_id: UUID | None, actor: Principal,
    ) -> MaintenanceRecordModel:
        record = self._lock(MaintenanceRecordModel, maintenance_id)
        if record is None or not actor.can_access(record.business_unit_id):
            raise MaintenanceRecordNotFoundError(maintenance_id)
        return record

    def _context(self, actor: Principal, **state: Any) -> TransitionContext:
        return TransitionContext(
            capabilities=resolve_capabilities(actor, self._config),
            actor_id=actor.actor_id,
            **state,
        )

    def _count_pending(self, deployment_ids: list[UUID], actor: Principal) -> int:
        if not deployment_ids:
            return 0
        rows = self._session.execute(
            select(DeploymentModel.business_unit_id).where(
                DeploymentModel.id.in_(deployment_ids),
                DeploymentModel.status == _PENDING,
            )
        ).scalars()
        return sum(1 for bu in rows if actor.can_access(bu))

    def _compare_and_set(
        self,
        row: Any,
        entity_type: str,
        condition: Any,
        expected_state: str,
        message: str,
        actor: Principal,
        **values: Any,
    ) -> None:
        """UPDATE ``row`` only while ``condition`` still holds; exactly one row must match."""
        model = type(row)
        result = self._session.execute(
            update(model)
            .where(model.id == row.id, condition)
            .values(updated_by_id=actor.actor_id, **values)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError(entity_type, row.id, expected_state, message)

    def _append_history(
        self,
        asset: AssetModel,
        *,
        action: HistoryAction,
        previous_status: str | None,
        new_status: str | None,
        actor: Principal,
        notes: str | None = None,
        details: dict[str, Any] | None = None,
        deployment_id: UUID | None = None,
        employee_id: UUID | None = None,
        start_date: date | None = None,
        closing_date: date | None = None,
    ) -> AssetHistoryModel:
        now = self._clock.now()
        self._session.execute(
            update(AssetHistoryModel)
            .where(
                AssetHistoryModel.asset_id == asset.id,
                AssetHistoryModel.end_date.is_(None),
            )
            .values(end_date=closing_date or now.date())
        )
        entry = AssetHistoryModel(
            asset_id=asset.id,
            business_unit_id=asset.business_unit_id,
            action=action.value,
            previous_status=previous_status,
            new_status=new_status,
            performed_by_id=actor.actor_id,
            performed_at=now,
            notes=notes,
            details=details,
            deployment_id=deployment_id,
            employee_id=employee_id,
            start_date=start_date,
            created_by_id=actor.actor_id,
        )
        self._session.add(entry)
        self._session.flush()
        return entry

    def _audit(
        self,
        action: AuditAction,
        table_name: str,
        record_id: UUID,
        actor: Principal,
        business_unit_id: UUID | None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        return self._auditor.record(
            action=action,
            table_name=table_name,
            record_id=record_id,
            actor_id=actor.actor_id,
            business_unit_id=business_unit_id,
            old_values=old_values,
            new_values=new_values,
        )

    def _audit_asset(
        self, asset: AssetModel, actor: Principal, old_values: dict[str, Any],
    ) -> AuditLogEntry:
        return self._audit(
            AuditAction.UPDATE, AssetModel.__tablename__, asset.id, actor,
            asset.business_unit_id,
            old_values=old_values,
            new_values=asset.snapshot(),
        )

    def _next_transmittal_number(self) -> str:
        prefix = self._config.transmittal_prefix
        year = self._clock.today().year
        value = self._sequences.next_value(SequenceService.transmittal_sequence(prefix, year))
        return f"{prefix}-{year}-{value:04d}"

    def _next_transfer_number(self) -> str:
        prefix = self._config.transfer_prefix
        year = self._clock.today().year
        value = self._sequences.next_value(SequenceService.transfer_sequence(prefix, year))
        return f"{prefix}-{year}-{value:04d}"


def _validate_registration(registration: AssetRegistration) -> None:
    price = registration.purchase_price
    salvage = registration.salvage_value or Decimal("0")
    if price is not None and price < 0:
        raise InvalidDepreciationInput("purchase_price", "must not be negative")
    if salvage < 0:
        raise InvalidDepreciationInput("salvage_value", "must not be negative")
    if price is not None and salvage > price:
        raise InvalidDepreciationInput("salvage_value", "must not exceed purchase_price")
    if registration.useful_life_months is not None and registration.useful_life_months <= 0:
        raise InvalidDepreciationInput("useful_life_months", "must be greater than zero")
    if (
        registration.depreciation_method == DepreciationMethod.UNITS_OF_PRODUCTION
        and (registration.total_expected_units is None or registration.total_expected_units <= 0)
    ):
        raise InvalidDepreciationInput("total_expected_units", "must be greater than zero")
