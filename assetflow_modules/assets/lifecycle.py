"""
assetflow_modules.assets.lifecycle -- Lifecycle state machine.

Responsibility:
    Decides whether an action may fire from a record's current state.
    Evaluates the transition's guards in declared order against a
    TransitionContext, then checks that a transition exists from the
    current state.  Pure decision logic: never reads or writes the store.

Architecture position:
    Modules layer.  Called by the TransactionCoordinator on state read
    inside its atomic unit, so guard results cannot go stale before the
    mutation they protect.

Invariants enforced:
    - First failing guard wins; its message is the caller-facing error.
    - Authorization guards raise AuthorizationError; all others raise
      GuardViolationError.  A missing from-state raises
      InvalidTransitionError.
    - Every decision emits one ``lifecycle_transition`` trace record.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable
from uuid import UUID

from assetflow_kernel.domain.workflow import Guard, GuardKind, Transition, Workflow
from assetflow_kernel.exceptions import (
    AuthorizationError,
    GuardViolationError,
    InvalidTransitionError,
)
from assetflow_kernel.logging_config import LogContext, get_logger
from assetflow_modules.assets.models import (
    AssetStatus,
    DeploymentStatus,
    MaintenanceStatus,
    TransferStatus,
)

logger = get_logger("modules.assets.lifecycle")

TRACE_TYPE_LIFECYCLE_TRANSITION = "LIFECYCLE_TRANSITION"
OUTCOME_ALLOWED = "allowed"
OUTCOME_GUARD_FAILED = "guard_failed"
OUTCOME_UNAUTHORIZED = "unauthorized"
OUTCOME_NO_TRANSITION = "no_transition"

APPROVE_DEPLOYMENTS_CAPABILITY = "deployments:approve"
APPROVE_TRANSFERS_CAPABILITY = "transfers:approve"


@dataclass(frozen=True)
class TransitionContext:
    """
    State read inside the unit of work, handed to guard evaluators.

    ``capabilities`` lists what the acting principal was resolved to hold
    for this request (e.g. ``deployments:approve``).
    """

    asset_status: str | None = None
    deployment_status: str | None = None
    open_deployment_count: int = 0
    has_disposal: bool = False
    record_approved: bool = False
    transfer_status: str | None = None
    open_transfer_count: int = 0
    source_business_unit_id: UUID | None = None
    target_business_unit_id: UUID | None = None
    maintenance_status: str | None = None
    capabilities: frozenset[str] = frozenset()
    actor_id: UUID | None = None


def _get_attr(context: Any, key: str, default: Any = None) -> Any:
    """Get attribute from context (object or dict)."""
    if context is None:
        return default
    if hasattr(context, "get") and callable(getattr(context, "get")):
        return context.get(key, default)
    return getattr(context, key, default)


def _has_capability(capability: str) -> Callable[[Any], bool]:
    return lambda ctx: capability in (_get_attr(ctx, "capabilities") or ())


def _asset_available(context: Any) -> bool:
    return _get_attr(context, "asset_status") == AssetStatus.AVAILABLE.value


def _not_disposed(context: Any) -> bool:
    if _get_attr(context, "has_disposal", False):
        return False
    return _get_attr(context, "asset_status") != AssetStatus.DISPOSED.value


def _transfer_in(*statuses: TransferStatus) -> Callable[[Any], bool]:
    allowed = {s.value for s in statuses}
    return lambda ctx: _get_attr(ctx, "transfer_status") in allowed


class GuardExecutor:
    """Evaluates workflow guards against context.

    Guards are declared on transitions (name + message).  This executor
    holds the evaluation logic per guard name.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, Callable[[Any], bool]] = {}

    def register(self, guard_name: str, evaluator: Callable[[Any], bool]) -> None:
        """Register an evaluator for a guard by name."""
        self._evaluators[guard_name] = evaluator

    def evaluate(self, guard: Guard, context: Any = None) -> bool:
        """Evaluate a guard against context. Returns True if guard passes."""
        fn = self._evaluators.get(guard.name)
        if fn is None:
            logger.warning(
                "guard_no_evaluator",
                extra={"guard_name": guard.name},
            )
            return False
        try:
            return bool(fn(context))
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "guard_evaluation_error",
                extra={"guard_name": guard.name, "error": str(e)},
            )
            return False


def default_guard_executor() -> GuardExecutor:
    """Return a GuardExecutor with the lifecycle evaluators registered."""
    ex = GuardExecutor()
    ex.register("can_approve_deployments", _has_capability(APPROVE_DEPLOYMENTS_CAPABILITY))
    ex.register("can_reject_deployments", _has_capability(APPROVE_DEPLOYMENTS_CAPABILITY))
    ex.register(
        "deployment_pending",
        lambda ctx: _get_attr(ctx, "deployment_status")
        == DeploymentStatus.PENDING_ACCOUNTING_APPROVAL.value,
    )
    ex.register(
        "deployment_not_deployed",
        lambda ctx: _get_attr(ctx, "deployment_status") != DeploymentStatus.DEPLOYED.value,
    )
    ex.register(
        "deployment_active",
        lambda ctx: _get_attr(ctx, "deployment_status") == DeploymentStatus.DEPLOYED.value,
    )
    ex.register("asset_available", _asset_available)
    ex.register("no_open_deployment", lambda ctx: _get_attr(ctx, "open_deployment_count", 0) == 0)
    ex.register("no_open_deployments", lambda ctx: _get_attr(ctx, "open_deployment_count", 0) == 0)
    ex.register(
        "not_retired",
        lambda ctx: _get_attr(ctx, "asset_status") != AssetStatus.RETIRED.value,
    )
    ex.register("not_disposed", _not_disposed)
    ex.register("record_not_approved", lambda ctx: not _get_attr(ctx, "record_approved", False))
    ex.register("can_approve_transfers", _has_capability(APPROVE_TRANSFERS_CAPABILITY))
    ex.register("can_reject_transfers", _has_capability(APPROVE_TRANSFERS_CAPABILITY))
    ex.register("no_open_transfer", lambda ctx: _get_attr(ctx, "open_transfer_count", 0) == 0)
    ex.register(
        "different_business_unit",
        lambda ctx: _get_attr(ctx, "target_business_unit_id")
        != _get_attr(ctx, "source_business_unit_id"),
    )
    ex.register("transfer_pending", _transfer_in(TransferStatus.PENDING_APPROVAL))
    ex.register("transfer_approved", _transfer_in(TransferStatus.APPROVED))
    ex.register("transfer_in_transit", _transfer_in(TransferStatus.IN_TRANSIT))
    ex.register(
        "transfer_cancellable",
        _transfer_in(TransferStatus.PENDING_APPROVAL, TransferStatus.APPROVED),
    )
    ex.register(
        "maintenance_scheduled",
        lambda ctx: _get_attr(ctx, "maintenance_status") == MaintenanceStatus.SCHEDULED.value,
    )
    ex.register(
        "maintenance_open",
        lambda ctx: _get_attr(ctx, "maintenance_status") != MaintenanceStatus.COMPLETED.value,
    )
    return ex


def _emit_transition_trace(
    workflow_name: str,
    action: str,
    entity_id: UUID | None,
    from_state: str,
    outcome: str,
    reason: str,
    duration_ms: float,
    to_state: str | None = None,
) -> None:
    """Emit a structured lifecycle decision record."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_LIFECYCLE_TRANSITION,
        "workflow": workflow_name,
        "action": action,
        "entity_id": str(entity_id) if entity_id is not None else None,
        "from_state": from_state,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    if to_state is not None:
        record["to_state"] = to_state
    record.update(LogContext.get_all())
    logger.info("lifecycle_transition", extra=record)


class LifecycleStateMachine:
    """
    Validates lifecycle actions against the declared workflows.

    Contract:
        ``check`` either returns the Transition that fires or raises.
        It never mutates anything; the caller applies the transition.
    """

    def __init__(self, guard_executor: GuardExecutor | None = None):
        self._guards = guard_executor or default_guard_executor()

    def check(
        self,
        workflow: Workflow,
        action: str,
        current_state: str,
        context: TransitionContext | dict | None = None,
        entity_id: UUID | None = None,
    ) -> Transition:
        """
        Validate ``action`` from ``current_state``.

        Raises:
            AuthorizationError: an authorization guard failed.
            GuardViolationError: a business-rule guard failed.
            InvalidTransitionError: no transition for the action from
                ``current_state``.
        """
        start = time.monotonic()
        candidates = workflow.transitions_for(action)
        transition = workflow.find_transition(current_state, action)
        guards = transition.guards if transition is not None else (
            candidates[0].guards if candidates else ()
        )

        for guard in guards:
            if self._guards.evaluate(guard, context):
                continue
            elapsed = (time.monotonic() - start) * 1000
            if guard.kind == GuardKind.AUTHORIZATION:
                _emit_transition_trace(
                    workflow.name, action, entity_id, current_state,
                    OUTCOME_UNAUTHORIZED, guard.name, elapsed,
                )
                raise AuthorizationError(
                    guard.message,
                    capability=guard.name,
                    actor_id=_get_attr(context, "actor_id"),
                )
            _emit_transition_trace(
                workflow.name, action, entity_id, current_state,
                OUTCOME_GUARD_FAILED, guard.name, elapsed,
            )
            raise GuardViolationError(
                guard.name, guard.message, workflow=workflow.name, action=action,
            )

        if transition is None:
            _emit_transition_trace(
                workflow.name, action, entity_id, current_state,
                OUTCOME_NO_TRANSITION, f"no '{action}' from {current_state}",
                (time.monotonic() - start) * 1000,
            )
            raise InvalidTransitionError(workflow.name, action, current_state)

        _emit_transition_trace(
            workflow.name, action, entity_id, current_state,
            OUTCOME_ALLOWED, "guards_passed",
            (time.monotonic() - start) * 1000,
            to_state=transition.to_state,
        )
        return transition

    def can(
        self,
        workflow: Workflow,
        action: str,
        current_state: str,
        context: TransitionContext | dict | None = None,
    ) -> bool:
        """Non-raising variant of ``check`` for read paths."""
        transition = workflow.find_transition(current_state, action)
        if transition is None:
            return False
        return all(self._guards.evaluate(g, context) for g in transition.guards)
