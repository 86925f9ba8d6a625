"""
Typed Exception Hierarchy for the AssetFlow kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Lifecycle operations fail for a small number of well-understood reasons:
the caller is not allowed to act, the record does not exist, a guard
condition does not hold, or the store could not commit.  Callers must be
able to tell these apart without parsing message strings.

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA (ids, guard names, states)

The ``str()`` of a guard or not-found error is the human-facing message
returned to callers in ``{success: False, message}`` results, so messages
are kept stable.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    AssetKernelError (base)
    |
    +-- AuthorizationError
    |   +-- UnauthenticatedError
    |
    +-- NotFoundError
    |   +-- AssetNotFoundError
    |   +-- DeploymentNotFoundError
    |   +-- RetirementNotFoundError
    |   +-- DisposalNotFoundError
    |   +-- TransferNotFoundError
    |   +-- MaintenanceRecordNotFoundError
    |
    +-- BusinessRuleViolation
    |   +-- GuardViolationError
    |   +-- InvalidTransitionError
    |   +-- DepreciationNotConfigured
    |   +-- ConcurrentModificationError
    |
    +-- InvalidDepreciationInput
    |
    +-- TransactionFailure

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Authorization   | UNAUTHORIZED                | Principal lacks a capability
                | UNAUTHENTICATED             | No acting principal
----------------|-----------------------------|-----------------------------------------
Not found       | ASSET_NOT_FOUND             | Asset missing or other business unit
                | DEPLOYMENT_NOT_FOUND        | Deployment missing or not visible
                | RETIREMENT_NOT_FOUND        | Retirement missing or not visible
                | DISPOSAL_NOT_FOUND          | Disposal missing or not visible
                | TRANSFER_NOT_FOUND          | Transfer missing or neither unit visible
                | MAINTENANCE_NOT_FOUND       | Maintenance record missing or not visible
----------------|-----------------------------|-----------------------------------------
Business rule   | GUARD_VIOLATION             | Transition guard evaluated False
                | INVALID_TRANSITION          | No transition from current state
                | DEPRECIATION_NOT_CONFIGURED | Price or useful life missing
                | CONCURRENT_MODIFICATION     | Compare-and-set UPDATE hit 0 rows
----------------|-----------------------------|-----------------------------------------
Engine          | INVALID_DEPRECIATION_INPUT  | Calculator precondition failed
----------------|-----------------------------|-----------------------------------------
Infrastructure  | TRANSACTION_FAILURE         | Atomic commit failed (safe to retry)

===============================================================================
HANDLING PATTERNS
===============================================================================

The service facade is the only place these are caught:

    try:
        outcome = coordinator.apply_transition(...)
    except (AuthorizationError, NotFoundError, BusinessRuleViolation) as e:
        return OperationResult.failure(str(e), code=e.code)
    except TransactionFailure as e:
        logger.error("transaction_failed", exc_info=True)
        return OperationResult.failure("Failed to approve deployment", code=e.code)
"""

from uuid import UUID


class AssetKernelError(Exception):
    """
    Base exception for all AssetFlow errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "ASSET_KERNEL_ERROR"


# Authorization


class AuthorizationError(AssetKernelError):
    """Principal is missing or lacks the capability for an operation."""

    code: str = "UNAUTHORIZED"

    def __init__(
        self,
        message: str = "Unauthorized",
        capability: str | None = None,
        actor_id: UUID | None = None,
    ):
        self.capability = capability
        self.actor_id = actor_id
        super().__init__(message)


class UnauthenticatedError(AuthorizationError):
    """No authenticated principal was supplied."""

    code: str = "UNAUTHENTICATED"

    def __init__(self):
        super().__init__("Unauthorized")


# Not found


class NotFoundError(AssetKernelError):
    """Referenced record does not exist or is not visible to the caller."""

    code: str = "NOT_FOUND"
    entity_type: str = "record"

    def __init__(self, entity_id: UUID | str | None, message: str | None = None):
        self.entity_id = entity_id
        super().__init__(message or f"{self.entity_type.capitalize()} not found")


class AssetNotFoundError(NotFoundError):
    """Asset missing, inactive, or owned by another business unit."""

    code: str = "ASSET_NOT_FOUND"
    entity_type: str = "asset"

    def __init__(self, asset_id: UUID | str | None, message: str | None = None):
        super().__init__(asset_id, message or "Asset not found or not accessible")


class DeploymentNotFoundError(NotFoundError):
    """Deployment missing or owned by another business unit."""

    code: str = "DEPLOYMENT_NOT_FOUND"
    entity_type: str = "deployment"


class RetirementNotFoundError(NotFoundError):
    """Retirement record missing."""

    code: str = "RETIREMENT_NOT_FOUND"
    entity_type: str = "retirement"

    def __init__(self, retirement_id: UUID | str | None):
        super().__init__(retirement_id, "Retirement record not found")


class DisposalNotFoundError(NotFoundError):
    """Disposal record missing."""

    code: str = "DISPOSAL_NOT_FOUND"
    entity_type: str = "disposal"

    def __init__(self, disposal_id: UUID | str | None):
        super().__init__(disposal_id, "Disposal record not found")


class TransferNotFoundError(NotFoundError):
    """Transfer missing, or neither its source nor destination unit is visible."""

    code: str = "TRANSFER_NOT_FOUND"
    entity_type: str = "transfer"


class MaintenanceRecordNotFoundError(NotFoundError):
    code: str = "MAINTENANCE_NOT_FOUND"
    entity_type: str = "maintenance record"

    def __init__(self, maintenance_id: UUID | str | None):
        super().__init__(maintenance_id, "Maintenance record not found")


# Business rules


class BusinessRuleViolation(AssetKernelError):
    """Base exception for guard and precondition failures."""

    code: str = "BUSINESS_RULE_VIOLATION"


class GuardViolationError(BusinessRuleViolation):
    """
    A transition guard evaluated False.

    The message is the guard's violation message and is returned to the
    caller verbatim.
    """

    code: str = "GUARD_VIOLATION"

    def __init__(
        self,
        guard_name: str,
        message: str,
        workflow: str | None = None,
        action: str | None = None,
    ):
        self.guard_name = guard_name
        self.workflow = workflow
        self.action = action
        super().__init__(message)


class InvalidTransitionError(BusinessRuleViolation):
    """No transition exists for the action from the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, workflow: str, action: str, from_state: str):
        self.workflow = workflow
        self.action = action
        self.from_state = from_state
        super().__init__(
            f"Cannot {action.replace('_', ' ')} when status is {from_state}"
        )


class DepreciationNotConfigured(BusinessRuleViolation):
    """Asset lacks purchase price or useful life and cannot be scheduled."""

    code: str = "DEPRECIATION_NOT_CONFIGURED"

    def __init__(self, asset_id: UUID | str | None = None, missing: tuple[str, ...] = ()):
        self.asset_id = asset_id
        self.missing = missing
        super().__init__("Asset not found or missing depreciation data")


class ConcurrentModificationError(BusinessRuleViolation):
    """Conditional UPDATE matched no row: the state changed underneath us."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: UUID, expected_state: str, message: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_state = expected_state
        super().__init__(message)


# Engine preconditions


class InvalidDepreciationInput(AssetKernelError):
    """Depreciation calculator received inputs outside its domain."""

    code: str = "INVALID_DEPRECIATION_INPUT"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid depreciation input '{field}': {reason}")


# Infrastructure


class TransactionFailure(AssetKernelError):
    """The atomic commit failed.  No partial state is visible; safe to retry."""

    code: str = "TRANSACTION_FAILURE"

    def __init__(self, operation: str, cause: str):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Transaction failed during {operation}: {cause}")
