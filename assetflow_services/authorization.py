"""
assetflow_services.authorization -- Capability checks at the service boundary.

Responsibility:
    Decide whether a Principal holds a lifecycle capability: approving or
    rejecting deployments, or approving or rejecting business-unit
    transfers.  Grants come from the principal's explicit PermissionSet,
    an admin permission, or an approver role code, all taken from
    ``LifecycleConfig.approval``.

Architecture position:
    Services layer.  Called by the TransactionCoordinator before guard
    evaluation; the result is handed to the state machine as part of the
    TransitionContext.

Invariants:
    - Identity is resolved by the caller; this module only inspects the
      Principal it is given.
    - Inactive principals hold no capabilities.
"""

from __future__ import annotations

from assetflow_config.schema import ApprovalPolicy, LifecycleConfig
from assetflow_kernel.domain.permissions import Principal
from assetflow_modules.assets.lifecycle import (
    APPROVE_DEPLOYMENTS_CAPABILITY,
    APPROVE_TRANSFERS_CAPABILITY,
)

# (workflow_name, action) -> capability string
WORKFLOW_ACTION_TO_CAPABILITY: dict[tuple[str, str], str] = {
    ("deployment", "approve"): APPROVE_DEPLOYMENTS_CAPABILITY,
    ("deployment", "reject"): APPROVE_DEPLOYMENTS_CAPABILITY,
    ("transfer", "approve"): APPROVE_TRANSFERS_CAPABILITY,
    ("transfer", "reject"): APPROVE_TRANSFERS_CAPABILITY,
}


def get_capability_for_transition(workflow_name: str, action: str) -> str | None:
    """Return the capability required for this workflow transition, or None if not gated."""
    return WORKFLOW_ACTION_TO_CAPABILITY.get((workflow_name, action))


def _policy_grants(
    capability: str, policy: ApprovalPolicy,
) -> tuple[tuple[str, ...], tuple[str, ...]] | None:
    """(permissions, roles) that grant ``capability``, or None when only an explicit grant does."""
    if capability == APPROVE_DEPLOYMENTS_CAPABILITY:
        return policy.approve_permissions, policy.approver_roles
    if capability == APPROVE_TRANSFERS_CAPABILITY:
        return policy.transfer_approve_permissions, policy.transfer_approver_roles
    return None


def check_capability(
    principal: Principal,
    capability: str,
    config: LifecycleConfig,
) -> tuple[bool, str]:
    """Check whether ``principal`` holds ``capability``.

    Returns:
        (allowed, reason). reason is empty when allowed, or a short
        message when denied.
    """
    if not principal.is_active:
        return (False, "principal is inactive")

    policy = config.approval
    grants = _policy_grants(capability, policy)
    if grants is None:
        if principal.permissions.has(capability):
            return (True, "")
        return (False, f"capability '{capability}' not granted")

    permissions, roles = grants
    if principal.permissions.has_any(permissions):
        return (True, "")
    if principal.permissions.has_any(policy.admin_permissions):
        return (True, "")
    if principal.role_code and principal.role_code in roles:
        return (True, "")
    return (False, f"capability '{capability}' not granted to role {principal.role_code!r}")


def resolve_capabilities(principal: Principal, config: LifecycleConfig) -> frozenset[str]:
    """All gated capabilities ``principal`` holds, resolved once per request."""
    granted = {
        capability
        for capability in set(WORKFLOW_ACTION_TO_CAPABILITY.values())
        if check_capability(principal, capability, config)[0]
    }
    return frozenset(granted)
