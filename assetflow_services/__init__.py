"""
assetflow_services -- Stateful orchestration over the lifecycle kernel.

Services own transaction boundaries and the seams to collaborators the
lifecycle does not own (identity, notifications).  Modules call into this
package; this package never imports a module service.
"""

from assetflow_services.authorization import (
    check_capability,
    get_capability_for_transition,
    resolve_capabilities,
)
from assetflow_services.notifications import (
    IdentityProvider,
    LoggingNotificationDispatcher,
    Notification,
    NotificationDispatcher,
    StaticIdentityProvider,
    dispatch_all,
)
from assetflow_services.transaction_coordinator import (
    BulkApprovalOutcome,
    BulkDisposalOutcome,
    BulkSkip,
    TransactionCoordinator,
    TransitionKind,
    TransitionOutcome,
    TransitionTarget,
)

__all__ = [
    "BulkApprovalOutcome",
    "BulkDisposalOutcome",
    "BulkSkip",
    "IdentityProvider",
    "LoggingNotificationDispatcher",
    "Notification",
    "NotificationDispatcher",
    "StaticIdentityProvider",
    "TransactionCoordinator",
    "TransitionKind",
    "TransitionOutcome",
    "TransitionTarget",
    "check_capability",
    "dispatch_all",
    "get_capability_for_transition",
    "resolve_capabilities",
]
