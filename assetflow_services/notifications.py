"""
assetflow_services.notifications -- Identity and notification seams.

Responsibility:
    Protocols for the two collaborators the lifecycle service does not
    own: the identity provider (who is acting, who should be told) and
    the notification dispatcher.  Ships static and logging defaults that
    satisfy both protocols for tests and single-process deployments.

Architecture position:
    Services layer.  Dispatch is fire-and-forget and happens only after
    the atomic unit has committed; a dispatcher failure is logged and
    never undoes a committed transition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, runtime_checkable
from uuid import UUID

from assetflow_kernel.domain.permissions import Principal
from assetflow_kernel.logging_config import get_logger
from assetflow_modules.assets.models import NotificationType

logger = get_logger("services.notifications")


@dataclass(frozen=True)
class Notification:
    """One message for one recipient."""

    recipient_id: UUID
    type: NotificationType
    title: str
    message: str
    asset_id: UUID | None = None
    priority: str = "MEDIUM"
    details: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class IdentityProvider(Protocol):
    """Resolves the acting principal and notification recipients."""

    def current_principal(self) -> Principal | None: ...

    def recipients(self, business_unit_id: UUID, role_codes: Iterable[str]) -> tuple[UUID, ...]: ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Delivers notifications.  Implementations may raise; callers log and continue."""

    def dispatch(self, notification: Notification) -> None: ...


class StaticIdentityProvider:
    """IdentityProvider backed by a fixed principal and an in-memory directory.

    ``directory`` lists the principals that can receive notifications.
    """

    def __init__(
        self,
        principal: Principal | None,
        directory: Iterable[Principal] = (),
    ) -> None:
        self._principal = principal
        self._directory: tuple[Principal, ...] = tuple(directory)

    def current_principal(self) -> Principal | None:
        return self._principal

    def act_as(self, principal: Principal | None) -> None:
        self._principal = principal

    def recipients(self, business_unit_id: UUID, role_codes: Iterable[str]) -> tuple[UUID, ...]:
        roles = set(role_codes)
        return tuple(
            p.actor_id
            for p in self._directory
            if p.is_active and p.role_code in roles and p.can_access(business_unit_id)
        )


class LoggingNotificationDispatcher:
    """Default dispatcher: writes each notification as a structured log record."""

    def dispatch(self, notification: Notification) -> None:
        logger.info(
            "notification_dispatched",
            extra={
                "recipient_id": str(notification.recipient_id),
                "notification_type": notification.type.value,
                "title": notification.title,
                "priority": notification.priority,
                "asset_id": str(notification.asset_id) if notification.asset_id else None,
            },
        )


def dispatch_all(dispatcher: NotificationDispatcher, notifications: Iterable[Notification]) -> int:
    """Dispatch each notification; returns how many were delivered."""
    delivered = 0
    for notification in notifications:
        try:
            dispatcher.dispatch(notification)
            delivered += 1
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "notification_dispatch_failed",
                extra={
                    "recipient_id": str(notification.recipient_id),
                    "notification_type": notification.type.value,
                    "error": str(e),
                },
            )
    return delivered
