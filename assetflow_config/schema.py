"""
Lifecycle configuration schema (``assetflow_config.schema``).

Responsibility
--------------
Frozen dataclasses describing the tunable policy of the asset lifecycle:
who may approve deployments and transfers, how transmittal and transfer
numbers look, and the
thresholds used by retirement recommendations and end-of-life notices.

Architecture position
---------------------
**Config layer** -- pure value objects, no I/O.  Parsed by
``assetflow_config.loader``; consumed by the services and modules layers.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ApprovalPolicy:
    """Who may approve or reject deployments and business-unit transfers."""

    approve_permissions: tuple[str, ...] = ("deployments:approve",)
    admin_permissions: tuple[str, ...] = ("admin:full_access",)
    approver_roles: tuple[str, ...] = (
        "SUPER_ADMIN", "ADMIN", "ACCOUNTING", "FINANCE", "MANAGER",
    )
    transfer_approve_permissions: tuple[str, ...] = ("transfers:approve",)
    transfer_approver_roles: tuple[str, ...] = (
        "SUPER_ADMIN", "ADMIN", "ASSET_MANAGER", "MANAGER",
    )


@dataclass(frozen=True)
class RetirementPolicy:
    """Thresholds for the retirement recommendation (RETIRE/MAINTAIN/MONITOR)."""

    retire_depreciation_percent: Decimal = Decimal("95")
    retire_age_years: Decimal = Decimal("10")
    maintain_depreciation_percent: Decimal = Decimal("80")
    maintain_age_years: Decimal = Decimal("7")


@dataclass(frozen=True)
class EndOfLifePolicy:
    """Thresholds for end-of-life notifications."""

    fully_depreciated_percent: Decimal = Decimal("95")
    approaching_age_years: Decimal = Decimal("8")
    past_life_age_years: Decimal = Decimal("10")
    recipient_roles: tuple[str, ...] = ("SUPER_ADMIN", "ADMIN", "ASSET_MANAGER")


@dataclass(frozen=True)
class LifecycleConfig:
    """Root configuration object for the asset lifecycle."""

    config_id: str = "default"
    version: int = 1
    transmittal_prefix: str = "TN"
    transfer_prefix: str = "TR"
    approval: ApprovalPolicy = ApprovalPolicy()
    retirement: RetirementPolicy = RetirementPolicy()
    end_of_life: EndOfLifePolicy = EndOfLifePolicy()
    checksum: str | None = None
