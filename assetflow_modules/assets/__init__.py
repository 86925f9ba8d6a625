"""
Asset Lifecycle Module (``assetflow_modules.assets``).

Responsibility
--------------
Asset registration, deployment to employees with accounting approval,
returns, maintenance/lost/damaged status changes, retirement, disposal,
units-of-production usage, and depreciation read models.

Architecture position
---------------------
**Modules layer** -- domain models, ORM models, workflows with their
guards, the lifecycle state machine, selectors, and the
``AssetLifecycleService`` facade (``service.py``).  Mutations run through
``assetflow_services.TransactionCoordinator``; schedules and book values
come from ``assetflow_engines``.

Failure modes
-------------
* The facade never raises for business errors; it returns
  ``OperationResult(success=False, message=...)``.
"""

from assetflow_modules.assets.models import (
    Asset,
    AssetStatus,
    Deployment,
    DeploymentStatus,
    Disposal,
    Retirement,
)

__all__ = [
    "Asset",
    "AssetStatus",
    "Deployment",
    "DeploymentStatus",
    "Disposal",
    "Retirement",
]
