"""
Pytest fixtures for the assetflow test suite.

Provides:
- File-backed SQLite engines built with the kernel engine factory
  (BEGIN IMMEDIATE locking, same code path as production)
- Principals, identity provider and a recording notification dispatcher
- Asset / deployment factories that go through the lifecycle service

Environment Variables:
- DATABASE_URL: optional PostgreSQL URL for tests marked ``postgres``.
  When unset those tests are skipped.
"""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID

import pytest
from sqlalchemy.orm import Session, sessionmaker

from assetflow_config import get_active_config
from assetflow_engines.depreciation import DepreciationMethod
from assetflow_kernel.db.engine import build_engine
from assetflow_kernel.domain.clock import DeterministicClock
from assetflow_kernel.domain.permissions import PermissionSet, Principal
from assetflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from assetflow_modules._orm_registry import create_all_tables
from assetflow_modules.assets.models import (
    AssetRegistration,
    DeploymentApproval,
    DeploymentRequest,
)
from assetflow_modules.assets.service import AssetLifecycleService
from assetflow_services.notifications import StaticIdentityProvider

TEST_BUSINESS_UNIT_ID = UUID("00000000-0000-4000-a000-000000000001")
OTHER_BUSINESS_UNIT_ID = UUID("00000000-0000-4000-a000-000000000002")
TEST_EMPLOYEE_ID = UUID("00000000-0000-4000-a000-000000000010")
TEST_ACTOR_ID = UUID("00000000-0000-4000-a000-000000000020")
TEST_APPROVER_ID = UUID("00000000-0000-4000-a000-000000000021")
TEST_MANAGER_ID = UUID("00000000-0000-4000-a000-000000000022")

FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture assetflow logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.approve_deployment(...)
            logs = captured_logs()
            assert any(r["message"] == "lifecycle_transition" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("assetflow")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


def pytest_collection_modifyitems(config, items):
    if os.environ.get("DATABASE_URL"):
        return
    skip_pg = pytest.mark.skip(reason="DATABASE_URL not set")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "assets.db"


@pytest.fixture
def engine(db_path):
    """Fresh SQLite database per test, full schema created."""
    eng = build_engine(f"sqlite:///{db_path}", busy_timeout=10.0)
    create_all_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Session:
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Time, config, principals
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def config():
    return get_active_config()


@pytest.fixture
def requester():
    """Asset manager of the test business unit; may not approve."""
    return Principal(
        actor_id=TEST_ACTOR_ID,
        role_code="ASSET_MANAGER",
        business_unit_id=TEST_BUSINESS_UNIT_ID,
        display_name="Requester",
    )


@pytest.fixture
def approver():
    """Accounting user of the test business unit."""
    return Principal(
        actor_id=TEST_APPROVER_ID,
        role_code="ACCOUNTING",
        business_unit_id=TEST_BUSINESS_UNIT_ID,
        permissions=PermissionSet.of("deployments:approve"),
        display_name="Approver",
    )


@pytest.fixture
def notification_recipient():
    return Principal(
        actor_id=TEST_MANAGER_ID,
        role_code="ADMIN",
        business_unit_id=TEST_BUSINESS_UNIT_ID,
        display_name="Admin",
    )


@pytest.fixture
def identity(approver, requester, notification_recipient):
    """Identity provider acting as the approver by default."""
    return StaticIdentityProvider(
        approver, directory=(approver, requester, notification_recipient),
    )


class RecordingDispatcher:
    """NotificationDispatcher that keeps every notification in memory."""

    def __init__(self):
        self.sent = []

    def dispatch(self, notification):
        self.sent.append(notification)

    def of_type(self, notification_type):
        return [n for n in self.sent if n.type == notification_type]


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def service(session, identity, config, deterministic_clock, dispatcher):
    return AssetLifecycleService(
        session,
        identity,
        config=config,
        clock=deterministic_clock,
        dispatcher=dispatcher,
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def register_asset(service, deterministic_clock):
    """Register an asset through the service and return its id."""
    counter = iter(range(1, 10_000))

    def _register(
        purchase_price: str | None = "120000",
        salvage_value: str = "10000",
        useful_life_months: int | None = 5,
        method: DepreciationMethod = DepreciationMethod.STRAIGHT_LINE,
        purchase_date=None,
        total_expected_units: str | None = None,
        item_code: str | None = None,
        business_unit_id: UUID = TEST_BUSINESS_UNIT_ID,
    ) -> UUID:
        result = service.register_asset(
            business_unit_id,
            AssetRegistration(
                item_code=item_code or f"LAPTOP-{next(counter):04d}",
                description="Test laptop",
                purchase_price=Decimal(purchase_price) if purchase_price is not None else None,
                salvage_value=Decimal(salvage_value),
                useful_life_months=useful_life_months,
                depreciation_method=method,
                purchase_date=purchase_date or deterministic_clock.today(),
                total_expected_units=(
                    Decimal(total_expected_units) if total_expected_units is not None else None
                ),
            ),
        )
        assert result.success, result.message
        return result["asset_id"]

    return _register


@pytest.fixture
def request_deployment(service):
    """Create a pending deployment for an asset and return its id."""

    def _request(asset_id: UUID, employee_id: UUID = TEST_EMPLOYEE_ID) -> UUID:
        result = service.request_deployment(
            TEST_BUSINESS_UNIT_ID,
            DeploymentRequest(asset_id=asset_id, employee_id=employee_id),
        )
        assert result.success, result.message
        return result["deployment_id"]

    return _request


@pytest.fixture
def deployed_asset(register_asset, request_deployment, service):
    """(asset_id, deployment_id) for an asset that is currently DEPLOYED."""
    asset_id = register_asset()
    deployment_id = request_deployment(asset_id)
    result = service.approve_deployment(DeploymentApproval(deployment_id))
    assert result.success, result.message
    return asset_id, deployment_id
