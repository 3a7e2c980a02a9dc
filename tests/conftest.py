"""
Pytest Configuration and Fixtures

Shared fixtures for all tests. The process is pointed at the in-memory store
and a throwaway log directory before any application module is imported.
"""

import os
import tempfile

os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOGS_PATH", tempfile.mkdtemp(prefix="assetflow-logs-"))
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from assetflow.domain.enums import AssetStatus, AssetType
from assetflow.domain.models import ActorContext, AssetCreate
from assetflow.engine.engine import WorkflowEngine
from assetflow.engine.permission_guard import PermissionGuard
from assetflow.repositories.memory_store import InMemoryLifecycleStore
from assetflow.utils.health import degraded_signal


@pytest.fixture(autouse=True)
def reset_degraded_signal():
    """Every test starts with a healthy process-wide signal."""
    degraded_signal.clear()
    yield
    degraded_signal.clear()


@pytest.fixture
def store():
    """Fresh in-memory store with transactional audit."""
    return InMemoryLifecycleStore(lock_timeout_seconds=5.0)


@pytest.fixture
def guard():
    return PermissionGuard(approver_roles=["approver", "admin"], allow_self_approval=False)


@pytest.fixture
def engine(store, guard):
    """Engine requiring onboarding approval for new assets."""
    return WorkflowEngine(
        store,
        permission_guard=guard,
        conflict_retries=3,
        require_onboarding_approval=True
    )


@pytest.fixture
def requester():
    return ActorContext(user_id="u-requester", display_name="Rita Requester", roles=["operator"])


@pytest.fixture
def approver():
    return ActorContext(user_id="u-approver", display_name="Alex Approver", roles=["approver"])


@pytest.fixture
def outsider():
    """Identified user without any approver role."""
    return ActorContext(user_id="u-outsider", display_name="Olly Outsider", roles=["viewer"])


@pytest.fixture
def make_asset(store, requester):
    """Factory registering an asset directly in a given status, skipping onboarding."""
    direct = WorkflowEngine(store, require_onboarding_approval=False)

    def _make(asset_id="SRV-001", status=AssetStatus.ONLINE,
              asset_type=AssetType.SERVER, name="Web Server 01"):
        asset, _ = direct.register_asset(
            AssetCreate(
                asset_id=asset_id,
                name=name,
                type=asset_type,
                location="Data Center A - Rack 12",
                initial_status=status
            ),
            requester
        )
        return asset

    return _make


@pytest.fixture
def seeded_asset(make_asset):
    """SRV-001, online, unlocked."""
    return make_asset()
