"""
Tests for engine/consistency.py

The checker must pass on stores produced by the engine and flag stores that
were corrupted by hand.
"""

from datetime import datetime, timezone

import pytest

from assetflow.domain.enums import AssetStatus, AssetType, Decision, WorkflowStatus, WorkflowType
from assetflow.domain.models import Asset, MaintenanceChange, Workflow, WorkflowIntent
from assetflow.engine.consistency import check_store, find_duplicate_pending, validate

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _asset(asset_id="SRV-001", active_workflow_id=None) -> Asset:
    return Asset(
        asset_id=asset_id,
        name="Web Server 01",
        type=AssetType.SERVER,
        status=AssetStatus.ONLINE,
        created_at=T0,
        updated_at=T0,
        active_workflow_id=active_workflow_id,
    )


def _workflow(workflow_id="WF-1", asset_id="SRV-001", status=WorkflowStatus.PENDING) -> Workflow:
    return Workflow(
        workflow_id=workflow_id,
        type=WorkflowType.MAINTENANCE,
        asset_id=asset_id,
        requested_change=MaintenanceChange(),
        requester_id="u-requester",
        status=status,
        created_at=T0,
        updated_at=T0,
    )


class TestValidate:

    def test_locked_by_pending_workflow(self):
        assert validate(_asset(active_workflow_id="WF-1"), _workflow()) == []

    def test_unlocked_with_decided_workflow(self):
        assert validate(_asset(), _workflow(status=WorkflowStatus.APPROVED)) == []

    def test_unrelated_pair(self):
        assert validate(_asset(), _workflow(asset_id="SRV-002")) == []

    def test_locked_by_decided_workflow(self):
        problems = validate(_asset(active_workflow_id="WF-1"), _workflow(status=WorkflowStatus.REJECTED))
        assert len(problems) == 1
        assert "rejected" in problems[0]

    def test_pending_without_lock(self):
        problems = validate(_asset(), _workflow())
        assert len(problems) == 1
        assert "pending" in problems[0]

    def test_locked_by_workflow_of_another_asset(self):
        problems = validate(_asset(active_workflow_id="WF-1"), _workflow(asset_id="SRV-002"))
        assert len(problems) == 1
        assert "SRV-002" in problems[0]


class TestFindDuplicatePending:

    def test_reports_assets_with_two_pending(self):
        workflows = [
            _workflow("WF-1", "SRV-001"),
            _workflow("WF-2", "SRV-001"),
            _workflow("WF-3", "SRV-002"),
            _workflow("WF-4", "SRV-002", status=WorkflowStatus.APPROVED),
        ]
        assert find_duplicate_pending(workflows) == ["SRV-001"]

    def test_empty(self):
        assert find_duplicate_pending([]) == []


class TestCheckStore:

    def test_engine_built_store_is_consistent(self, engine, store, make_asset, requester, approver):
        make_asset("SRV-001")
        make_asset("SRV-002")
        decided = engine.submit(
            WorkflowIntent(asset_id="SRV-001", workflow_type=WorkflowType.MAINTENANCE), requester
        )
        engine.decide(decided.workflow_id, Decision.APPROVE, approver)
        engine.submit(WorkflowIntent(asset_id="SRV-002", workflow_type=WorkflowType.DECOMMISSION), requester)

        report = check_store(store)
        assert report.ok
        assert report.assets_checked == 2
        assert report.workflows_checked == 1

    def test_flags_lock_to_missing_workflow(self, store):
        with store.transaction("SRV-001") as tx:
            tx.insert_asset(_asset(active_workflow_id="WF-ghost"))

        report = check_store(store)
        assert not report.ok
        assert any("missing workflow WF-ghost" in v for v in report.violations)

    def test_flags_pending_without_lock(self, store):
        with store.transaction("SRV-001") as tx:
            tx.insert_asset(_asset())
            tx.insert_workflow(_workflow())

        report = check_store(store)
        assert not report.ok
        assert len(report.violations) == 1

    def test_flags_lock_to_decided_workflow(self, store):
        with store.transaction("SRV-001") as tx:
            tx.insert_asset(_asset(active_workflow_id="WF-1"))
            tx.insert_workflow(_workflow(status=WorkflowStatus.APPROVED))

        report = check_store(store)
        assert not report.ok
        assert report.workflows_checked == 0

    def test_flags_duplicate_pending(self, store):
        with store.transaction("SRV-001") as tx:
            tx.insert_asset(_asset(active_workflow_id="WF-1"))
            tx.insert_workflow(_workflow("WF-1"))
        # Bypass the store's pending guard to simulate a corrupted backend
        store._workflows["WF-2"] = _workflow("WF-2")

        report = check_store(store)
        assert report.duplicate_pending == ["SRV-001"]
        assert not report.ok
