"""
Lifecycle rule tests.

Every (current, target) asset status pair is checked against the edge table,
plus the onboarding and toggle rules.
"""

from datetime import datetime, timezone

import pytest

from assetflow.domain.enums import AssetStatus, AssetType, WorkflowStatus, WorkflowType
from assetflow.domain.errors import IllegalTransitionError, InvalidStateError, ValidationError
from assetflow.domain.models import (
    Asset, DecommissionChange, MaintenanceChange, OnboardingChange, StatusChange, Workflow
)
from assetflow.domain.transitions import (
    ASSET_TRANSITIONS,
    apply_change,
    can_transition_workflow,
    default_change,
    diff_assets,
    ensure_pending,
    ensure_transition_allowed,
    finalize_workflow,
    resolve_change,
    target_status,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

_EXPECTED_EDGES = {
    AssetStatus.OFFLINE: {AssetStatus.ONLINE, AssetStatus.MAINTENANCE, AssetStatus.DECOMMISSIONED},
    AssetStatus.ONLINE: {AssetStatus.OFFLINE, AssetStatus.MAINTENANCE, AssetStatus.DECOMMISSIONED},
    AssetStatus.MAINTENANCE: {AssetStatus.ONLINE, AssetStatus.OFFLINE, AssetStatus.DECOMMISSIONED},
    AssetStatus.DECOMMISSIONED: set(),
}


def _asset(status=AssetStatus.ONLINE, onboarded_at=NOW, **kwargs) -> Asset:
    return Asset(
        asset_id="SRV-001",
        name="Web Server 01",
        type=AssetType.SERVER,
        status=status,
        created_at=NOW,
        updated_at=NOW,
        onboarded_at=onboarded_at,
        **kwargs
    )


def _workflow(status=WorkflowStatus.PENDING) -> Workflow:
    return Workflow(
        workflow_id="WF-000000000001",
        type=WorkflowType.MAINTENANCE,
        asset_id="SRV-001",
        requested_change=MaintenanceChange(),
        requester_id="u-requester",
        status=status,
        created_at=NOW,
        updated_at=NOW,
    )


def _change_for(target: AssetStatus):
    if target == AssetStatus.MAINTENANCE:
        return MaintenanceChange()
    if target == AssetStatus.DECOMMISSIONED:
        return DecommissionChange()
    return StatusChange(status=target)


class TestAssetTransitionTable:

    def test_table_matches_expected_edges(self):
        assert {k: set(v) for k, v in ASSET_TRANSITIONS.items()} == _EXPECTED_EDGES

    @pytest.mark.parametrize("current", list(AssetStatus))
    @pytest.mark.parametrize("target", list(AssetStatus))
    def test_every_pair(self, current, target):
        asset = _asset(status=current)
        change = _change_for(target)
        if target in _EXPECTED_EDGES[current]:
            assert ensure_transition_allowed(asset, change) == target
        else:
            with pytest.raises(IllegalTransitionError):
                ensure_transition_allowed(asset, change)

    def test_illegal_transition_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            ensure_transition_allowed(_asset(status=AssetStatus.MAINTENANCE), MaintenanceChange())
        assert exc_info.value.error_code == "ILLEGAL_TRANSITION"
        assert exc_info.value.details["current_status"] == "maintenance"


class TestStatusToggle:

    def test_toggle_online_goes_offline(self):
        assert target_status(_asset(status=AssetStatus.ONLINE), StatusChange()) == AssetStatus.OFFLINE

    def test_toggle_offline_goes_online(self):
        assert target_status(_asset(status=AssetStatus.OFFLINE), StatusChange()) == AssetStatus.ONLINE

    def test_toggle_from_maintenance_returns_online(self):
        assert target_status(_asset(status=AssetStatus.MAINTENANCE), StatusChange()) == AssetStatus.ONLINE

    def test_status_change_rejects_maintenance_target(self):
        with pytest.raises(ValueError):
            StatusChange(status=AssetStatus.MAINTENANCE)


class TestOnboarding:

    def test_allowed_from_offline_when_never_onboarded(self):
        asset = _asset(status=AssetStatus.OFFLINE, onboarded_at=None)
        assert ensure_transition_allowed(asset, OnboardingChange()) == AssetStatus.ONLINE

    def test_rejected_when_already_onboarded(self):
        asset = _asset(status=AssetStatus.OFFLINE, onboarded_at=NOW)
        with pytest.raises(IllegalTransitionError):
            ensure_transition_allowed(asset, OnboardingChange())

    def test_rejected_when_not_offline(self):
        asset = _asset(status=AssetStatus.ONLINE, onboarded_at=None)
        with pytest.raises(IllegalTransitionError):
            ensure_transition_allowed(asset, OnboardingChange())

    def test_apply_sets_onboarded_at_and_clears_lock(self):
        asset = _asset(status=AssetStatus.OFFLINE, onboarded_at=None, active_workflow_id="WF-1")
        updated = apply_change(asset, OnboardingChange(), NOW)
        assert updated.status == AssetStatus.ONLINE
        assert updated.onboarded_at == NOW
        assert updated.active_workflow_id is None
        # Original untouched
        assert asset.status == AssetStatus.OFFLINE


class TestRequestedChanges:

    @pytest.mark.parametrize("workflow_type", list(WorkflowType))
    def test_default_change_kind_matches_type(self, workflow_type):
        assert default_change(workflow_type).kind == workflow_type.value

    def test_resolve_keeps_matching_change(self):
        change = StatusChange(status=AssetStatus.OFFLINE)
        assert resolve_change(WorkflowType.STATUS_CHANGE, change) is change

    def test_resolve_rejects_mismatched_kind(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve_change(WorkflowType.MAINTENANCE, DecommissionChange())
        assert exc_info.value.details["requested_change_kind"] == "decommission"

    def test_workflow_model_rejects_mismatched_kind(self):
        with pytest.raises(ValueError):
            Workflow(
                workflow_id="WF-1",
                type=WorkflowType.MAINTENANCE,
                asset_id="SRV-001",
                requested_change=DecommissionChange(),
                requester_id="u-requester",
                created_at=NOW,
                updated_at=NOW,
            )

    def test_union_is_discriminated_by_kind(self):
        workflow = Workflow.model_validate({
            "workflow_id": "WF-1",
            "type": "decommission",
            "asset_id": "SRV-001",
            "requested_change": {"kind": "decommission", "status": "decommissioned"},
            "requester_id": "u-requester",
            "created_at": NOW,
            "updated_at": NOW,
        })
        assert isinstance(workflow.requested_change, DecommissionChange)


class TestWorkflowStateMachine:

    def test_pending_moves_to_terminal_states(self):
        assert can_transition_workflow(WorkflowStatus.PENDING, WorkflowStatus.APPROVED)
        assert can_transition_workflow(WorkflowStatus.PENDING, WorkflowStatus.REJECTED)

    @pytest.mark.parametrize("terminal", [WorkflowStatus.APPROVED, WorkflowStatus.REJECTED])
    @pytest.mark.parametrize("target", list(WorkflowStatus))
    def test_no_edges_leave_terminal_states(self, terminal, target):
        assert not can_transition_workflow(terminal, target)

    def test_finalize_records_decision(self):
        decided = finalize_workflow(
            _workflow(), WorkflowStatus.APPROVED, "u-approver", "Alex", "ok", NOW
        )
        assert decided.status == WorkflowStatus.APPROVED
        assert decided.approver_id == "u-approver"
        assert decided.decided_at == NOW
        assert decided.comments == "ok"

    def test_finalize_terminal_raises_invalid_state(self):
        with pytest.raises(InvalidStateError):
            finalize_workflow(
                _workflow(status=WorkflowStatus.REJECTED),
                WorkflowStatus.APPROVED, "u-approver", "Alex", None, NOW
            )

    def test_ensure_pending(self):
        ensure_pending(_workflow())
        with pytest.raises(InvalidStateError):
            ensure_pending(_workflow(status=WorkflowStatus.APPROVED))


class TestDiffAssets:

    def test_reports_changed_fields_only(self):
        before = _asset(status=AssetStatus.ONLINE, active_workflow_id="WF-1")
        after = before.model_copy(update={"status": AssetStatus.MAINTENANCE, "active_workflow_id": None})
        changes = {c.field: (c.old_value, c.new_value) for c in diff_assets(before, after)}
        assert changes == {
            "status": ("online", "maintenance"),
            "active_workflow_id": ("WF-1", None),
        }

    def test_identical_assets_have_no_changes(self):
        asset = _asset()
        assert diff_assets(asset, asset.model_copy()) == []
