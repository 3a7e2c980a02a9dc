"""Lifecycle Rules - asset and workflow state machines

Asset status only moves along the edges in ``ASSET_TRANSITIONS`` and only as
the effect of an approved workflow. Workflow status moves from pending to
exactly one terminal state.
"""
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional

from .enums import AssetStatus, WorkflowStatus, WorkflowType
from .errors import IllegalTransitionError, InvalidStateError, ValidationError
from .models import (
    Asset, FieldChange, Workflow,
    OnboardingChange, StatusChange, MaintenanceChange, DecommissionChange,
)


ASSET_TRANSITIONS: Dict[AssetStatus, FrozenSet[AssetStatus]] = {
    AssetStatus.OFFLINE: frozenset({
        AssetStatus.ONLINE, AssetStatus.MAINTENANCE, AssetStatus.DECOMMISSIONED
    }),
    AssetStatus.ONLINE: frozenset({
        AssetStatus.OFFLINE, AssetStatus.MAINTENANCE, AssetStatus.DECOMMISSIONED
    }),
    AssetStatus.MAINTENANCE: frozenset({
        AssetStatus.ONLINE, AssetStatus.OFFLINE, AssetStatus.DECOMMISSIONED
    }),
    AssetStatus.DECOMMISSIONED: frozenset(),
}

WORKFLOW_TRANSITIONS: Dict[WorkflowStatus, FrozenSet[WorkflowStatus]] = {
    WorkflowStatus.PENDING: frozenset({WorkflowStatus.APPROVED, WorkflowStatus.REJECTED}),
    WorkflowStatus.APPROVED: frozenset(),
    WorkflowStatus.REJECTED: frozenset(),
}

# Statuses an asset may be created in when onboarding approval is not required
INITIAL_STATUSES = frozenset({AssetStatus.ONLINE, AssetStatus.OFFLINE})

# Fields compared when describing what an approval changed
TRACKED_FIELDS = (
    "name", "type", "status", "location", "description", "owner", "department",
    "ip_address", "purchase_price", "annual_cost", "currency", "tags",
    "onboarded_at", "active_workflow_id",
)


def default_change(workflow_type: WorkflowType):
    """Canonical requested change for a workflow type"""
    if workflow_type == WorkflowType.ONBOARDING:
        return OnboardingChange()
    elif workflow_type == WorkflowType.STATUS_CHANGE:
        return StatusChange()
    elif workflow_type == WorkflowType.MAINTENANCE:
        return MaintenanceChange()
    elif workflow_type == WorkflowType.DECOMMISSION:
        return DecommissionChange()
    raise ValidationError(f"Unsupported workflow type: {workflow_type}")


def resolve_change(workflow_type: WorkflowType, requested_change=None):
    """Fill in the default change and check it agrees with the workflow type"""
    if requested_change is None:
        return default_change(workflow_type)
    if requested_change.kind != workflow_type.value:
        raise ValidationError(
            "Requested change does not match workflow type",
            details={
                "workflow_type": workflow_type.value,
                "requested_change_kind": requested_change.kind,
            }
        )
    return requested_change


def target_status(asset: Asset, change) -> AssetStatus:
    """Status the asset will have once ``change`` is applied"""
    if isinstance(change, OnboardingChange):
        return AssetStatus.ONLINE
    elif isinstance(change, StatusChange):
        if change.status is not None:
            return change.status
        # Toggle; maintenance returns to service
        if asset.status == AssetStatus.ONLINE:
            return AssetStatus.OFFLINE
        return AssetStatus.ONLINE
    elif isinstance(change, MaintenanceChange):
        return AssetStatus.MAINTENANCE
    elif isinstance(change, DecommissionChange):
        return AssetStatus.DECOMMISSIONED
    raise ValidationError(f"Unsupported requested change: {type(change).__name__}")


def ensure_transition_allowed(asset: Asset, change) -> AssetStatus:
    """
    Check that ``change`` is a legal move for ``asset``.

    Returns:
        The target status

    Raises:
        IllegalTransitionError: if the move is not allowed
    """
    target = target_status(asset, change)
    details = {
        "asset_id": asset.asset_id,
        "current_status": asset.status.value,
        "target_status": target.value,
    }

    if asset.is_decommissioned:
        raise IllegalTransitionError(
            f"Asset {asset.asset_id} is decommissioned", details=details
        )

    if isinstance(change, OnboardingChange):
        if asset.onboarded_at is not None or asset.status != AssetStatus.OFFLINE:
            raise IllegalTransitionError(
                f"Asset {asset.asset_id} has already been onboarded", details=details
            )

    if target not in ASSET_TRANSITIONS[asset.status]:
        raise IllegalTransitionError(
            f"Asset {asset.asset_id} cannot move from {asset.status.value} to {target.value}",
            details=details
        )
    return target


def apply_change(asset: Asset, change, now: datetime) -> Asset:
    """Return a copy of ``asset`` with ``change`` applied and the lock released"""
    target = ensure_transition_allowed(asset, change)
    updates = {
        "status": target,
        "updated_at": now,
        "active_workflow_id": None,
    }
    if isinstance(change, OnboardingChange):
        updates["onboarded_at"] = now
    return asset.model_copy(update=updates)


def release_lock(asset: Asset, now: datetime) -> Asset:
    """Return a copy of ``asset`` with the workflow lock cleared"""
    return asset.model_copy(update={"active_workflow_id": None, "updated_at": now})


def ensure_pending(workflow: Workflow) -> None:
    """Raise InvalidStateError unless the workflow can still be decided"""
    if not workflow.is_pending:
        raise InvalidStateError(
            f"Workflow {workflow.workflow_id} is already {workflow.status.value}",
            details={
                "workflow_id": workflow.workflow_id,
                "current_status": workflow.status.value,
            }
        )


def can_transition_workflow(current: WorkflowStatus, new: WorkflowStatus) -> bool:
    return new in WORKFLOW_TRANSITIONS[current]


def finalize_workflow(
    workflow: Workflow,
    status: WorkflowStatus,
    approver_id: str,
    approver_name: str,
    comments: Optional[str],
    now: datetime,
) -> Workflow:
    """Return a copy of ``workflow`` moved to a terminal status"""
    if not can_transition_workflow(workflow.status, status):
        ensure_pending(workflow)
        raise ValidationError(f"Workflow cannot move to {status.value}")
    return workflow.model_copy(update={
        "status": status,
        "approver_id": approver_id,
        "approver_name": approver_name,
        "comments": comments,
        "decided_at": now,
        "updated_at": now,
    })


def diff_assets(before: Asset, after: Asset) -> List[FieldChange]:
    """Field-by-field differences between two asset versions"""
    old = before.snapshot()
    new = after.snapshot()
    return [
        FieldChange(field=name, old_value=old.get(name), new_value=new.get(name))
        for name in TRACKED_FIELDS
        if old.get(name) != new.get(name)
    ]
