"""Consistency Checker - lock pointer and pending-uniqueness checks

An asset points at a workflow through ``active_workflow_id`` exactly when
that workflow is pending and targets the asset. At most one pending
workflow references any asset.
"""
from collections import Counter
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..domain.enums import WorkflowStatus
from ..domain.models import Asset, Workflow, WorkflowFilter
from ..repositories.base import LifecycleStore
from ..utils.logger import get_logger

logger = get_logger(__name__)


def validate(asset: Asset, workflow: Workflow) -> List[str]:
    """
    Check one asset/workflow pair.

    Returns:
        Violation messages; empty when the pair is consistent
    """
    points_at = asset.active_workflow_id == workflow.workflow_id
    should_point = workflow.is_pending and workflow.asset_id == asset.asset_id

    if points_at and not should_point:
        if workflow.asset_id != asset.asset_id:
            return [
                f"Asset {asset.asset_id} is locked by workflow {workflow.workflow_id} "
                f"which targets {workflow.asset_id}"
            ]
        return [
            f"Asset {asset.asset_id} is locked by workflow {workflow.workflow_id} "
            f"which is {workflow.status.value}"
        ]
    if should_point and not points_at:
        return [
            f"Workflow {workflow.workflow_id} is pending but asset {asset.asset_id} "
            f"is locked by {asset.active_workflow_id or 'nothing'}"
        ]
    return []


def find_duplicate_pending(workflows: Iterable[Workflow]) -> List[str]:
    """Asset ids referenced by more than one pending workflow"""
    counts = Counter(w.asset_id for w in workflows if w.status == WorkflowStatus.PENDING)
    return sorted(asset_id for asset_id, count in counts.items() if count > 1)


class ConsistencyReport(BaseModel):
    """Result of a full store scan"""
    assets_checked: int = 0
    workflows_checked: int = 0
    violations: List[str] = Field(default_factory=list)
    duplicate_pending: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations and not self.duplicate_pending


def check_store(store: LifecycleStore) -> ConsistencyReport:
    """Scan every asset and pending workflow in a store"""
    assets: Dict[str, Asset] = {a.asset_id: a for a in store.list_assets(limit=0)}
    pending = store.list_workflows(WorkflowFilter(status=WorkflowStatus.PENDING), limit=0)
    report = ConsistencyReport(assets_checked=len(assets), workflows_checked=len(pending))

    # Lock pointers must reference an existing pending workflow for the same asset
    for asset in assets.values():
        if not asset.active_workflow_id:
            continue
        workflow: Optional[Workflow] = store.get_workflow(asset.active_workflow_id)
        if workflow is None:
            report.violations.append(
                f"Asset {asset.asset_id} is locked by missing workflow {asset.active_workflow_id}"
            )
            continue
        report.violations.extend(validate(asset, workflow))

    # Every pending workflow must hold the lock on its asset
    for workflow in pending:
        asset = assets.get(workflow.asset_id)
        if asset is None:
            report.violations.append(
                f"Workflow {workflow.workflow_id} references missing asset {workflow.asset_id}"
            )
            continue
        if asset.active_workflow_id == workflow.workflow_id:
            continue
        report.violations.extend(validate(asset, workflow))

    report.duplicate_pending = find_duplicate_pending(pending)

    if report.ok:
        logger.info(
            f"Consistency check passed: {report.assets_checked} assets, "
            f"{report.workflows_checked} pending workflows"
        )
    else:
        logger.warning(
            f"Consistency check found {len(report.violations)} violations and "
            f"{len(report.duplicate_pending)} duplicated pending assets"
        )
    return report
