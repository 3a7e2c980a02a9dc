"""
Workflow Engine - The Brain of the System

This module contains the WorkflowEngine class that validates, creates and
finalizes lifecycle workflows for assets.

=============================================================================
MODULE STRUCTURE
=============================================================================

1. INITIALIZATION
   - Constructor with store, guard and audit writer dependencies

2. SUBMISSION
   - submit: Create a pending workflow and lock the asset
   - delete_asset: Decommission request sugar over submit

3. DECISIONS
   - decide: Approve or reject a pending workflow

4. REGISTRATION
   - register_asset: Create an asset, with or without an onboarding workflow

5. READS
   - get_asset, get_workflow, list_pending, list_workflows, count_workflows

=============================================================================
CONCURRENCY
=============================================================================

Every mutation runs inside ``store.transaction(asset_id)``. The first write
of each unit is the gating compare-and-swap: the asset lock for submit and
the pending workflow for decide. A ConcurrencyError re-runs the whole
read-check-write, so a lost race surfaces as AssetLockedError or
InvalidStateError on the next attempt.

=============================================================================
"""

from typing import Callable, List, Optional, Tuple, TypeVar, Union

from ..config.settings import settings
from ..domain.enums import AssetStatus, AuditAction, Decision, WorkflowStatus, WorkflowType
from ..domain.errors import (
    AlreadyExistsError, AssetLockedError, AssetNotFoundError, ConcurrencyError,
    TransientStoreError, ValidationError, WorkflowNotFoundError
)
from ..domain.models import (
    ActorContext, Asset, AssetCreate, DecommissionChange, OnboardingChange,
    Workflow, WorkflowFilter, WorkflowIntent
)
from ..domain.transitions import (
    INITIAL_STATUSES, apply_change, ensure_pending, ensure_transition_allowed,
    finalize_workflow, release_lock, resolve_change
)
from ..repositories.base import LifecycleStore
from ..utils.idgen import generate_workflow_id
from ..utils.logger import get_logger
from ..utils.time import utc_now
from .audit_writer import AuditWriter
from .permission_guard import PermissionGuard

logger = get_logger(__name__)

T = TypeVar("T")


class WorkflowEngine:
    """
    The Workflow Engine - Central orchestrator for asset lifecycle changes

    Responsibilities:
    - Turn lifecycle intents into pending workflows
    - Enforce at most one in-flight workflow per asset
    - Apply approved changes, workflow finalization and audit as one unit
    - Enforce approver permissions via PermissionGuard

    The engine carries no mutable state; all state lives in the store.
    """

    def __init__(
        self,
        store: LifecycleStore,
        permission_guard: Optional[PermissionGuard] = None,
        audit_writer: Optional[AuditWriter] = None,
        conflict_retries: Optional[int] = None,
        require_onboarding_approval: Optional[bool] = None
    ):
        self.store = store
        self.permission_guard = permission_guard or PermissionGuard()
        self.audit_writer = audit_writer or AuditWriter()
        self.conflict_retries = max(
            0, settings.engine_conflict_retries if conflict_retries is None else conflict_retries
        )
        self.require_onboarding_approval = (
            settings.require_onboarding_approval
            if require_onboarding_approval is None
            else require_onboarding_approval
        )

    def _run_with_retries(self, operation: str, unit: Callable[[], T], **log_extra) -> T:
        """Run a transactional unit, re-running it on optimistic conflicts"""
        attempts = self.conflict_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return unit()
            except ConcurrencyError as e:
                logger.warning(
                    f"{operation}: concurrent write conflict (attempt {attempt}/{attempts})",
                    extra=dict(log_extra, error_code=e.error_code)
                )
        raise TransientStoreError(
            f"{operation} could not complete due to sustained contention",
            details=dict(log_extra, attempts=attempts)
        )

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(self, intent: WorkflowIntent, actor: ActorContext) -> Workflow:
        """
        Create a pending workflow for an asset

        Algorithm:
        1. Resolve the requested change (defaults per workflow type)
        2. Inside one asset transaction:
           - asset must exist and be unlocked
           - target status must be legal from the current status
           - lock the asset (gating write)
           - insert the pending workflow
           - stage the workflow_submitted audit entry

        Raises:
            ValidationError: change does not match the workflow type
            AssetNotFoundError: asset does not exist
            AssetLockedError: asset already has a pending workflow
            IllegalTransitionError: target status not reachable
        """
        change = resolve_change(intent.workflow_type, intent.requested_change)

        def unit() -> Workflow:
            with self.store.transaction(intent.asset_id) as tx:
                asset = tx.get_asset(intent.asset_id)
                if asset is None:
                    raise AssetNotFoundError(
                        f"Asset {intent.asset_id} not found",
                        details={"asset_id": intent.asset_id}
                    )
                if asset.is_locked:
                    raise AssetLockedError(
                        f"Asset {asset.asset_id} already has a pending workflow",
                        details={"asset_id": asset.asset_id, "workflow_id": asset.active_workflow_id}
                    )
                ensure_transition_allowed(asset, change)

                now = utc_now()
                workflow = Workflow(
                    workflow_id=generate_workflow_id(),
                    type=intent.workflow_type,
                    asset_id=asset.asset_id,
                    asset_name=asset.name,
                    requested_change=change,
                    requester_id=actor.user_id,
                    requester_name=actor.display_name,
                    status=WorkflowStatus.PENDING,
                    reason=intent.reason,
                    priority=intent.priority,
                    created_at=now,
                    updated_at=now
                )

                locked = tx.put_asset(
                    asset.model_copy(update={"active_workflow_id": workflow.workflow_id, "updated_at": now}),
                    asset.version
                )
                workflow = tx.insert_workflow(workflow)
                self.audit_writer.write_submitted(tx, workflow, asset, locked, actor)
                return workflow

        workflow = self._run_with_retries("submit", unit, asset_id=intent.asset_id)
        logger.info(
            f"Submitted {workflow.type.value} workflow {workflow.workflow_id} for {workflow.asset_id}",
            extra={
                "workflow_id": workflow.workflow_id,
                "asset_id": workflow.asset_id,
                "actor_id": actor.user_id,
                "action": "submit",
            }
        )
        return workflow

    def delete_asset(
        self,
        asset_id: str,
        actor: ActorContext,
        reason: str = "Asset decommission requested"
    ) -> Workflow:
        """Request decommissioning; the asset row is never removed"""
        return self.submit(
            WorkflowIntent(
                asset_id=asset_id,
                workflow_type=WorkflowType.DECOMMISSION,
                requested_change=DecommissionChange(),
                reason=reason
            ),
            actor
        )

    # =========================================================================
    # Decisions
    # =========================================================================

    def decide(
        self,
        workflow_id: str,
        decision: Union[Decision, str],
        actor: ActorContext,
        comments: Optional[str] = None
    ) -> Tuple[Asset, Workflow]:
        """
        Approve or reject a pending workflow

        Approve applies the requested change to the asset. Reject leaves the
        asset status untouched. Both finalize the workflow, clear the asset
        lock and stage one audit entry in the same unit.

        Raises:
            WorkflowNotFoundError: workflow does not exist
            AuthorizationError: actor may not decide this workflow
            InvalidStateError: workflow is no longer pending
        """
        try:
            decision = Decision(decision)
        except ValueError:
            raise ValidationError(
                f"Unknown decision: {decision}",
                details={"allowed": [d.value for d in Decision]}
            )

        existing = self.store.get_workflow(workflow_id)
        if existing is None:
            raise WorkflowNotFoundError(
                f"Workflow {workflow_id} not found",
                details={"workflow_id": workflow_id}
            )
        self.permission_guard.ensure_can_decide(actor, existing)

        def unit() -> Tuple[Asset, Workflow]:
            with self.store.transaction(existing.asset_id) as tx:
                workflow = tx.get_workflow(workflow_id)
                if workflow is None:
                    raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
                ensure_pending(workflow)

                asset = tx.get_asset(workflow.asset_id)
                if asset is None:
                    raise AssetNotFoundError(
                        f"Asset {workflow.asset_id} not found",
                        details={"asset_id": workflow.asset_id, "workflow_id": workflow_id}
                    )

                now = utc_now()
                if decision == Decision.APPROVE:
                    updated = apply_change(asset, workflow.requested_change, now)
                    new_status = WorkflowStatus.APPROVED
                    action = AuditAction.WORKFLOW_APPROVED
                else:
                    updated = release_lock(asset, now)
                    new_status = WorkflowStatus.REJECTED
                    action = AuditAction.WORKFLOW_REJECTED

                if asset.active_workflow_id != workflow.workflow_id:
                    logger.warning(
                        f"Asset {asset.asset_id} lock does not point at {workflow.workflow_id}",
                        extra={"asset_id": asset.asset_id, "workflow_id": workflow.workflow_id}
                    )
                    updated = updated.model_copy(update={"active_workflow_id": asset.active_workflow_id})

                decided = finalize_workflow(
                    workflow, new_status, actor.user_id, actor.display_name, comments, now
                )
                decided = tx.put_workflow(decided, workflow.version)
                updated = tx.put_asset(updated, asset.version)
                self.audit_writer.write_decision(tx, decided, asset, updated, actor, action)
                return updated, decided

        asset, workflow = self._run_with_retries(
            "decide", unit, workflow_id=workflow_id, asset_id=existing.asset_id
        )
        logger.info(
            f"Workflow {workflow.workflow_id} {workflow.status.value}; asset {asset.asset_id} is {asset.status.value}",
            extra={
                "workflow_id": workflow.workflow_id,
                "asset_id": asset.asset_id,
                "actor_id": actor.user_id,
                "decision": decision.value,
                "status": workflow.status.value,
            }
        )
        return asset, workflow

    # =========================================================================
    # Registration
    # =========================================================================

    def register_asset(
        self,
        asset_create: AssetCreate,
        actor: ActorContext
    ) -> Tuple[Asset, Optional[Workflow]]:
        """
        Register a new asset

        With onboarding approval required, the asset starts offline and locked
        by a pending onboarding workflow. Otherwise it starts in the requested
        initial status with no workflow.

        Raises:
            AlreadyExistsError: explicit asset id already taken
            ValidationError: initial status not allowed
        """
        onboarding = self.require_onboarding_approval
        if not onboarding and asset_create.initial_status not in INITIAL_STATUSES:
            raise ValidationError(
                f"Assets cannot be registered as {asset_create.initial_status.value}",
                details={"allowed": sorted(s.value for s in INITIAL_STATUSES)}
            )

        asset_id = asset_create.asset_id or self.store.next_asset_id(asset_create.type)
        fields = asset_create.model_dump(exclude={"asset_id", "initial_status", "reason", "priority"})

        def unit() -> Tuple[Asset, Optional[Workflow]]:
            with self.store.transaction(asset_id) as tx:
                if tx.get_asset(asset_id) is not None:
                    raise AlreadyExistsError(
                        f"Asset {asset_id} already exists",
                        details={"asset_id": asset_id}
                    )

                now = utc_now()
                asset = Asset(
                    asset_id=asset_id,
                    status=AssetStatus.OFFLINE if onboarding else asset_create.initial_status,
                    created_at=now,
                    updated_at=now,
                    **fields
                )
                if not onboarding:
                    asset = tx.insert_asset(asset)
                    self.audit_writer.write_asset_registered(tx, asset, actor, onboarding_required=False)
                    return asset, None

                workflow = Workflow(
                    workflow_id=generate_workflow_id(),
                    type=WorkflowType.ONBOARDING,
                    asset_id=asset_id,
                    asset_name=asset.name,
                    requested_change=OnboardingChange(),
                    requester_id=actor.user_id,
                    requester_name=actor.display_name,
                    reason=asset_create.reason,
                    priority=asset_create.priority,
                    created_at=now,
                    updated_at=now
                )
                asset = tx.insert_asset(asset.model_copy(update={"active_workflow_id": workflow.workflow_id}))
                self.audit_writer.write_asset_registered(tx, asset, actor, onboarding_required=True)
                workflow = tx.insert_workflow(workflow)
                self.audit_writer.write_submitted(tx, workflow, None, asset, actor)
                return asset, workflow

        asset, workflow = self._run_with_retries("register_asset", unit, asset_id=asset_id)
        logger.info(
            f"Registered asset {asset.asset_id} ({asset.status.value})",
            extra={
                "asset_id": asset.asset_id,
                "workflow_id": workflow.workflow_id if workflow else None,
                "actor_id": actor.user_id,
                "action": "register",
            }
        )
        return asset, workflow

    # =========================================================================
    # Reads
    # =========================================================================

    def get_asset(self, asset_id: str) -> Asset:
        asset = self.store.get_asset(asset_id)
        if asset is None:
            raise AssetNotFoundError(f"Asset {asset_id} not found", details={"asset_id": asset_id})
        return asset

    def get_workflow(self, workflow_id: str) -> Workflow:
        workflow = self.store.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(
                f"Workflow {workflow_id} not found",
                details={"workflow_id": workflow_id}
            )
        return workflow

    def list_pending(
        self,
        workflow_filter: Optional[WorkflowFilter] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Workflow]:
        """Pending workflows, newest first; any status in the filter is overridden"""
        f = (workflow_filter or WorkflowFilter()).model_copy(update={"status": WorkflowStatus.PENDING})
        return self.store.list_workflows(f, skip=skip, limit=limit)

    def list_workflows(
        self,
        workflow_filter: Optional[WorkflowFilter] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Workflow]:
        return self.store.list_workflows(workflow_filter, skip=skip, limit=limit)

    def count_workflows(self, workflow_filter: Optional[WorkflowFilter] = None) -> int:
        return self.store.count_workflows(workflow_filter)
