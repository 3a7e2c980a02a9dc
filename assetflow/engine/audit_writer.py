"""Audit Writer - Builds append-only audit entries

Entries are staged on the open store transaction, so they commit (or are
delivered after commit) together with the mutation they describe.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from ..domain.enums import AuditAction, ResourceType
from ..domain.models import ActorContext, Asset, AuditEntry, Workflow
from ..domain.transitions import diff_assets
from ..repositories.base import StoreTransaction
from ..utils.idgen import generate_audit_entry_id
from ..utils.logger import get_correlation_id, get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class AuditWriter:
    """
    Write audit entries (append-only)

    Every committed mutation produces exactly one entry.
    """

    def build_entry(
        self,
        action: AuditAction,
        resource_type: ResourceType,
        resource_id: str,
        asset_id: str,
        actor: ActorContext,
        before: Optional[Asset] = None,
        after: Optional[Asset] = None,
        details: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
        correlation_id: Optional[str] = None
    ) -> AuditEntry:
        """Build a single audit entry with before/after snapshots and field changes"""
        details = dict(details or {})
        if before is not None and after is not None:
            details["field_changes"] = [
                change.model_dump(mode="json") for change in diff_assets(before, after)
            ]
        elif after is not None:
            details["field_changes"] = []

        return AuditEntry(
            audit_entry_id=generate_audit_entry_id(),
            timestamp=timestamp or utc_now(),
            actor_id=actor.user_id,
            actor_name=actor.display_name,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            asset_id=asset_id,
            before=before.snapshot() if before is not None else None,
            after=after.snapshot() if after is not None else None,
            details=details,
            correlation_id=correlation_id or get_correlation_id()
        )

    def write(self, tx: StoreTransaction, entry: AuditEntry) -> AuditEntry:
        tx.append_audit(entry)
        logger.debug(
            f"Staged audit entry {entry.action.value} for {entry.resource_id}",
            extra={"audit_entry_id": entry.audit_entry_id, "asset_id": entry.asset_id}
        )
        return entry

    def write_asset_registered(
        self,
        tx: StoreTransaction,
        asset: Asset,
        actor: ActorContext,
        onboarding_required: bool
    ) -> AuditEntry:
        """Write asset registration entry"""
        return self.write(tx, self.build_entry(
            action=AuditAction.ASSET_REGISTERED,
            resource_type=ResourceType.ASSET,
            resource_id=asset.asset_id,
            asset_id=asset.asset_id,
            actor=actor,
            after=asset,
            details={"onboarding_required": onboarding_required},
            timestamp=asset.created_at
        ))

    def write_submitted(
        self,
        tx: StoreTransaction,
        workflow: Workflow,
        before: Optional[Asset],
        after: Asset,
        actor: ActorContext
    ) -> AuditEntry:
        """Write workflow submission entry"""
        return self.write(tx, self.build_entry(
            action=AuditAction.WORKFLOW_SUBMITTED,
            resource_type=ResourceType.WORKFLOW,
            resource_id=workflow.workflow_id,
            asset_id=workflow.asset_id,
            actor=actor,
            before=before,
            after=after,
            details={
                "workflow_type": workflow.type.value,
                "requested_change": workflow.requested_change.model_dump(mode="json"),
                "reason": workflow.reason,
                "priority": workflow.priority.value,
            },
            timestamp=workflow.created_at
        ))

    def write_decision(
        self,
        tx: StoreTransaction,
        workflow: Workflow,
        before: Asset,
        after: Asset,
        actor: ActorContext,
        action: AuditAction
    ) -> AuditEntry:
        """Write approval or rejection entry"""
        return self.write(tx, self.build_entry(
            action=action,
            resource_type=ResourceType.WORKFLOW,
            resource_id=workflow.workflow_id,
            asset_id=workflow.asset_id,
            actor=actor,
            before=before,
            after=after,
            details={
                "workflow_type": workflow.type.value,
                "decision": "approve" if action == AuditAction.WORKFLOW_APPROVED else "reject",
                "comments": workflow.comments,
            },
            timestamp=workflow.decided_at
        ))
