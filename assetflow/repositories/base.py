"""Store Abstraction - what the engine needs from persistence

The engine talks to a ``LifecycleStore``. All writes happen inside
``store.transaction(asset_id)``, a unit scoped to one asset: leaving the
block normally commits every staged write, an exception discards them.
``put_*`` calls are compare-and-swap on the record ``version``.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..domain.enums import AssetStatus, AssetType, WorkflowStatus, WorkflowType
from ..domain.models import Asset, AssetFilter, AuditEntry, Workflow, WorkflowFilter
from ..utils.health import DegradedModeSignal, degraded_signal
from ..utils.idgen import asset_id_prefix, format_asset_id
from ..utils.logger import get_logger

logger = get_logger(__name__)


class StoreTransaction(ABC):
    """Reads and staged writes within one atomic unit"""

    @abstractmethod
    def get_asset(self, asset_id: str) -> Optional[Asset]:
        """Read an asset as seen by this transaction"""

    @abstractmethod
    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Read a workflow as seen by this transaction"""

    @abstractmethod
    def insert_asset(self, asset: Asset) -> Asset:
        """Insert a new asset (AlreadyExistsError on duplicate id)"""

    @abstractmethod
    def put_asset(self, asset: Asset, expected_version: int) -> Asset:
        """Replace an asset if its stored version matches (ConcurrencyError otherwise)"""

    @abstractmethod
    def insert_workflow(self, workflow: Workflow) -> Workflow:
        """Insert a new workflow (AssetLockedError if the asset already has a pending one)"""

    @abstractmethod
    def put_workflow(self, workflow: Workflow, expected_version: int) -> Workflow:
        """Replace a workflow if its stored version matches (ConcurrencyError otherwise)"""

    @abstractmethod
    def append_audit(self, entry: AuditEntry) -> AuditEntry:
        """Stage an audit entry for this unit"""


class LifecycleStore(ABC):
    """Persistence for assets, workflows and the audit ledger"""

    def __init__(
        self,
        signal: Optional[DegradedModeSignal] = None,
        audit_delivery_attempts: int = 3,
    ):
        self.signal = signal or degraded_signal
        self.audit_delivery_attempts = max(1, audit_delivery_attempts)

    # =========================================================================
    # Transactions
    # =========================================================================

    @abstractmethod
    def transaction(self, asset_id: str):
        """Context manager yielding a StoreTransaction scoped to ``asset_id``"""

    # =========================================================================
    # Assets
    # =========================================================================

    @abstractmethod
    def get_asset(self, asset_id: str) -> Optional[Asset]:
        """Get asset by ID"""

    @abstractmethod
    def list_assets(
        self,
        asset_filter: Optional[AssetFilter] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Asset]:
        """List assets, ordered by asset id (limit 0 means no limit)"""

    @abstractmethod
    def count_assets(self, asset_filter: Optional[AssetFilter] = None) -> int:
        """Count assets matching a filter"""

    @abstractmethod
    def next_asset_sequence(self, prefix: str) -> int:
        """Atomically allocate the next sequence number for an id prefix"""

    def next_asset_id(self, asset_type: AssetType) -> str:
        """Allocate a fresh asset id for the given type (e.g. SRV-001)"""
        prefix = asset_id_prefix(asset_type)
        while True:
            candidate = format_asset_id(prefix, self.next_asset_sequence(prefix))
            # Explicitly registered ids may already occupy a sequence slot
            if self.get_asset(candidate) is None:
                return candidate

    # =========================================================================
    # Workflows
    # =========================================================================

    @abstractmethod
    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Get workflow by ID"""

    @abstractmethod
    def list_workflows(
        self,
        workflow_filter: Optional[WorkflowFilter] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Workflow]:
        """List workflows, newest first (limit 0 means no limit)"""

    @abstractmethod
    def count_workflows(self, workflow_filter: Optional[WorkflowFilter] = None) -> int:
        """Count workflows matching a filter"""

    def query_pending_by_asset(self, asset_id: str) -> List[Workflow]:
        """Pending workflows referencing an asset (at most one when consistent)"""
        return self.list_workflows(
            WorkflowFilter(status=WorkflowStatus.PENDING, asset_id=asset_id),
            limit=0
        )

    # =========================================================================
    # Audit
    # =========================================================================

    @abstractmethod
    def list_audit_entries(
        self,
        asset_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEntry]:
        """Audit entries, newest first"""

    @abstractmethod
    def _write_audit_entry(self, entry: AuditEntry) -> None:
        """Write one audit entry outside a transaction; idempotent on its id"""

    def deliver_audit_entries(self, entries: List[AuditEntry]) -> bool:
        """
        Deliver audit entries after the owning transition has committed.

        Each entry is attempted ``audit_delivery_attempts`` times. Failure never
        undoes the committed transition; it raises the degraded-mode signal.

        Returns:
            True if every entry was written
        """
        delivered = True
        for entry in entries:
            last_error: Optional[Exception] = None
            for attempt in range(1, self.audit_delivery_attempts + 1):
                try:
                    self._write_audit_entry(entry)
                    last_error = None
                    break
                except Exception as e:
                    last_error = e
                    logger.warning(
                        f"Audit delivery attempt {attempt} failed: {e}",
                        extra={"audit_entry_id": entry.audit_entry_id, "asset_id": entry.asset_id}
                    )
            if last_error is not None:
                delivered = False
                self.signal.raise_signal(
                    "audit_append_failed",
                    details={
                        "audit_entry_id": entry.audit_entry_id,
                        "action": entry.action.value,
                        "resource_id": entry.resource_id,
                        "error": str(last_error),
                    }
                )
        return delivered

    # =========================================================================
    # Stats & Health
    # =========================================================================

    def asset_stats(self) -> Dict[str, int]:
        """Asset counts: total, per status, and pending (locked by a workflow)"""
        stats = {"total": self.count_assets()}
        for status in AssetStatus:
            stats[status.value] = self.count_assets(AssetFilter(status=status))
        stats["pending"] = self.count_assets(AssetFilter(locked=True))
        return stats

    def workflow_stats(self) -> Dict[str, Dict[str, int]]:
        """Workflow counts by status and by type"""
        return {
            "by_status": {
                status.value: self.count_workflows(WorkflowFilter(status=status))
                for status in WorkflowStatus
            },
            "by_type": {
                workflow_type.value: self.count_workflows(WorkflowFilter(workflow_type=workflow_type))
                for workflow_type in WorkflowType
            },
        }

    def ensure_indexes(self) -> None:
        """Create backing indexes; no-op where not applicable"""

    def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "backend": type(self).__name__}

    def close(self) -> None:
        """Release backend resources"""
