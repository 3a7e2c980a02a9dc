"""In-Memory Lifecycle Store - thread-safe store for development and tests"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from .base import LifecycleStore, StoreTransaction
from ..domain.models import Asset, AssetFilter, AuditEntry, Workflow, WorkflowFilter
from ..domain.errors import (
    AlreadyExistsError, AssetLockedError, AssetNotFoundError, ConcurrencyError,
    TransientStoreError, WorkflowNotFoundError
)
from ..utils.health import DegradedModeSignal
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _page(items: list, skip: int, limit: int) -> list:
    if limit:
        return items[skip:skip + limit]
    return items[skip:]


def _asset_matches(asset: Asset, f: Optional[AssetFilter]) -> bool:
    if f is None:
        return True
    if f.status is not None and asset.status != f.status:
        return False
    if f.type is not None and asset.type != f.type:
        return False
    if f.location and asset.location.lower() != f.location.lower():
        return False
    if f.department and (asset.department or "").lower() != f.department.lower():
        return False
    if f.locked is not None and asset.is_locked != f.locked:
        return False
    if f.search:
        needle = f.search.lower()
        if needle not in asset.asset_id.lower() and needle not in asset.name.lower():
            return False
    return True


def _workflow_matches(workflow: Workflow, f: Optional[WorkflowFilter]) -> bool:
    if f is None:
        return True
    if f.status is not None and workflow.status != f.status:
        return False
    if f.workflow_type is not None and workflow.type != f.workflow_type:
        return False
    if f.asset_id and workflow.asset_id != f.asset_id:
        return False
    if f.requester_id and workflow.requester_id != f.requester_id:
        return False
    if f.priority is not None and workflow.priority != f.priority:
        return False
    return True


class _AssetLock:
    """Per-asset mutex plus the number of units holding or waiting on it"""

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


class InMemoryTransaction(StoreTransaction):
    """Stages writes; the owning store applies them on commit"""

    def __init__(self, store: "InMemoryLifecycleStore"):
        self._store = store
        self.staged_assets: Dict[str, Asset] = {}
        self.asset_versions: Dict[str, Optional[int]] = {}
        self.staged_workflows: Dict[str, Workflow] = {}
        self.workflow_versions: Dict[str, Optional[int]] = {}
        self.audit_entries: List[AuditEntry] = []

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        if asset_id in self.staged_assets:
            return self.staged_assets[asset_id].model_copy(deep=True)
        return self._store.get_asset(asset_id)

    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        if workflow_id in self.staged_workflows:
            return self.staged_workflows[workflow_id].model_copy(deep=True)
        return self._store.get_workflow(workflow_id)

    def insert_asset(self, asset: Asset) -> Asset:
        if self.get_asset(asset.asset_id) is not None:
            raise AlreadyExistsError(
                f"Asset {asset.asset_id} already exists",
                details={"asset_id": asset.asset_id}
            )
        staged = asset.model_copy(update={"version": 1}, deep=True)
        self.staged_assets[asset.asset_id] = staged
        self.asset_versions[asset.asset_id] = None
        return staged.model_copy(deep=True)

    def put_asset(self, asset: Asset, expected_version: int) -> Asset:
        current = self.get_asset(asset.asset_id)
        if current is None:
            raise AssetNotFoundError(f"Asset {asset.asset_id} not found")
        if current.version != expected_version:
            raise ConcurrencyError(
                f"Asset {asset.asset_id} was modified concurrently",
                details={"expected_version": expected_version, "actual_version": current.version}
            )
        staged = asset.model_copy(update={"version": expected_version + 1}, deep=True)
        self.staged_assets[asset.asset_id] = staged
        self.asset_versions.setdefault(asset.asset_id, expected_version)
        return staged.model_copy(deep=True)

    def insert_workflow(self, workflow: Workflow) -> Workflow:
        if self.get_workflow(workflow.workflow_id) is not None:
            raise AlreadyExistsError(f"Workflow {workflow.workflow_id} already exists")
        if workflow.is_pending:
            existing = self._pending_for_asset(workflow.asset_id)
            if existing is not None:
                raise AssetLockedError(
                    f"Asset {workflow.asset_id} already has a pending workflow",
                    details={"asset_id": workflow.asset_id, "workflow_id": existing}
                )
        staged = workflow.model_copy(update={"version": 1}, deep=True)
        self.staged_workflows[workflow.workflow_id] = staged
        self.workflow_versions[workflow.workflow_id] = None
        return staged.model_copy(deep=True)

    def put_workflow(self, workflow: Workflow, expected_version: int) -> Workflow:
        current = self.get_workflow(workflow.workflow_id)
        if current is None:
            raise WorkflowNotFoundError(f"Workflow {workflow.workflow_id} not found")
        if current.version != expected_version:
            raise ConcurrencyError(
                f"Workflow {workflow.workflow_id} was modified concurrently",
                details={"expected_version": expected_version, "actual_version": current.version}
            )
        staged = workflow.model_copy(update={"version": expected_version + 1}, deep=True)
        self.staged_workflows[workflow.workflow_id] = staged
        self.workflow_versions.setdefault(workflow.workflow_id, expected_version)
        return staged.model_copy(deep=True)

    def append_audit(self, entry: AuditEntry) -> AuditEntry:
        self.audit_entries.append(entry.model_copy(deep=True))
        return entry

    def _pending_for_asset(self, asset_id: str) -> Optional[str]:
        for wf in self.staged_workflows.values():
            if wf.asset_id == asset_id and wf.is_pending:
                return wf.workflow_id
        for wf in self._store.query_pending_by_asset(asset_id):
            staged = self.staged_workflows.get(wf.workflow_id)
            if staged is None or staged.is_pending:
                return wf.workflow_id
        return None


class InMemoryLifecycleStore(LifecycleStore):
    """
    Dictionary-backed store.

    Transactions hold a per-asset lock for their whole duration, so units on
    different assets run in parallel. Lock waits are bounded by
    ``lock_timeout_seconds`` and surface as TransientStoreError.
    """

    def __init__(
        self,
        lock_timeout_seconds: float = 5.0,
        transactional_audit: bool = True,
        signal: Optional[DegradedModeSignal] = None,
        audit_delivery_attempts: int = 3,
    ):
        super().__init__(signal=signal, audit_delivery_attempts=audit_delivery_attempts)
        self.lock_timeout_seconds = lock_timeout_seconds
        self.transactional_audit = transactional_audit

        self._assets: Dict[str, Asset] = {}
        self._workflows: Dict[str, Workflow] = {}
        self._audit: Dict[str, AuditEntry] = {}
        self._sequences: Dict[str, int] = {}

        # Guards the dictionaries while a commit is applied; never held across business checks
        self._data_lock = threading.RLock()
        self._asset_locks: Dict[str, _AssetLock] = {}
        self._asset_locks_guard = threading.Lock()

    # =========================================================================
    # Transactions
    # =========================================================================

    def _claim_lock(self, asset_id: str) -> "_AssetLock":
        with self._asset_locks_guard:
            entry = self._asset_locks.get(asset_id)
            if entry is None:
                entry = self._asset_locks[asset_id] = _AssetLock()
            entry.holders += 1
            return entry

    def _release_claim(self, asset_id: str, entry: "_AssetLock") -> None:
        # Entries live only while some unit holds or waits on them
        with self._asset_locks_guard:
            entry.holders -= 1
            if entry.holders == 0:
                del self._asset_locks[asset_id]

    @contextmanager
    def transaction(self, asset_id: str) -> Iterator[InMemoryTransaction]:
        entry = self._claim_lock(asset_id)
        try:
            if not entry.lock.acquire(timeout=self.lock_timeout_seconds):
                raise TransientStoreError(
                    f"Timed out waiting for asset {asset_id}",
                    details={"asset_id": asset_id, "timeout_seconds": self.lock_timeout_seconds}
                )
            try:
                tx = InMemoryTransaction(self)
                yield tx
                self._commit(tx)
            finally:
                entry.lock.release()
        finally:
            self._release_claim(asset_id, entry)

        if not self.transactional_audit and tx.audit_entries:
            self.deliver_audit_entries(tx.audit_entries)

    def _commit(self, tx: InMemoryTransaction) -> None:
        with self._data_lock:
            # Re-check every compare-and-swap against committed state
            for asset_id, expected in tx.asset_versions.items():
                current = self._assets.get(asset_id)
                if expected is None and current is not None:
                    raise AlreadyExistsError(f"Asset {asset_id} already exists")
                if expected is not None and (current is None or current.version != expected):
                    raise ConcurrencyError(f"Asset {asset_id} was modified concurrently")
            for workflow_id, expected in tx.workflow_versions.items():
                current = self._workflows.get(workflow_id)
                if expected is not None and (current is None or current.version != expected):
                    raise ConcurrencyError(f"Workflow {workflow_id} was modified concurrently")

            self._assets.update(tx.staged_assets)
            self._workflows.update(tx.staged_workflows)
            if self.transactional_audit:
                for entry in tx.audit_entries:
                    self._audit.setdefault(entry.audit_entry_id, entry)

    # =========================================================================
    # Assets
    # =========================================================================

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        with self._data_lock:
            asset = self._assets.get(asset_id)
            return asset.model_copy(deep=True) if asset else None

    def list_assets(
        self,
        asset_filter: Optional[AssetFilter] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Asset]:
        with self._data_lock:
            matches = [a for a in self._assets.values() if _asset_matches(a, asset_filter)]
        matches.sort(key=lambda a: a.asset_id)
        return [a.model_copy(deep=True) for a in _page(matches, skip, limit)]

    def count_assets(self, asset_filter: Optional[AssetFilter] = None) -> int:
        with self._data_lock:
            return sum(1 for a in self._assets.values() if _asset_matches(a, asset_filter))

    def next_asset_sequence(self, prefix: str) -> int:
        with self._data_lock:
            self._sequences[prefix] = self._sequences.get(prefix, 0) + 1
            return self._sequences[prefix]

    # =========================================================================
    # Workflows
    # =========================================================================

    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        with self._data_lock:
            workflow = self._workflows.get(workflow_id)
            return workflow.model_copy(deep=True) if workflow else None

    def list_workflows(
        self,
        workflow_filter: Optional[WorkflowFilter] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Workflow]:
        with self._data_lock:
            matches = [
                w for w in reversed(list(self._workflows.values()))
                if _workflow_matches(w, workflow_filter)
            ]
        matches.sort(key=lambda w: w.created_at, reverse=True)
        return [w.model_copy(deep=True) for w in _page(matches, skip, limit)]

    def count_workflows(self, workflow_filter: Optional[WorkflowFilter] = None) -> int:
        with self._data_lock:
            return sum(1 for w in self._workflows.values() if _workflow_matches(w, workflow_filter))

    # =========================================================================
    # Audit
    # =========================================================================

    def list_audit_entries(
        self,
        asset_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEntry]:
        with self._data_lock:
            entries = [
                e for e in reversed(list(self._audit.values()))
                if (asset_id is None or e.asset_id == asset_id)
                and (resource_id is None or e.resource_id == resource_id)
            ]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return [e.model_copy(deep=True) for e in _page(entries, skip, limit)]

    def _write_audit_entry(self, entry: AuditEntry) -> None:
        with self._data_lock:
            self._audit.setdefault(entry.audit_entry_id, entry.model_copy(deep=True))

    def health_check(self):
        with self._data_lock:
            return {
                "status": "healthy",
                "backend": "memory",
                "assets": len(self._assets),
                "workflows": len(self._workflows),
            }
