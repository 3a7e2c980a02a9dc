"""MongoDB Lifecycle Store - Data access for assets, workflows and audit entries

Two commit modes:

- ``use_transactions=True`` (replica set): every unit runs in a
  multi-document transaction on one client session.
- ``use_transactions=False`` (standalone): writes go through in the order the
  engine issues them. Each ``put_*`` is a compare-and-swap on ``version`` and
  pending workflows are guarded by a partial unique index, so the first write
  of a unit is its linearization point. If a later write fails, earlier ones
  are compensated. Audit entries are delivered after commit.
"""
import re
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

import pymongo
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure, DuplicateKeyError, ExecutionTimeout, OperationFailure, PyMongoError
)

from .base import LifecycleStore, StoreTransaction
from .mongo_client import health_check as mongo_health_check
from ..domain.enums import WorkflowStatus
from ..domain.errors import (
    AlreadyExistsError, AssetLockedError, AssetNotFoundError, ConcurrencyError,
    DomainError, TransientStoreError, WorkflowNotFoundError
)
from ..domain.models import Asset, AssetFilter, AuditEntry, Workflow, WorkflowFilter
from ..utils.health import DegradedModeSignal
from ..utils.logger import get_logger

logger = get_logger(__name__)

WRITE_CONFLICT_CODE = 112
PENDING_INDEX_NAME = "one_pending_workflow_per_asset"


def _to_doc(model, key: str) -> Dict[str, Any]:
    # Don't use mode="json" - it converts datetime to strings, breaking MongoDB sorting
    doc = model.model_dump()
    doc["_id"] = doc[key]
    return doc


def _strip(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is not None:
        doc.pop("_id", None)
    return doc


def _asset_from_doc(doc: Optional[Dict[str, Any]]) -> Optional[Asset]:
    doc = _strip(doc)
    return Asset.model_validate(doc) if doc else None


def _workflow_from_doc(doc: Optional[Dict[str, Any]]) -> Optional[Workflow]:
    doc = _strip(doc)
    return Workflow.model_validate(doc) if doc else None


def _is_pending_guard(error: DuplicateKeyError) -> bool:
    details = error.details or {}
    key_pattern = details.get("keyPattern") or {}
    return "asset_id" in key_pattern or PENDING_INDEX_NAME in str(details.get("errmsg", ""))


def translate_error(error: PyMongoError) -> DomainError:
    """Map a driver exception onto the domain error taxonomy"""
    if error.has_error_label("TransientTransactionError") or (
        isinstance(error, OperationFailure) and error.code == WRITE_CONFLICT_CODE
    ):
        return ConcurrencyError("Concurrent write conflict", details={"cause": str(error)})
    if getattr(error, "timeout", False) or isinstance(error, ExecutionTimeout):
        return TransientStoreError("Store operation timed out", details={"cause": str(error)})
    if isinstance(error, ConnectionFailure):
        return TransientStoreError("Store unavailable", details={"cause": str(error)})
    return TransientStoreError("Store operation failed", details={"cause": str(error)})


class MongoTransaction(StoreTransaction):
    """Unit of work bound to an optional client session"""

    def __init__(self, store: "MongoLifecycleStore", session: Optional[ClientSession] = None):
        self._store = store
        self._session = session
        self.deferred_audit: List[AuditEntry] = []
        self._undo: List[Callable[[], Any]] = []

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        return _asset_from_doc(
            self._store.assets.find_one({"asset_id": asset_id}, session=self._session)
        )

    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        return _workflow_from_doc(
            self._store.workflows.find_one({"workflow_id": workflow_id}, session=self._session)
        )

    def insert_asset(self, asset: Asset) -> Asset:
        asset = asset.model_copy(update={"version": 1})
        try:
            self._store.assets.insert_one(_to_doc(asset, "asset_id"), session=self._session)
        except DuplicateKeyError:
            raise AlreadyExistsError(
                f"Asset {asset.asset_id} already exists",
                details={"asset_id": asset.asset_id}
            )
        self._undo.append(lambda: self._store.assets.delete_one({"_id": asset.asset_id}))
        logger.info(f"Created asset: {asset.asset_id}", extra={"asset_id": asset.asset_id})
        return asset

    def put_asset(self, asset: Asset, expected_version: int) -> Asset:
        asset = asset.model_copy(update={"version": expected_version + 1})
        previous = self._store.assets.find_one_and_replace(
            {"asset_id": asset.asset_id, "version": expected_version},
            _to_doc(asset, "asset_id"),
            session=self._session,
            return_document=ReturnDocument.BEFORE
        )
        if previous is None:
            if self._store.assets.find_one({"asset_id": asset.asset_id}, session=self._session):
                raise ConcurrencyError(
                    f"Asset {asset.asset_id} was modified. Please refresh and try again.",
                    details={"expected_version": expected_version}
                )
            raise AssetNotFoundError(f"Asset {asset.asset_id} not found")
        self._undo.append(lambda: self._store.assets.replace_one(
            {"_id": asset.asset_id, "version": asset.version}, previous
        ))
        return asset

    def insert_workflow(self, workflow: Workflow) -> Workflow:
        workflow = workflow.model_copy(update={"version": 1})
        try:
            self._store.workflows.insert_one(_to_doc(workflow, "workflow_id"), session=self._session)
        except DuplicateKeyError as e:
            if _is_pending_guard(e):
                # Outside the session: the server has already aborted its transaction
                existing = self._store.workflows.find_one(
                    {"asset_id": workflow.asset_id, "status": WorkflowStatus.PENDING.value}
                )
                raise AssetLockedError(
                    f"Asset {workflow.asset_id} already has a pending workflow",
                    details={
                        "asset_id": workflow.asset_id,
                        "workflow_id": existing.get("workflow_id") if existing else None,
                    }
                )
            raise AlreadyExistsError(f"Workflow {workflow.workflow_id} already exists")
        self._undo.append(lambda: self._store.workflows.delete_one({"_id": workflow.workflow_id}))
        logger.info(
            f"Created workflow: {workflow.workflow_id}",
            extra={"workflow_id": workflow.workflow_id, "asset_id": workflow.asset_id}
        )
        return workflow

    def put_workflow(self, workflow: Workflow, expected_version: int) -> Workflow:
        workflow = workflow.model_copy(update={"version": expected_version + 1})
        previous = self._store.workflows.find_one_and_replace(
            {"workflow_id": workflow.workflow_id, "version": expected_version},
            _to_doc(workflow, "workflow_id"),
            session=self._session,
            return_document=ReturnDocument.BEFORE
        )
        if previous is None:
            if self._store.workflows.find_one({"workflow_id": workflow.workflow_id}, session=self._session):
                raise ConcurrencyError(
                    f"Workflow {workflow.workflow_id} was modified. Please refresh and try again.",
                    details={"expected_version": expected_version}
                )
            raise WorkflowNotFoundError(f"Workflow {workflow.workflow_id} not found")
        self._undo.append(lambda: self._store.workflows.replace_one(
            {"_id": workflow.workflow_id, "version": workflow.version}, previous
        ))
        return workflow

    def append_audit(self, entry: AuditEntry) -> AuditEntry:
        if self._session is None:
            self.deferred_audit.append(entry)
        else:
            self._store.audit_entries.insert_one(_to_doc(entry, "audit_entry_id"), session=self._session)
        return entry

    def compensate(self) -> List[str]:
        """
        Undo already-applied writes of a failed non-transactional unit

        Returns:
            Messages of the undo steps that could not be applied
        """
        failures: List[str] = []
        for undo in reversed(self._undo):
            try:
                undo()
            except PyMongoError as e:
                logger.error(f"Compensation step failed: {e}", exc_info=True)
                failures.append(str(e))
        self._undo.clear()
        return failures


class MongoLifecycleStore(LifecycleStore):
    """Lifecycle store backed by the ``assets``, ``workflows``, ``audit_entries`` and ``counters`` collections"""

    def __init__(
        self,
        database: Database,
        use_transactions: bool = False,
        timeout_seconds: float = 5.0,
        signal: Optional[DegradedModeSignal] = None,
        audit_delivery_attempts: int = 3,
    ):
        super().__init__(signal=signal, audit_delivery_attempts=audit_delivery_attempts)
        self.db = database
        self.use_transactions = use_transactions
        self.timeout_seconds = timeout_seconds
        self.assets: Collection = database["assets"]
        self.workflows: Collection = database["workflows"]
        self.audit_entries: Collection = database["audit_entries"]
        self.counters: Collection = database["counters"]

    @contextmanager
    def _guard(self) -> Iterator[None]:
        """Bound the enclosed store calls by the timeout and translate driver errors"""
        try:
            with pymongo.timeout(self.timeout_seconds):
                yield
        except PyMongoError as e:
            raise translate_error(e) from e

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def transaction(self, asset_id: str) -> Iterator[MongoTransaction]:
        if self.use_transactions:
            with self._guard():
                with self.db.client.start_session() as session:
                    with session.start_transaction():
                        yield MongoTransaction(self, session)
            return

        tx = MongoTransaction(self)
        try:
            with self._guard():
                yield tx
        except BaseException:
            self._compensate(tx, asset_id)
            raise

        if tx.deferred_audit:
            self.deliver_audit_entries(tx.deferred_audit)

    def _compensate(self, tx: MongoTransaction, asset_id: str) -> None:
        """Undo a failed unit under its own deadline; the unit's may have expired"""
        with pymongo.timeout(self.timeout_seconds):
            failures = tx.compensate()
        if failures:
            self.signal.raise_signal(
                "compensation_failed",
                {"asset_id": asset_id, "errors": failures}
            )

    # =========================================================================
    # Assets
    # =========================================================================

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        with self._guard():
            return _asset_from_doc(self.assets.find_one({"asset_id": asset_id}))

    def _asset_query(self, f: Optional[AssetFilter]) -> Dict[str, Any]:
        if f is None:
            return {}
        and_conditions: List[Dict[str, Any]] = []
        if f.status is not None:
            and_conditions.append({"status": f.status.value})
        if f.type is not None:
            and_conditions.append({"type": f.type.value})
        if f.location:
            and_conditions.append({"location": {"$regex": f"^{re.escape(f.location)}$", "$options": "i"}})
        if f.department:
            and_conditions.append({"department": {"$regex": f"^{re.escape(f.department)}$", "$options": "i"}})
        if f.locked is True:
            and_conditions.append({"active_workflow_id": {"$ne": None}})
        elif f.locked is False:
            and_conditions.append({"active_workflow_id": None})
        if f.search:
            pattern = re.escape(f.search)
            and_conditions.append({"$or": [
                {"asset_id": {"$regex": pattern, "$options": "i"}},
                {"name": {"$regex": pattern, "$options": "i"}},
            ]})

        if len(and_conditions) == 1:
            return and_conditions[0]
        elif len(and_conditions) > 1:
            return {"$and": and_conditions}
        return {}

    def list_assets(
        self,
        asset_filter: Optional[AssetFilter] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Asset]:
        with self._guard():
            cursor = self.assets.find(self._asset_query(asset_filter)).sort(
                "asset_id", ASCENDING
            ).skip(skip).limit(limit)
            return [_asset_from_doc(doc) for doc in cursor]

    def count_assets(self, asset_filter: Optional[AssetFilter] = None) -> int:
        with self._guard():
            return self.assets.count_documents(self._asset_query(asset_filter))

    def next_asset_sequence(self, prefix: str) -> int:
        with self._guard():
            doc = self.counters.find_one_and_update(
                {"_id": f"asset:{prefix}"},
                {"$inc": {"seq": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
            return int(doc["seq"])

    # =========================================================================
    # Workflows
    # =========================================================================

    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        with self._guard():
            return _workflow_from_doc(self.workflows.find_one({"workflow_id": workflow_id}))

    @staticmethod
    def _workflow_query(f: Optional[WorkflowFilter]) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if f is None:
            return query
        if f.status is not None:
            query["status"] = f.status.value
        if f.workflow_type is not None:
            query["type"] = f.workflow_type.value
        if f.asset_id:
            query["asset_id"] = f.asset_id
        if f.requester_id:
            query["requester_id"] = f.requester_id
        if f.priority is not None:
            query["priority"] = f.priority.value
        return query

    def list_workflows(
        self,
        workflow_filter: Optional[WorkflowFilter] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Workflow]:
        with self._guard():
            cursor = self.workflows.find(self._workflow_query(workflow_filter)).sort(
                "created_at", DESCENDING
            ).skip(skip).limit(limit)
            return [_workflow_from_doc(doc) for doc in cursor]

    def count_workflows(self, workflow_filter: Optional[WorkflowFilter] = None) -> int:
        with self._guard():
            return self.workflows.count_documents(self._workflow_query(workflow_filter))

    # =========================================================================
    # Audit (append-only)
    # =========================================================================

    def list_audit_entries(
        self,
        asset_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEntry]:
        query: Dict[str, Any] = {}
        if asset_id:
            query["asset_id"] = asset_id
        if resource_id:
            query["resource_id"] = resource_id

        with self._guard():
            cursor = self.audit_entries.find(query).sort("timestamp", DESCENDING).skip(skip).limit(limit)
            return [AuditEntry.model_validate(_strip(doc)) for doc in cursor]

    def _write_audit_entry(self, entry: AuditEntry) -> None:
        # $setOnInsert keeps redelivery idempotent on the entry id
        with self._guard():
            self.audit_entries.update_one(
                {"_id": entry.audit_entry_id},
                {"$setOnInsert": _to_doc(entry, "audit_entry_id")},
                upsert=True
            )

    # =========================================================================
    # Indexes & Health
    # =========================================================================

    def ensure_indexes(self) -> None:
        """Create all required indexes"""
        logger.info("Creating MongoDB indexes...")

        self.assets.create_index("asset_id", unique=True)
        self.assets.create_index("status")
        self.assets.create_index("type")
        self.assets.create_index("active_workflow_id")
        self.assets.create_index("updated_at", background=True)

        self.workflows.create_index("workflow_id", unique=True)
        # At most one pending workflow per asset
        self.workflows.create_index(
            [("asset_id", ASCENDING)],
            unique=True,
            partialFilterExpression={"status": WorkflowStatus.PENDING.value},
            name=PENDING_INDEX_NAME
        )
        self.workflows.create_index([("asset_id", ASCENDING), ("created_at", DESCENDING)])
        self.workflows.create_index([("status", ASCENDING), ("created_at", DESCENDING)])
        self.workflows.create_index([("requester_id", ASCENDING), ("status", ASCENDING)])

        self.audit_entries.create_index("audit_entry_id", unique=True)
        self.audit_entries.create_index([("asset_id", ASCENDING), ("timestamp", DESCENDING)])
        self.audit_entries.create_index("resource_id")
        self.audit_entries.create_index("correlation_id")
        self.audit_entries.create_index("timestamp", background=True)

        logger.info("MongoDB indexes created successfully")

    def health_check(self) -> Dict[str, Any]:
        result = mongo_health_check(self.db.client)
        result["transactions"] = self.use_transactions
        return result

    def close(self) -> None:
        self.db.client.close()
        logger.info("MongoDB connection closed")
