"""Query Service - Read-only asset and workflow queries for the gateway"""
from typing import Dict, List, Optional

from ..domain.errors import AssetNotFoundError
from ..domain.models import Asset, AssetFilter, AuditEntry, Workflow, WorkflowFilter
from ..repositories.base import LifecycleStore
from ..utils.logger import get_logger

logger = get_logger(__name__)


class QueryService:
    """Service for read-only lifecycle queries"""

    def __init__(self, store: LifecycleStore):
        self.store = store

    def list_assets(
        self,
        asset_filter: Optional[AssetFilter] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Asset]:
        """List assets ordered by id"""
        return self.store.list_assets(asset_filter, skip=skip, limit=limit)

    def count_assets(self, asset_filter: Optional[AssetFilter] = None) -> int:
        """Count assets"""
        return self.store.count_assets(asset_filter)

    def asset_stats(self) -> Dict[str, int]:
        return self.store.asset_stats()

    def workflow_stats(self) -> Dict[str, Dict[str, int]]:
        return self.store.workflow_stats()

    def _require_asset(self, asset_id: str) -> None:
        if self.store.get_asset(asset_id) is None:
            raise AssetNotFoundError(f"Asset {asset_id} not found", details={"asset_id": asset_id})

    def asset_workflows(self, asset_id: str, skip: int = 0, limit: int = 50) -> List[Workflow]:
        """Workflow history of one asset, newest first"""
        self._require_asset(asset_id)
        return self.store.list_workflows(WorkflowFilter(asset_id=asset_id), skip=skip, limit=limit)

    def asset_audit(self, asset_id: str, skip: int = 0, limit: int = 100) -> List[AuditEntry]:
        """Audit trail of one asset, newest first"""
        self._require_asset(asset_id)
        return self.store.list_audit_entries(asset_id=asset_id, skip=skip, limit=limit)
