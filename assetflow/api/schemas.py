"""API Schemas - camelCase request and response bodies"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..domain.enums import (
    AssetStatus, AssetType, AuditAction, ResourceType,
    WorkflowPriority, WorkflowStatus, WorkflowType
)
from ..domain.models import Asset, AssetCreate, AuditEntry, RequestedChange, Workflow


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys; snake_case is accepted on input too"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Requests
# ============================================================================

class SubmitWorkflowRequest(CamelModel):
    """Request to open a workflow against an asset"""
    asset_id: str = Field(..., min_length=1)
    type: WorkflowType
    requested_change: Optional[RequestedChange] = None
    reason: str = Field("", max_length=2000)
    priority: WorkflowPriority = WorkflowPriority.MEDIUM


class DecisionRequest(CamelModel):
    """Approve/reject body"""
    comments: Optional[str] = Field(None, max_length=2000)


class RegisterAssetRequest(CamelModel):
    """Request to register a new asset"""
    asset_id: Optional[str] = Field(None, alias="id", min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    type: AssetType
    location: str = Field("", max_length=200)
    description: str = Field("", max_length=2000)
    owner: Optional[str] = None
    department: Optional[str] = None
    ip_address: Optional[str] = None
    purchase_price: float = Field(0.0, ge=0)
    annual_cost: float = Field(0.0, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    tags: List[str] = Field(default_factory=list, max_length=50)
    status: AssetStatus = AssetStatus.OFFLINE
    reason: str = Field("New asset registration", max_length=2000)
    priority: WorkflowPriority = WorkflowPriority.MEDIUM

    def to_create(self) -> AssetCreate:
        return AssetCreate(
            initial_status=self.status,
            **self.model_dump(exclude={"status"})
        )


class MaintenanceRequest(CamelModel):
    """Request to take an asset into maintenance"""
    reason: str = Field("", max_length=2000)
    priority: WorkflowPriority = WorkflowPriority.MEDIUM


class StatusChangeRequest(CamelModel):
    """Request to switch an asset online/offline (omit status to toggle)"""
    status: Optional[AssetStatus] = None
    reason: str = Field("", max_length=2000)
    priority: WorkflowPriority = WorkflowPriority.MEDIUM

    @field_validator("status")
    @classmethod
    def _online_or_offline(cls, v: Optional[AssetStatus]) -> Optional[AssetStatus]:
        if v is not None and v not in (AssetStatus.ONLINE, AssetStatus.OFFLINE):
            raise ValueError("status must be 'online' or 'offline'")
        return v


# ============================================================================
# Responses
# ============================================================================

class AssetResponse(CamelModel):
    id: str
    name: str
    type: AssetType
    status: AssetStatus
    location: str
    description: str
    owner: Optional[str] = None
    department: Optional[str] = None
    ip_address: Optional[str] = None
    purchase_price: float
    annual_cost: float
    currency: str
    tags: List[str]
    created_at: datetime
    updated_at: datetime
    onboarded_at: Optional[datetime] = None
    active_workflow_id: Optional[str] = None
    version: int

    @classmethod
    def from_asset(cls, asset: Asset) -> "AssetResponse":
        data = asset.model_dump(exclude={"asset_id"})
        return cls(id=asset.asset_id, **data)


class WorkflowResponse(CamelModel):
    id: str
    type: WorkflowType
    status: WorkflowStatus
    asset_id: str
    asset_name: str
    requested_change: Dict[str, Any]
    requester_id: str
    requester_name: str
    approver_id: Optional[str] = None
    approver_name: Optional[str] = None
    reason: str
    priority: WorkflowPriority
    comments: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    decided_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> "WorkflowResponse":
        return cls(
            id=workflow.workflow_id,
            type=workflow.type,
            status=workflow.status,
            asset_id=workflow.asset_id,
            asset_name=workflow.asset_name,
            requested_change=workflow.requested_change.model_dump(mode="json"),
            requester_id=workflow.requester_id,
            requester_name=workflow.requester_name,
            approver_id=workflow.approver_id,
            approver_name=workflow.approver_name,
            reason=workflow.reason,
            priority=workflow.priority,
            comments=workflow.comments,
            created_at=workflow.created_at,
            updated_at=workflow.updated_at,
            decided_at=workflow.decided_at,
            approved_at=workflow.decided_at if workflow.status == WorkflowStatus.APPROVED else None
        )


class AuditEntryResponse(CamelModel):
    id: str
    timestamp: datetime
    actor_id: str
    actor_name: str
    action: AuditAction
    resource_type: ResourceType
    resource_id: str
    asset_id: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    details: Dict[str, Any]
    correlation_id: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: AuditEntry) -> "AuditEntryResponse":
        data = entry.model_dump(exclude={"audit_entry_id"})
        return cls(id=entry.audit_entry_id, **data)


class DecisionResponse(CamelModel):
    asset: AssetResponse
    workflow: WorkflowResponse


class RegisterAssetResponse(CamelModel):
    asset: AssetResponse
    workflow: Optional[WorkflowResponse] = None


class WorkflowListResponse(CamelModel):
    items: List[WorkflowResponse]
    page: int
    page_size: int
    total: int


class AssetListResponse(CamelModel):
    items: List[AssetResponse]
    page: int
    page_size: int
    total: int


class AssetStatsResponse(CamelModel):
    total: int
    online: int
    offline: int
    maintenance: int
    decommissioned: int
    pending: int


class WorkflowStatsResponse(CamelModel):
    by_status: Dict[str, int]
    by_type: Dict[str, int]
