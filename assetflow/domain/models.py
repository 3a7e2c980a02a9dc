"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from .enums import (
    AssetType, AssetStatus, WorkflowType, WorkflowStatus, WorkflowPriority,
    AuditAction, ResourceType
)


# ============================================================================
# Identity
# ============================================================================

class ActorContext(BaseModel):
    """Pre-verified caller identity handed to the engine"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., min_length=1, description="Stable user identifier")
    display_name: str = Field(..., description="User display name")
    roles: List[str] = Field(default_factory=list, description="Assigned roles")

    def has_any_role(self, roles: List[str]) -> bool:
        """Case-insensitive role membership check"""
        held = {role.lower() for role in self.roles}
        return any(role.lower() in held for role in roles)


# ============================================================================
# Requested Changes (closed tagged union, discriminated by ``kind``)
# ============================================================================

def _require_status(value: AssetStatus, expected: AssetStatus) -> AssetStatus:
    if value != expected:
        raise ValueError(f"status must be '{expected.value}'")
    return value


class OnboardingChange(BaseModel):
    """Bring a newly registered asset into service"""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["onboarding"] = "onboarding"
    status: AssetStatus = AssetStatus.ONLINE

    @field_validator("status")
    @classmethod
    def _online_only(cls, v: AssetStatus) -> AssetStatus:
        return _require_status(v, AssetStatus.ONLINE)


class StatusChange(BaseModel):
    """Switch between online and offline (None toggles)"""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["status-change"] = "status-change"
    status: Optional[AssetStatus] = Field(
        None, description="Target status; omitted means toggle online/offline"
    )

    @field_validator("status")
    @classmethod
    def _online_or_offline(cls, v: Optional[AssetStatus]) -> Optional[AssetStatus]:
        if v is not None and v not in (AssetStatus.ONLINE, AssetStatus.OFFLINE):
            raise ValueError("status must be 'online' or 'offline'")
        return v


class MaintenanceChange(BaseModel):
    """Take an asset into maintenance"""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["maintenance"] = "maintenance"
    status: AssetStatus = AssetStatus.MAINTENANCE

    @field_validator("status")
    @classmethod
    def _maintenance_only(cls, v: AssetStatus) -> AssetStatus:
        return _require_status(v, AssetStatus.MAINTENANCE)


class DecommissionChange(BaseModel):
    """Retire an asset permanently"""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["decommission"] = "decommission"
    status: AssetStatus = AssetStatus.DECOMMISSIONED

    @field_validator("status")
    @classmethod
    def _decommissioned_only(cls, v: AssetStatus) -> AssetStatus:
        return _require_status(v, AssetStatus.DECOMMISSIONED)


RequestedChange = Annotated[
    Union[OnboardingChange, StatusChange, MaintenanceChange, DecommissionChange],
    Field(discriminator="kind")
]


# ============================================================================
# Asset
# ============================================================================

class Asset(BaseModel):
    """Canonical configuration item record"""
    model_config = ConfigDict(extra="ignore")

    asset_id: str = Field(..., description="Asset ID (e.g. SRV-001)")
    name: str
    type: AssetType
    status: AssetStatus = AssetStatus.OFFLINE
    location: str = ""
    description: str = ""
    owner: Optional[str] = None
    department: Optional[str] = None
    ip_address: Optional[str] = None

    # Cost tracking
    purchase_price: float = 0.0
    annual_cost: float = 0.0
    currency: str = "USD"

    tags: List[str] = Field(default_factory=list)

    created_at: datetime
    updated_at: datetime
    onboarded_at: Optional[datetime] = None

    # Set while a workflow is pending; locks the asset against new submissions
    active_workflow_id: Optional[str] = None

    # Optimistic concurrency counter
    version: int = 1

    @property
    def is_locked(self) -> bool:
        return self.active_workflow_id is not None

    @property
    def is_decommissioned(self) -> bool:
        return self.status == AssetStatus.DECOMMISSIONED

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy used for audit before/after images"""
        return self.model_dump(mode="json", exclude={"version"})


# ============================================================================
# Workflow
# ============================================================================

class Workflow(BaseModel):
    """One lifecycle request against one asset"""
    model_config = ConfigDict(extra="ignore")

    workflow_id: str = Field(..., description="Workflow ID (WF-xxxx)")
    type: WorkflowType
    asset_id: str
    asset_name: str = ""
    requested_change: RequestedChange

    requester_id: str
    requester_name: str = ""
    approver_id: Optional[str] = None
    approver_name: Optional[str] = None

    status: WorkflowStatus = WorkflowStatus.PENDING
    reason: str = ""
    priority: WorkflowPriority = WorkflowPriority.MEDIUM
    comments: Optional[str] = None

    created_at: datetime
    updated_at: datetime
    decided_at: Optional[datetime] = None

    version: int = 1

    @model_validator(mode="after")
    def _change_matches_type(self) -> "Workflow":
        if self.requested_change.kind != self.type.value:
            raise ValueError(
                f"requested_change kind '{self.requested_change.kind}' "
                f"does not match workflow type '{self.type.value}'"
            )
        return self

    @property
    def is_pending(self) -> bool:
        return self.status == WorkflowStatus.PENDING


# ============================================================================
# Audit
# ============================================================================

class FieldChange(BaseModel):
    """A single field difference between two asset snapshots"""
    field: str
    old_value: Any = None
    new_value: Any = None


class AuditEntry(BaseModel):
    """Append-only ledger entry, one per committed mutation"""
    model_config = ConfigDict(extra="ignore")

    audit_entry_id: str = Field(..., description="Idempotency key (AUD-xxxx)")
    timestamp: datetime
    actor_id: str
    actor_name: str = ""
    action: AuditAction
    resource_type: ResourceType
    resource_id: str
    asset_id: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    correlation_id: Optional[str] = None


# ============================================================================
# Engine Inputs
# ============================================================================

class WorkflowIntent(BaseModel):
    """A request to change an asset through a workflow"""
    model_config = ConfigDict(extra="forbid")

    asset_id: str = Field(..., min_length=1)
    workflow_type: WorkflowType
    requested_change: Optional[RequestedChange] = Field(
        None, description="Defaults to the canonical change for the workflow type"
    )
    reason: str = Field("", max_length=2000)
    priority: WorkflowPriority = WorkflowPriority.MEDIUM


class AssetCreate(BaseModel):
    """Registration payload for a new configuration item"""
    model_config = ConfigDict(extra="forbid")

    asset_id: Optional[str] = Field(None, min_length=1, max_length=64)
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
    # Honoured only when onboarding approval is not required
    initial_status: AssetStatus = AssetStatus.OFFLINE
    reason: str = Field("New asset registration", max_length=2000)
    priority: WorkflowPriority = WorkflowPriority.MEDIUM


class WorkflowFilter(BaseModel):
    """Workflow listing filter"""
    status: Optional[WorkflowStatus] = None
    workflow_type: Optional[WorkflowType] = None
    asset_id: Optional[str] = None
    requester_id: Optional[str] = None
    priority: Optional[WorkflowPriority] = None


class AssetFilter(BaseModel):
    """Asset listing filter"""
    status: Optional[AssetStatus] = None
    type: Optional[AssetType] = None
    location: Optional[str] = None
    department: Optional[str] = None
    search: Optional[str] = Field(None, description="Substring match on id or name")
    locked: Optional[bool] = None
