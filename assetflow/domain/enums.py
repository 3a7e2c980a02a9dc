"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class AssetType(str, Enum):
    """Kinds of configuration item"""
    SERVER = "server"
    NETWORK = "network"
    STORAGE = "storage"
    WORKSTATION = "workstation"


class AssetStatus(str, Enum):
    """Operational status of an asset"""
    ONLINE = "online"
    OFFLINE = "offline"
    MAINTENANCE = "maintenance"
    DECOMMISSIONED = "decommissioned"  # Terminal, the row is never deleted


class WorkflowType(str, Enum):
    """Lifecycle request kinds - also the discriminator of requested changes"""
    ONBOARDING = "onboarding"
    STATUS_CHANGE = "status-change"
    MAINTENANCE = "maintenance"
    DECOMMISSION = "decommission"


class WorkflowStatus(str, Enum):
    """Workflow status - approved and rejected are terminal"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WorkflowPriority(str, Enum):
    """Workflow priority"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Decision(str, Enum):
    """Approver decision on a pending workflow"""
    APPROVE = "approve"
    REJECT = "reject"


class AuditAction(str, Enum):
    """Audit ledger actions"""
    ASSET_REGISTERED = "asset_registered"
    WORKFLOW_SUBMITTED = "workflow_submitted"
    WORKFLOW_APPROVED = "workflow_approved"
    WORKFLOW_REJECTED = "workflow_rejected"


class ResourceType(str, Enum):
    """Resource referenced by an audit entry"""
    ASSET = "asset"
    WORKFLOW = "workflow"
