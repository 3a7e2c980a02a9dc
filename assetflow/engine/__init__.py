"""Workflow Engine - The brain of the system"""
from .engine import WorkflowEngine
from .permission_guard import PermissionGuard
from .audit_writer import AuditWriter
from .consistency import ConsistencyReport, check_store, find_duplicate_pending, validate

__all__ = [
    "WorkflowEngine",
    "PermissionGuard",
    "AuditWriter",
    "ConsistencyReport",
    "check_store",
    "find_duplicate_pending",
    "validate",
]
