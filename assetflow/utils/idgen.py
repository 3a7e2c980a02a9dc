"""ID Generation Utilities"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from ..domain.enums import AssetType


# Asset id prefixes per asset type
ASSET_ID_PREFIXES = {
    AssetType.SERVER: "SRV",
    AssetType.NETWORK: "NET",
    AssetType.STORAGE: "STG",
    AssetType.WORKSTATION: "WS",
}

DEFAULT_ASSET_PREFIX = "AST"


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'WF', 'AUD')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('WF')
        'WF-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_workflow_id() -> str:
    """Generate workflow ID"""
    return generate_id("WF")


def generate_audit_entry_id() -> str:
    """Generate audit entry ID"""
    return generate_id("AUD")


def asset_id_prefix(asset_type: AssetType) -> str:
    """Prefix used for sequential asset ids of the given type"""
    return ASSET_ID_PREFIXES.get(asset_type, DEFAULT_ASSET_PREFIX)


def format_asset_id(prefix: str, sequence: int) -> str:
    """
    Format a sequential asset id

    Examples:
        >>> format_asset_id('SRV', 1)
        'SRV-001'
    """
    return f"{prefix}-{sequence:03d}"


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
