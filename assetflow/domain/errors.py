"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400
    retryable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authentication & Authorization Errors
class AuthenticationError(DomainError):
    """Identity context missing or malformed"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class AuthorizationError(DomainError):
    """User lacks permission for action"""
    error_code = "AUTHORIZATION_ERROR"
    http_status = 403


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class IllegalTransitionError(ValidationError):
    """Requested change is not a legal move from the asset's current status"""
    error_code = "ILLEGAL_TRANSITION"


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class AssetNotFoundError(NotFoundError):
    """Asset not found"""
    error_code = "ASSET_NOT_FOUND"


class WorkflowNotFoundError(NotFoundError):
    """Workflow not found"""
    error_code = "WORKFLOW_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict"""
    error_code = "CONFLICT"
    http_status = 409


class AssetLockedError(ConflictError):
    """Asset already has a pending workflow"""
    error_code = "ASSET_LOCKED"


class InvalidStateError(ConflictError):
    """Action not valid for current state (e.g. deciding a decided workflow)"""
    error_code = "INVALID_STATE"


class ConcurrencyError(ConflictError):
    """Optimistic concurrency conflict"""
    error_code = "CONCURRENCY_CONFLICT"
    retryable = True


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


# Store Errors
class TransientStoreError(DomainError):
    """Store timeout or connection fault - safe to retry the whole call"""
    error_code = "STORE_UNAVAILABLE"
    http_status = 503
    retryable = True
