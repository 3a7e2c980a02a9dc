"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Depends, Header, Request

from ..domain.models import ActorContext
from ..domain.errors import AuthenticationError
from ..engine.engine import WorkflowEngine
from ..repositories import get_store
from ..repositories.base import LifecycleStore
from ..services.query_service import QueryService
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


async def get_correlation_id_dep(
    request: Request,
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    Prefers the ID the middleware echoes on the response, then the client's
    X-Correlation-Id, and otherwise generates a new one.
    """
    correlation_id = (
        getattr(request.state, "correlation_id", None)
        or x_correlation_id
        or generate_correlation_id()
    )
    set_correlation_id(correlation_id)
    return correlation_id


async def get_current_user_dep(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
    x_user_roles: Optional[str] = Header(None, alias="X-User-Roles")
) -> ActorContext:
    """
    Build the caller identity from headers set by the authenticating proxy

    Identity is verified upstream; this only shapes it for the engine.

    Raises:
        AuthenticationError: if the user id header is missing
    """
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError(
            "Identity context is missing",
            details={"header": "X-User-Id"}
        )

    roles = [role.strip() for role in (x_user_roles or "").split(",") if role.strip()]
    return ActorContext(
        user_id=x_user_id.strip(),
        display_name=(x_user_name or x_user_id).strip(),
        roles=roles
    )


def get_store_dep() -> LifecycleStore:
    """Process-wide lifecycle store"""
    return get_store()


def get_engine_dep(store: LifecycleStore = Depends(get_store_dep)) -> WorkflowEngine:
    """Engine bound to the current store; cheap to build per request"""
    return WorkflowEngine(store)


def get_query_service_dep(store: LifecycleStore = Depends(get_store_dep)) -> QueryService:
    return QueryService(store)
