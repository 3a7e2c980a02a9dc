"""Asset API Routes - Registration, lifecycle requests and asset queries

There is no direct status write: every status change goes through a workflow.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from ..deps import (
    get_correlation_id_dep, get_current_user_dep, get_engine_dep, get_query_service_dep
)
from ..schemas import (
    AssetListResponse, AssetResponse, AssetStatsResponse, AuditEntryResponse,
    MaintenanceRequest, RegisterAssetRequest, RegisterAssetResponse,
    StatusChangeRequest, WorkflowResponse
)
from ...domain.enums import AssetStatus, AssetType, WorkflowType
from ...domain.models import (
    ActorContext, AssetFilter, MaintenanceChange, StatusChange, WorkflowIntent
)
from ...engine.engine import WorkflowEngine
from ...services.query_service import QueryService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(dependencies=[Depends(get_correlation_id_dep)])


@router.post("", response_model=RegisterAssetResponse, status_code=status.HTTP_201_CREATED)
async def register_asset(
    request: RegisterAssetRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """
    Register a new asset

    Depending on configuration the asset either waits offline for an
    onboarding approval or goes live in its requested initial status.
    """
    asset, workflow = engine.register_asset(request.to_create(), actor)
    return RegisterAssetResponse(
        asset=AssetResponse.from_asset(asset),
        workflow=WorkflowResponse.from_workflow(workflow) if workflow else None
    )


@router.get("", response_model=AssetListResponse)
async def list_assets(
    asset_status: Optional[AssetStatus] = Query(None, alias="status"),
    asset_type: Optional[AssetType] = Query(None, alias="type"),
    location: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Match on asset id or name"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    actor: ActorContext = Depends(get_current_user_dep),
    query_service: QueryService = Depends(get_query_service_dep)
):
    """List assets ordered by ID"""
    asset_filter = AssetFilter(
        status=asset_status,
        type=asset_type,
        location=location,
        department=department,
        search=search
    )
    skip = (page - 1) * page_size
    assets = query_service.list_assets(asset_filter, skip=skip, limit=page_size)
    return AssetListResponse(
        items=[AssetResponse.from_asset(a) for a in assets],
        page=page,
        page_size=page_size,
        total=query_service.count_assets(asset_filter)
    )


@router.get("/stats", response_model=AssetStatsResponse)
async def get_asset_stats(
    actor: ActorContext = Depends(get_current_user_dep),
    query_service: QueryService = Depends(get_query_service_dep)
):
    """Asset counts per status plus assets awaiting a decision"""
    return AssetStatsResponse(**query_service.asset_stats())


@router.get("/{asset_id}", response_model=AssetResponse)
async def get_asset(
    asset_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """Get an asset by ID"""
    return AssetResponse.from_asset(engine.get_asset(asset_id))


@router.get("/{asset_id}/workflows", response_model=List[WorkflowResponse])
async def get_asset_workflows(
    asset_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200, alias="pageSize"),
    actor: ActorContext = Depends(get_current_user_dep),
    query_service: QueryService = Depends(get_query_service_dep)
):
    """Workflow history of an asset, newest first"""
    workflows = query_service.asset_workflows(asset_id, skip=(page - 1) * page_size, limit=page_size)
    return [WorkflowResponse.from_workflow(w) for w in workflows]


@router.get("/{asset_id}/audit", response_model=List[AuditEntryResponse])
async def get_asset_audit(
    asset_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=500, alias="pageSize"),
    actor: ActorContext = Depends(get_current_user_dep),
    query_service: QueryService = Depends(get_query_service_dep)
):
    """Audit trail of an asset, newest first"""
    entries = query_service.asset_audit(asset_id, skip=(page - 1) * page_size, limit=page_size)
    return [AuditEntryResponse.from_entry(e) for e in entries]


@router.delete("/{asset_id}", response_model=WorkflowResponse, status_code=status.HTTP_202_ACCEPTED)
async def delete_asset(
    asset_id: str,
    reason: str = Query("Asset decommission requested", max_length=2000),
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """
    Request decommissioning of an asset

    The asset is not removed. A pending decommission workflow is created.
    """
    workflow = engine.delete_asset(asset_id, actor, reason=reason)
    return WorkflowResponse.from_workflow(workflow)


@router.post(
    "/{asset_id}/maintenance",
    response_model=WorkflowResponse,
    status_code=status.HTTP_201_CREATED
)
async def request_maintenance(
    asset_id: str,
    request: MaintenanceRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """Request that an asset be taken into maintenance"""
    workflow = engine.submit(
        WorkflowIntent(
            asset_id=asset_id,
            workflow_type=WorkflowType.MAINTENANCE,
            requested_change=MaintenanceChange(),
            reason=request.reason,
            priority=request.priority
        ),
        actor
    )
    return WorkflowResponse.from_workflow(workflow)


@router.post(
    "/{asset_id}/status-change",
    response_model=WorkflowResponse,
    status_code=status.HTTP_201_CREATED
)
async def request_status_change(
    asset_id: str,
    request: StatusChangeRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """Request an online/offline switch; omitting status toggles"""
    workflow = engine.submit(
        WorkflowIntent(
            asset_id=asset_id,
            workflow_type=WorkflowType.STATUS_CHANGE,
            requested_change=StatusChange(status=request.status),
            reason=request.reason,
            priority=request.priority
        ),
        actor
    )
    return WorkflowResponse.from_workflow(workflow)
