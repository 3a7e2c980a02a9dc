"""Workflow API Routes - Submission, decisions and workflow queries"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from ..deps import (
    get_correlation_id_dep, get_current_user_dep, get_engine_dep, get_query_service_dep
)
from ..schemas import (
    DecisionRequest, DecisionResponse, AssetResponse, SubmitWorkflowRequest,
    WorkflowListResponse, WorkflowResponse, WorkflowStatsResponse
)
from ...domain.enums import Decision, WorkflowPriority, WorkflowStatus, WorkflowType
from ...domain.models import ActorContext, WorkflowFilter, WorkflowIntent
from ...engine.engine import WorkflowEngine
from ...services.query_service import QueryService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(dependencies=[Depends(get_correlation_id_dep)])


# ============================================================================
# Routes
# ============================================================================

@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def submit_workflow(
    request: SubmitWorkflowRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """
    Submit a lifecycle workflow

    Creates a pending workflow and locks the asset until it is decided.
    """
    workflow = engine.submit(
        WorkflowIntent(
            asset_id=request.asset_id,
            workflow_type=request.type,
            requested_change=request.requested_change,
            reason=request.reason,
            priority=request.priority
        ),
        actor
    )
    return WorkflowResponse.from_workflow(workflow)


@router.get("", response_model=WorkflowListResponse)
async def list_workflows(
    workflow_status: Optional[WorkflowStatus] = Query(None, alias="status"),
    workflow_type: Optional[WorkflowType] = Query(None, alias="type"),
    asset_id: Optional[str] = Query(None, alias="assetId"),
    requester_id: Optional[str] = Query(None, alias="requesterId"),
    priority: Optional[WorkflowPriority] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """List workflows, newest first"""
    workflow_filter = WorkflowFilter(
        status=workflow_status,
        workflow_type=workflow_type,
        asset_id=asset_id,
        requester_id=requester_id,
        priority=priority
    )
    skip = (page - 1) * page_size
    workflows = engine.list_workflows(workflow_filter, skip=skip, limit=page_size)
    return WorkflowListResponse(
        items=[WorkflowResponse.from_workflow(w) for w in workflows],
        page=page,
        page_size=page_size,
        total=engine.count_workflows(workflow_filter)
    )


@router.get("/pending", response_model=WorkflowListResponse)
async def list_pending_workflows(
    workflow_type: Optional[WorkflowType] = Query(None, alias="type"),
    asset_id: Optional[str] = Query(None, alias="assetId"),
    priority: Optional[WorkflowPriority] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """Approval queue"""
    workflow_filter = WorkflowFilter(
        status=WorkflowStatus.PENDING,
        workflow_type=workflow_type,
        asset_id=asset_id,
        priority=priority
    )
    skip = (page - 1) * page_size
    workflows = engine.list_pending(workflow_filter, skip=skip, limit=page_size)
    return WorkflowListResponse(
        items=[WorkflowResponse.from_workflow(w) for w in workflows],
        page=page,
        page_size=page_size,
        total=engine.count_workflows(workflow_filter)
    )


@router.get("/stats", response_model=WorkflowStatsResponse)
async def get_workflow_stats(
    actor: ActorContext = Depends(get_current_user_dep),
    query_service: QueryService = Depends(get_query_service_dep)
):
    """Workflow counts by status and by type"""
    return WorkflowStatsResponse(**query_service.workflow_stats())


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(
    workflow_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """Get a workflow by ID"""
    return WorkflowResponse.from_workflow(engine.get_workflow(workflow_id))


async def _decide(
    workflow_id: str,
    decision: Decision,
    request: Optional[DecisionRequest],
    actor: ActorContext,
    engine: WorkflowEngine
) -> DecisionResponse:
    comments = request.comments if request else None
    asset, workflow = engine.decide(workflow_id, decision, actor, comments)
    return DecisionResponse(
        asset=AssetResponse.from_asset(asset),
        workflow=WorkflowResponse.from_workflow(workflow)
    )


@router.put("/{workflow_id}/approve", response_model=DecisionResponse)
async def approve_workflow(
    workflow_id: str,
    request: Optional[DecisionRequest] = None,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """
    Approve a pending workflow

    Applies the requested change to the asset and releases its lock.
    """
    return await _decide(workflow_id, Decision.APPROVE, request, actor, engine)


@router.put("/{workflow_id}/reject", response_model=DecisionResponse)
async def reject_workflow(
    workflow_id: str,
    request: Optional[DecisionRequest] = None,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """
    Reject a pending workflow

    Leaves the asset status unchanged and releases its lock.
    """
    return await _decide(workflow_id, Decision.REJECT, request, actor, engine)
