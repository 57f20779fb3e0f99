"""Admin console endpoints for the Aba Directory API.

Every route here requires the caller's users row to carry the admin role.
Covers listing moderation, market and category management, KYC review,
agent management and performance, the activity log and dashboard widgets.
"""

from typing import Literal, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from supabase import Client

from src.api.dependencies import get_storage, get_supabase, require_admin
from src.api.models import (
    ActivityListResponse,
    AdminBusinessListResponse,
    AgentListResponse,
    BusinessSummary,
    ErrorResponse,
    KycListResponse,
    RejectRequest,
    StatusUpdateRequest,
    UploadResponse,
)
from src.models.schemas import (
    Agent,
    AgentStatus,
    AgentUpdate,
    Business,
    BusinessCategory,
    BusinessStatus,
    CategoryCreate,
    CategoryUpdate,
    CurrentUser,
    KycStatus,
    KycVerification,
    Market,
    MarketCreate,
    MarketUpdate,
)
from src.services import activities as activity_service
from src.services import agents as agent_service
from src.services import businesses as business_service
from src.services import categories as category_service
from src.services import kyc as kyc_service
from src.services import markets as market_service
from src.services.agent_performance import (
    PerformanceFilters,
    PerformanceReport,
    SortField,
    Timeframe,
    build_performance_report,
)
from src.services.categories import CategoryStats, RecountResult
from src.services.dashboard import DashboardStats, dashboard_stats
from src.services.kyc import KycStats
from src.services.markets import MarketStats
from src.services.storage import StorageService, read_upload

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Admin access required"},
    },
)


# =============================================================================
# Businesses
# =============================================================================


@router.get(
    "/businesses",
    response_model=AdminBusinessListResponse,
    summary="List all businesses",
    description="All listings regardless of status, with per-status totals.",
)
async def list_businesses(
    status: Optional[BusinessStatus] = Query(None),
    q: Optional[str] = Query(None, max_length=200),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> AdminBusinessListResponse:
    businesses, total, summary = await business_service.admin_list_businesses(
        supabase, status=status, q=q, limit=limit, offset=offset
    )
    return AdminBusinessListResponse(
        businesses=businesses,
        total=total,
        summary=BusinessSummary(**summary),
    )


@router.put(
    "/businesses/{business_id}/status",
    response_model=Business,
    summary="Change listing status",
)
async def set_business_status(
    business_id: UUID,
    request: StatusUpdateRequest,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> Business:
    return await business_service.set_business_status(supabase, admin, business_id, request.status)


@router.delete("/businesses/{business_id}", status_code=204, summary="Delete a business")
async def delete_business(
    business_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> Response:
    await business_service.delete_business(supabase, admin, business_id)
    return Response(status_code=204)


# =============================================================================
# Markets
# =============================================================================


@router.get("/markets", response_model=list[Market], summary="List all markets")
def list_markets(
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> list[Market]:
    return market_service.list_markets(supabase, active_only=False)


@router.get("/markets/stats", response_model=MarketStats, summary="Market statistics")
async def get_market_stats(
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> MarketStats:
    return await market_service.market_stats(supabase)


@router.post(
    "/markets",
    response_model=Market,
    status_code=201,
    summary="Create a market",
    responses={409: {"model": ErrorResponse, "description": "Duplicate market name"}},
)
async def create_market(
    payload: MarketCreate,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> Market:
    return await market_service.create_market(supabase, admin, payload)


@router.put(
    "/markets/{market_id}",
    response_model=Market,
    summary="Update a market",
    responses={409: {"model": ErrorResponse, "description": "Duplicate market name"}},
)
async def update_market(
    market_id: UUID,
    changes: MarketUpdate,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> Market:
    return await market_service.update_market(supabase, admin, market_id, changes)


@router.delete("/markets/{market_id}", status_code=204, summary="Delete a market")
async def delete_market(
    market_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> Response:
    await market_service.delete_market(supabase, admin, market_id)
    return Response(status_code=204)


@router.post("/markets/{market_id}/image", response_model=Market, summary="Upload a market image")
async def upload_market_image(
    market_id: UUID,
    file: UploadFile = File(...),
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
    storage: StorageService = Depends(get_storage),
) -> Market:
    content = await read_upload(file)
    return await market_service.upload_market_image(
        supabase, storage, market_id, content, file.content_type
    )


# =============================================================================
# Categories
# =============================================================================


@router.get(
    "/categories",
    response_model=list[BusinessCategory],
    summary="List categories with stats",
)
async def list_categories(
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> list[BusinessCategory]:
    return await category_service.admin_list_categories(supabase)


@router.get("/categories/stats", response_model=CategoryStats, summary="Category statistics")
async def get_category_stats(
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> CategoryStats:
    return await category_service.category_stats(supabase)


@router.post(
    "/categories/recount",
    response_model=RecountResult,
    summary="Recount businesses per category",
)
async def recount_categories(
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> RecountResult:
    return await category_service.refresh_category_counts(supabase, admin)


@router.post("/categories/image", response_model=UploadResponse, summary="Upload a category image")
async def upload_category_image(
    file: UploadFile = File(...),
    admin: CurrentUser = Depends(require_admin),
    storage: StorageService = Depends(get_storage),
) -> UploadResponse:
    content = await read_upload(file)
    url = await category_service.upload_category_image(storage, content, file.content_type)
    return UploadResponse(url=url)


@router.post(
    "/categories",
    response_model=BusinessCategory,
    status_code=201,
    summary="Create a category",
)
async def create_category(
    payload: CategoryCreate,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> BusinessCategory:
    return await category_service.create_category(supabase, admin, payload)


@router.put("/categories/{category_id}", response_model=BusinessCategory, summary="Update a category")
async def update_category(
    category_id: UUID,
    changes: CategoryUpdate,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> BusinessCategory:
    return await category_service.update_category(supabase, admin, category_id, changes)


@router.delete("/categories/{category_id}", status_code=204, summary="Delete a category")
async def delete_category(
    category_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> Response:
    await category_service.delete_category(supabase, admin, category_id)
    return Response(status_code=204)


# =============================================================================
# KYC
# =============================================================================


@router.get("/kyc", response_model=KycListResponse, summary="List KYC verifications")
def list_kyc(
    status: Optional[KycStatus] = Query(None),
    document_type: Optional[str] = Query(None, max_length=50),
    q: Optional[str] = Query(None, max_length=200, description="Matches user name, email or document number"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> KycListResponse:
    verifications, total = kyc_service.list_verifications(
        supabase,
        status=status,
        document_type=document_type,
        search=q,
        limit=limit,
        offset=offset,
    )
    return KycListResponse(verifications=verifications, total=total, limit=limit, offset=offset)


@router.get("/kyc/stats", response_model=KycStats, summary="KYC counts per status")
async def get_kyc_stats(
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> KycStats:
    return await kyc_service.kyc_stats(supabase)


@router.get(
    "/kyc/{verification_id}",
    response_model=KycVerification,
    summary="Get a KYC verification",
    responses={404: {"model": ErrorResponse, "description": "Verification not found"}},
)
def get_kyc(
    verification_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> KycVerification:
    return kyc_service.get_verification(supabase, verification_id)


@router.post(
    "/kyc/{verification_id}/approve",
    response_model=KycVerification,
    summary="Approve a KYC verification",
    responses={409: {"model": ErrorResponse, "description": "Verification is not pending"}},
)
async def approve_kyc(
    verification_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> KycVerification:
    return await kyc_service.approve_verification(supabase, admin, verification_id)


@router.post(
    "/kyc/{verification_id}/reject",
    response_model=KycVerification,
    summary="Reject a KYC verification",
    responses={
        409: {"model": ErrorResponse, "description": "Verification is not pending"},
        422: {"model": ErrorResponse, "description": "Missing rejection reason"},
    },
)
async def reject_kyc(
    verification_id: UUID,
    request: RejectRequest,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> KycVerification:
    return await kyc_service.reject_verification(supabase, admin, verification_id, request.reason)


# =============================================================================
# Agents
# =============================================================================


@router.get("/agents", response_model=AgentListResponse, summary="List agents")
def list_agents(
    status: Optional[AgentStatus] = Query(None),
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> AgentListResponse:
    agents = agent_service.list_agents(supabase, status)
    return AgentListResponse(agents=agents, total=len(agents))


@router.get(
    "/agents/performance",
    response_model=PerformanceReport,
    summary="Agent performance report",
    description=(
        "Per-agent metrics for the week (Sunday start), month or quarter. "
        "Filters and sorting narrow the agent table; totals cover all agents."
    ),
)
async def agent_performance(
    timeframe: Timeframe = Query("week"),
    search: Optional[str] = Query(None, max_length=200),
    department: Optional[str] = Query(None, max_length=100),
    status: Literal["all", "active", "inactive"] = Query("all"),
    sort_by: SortField = Query("completion_rate"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> PerformanceReport:
    filters = PerformanceFilters(
        search=search,
        department=department,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await build_performance_report(supabase, timeframe, filters)


@router.put("/agents/{agent_id}", response_model=Agent, summary="Update an agent")
async def update_agent(
    agent_id: UUID,
    changes: AgentUpdate,
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> Agent:
    return await agent_service.update_agent(supabase, admin, agent_id, changes)


# =============================================================================
# Activity Log & Dashboard
# =============================================================================


@router.get("/activities", response_model=ActivityListResponse, summary="Activity log")
def list_activities(
    activity_type: Optional[str] = Query(None, max_length=50),
    q: Optional[str] = Query(None, max_length=200, description="Matches the description"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> ActivityListResponse:
    activities, total = activity_service.list_activities(
        supabase, activity_type=activity_type, search=q, limit=limit, offset=offset
    )
    return ActivityListResponse(activities=activities, total=total, limit=limit, offset=offset)


@router.get("/dashboard", response_model=DashboardStats, summary="Admin dashboard widgets")
async def get_dashboard(
    admin: CurrentUser = Depends(require_admin),
    supabase: Client = Depends(get_supabase),
) -> DashboardStats:
    return await dashboard_stats(supabase)
