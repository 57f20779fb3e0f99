"""Business directory endpoints for the Aba Directory API.

Public search and detail views, listing creation by users and agents, and
owner/admin edits (details, logo and GPS location).
"""

from typing import Literal, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, File, Query, UploadFile
from supabase import Client

from src.api.dependencies import get_current_user, get_geocoder, get_storage, get_supabase
from src.api.models import BusinessListResponse, ErrorResponse, LocationUpdate
from src.models.schemas import Business, BusinessCreate, BusinessUpdate, CurrentUser
from src.services import businesses as business_service
from src.services.geocoding import ReverseGeocoder
from src.services.storage import StorageService, read_upload

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/businesses", tags=["Businesses"])


@router.get(
    "",
    response_model=BusinessListResponse,
    summary="Search businesses",
    description="Search active businesses by name, category, market or location.",
)
def search_businesses(
    q: Optional[str] = Query(None, max_length=200, description="Matches name or description"),
    category_id: Optional[UUID] = Query(None),
    market_id: Optional[UUID] = Query(None),
    location: Optional[str] = Query(None, max_length=200, description="Matches address"),
    sort_by: Literal["name", "newest"] = Query("name"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    supabase: Client = Depends(get_supabase),
) -> BusinessListResponse:
    businesses, total = business_service.search_businesses(
        supabase,
        q=q,
        category_id=category_id,
        market_id=market_id,
        location=location,
        sort_by=sort_by,
        limit=limit,
        offset=offset,
    )
    return BusinessListResponse(businesses=businesses, total=total, limit=limit, offset=offset)


@router.get(
    "/{business_id}",
    response_model=Business,
    summary="Get a business",
    responses={404: {"model": ErrorResponse, "description": "Business not found"}},
)
def get_business(
    business_id: UUID,
    supabase: Client = Depends(get_supabase),
) -> Business:
    return business_service.get_business(supabase, business_id)


@router.post(
    "",
    response_model=Business,
    status_code=201,
    summary="Create a business",
    description="Create a listing owned by the caller. Agents get registration credit.",
    responses={
        201: {"description": "Business created"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        422: {"model": ErrorResponse, "description": "Invalid business data"},
    },
)
async def create_business(
    payload: BusinessCreate,
    user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
) -> Business:
    """
    Create a new business listing.

    **Parameters:**
    - **name**: Business name (required)
    - **business_type**: Category title, used when category_id is not given
    - **market_id** / **market_name**: Market the business trades in
    - **services**: Offered services; blanks and duplicates are dropped
    - **latitude** / **longitude**: Optional GPS fix
    """
    return await business_service.create_business(supabase, user, payload)


@router.put(
    "/{business_id}",
    response_model=Business,
    summary="Update a business",
    responses={
        403: {"model": ErrorResponse, "description": "Caller is not the owner or an admin"},
        404: {"model": ErrorResponse, "description": "Business not found"},
    },
)
async def update_business(
    business_id: UUID,
    changes: BusinessUpdate,
    user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
) -> Business:
    return await business_service.update_business(supabase, user, business_id, changes)


@router.post(
    "/{business_id}/logo",
    response_model=Business,
    summary="Upload a business logo",
    description="Upload a JPEG, PNG, WebP or GIF logo (max 5 MB).",
)
async def upload_logo(
    business_id: UUID,
    file: UploadFile = File(..., description="Logo image"),
    user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
    storage: StorageService = Depends(get_storage),
) -> Business:
    content = await read_upload(file)
    return await business_service.upload_business_logo(
        supabase, storage, user, business_id, content, file.content_type
    )


@router.post(
    "/{business_id}/location",
    response_model=Business,
    summary="Record business location",
    description="Store a GPS fix and reverse-geocode it to a detected address.",
)
async def set_location(
    business_id: UUID,
    location: LocationUpdate,
    user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
    geocoder: ReverseGeocoder = Depends(get_geocoder),
) -> Business:
    return await business_service.set_business_location(
        supabase,
        geocoder,
        user,
        business_id,
        location.latitude,
        location.longitude,
        location.accuracy,
    )
