"""Public business category endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends
from supabase import Client

from src.api.dependencies import get_supabase
from src.api.models import ViewRecordedResponse
from src.models.schemas import BusinessCategory
from src.services import categories as category_service

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get(
    "",
    response_model=list[BusinessCategory],
    summary="List categories",
    description="All business categories ordered by title.",
)
def list_categories(supabase: Client = Depends(get_supabase)) -> list[BusinessCategory]:
    return category_service.list_categories(supabase)


@router.post(
    "/{category_id}/views",
    response_model=ViewRecordedResponse,
    summary="Record a category view",
    description="Best-effort view counter; never fails the request.",
)
async def record_view(
    category_id: UUID,
    supabase: Client = Depends(get_supabase),
) -> ViewRecordedResponse:
    recorded = await category_service.record_category_view(supabase, category_id)
    return ViewRecordedResponse(category_id=category_id, recorded=recorded)
