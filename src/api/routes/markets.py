"""Public market endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends
from supabase import Client

from src.api.dependencies import get_supabase
from src.api.models import ErrorResponse
from src.models.schemas import Market
from src.services import markets as market_service

router = APIRouter(prefix="/markets", tags=["Markets"])


@router.get(
    "",
    response_model=list[Market],
    summary="List markets",
    description="Active markets ordered by name.",
)
def list_markets(supabase: Client = Depends(get_supabase)) -> list[Market]:
    return market_service.list_markets(supabase, active_only=True)


@router.get(
    "/{market_id}",
    response_model=Market,
    summary="Get a market",
    responses={404: {"model": ErrorResponse, "description": "Market not found"}},
)
def get_market(market_id: UUID, supabase: Client = Depends(get_supabase)) -> Market:
    return market_service.get_market(supabase, market_id)
