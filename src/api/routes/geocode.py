"""Reverse geocoding endpoint backed by Nominatim."""

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_current_user, get_geocoder
from src.api.models import ErrorResponse, ReverseGeocodeResponse
from src.models.schemas import CurrentUser
from src.services.geocoding import ReverseGeocoder

router = APIRouter(prefix="/geocode", tags=["Geocoding"])


@router.get(
    "/reverse",
    response_model=ReverseGeocodeResponse,
    summary="Reverse geocode coordinates",
    responses={
        422: {"model": ErrorResponse, "description": "Coordinates out of range"},
        502: {"model": ErrorResponse, "description": "Geocoder error"},
        503: {"model": ErrorResponse, "description": "Geocoder unavailable"},
    },
)
async def reverse_geocode(
    lat: float = Query(..., description="Latitude in degrees"),
    lon: float = Query(..., description="Longitude in degrees"),
    user: CurrentUser = Depends(get_current_user),
    geocoder: ReverseGeocoder = Depends(get_geocoder),
) -> ReverseGeocodeResponse:
    address = await geocoder.reverse(lat, lon)
    return ReverseGeocodeResponse(latitude=lat, longitude=lon, address=address)
