from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.deps import get_current_user
from app.models.user import User
from app.services import places as places_service
from app.services.rate_limit import search_rate_limit

router = APIRouter()


class AddressValidationRequest(BaseModel):
    address: str = ""
    city: str = ""
    province: str = ""
    postal_code: str | None = None


@router.get("/autocomplete", dependencies=[Depends(search_rate_limit)])
async def places_autocomplete(
    q: str = Query(""),
    country: str = Query("za", min_length=2, max_length=2),
    user: User = Depends(get_current_user),
):
    """Address suggestions from Google Places."""
    return {"predictions": await places_service.autocomplete(q, country)}


@router.get("/geocode")
async def places_geocode(place_id: str = Query(""), user: User = Depends(get_current_user)):
    return await places_service.geocode(place_id)


@router.get("/reverse-geocode")
async def places_reverse_geocode(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    user: User = Depends(get_current_user),
):
    return await places_service.reverse_geocode(lat, lng)


@router.post("/validate")
async def places_validate(body: AddressValidationRequest, user: User = Depends(get_current_user)):
    """South African address sanity checks; no external call."""
    validation = places_service.validate_address(body.address, body.city, body.province, body.postal_code)
    return {"validation": validation}
