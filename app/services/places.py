"""Google Places / Geocoding lookups and South African address checks."""

import re
from typing import Any

import httpx

from app.core.config import get_settings
from app.core.exceptions import BadGatewayError, BadRequestError, NotFoundError, ServiceUnavailableError
from app.core.logging import get_logger

log = get_logger(__name__)

SA_PROVINCES = (
    "Eastern Cape",
    "Free State",
    "Gauteng",
    "KwaZulu-Natal",
    "Limpopo",
    "Mpumalanga",
    "Northern Cape",
    "North West",
    "Western Cape",
)
MIN_QUERY_LENGTH = 3
REQUEST_TIMEOUT = 10

_POSTAL_CODE_RE = re.compile(r"^\d{4}$")
_DIGIT_RE = re.compile(r"\d+")


async def _get(path: str, params: dict[str, Any], ok_statuses: tuple[str, ...] = ("OK",)) -> dict[str, Any]:
    settings = get_settings()
    if not settings.google_places_api_key:
        raise ServiceUnavailableError("Places API not configured")
    url = f"{settings.google_maps_base_url}/{path}"
    try:
        async with httpx.AsyncClient() as client:
            resp = await client.get(
                url,
                params={**params, "key": settings.google_places_api_key, "language": "en"},
                timeout=REQUEST_TIMEOUT,
            )
            resp.raise_for_status()
            data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        log.warning("places_request_failed", path=path, error=str(e))
        raise BadGatewayError("Places lookup failed") from e
    status = data.get("status")
    if status not in ok_statuses:
        log.warning("places_bad_status", path=path, status=status, error=data.get("error_message"))
        raise BadGatewayError("Places lookup failed")
    return data


def _components(raw: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    return [
        {"long_name": c.get("long_name"), "short_name": c.get("short_name"), "types": c.get("types", [])}
        for c in raw or []
    ]


async def autocomplete(q: str, country: str = "za") -> list[dict[str, Any]]:
    if not q or len(q.strip()) < MIN_QUERY_LENGTH:
        raise BadRequestError(f"Query must be at least {MIN_QUERY_LENGTH} characters long")
    data = await _get(
        "place/autocomplete/json",
        {"input": q.strip(), "components": f"country:{country}"},
        ok_statuses=("OK", "ZERO_RESULTS"),
    )
    return [
        {
            "place_id": p.get("place_id"),
            "description": p.get("description"),
            "structured_formatting": {
                "main_text": (p.get("structured_formatting") or {}).get("main_text") or p.get("description"),
                "secondary_text": (p.get("structured_formatting") or {}).get("secondary_text") or "",
            },
        }
        for p in data.get("predictions") or []
    ]


async def geocode(place_id: str) -> dict[str, Any]:
    if not place_id:
        raise BadRequestError("Place ID is required")
    data = await _get(
        "place/details/json",
        {"place_id": place_id, "fields": "formatted_address,geometry,address_component"},
    )
    place = data.get("result") or {}
    location = (place.get("geometry") or {}).get("location")
    if not location:
        raise BadRequestError("Location not found for this place")
    return {
        "lat": location["lat"],
        "lng": location["lng"],
        "formatted_address": place.get("formatted_address"),
        "address_components": _components(place.get("address_components")),
    }


async def reverse_geocode(lat: float, lng: float) -> dict[str, Any]:
    data = await _get("geocode/json", {"latlng": f"{lat},{lng}"}, ok_statuses=("OK", "ZERO_RESULTS"))
    results = data.get("results") or []
    if not results:
        raise NotFoundError("No address found for these coordinates")
    first = results[0]
    return {
        "lat": lat,
        "lng": lng,
        "formatted_address": first.get("formatted_address"),
        "address_components": _components(first.get("address_components")),
    }


def validate_address(address: str, city: str, province: str, postal_code: str | None = None) -> dict[str, Any]:
    """
    Offline checks only. Province and postal code problems make the address
    invalid; a short address or missing street number only adds hints.
    """
    if not address or not city or not province:
        raise BadRequestError("Address, city, and province are required")
    issues: list[str] = []
    suggestions: list[str] = []
    is_valid = True
    if province not in SA_PROVINCES:
        is_valid = False
        issues.append("Invalid province specified")
        suggestions.append("Please select a valid South African province")
    if postal_code and not _POSTAL_CODE_RE.match(postal_code):
        is_valid = False
        issues.append("Invalid postal code format")
        suggestions.append("South African postal codes should be 4 digits")
    if len(address) < 10:
        issues.append("Address seems too short")
        suggestions.append("Please provide a complete street address")
    if not _DIGIT_RE.search(address):
        issues.append("No street number found")
        suggestions.append("Please include a street number in the address")
    return {"is_valid": is_valid, "issues": issues, "suggestions": suggestions}
