import pytest

from app.core.config import get_settings
from app.core.exceptions import BadRequestError, NotFoundError, ServiceUnavailableError
from app.services import places as places_service


def test_validate_address_ok():
    out = places_service.validate_address("12 Long Street", "Cape Town", "Western Cape", "8001")
    assert out == {"is_valid": True, "issues": [], "suggestions": []}


def test_validate_address_bad_province_and_postal_code():
    out = places_service.validate_address("12 Long Street", "Cape Town", "Cape", "80011")
    assert out["is_valid"] is False
    assert out["issues"] == ["Invalid province specified", "Invalid postal code format"]


def test_validate_address_hints_do_not_invalidate():
    out = places_service.validate_address("Main Rd", "Durban", "KwaZulu-Natal")
    assert out["is_valid"] is True
    assert "Address seems too short" in out["issues"]
    assert "No street number found" in out["issues"]


def test_validate_address_requires_fields():
    with pytest.raises(BadRequestError):
        places_service.validate_address("", "Durban", "KwaZulu-Natal")


@pytest.mark.asyncio
async def test_autocomplete_short_query():
    with pytest.raises(BadRequestError):
        await places_service.autocomplete("ab")


@pytest.mark.asyncio
async def test_autocomplete_without_key(monkeypatch):
    monkeypatch.setattr(get_settings(), "google_places_api_key", "")
    with pytest.raises(ServiceUnavailableError):
        await places_service.autocomplete("Sea Point")


@pytest.mark.asyncio
async def test_autocomplete_maps_predictions(monkeypatch):
    async def fake_get(path, params, ok_statuses=("OK",)):
        assert params["components"] == "country:za"
        return {
            "status": "OK",
            "predictions": [
                {
                    "place_id": "ChIJ1",
                    "description": "Sea Point, Cape Town, South Africa",
                    "structured_formatting": {"main_text": "Sea Point", "secondary_text": "Cape Town"},
                },
                {"place_id": "ChIJ2", "description": "Sea Point Promenade"},
            ],
        }

    monkeypatch.setattr(places_service, "_get", fake_get)
    out = await places_service.autocomplete("Sea Point")
    assert [p["place_id"] for p in out] == ["ChIJ1", "ChIJ2"]
    assert out[1]["structured_formatting"] == {"main_text": "Sea Point Promenade", "secondary_text": ""}


@pytest.mark.asyncio
async def test_reverse_geocode_no_results(monkeypatch):
    async def fake_get(path, params, ok_statuses=("OK",)):
        return {"status": "ZERO_RESULTS", "results": []}

    monkeypatch.setattr(places_service, "_get", fake_get)
    with pytest.raises(NotFoundError):
        await places_service.reverse_geocode(-33.9, 18.4)
