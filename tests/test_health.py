import pytest

from app.routers.health import stripe_mode


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_health_sets_request_id(client):
    r = await client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"


def test_stripe_mode():
    assert stripe_mode("") == "not_configured"
    assert stripe_mode("sk_test_123") == "test"
    assert stripe_mode("sk_live_123") == "live"
