import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Use test DB
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "property_helper_test")
os.environ.setdefault("MONGODB_TIMEOUT_MS", "1000")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("STORAGE_LOCAL_PATH", "/tmp/property-helper-test-uploads")

TEST_DB_NAME = "property_helper_test"


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """App client without startup hooks; rate limits are disabled."""
    from app.main import app
    from app.services.rate_limit import auth_rate_limit, search_rate_limit, upload_rate_limit

    for limiter in (auth_rate_limit, search_rate_limit, upload_rate_limit):
        app.dependency_overrides[limiter] = lambda: None
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def db():
    """Fresh Beanie init on an empty test database; skips without MongoDB."""
    from app.db.init import DOCUMENT_MODELS, close_db, get_client, init_db, ping_db

    close_db()
    if not await ping_db():
        close_db()
        pytest.skip("MongoDB not available")
    await get_client().drop_database(TEST_DB_NAME)
    await init_db(TEST_DB_NAME)
    yield
    for model in DOCUMENT_MODELS:
        await model.get_motor_collection().delete_many({})
    close_db()


@pytest_asyncio.fixture
async def make_user(db):
    from app.core.security import hash_password
    from app.models.enums import UserRole
    from app.models.user import User

    async def _make(email: str = "agent@example.com", role: UserRole = UserRole.USER, **kwargs) -> User:
        user = User(
            email=email,
            password_hash=hash_password("Secret123"),
            first_name=kwargs.pop("first_name", "Test"),
            last_name=kwargs.pop("last_name", "User"),
            role=role,
            **kwargs,
        )
        await user.insert()
        return user

    return _make


@pytest_asyncio.fixture
async def make_package(db):
    from app.models.credit_package import CreditPackage

    async def _make(name: str = "Starter", credits: int = 100, price: float = 199.0, **kwargs) -> CreditPackage:
        package = CreditPackage(name=name, credits=credits, price=price, **kwargs)
        await package.insert()
        return package

    return _make


@pytest.fixture
def as_user(client):
    """Authenticate every request as the given user via dependency override."""
    from app.deps import get_current_user, get_optional_user
    from app.main import app

    def _as(user):
        async def _current():
            return user

        app.dependency_overrides[get_current_user] = _current
        app.dependency_overrides[get_optional_user] = _current
        return user

    return _as
