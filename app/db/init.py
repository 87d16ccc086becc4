import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import get_settings
from app.models.audit_log import AuditLog
from app.models.credit_entry import CreditEntry
from app.models.credit_package import CreditPackage
from app.models.lead import Lead
from app.models.promo_code import PromoCode
from app.models.property import Property
from app.models.template import Template
from app.models.transaction import Transaction
from app.models.user import User

DOCUMENT_MODELS = [
    User,
    Property,
    Lead,
    Template,
    CreditEntry,
    CreditPackage,
    PromoCode,
    Transaction,
    AuditLog,
]

_client: AsyncIOMotorClient | None = None


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        settings = get_settings()
        kwargs = {"serverSelectionTimeoutMS": settings.mongodb_timeout_ms}
        if _use_tls(settings.mongodb_uri):
            kwargs["tlsCAFile"] = certifi.where()
        _client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    return _client


async def init_db(db_name: str | None = None) -> None:
    settings = get_settings()
    database = get_client()[db_name or settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)


async def ping_db() -> bool:
    """True when the server answers a ping."""
    try:
        await get_client().admin.command("ping")
        return True
    except Exception:
        return False


def close_db() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
