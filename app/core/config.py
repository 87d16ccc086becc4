from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except Exception:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    version: str = "1.0.0"
    secret_key: str = Field(default="change-me-in-production-min-32-chars")
    token_max_age_seconds: int = Field(default=7 * 24 * 3600, alias="TOKEN_MAX_AGE_SECONDS")
    password_reset_max_age_seconds: int = 3600
    bcrypt_rounds: int = Field(default=12, alias="BCRYPT_ROUNDS")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="property_helper", alias="MONGODB_DB_NAME")
    mongodb_timeout_ms: int = Field(default=5000, alias="MONGODB_TIMEOUT_MS")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # URLs used in gateway redirects and notifications
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")
    backend_url: str = Field(default="http://localhost:8000", alias="BACKEND_URL")

    # Stripe
    stripe_secret_key: str = Field(default="", alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str = Field(default="", alias="STRIPE_WEBHOOK_SECRET")

    # PayFast
    payfast_url: str = Field(default="https://sandbox.payfast.co.za/eng/process", alias="PAYFAST_URL")
    payfast_merchant_id: str = Field(default="", alias="PAYFAST_MERCHANT_ID")
    payfast_merchant_key: str = Field(default="", alias="PAYFAST_MERCHANT_KEY")
    payfast_passphrase: str = Field(default="", alias="PAYFAST_PASSPHRASE")

    # Google Places
    google_places_api_key: str = Field(default="", alias="GOOGLE_PLACES_API_KEY")
    google_maps_base_url: str = "https://maps.googleapis.com/maps/api"

    # Storage
    storage_backend: str = Field(default="local", alias="STORAGE_BACKEND")
    storage_local_path: str = Field(default="./uploads", alias="STORAGE_LOCAL_PATH")
    storage_public_url: str = Field(default="http://localhost:8000/uploads", alias="STORAGE_PUBLIC_URL")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Rate limits (requests per window)
    auth_rate_limit: int = 5
    auth_rate_window_seconds: int = 15 * 60
    search_rate_limit: int = 30
    search_rate_window_seconds: int = 60
    upload_rate_limit: int = 50
    upload_rate_window_seconds: int = 3600

    # Commerce defaults
    default_currency: str = "ZAR"
    max_upload_bytes: int = 10 * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()
