import hashlib
import hmac
import re
from typing import Any
from urllib.parse import quote_plus

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.core.config import get_settings
from app.core.exceptions import BadRequestError, UnauthorizedError

ACCESS_TOKEN_SALT = "property-helper-access"
PASSWORD_RESET_SALT = "property-helper-password-reset"

_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def _serializer(salt: str) -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt=salt,
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_access_token(user_id: str, email: str, role: str) -> str:
    return _serializer(ACCESS_TOKEN_SALT).dumps({"user_id": user_id, "email": email, "role": role})


def decode_access_token(token: str) -> dict[str, Any]:
    """Return the token payload or raise UnauthorizedError."""
    settings = get_settings()
    try:
        return _serializer(ACCESS_TOKEN_SALT).loads(token, max_age=settings.token_max_age_seconds)
    except SignatureExpired as e:
        raise UnauthorizedError("Token expired") from e
    except BadSignature as e:
        raise UnauthorizedError("Invalid token") from e


def create_password_reset_token(user_id: str, email: str) -> str:
    return _serializer(PASSWORD_RESET_SALT).dumps({"user_id": user_id, "email": email, "type": "password_reset"})


def decode_password_reset_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = _serializer(PASSWORD_RESET_SALT).loads(token, max_age=settings.password_reset_max_age_seconds)
    except (BadSignature, SignatureExpired) as e:
        raise UnauthorizedError("Invalid or expired token") from e
    if payload.get("type") != "password_reset":
        raise UnauthorizedError("Invalid token type")
    return payload


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise BadRequestError("Password must be at least 8 characters long")
    if not _PASSWORD_RE.match(password):
        raise BadRequestError(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )


def hash_password(password: str) -> str:
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def payfast_signature(fields: dict[str, Any], passphrase: str = "", include_blank: bool = False) -> str:
    """
    PayFast MD5 signature: url-encoded key=value pairs in the given order,
    without the signature itself, plus the passphrase when set.

    Checkout forms skip blank values; ITN posts are signed over every
    posted field, blanks included (include_blank=True).
    """
    parts = [
        f"{key}={quote_plus('' if value is None else str(value).strip())}"
        for key, value in fields.items()
        if key != "signature"
        and (include_blank or (value is not None and str(value).strip() != ""))
    ]
    if passphrase:
        parts.append(f"passphrase={quote_plus(passphrase.strip())}")
    return hashlib.md5("&".join(parts).encode("utf-8")).hexdigest()


def verify_payfast_signature(fields: dict[str, Any], passphrase: str = "") -> bool:
    """Check an ITN post: every field except signature, in posted order."""
    received = str(fields.get("signature") or "")
    if not received:
        return False
    return hmac.compare_digest(payfast_signature(fields, passphrase, include_blank=True), received)
