"""Email/password accounts and bearer tokens."""

from datetime import datetime

from beanie import PydanticObjectId
from bson.errors import InvalidId

from app.core.audit import log_event
from app.core.exceptions import ConflictError, NotFoundError, UnauthorizedError
from app.core.logging import get_logger
from app.core.security import (
    create_access_token,
    create_password_reset_token,
    decode_access_token,
    decode_password_reset_token,
    hash_password,
    validate_password_strength,
    verify_password,
)
from app.models.enums import UserRole
from app.models.user import User

log = get_logger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def token_for(user: User) -> str:
    return create_access_token(str(user.id), user.email, user.role.value)


async def register(
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: str | None = None,
) -> tuple[User, str]:
    email = normalize_email(email)
    validate_password_strength(password)
    if await User.find_one(User.email == email):
        raise ConflictError("User already exists with this email")
    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        phone=phone,
        role=UserRole.USER,
    )
    await user.insert()
    log.info("user_registered", user_id=str(user.id))
    await log_event(str(user.id), "REGISTER", "USER", str(user.id), new_values={"email": user.email})
    return user, token_for(user)


async def login(email: str, password: str) -> tuple[User, str]:
    user = await User.find_one(User.email == normalize_email(email))
    if not user or not user.is_active:
        raise UnauthorizedError("Invalid credentials or account disabled")
    if not verify_password(password, user.password_hash):
        log.info("login_failed", user_id=str(user.id))
        raise UnauthorizedError("Invalid credentials")
    user.last_login = datetime.utcnow()
    await user.save()
    log.info("user_login", user_id=str(user.id))
    return user, token_for(user)


async def refresh(token: str) -> str:
    """Issue a fresh token for a still-valid one, with the user's current role."""
    payload = decode_access_token(token)
    try:
        user = await User.get(PydanticObjectId(payload.get("user_id")))
    except (InvalidId, TypeError) as e:
        raise UnauthorizedError("Invalid or expired token") from e
    if not user or not user.is_active:
        raise UnauthorizedError("Invalid or expired token")
    return token_for(user)


async def forgot_password(email: str) -> None:
    """Issue a reset token when the account exists. The caller never learns which."""
    user = await User.find_one(User.email == normalize_email(email))
    if not user or not user.is_active:
        log.info("password_reset_unknown_email")
        return
    token = create_password_reset_token(str(user.id), user.email)
    # No mailer is wired up; the token goes to the log for operators.
    log.info("password_reset_requested", user_id=str(user.id), reset_token=token)
    await log_event(str(user.id), "PASSWORD_RESET_REQUEST", "USER", str(user.id))


async def reset_password(token: str, new_password: str) -> None:
    payload = decode_password_reset_token(token)
    validate_password_strength(new_password)
    try:
        user = await User.get(PydanticObjectId(payload.get("user_id")))
    except (InvalidId, TypeError) as e:
        raise UnauthorizedError("Invalid or expired token") from e
    if not user or user.email != payload.get("email"):
        raise UnauthorizedError("Invalid or expired token")
    user.password_hash = hash_password(new_password)
    user.updated_at = datetime.utcnow()
    await user.save()
    await log_event(str(user.id), "PASSWORD_RESET", "USER", str(user.id), new_values={"password_reset": True})


async def change_password(user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise UnauthorizedError("Current password is incorrect")
    validate_password_strength(new_password)
    user.password_hash = hash_password(new_password)
    user.updated_at = datetime.utcnow()
    await user.save()
    await log_event(str(user.id), "PASSWORD_CHANGE", "USER", str(user.id), new_values={"password_changed": True})


async def verify_email(user_id: PydanticObjectId) -> bool:
    """Mark the account verified. Returns False when it already was."""
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.is_verified:
        return False
    user.is_verified = True
    user.updated_at = datetime.utcnow()
    await user.save()
    return True
