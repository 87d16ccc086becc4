"""Shared FastAPI dependencies."""

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Depends, Request

from app.core.exceptions import ForbiddenError, NotFoundError, UnauthorizedError
from app.core.logging import bind_request_context
from app.core.security import decode_access_token
from app.models.user import User


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def _load_active_user(token: str) -> User:
    payload = decode_access_token(token)
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid token")
    try:
        user = await User.get(PydanticObjectId(user_id))
    except InvalidId as e:
        raise UnauthorizedError("Invalid token") from e
    if not user or not user.is_active:
        raise UnauthorizedError("User not found or account disabled")
    return user


async def get_current_user(request: Request) -> User:
    """Dependency: resolve the bearer token to an active User."""
    token = _bearer_token(request)
    if not token:
        raise UnauthorizedError("Access token required")
    user = await _load_active_user(token)
    bind_request_context(getattr(request.state, "request_id", ""), str(user.id))
    return user


async def get_optional_user(request: Request) -> User | None:
    """Dependency: like get_current_user but anonymous requests pass through."""
    token = _bearer_token(request)
    if not token:
        return None
    try:
        return await _load_active_user(token)
    except UnauthorizedError:
        return None


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Dependency: require ADMIN or SUPER_ADMIN."""
    if not user.is_admin:
        raise ForbiddenError("Insufficient permissions")
    return user


def parse_object_id(value: str, label: str = "Resource") -> PydanticObjectId:
    """Path ids that are not ObjectIds can never match a document."""
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError) as e:
        raise NotFoundError(f"{label} not found") from e
