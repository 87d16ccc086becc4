from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field

from app.deps import get_current_user
from app.models.user import User
from app.services import auth as auth_service
from app.services.rate_limit import auth_rate_limit
from app.services.users import user_to_dict

router = APIRouter()


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: str | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    token: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=8)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


@router.post("/register", status_code=status.HTTP_201_CREATED, dependencies=[Depends(auth_rate_limit)])
async def auth_register(body: RegisterRequest):
    """Create an account and return it with a bearer token."""
    user, token = await auth_service.register(
        body.email, body.password, body.first_name, body.last_name, phone=body.phone
    )
    return {"user": user_to_dict(user), "token": token}


@router.post("/login", dependencies=[Depends(auth_rate_limit)])
async def auth_login(body: LoginRequest):
    user, token = await auth_service.login(body.email, body.password)
    return {"user": user_to_dict(user), "token": token}


@router.get("/me")
async def auth_me(user: User = Depends(get_current_user)):
    return {"user": user_to_dict(user)}


@router.post("/refresh")
async def auth_refresh(body: RefreshRequest):
    token = await auth_service.refresh(body.token)
    return {"token": token}


@router.post("/forgot-password", dependencies=[Depends(auth_rate_limit)])
async def auth_forgot_password(body: ForgotPasswordRequest):
    """Always the same answer so account existence is not revealed."""
    await auth_service.forgot_password(body.email)
    return {"message": "If an account with that email exists, a password reset link has been sent"}


@router.post("/reset-password")
async def auth_reset_password(body: ResetPasswordRequest):
    await auth_service.reset_password(body.token, body.password)
    return {"message": "Password reset successfully"}


@router.post("/change-password")
async def auth_change_password(body: ChangePasswordRequest, user: User = Depends(get_current_user)):
    await auth_service.change_password(user, body.current_password, body.new_password)
    return {"message": "Password changed successfully"}


@router.post("/verify-email")
async def auth_verify_email(user: User = Depends(get_current_user)):
    changed = await auth_service.verify_email(user.id)
    return {"message": "Email verified successfully" if changed else "Email already verified"}
