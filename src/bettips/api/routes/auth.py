"""Registration, login, tokens, password recovery and the caller's profile."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field

from ...db.models import User
from ...services.accounts import AccountService, serialize_user
from ...services.entitlements import EntitlementStore
from ..deps import get_accounts, get_current_user, get_entitlements
from ..responses import ok

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    password: str = Field(min_length=8)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)


class ProfileUpdate(BaseModel):
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    bio: str | None = None
    avatar_url: str | None = Field(default=None, max_length=255)


def _with_plan(user: User, entitlements: EntitlementStore) -> dict:
    grant = entitlements.active_grant(user.id)
    plan = grant.plan if grant is not None else entitlements.free_plan()
    return serialize_user(user, plan)


@router.post("/register", status_code=201)
def register(body: RegisterRequest, accounts: AccountService = Depends(get_accounts)):
    user = accounts.register(body.email, body.password, body.first_name, body.last_name)
    return ok(
        {"user": serialize_user(user), **accounts.issue_tokens(user)},
        "User registered successfully",
    )


@router.post("/login")
def login(body: LoginRequest, accounts: AccountService = Depends(get_accounts)):
    user = accounts.authenticate(body.email, body.password)
    return ok({"user": serialize_user(user), **accounts.issue_tokens(user)}, "Login successful")


@router.post("/refresh-token")
def refresh_token(body: RefreshRequest, accounts: AccountService = Depends(get_accounts)):
    return ok(accounts.refresh(body.refresh_token), "Token refreshed")


@router.post("/forgot-password")
def forgot_password(
    body: ForgotPasswordRequest, accounts: AccountService = Depends(get_accounts)
):
    accounts.request_password_reset(body.email)
    # Same answer whether or not the address is registered
    return ok(message="If the address exists, you will receive an email with instructions")


@router.post("/reset-password")
def reset_password(body: ResetPasswordRequest, accounts: AccountService = Depends(get_accounts)):
    accounts.reset_password(body.token, body.password)
    return ok(message="Password reset successfully")


@router.post("/change-password")
def change_password(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_accounts),
):
    accounts.change_password(user, body.current_password, body.new_password)
    return ok(message="Password changed successfully")


@router.get("/profile")
def get_profile(
    user: User = Depends(get_current_user),
    entitlements: EntitlementStore = Depends(get_entitlements),
):
    return ok(_with_plan(user, entitlements))


@router.put("/profile")
def update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_accounts),
    entitlements: EntitlementStore = Depends(get_entitlements),
):
    user = accounts.update_profile(user, body.model_dump(exclude_none=True))
    return ok(_with_plan(user, entitlements), "Profile updated")
