"""User administration, public user stats and the tipster leaderboard."""
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field

from ...db.models import User
from ...errors import Forbidden
from ...permissions import Capability, Role, has_capability
from ...services.accounts import AccountService, serialize_user
from ...services.stats import StatsAggregator
from ...settings import Settings
from ..deps import get_accounts, get_current_user, get_settings, get_stats, require_capability
from ..responses import ok, page

router = APIRouter(prefix="/users", tags=["users"])


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    is_active: bool | None = None
    role: Role | None = None
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    bio: str | None = None
    avatar_url: str | None = Field(default=None, max_length=255)


@router.get("/")
def list_users(
    role: Role | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    page_number: int = Query(1, ge=1, alias="page"),
    limit: int = Query(10, ge=1, le=100),
    sort_by: Literal["created_at", "email", "last_login"] = "created_at",
    sort_dir: Literal["asc", "desc", "ASC", "DESC"] = "desc",
    _admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
    accounts: AccountService = Depends(get_accounts),
):
    users, pagination = accounts.list_users(
        role=role.value if role else None,
        is_active=is_active,
        search=search,
        page=page_number,
        limit=limit,
        sort_by=sort_by,
        sort_dir=sort_dir,
    )
    return page("users", [serialize_user(u) for u in users], pagination)


@router.get("/top-tipsters")
def top_tipsters(
    limit: int = Query(10, ge=1, le=100),
    stats: StatsAggregator = Depends(get_stats),
    settings: Settings = Depends(get_settings),
):
    return ok(stats.top_tipsters(limit=limit, min_resolved=settings.top_tipster_min_tips))


@router.get("/{user_id}")
def get_user(
    user_id: str,
    caller: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_accounts),
):
    if caller.id != user_id and not has_capability(caller.role, Capability.MANAGE_USERS):
        raise Forbidden("You do not have permission to view this user")
    user = accounts.get_user(user_id)
    data = serialize_user(user)
    stats = user.stats
    data["stats"] = {
        "total_tips": stats.total_tips,
        "successful_tips": stats.successful_tips,
        "total_parlays": stats.total_parlays,
        "successful_parlays": stats.successful_parlays,
    } if stats else None
    return ok(data)


@router.get("/{user_id}/stats")
def get_user_stats(user_id: str, stats: StatsAggregator = Depends(get_stats)):
    return ok(stats.user_stats(user_id))


@router.put("/{user_id}")
def update_user(
    user_id: str,
    body: UserUpdate,
    caller: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_accounts),
):
    changes = body.model_dump(exclude_none=True)
    if "role" in changes:
        changes["role"] = changes["role"].value
    user = accounts.update_user(caller, user_id, changes)
    return ok(serialize_user(user), "User updated")


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    _admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
    accounts: AccountService = Depends(get_accounts),
):
    if accounts.delete_user(user_id):
        return ok(message="User and their data deleted")
    return ok(message="User deactivated; they authored tips or parlays and cannot be deleted")
