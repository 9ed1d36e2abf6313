"""Tip routes: listing, tier-gated reads, publishing and resolution."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ...db.models import User
from ...errors import Forbidden
from ...permissions import Capability
from ...services.access import AccessResolver, ContentKind
from ...services.tips import TipRegistry, serialize_tip
from ..deps import (
    get_current_user,
    get_optional_user,
    get_resolver,
    get_tip_registry,
    require_capability,
)
from ..responses import ok, page

router = APIRouter(prefix="/tips", tags=["tips"])

MatchStatus = Literal["scheduled", "live", "completed", "cancelled"]
TipStatus = Literal["pending", "won", "lost", "cancelled"]


class OddsIn(BaseModel):
    bookmaker_id: int
    value: Decimal = Field(gt=1, max_digits=10, decimal_places=2)


class TipCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    sport_id: int
    league_id: int
    team1_name: str = Field(min_length=1, max_length=100)
    team2_name: str = Field(min_length=1, max_length=100)
    match_datetime: datetime
    prediction_type: str = Field(min_length=1, max_length=50)
    prediction_value: str = Field(min_length=1, max_length=100)
    confidence: int | None = Field(default=None, ge=1, le=10)
    required_tier: int | None = None
    odds: list[OddsIn] = Field(default_factory=list)


class TipUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    prediction_type: str | None = Field(default=None, max_length=50)
    prediction_value: str | None = Field(default=None, max_length=100)
    confidence: int | None = Field(default=None, ge=1, le=10)
    match_status: MatchStatus | None = None
    match_result: str | None = Field(default=None, max_length=100)
    tip_status: TipStatus | None = None
    required_tier: int | None = None
    odds: list[OddsIn] | None = None


def _uid(user: Optional[User]) -> Optional[str]:
    return user.id if user is not None else None


@router.get("/")
def list_tips(
    sport_id: int | None = None,
    league_id: int | None = None,
    status: TipStatus | None = None,
    match_status: MatchStatus | None = None,
    creator_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page_number: int = Query(1, ge=1, alias="page"),
    limit: int = Query(10, ge=1, le=100),
    sort_by: Literal["match_datetime", "created_at", "confidence"] = "match_datetime",
    sort_dir: Literal["asc", "desc", "ASC", "DESC"] = "desc",
    user: Optional[User] = Depends(get_optional_user),
    tips: TipRegistry = Depends(get_tip_registry),
):
    rows, pagination = tips.list_tips(
        _uid(user),
        sport_id=sport_id,
        league_id=league_id,
        status=status,
        match_status=match_status,
        creator_id=creator_id,
        start_date=start_date,
        end_date=end_date,
        page=page_number,
        limit=limit,
        sort_by=sort_by,
        sort_dir=sort_dir,
    )
    return page("tips", [serialize_tip(t) for t in rows], pagination)


@router.get("/popular")
def popular_tips(
    by: Literal["views", "likes", "shares"] = "views",
    limit: int = Query(5, ge=1, le=50),
    user: Optional[User] = Depends(get_optional_user),
    tips: TipRegistry = Depends(get_tip_registry),
):
    return ok([serialize_tip(t) for t in tips.popular_tips(_uid(user), by=by, limit=limit)])


@router.get("/live")
def live_tips(
    user: Optional[User] = Depends(get_optional_user),
    tips: TipRegistry = Depends(get_tip_registry),
):
    return ok([serialize_tip(t) for t in tips.live_tips(_uid(user))])


@router.get("/upcoming")
def upcoming_tips(
    hours: int = Query(24, ge=1, le=24 * 14),
    limit: int = Query(10, ge=1, le=100),
    user: Optional[User] = Depends(get_optional_user),
    tips: TipRegistry = Depends(get_tip_registry),
):
    return ok([serialize_tip(t) for t in tips.upcoming_tips(_uid(user), hours=hours, limit=limit)])


@router.get("/{tip_id}")
def get_tip(
    tip_id: str,
    user: Optional[User] = Depends(get_optional_user),
    tips: TipRegistry = Depends(get_tip_registry),
    resolver: AccessResolver = Depends(get_resolver),
):
    tip = tips.get_tip(tip_id)
    if not resolver.can_access(ContentKind.TIP, _uid(user), tip.id):
        raise Forbidden("Your subscription does not include this tip")
    if user is not None:
        tips.record_view(tip.id, user.id)
    return ok(serialize_tip(tip))


@router.post("/{tip_id}/like")
def like_tip(
    tip_id: str,
    user: User = Depends(get_current_user),
    tips: TipRegistry = Depends(get_tip_registry),
    resolver: AccessResolver = Depends(get_resolver),
):
    return _engage(tip_id, "likes", user, tips, resolver)


@router.post("/{tip_id}/share")
def share_tip(
    tip_id: str,
    user: User = Depends(get_current_user),
    tips: TipRegistry = Depends(get_tip_registry),
    resolver: AccessResolver = Depends(get_resolver),
):
    return _engage(tip_id, "shares", user, tips, resolver)


def _engage(tip_id: str, kind: str, user: User, tips: TipRegistry, resolver: AccessResolver):
    tip = tips.get_tip(tip_id)
    if not resolver.can_access(ContentKind.TIP, user.id, tip.id):
        raise Forbidden("Your subscription does not include this tip")
    stat = tips.record_engagement(tip.id, kind)
    return ok({"views": stat.views, "likes": stat.likes, "shares": stat.shares})


@router.post("/", status_code=201)
def create_tip(
    body: TipCreate,
    user: User = Depends(require_capability(Capability.PUBLISH_TIPS)),
    tips: TipRegistry = Depends(get_tip_registry),
):
    payload = body.model_dump()
    tip = tips.create_tip(user, **payload)
    return ok(serialize_tip(tip), "Tip created")


@router.put("/{tip_id}")
def update_tip(
    tip_id: str,
    body: TipUpdate,
    user: User = Depends(get_current_user),
    tips: TipRegistry = Depends(get_tip_registry),
):
    tip = tips.update_tip(user, tip_id, body.model_dump(exclude_unset=True))
    return ok(serialize_tip(tip), "Tip updated")


@router.delete("/{tip_id}")
def delete_tip(
    tip_id: str,
    user: User = Depends(get_current_user),
    tips: TipRegistry = Depends(get_tip_registry),
):
    tips.delete_tip(user, tip_id)
    return ok(message="Tip deleted")
