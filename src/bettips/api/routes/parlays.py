"""Parlay routes: composition, tier-gated reads and parlay statistics."""
from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ...db.models import User
from ...errors import Forbidden
from ...services.access import AccessResolver, ContentKind
from ...services.parlays import ParlayComposer, serialize_parlay
from ...services.stats import StatsAggregator
from ..deps import (
    get_current_user,
    get_optional_user,
    get_parlay_composer,
    get_resolver,
    get_stats,
)
from ..responses import ok, page

router = APIRouter(prefix="/parlays", tags=["parlays"])


class ParlayCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    tip_ids: list[str]
    required_tier: int | None = None


class ParlayUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    tip_ids: list[str] | None = None
    required_tier: int | None = None


def _uid(user: Optional[User]) -> Optional[str]:
    return user.id if user is not None else None


@router.get("/")
def list_parlays(
    status: Literal["pending", "won", "lost", "partial", "cancelled"] | None = None,
    creator_id: str | None = None,
    page_number: int = Query(1, ge=1, alias="page"),
    limit: int = Query(10, ge=1, le=100),
    sort_by: Literal["created_at", "total_odds"] = "created_at",
    sort_dir: Literal["asc", "desc", "ASC", "DESC"] = "desc",
    user: Optional[User] = Depends(get_optional_user),
    parlays: ParlayComposer = Depends(get_parlay_composer),
):
    rows, pagination = parlays.list_parlays(
        _uid(user),
        status=status,
        creator_id=creator_id,
        page=page_number,
        limit=limit,
        sort_by=sort_by,
        sort_dir=sort_dir,
    )
    return page("parlays", [serialize_parlay(p) for p in rows], pagination)


@router.get("/popular")
def popular_parlays(
    limit: int = Query(5, ge=1, le=50),
    user: Optional[User] = Depends(get_optional_user),
    parlays: ParlayComposer = Depends(get_parlay_composer),
):
    return ok([serialize_parlay(p) for p in parlays.popular_parlays(_uid(user), limit=limit)])


@router.get("/stats")
def parlay_stats(
    user: User = Depends(get_current_user),
    stats: StatsAggregator = Depends(get_stats),
):
    return ok(stats.parlay_stats(user.id))


@router.get("/{parlay_id}")
def get_parlay(
    parlay_id: str,
    user: Optional[User] = Depends(get_optional_user),
    parlays: ParlayComposer = Depends(get_parlay_composer),
    resolver: AccessResolver = Depends(get_resolver),
):
    parlay = parlays.get_parlay(parlay_id)
    if not resolver.can_access(ContentKind.PARLAY, _uid(user), parlay.id):
        raise Forbidden("Your subscription does not include this parlay")
    return ok(serialize_parlay(parlay))


@router.post("/", status_code=201)
def create_parlay(
    body: ParlayCreate,
    user: User = Depends(get_current_user),
    parlays: ParlayComposer = Depends(get_parlay_composer),
):
    parlay, pricing = parlays.create_parlay(
        user,
        title=body.title,
        tip_ids=body.tip_ids,
        description=body.description,
        required_tier=body.required_tier,
    )
    return ok(serialize_parlay(parlay, pricing), "Parlay created")


@router.put("/{parlay_id}")
def update_parlay(
    parlay_id: str,
    body: ParlayUpdate,
    user: User = Depends(get_current_user),
    parlays: ParlayComposer = Depends(get_parlay_composer),
):
    parlay, pricing = parlays.update_parlay(
        user,
        parlay_id,
        title=body.title,
        description=body.description,
        required_tier=body.required_tier,
        tip_ids=body.tip_ids,
    )
    return ok(serialize_parlay(parlay, pricing), "Parlay updated")


@router.delete("/{parlay_id}")
def delete_parlay(
    parlay_id: str,
    user: User = Depends(get_current_user),
    parlays: ParlayComposer = Depends(get_parlay_composer),
):
    parlays.delete_parlay(user, parlay_id)
    return ok(message="Parlay deleted")
