"""Leagues catalog."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ...db.models import User
from ...permissions import Capability
from ...services.catalog import Catalog, serialize_league
from ...services.stats import StatsAggregator
from ..deps import get_catalog, get_stats, require_capability
from ..responses import ok

router = APIRouter(prefix="/leagues", tags=["leagues"])


class LeagueCreate(BaseModel):
    sport_id: int
    name: str = Field(min_length=1, max_length=100)
    country: str | None = Field(default=None, max_length=100)
    logo_url: str | None = Field(default=None, max_length=255)


class LeagueUpdate(BaseModel):
    sport_id: int | None = None
    name: str | None = Field(default=None, min_length=1, max_length=100)
    country: str | None = Field(default=None, max_length=100)
    logo_url: str | None = Field(default=None, max_length=255)
    is_active: bool | None = None


@router.get("/")
def list_leagues(
    sport_id: int | None = None,
    country: str | None = None,
    catalog: Catalog = Depends(get_catalog),
):
    return ok([serialize_league(lg) for lg in catalog.list_leagues(sport_id, country)])


@router.get("/stats")
def league_stats(sport_id: int | None = None, stats: StatsAggregator = Depends(get_stats)):
    return ok(stats.league_stats(sport_id))


@router.get("/{league_id}")
def get_league(league_id: int, catalog: Catalog = Depends(get_catalog)):
    return ok(serialize_league(catalog.get_league(league_id)))


@router.post("/", status_code=201)
def create_league(
    body: LeagueCreate,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    catalog: Catalog = Depends(get_catalog),
):
    league = catalog.create_league(body.sport_id, body.name, body.country, body.logo_url)
    return ok(serialize_league(league), "League created")


@router.put("/{league_id}")
def update_league(
    league_id: int,
    body: LeagueUpdate,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    catalog: Catalog = Depends(get_catalog),
):
    league = catalog.update_league(league_id, body.model_dump(exclude_none=True))
    return ok(serialize_league(league), "League updated")


@router.delete("/{league_id}")
def delete_league(
    league_id: int,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    catalog: Catalog = Depends(get_catalog),
):
    catalog.delete_league(league_id)
    return ok(message="League deleted")
