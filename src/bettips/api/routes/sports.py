"""Sports catalog."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ...db.models import User
from ...permissions import Capability
from ...services.catalog import Catalog, serialize_league, serialize_sport
from ...services.stats import StatsAggregator
from ..deps import get_catalog, get_stats, require_capability
from ..responses import ok

router = APIRouter(prefix="/sports", tags=["sports"])


class SportCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    icon_url: str | None = Field(default=None, max_length=255)


class SportUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    icon_url: str | None = Field(default=None, max_length=255)
    is_active: bool | None = None


@router.get("/")
def list_sports(active_only: bool = False, catalog: Catalog = Depends(get_catalog)):
    return ok([serialize_sport(s) for s in catalog.list_sports(active_only)])


@router.get("/stats")
def sport_stats(stats: StatsAggregator = Depends(get_stats)):
    return ok(stats.sport_stats())


@router.get("/{sport_id}")
def get_sport(sport_id: int, catalog: Catalog = Depends(get_catalog)):
    sport = catalog.get_sport(sport_id)
    data = serialize_sport(sport)
    data["leagues"] = [serialize_league(lg) for lg in sport.leagues]
    return ok(data)


@router.post("/", status_code=201)
def create_sport(
    body: SportCreate,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    catalog: Catalog = Depends(get_catalog),
):
    sport = catalog.create_sport(body.name, body.description, body.icon_url)
    return ok(serialize_sport(sport), "Sport created")


@router.put("/{sport_id}")
def update_sport(
    sport_id: int,
    body: SportUpdate,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    catalog: Catalog = Depends(get_catalog),
):
    sport = catalog.update_sport(sport_id, body.model_dump(exclude_none=True))
    return ok(serialize_sport(sport), "Sport updated")


@router.delete("/{sport_id}")
def delete_sport(
    sport_id: int,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    catalog: Catalog = Depends(get_catalog),
):
    catalog.delete_sport(sport_id)
    return ok(message="Sport deleted")
