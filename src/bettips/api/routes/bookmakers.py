"""Bookmakers catalog."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ...db.models import User
from ...permissions import Capability
from ...services.catalog import Catalog, serialize_bookmaker
from ...services.stats import StatsAggregator
from ..deps import get_catalog, get_stats, require_capability
from ..responses import ok

router = APIRouter(prefix="/bookmakers", tags=["bookmakers"])


class BookmakerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    website: str | None = Field(default=None, max_length=255)
    logo_url: str | None = Field(default=None, max_length=255)


class BookmakerUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    website: str | None = Field(default=None, max_length=255)
    logo_url: str | None = Field(default=None, max_length=255)
    is_active: bool | None = None


@router.get("/")
def list_bookmakers(active_only: bool = False, catalog: Catalog = Depends(get_catalog)):
    return ok([serialize_bookmaker(b) for b in catalog.list_bookmakers(active_only)])


@router.get("/stats")
def bookmaker_stats(stats: StatsAggregator = Depends(get_stats)):
    return ok(stats.bookmaker_stats())


@router.get("/{bookmaker_id}")
def get_bookmaker(bookmaker_id: int, catalog: Catalog = Depends(get_catalog)):
    return ok(serialize_bookmaker(catalog.get_bookmaker(bookmaker_id)))


@router.post("/", status_code=201)
def create_bookmaker(
    body: BookmakerCreate,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    catalog: Catalog = Depends(get_catalog),
):
    bookmaker = catalog.create_bookmaker(body.name, body.website, body.logo_url)
    return ok(serialize_bookmaker(bookmaker), "Bookmaker created")


@router.put("/{bookmaker_id}")
def update_bookmaker(
    bookmaker_id: int,
    body: BookmakerUpdate,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    catalog: Catalog = Depends(get_catalog),
):
    bookmaker = catalog.update_bookmaker(bookmaker_id, body.model_dump(exclude_none=True))
    return ok(serialize_bookmaker(bookmaker), "Bookmaker updated")


@router.delete("/{bookmaker_id}")
def delete_bookmaker(
    bookmaker_id: int,
    _admin: User = Depends(require_capability(Capability.MANAGE_CATALOG)),
    catalog: Catalog = Depends(get_catalog),
):
    catalog.delete_bookmaker(bookmaker_id)
    return ok(message="Bookmaker deleted")
