"""Sports, leagues and bookmakers: the reference data tips are filed under."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..db import crud
from ..db.engine import atomic
from ..db.models import Bookmaker, League, Odds, Sport, Tip
from ..errors import Conflict, NotFound

logger = logging.getLogger(__name__)

_SPORT_FIELDS = ("name", "description", "icon_url", "is_active")
_LEAGUE_FIELDS = ("name", "country", "logo_url", "is_active")
_BOOKMAKER_FIELDS = ("name", "website", "logo_url", "is_active")


def _apply(obj, changes: dict, fields: tuple[str, ...]) -> None:
    for key in fields:
        if changes.get(key) is not None:
            setattr(obj, key, changes[key])


class Catalog:
    """CRUD with uniqueness and deletion guards. Callers check MANAGE_CATALOG."""

    def __init__(self, db: Session):
        self.db = db

    # ── Sports ──────────────────────────────────────────────────────────────

    def list_sports(self, active_only: bool = False) -> list[Sport]:
        q = self.db.query(Sport)
        if active_only:
            q = q.filter(Sport.is_active.is_(True))
        return q.order_by(Sport.name.asc()).all()

    def get_sport(self, sport_id: int) -> Sport:
        sport = crud.get_sport(self.db, sport_id)
        if sport is None:
            raise NotFound("Sport not found")
        return sport

    def create_sport(self, name: str, description: str | None = None,
                     icon_url: str | None = None) -> Sport:
        with atomic(self.db):
            if self.db.query(Sport).filter(Sport.name == name).first():
                raise Conflict("A sport with that name already exists")
            sport = Sport(name=name, description=description, icon_url=icon_url)
            self.db.add(sport)
        logger.info("Created sport %s", name)
        return sport

    def update_sport(self, sport_id: int, changes: dict) -> Sport:
        with atomic(self.db):
            sport = self.get_sport(sport_id)
            name = changes.get("name")
            if name and name != sport.name and (
                self.db.query(Sport).filter(Sport.name == name).first()
            ):
                raise Conflict("A sport with that name already exists")
            _apply(sport, changes, _SPORT_FIELDS)
        return sport

    def delete_sport(self, sport_id: int) -> None:
        """Delete a sport and its leagues; refused while any tip uses it."""
        with atomic(self.db):
            sport = self.get_sport(sport_id)
            if self.db.query(Tip.id).filter(Tip.sport_id == sport.id).first():
                raise Conflict("Cannot delete a sport that has tips")
            for league in list(sport.leagues):
                self.db.delete(league)
            self.db.delete(sport)
        logger.info("Deleted sport %s", sport_id)

    # ── Leagues ─────────────────────────────────────────────────────────────

    def list_leagues(self, sport_id: Optional[int] = None,
                     country: Optional[str] = None) -> list[League]:
        q = self.db.query(League)
        if sport_id is not None:
            q = q.filter(League.sport_id == sport_id)
        if country:
            q = q.filter(League.country == country)
        return q.order_by(League.name.asc()).all()

    def get_league(self, league_id: int) -> League:
        league = crud.get_league(self.db, league_id)
        if league is None:
            raise NotFound("League not found")
        return league

    def create_league(self, sport_id: int, name: str, country: str | None = None,
                      logo_url: str | None = None) -> League:
        with atomic(self.db):
            self.get_sport(sport_id)
            if self._league_exists(sport_id, name):
                raise Conflict("A league with that name already exists for this sport")
            league = League(sport_id=sport_id, name=name, country=country, logo_url=logo_url)
            self.db.add(league)
        logger.info("Created league %s (sport %s)", name, sport_id)
        return league

    def update_league(self, league_id: int, changes: dict) -> League:
        with atomic(self.db):
            league = self.get_league(league_id)
            sport_id = changes.get("sport_id") or league.sport_id
            if sport_id != league.sport_id:
                self.get_sport(sport_id)
                if self.db.query(Tip.id).filter(Tip.league_id == league.id).first():
                    raise Conflict("Cannot move a league that has tips to another sport")
            name = changes.get("name") or league.name
            if (sport_id, name) != (league.sport_id, league.name) and self._league_exists(
                sport_id, name
            ):
                raise Conflict("A league with that name already exists for this sport")
            league.sport_id = sport_id
            _apply(league, changes, _LEAGUE_FIELDS)
        return league

    def delete_league(self, league_id: int) -> None:
        with atomic(self.db):
            league = self.get_league(league_id)
            if self.db.query(Tip.id).filter(Tip.league_id == league.id).first():
                raise Conflict("Cannot delete a league that has tips")
            self.db.delete(league)
        logger.info("Deleted league %s", league_id)

    def _league_exists(self, sport_id: int, name: str) -> bool:
        return (
            self.db.query(League.id)
            .filter(League.sport_id == sport_id, League.name == name)
            .first()
        ) is not None

    # ── Bookmakers ──────────────────────────────────────────────────────────

    def list_bookmakers(self, active_only: bool = False) -> list[Bookmaker]:
        q = self.db.query(Bookmaker)
        if active_only:
            q = q.filter(Bookmaker.is_active.is_(True))
        return q.order_by(Bookmaker.name.asc()).all()

    def get_bookmaker(self, bookmaker_id: int) -> Bookmaker:
        bookmaker = crud.get_bookmaker(self.db, bookmaker_id)
        if bookmaker is None:
            raise NotFound("Bookmaker not found")
        return bookmaker

    def create_bookmaker(self, name: str, website: str | None = None,
                         logo_url: str | None = None) -> Bookmaker:
        with atomic(self.db):
            if self.db.query(Bookmaker).filter(Bookmaker.name == name).first():
                raise Conflict("A bookmaker with that name already exists")
            bookmaker = Bookmaker(name=name, website=website, logo_url=logo_url)
            self.db.add(bookmaker)
        logger.info("Created bookmaker %s", name)
        return bookmaker

    def update_bookmaker(self, bookmaker_id: int, changes: dict) -> Bookmaker:
        with atomic(self.db):
            bookmaker = self.get_bookmaker(bookmaker_id)
            name = changes.get("name")
            if name and name != bookmaker.name and (
                self.db.query(Bookmaker).filter(Bookmaker.name == name).first()
            ):
                raise Conflict("A bookmaker with that name already exists")
            _apply(bookmaker, changes, _BOOKMAKER_FIELDS)
        return bookmaker

    def delete_bookmaker(self, bookmaker_id: int) -> None:
        with atomic(self.db):
            bookmaker = self.get_bookmaker(bookmaker_id)
            if self.db.query(Odds.id).filter(Odds.bookmaker_id == bookmaker.id).first():
                raise Conflict("Cannot delete a bookmaker that has odds")
            self.db.delete(bookmaker)
        logger.info("Deleted bookmaker %s", bookmaker_id)


def serialize_sport(sport: Sport) -> dict:
    return {
        "id": sport.id,
        "name": sport.name,
        "description": sport.description,
        "icon_url": sport.icon_url,
        "is_active": sport.is_active,
    }


def serialize_league(league: League) -> dict:
    return {
        "id": league.id,
        "sport_id": league.sport_id,
        "sport": league.sport.name if league.sport else None,
        "name": league.name,
        "country": league.country,
        "logo_url": league.logo_url,
        "is_active": league.is_active,
    }


def serialize_bookmaker(bookmaker: Bookmaker) -> dict:
    return {
        "id": bookmaker.id,
        "name": bookmaker.name,
        "website": bookmaker.website,
        "logo_url": bookmaker.logo_url,
        "is_active": bookmaker.is_active,
    }
