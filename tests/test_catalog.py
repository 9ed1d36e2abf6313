"""Tests for sports, leagues and bookmakers."""
from __future__ import annotations

import pytest

from bettips.db.models import Bookmaker, League
from bettips.errors import Conflict, NotFound
from bettips.services.catalog import Catalog


@pytest.fixture
def cat(db):
    return Catalog(db)


class TestSports:
    def test_duplicate_name(self, cat):
        with pytest.raises(Conflict):
            cat.create_sport("Football")

    def test_delete_sport_with_tips_refused(self, cat, make_tip, catalog):
        make_tip()
        with pytest.raises(Conflict):
            cat.delete_sport(catalog["football"])

    def test_delete_sport_removes_its_leagues(self, db, cat, catalog):
        assert [lg.name for lg in cat.get_sport(catalog["basketball"]).leagues] == ["NBA"]
        cat.delete_sport(catalog["basketball"])
        assert db.query(League).filter_by(id=catalog["nba"]).first() is None

    def test_update_sport(self, cat, catalog):
        sport = cat.update_sport(catalog["football"], {"description": "Soccer", "is_active": False})
        assert sport.description == "Soccer"
        assert [s.name for s in cat.list_sports(active_only=True)] == ["Basketball"]


class TestLeagues:
    def test_league_names_unique_per_sport(self, cat, catalog):
        with pytest.raises(Conflict):
            cat.create_league(catalog["football"], "Premier League")
        league = cat.create_league(catalog["basketball"], "Premier League")
        assert league.sport_id == catalog["basketball"]

    def test_league_needs_a_sport(self, cat):
        with pytest.raises(NotFound):
            cat.create_league(999, "Nowhere League")

    def test_delete_league_with_tips_refused(self, cat, make_tip, catalog):
        make_tip()
        with pytest.raises(Conflict):
            cat.delete_league(catalog["premier_league"])

    def test_filter_by_sport(self, cat, catalog):
        assert [lg.name for lg in cat.list_leagues(sport_id=catalog["basketball"])] == ["NBA"]


class TestBookmakers:
    def test_bookmaker_with_odds_cannot_be_deleted(self, db, cat, make_tip, catalog):
        make_tip()
        with pytest.raises(Conflict):
            cat.delete_bookmaker(catalog["bet365"])
        assert db.query(Bookmaker).filter_by(id=catalog["bet365"]).first() is not None

    def test_unused_bookmaker_deleted(self, db, cat, catalog):
        cat.delete_bookmaker(catalog["betway"])
        assert db.query(Bookmaker).filter_by(id=catalog["betway"]).first() is None

    def test_rename_to_existing_name(self, cat, catalog):
        with pytest.raises(Conflict):
            cat.update_bookmaker(catalog["betway"], {"name": "bet365"})
