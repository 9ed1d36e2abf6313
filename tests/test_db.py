"""Tests for database models and CRUD operations."""
from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from bettips.db import crud
from bettips.db.models import Odds, Sport, UserStat
from bettips.permissions import Role


class TestUserCRUD:
    def test_create_user(self, db):
        user = crud.create_user(db, "Test@Example.com", "hashed_pw", "Test", "User")
        assert user.email == "test@example.com"
        assert user.is_active is True
        assert user.role == Role.USER

    def test_create_user_gets_free_plan_profile(self, db):
        user = crud.create_user(db, "test@example.com", "hashed_pw")
        assert user.profile is not None
        assert user.profile.plan.name == "Free"

    def test_create_user_gets_stats_row(self, db):
        user = crud.create_user(db, "test@example.com", "hashed_pw")
        stat = db.query(UserStat).filter_by(user_id=user.id).one()
        assert stat.total_tips == 0

    def test_create_user_with_role(self, db):
        user = crud.create_user(db, "tip@example.com", "hashed_pw", role=Role.TIPSTER)
        assert user.role == Role.TIPSTER

    def test_get_user_by_email_is_case_insensitive(self, db):
        crud.create_user(db, "find@me.com", "hashed_pw")
        assert crud.get_user_by_email(db, "FIND@me.com") is not None

    def test_get_user_by_email_not_found(self, db):
        assert crud.get_user_by_email(db, "nope@nope.com") is None

    def test_bump_user_stat_adds_increments(self, db):
        user = crud.create_user(db, "count@example.com", "hashed_pw")
        crud.bump_user_stat(db, user.id, total_tips=2, successful_tips=1)
        stat = crud.bump_user_stat(db, user.id, total_tips=1)
        assert (stat.total_tips, stat.successful_tips) == (3, 1)
        assert stat.last_calculated is not None

    def test_bump_user_stat_creates_missing_row(self, db):
        user = crud.create_user(db, "norow@example.com", "hashed_pw")
        db.query(UserStat).filter_by(user_id=user.id).delete()
        db.commit()
        stat = crud.bump_user_stat(db, user.id, total_parlays=1)
        assert (stat.total_tips, stat.total_parlays) == (0, 1)


class TestPlanLookups:
    def test_free_plan_is_lowest_tier(self, db):
        assert crud.get_free_plan(db).tier_level == 1
        assert crud.lowest_tier(db) == 1

    def test_lowest_tier_defaults_when_catalog_empty(self, database):
        session = database.session()
        try:
            assert crud.lowest_tier(session) == crud.DEFAULT_FREE_TIER
        finally:
            session.close()

    def test_get_plan_by_tier(self, db):
        assert crud.get_plan_by_tier(db, 3).name == "VIP"
        assert crud.get_plan_by_tier(db, 9) is None


class TestConstraints:
    def test_one_quote_per_bookmaker(self, db, make_tip, catalog):
        tip = make_tip()
        db.add(Odds(tip_id=tip.id, bookmaker_id=catalog["bet365"], value=1.9))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()


class TestPagination:
    def test_paginate_shape(self, db):
        for i in range(5):
            db.add(Sport(name=f"Sport {i}"))
        db.commit()
        rows, meta = crud.paginate(db.query(Sport).order_by(Sport.name), page=2, limit=3)
        assert meta == {"total": 7, "pages": 3, "currentPage": 2, "limit": 3}
        assert len(rows) == 3
