"""Shared fixtures: an in-memory database with a seeded catalog and users."""
from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from bettips.api.app import create_app
from bettips.api.auth import create_access_token, hash_password
from bettips.api.deps import get_mailer
from bettips.db import Bookmaker, Database, League, Sport, crud
from bettips.db.models import utcnow
from bettips.permissions import Role
from bettips.services.parlays import ParlayComposer
from bettips.services.tips import TipRegistry
from bettips.settings import Settings
from bettips.subscriptions import ensure_default_plans

PASSWORD = "password123"


class FakeMailer:
    """Records messages instead of sending them."""

    def __init__(self, deliver: bool = True):
        self.deliver = deliver
        self.sent: list[tuple[str, str, str]] = []

    def send_welcome(self, email, name=None):
        self.sent.append(("welcome", email, name))
        return self.deliver

    def send_password_reset(self, email, token):
        self.sent.append(("reset", email, token))
        return self.deliver


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", environment="test", log_level="WARNING")


@pytest.fixture
def database():
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.close()


@pytest.fixture
def db(database):
    """Session on a database seeded with plans, two sports, leagues and bookmakers."""
    session = database.session()
    ensure_default_plans(session)
    football = Sport(name="Football")
    basketball = Sport(name="Basketball")
    session.add_all([football, basketball])
    session.flush()
    session.add_all([
        League(sport_id=football.id, name="Premier League", country="England"),
        League(sport_id=basketball.id, name="NBA", country="USA"),
        Bookmaker(name="bet365"),
        Bookmaker(name="Betway"),
    ])
    session.commit()
    yield session
    session.close()


@pytest.fixture
def catalog(db):
    """Ids of the seeded catalog rows."""
    return {
        "football": db.query(Sport).filter_by(name="Football").one().id,
        "basketball": db.query(Sport).filter_by(name="Basketball").one().id,
        "premier_league": db.query(League).filter_by(name="Premier League").one().id,
        "nba": db.query(League).filter_by(name="NBA").one().id,
        "bet365": db.query(Bookmaker).filter_by(name="bet365").one().id,
        "betway": db.query(Bookmaker).filter_by(name="Betway").one().id,
    }


def _make_user(db, email, role, first_name=None):
    return crud.create_user(db, email, hash_password(PASSWORD), first_name, "Test", role)


@pytest.fixture
def admin(db):
    return _make_user(db, "admin@example.com", Role.ADMIN, "Ada")


@pytest.fixture
def tipster(db):
    return _make_user(db, "tipster@example.com", Role.TIPSTER, "Tim")


@pytest.fixture
def member(db):
    return _make_user(db, "member@example.com", Role.USER, "Mia")


@pytest.fixture
def user_factory(db):
    counter = {"n": 0}

    def make(role=Role.USER, email=None):
        counter["n"] += 1
        return _make_user(db, email or f"user{counter['n']}@example.com", role)

    return make


@pytest.fixture
def composer(db, catalog):
    return ParlayComposer(db, reference_bookmaker_id=catalog["bet365"])


@pytest.fixture
def registry(db, composer):
    return TipRegistry(
        db,
        composer.resolver,
        on_outcome_change=composer.settle_for_tip,
        on_odds_change=composer.reprice_for_tip,
    )


@pytest.fixture
def make_tip(registry, catalog, tipster):
    """Publish a football tip; `quote` is the bet365 price, None for no odds."""

    def make(creator=None, quote=2.0, required_tier=None, **overrides):
        odds = [] if quote is None else [{"bookmaker_id": catalog["bet365"], "value": quote}]
        fields = dict(
            title="Arsenal to win",
            sport_id=catalog["football"],
            league_id=catalog["premier_league"],
            team1_name="Arsenal",
            team2_name="Chelsea",
            match_datetime=utcnow() + timedelta(days=1),
            prediction_type="1X2",
            prediction_value="1",
            confidence=7,
            required_tier=required_tier,
            odds=odds,
        )
        fields.update(overrides)
        return registry.create_tip(creator or tipster, **fields)

    return make


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def client(database, db, settings, mailer):
    app = create_app(settings=settings, database=database)
    app.dependency_overrides[get_mailer] = lambda: mailer
    return TestClient(app)


def auth_headers(user) -> dict:
    token = create_access_token(user.id, user.email, user.role.value)
    return {"Authorization": f"Bearer {token}"}
