"""Database CRUD operations shared by the services."""
from __future__ import annotations

import math
from typing import Optional

from sqlalchemy.orm import Query, Session

from ..permissions import Role
from .models import (
    Bookmaker,
    League,
    Profile,
    Sport,
    SubscriptionPlan,
    User,
    UserStat,
    utcnow,
)

DEFAULT_FREE_TIER = 1


# ── Users ────────────────────────────────────────────────────────────────────

def create_user(
    db: Session,
    email: str,
    password_hash: str,
    first_name: str | None = None,
    last_name: str | None = None,
    role: Role = Role.USER,
) -> User:
    """Create a user together with its profile (on the free plan) and stats row."""
    user = User(email=email.lower(), password_hash=password_hash)
    db.add(user)
    db.flush()  # ensure user.id is populated before referencing it
    free = get_free_plan(db)
    db.add(Profile(
        user_id=user.id,
        first_name=first_name,
        last_name=last_name,
        role=Role(role).value,
        plan_id=free.id if free else None,
    ))
    db.add(UserStat(user_id=user.id))
    db.commit()
    db.refresh(user)
    return user


def bump_user_stat(db: Session, user_id: str, **increments: int) -> UserStat:
    """Add `increments` to the user's counters. Does not commit."""
    stat = db.query(UserStat).filter(UserStat.user_id == user_id).first()
    if stat is None:
        stat = UserStat(user_id=user_id, total_tips=0, successful_tips=0,
                        total_parlays=0, successful_parlays=0)
        db.add(stat)
    for column, amount in increments.items():
        setattr(stat, column, (getattr(stat, column) or 0) + amount)
    stat.last_calculated = utcnow()
    return stat


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.lower()).first()


def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_reset_token(db: Session, token: str) -> Optional[User]:
    return db.query(User).filter(User.reset_token == token).first()


# ── Plans ────────────────────────────────────────────────────────────────────

def get_plan(db: Session, plan_id: int) -> Optional[SubscriptionPlan]:
    return db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()


def get_plan_by_name(db: Session, name: str) -> Optional[SubscriptionPlan]:
    return db.query(SubscriptionPlan).filter(SubscriptionPlan.name == name).first()


def get_plan_by_tier(db: Session, tier_level: int) -> Optional[SubscriptionPlan]:
    return (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.tier_level == tier_level)
        .first()
    )


def get_free_plan(db: Session) -> Optional[SubscriptionPlan]:
    """The plan with the lowest tier level."""
    return db.query(SubscriptionPlan).order_by(SubscriptionPlan.tier_level.asc()).first()


def lowest_tier(db: Session) -> int:
    free = get_free_plan(db)
    return free.tier_level if free else DEFAULT_FREE_TIER


# ── Catalog lookups ──────────────────────────────────────────────────────────

def get_sport(db: Session, sport_id: int) -> Optional[Sport]:
    return db.query(Sport).filter(Sport.id == sport_id).first()


def get_league(db: Session, league_id: int) -> Optional[League]:
    return db.query(League).filter(League.id == league_id).first()


def get_bookmaker(db: Session, bookmaker_id: int) -> Optional[Bookmaker]:
    return db.query(Bookmaker).filter(Bookmaker.id == bookmaker_id).first()


# ── Pagination ───────────────────────────────────────────────────────────────

def paginate(query: Query, page: int, limit: int) -> tuple[list, dict]:
    """Apply a page window to an already filtered and ordered query."""
    total = query.order_by(None).count()
    rows = query.limit(limit).offset((page - 1) * limit).all()
    return rows, {
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
        "currentPage": page,
        "limit": limit,
    }
