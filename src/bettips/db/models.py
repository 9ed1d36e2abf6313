"""SQLAlchemy ORM models for the tips platform."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from ..permissions import Role

MATCH_STATUSES = ("scheduled", "live", "completed", "cancelled")
TIP_STATUSES = ("pending", "won", "lost", "cancelled")
PARLAY_STATUSES = ("pending", "won", "lost", "partial", "cancelled")


def utcnow() -> datetime:
    """Naive UTC timestamp; every stored datetime uses this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, nullable=True)
    reset_token = Column(String(128), nullable=True, index=True)
    reset_token_expires = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    profile = relationship("Profile", back_populates="user", uselist=False)
    stats = relationship("UserStat", uselist=False)
    grants = relationship("UserSubscriptionGrant", back_populates="user")

    @property
    def role(self) -> Role:
        return Role(self.profile.role) if self.profile else Role.USER


class SubscriptionPlan(Base):
    """Catalog entry; tier_level orders plans for content gating."""
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    tier_level = Column(Integer, unique=True, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    duration_days = Column(Integer, nullable=False, default=30)
    features = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    bio = Column(Text, nullable=True)
    avatar_url = Column(String(255), nullable=True)
    role = Column(
        Enum(*[r.value for r in Role], name="role_enum"),
        default=Role.USER.value,
        nullable=False,
    )
    # Display default only; gating always reads the grants.
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=True)

    user = relationship("User", back_populates="profile")
    plan = relationship("SubscriptionPlan")

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class UserSubscriptionGrant(Base):
    """A time-bounded entitlement. Cancelling shortens end_date, never deletes."""
    __tablename__ = "user_subscription_grants"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False, index=True)
    start_date = Column(DateTime, nullable=False, default=utcnow)
    end_date = Column(DateTime, nullable=False, index=True)
    payment_id = Column(String(255), nullable=True)
    payment_status = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="grants")
    plan = relationship("SubscriptionPlan")


class Sport(Base):
    __tablename__ = "sports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    icon_url = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    leagues = relationship("League", back_populates="sport")


class League(Base):
    __tablename__ = "leagues"
    __table_args__ = (
        UniqueConstraint("sport_id", "name", name="uq_league_sport_name"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    sport_id = Column(Integer, ForeignKey("sports.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    country = Column(String(100), nullable=True)
    logo_url = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    sport = relationship("Sport", back_populates="leagues")


class Bookmaker(Base):
    __tablename__ = "bookmakers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    website = Column(String(255), nullable=True)
    logo_url = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class Tip(Base):
    """A single prediction. Match lifecycle and outcome are independent axes."""
    __tablename__ = "tips"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    sport_id = Column(Integer, ForeignKey("sports.id"), nullable=False, index=True)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False, index=True)
    team1_name = Column(String(100), nullable=False)
    team2_name = Column(String(100), nullable=False)
    match_datetime = Column(DateTime, nullable=False, index=True)
    match_status = Column(
        Enum(*MATCH_STATUSES, name="match_status_enum"),
        default="scheduled", nullable=False, index=True,
    )
    match_result = Column(String(100), nullable=True)
    prediction_type = Column(String(50), nullable=False)
    prediction_value = Column(String(100), nullable=False)
    confidence = Column(Integer, nullable=True)
    tip_status = Column(
        Enum(*TIP_STATUSES, name="tip_status_enum"), default="pending", nullable=False,
    )
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    # None means the lowest tier
    required_tier = Column(Integer, nullable=True)
    # Set once a win has been credited to the creator's counters
    success_counted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    sport = relationship("Sport")
    league = relationship("League")
    creator = relationship("User")
    odds = relationship("Odds", back_populates="tip", cascade="all, delete-orphan")
    stats = relationship("TipStat", uselist=False, cascade="all, delete-orphan")
    views = relationship("TipView", cascade="all, delete-orphan")


class Odds(Base):
    __tablename__ = "odds"
    __table_args__ = (
        UniqueConstraint("tip_id", "bookmaker_id", name="uq_odds_tip_bookmaker"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    tip_id = Column(String(36), ForeignKey("tips.id"), nullable=False, index=True)
    bookmaker_id = Column(Integer, ForeignKey("bookmakers.id"), nullable=False, index=True)
    value = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    tip = relationship("Tip", back_populates="odds")
    bookmaker = relationship("Bookmaker")


class Parlay(Base):
    __tablename__ = "parlays"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    total_odds = Column(Numeric(10, 2), nullable=True)
    status = Column(
        Enum(*PARLAY_STATUSES, name="parlay_status_enum"),
        default="pending", nullable=False, index=True,
    )
    required_tier = Column(Integer, nullable=True)
    success_counted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    creator = relationship("User")
    legs = relationship(
        "ParlayTip",
        back_populates="parlay",
        cascade="all, delete-orphan",
        order_by="ParlayTip.position",
    )

    @property
    def tips(self) -> list["Tip"]:
        return [leg.tip for leg in self.legs]


class ParlayTip(Base):
    __tablename__ = "parlay_tips"

    parlay_id = Column(String(36), ForeignKey("parlays.id"), primary_key=True)
    tip_id = Column(String(36), ForeignKey("tips.id"), primary_key=True, index=True)
    # Keeps the creator's ordering of the legs
    position = Column(Integer, nullable=False, default=0)

    parlay = relationship("Parlay", back_populates="legs")
    tip = relationship("Tip")


class TipStat(Base):
    """Engagement counters; not a source of truth for outcomes."""
    __tablename__ = "tip_stats"

    tip_id = Column(String(36), ForeignKey("tips.id"), primary_key=True)
    views = Column(Integer, default=0, nullable=False)
    likes = Column(Integer, default=0, nullable=False)
    shares = Column(Integer, default=0, nullable=False)


class UserStat(Base):
    """Denormalized counters, bumped as content is created and resolved."""
    __tablename__ = "user_stats"

    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    total_tips = Column(Integer, default=0, nullable=False)
    successful_tips = Column(Integer, default=0, nullable=False)
    total_parlays = Column(Integer, default=0, nullable=False)
    successful_parlays = Column(Integer, default=0, nullable=False)
    last_calculated = Column(DateTime, default=utcnow)


class TipView(Base):
    """Append-only view log."""
    __tablename__ = "tip_views"

    id = Column(String(36), primary_key=True, default=_uuid)
    tip_id = Column(String(36), ForeignKey("tips.id"), nullable=False, index=True)
    viewer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    viewed_at = Column(DateTime, default=utcnow, nullable=False)
