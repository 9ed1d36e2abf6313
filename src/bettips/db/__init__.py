from .engine import Database, atomic, get_engine, init_db
from .models import (
    Base,
    Bookmaker,
    League,
    Odds,
    Parlay,
    ParlayTip,
    Profile,
    Sport,
    SubscriptionPlan,
    Tip,
    TipStat,
    TipView,
    User,
    UserStat,
    UserSubscriptionGrant,
)

__all__ = [
    "Database",
    "atomic",
    "get_engine",
    "init_db",
    "Base",
    "Bookmaker",
    "League",
    "Odds",
    "Parlay",
    "ParlayTip",
    "Profile",
    "Sport",
    "SubscriptionPlan",
    "Tip",
    "TipStat",
    "TipView",
    "User",
    "UserStat",
    "UserSubscriptionGrant",
]
