"""
Default subscription plan catalog and feature lookups.

Plans:
  FREE    - Tier 1: lowest-tier tips only, one daily tip, no parlays
  PREMIUM - Tier 2: every tip, parlays and historical stats
  VIP     - Tier 3: everything, plus premium analytics

Higher tiers see everything lower tiers see; gating compares tier levels only.
The feature bag is informational for clients.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from .db.models import SubscriptionPlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanDefinition:
    """A plan as shipped with the application."""
    name: str
    tier_level: int
    price: float
    duration_days: int = 30
    description: str = ""
    features: dict = field(default_factory=dict)


FREE = PlanDefinition(
    name="Free",
    tier_level=1,
    price=0.0,
    description="Basic access with limited features",
    features={"daily_tips": 1, "parlays": False, "historical_data": False},
)

PREMIUM = PlanDefinition(
    name="Premium",
    tier_level=2,
    price=9.99,
    description="Every tip plus basic statistics",
    features={"daily_tips": "unlimited", "parlays": True, "historical_data": True},
)

VIP = PlanDefinition(
    name="VIP",
    tier_level=3,
    price=19.99,
    description="Full access with premium analytics",
    features={
        "daily_tips": "unlimited",
        "parlays": True,
        "historical_data": True,
        "premium_analytics": True,
    },
)

DEFAULT_PLANS = {"free": FREE, "premium": PREMIUM, "vip": VIP}


def ensure_default_plans(db: Session) -> list[SubscriptionPlan]:
    """Insert the default plans when the catalog is empty."""
    if db.query(SubscriptionPlan).count():
        return []
    created = []
    for definition in DEFAULT_PLANS.values():
        plan = SubscriptionPlan(
            name=definition.name,
            description=definition.description,
            tier_level=definition.tier_level,
            price=definition.price,
            duration_days=definition.duration_days,
            features=dict(definition.features),
        )
        db.add(plan)
        created.append(plan)
    db.commit()
    logger.info("Seeded %d default subscription plans", len(created))
    return created
