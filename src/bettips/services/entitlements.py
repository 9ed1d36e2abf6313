"""
Entitlement store: the plan catalog and each user's time-bounded grants.

The active grant is the one with the latest end_date that is still strictly
in the future. Cancelling shortens a grant to "now"; grants are never deleted.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..db import crud
from ..db.engine import atomic
from ..db.models import Profile, SubscriptionPlan, UserSubscriptionGrant, utcnow
from ..errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)


class EntitlementStore:
    """Reads and writes plans and grants."""

    def __init__(self, db: Session):
        self.db = db

    # ── Catalog ─────────────────────────────────────────────────────────────

    def list_plans(self) -> list[SubscriptionPlan]:
        return (
            self.db.query(SubscriptionPlan)
            .order_by(SubscriptionPlan.price.asc(), SubscriptionPlan.tier_level.asc())
            .all()
        )

    def get_plan(self, plan_id: int) -> SubscriptionPlan:
        plan = crud.get_plan(self.db, plan_id)
        if plan is None:
            raise NotFound("Subscription plan not found")
        return plan

    def free_plan(self) -> Optional[SubscriptionPlan]:
        return crud.get_free_plan(self.db)

    def lowest_tier(self) -> int:
        return crud.lowest_tier(self.db)

    def tier_exists(self, tier_level: int) -> bool:
        return crud.get_plan_by_tier(self.db, tier_level) is not None

    def create_plan(
        self,
        name: str,
        tier_level: int,
        price: float,
        duration_days: int,
        description: str | None = None,
        features: dict | None = None,
    ) -> SubscriptionPlan:
        if duration_days <= 0:
            raise ValidationError(
                "Duration must be positive", {"duration_days": "must be greater than 0"}
            )
        with atomic(self.db):
            if crud.get_plan_by_name(self.db, name):
                raise Conflict("A subscription plan with that name already exists")
            if crud.get_plan_by_tier(self.db, tier_level):
                raise Conflict(f"Tier level {tier_level} is already used by another plan")
            plan = SubscriptionPlan(
                name=name,
                tier_level=tier_level,
                price=price,
                duration_days=duration_days,
                description=description,
                features=features,
            )
            self.db.add(plan)
        logger.info("Created subscription plan %s (tier %d)", name, tier_level)
        return plan

    def update_plan(self, plan_id: int, **changes) -> SubscriptionPlan:
        with atomic(self.db):
            plan = self.get_plan(plan_id)
            name = changes.get("name")
            if name and name != plan.name and crud.get_plan_by_name(self.db, name):
                raise Conflict("Another subscription plan already uses that name")
            tier = changes.get("tier_level")
            if tier is not None and tier != plan.tier_level and crud.get_plan_by_tier(self.db, tier):
                raise Conflict(f"Tier level {tier} is already used by another plan")
            if changes.get("duration_days") is not None and changes["duration_days"] <= 0:
                raise ValidationError(
                    "Duration must be positive", {"duration_days": "must be greater than 0"}
                )
            for key in ("name", "description", "tier_level", "price", "duration_days", "features"):
                if changes.get(key) is not None:
                    setattr(plan, key, changes[key])
        return plan

    def delete_plan(self, plan_id: int, now: datetime | None = None) -> None:
        """Delete a plan nobody currently holds; profiles on it fall back to free."""
        now = now or utcnow()
        with atomic(self.db):
            plan = self.get_plan(plan_id)
            in_use = (
                self.db.query(UserSubscriptionGrant)
                .filter(
                    UserSubscriptionGrant.plan_id == plan.id,
                    UserSubscriptionGrant.end_date > now,
                )
                .first()
            )
            if in_use is not None:
                raise Conflict("Cannot delete a subscription plan with active subscribers")
            if self.db.query(UserSubscriptionGrant).filter(
                UserSubscriptionGrant.plan_id == plan.id
            ).first() is not None:
                raise Conflict("Cannot delete a subscription plan referenced by past grants")
            fallback = (
                self.db.query(SubscriptionPlan)
                .filter(SubscriptionPlan.id != plan.id)
                .order_by(SubscriptionPlan.tier_level.asc())
                .first()
            )
            self.db.query(Profile).filter(Profile.plan_id == plan.id).update(
                {Profile.plan_id: fallback.id if fallback else None},
                synchronize_session=False,
            )
            self.db.delete(plan)
        logger.info("Deleted subscription plan %s", plan_id)

    # ── Grants ──────────────────────────────────────────────────────────────

    def active_grant(
        self, user_id: str | None, now: datetime | None = None
    ) -> Optional[UserSubscriptionGrant]:
        """The grant with the latest end_date strictly after `now`."""
        if not user_id:
            return None
        now = now or utcnow()
        return (
            self.db.query(UserSubscriptionGrant)
            .filter(
                UserSubscriptionGrant.user_id == user_id,
                UserSubscriptionGrant.end_date > now,
            )
            .order_by(UserSubscriptionGrant.end_date.desc())
            .first()
        )

    def history(self, user_id: str) -> list[UserSubscriptionGrant]:
        return (
            self.db.query(UserSubscriptionGrant)
            .filter(UserSubscriptionGrant.user_id == user_id)
            .order_by(UserSubscriptionGrant.start_date.desc())
            .all()
        )

    def subscribe(
        self,
        user_id: str,
        plan_id: int,
        payment_id: str | None = None,
        payment_status: str | None = None,
        now: datetime | None = None,
    ) -> UserSubscriptionGrant:
        """Grant a plan for its duration starting now and point the profile at it."""
        now = now or utcnow()
        with atomic(self.db):
            plan = self.get_plan(plan_id)
            grant = UserSubscriptionGrant(
                user_id=user_id,
                plan_id=plan.id,
                start_date=now,
                end_date=now + timedelta(days=plan.duration_days),
                payment_id=payment_id,
                payment_status=payment_status,
            )
            self.db.add(grant)
            self._set_profile_plan(user_id, plan.id)
        logger.info("User %s subscribed to plan %s until %s", user_id, plan.name, grant.end_date)
        return grant

    def cancel(self, user_id: str, plan_id: int, now: datetime | None = None) -> int:
        """Cut every live grant of a plan short at `now`.

        Grants that already ended keep their end_date. Cancelling a plan that
        is no longer active still succeeds and moves the profile to the free
        plan. Returns the number of grants shortened.
        """
        now = now or utcnow()
        with atomic(self.db):
            grants = (
                self.db.query(UserSubscriptionGrant)
                .filter(
                    UserSubscriptionGrant.user_id == user_id,
                    UserSubscriptionGrant.plan_id == plan_id,
                )
                .all()
            )
            if not grants:
                raise NotFound("No subscription to that plan was found for this user")
            shortened = 0
            for grant in grants:
                if grant.end_date > now:
                    grant.end_date = now
                    shortened += 1
            free = crud.get_free_plan(self.db)
            self._set_profile_plan(user_id, free.id if free else None)
        logger.info("User %s cancelled plan %s (%d grants shortened)", user_id, plan_id, shortened)
        return shortened

    def _set_profile_plan(self, user_id: str, plan_id: int | None) -> None:
        self.db.query(Profile).filter(Profile.user_id == user_id).update(
            {Profile.plan_id: plan_id}, synchronize_session=False
        )
