"""
Parlay composer: builds, re-prices, settles and tears down parlays.

Pricing multiplies each leg's quote from the reference bookmaker and rounds
half-up to two decimals. A leg without a reference quote contributes 1; that
approximation is logged and reported back as `unpriced_tip_ids`, or rejected
outright when strict pricing is enabled.

Every create or update reads its tips inside the same transaction that
writes the parlay, so a tip resolved or deleted concurrently can't slip in.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from ..db import crud
from ..db.engine import atomic
from ..db.models import Odds, Parlay, ParlayTip, Tip, User, utcnow
from ..errors import Conflict, Forbidden, NotFound, ValidationError
from ..permissions import Capability, Role, can_modify, has_capability
from .access import AccessResolver, ContentKind
from .entitlements import EntitlementStore
from .tips import serialize_tip

logger = logging.getLogger(__name__)

MIN_LEGS = 2
PARLAY_SORT_FIELDS = {"created_at", "total_odds"}
_TWO_PLACES = Decimal("0.01")


@dataclass
class Pricing:
    total_odds: Decimal
    unpriced_tip_ids: list[str] = field(default_factory=list)


def combine_odds(quotes: Sequence[Decimal | float | None]) -> Decimal:
    """Multiply quotes, treating a missing quote as 1, rounded half-up to 2dp."""
    total = Decimal("1")
    for quote in quotes:
        if quote is not None:
            total *= Decimal(str(quote))
    return total.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def derive_status(outcomes: Sequence[str]) -> str:
    """Overall parlay status from its legs' outcomes."""
    counts = Counter(outcomes)
    if not outcomes:
        return "pending"
    if counts["lost"]:
        return "lost"
    if counts["pending"]:
        return "pending"
    if counts["won"] == len(outcomes):
        return "won"
    if counts["cancelled"] == len(outcomes):
        return "cancelled"
    return "partial"


class ParlayComposer:
    def __init__(
        self,
        db: Session,
        reference_bookmaker_id: int = 1,
        strict_pricing: bool = False,
        resolver: AccessResolver | None = None,
    ):
        self.db = db
        self.reference_bookmaker_id = reference_bookmaker_id
        self.strict_pricing = strict_pricing
        self.entitlements = EntitlementStore(db)
        self.resolver = resolver or AccessResolver(db, self.entitlements)

    # ── Pricing ─────────────────────────────────────────────────────────────

    def price(self, tips: Sequence[Tip]) -> Pricing:
        quotes = {
            o.tip_id: o.value
            for o in self.db.query(Odds).filter(
                Odds.tip_id.in_([t.id for t in tips]),
                Odds.bookmaker_id == self.reference_bookmaker_id,
            )
        }
        unpriced = [t.id for t in tips if t.id not in quotes]
        if unpriced:
            if self.strict_pricing:
                raise Conflict(
                    "Some tips have no quote from the reference bookmaker",
                    {"tip_ids": unpriced},
                )
            logger.warning(
                "Pricing parlay without reference quotes for tips %s; treating them as 1.00",
                unpriced,
            )
        return Pricing(combine_odds([quotes.get(t.id) for t in tips]), unpriced)

    # ── Writes ──────────────────────────────────────────────────────────────

    def create_parlay(
        self,
        creator: User,
        *,
        title: str,
        tip_ids: Sequence[str],
        description: str | None = None,
        required_tier: int | None = None,
        now: datetime | None = None,
    ) -> tuple[Parlay, Pricing]:
        tip_ids = _check_leg_ids(tip_ids)
        with atomic(self.db):
            tier = self._creation_tier(creator, required_tier, now)
            tips = self._load_pending_tips(tip_ids)
            pricing = self.price(tips)
            parlay = Parlay(
                title=title,
                description=description,
                creator_id=creator.id,
                total_odds=pricing.total_odds,
                status="pending",
                required_tier=tier,
            )
            self.db.add(parlay)
            self.db.flush()
            self._attach_legs(parlay, tip_ids)
            crud.bump_user_stat(self.db, creator.id, total_parlays=1)
        logger.info(
            "Parlay %s created by %s with %d legs at %s",
            parlay.id, creator.id, len(tip_ids), pricing.total_odds,
        )
        return parlay, pricing

    def update_parlay(
        self,
        actor: User,
        parlay_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        required_tier: int | None = None,
        tip_ids: Sequence[str] | None = None,
    ) -> tuple[Parlay, Optional[Pricing]]:
        """Edit a pending parlay. A new tip list replaces all legs and re-prices."""
        if tip_ids is not None:
            tip_ids = _check_leg_ids(tip_ids)
        pricing = None
        with atomic(self.db):
            parlay = self._get_for_update(parlay_id)
            moderator = has_capability(actor.role, Capability.MODERATE_CONTENT)
            if not can_modify(actor.role, actor.id, parlay.creator_id):
                raise Forbidden("You do not have permission to update this parlay")
            if parlay.status != "pending" and not moderator:
                raise Conflict("Only pending parlays can be updated")
            if required_tier is not None:
                self._check_tier(required_tier)
                current = parlay.required_tier or self.entitlements.lowest_tier()
                if required_tier > current and not moderator:
                    raise Forbidden("Only administrators can raise a parlay's required tier")
                parlay.required_tier = required_tier
            if title:
                parlay.title = title
            if description is not None:
                parlay.description = description
            if tip_ids is not None:
                tips = self._load_pending_tips(tip_ids)
                pricing = self.price(tips)
                parlay.legs.clear()
                self.db.flush()
                self._attach_legs(parlay, tip_ids)
                parlay.total_odds = pricing.total_odds
        logger.info("Parlay %s updated by %s", parlay.id, actor.id)
        return parlay, pricing

    def delete_parlay(self, actor: User, parlay_id: str) -> None:
        with atomic(self.db):
            parlay = self._get_for_update(parlay_id)
            if not can_modify(actor.role, actor.id, parlay.creator_id):
                raise Forbidden("You do not have permission to delete this parlay")
            # Legs go first through the delete-orphan cascade
            self.db.delete(parlay)
        logger.info("Parlay %s deleted by %s", parlay_id, actor.id)

    def settle(self, parlay: Parlay) -> str:
        """Recompute the status from the legs. Does not commit."""
        previous = parlay.status
        parlay.status = derive_status([tip.tip_status for tip in parlay.tips])
        if parlay.status != previous:
            if parlay.status == "won" and not parlay.success_counted:
                crud.bump_user_stat(self.db, parlay.creator_id, successful_parlays=1)
                parlay.success_counted = True
            logger.info("Parlay %s settled %s -> %s", parlay.id, previous, parlay.status)
        return parlay.status

    def settle_for_tip(self, tip: Tip) -> None:
        """Re-settle every parlay that contains `tip`."""
        parlays = (
            self.db.query(Parlay)
            .join(ParlayTip, ParlayTip.parlay_id == Parlay.id)
            .filter(ParlayTip.tip_id == tip.id)
            .all()
        )
        for parlay in parlays:
            self.settle(parlay)

    def reprice_for_tip(self, tip: Tip) -> None:
        """Re-price every pending parlay that contains `tip` after its quotes change."""
        parlays = (
            self.db.query(Parlay)
            .join(ParlayTip, ParlayTip.parlay_id == Parlay.id)
            .filter(ParlayTip.tip_id == tip.id, Parlay.status == "pending")
            .all()
        )
        for parlay in parlays:
            previous = parlay.total_odds
            parlay.total_odds = self.price(parlay.tips).total_odds
            logger.info(
                "Parlay %s re-priced %s -> %s", parlay.id, previous, parlay.total_odds
            )

    # ── Reads ───────────────────────────────────────────────────────────────

    def get_parlay(self, parlay_id: str) -> Parlay:
        parlay = self.db.query(Parlay).filter(Parlay.id == parlay_id).first()
        if parlay is None:
            raise NotFound("Parlay not found")
        return parlay

    def list_parlays(
        self,
        user_id: Optional[str],
        *,
        status: str | None = None,
        creator_id: str | None = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_dir: str = "desc",
        now: datetime | None = None,
    ) -> tuple[list[Parlay], dict]:
        if sort_by not in PARLAY_SORT_FIELDS:
            raise ValidationError(
                "Invalid sort field", {"sort_by": f"must be one of {sorted(PARLAY_SORT_FIELDS)}"}
            )
        q = self.resolver.scoped_query(ContentKind.PARLAY, user_id, now)
        if status:
            q = q.filter(Parlay.status == status)
        if creator_id:
            q = q.filter(Parlay.creator_id == creator_id)
        column = getattr(Parlay, sort_by)
        order = column.asc() if sort_dir.lower() == "asc" else column.desc()
        return crud.paginate(q.order_by(order, Parlay.id.asc()), page, limit)

    def popular_parlays(self, user_id: Optional[str], limit: int = 5) -> list[Parlay]:
        q = self.resolver.scoped_query(ContentKind.PARLAY, user_id)
        return (
            q.filter(Parlay.status == "pending")
            .order_by(Parlay.total_odds.desc(), Parlay.created_at.desc())
            .limit(limit)
            .all()
        )

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _get_for_update(self, parlay_id: str) -> Parlay:
        parlay = self.db.query(Parlay).filter(Parlay.id == parlay_id).with_for_update().first()
        if parlay is None:
            raise NotFound("Parlay not found")
        return parlay

    def _load_pending_tips(self, tip_ids: list[str]) -> list[Tip]:
        """Lock and return the tips in request order; all must exist and be pending."""
        rows = self.db.query(Tip).filter(Tip.id.in_(tip_ids)).with_for_update().all()
        by_id = {tip.id: tip for tip in rows}
        missing = [tid for tid in tip_ids if tid not in by_id]
        if missing:
            raise NotFound("One or more tips do not exist", {"tip_ids": missing})
        resolved = [tid for tid in tip_ids if by_id[tid].tip_status != "pending"]
        if resolved:
            raise Conflict("Only pending tips can be included in a parlay", {"tip_ids": resolved})
        return [by_id[tid] for tid in tip_ids]

    def _attach_legs(self, parlay: Parlay, tip_ids: list[str]) -> None:
        for position, tip_id in enumerate(tip_ids):
            parlay.legs.append(ParlayTip(tip_id=tip_id, position=position))
        self.db.flush()

    def _check_tier(self, tier: int) -> None:
        if not self.entitlements.tier_exists(tier):
            raise ValidationError(
                "Unknown subscription tier", {"required_tier": f"no plan has tier {tier}"}
            )

    def _creation_tier(self, creator: User, tier: int | None, now: datetime | None) -> int:
        """Validate the requested tier; regular users can't lock above their own tier."""
        if tier is None:
            return self.entitlements.lowest_tier()
        self._check_tier(tier)
        if creator.role == Role.USER:
            own = self.resolver.effective_tier(creator.id, now or utcnow())
            if tier > own:
                raise Forbidden("You cannot publish a parlay above your own subscription tier")
        return tier


def _check_leg_ids(tip_ids: Sequence[str] | None) -> list[str]:
    tip_ids = list(tip_ids or [])
    if len(tip_ids) < MIN_LEGS:
        raise ValidationError(
            f"A parlay needs at least {MIN_LEGS} tips",
            {"tip_ids": f"provide at least {MIN_LEGS} tip ids"},
        )
    duplicates = sorted({tid for tid in tip_ids if tip_ids.count(tid) > 1})
    if duplicates:
        raise ValidationError(
            "A tip can appear only once in a parlay", {"tip_ids": duplicates}
        )
    return tip_ids


def serialize_parlay(parlay: Parlay, pricing: Pricing | None = None) -> dict:
    """Fixed read shape for a parlay with its legs expanded."""
    creator = parlay.creator
    profile = creator.profile if creator else None
    data = {
        "id": parlay.id,
        "title": parlay.title,
        "description": parlay.description,
        "total_odds": float(parlay.total_odds) if parlay.total_odds is not None else None,
        "status": parlay.status,
        "required_tier": parlay.required_tier,
        "creator": {
            "id": creator.id,
            "name": profile.display_name if profile else None,
            "avatar_url": profile.avatar_url if profile else None,
        } if creator else None,
        "tips": [serialize_tip(tip, include_stats=False) for tip in parlay.tips],
        "created_at": parlay.created_at.isoformat() if parlay.created_at else None,
    }
    if pricing is not None:
        data["unpriced_tip_ids"] = pricing.unpriced_tip_ids
    return data
