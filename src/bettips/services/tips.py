"""
Tip registry: creation, editing, deletion and the read paths for tips.

Two independent state axes:
  match lifecycle  scheduled -> live -> completed, scheduled|live -> cancelled
  outcome          pending -> won | lost | cancelled

Once a match is completed or cancelled the tip is locked to moderators, who
may also correct states outside the forward transitions.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from ..db import crud
from ..db.engine import atomic
from ..db.models import Odds, ParlayTip, Tip, TipStat, TipView, User, utcnow
from ..errors import Conflict, Forbidden, NotFound, ValidationError
from ..permissions import Capability, can_modify, has_capability
from .access import AccessResolver, ContentKind
from .entitlements import EntitlementStore

logger = logging.getLogger(__name__)

MATCH_TRANSITIONS = {
    "scheduled": {"live", "cancelled"},
    "live": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}
OUTCOME_TRANSITIONS = {
    "pending": {"won", "lost", "cancelled"},
    "won": set(),
    "lost": set(),
    "cancelled": set(),
}
RESOLVED_MATCH_STATUSES = {"completed", "cancelled"}

TIP_SORT_FIELDS = {"match_datetime", "created_at", "confidence"}
POPULAR_ORDER = {"views", "likes", "shares"}

_EDITABLE_FIELDS = (
    "title",
    "description",
    "prediction_type",
    "prediction_value",
    "confidence",
    "match_result",
)


class TipRegistry:
    def __init__(
        self,
        db: Session,
        resolver: AccessResolver | None = None,
        on_outcome_change: Callable[[Tip], None] | None = None,
        on_odds_change: Callable[[Tip], None] | None = None,
    ):
        self.db = db
        self.entitlements = EntitlementStore(db)
        self.resolver = resolver or AccessResolver(db, self.entitlements)
        # Called inside the update transaction when a tip's outcome changes
        self.on_outcome_change = on_outcome_change
        self.on_odds_change = on_odds_change

    # ── Writes ──────────────────────────────────────────────────────────────

    def create_tip(
        self,
        creator: User,
        *,
        title: str,
        sport_id: int,
        league_id: int,
        team1_name: str,
        team2_name: str,
        match_datetime: datetime,
        prediction_type: str,
        prediction_value: str,
        confidence: int | None = None,
        description: str | None = None,
        required_tier: int | None = None,
        odds: Iterable[dict] | None = None,
    ) -> Tip:
        """Create a tip at scheduled/pending with its stats row, atomically."""
        if not has_capability(creator.role, Capability.PUBLISH_TIPS):
            raise Forbidden("Only tipsters and admins can publish tips")
        _check_confidence(confidence)
        odds = list(odds or [])

        with atomic(self.db):
            self._check_catalog(sport_id, league_id)
            self._check_tier(required_tier)
            tip = Tip(
                title=title,
                description=description,
                sport_id=sport_id,
                league_id=league_id,
                team1_name=team1_name,
                team2_name=team2_name,
                match_datetime=match_datetime,
                prediction_type=prediction_type,
                prediction_value=prediction_value,
                confidence=confidence,
                creator_id=creator.id,
                required_tier=required_tier,
                match_status="scheduled",
                tip_status="pending",
            )
            self.db.add(tip)
            self.db.flush()
            self.db.add(TipStat(tip_id=tip.id))
            self._replace_odds(tip, odds)
            crud.bump_user_stat(self.db, creator.id, total_tips=1)
        logger.info("Tip %s created by %s", tip.id, creator.id)
        return tip

    def update_tip(self, actor: User, tip_id: str, changes: dict) -> Tip:
        with atomic(self.db):
            tip = self._get_for_update(tip_id)
            if not can_modify(actor.role, actor.id, tip.creator_id):
                raise Forbidden("You do not have permission to update this tip")
            moderator = has_capability(actor.role, Capability.MODERATE_CONTENT)
            if tip.match_status in RESOLVED_MATCH_STATUSES and not moderator:
                raise Forbidden("Only an admin can modify a completed or cancelled tip")

            if "confidence" in changes:
                _check_confidence(changes["confidence"])
            for key in _EDITABLE_FIELDS:
                if changes.get(key) is not None:
                    setattr(tip, key, changes[key])
            if "required_tier" in changes:
                self._check_tier(changes["required_tier"])
                tip.required_tier = changes["required_tier"]

            new_match = changes.get("match_status")
            if new_match and new_match != tip.match_status:
                _check_transition(
                    "match status", MATCH_TRANSITIONS, tip.match_status, new_match, moderator
                )
                tip.match_status = new_match

            previous_outcome = tip.tip_status
            new_outcome = changes.get("tip_status")
            if new_outcome and new_outcome != previous_outcome:
                _check_transition(
                    "tip status", OUTCOME_TRANSITIONS, previous_outcome, new_outcome, moderator
                )
                tip.tip_status = new_outcome

            if changes.get("odds"):
                self._replace_odds(tip, changes["odds"])
                self.db.flush()
                if self.on_odds_change is not None:
                    self.on_odds_change(tip)

            if tip.tip_status != previous_outcome:
                if tip.tip_status == "won" and not tip.success_counted:
                    crud.bump_user_stat(self.db, tip.creator_id, successful_tips=1)
                    tip.success_counted = True
                self.db.flush()
                if self.on_outcome_change is not None:
                    self.on_outcome_change(tip)
        logger.info("Tip %s updated by %s", tip.id, actor.id)
        return tip

    def delete_tip(self, actor: User, tip_id: str) -> None:
        """Delete a tip with its odds, stats and views; refused while in a parlay."""
        with atomic(self.db):
            tip = self._get_for_update(tip_id)
            if not can_modify(actor.role, actor.id, tip.creator_id):
                raise Forbidden("You do not have permission to delete this tip")
            in_parlay = self.db.query(ParlayTip).filter(ParlayTip.tip_id == tip.id).first()
            if in_parlay is not None:
                raise Conflict(
                    "Cannot delete a tip that belongs to a parlay",
                    {"parlay_id": in_parlay.parlay_id},
                )
            self.db.delete(tip)
        logger.info("Tip %s deleted by %s", tip_id, actor.id)

    def record_view(self, tip_id: str, viewer_id: str) -> None:
        with atomic(self.db):
            self.db.add(TipView(tip_id=tip_id, viewer_id=viewer_id))
            self._bump_tip_stat(tip_id, "views")

    def record_engagement(self, tip_id: str, kind: str) -> TipStat:
        """Count a like or a share."""
        if kind not in ("likes", "shares"):
            raise ValidationError(f"Unknown engagement type '{kind}'")
        with atomic(self.db):
            self.get_tip(tip_id)
            self._bump_tip_stat(tip_id, kind)
        return self.db.query(TipStat).filter(TipStat.tip_id == tip_id).one()

    # ── Reads ───────────────────────────────────────────────────────────────

    def get_tip(self, tip_id: str) -> Tip:
        tip = self.db.query(Tip).filter(Tip.id == tip_id).first()
        if tip is None:
            raise NotFound("Tip not found")
        return tip

    def list_tips(
        self,
        user_id: Optional[str],
        *,
        sport_id: int | None = None,
        league_id: int | None = None,
        status: str | None = None,
        match_status: str | None = None,
        creator_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "match_datetime",
        sort_dir: str = "desc",
        now: datetime | None = None,
    ) -> tuple[list[Tip], dict]:
        if sort_by not in TIP_SORT_FIELDS:
            raise ValidationError(
                "Invalid sort field", {"sort_by": f"must be one of {sorted(TIP_SORT_FIELDS)}"}
            )
        q = self.resolver.scoped_query(ContentKind.TIP, user_id, now)
        if sport_id is not None:
            q = q.filter(Tip.sport_id == sport_id)
        if league_id is not None:
            q = q.filter(Tip.league_id == league_id)
        if status:
            q = q.filter(Tip.tip_status == status)
        if match_status:
            q = q.filter(Tip.match_status == match_status)
        if creator_id:
            q = q.filter(Tip.creator_id == creator_id)
        if start_date is not None:
            q = q.filter(Tip.match_datetime >= start_date)
        if end_date is not None:
            q = q.filter(Tip.match_datetime <= end_date)
        column = getattr(Tip, sort_by)
        order = column.asc() if sort_dir.lower() == "asc" else column.desc()
        return crud.paginate(q.order_by(order, Tip.id.asc()), page, limit)

    def popular_tips(
        self, user_id: Optional[str], by: str = "views", limit: int = 5
    ) -> list[Tip]:
        if by not in POPULAR_ORDER:
            by = "views"
        q = self.resolver.scoped_query(ContentKind.TIP, user_id).join(
            TipStat, TipStat.tip_id == Tip.id
        )
        return q.order_by(getattr(TipStat, by).desc(), Tip.created_at.desc()).limit(limit).all()

    def live_tips(self, user_id: Optional[str]) -> list[Tip]:
        q = self.resolver.scoped_query(ContentKind.TIP, user_id)
        return q.filter(Tip.match_status == "live").order_by(Tip.match_datetime.asc()).all()

    def upcoming_tips(
        self,
        user_id: Optional[str],
        hours: int = 24,
        limit: int = 10,
        now: datetime | None = None,
    ) -> list[Tip]:
        now = now or utcnow()
        q = self.resolver.scoped_query(ContentKind.TIP, user_id, now)
        return (
            q.filter(
                Tip.match_status == "scheduled",
                Tip.match_datetime > now,
                Tip.match_datetime < now + timedelta(hours=hours),
            )
            .order_by(Tip.match_datetime.asc())
            .limit(limit)
            .all()
        )

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _get_for_update(self, tip_id: str) -> Tip:
        tip = self.db.query(Tip).filter(Tip.id == tip_id).with_for_update().first()
        if tip is None:
            raise NotFound("Tip not found")
        return tip

    def _check_catalog(self, sport_id: int, league_id: int) -> None:
        if crud.get_sport(self.db, sport_id) is None:
            raise NotFound("Sport not found", {"sport_id": sport_id})
        league = crud.get_league(self.db, league_id)
        if league is None:
            raise NotFound("League not found", {"league_id": league_id})
        if league.sport_id != sport_id:
            raise ValidationError(
                "League does not belong to the given sport",
                {"league_id": "must belong to sport_id"},
            )

    def _check_tier(self, tier: int | None) -> None:
        if tier is not None and not self.entitlements.tier_exists(tier):
            raise ValidationError(
                "Unknown subscription tier", {"required_tier": f"no plan has tier {tier}"}
            )

    def _replace_odds(self, tip: Tip, odds: list[dict]) -> None:
        bookmaker_ids = [int(o["bookmaker_id"]) for o in odds]
        if len(set(bookmaker_ids)) != len(bookmaker_ids):
            raise ValidationError(
                "A tip can carry only one quote per bookmaker",
                {"odds": "duplicate bookmaker_id"},
            )
        missing = [b for b in bookmaker_ids if crud.get_bookmaker(self.db, b) is None]
        if missing:
            raise NotFound("Bookmaker not found", {"bookmaker_ids": missing})
        tip.odds.clear()
        self.db.flush()
        for entry in odds:
            tip.odds.append(Odds(bookmaker_id=int(entry["bookmaker_id"]), value=entry["value"]))

    def _bump_tip_stat(self, tip_id: str, column: str) -> None:
        stat = self.db.query(TipStat).filter(TipStat.tip_id == tip_id).first()
        if stat is None:
            raise NotFound("Tip not found")
        setattr(stat, column, getattr(stat, column) + 1)


def _check_confidence(confidence: int | None) -> None:
    if confidence is not None and not 1 <= confidence <= 10:
        raise ValidationError(
            "Confidence must be between 1 and 10", {"confidence": "must be between 1 and 10"}
        )


def _check_transition(
    label: str, table: dict[str, set[str]], current: str, new: str, moderator: bool
) -> None:
    if new not in table:
        raise ValidationError(f"Unknown {label} '{new}'")
    if new in table[current] or moderator:
        return
    raise Conflict(f"Cannot change {label} from '{current}' to '{new}'")


def serialize_tip(tip: Tip, include_stats: bool = True) -> dict:
    """Fixed read shape for a tip."""
    creator = tip.creator
    profile = creator.profile if creator else None
    data = {
        "id": tip.id,
        "title": tip.title,
        "description": tip.description,
        "sport": {"id": tip.sport.id, "name": tip.sport.name} if tip.sport else None,
        "league": (
            {"id": tip.league.id, "name": tip.league.name, "country": tip.league.country}
            if tip.league else None
        ),
        "team1_name": tip.team1_name,
        "team2_name": tip.team2_name,
        "match_datetime": tip.match_datetime.isoformat() if tip.match_datetime else None,
        "match_status": tip.match_status,
        "match_result": tip.match_result,
        "prediction_type": tip.prediction_type,
        "prediction_value": tip.prediction_value,
        "confidence": tip.confidence,
        "tip_status": tip.tip_status,
        "required_tier": tip.required_tier,
        "creator": {
            "id": creator.id,
            "name": profile.display_name if profile else None,
            "avatar_url": profile.avatar_url if profile else None,
        } if creator else None,
        "odds": [
            {
                "bookmaker": {"id": o.bookmaker.id, "name": o.bookmaker.name},
                "value": float(o.value),
            }
            for o in tip.odds
        ],
        "created_at": tip.created_at.isoformat() if tip.created_at else None,
    }
    if include_stats:
        stats = tip.stats
        data["stats"] = {
            "views": stats.views if stats else 0,
            "likes": stats.likes if stats else 0,
            "shares": stats.shares if stats else 0,
        }
    return data
