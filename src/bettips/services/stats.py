"""
Stats aggregator: success rates and leaderboards derived from outcome states.

Every aggregate counts the same won / lost / pending / cancelled partition
through `outcome_counts`, and every success rate goes through `success_rate`:
won / (won + lost) as a percentage, 0 when nothing is resolved. Pending and
cancelled items never enter the denominator.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import case, distinct, func
from sqlalchemy.orm import Session

from ..db.models import (
    Bookmaker,
    League,
    Odds,
    Parlay,
    ParlayTip,
    Profile,
    Sport,
    Tip,
    User,
    UserStat,
    utcnow,
)
from ..errors import NotFound
from ..permissions import Role
from .access import AccessResolver, ContentKind

logger = logging.getLogger(__name__)

OUTCOMES = ("won", "lost", "pending", "cancelled")
PARLAY_OUTCOMES = OUTCOMES + ("partial",)

DEFAULT_MIN_RESOLVED_TIPS = 10
DEFAULT_MIN_PARLAYS = 5


def success_rate(won: int, lost: int) -> float:
    resolved = (won or 0) + (lost or 0)
    if resolved == 0:
        return 0.0
    return round((won or 0) / resolved * 100, 2)


def outcome_counts(status_column, key=None, outcomes=OUTCOMES) -> list:
    """Labelled conditional counts, one per outcome.

    With `key`, distinct values of `key` are counted, for joins that repeat
    rows (a tip quoted by many bookmakers, for instance).
    """
    columns = []
    for outcome in outcomes:
        if key is None:
            expr = func.count(case((status_column == outcome, 1)))
        else:
            expr = func.count(distinct(case((status_column == outcome, key))))
        columns.append(expr.label(f"{outcome}_count"))
    return columns


def _partition(row, outcomes=OUTCOMES) -> dict:
    counts = {o: int(getattr(row, f"{o}_count") or 0) for o in outcomes}
    counts["success_rate"] = success_rate(counts["won"], counts["lost"])
    return counts


def _float(value, places: int = 2) -> Optional[float]:
    return round(float(value), places) if value is not None else None


class StatsAggregator:
    """Read-only."""

    def __init__(self, db: Session, resolver: AccessResolver | None = None):
        self.db = db
        self.resolver = resolver or AccessResolver(db)

    def tip_summary(self, *criteria) -> dict:
        """Outcome partition for the tips matching `criteria`."""
        row = (
            self.db.query(func.count(Tip.id).label("total"), *outcome_counts(Tip.tip_status))
            .filter(*criteria)
            .one()
        )
        return {"total": int(row.total or 0), **_partition(row)}

    def user_stats(self, user_id: str) -> dict:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFound("User not found")

        overall = (
            self.db.query(
                func.count(Tip.id).label("total"),
                *outcome_counts(Tip.tip_status),
                func.count(case((Tip.match_status == "live", 1))).label("live"),
                func.count(distinct(Tip.sport_id)).label("sports"),
                func.count(distinct(Tip.league_id)).label("leagues"),
                func.avg(Tip.confidence).label("avg_confidence"),
            )
            .filter(Tip.creator_id == user_id)
            .one()
        )
        by_sport = (
            self.db.query(
                Sport.id.label("sport_id"),
                Sport.name.label("sport_name"),
                func.count(Tip.id).label("total"),
                *outcome_counts(Tip.tip_status),
            )
            .join(Tip, Tip.sport_id == Sport.id)
            .filter(Tip.creator_id == user_id)
            .group_by(Sport.id, Sport.name)
            .order_by(func.count(Tip.id).desc())
            .all()
        )
        parlays = (
            self.db.query(
                func.count(Parlay.id).label("total"),
                *outcome_counts(Parlay.status, outcomes=PARLAY_OUTCOMES),
            )
            .filter(Parlay.creator_id == user_id)
            .one()
        )
        counters = self.db.query(UserStat).filter(UserStat.user_id == user_id).first()
        return {
            "user_id": user.id,
            "tips": {
                "total": int(overall.total or 0),
                **_partition(overall),
                "live": int(overall.live or 0),
                "sports_count": int(overall.sports or 0),
                "leagues_count": int(overall.leagues or 0),
                "avg_confidence": _float(overall.avg_confidence),
            },
            "by_sport": [
                {
                    "sport_id": r.sport_id,
                    "sport_name": r.sport_name,
                    "total": int(r.total),
                    **_partition(r),
                }
                for r in by_sport
            ],
            "parlays": {
                "total": int(parlays.total or 0),
                **_partition(parlays, PARLAY_OUTCOMES),
            },
            "counters": {
                "total_tips": counters.total_tips if counters else 0,
                "successful_tips": counters.successful_tips if counters else 0,
                "total_parlays": counters.total_parlays if counters else 0,
                "successful_parlays": counters.successful_parlays if counters else 0,
                "last_calculated": (
                    counters.last_calculated.isoformat()
                    if counters and counters.last_calculated else None
                ),
            },
        }

    def league_stats(self, sport_id: int | None = None, now: datetime | None = None) -> list[dict]:
        now = now or utcnow()
        q = (
            self.db.query(
                League.id.label("league_id"),
                League.name.label("league_name"),
                League.country,
                Sport.id.label("sport_id"),
                Sport.name.label("sport_name"),
                func.count(Tip.id).label("total"),
                *outcome_counts(Tip.tip_status),
                func.count(distinct(Tip.creator_id)).label("unique_tipsters"),
                func.count(
                    case(
                        ((Tip.match_status == "scheduled") & (Tip.match_datetime > now), 1)
                    )
                ).label("upcoming"),
            )
            .join(Sport, League.sport_id == Sport.id)
            .outerjoin(Tip, Tip.league_id == League.id)
        )
        if sport_id is not None:
            q = q.filter(League.sport_id == sport_id)
        rows = (
            q.group_by(League.id, League.name, League.country, Sport.id, Sport.name)
            .order_by(func.count(Tip.id).desc(), League.name.asc())
            .all()
        )
        return [
            {
                "league_id": r.league_id,
                "league_name": r.league_name,
                "country": r.country,
                "sport_id": r.sport_id,
                "sport_name": r.sport_name,
                "total": int(r.total),
                **_partition(r),
                "unique_tipsters": int(r.unique_tipsters),
                "upcoming_tips": int(r.upcoming),
            }
            for r in rows
        ]

    def sport_stats(self) -> list[dict]:
        league_counts = (
            self.db.query(League.sport_id, func.count(League.id).label("leagues"))
            .group_by(League.sport_id)
            .subquery()
        )
        rows = (
            self.db.query(
                Sport.id.label("sport_id"),
                Sport.name,
                func.count(Tip.id).label("total"),
                *outcome_counts(Tip.tip_status),
                func.coalesce(func.max(league_counts.c.leagues), 0).label("leagues"),
            )
            .outerjoin(Tip, Tip.sport_id == Sport.id)
            .outerjoin(league_counts, league_counts.c.sport_id == Sport.id)
            .group_by(Sport.id, Sport.name)
            .order_by(func.count(Tip.id).desc(), Sport.name.asc())
            .all()
        )
        return [
            {
                "sport_id": r.sport_id,
                "name": r.name,
                "total": int(r.total),
                **_partition(r),
                "total_leagues": int(r.leagues),
            }
            for r in rows
        ]

    def bookmaker_stats(self) -> list[dict]:
        rows = (
            self.db.query(
                Bookmaker.id.label("bookmaker_id"),
                Bookmaker.name,
                func.count(Odds.id).label("total_odds"),
                func.avg(Odds.value).label("average_odds"),
                func.count(distinct(Tip.id)).label("total"),
                *outcome_counts(Tip.tip_status, key=Tip.id),
            )
            .outerjoin(Odds, Odds.bookmaker_id == Bookmaker.id)
            .outerjoin(Tip, Tip.id == Odds.tip_id)
            .group_by(Bookmaker.id, Bookmaker.name)
            .order_by(func.count(Odds.id).desc(), Bookmaker.name.asc())
            .all()
        )
        return [
            {
                "bookmaker_id": r.bookmaker_id,
                "name": r.name,
                "total_odds": int(r.total_odds),
                "average_odds": _float(r.average_odds) or 0.0,
                "total_tips": int(r.total),
                **_partition(r),
            }
            for r in rows
        ]

    def parlay_stats(
        self,
        user_id: Optional[str],
        min_parlays: int = DEFAULT_MIN_PARLAYS,
        limit: int = 10,
        now: datetime | None = None,
    ) -> dict:
        """Parlay aggregates over the parlays visible to `user_id`."""
        scoped = self.resolver.scoped_query(ContentKind.PARLAY, user_id, now)
        visible_ids = scoped.with_entities(Parlay.id).subquery()

        summary = (
            self.db.query(
                func.count(Parlay.id).label("total"),
                *outcome_counts(Parlay.status, outcomes=PARLAY_OUTCOMES),
                func.avg(Parlay.total_odds).label("average_odds"),
                func.avg(case((Parlay.status == "won", Parlay.total_odds))).label("average_winning_odds"),
            )
            .filter(Parlay.id.in_(visible_ids.select()))
            .one()
        )
        legs = (
            self.db.query(func.count(ParlayTip.tip_id))
            .filter(ParlayTip.parlay_id.in_(visible_ids.select()))
            .scalar()
        ) or 0
        total = int(summary.total or 0)

        creators = (
            self.db.query(
                User.id.label("user_id"),
                User.email,
                Profile.first_name,
                Profile.last_name,
                func.count(Parlay.id).label("total"),
                *outcome_counts(Parlay.status, outcomes=PARLAY_OUTCOMES),
                func.avg(Parlay.total_odds).label("average_odds"),
            )
            .join(Parlay, Parlay.creator_id == User.id)
            .join(Profile, Profile.user_id == User.id)
            .filter(Parlay.id.in_(visible_ids.select()))
            .group_by(User.id, User.email, Profile.first_name, Profile.last_name)
            .having(func.count(Parlay.id) >= min_parlays)
            .all()
        )
        ranked = sorted(
            (
                {
                    "user_id": r.user_id,
                    "email": r.email,
                    "name": " ".join(p for p in (r.first_name, r.last_name) if p),
                    "total_parlays": int(r.total),
                    **_partition(r, PARLAY_OUTCOMES),
                    "average_odds": _float(r.average_odds),
                }
                for r in creators
            ),
            key=lambda c: (-c["success_rate"], -c["total_parlays"]),
        )
        return {
            "global": {
                "total": total,
                **_partition(summary, PARLAY_OUTCOMES),
                "average_odds": _float(summary.average_odds),
                "average_winning_odds": _float(summary.average_winning_odds),
                "average_tips_per_parlay": round(legs / total, 2) if total else 0.0,
            },
            "top_creators": ranked[:limit],
        }

    def top_tipsters(
        self, limit: int = 10, min_resolved: int = DEFAULT_MIN_RESOLVED_TIPS
    ) -> list[dict]:
        """Tipsters with at least `min_resolved` won+lost tips, best rate first.

        Ties on success rate are broken by total tip volume.
        """
        rows = (
            self.db.query(
                User.id.label("user_id"),
                User.email,
                Profile.first_name,
                Profile.last_name,
                Profile.avatar_url,
                func.count(Tip.id).label("total"),
                *outcome_counts(Tip.tip_status),
            )
            .join(Profile, Profile.user_id == User.id)
            .join(Tip, Tip.creator_id == User.id)
            .filter(Profile.role == Role.TIPSTER.value, User.is_active.is_(True))
            .group_by(
                User.id, User.email, Profile.first_name, Profile.last_name, Profile.avatar_url
            )
            .all()
        )
        eligible = []
        for r in rows:
            counts = _partition(r)
            if counts["won"] + counts["lost"] < min_resolved:
                continue
            eligible.append({
                "user_id": r.user_id,
                "email": r.email,
                "first_name": r.first_name,
                "last_name": r.last_name,
                "avatar_url": r.avatar_url,
                "total_tips": int(r.total),
                **counts,
            })
        eligible.sort(key=lambda t: (-t["success_rate"], -t["total_tips"]))
        return eligible[:limit]
