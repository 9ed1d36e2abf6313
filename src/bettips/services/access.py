"""
Access resolver: which tips and parlays a user may see.

A user's effective tier is the tier level of their active grant's plan, or the
lowest catalog tier when there is no active grant (anonymous and unknown users
included). Content is visible when its required tier is unset or not above the
effective tier. The predicate is defined once, in `visibility_clause`, and every
point check and listing goes through it.

Nothing here is cached: grants expire continuously, so the tier is resolved
again on every call.
"""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from ..db.models import Parlay, Tip, utcnow
from .entitlements import EntitlementStore


class ContentKind(str, enum.Enum):
    TIP = "tip"
    PARLAY = "parlay"


_MODELS = {ContentKind.TIP: Tip, ContentKind.PARLAY: Parlay}


def visibility_clause(model, tier: int):
    """SQL predicate: rows of `model` visible at `tier`."""
    return or_(model.required_tier.is_(None), model.required_tier <= tier)


class AccessResolver:
    """Pure queries; never mutates state."""

    def __init__(self, db: Session, entitlements: EntitlementStore | None = None):
        self.db = db
        self.entitlements = entitlements or EntitlementStore(db)

    def effective_tier(self, user_id: Optional[str], now: datetime | None = None) -> int:
        grant = self.entitlements.active_grant(user_id, now or utcnow())
        if grant is not None and grant.plan is not None:
            return grant.plan.tier_level
        return self.entitlements.lowest_tier()

    def scoped_query(
        self,
        kind: ContentKind,
        user_id: Optional[str],
        now: datetime | None = None,
    ) -> Query:
        """A query over only the content visible to the user.

        Listing paths start here and add their filters, ordering and
        pagination afterwards, so page windows never include hidden rows.
        """
        model = _MODELS[ContentKind(kind)]
        tier = self.effective_tier(user_id, now)
        return self.db.query(model).filter(visibility_clause(model, tier))

    def accessible_ids(
        self,
        kind: ContentKind,
        user_id: Optional[str],
        now: datetime | None = None,
    ) -> set[str]:
        model = _MODELS[ContentKind(kind)]
        tier = self.effective_tier(user_id, now)
        rows = self.db.query(model.id).filter(visibility_clause(model, tier)).all()
        return {row.id for row in rows}

    def can_access(
        self,
        kind: ContentKind,
        user_id: Optional[str],
        content_id: str,
        now: datetime | None = None,
    ) -> bool:
        """Unknown content ids are reported as not accessible."""
        model = _MODELS[ContentKind(kind)]
        tier = self.effective_tier(user_id, now)
        row = (
            self.db.query(model.id)
            .filter(model.id == content_id, visibility_clause(model, tier))
            .first()
        )
        return row is not None
