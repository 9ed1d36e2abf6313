"""FastAPI dependency injection."""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..db import crud
from ..db.models import User
from ..errors import Forbidden, Unauthorized
from ..permissions import Capability, has_capability
from ..services.access import AccessResolver
from ..services.accounts import AccountService
from ..services.catalog import Catalog
from ..services.entitlements import EntitlementStore
from ..services.notifications import Mailer
from ..services.parlays import ParlayComposer
from ..services.stats import StatsAggregator
from ..services.tips import TipRegistry
from ..settings import Settings
from .auth import decode_token

_security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request):
    """Yield a database session for one request."""
    yield from request.app.state.db.sessions()


def get_mailer(settings: Settings = Depends(get_settings)) -> Mailer:
    return Mailer(settings)


def _user_from_token(db: Session, token: str) -> User:
    payload = decode_token(token, purpose="access")
    if payload is None:
        raise Unauthorized("Invalid or expired token")
    user = crud.get_user_by_id(db, payload["sub"])
    if user is None or not user.is_active:
        raise Unauthorized("User not found or inactive")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_security),
    db: Session = Depends(get_db),
) -> User:
    """Extract and validate the current user from JWT."""
    if credentials is None:
        raise Unauthorized("Authentication required")
    return _user_from_token(db, credentials.credentials)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """The caller when a valid token is sent, otherwise None (anonymous)."""
    if credentials is None:
        return None
    return _user_from_token(db, credentials.credentials)


def require_capability(capability: Capability):
    """Dependency factory that checks the caller's role grants `capability`."""

    def checker(user: User = Depends(get_current_user)) -> User:
        if not has_capability(user.role, capability):
            raise Forbidden("You do not have permission to perform this action")
        return user

    return checker


# ── Services ────────────────────────────────────────────────────────────────

def get_entitlements(db: Session = Depends(get_db)) -> EntitlementStore:
    return EntitlementStore(db)


def get_resolver(entitlements: EntitlementStore = Depends(get_entitlements)) -> AccessResolver:
    return AccessResolver(entitlements.db, entitlements)


def get_parlay_composer(
    resolver: AccessResolver = Depends(get_resolver),
    settings: Settings = Depends(get_settings),
) -> ParlayComposer:
    return ParlayComposer(
        resolver.db,
        reference_bookmaker_id=settings.reference_bookmaker_id,
        strict_pricing=settings.strict_parlay_pricing,
        resolver=resolver,
    )


def get_tip_registry(
    resolver: AccessResolver = Depends(get_resolver),
    parlays: ParlayComposer = Depends(get_parlay_composer),
) -> TipRegistry:
    return TipRegistry(
        resolver.db,
        resolver,
        on_outcome_change=parlays.settle_for_tip,
        on_odds_change=parlays.reprice_for_tip,
    )


def get_stats(resolver: AccessResolver = Depends(get_resolver)) -> StatsAggregator:
    return StatsAggregator(resolver.db, resolver)


def get_catalog(db: Session = Depends(get_db)) -> Catalog:
    return Catalog(db)


def get_accounts(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    mailer: Mailer = Depends(get_mailer),
) -> AccountService:
    return AccountService(db, settings, mailer)
