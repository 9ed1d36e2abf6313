"""Accounts: registration, credentials, profiles and user administration."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..api.auth import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    new_reset_token,
    verify_password,
)
from ..db import crud
from ..db.engine import atomic
from ..db.models import (
    Parlay,
    Profile,
    Tip,
    TipView,
    User,
    UserStat,
    UserSubscriptionGrant,
    utcnow,
)
from ..errors import Conflict, Forbidden, Internal, NotFound, Unauthorized, ValidationError
from ..permissions import Capability, Role, has_capability
from ..settings import Settings
from .notifications import Mailer

logger = logging.getLogger(__name__)

USER_SORT_FIELDS = {"created_at", "email", "last_login"}
_PROFILE_FIELDS = ("first_name", "last_name", "bio", "avatar_url")


class AccountService:
    def __init__(self, db: Session, settings: Settings, mailer: Mailer | None = None):
        self.db = db
        self.settings = settings
        self.mailer = mailer or Mailer(settings)

    # ── Credentials ─────────────────────────────────────────────────────────

    def register(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        """Create a user on the free plan. The welcome email is best-effort."""
        if crud.get_user_by_email(self.db, email):
            raise Conflict("Email already registered", {"email": "already registered"})
        user = crud.create_user(
            self.db, email, hash_password(password), first_name, last_name, Role.USER
        )
        logger.info("Registered user %s", user.id)
        if not self.mailer.send_welcome(user.email, first_name):
            logger.warning("Welcome email not delivered to user %s", user.id)
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = crud.get_user_by_email(self.db, email)
        if user is None or not verify_password(password, user.password_hash):
            raise Unauthorized("Invalid email or password")
        if not user.is_active:
            raise Forbidden("This account has been deactivated")
        with atomic(self.db):
            user.last_login = utcnow()
        return user

    def issue_tokens(self, user: User) -> dict:
        return {
            "access_token": create_access_token(user.id, user.email, user.role.value),
            "refresh_token": create_refresh_token(user.id),
            "token_type": "bearer",
        }

    def refresh(self, refresh_token: str) -> dict:
        claims = decode_token(refresh_token, purpose="refresh")
        if claims is None:
            raise Unauthorized("Invalid or expired refresh token")
        user = crud.get_user_by_id(self.db, claims["sub"])
        if user is None or not user.is_active:
            raise Unauthorized("User not found or inactive")
        return self.issue_tokens(user)

    def request_password_reset(self, email: str, now: datetime | None = None) -> bool:
        """Issue a reset token and email it.

        Unknown addresses return False without revealing anything; a failed
        delivery raises Internal so the caller can retry.
        """
        user = crud.get_user_by_email(self.db, email)
        if user is None:
            logger.info("Password reset requested for unknown address")
            return False
        now = now or utcnow()
        with atomic(self.db):
            user.reset_token = new_reset_token()
            user.reset_token_expires = now + timedelta(minutes=self.settings.reset_token_minutes)
        if not self.mailer.send_password_reset(user.email, user.reset_token):
            raise Internal("Could not send the password reset email")
        return True

    def reset_password(self, token: str, new_password: str, now: datetime | None = None) -> User:
        now = now or utcnow()
        user = crud.get_user_by_reset_token(self.db, token)
        if user is None or user.reset_token_expires is None or user.reset_token_expires <= now:
            raise ValidationError("Invalid or expired token")
        with atomic(self.db):
            user.password_hash = hash_password(new_password)
            user.reset_token = None
            user.reset_token_expires = None
        logger.info("Password reset for user %s", user.id)
        return user

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password_hash):
            raise ValidationError(
                "Current password is incorrect", {"current_password": "does not match"}
            )
        with atomic(self.db):
            user.password_hash = hash_password(new_password)
        logger.info("Password changed for user %s", user.id)

    # ── Profiles ────────────────────────────────────────────────────────────

    def update_profile(self, user: User, changes: dict) -> User:
        with atomic(self.db):
            profile = user.profile
            if profile is None:
                free = crud.get_free_plan(self.db)
                profile = Profile(
                    user_id=user.id, role=Role.USER.value, plan_id=free.id if free else None
                )
                self.db.add(profile)
            for key in _PROFILE_FIELDS:
                if changes.get(key) is not None:
                    setattr(profile, key, changes[key])
        self.db.refresh(user)
        return user

    # ── Administration ──────────────────────────────────────────────────────

    def get_user(self, user_id: str) -> User:
        user = crud.get_user_by_id(self.db, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def list_users(
        self,
        *,
        role: str | None = None,
        is_active: bool | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_dir: str = "desc",
    ) -> tuple[list[User], dict]:
        if sort_by not in USER_SORT_FIELDS:
            raise ValidationError(
                "Invalid sort field", {"sort_by": f"must be one of {sorted(USER_SORT_FIELDS)}"}
            )
        q = self.db.query(User).outerjoin(Profile, Profile.user_id == User.id)
        if role:
            q = q.filter(Profile.role == Role(role).value)
        if is_active is not None:
            q = q.filter(User.is_active.is_(is_active))
        if search:
            pattern = f"%{search.lower()}%"
            q = q.filter(or_(
                User.email.ilike(pattern),
                Profile.first_name.ilike(pattern),
                Profile.last_name.ilike(pattern),
            ))
        column = getattr(User, sort_by)
        order = column.asc() if sort_dir.lower() == "asc" else column.desc()
        return crud.paginate(q.order_by(order, User.id.asc()), page, limit)

    def update_user(self, actor: User, user_id: str, changes: dict) -> User:
        """Self-service profile edits; email, role and active flag need MANAGE_USERS."""
        admin = has_capability(actor.role, Capability.MANAGE_USERS)
        if actor.id != user_id and not admin:
            raise Forbidden("You do not have permission to update this user")
        privileged = [k for k in ("email", "is_active", "role") if changes.get(k) is not None]
        if privileged and not admin:
            raise Forbidden(f"Only administrators can change {', '.join(privileged)}")

        with atomic(self.db):
            user = self.get_user(user_id)
            email = changes.get("email")
            if email and email.lower() != user.email:
                if crud.get_user_by_email(self.db, email):
                    raise Conflict("Email already in use", {"email": "already registered"})
                user.email = email.lower()
            if changes.get("is_active") is not None:
                user.is_active = bool(changes["is_active"])
            if user.profile is not None:
                if changes.get("role") is not None:
                    user.profile.role = Role(changes["role"]).value
                for key in _PROFILE_FIELDS:
                    if changes.get(key) is not None:
                        setattr(user.profile, key, changes[key])
        logger.info("User %s updated by %s", user_id, actor.id)
        return user

    def delete_user(self, user_id: str) -> bool:
        """Remove a user and their personal data.

        Users who authored tips or parlays are deactivated instead, so their
        content keeps its creator. Returns True when the user was deleted.
        """
        with atomic(self.db):
            user = self.get_user(user_id)
            owns_content = (
                self.db.query(Tip.id).filter(Tip.creator_id == user_id).first() is not None
                or self.db.query(Parlay.id).filter(Parlay.creator_id == user_id).first()
                is not None
            )
            if owns_content:
                user.is_active = False
            else:
                for model, column in (
                    (Profile, Profile.user_id),
                    (UserStat, UserStat.user_id),
                    (UserSubscriptionGrant, UserSubscriptionGrant.user_id),
                    (TipView, TipView.viewer_id),
                ):
                    for row in self.db.query(model).filter(column == user_id).all():
                        self.db.delete(row)
                self.db.delete(user)
        logger.info("User %s %s", user_id, "deactivated" if owns_content else "deleted")
        return not owns_content


def serialize_user(user: User, plan=None) -> dict:
    profile = user.profile
    data = {
        "id": user.id,
        "email": user.email,
        "is_active": user.is_active,
        "last_login": user.last_login.isoformat() if user.last_login else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "profile": {
            "first_name": profile.first_name,
            "last_name": profile.last_name,
            "bio": profile.bio,
            "avatar_url": profile.avatar_url,
            "role": profile.role,
            "plan_id": profile.plan_id,
        } if profile else None,
    }
    if plan is not None:
        data["subscription"] = {"id": plan.id, "name": plan.name, "tier_level": plan.tier_level}
    return data
