"""Tests for registration, credentials and user administration."""
from __future__ import annotations

from datetime import timedelta

import pytest

from bettips.api.auth import decode_token, verify_password
from bettips.db.models import (
    Profile,
    SubscriptionPlan,
    TipView,
    User,
    UserStat,
    UserSubscriptionGrant,
    utcnow,
)
from bettips.errors import Conflict, Forbidden, Internal, NotFound, Unauthorized, ValidationError
from bettips.permissions import Role
from bettips.services.accounts import AccountService, serialize_user
from bettips.services.entitlements import EntitlementStore
from conftest import PASSWORD, FakeMailer


@pytest.fixture
def accounts(db, settings, mailer):
    return AccountService(db, settings, mailer)


class TestRegister:
    def test_new_user_on_free_plan(self, accounts, mailer):
        user = accounts.register("New@Example.com", "secret123", "Nia")
        assert user.email == "new@example.com"
        assert user.role == Role.USER
        assert user.profile.plan.name == "Free"
        assert mailer.sent == [("welcome", "new@example.com", "Nia")]

    def test_duplicate_email(self, accounts, member):
        with pytest.raises(Conflict):
            accounts.register("MEMBER@example.com", "secret123")

    def test_welcome_failure_does_not_block(self, db, settings):
        service = AccountService(db, settings, FakeMailer(deliver=False))
        assert service.register("quiet@example.com", "secret123").id


class TestAuthenticate:
    def test_valid_credentials_set_last_login(self, accounts, member):
        user = accounts.authenticate("member@example.com", PASSWORD)
        assert user.last_login is not None

    def test_wrong_password(self, accounts, member):
        with pytest.raises(Unauthorized):
            accounts.authenticate("member@example.com", "nope")

    def test_unknown_email(self, accounts):
        with pytest.raises(Unauthorized):
            accounts.authenticate("ghost@example.com", PASSWORD)

    def test_inactive_account(self, db, accounts, member):
        member.is_active = False
        db.commit()
        with pytest.raises(Forbidden):
            accounts.authenticate("member@example.com", PASSWORD)

    def test_refresh_issues_new_access_token(self, accounts, member):
        tokens = accounts.issue_tokens(member)
        fresh = accounts.refresh(tokens["refresh_token"])
        assert decode_token(fresh["access_token"])["sub"] == member.id

    def test_access_token_cannot_refresh(self, accounts, member):
        tokens = accounts.issue_tokens(member)
        with pytest.raises(Unauthorized):
            accounts.refresh(tokens["access_token"])


class TestPasswordReset:
    def test_reset_flow(self, accounts, mailer, member):
        assert accounts.request_password_reset("member@example.com") is True
        kind, email, token = mailer.sent[-1]
        assert (kind, email) == ("reset", "member@example.com")
        accounts.reset_password(token, "brand-new-pass")
        assert verify_password("brand-new-pass", member.password_hash)
        assert member.reset_token is None

    def test_token_is_single_use(self, accounts, mailer, member):
        accounts.request_password_reset("member@example.com")
        token = mailer.sent[-1][2]
        accounts.reset_password(token, "brand-new-pass")
        with pytest.raises(ValidationError):
            accounts.reset_password(token, "another-pass")

    def test_expired_token(self, accounts, mailer, member):
        now = utcnow()
        accounts.request_password_reset("member@example.com", now=now)
        token = mailer.sent[-1][2]
        with pytest.raises(ValidationError):
            accounts.reset_password(token, "brand-new-pass", now=now + timedelta(hours=1))

    def test_unknown_email_sends_nothing(self, accounts, mailer):
        assert accounts.request_password_reset("ghost@example.com") is False
        assert mailer.sent == []

    def test_delivery_failure(self, db, settings, member):
        service = AccountService(db, settings, FakeMailer(deliver=False))
        with pytest.raises(Internal):
            service.request_password_reset("member@example.com")

    def test_change_password_checks_current(self, accounts, member):
        with pytest.raises(ValidationError):
            accounts.change_password(member, "wrong", "brand-new-pass")
        accounts.change_password(member, PASSWORD, "brand-new-pass")
        assert verify_password("brand-new-pass", member.password_hash)


class TestAdministration:
    def test_user_edits_own_profile(self, accounts, member):
        accounts.update_user(member, member.id, {"bio": "Weekend punter"})
        assert member.profile.bio == "Weekend punter"

    def test_user_cannot_change_own_role(self, accounts, member):
        with pytest.raises(Forbidden):
            accounts.update_user(member, member.id, {"role": "admin"})

    def test_user_cannot_edit_others(self, accounts, member, tipster):
        with pytest.raises(Forbidden):
            accounts.update_user(member, tipster.id, {"bio": "hacked"})

    def test_admin_promotes_and_deactivates(self, accounts, admin, member):
        accounts.update_user(admin, member.id, {"role": "tipster", "is_active": False})
        assert member.role == Role.TIPSTER
        assert member.is_active is False

    def test_email_already_taken(self, accounts, admin, member, tipster):
        with pytest.raises(Conflict):
            accounts.update_user(admin, member.id, {"email": "tipster@example.com"})

    def test_list_users_filters(self, accounts, admin, tipster, member):
        rows, meta = accounts.list_users(role="tipster")
        assert [u.id for u in rows] == [tipster.id]
        rows, meta = accounts.list_users(search="mia")
        assert [u.id for u in rows] == [member.id]
        assert meta["total"] == 1

    def test_invalid_sort_field(self, accounts):
        with pytest.raises(ValidationError):
            accounts.list_users(sort_by="password_hash")

    def test_delete_user_without_content(self, db, accounts, member):
        assert accounts.delete_user(member.id) is True
        assert db.query(User).filter_by(id=member.id).first() is None
        assert db.query(Profile).filter_by(user_id=member.id).count() == 0
        assert db.query(UserStat).filter_by(user_id=member.id).count() == 0

    def test_admin_deletes_own_account(self, db, accounts, admin):
        assert admin.role == Role.ADMIN
        assert accounts.delete_user(admin.id) is True
        assert db.query(User).filter_by(id=admin.id).first() is None
        assert db.query(Profile).filter_by(user_id=admin.id).count() == 0

    def test_delete_removes_grants_and_views(self, db, accounts, registry, make_tip, member):
        premium = db.query(SubscriptionPlan).filter_by(tier_level=2).one()
        EntitlementStore(db).subscribe(member.id, premium.id)
        registry.record_view(make_tip().id, member.id)
        assert accounts.delete_user(member.id) is True
        assert db.query(UserSubscriptionGrant).count() == 0
        assert db.query(TipView).count() == 0

    def test_author_is_deactivated_not_deleted(self, db, accounts, make_tip, tipster):
        make_tip()
        assert accounts.delete_user(tipster.id) is False
        db.refresh(tipster)
        assert tipster.is_active is False

    def test_unknown_user(self, accounts):
        with pytest.raises(NotFound):
            accounts.delete_user("missing")

    def test_serialize_hides_secrets(self, member):
        data = serialize_user(member)
        assert "password_hash" not in data
        assert data["profile"]["role"] == "user"
