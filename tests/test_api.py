"""End-to-end tests through the HTTP layer."""
from __future__ import annotations

from datetime import timedelta

from fastapi.testclient import TestClient

from bettips.api.app import create_app
from bettips.db.models import SubscriptionPlan, utcnow
from bettips.settings import Settings
from conftest import auth_headers

API = "/api/v1"


class TestEnvelope:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_listing_is_paginated(self, client, make_tip):
        for _ in range(3):
            make_tip()
        body = client.get(f"{API}/tips/", params={"limit": 2, "page": 2}).json()
        assert body["success"] is True
        assert len(body["data"]["tips"]) == 1
        assert body["data"]["pagination"] == {"total": 3, "pages": 2, "currentPage": 2, "limit": 2}

    def test_validation_error_shape(self, client, tipster):
        response = client.post(f"{API}/tips/", json={"title": ""}, headers=auth_headers(tipster))
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert any(e["field"] == "title" for e in body["errors"])

    def test_missing_token(self, client):
        response = client.get(f"{API}/auth/profile")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_bad_token(self, client):
        response = client.get(f"{API}/auth/profile", headers={"Authorization": "Bearer junk"})
        assert response.status_code == 401

    def test_not_found(self, client):
        response = client.get(f"{API}/tips/missing")
        assert response.status_code == 404
        assert response.json()["message"] == "Tip not found"

    def test_stack_included_outside_production(self, client):
        assert "stack" in client.get(f"{API}/tips/missing").json()

    def test_no_stack_in_production(self, database, db):
        settings = Settings(
            database_url="sqlite://", environment="production", log_level="WARNING"
        )
        client = TestClient(create_app(settings=settings, database=database))
        body = client.get(f"{API}/tips/missing").json()
        assert body["success"] is False
        assert "stack" not in body


class TestAuthFlow:
    def test_register_then_login(self, client, mailer):
        response = client.post(f"{API}/auth/register", json={
            "email": "new@example.com", "password": "secret123", "first_name": "Nia",
        })
        assert response.status_code == 201
        assert response.json()["data"]["user"]["email"] == "new@example.com"
        assert mailer.sent[0][0] == "welcome"

        login = client.post(f"{API}/auth/login", json={
            "email": "new@example.com", "password": "secret123",
        }).json()["data"]
        profile = client.get(
            f"{API}/auth/profile", headers={"Authorization": f"Bearer {login['access_token']}"}
        ).json()["data"]
        assert profile["subscription"]["name"] == "Free"

    def test_wrong_password(self, client, member):
        response = client.post(f"{API}/auth/login", json={
            "email": "member@example.com", "password": "wrong-password",
        })
        assert response.status_code == 401

    def test_forgot_password_does_not_reveal_accounts(self, client, member, mailer):
        known = client.post(f"{API}/auth/forgot-password", json={"email": "member@example.com"})
        unknown = client.post(f"{API}/auth/forgot-password", json={"email": "ghost@example.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert [m[1] for m in mailer.sent] == ["member@example.com"]

    def test_reset_password(self, client, member, mailer):
        client.post(f"{API}/auth/forgot-password", json={"email": "member@example.com"})
        token = mailer.sent[-1][2]
        response = client.post(f"{API}/auth/reset-password", json={
            "token": token, "password": "brand-new-pass",
        })
        assert response.status_code == 200
        login = client.post(f"{API}/auth/login", json={
            "email": "member@example.com", "password": "brand-new-pass",
        })
        assert login.status_code == 200


class TestTierGating:
    def test_gated_tip_forbidden_until_subscribed(self, client, db, make_tip, member):
        tip = make_tip(required_tier=3)
        response = client.get(f"{API}/tips/{tip.id}", headers=auth_headers(member))
        assert response.status_code == 403

        vip = db.query(SubscriptionPlan).filter_by(tier_level=3).one()
        subscribed = client.post(
            f"{API}/subscriptions/subscribe", json={"plan_id": vip.id}, headers=auth_headers(member)
        )
        assert subscribed.status_code == 201
        response = client.get(f"{API}/tips/{tip.id}", headers=auth_headers(member))
        assert response.status_code == 200

    def test_anonymous_sees_only_open_tips(self, client, make_tip):
        open_tip = make_tip()
        make_tip(required_tier=2)
        body = client.get(f"{API}/tips/").json()
        assert [t["id"] for t in body["data"]["tips"]] == [open_tip.id]
        assert body["data"]["pagination"]["total"] == 1

    def test_view_recorded_for_signed_in_reader(self, client, make_tip, member):
        tip = make_tip()
        client.get(f"{API}/tips/{tip.id}", headers=auth_headers(member))
        body = client.get(f"{API}/tips/{tip.id}", headers=auth_headers(member)).json()
        assert body["data"]["stats"]["views"] == 2

    def test_like_needs_access(self, client, make_tip, member):
        tip = make_tip(required_tier=3)
        response = client.post(f"{API}/tips/{tip.id}/like", headers=auth_headers(member))
        assert response.status_code == 403


class TestPublishing:
    def _tip_body(self, catalog, **overrides):
        body = {
            "title": "Lakers to cover",
            "sport_id": catalog["basketball"],
            "league_id": catalog["nba"],
            "team1_name": "Lakers",
            "team2_name": "Celtics",
            "match_datetime": (utcnow() + timedelta(days=2)).isoformat(),
            "prediction_type": "spread",
            "prediction_value": "-3.5",
            "confidence": 6,
            "odds": [{"bookmaker_id": catalog["bet365"], "value": "1.91"}],
        }
        body.update(overrides)
        return body

    def test_tipster_publishes(self, client, catalog, tipster):
        response = client.post(
            f"{API}/tips/", json=self._tip_body(catalog), headers=auth_headers(tipster)
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["odds"][0]["value"] == 1.91
        assert data["match_status"] == "scheduled"

    def test_member_cannot_publish(self, client, catalog, member):
        response = client.post(
            f"{API}/tips/", json=self._tip_body(catalog), headers=auth_headers(member)
        )
        assert response.status_code == 403

    def test_odds_must_exceed_one(self, client, catalog, tipster):
        body = self._tip_body(catalog, odds=[{"bookmaker_id": catalog["bet365"], "value": "1.00"}])
        response = client.post(f"{API}/tips/", json=body, headers=auth_headers(tipster))
        assert response.status_code == 400

    def test_parlay_priced_from_legs(self, client, make_tip, tipster):
        a, b = make_tip(quote=2.0), make_tip(quote=4.5)
        response = client.post(
            f"{API}/parlays/",
            json={"title": "Double", "tip_ids": [a.id, b.id]},
            headers=auth_headers(tipster),
        )
        assert response.status_code == 201
        assert response.json()["data"]["total_odds"] == 9.0

    def test_parlay_needs_two_tips(self, client, make_tip, tipster):
        response = client.post(
            f"{API}/parlays/",
            json={"title": "Single", "tip_ids": [make_tip().id]},
            headers=auth_headers(tipster),
        )
        assert response.status_code == 400

    def test_resolving_a_leg_settles_the_parlay(self, client, make_tip, tipster):
        a, b = make_tip(), make_tip()
        parlay = client.post(
            f"{API}/parlays/",
            json={"title": "Double", "tip_ids": [a.id, b.id]},
            headers=auth_headers(tipster),
        ).json()["data"]
        client.put(f"{API}/tips/{a.id}", json={"tip_status": "lost"}, headers=auth_headers(tipster))
        body = client.get(f"{API}/parlays/{parlay['id']}", headers=auth_headers(tipster)).json()
        assert body["data"]["status"] == "lost"


class TestUsers:
    def test_listing_is_admin_only(self, client, admin, member):
        assert client.get(f"{API}/users/", headers=auth_headers(member)).status_code == 403
        body = client.get(f"{API}/users/", headers=auth_headers(admin)).json()
        assert body["data"]["pagination"]["total"] == 2

    def test_admin_deletes_own_account(self, client, admin):
        response = client.delete(f"{API}/users/{admin.id}", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert client.get(f"{API}/users/{admin.id}/stats").status_code == 404

    def test_public_user_stats(self, client, tipster):
        body = client.get(f"{API}/users/{tipster.id}/stats").json()
        assert body["data"]["tips"]["success_rate"] == 0.0

    def test_top_tipsters_is_public(self, client):
        response = client.get(f"{API}/users/top-tipsters")
        assert response.status_code == 200
        assert response.json()["data"] == []


class TestCatalogRoutes:
    def test_sport_creation_needs_admin(self, client, admin, member):
        body = {"name": "Cricket"}
        assert client.post(f"{API}/sports/", json=body, headers=auth_headers(member)).status_code == 403
        assert client.post(f"{API}/sports/", json=body, headers=auth_headers(admin)).status_code == 201

    def test_bookmaker_with_odds_cannot_be_deleted(self, client, make_tip, admin, catalog):
        make_tip()
        response = client.delete(
            f"{API}/bookmakers/{catalog['bet365']}", headers=auth_headers(admin)
        )
        assert response.status_code == 400
        assert client.get(f"{API}/bookmakers/{catalog['bet365']}").status_code == 200
