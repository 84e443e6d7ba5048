"""HTTP tests for the trades, portfolio and admin routers."""

import pytest
import sys
import os

from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from satsfolio.database import get_db
from satsfolio.main import app
from satsfolio.middleware.auth import create_access_token
from satsfolio.models.holding import Holding
from satsfolio.services.holdings_service import open_account


@pytest.fixture
def client(session_factory, oracle):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    previous_oracle = app.state.price_oracle
    app.dependency_overrides[get_db] = override_get_db
    app.state.price_oracle = oracle
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.price_oracle = previous_oracle


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


@pytest.fixture
def headers(user):
    return auth_headers(user)


@pytest.fixture
def admin(db):
    admin = open_account(db, "ops@example.com", "ops")
    admin.is_admin = True
    db.commit()
    return admin


class TestAuth:
    """Every ledger endpoint needs a bearer token."""

    def test_health_is_public(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_missing_token(self, client):
        assert client.get("/api/portfolio").status_code in (401, 403)

    def test_bad_token(self, client):
        resp = client.get("/api/portfolio", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestTradeEndpoints:
    """Quote, settle and history over HTTP."""

    def test_quote_in_btc_units(self, client, headers):
        resp = client.post(
            "/api/trades/quote",
            json={"from_asset": "BTC", "to_asset": "AMZN", "amount": 0.5, "unit": "btc"},
            headers=headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["from_amount"] == 50_000_000
        assert body["to_amount"] == 33_333_333_333
        assert body["usd_value"] == pytest.approx(50_000.0)

    def test_settle_then_history(self, client, headers):
        resp = client.post(
            "/api/trades",
            json={"from_asset": "BTC", "to_asset": "XAU", "amount": 10_000_000},
            headers=headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["to_amount"] == 500_000_000
        assert body["locked_until"] is not None

        history = client.get("/api/trades/history", headers=headers).json()
        assert [t["id"] for t in history] == [body["trade_id"]]

    def test_locked_sale_returns_structured_error(self, client, headers):
        bought = client.post(
            "/api/trades",
            json={"from_asset": "BTC", "to_asset": "XAU", "amount": 10_000_000},
            headers=headers,
        ).json()

        resp = client.post(
            "/api/trades",
            json={"from_asset": "XAU", "to_asset": "BTC", "amount": bought["to_amount"]},
            headers=headers,
        )
        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert detail["code"] == "ASSET_LOCKED"
        assert detail["locked"] == bought["to_amount"]
        assert detail["available"] == 0

    def test_below_minimum(self, client, headers):
        resp = client.post(
            "/api/trades",
            json={"from_asset": "BTC", "to_asset": "XAU", "amount": 99_999},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "BELOW_MINIMUM"

    def test_unknown_price_is_503(self, client, headers):
        resp = client.post(
            "/api/trades",
            json={"from_asset": "BTC", "to_asset": "NOPE", "amount": 1_000_000},
            headers=headers,
        )
        assert resp.status_code == 503
        assert resp.json()["detail"]["missing"] == ["NOPE"]

    def test_non_positive_amount_fails_validation(self, client, headers):
        resp = client.post(
            "/api/trades",
            json={"from_asset": "BTC", "to_asset": "XAU", "amount": 0},
            headers=headers,
        )
        assert resp.status_code == 422

    def test_bad_unit(self, client, headers):
        resp = client.post(
            "/api/trades",
            json={"from_asset": "BTC", "to_asset": "XAU", "amount": 1, "unit": "gwei"},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_AMOUNT"


class TestPortfolioEndpoints:
    """Portfolio views over HTTP."""

    def test_portfolio(self, client, headers):
        body = client.get("/api/portfolio", headers=headers).json()
        assert body["total_value_sats"] == 100_000_000
        assert [h["asset_symbol"] for h in body["holdings"]] == ["BTC"]

    def test_available_after_purchase(self, client, headers):
        client.post(
            "/api/trades",
            json={"from_asset": "BTC", "to_asset": "XAU", "amount": 10_000_000},
            headers=headers,
        )
        body = client.get("/api/portfolio/available/xau", headers=headers).json()
        assert body["asset"] == "XAU"
        assert body["status"] == "locked"
        assert body["available_amount"] == 0
        assert body["next_unlock_at"] is not None

    def test_asset_details(self, client, headers):
        client.post(
            "/api/trades",
            json={"from_asset": "BTC", "to_asset": "XAU", "amount": 10_000_000},
            headers=headers,
        )
        body = client.get("/api/portfolio/asset/XAU", headers=headers).json()
        assert len(body["purchases"]) == 1
        assert body["purchases"][0]["is_locked"] is True
        assert body["sales"] == []


class TestAdminEndpoints:
    """Drift diagnostics and repair need the admin role."""

    def test_non_admin_rejected(self, client, user, headers):
        resp = client.get(f"/api/admin/users/{user.id}/drift", headers=headers)
        assert resp.status_code == 403

    def test_drift_and_reconcile(self, client, db, user, admin):
        db.query(Holding).filter(Holding.user_id == user.id).update({Holding.amount: 7})
        db.commit()
        admin_headers = auth_headers(admin)

        drift = client.get(f"/api/admin/users/{user.id}/drift", headers=admin_headers).json()
        assert drift["consistent"] is False
        assert drift["drift"][0]["delta"] == 7 - 100_000_000

        resp = client.post(
            f"/api/admin/users/{user.id}/reconcile",
            params={"rebuild_lots": True},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["holdings"] == {"BTC": 100_000_000}
        assert resp.json()["lots_rebuilt"] == 0

        drift = client.get(f"/api/admin/users/{user.id}/drift", headers=admin_headers).json()
        assert drift["consistent"] is True

    def test_unknown_user_is_404(self, client, admin):
        resp = client.get("/api/admin/users/missing/drift", headers=auth_headers(admin))
        assert resp.status_code == 404

    def test_trade_search(self, client, user, headers, admin):
        client.post(
            "/api/trades",
            json={"from_asset": "BTC", "to_asset": "XAU", "amount": 10_000_000},
            headers=headers,
        )
        admin_headers = auth_headers(admin)

        found = client.post(
            "/api/admin/trades/search",
            json={"user_id": user.id, "asset": "xau", "since": "2000-01-01T00:00:00+00:00"},
            headers=admin_headers,
        ).json()
        assert len(found) == 1

        none = client.post(
            "/api/admin/trades/search",
            json={"until": "2000-01-01T00:00:00"},
            headers=admin_headers,
        ).json()
        assert none == []

        bad = client.post(
            "/api/admin/trades/search",
            json={"since": "yesterday"},
            headers=admin_headers,
        )
        assert bad.status_code == 400
