"""Tests for accounts, sellable balances, lot history and portfolio valuation."""

import pytest
import sys
import os
from datetime import timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from conftest import NOW, FakeFetcher
from satsfolio.models.holding import Holding
from satsfolio.models.user import User
from satsfolio.services import holdings_service, portfolio_service, trade_service
from satsfolio.services.price_oracle import PriceOracle


def settle(db, oracle, user_id, from_asset, to_asset, amount, now=NOW):
    return trade_service.settle_trade(
        db, oracle, user_id, from_asset, to_asset, amount,
        now=now, lock_hours=24, min_trade_sats=100_000,
    )


def row_for(portfolio, symbol):
    return next(h for h in portfolio["holdings"] if h["asset_symbol"] == symbol)


class TestAccounts:
    """Account creation seeds the starting BTC balance exactly once."""

    def test_new_account_seeded(self, db, user):
        holdings = db.query(Holding).filter(Holding.user_id == user.id).all()
        assert [(h.asset_symbol, h.amount) for h in holdings] == [("BTC", 100_000_000)]

    def test_open_account_is_idempotent(self, db, user):
        again = holdings_service.open_account(db, "alice@example.com", "alice")
        assert again.id == user.id
        assert db.query(Holding).filter(Holding.user_id == user.id).count() == 1

    def test_user_table_has_no_sharing_flags(self):
        assert set(User.__table__.columns.keys()) == {
            "id", "username", "email", "is_admin", "created_at",
        }


class TestAvailableToSell:
    """Sellable balance as seen by the user."""

    def test_btc_is_never_locked(self, db, user):
        balance = holdings_service.get_available_to_sell(db, user.id, "btc", now=NOW)
        assert balance["asset"] == "BTC"
        assert balance["available_amount"] == 100_000_000
        assert balance["status"] == "unlocked"

    def test_fresh_purchase_is_locked(self, db, oracle, user):
        bought = settle(db, oracle, user.id, "BTC", "XAU", 10_000_000)
        balance = holdings_service.get_available_to_sell(db, user.id, "XAU", now=NOW + timedelta(hours=1))
        assert balance["holding_amount"] == bought.to_amount
        assert balance["locked_amount"] == bought.to_amount
        assert balance["available_amount"] == 0
        assert balance["status"] == "locked"
        assert balance["next_unlock_at"] == NOW + timedelta(hours=24)

    def test_unheld_asset_is_empty(self, db, user):
        balance = holdings_service.get_available_to_sell(db, user.id, "AAPL", now=NOW)
        assert balance["holding_amount"] == 0
        assert balance["available_amount"] == 0

    def test_lot_history_newest_first(self, db, oracle, user):
        settle(db, oracle, user.id, "BTC", "XAU", 10_000_000)
        settle(db, oracle, user.id, "BTC", "XAU", 20_000_000, now=NOW + timedelta(hours=30))

        lots = holdings_service.get_lot_history(db, user.id, "XAU", now=NOW + timedelta(hours=31))
        assert [lot["btc_spent"] for lot in lots] == [20_000_000, 10_000_000]
        assert [lot["is_locked"] for lot in lots] == [True, False]
        assert lots[1]["unlock_at"] == NOW + timedelta(hours=24)


class TestPortfolio:
    """Valuation in sats with cost basis and P&L."""

    def test_fresh_account(self, db, oracle, user):
        portfolio = portfolio_service.get_portfolio(db, oracle, user.id, now=NOW)
        assert portfolio["total_value_sats"] == 100_000_000
        assert portfolio["total_cost_sats"] == 100_000_000
        assert portfolio["gain_loss_sats"] == 0
        assert portfolio["gain_loss_pct"] == 0.0
        assert portfolio["btc_price_usd"] == 100_000.0

    def test_gain_after_price_rise(self, db, oracle, fetcher, user):
        settle(db, oracle, user.id, "BTC", "XAU", 10_000_000)
        fetcher.prices["XAU"] = 3_000.0

        portfolio = portfolio_service.get_portfolio(db, oracle, user.id, now=NOW + timedelta(hours=1))
        xau = row_for(portfolio, "XAU")
        assert xau["name"] == "Gold"
        assert xau["category"] == "Precious Metals"
        assert xau["current_value_sats"] == 15_000_000
        assert xau["cost_basis_sats"] == 10_000_000
        assert xau["gain_loss_sats"] == 5_000_000
        assert xau["lock_status"] == "locked"
        assert xau["purchase_count"] == 1
        assert portfolio["gain_loss_sats"] == 5_000_000
        assert portfolio["gain_loss_pct"] == pytest.approx(5.0)

    def test_cost_basis_scales_after_partial_sale(self, db, oracle, user):
        bought = settle(db, oracle, user.id, "BTC", "XAU", 10_000_000)
        settle(db, oracle, user.id, "XAU", "BTC", bought.to_amount // 2, now=NOW + timedelta(hours=25))

        portfolio = portfolio_service.get_portfolio(db, oracle, user.id, now=NOW + timedelta(hours=26))
        xau = row_for(portfolio, "XAU")
        assert xau["cost_basis_sats"] == 5_000_000
        assert xau["total_spent_sats"] == 10_000_000
        assert xau["total_received_from_sales"] == 5_000_000
        assert xau["lock_status"] == "unlocked"

    def test_missing_price_values_at_zero(self, db, user):
        db.add(Holding(user_id=user.id, asset_symbol="AAPL", amount=100_000_000))
        db.commit()
        oracle = PriceOracle(fetcher=FakeFetcher({"BTC": 100_000.0}))

        portfolio = portfolio_service.get_portfolio(db, oracle, user.id, now=NOW)
        aapl = row_for(portfolio, "AAPL")
        assert aapl["price_available"] is False
        assert aapl["current_value_sats"] == 0
        assert row_for(portfolio, "BTC")["price_available"] is True

    def test_value_in_sats(self):
        assert portfolio_service.value_in_sats(100_000_000, 200.0, 100_000.0) == 200_000
        assert portfolio_service.value_in_sats(100_000_000, 200.0, 0.0) == 0

    def test_asset_details(self, db, oracle, user):
        bought = settle(db, oracle, user.id, "BTC", "XAU", 10_000_000)
        settle(db, oracle, user.id, "XAU", "BTC", bought.to_amount, now=NOW + timedelta(days=2))

        details = portfolio_service.get_asset_details(db, user.id, "xau", now=NOW + timedelta(days=2))
        assert details["asset_symbol"] == "XAU"
        assert len(details["purchases"]) == 1
        assert [t.from_amount for t in details["sales"]] == [bought.to_amount]
