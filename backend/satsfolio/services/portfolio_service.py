"""Portfolio service — valuation, cost basis and P&L in sats.

Lots are not consumed when an asset is sold; the cost basis of what remains is
the BTC spent on all lots scaled by the share of purchased units still held:

    cost_basis = total_btc_spent * holding / total_purchased
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from satsfolio import lock_policy
from satsfolio.assets import BASE_ASSET, get_asset_category, get_asset_name, normalize_symbol
from satsfolio.conversion import SATS_PER_UNIT, round_half_up, usd_value
from satsfolio.models.purchase_lot import PurchaseLot
from satsfolio.models.trade import Trade
from satsfolio.services import ledger_store
from satsfolio.services.holdings_service import get_lot_history
from satsfolio.services.price_oracle import PriceOracle


def _purchase_summary(db: Session, user_id: str) -> dict[str, dict]:
    """Per-asset lot totals plus the lots themselves for lock evaluation."""
    summary: dict[str, dict] = {}
    lots = (
        db.query(PurchaseLot)
        .filter(PurchaseLot.user_id == user_id)
        .order_by(PurchaseLot.created_at)
        .all()
    )
    for lot in lots:
        row = summary.setdefault(lot.asset_symbol, {
            "total_spent_sats": 0,
            "total_purchased_amount": 0,
            "purchase_count": 0,
            "last_purchase_date": None,
            "lots": [],
        })
        row["total_spent_sats"] += lot.btc_spent
        row["total_purchased_amount"] += lot.amount
        row["purchase_count"] += 1
        row["last_purchase_date"] = lock_policy.as_utc(lot.created_at)
        row["lots"].append(lot)
    return summary


def _sales_summary(db: Session, user_id: str) -> dict[str, dict]:
    rows = (
        db.query(
            Trade.from_asset,
            func.sum(Trade.from_amount),
            func.sum(Trade.to_amount),
        )
        .filter(Trade.user_id == user_id, Trade.to_asset == BASE_ASSET, Trade.from_asset != BASE_ASSET)
        .group_by(Trade.from_asset)
        .all()
    )
    return {
        asset: {"total_sold_amount": int(sold or 0), "total_received_sats": int(received or 0)}
        for asset, sold, received in rows
    }


def value_in_sats(amount: int, price_usd: float, btc_price_usd: float) -> int:
    """Value of ``amount`` scaled units of an asset, in sats."""
    if btc_price_usd <= 0:
        return 0
    return round_half_up(usd_value(amount, price_usd) / btc_price_usd * SATS_PER_UNIT)


def get_portfolio(
    db: Session, oracle: PriceOracle, user_id: str, now: Optional[datetime] = None
) -> dict:
    """Full portfolio summary for a user.

    Holdings whose price cannot be resolved are valued at zero and flagged
    with ``price_available=False`` rather than failing the whole view.
    """
    now = lock_policy.as_utc(now or lock_policy.utcnow())
    holdings = ledger_store.list_holdings(db, user_id)
    quotes = oracle.get_prices(db, {BASE_ASSET, *(h.asset_symbol for h in holdings)}, now=now)
    btc_quote = quotes.get(BASE_ASSET)
    btc_price = btc_quote.usd if btc_quote else 0.0

    purchases = _purchase_summary(db, user_id)
    sales = _sales_summary(db, user_id)

    total_value = 0
    total_cost = 0
    rows = []
    for holding in holdings:
        symbol = holding.asset_symbol
        quote = quotes.get(symbol)
        price = quote.usd if quote else 0.0
        bought = purchases.get(symbol, {})
        sold = sales.get(symbol, {})

        if symbol == BASE_ASSET:
            value = holding.amount
            cost_basis = holding.amount
            balance = lock_policy.sellable_balance(holding.amount, [], now)
        else:
            value = value_in_sats(holding.amount, price, btc_price)
            total_purchased = bought.get("total_purchased_amount", 0)
            ratio = holding.amount / total_purchased if total_purchased > 0 else 0
            cost_basis = round_half_up(bought.get("total_spent_sats", 0) * ratio)
            balance = lock_policy.sellable_balance(holding.amount, bought.get("lots", []), now)

        total_value += value
        total_cost += cost_basis
        rows.append({
            "asset_symbol": symbol,
            "name": get_asset_name(symbol),
            "category": get_asset_category(symbol),
            "amount": holding.amount,
            "current_price_usd": price,
            "price_available": quote is not None,
            "price_stale": bool(quote and quote.stale),
            "current_value_sats": value,
            "cost_basis_sats": cost_basis,
            "gain_loss_sats": value - cost_basis,
            "purchase_count": bought.get("purchase_count", 0),
            "last_purchase_date": bought.get("last_purchase_date"),
            "locked_amount": balance.locked_amount,
            "available_amount": balance.available_amount,
            "lock_status": balance.status,
            "total_spent_sats": bought.get("total_spent_sats", 0),
            "total_received_from_sales": sold.get("total_received_sats", 0),
        })

    gain_loss = total_value - total_cost
    return {
        "holdings": rows,
        "total_value_sats": total_value,
        "total_cost_sats": total_cost,
        "gain_loss_sats": gain_loss,
        "gain_loss_pct": (gain_loss / total_cost * 100) if total_cost > 0 else 0.0,
        "btc_price_usd": btc_price,
    }


def get_asset_details(db: Session, user_id: str, symbol: str, now: Optional[datetime] = None) -> dict:
    """Lot history and sales back to BTC for one asset."""
    symbol = normalize_symbol(symbol)
    sales = (
        db.query(Trade)
        .filter(Trade.user_id == user_id, Trade.from_asset == symbol, Trade.to_asset == BASE_ASSET)
        .order_by(Trade.created_at.desc(), Trade.seq.desc())
        .all()
    )
    return {
        "asset_symbol": symbol,
        "purchases": get_lot_history(db, user_id, symbol, now=now),
        "sales": sales,
    }
