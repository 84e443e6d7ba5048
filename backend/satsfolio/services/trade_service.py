"""Trade service — validates, prices and settles conversions against BTC."""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from satsfolio import lock_policy
from satsfolio.assets import BASE_ASSET, normalize_symbol
from satsfolio.config import settings
from satsfolio.conversion import convert_amount, usd_value
from satsfolio.errors import (
    AssetLocked,
    BelowMinimum,
    InsufficientBalance,
    InvalidAmount,
    InvalidPair,
    PriceUnavailable,
    TradeError,
    UnsupportedPair,
)
from satsfolio.models.trade import Trade
from satsfolio.services import ledger_store
from satsfolio.services.price_oracle import PriceOracle

logger = logging.getLogger(__name__)


@dataclass
class TradeResult:
    trade_id: str
    from_asset: str
    to_asset: str
    from_amount: int
    to_amount: int
    btc_price_usd: float
    asset_price_usd: float
    locked_until: Optional[datetime]
    created_at: datetime

    def to_dict(self) -> dict:
        return asdict(self)


def _validate_request(from_asset: str, to_asset: str, amount, min_trade_sats: int) -> None:
    """Input checks that need no I/O."""
    if from_asset == to_asset:
        raise InvalidPair(
            "Cannot trade an asset for itself",
            from_asset=from_asset,
            to_asset=to_asset,
        )
    if BASE_ASSET not in (from_asset, to_asset):
        raise UnsupportedPair(
            "Every trade must go through BTC; sell to BTC first",
            from_asset=from_asset,
            to_asset=to_asset,
        )
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount("Amount must be a positive whole number of units", amount=amount)
    if from_asset == BASE_ASSET and amount < min_trade_sats:
        raise BelowMinimum(
            f"Minimum trade amount is {min_trade_sats:,} sats",
            minimum=min_trade_sats,
            requested=amount,
        )


def _non_btc(from_asset: str, to_asset: str) -> str:
    return to_asset if from_asset == BASE_ASSET else from_asset


def _fetch_prices(db: Session, oracle: PriceOracle, from_asset: str, to_asset: str, now: datetime):
    """BTC price and the price of the other side, failing closed."""
    asset = _non_btc(from_asset, to_asset)
    quotes = oracle.get_prices(db, [BASE_ASSET, asset], now=now)
    missing = [s for s in (BASE_ASSET, asset) if s not in quotes]
    if missing:
        raise PriceUnavailable("Asset prices not available", missing=missing)
    return quotes[BASE_ASSET].usd, quotes[asset].usd


def quote_trade(
    db: Session,
    oracle: PriceOracle,
    from_asset: str,
    to_asset: str,
    amount: int,
    now: Optional[datetime] = None,
) -> dict:
    """Preview a conversion at current prices without touching balances."""
    from_asset = normalize_symbol(from_asset)
    to_asset = normalize_symbol(to_asset)
    now = lock_policy.as_utc(now or lock_policy.utcnow())
    _validate_request(from_asset, to_asset, amount, settings.MIN_TRADE_SATS)

    btc_price, asset_price = _fetch_prices(db, oracle, from_asset, to_asset, now)
    to_amount = convert_amount(from_asset, to_asset, amount, btc_price, asset_price)
    from_price = btc_price if from_asset == BASE_ASSET else asset_price
    return {
        "from_asset": from_asset,
        "to_asset": to_asset,
        "from_amount": amount,
        "to_amount": to_amount,
        "btc_price_usd": btc_price,
        "asset_price_usd": asset_price,
        "usd_value": usd_value(amount, from_price),
    }


def settle_trade(
    db: Session,
    oracle: PriceOracle,
    user_id: str,
    from_asset: str,
    to_asset: str,
    amount: int,
    *,
    now: Optional[datetime] = None,
    lock_hours: Optional[int] = None,
    min_trade_sats: Optional[int] = None,
) -> TradeResult:
    """Execute a conversion with all validation and transactional safety.

    Steps:
    1. Validate the pair and amount (no I/O)
    2. Price both sides (fails closed if either is missing); fetched prices
       are committed here, before any row is locked
    3. Lock the source holding row and check the balance
    4. For non-BTC sources, check the balance not held back by locked lots
    5. Convert through USD and round to whole units
    6. Debit the source, credit BTC or create a locked lot and credit the asset
    7. Insert the immutable trade record
    Steps 3-7 commit together or not at all.
    """
    from_asset = normalize_symbol(from_asset)
    to_asset = normalize_symbol(to_asset)
    now = lock_policy.as_utc(now or lock_policy.utcnow())
    lock_hours = settings.ASSET_LOCK_HOURS if lock_hours is None else lock_hours
    min_trade_sats = settings.MIN_TRADE_SATS if min_trade_sats is None else min_trade_sats

    try:
        _validate_request(from_asset, to_asset, amount, min_trade_sats)
        btc_price, asset_price = _fetch_prices(db, oracle, from_asset, to_asset, now)

        with ledger_store.holding_lock(db, user_id, from_asset) as holding:
            held = holding.amount if holding else 0
            if held < amount:
                raise InsufficientBalance(
                    f"Insufficient {from_asset} balance",
                    asset=from_asset,
                    available=held,
                    requested=amount,
                )

            if from_asset != BASE_ASSET:
                lots = ledger_store.list_active_lots(db, user_id, from_asset)
                balance = lock_policy.sellable_balance(held, lots, now)
                if amount > balance.available_amount:
                    raise AssetLocked(
                        f"Cannot sell locked {from_asset}",
                        asset=from_asset,
                        requested=amount,
                        locked=balance.locked_amount,
                        available=balance.available_amount,
                        next_unlock_at=balance.next_unlock_at.isoformat() if balance.next_unlock_at else None,
                    )

            to_amount = convert_amount(from_asset, to_asset, amount, btc_price, asset_price)
            if to_amount <= 0:
                raise InvalidAmount(
                    "Trade amount is too small to convert",
                    requested=amount,
                    to_amount=to_amount,
                )

            ledger_store.upsert_holding(db, user_id, from_asset, -amount)

            locked_until = None
            if to_asset != BASE_ASSET:
                locked_until = lock_policy.lock_expiry(now, lock_hours)
                ledger_store.insert_lot(
                    db,
                    user_id,
                    to_asset,
                    amount=to_amount,
                    btc_spent=amount,
                    purchase_price_usd=asset_price,
                    btc_price_usd=btc_price,
                    created_at=now,
                    locked_until=locked_until,
                )
            ledger_store.upsert_holding(db, user_id, to_asset, to_amount)

            trade = ledger_store.insert_trade(
                db,
                user_id,
                from_asset,
                to_asset,
                from_amount=amount,
                to_amount=to_amount,
                btc_price_usd=btc_price,
                asset_price_usd=asset_price,
                created_at=now,
            )
            trade_id = trade.id
    except TradeError as e:
        logger.info("Trade rejected for user %s (%s -> %s): %s", user_id, from_asset, to_asset, e.code)
        raise

    logger.info(
        "Settled trade %s for user %s: %d %s -> %d %s",
        trade_id, user_id, amount, from_asset, to_amount, to_asset,
    )
    return TradeResult(
        trade_id=trade_id,
        from_asset=from_asset,
        to_asset=to_asset,
        from_amount=amount,
        to_amount=to_amount,
        btc_price_usd=btc_price,
        asset_price_usd=asset_price,
        locked_until=locked_until,
        created_at=now,
    )


def get_trade_history(db: Session, user_id: str, limit: Optional[int] = None) -> list[Trade]:
    """Recent trades for a user, newest first."""
    limit = limit or settings.DEFAULT_TRADE_HISTORY_LIMIT
    limit = max(1, min(limit, settings.MAX_TRADE_HISTORY_LIMIT))
    return (
        db.query(Trade)
        .filter(Trade.user_id == user_id)
        .order_by(Trade.created_at.desc(), Trade.seq.desc())
        .limit(limit)
        .all()
    )
