"""Reconciliation service — rebuild holdings and lots from the trade history.

The trade log is the source of truth. For every user and asset:

    holding(asset) == seed(asset) + sum(to_amount where to_asset == asset)
                                  - sum(from_amount where from_asset == asset)

where the seed is the starting BTC balance and zero for everything else.
These operations are offline repair and diagnostics; the settlement path
never calls them.
"""

import json
import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from satsfolio import lock_policy
from satsfolio.assets import BASE_ASSET
from satsfolio.config import settings
from satsfolio.errors import ReconciliationError
from satsfolio.models.audit_log import AuditLog
from satsfolio.models.holding import Holding
from satsfolio.models.purchase_lot import PurchaseLot
from satsfolio.services import ledger_store

logger = logging.getLogger(__name__)


def replay_trades(trades: Iterable, seed: Optional[int] = None) -> dict[str, int]:
    """Replay trades in order on top of the starting BTC balance.

    Args:
        trades: Trade rows (or anything with the same attributes) in
            execution order.
        seed: Starting BTC balance; defaults to settings.STARTING_BTC_SATS.

    Returns:
        Mapping of asset symbol to expected amount, including assets that
        were bought and later sold down to zero.

    Raises:
        ReconciliationError: If any step would make a balance negative.
    """
    balances = {BASE_ASSET: settings.STARTING_BTC_SATS if seed is None else seed}
    for trade in trades:
        remaining = balances.get(trade.from_asset, 0) - trade.from_amount
        if remaining < 0:
            raise ReconciliationError(
                f"Trade {trade.id} spends {trade.from_amount} {trade.from_asset} "
                f"but only {balances.get(trade.from_asset, 0)} was held"
            )
        balances[trade.from_asset] = remaining
        balances[trade.to_asset] = balances.get(trade.to_asset, 0) + trade.to_amount
    return balances


def _live_snapshot(db: Session, user_id: str) -> dict[str, int]:
    return {h.asset_symbol: h.amount for h in ledger_store.list_holdings(db, user_id)}


def detect_drift(db: Session, user_id: str) -> list[dict]:
    """Compare live holdings with a replay of the trade log. Read-only."""
    expected = replay_trades(ledger_store.list_trades(db, user_id))
    live = _live_snapshot(db, user_id)

    drift = []
    for asset in sorted(set(expected) | set(live)):
        exp = expected.get(asset, 0)
        act = live.get(asset, 0)
        if exp != act:
            drift.append({"asset": asset, "live": act, "expected": exp, "delta": act - exp})
    if drift:
        logger.warning("Holdings drift for user %s: %s", user_id, drift)
    return drift


def reconcile_holdings(db: Session, user_id: str, actor_id: Optional[str] = None) -> dict[str, int]:
    """Wipe and rebuild a user's holdings from the trade log.

    Idempotent: the result depends only on the trade history, so running it
    again yields the same holdings. Each run is written to the audit log.
    """
    try:
        # Block concurrent settlement against this user's rows while rebuilding
        before_rows = (
            db.query(Holding)
            .filter(Holding.user_id == user_id)
            .with_for_update()
            .all()
        )
        before = {h.asset_symbol: h.amount for h in before_rows}
        expected = replay_trades(ledger_store.list_trades(db, user_id))

        db.query(Holding).filter(Holding.user_id == user_id).delete(synchronize_session=False)
        db.flush()
        for asset, amount in sorted(expected.items()):
            db.add(Holding(user_id=user_id, asset_symbol=asset, amount=amount))

        db.add(AuditLog(
            entity_type="holdings",
            entity_id=user_id,
            action="reconciled",
            actor_id=actor_id,
            old_data=json.dumps(before, sort_keys=True),
            new_data=json.dumps(expected, sort_keys=True),
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    if before != expected:
        logger.warning("Reconciled holdings for user %s: %s -> %s", user_id, before, expected)
    else:
        logger.info("Holdings for user %s already consistent", user_id)
    return expected


def rebuild_lots(
    db: Session,
    user_id: str,
    actor_id: Optional[str] = None,
    lock_hours: Optional[int] = None,
) -> int:
    """Recreate a user's purchase lots from their BTC -> asset trades.

    Each lot gets the trade's amounts and prices, and a lock that expires
    one lock window after the trade. Returns the number of lots written.
    """
    lock_hours = settings.ASSET_LOCK_HOURS if lock_hours is None else lock_hours
    try:
        old_count = db.query(PurchaseLot).filter(PurchaseLot.user_id == user_id).count()
        db.query(PurchaseLot).filter(PurchaseLot.user_id == user_id).delete(synchronize_session=False)

        purchases = [
            t for t in ledger_store.list_trades(db, user_id)
            if t.from_asset == BASE_ASSET and t.to_asset != BASE_ASSET
        ]
        for trade in purchases:
            ledger_store.insert_lot(
                db,
                user_id,
                trade.to_asset,
                amount=trade.to_amount,
                btc_spent=trade.from_amount,
                purchase_price_usd=trade.asset_price_usd,
                btc_price_usd=trade.btc_price_usd,
                created_at=trade.created_at,
                locked_until=lock_policy.lock_expiry(trade.created_at, lock_hours),
            )

        db.add(AuditLog(
            entity_type="purchase_lots",
            entity_id=user_id,
            action="lots_rebuilt",
            actor_id=actor_id,
            old_data=json.dumps({"count": old_count}),
            new_data=json.dumps({"count": len(purchases)}),
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Rebuilt %d purchase lots for user %s", len(purchases), user_id)
    return len(purchases)
