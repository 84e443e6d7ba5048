"""Ledger store — holdings, purchase lots and trades persistence.

Holdings are the only rows updated in place; lots and trades are insert-only.
Balance changes go through guarded UPDATE statements so a decrement can never
take a holding below zero, even if a caller skipped the row lock.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from satsfolio.errors import PersistenceConflict
from satsfolio.models.holding import Holding
from satsfolio.models.purchase_lot import PurchaseLot
from satsfolio.models.trade import Trade

logger = logging.getLogger(__name__)


@contextmanager
def holding_lock(db: Session, user_id: str, asset: str) -> Iterator[Optional[Holding]]:
    """Unit of work holding an exclusive lock on one holding row.

    Yields the locked Holding (or None if the user has no row for ``asset``).
    Commits when the block exits cleanly and rolls back on any exception.
    Database errors are re-raised as PersistenceConflict since nothing was
    committed and the whole operation can be retried.
    """
    try:
        holding = (
            db.query(Holding)
            .filter(Holding.user_id == user_id, Holding.asset_symbol == asset)
            .with_for_update()
            .first()
        )
        yield holding
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Unit of work on %s/%s rolled back: %s", user_id, asset, e)
        raise PersistenceConflict(
            "Concurrent update detected, please retry",
            user_id=user_id,
            asset=asset,
        ) from e
    except Exception:
        db.rollback()
        raise


def get_holding(db: Session, user_id: str, asset: str) -> Optional[Holding]:
    return (
        db.query(Holding)
        .filter(Holding.user_id == user_id, Holding.asset_symbol == asset)
        .first()
    )


def list_holdings(db: Session, user_id: str) -> list[Holding]:
    return (
        db.query(Holding)
        .filter(Holding.user_id == user_id)
        .order_by(Holding.asset_symbol)
        .all()
    )


def _current_amount(db: Session, user_id: str, asset: str) -> int:
    return (
        db.query(Holding.amount)
        .filter(Holding.user_id == user_id, Holding.asset_symbol == asset)
        .scalar()
    )


def upsert_holding(db: Session, user_id: str, asset: str, delta: int) -> int:
    """Apply a signed ``delta`` to a holding, creating the row if needed.

    Returns:
        The new holding amount.

    Raises:
        PersistenceConflict: If a decrement would take the holding below zero
            (the balance moved since it was checked) or the row is missing.
    """
    if delta < 0:
        updated = (
            db.query(Holding)
            .filter(
                Holding.user_id == user_id,
                Holding.asset_symbol == asset,
                Holding.amount >= -delta,
            )
            .update({Holding.amount: Holding.amount + delta}, synchronize_session=False)
        )
        if updated != 1:
            raise PersistenceConflict(
                f"{asset} balance changed during settlement",
                user_id=user_id,
                asset=asset,
                requested=-delta,
            )
        return _current_amount(db, user_id, asset)

    holding = (
        db.query(Holding)
        .filter(Holding.user_id == user_id, Holding.asset_symbol == asset)
        .with_for_update()
        .first()
    )
    if holding:
        db.query(Holding).filter(Holding.id == holding.id).update(
            {Holding.amount: Holding.amount + delta}, synchronize_session=False
        )
    else:
        db.add(Holding(user_id=user_id, asset_symbol=asset, amount=delta))
    db.flush()
    return _current_amount(db, user_id, asset)


def insert_lot(
    db: Session,
    user_id: str,
    asset: str,
    amount: int,
    btc_spent: int,
    purchase_price_usd: float,
    btc_price_usd: float,
    created_at: datetime,
    locked_until: datetime,
) -> PurchaseLot:
    lot = PurchaseLot(
        user_id=user_id,
        asset_symbol=asset,
        amount=amount,
        btc_spent=btc_spent,
        purchase_price_usd=purchase_price_usd,
        btc_price_usd=btc_price_usd,
        created_at=created_at,
        locked_until=locked_until,
    )
    db.add(lot)
    db.flush()
    return lot


def list_active_lots(db: Session, user_id: str, asset: str) -> list[PurchaseLot]:
    """All lots for a user and asset, oldest first.

    Lots never expire for valuation; the lock policy decides which of them
    still block a sale.
    """
    return (
        db.query(PurchaseLot)
        .filter(PurchaseLot.user_id == user_id, PurchaseLot.asset_symbol == asset)
        .order_by(PurchaseLot.created_at, PurchaseLot.id)
        .all()
    )


def insert_trade(
    db: Session,
    user_id: str,
    from_asset: str,
    to_asset: str,
    from_amount: int,
    to_amount: int,
    btc_price_usd: float,
    asset_price_usd: float,
    created_at: datetime,
) -> Trade:
    """Append a trade with the next per-user sequence number.

    Two settlements racing for the same number collide on
    ``uq_trade_user_seq``; the loser's flush fails and its unit of work rolls
    back as a PersistenceConflict.
    """
    last_seq = db.query(func.max(Trade.seq)).filter(Trade.user_id == user_id).scalar()
    trade = Trade(
        user_id=user_id,
        from_asset=from_asset,
        to_asset=to_asset,
        from_amount=from_amount,
        to_amount=to_amount,
        btc_price_usd=btc_price_usd,
        asset_price_usd=asset_price_usd,
        created_at=created_at,
        seq=(last_seq or 0) + 1,
    )
    db.add(trade)
    db.flush()
    return trade


def list_trades(db: Session, user_id: str) -> list[Trade]:
    """Full trade history for a user in execution order."""
    return (
        db.query(Trade)
        .filter(Trade.user_id == user_id)
        .order_by(Trade.seq)
        .all()
    )
