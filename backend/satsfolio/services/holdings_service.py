"""Holdings service — account seeding, sellable balances and lot history."""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from satsfolio import lock_policy
from satsfolio.assets import BASE_ASSET, normalize_symbol
from satsfolio.config import settings
from satsfolio.models.holding import Holding
from satsfolio.models.purchase_lot import PurchaseLot
from satsfolio.models.user import User
from satsfolio.services import ledger_store


def open_account(db: Session, email: str, username: str) -> User:
    """Get or create a user, seeding the starting BTC balance on creation."""
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user

    user = User(email=email, username=username)
    db.add(user)
    db.flush()
    db.add(Holding(user_id=user.id, asset_symbol=BASE_ASSET, amount=settings.STARTING_BTC_SATS))
    db.commit()
    db.refresh(user)
    return user


def get_available_to_sell(
    db: Session, user_id: str, asset: str, now: Optional[datetime] = None
) -> dict:
    """How much of ``asset`` the user can transfer right now.

    BTC is never locked. For other assets the lock policy is applied to the
    user's lots.
    """
    asset = normalize_symbol(asset)
    now = lock_policy.as_utc(now or lock_policy.utcnow())
    holding = ledger_store.get_holding(db, user_id, asset)
    held = holding.amount if holding else 0

    lots = [] if asset == BASE_ASSET else ledger_store.list_active_lots(db, user_id, asset)
    balance = lock_policy.sellable_balance(held, lots, now)
    return {"asset": asset, **balance.to_dict()}


def _lot_view(lot: PurchaseLot, now: datetime) -> dict:
    return {
        "id": lot.id,
        "asset_symbol": lot.asset_symbol,
        "amount": lot.amount,
        "btc_spent": lot.btc_spent,
        "purchase_price_usd": lot.purchase_price_usd,
        "btc_price_usd": lot.btc_price_usd,
        "created_at": lock_policy.as_utc(lot.created_at),
        "unlock_at": lock_policy.as_utc(lot.locked_until),
        "is_locked": lock_policy.is_locked(lot, now),
    }


def get_lot_history(
    db: Session, user_id: str, asset: str, now: Optional[datetime] = None
) -> list[dict]:
    """Every purchase lot for ``asset``, newest first, with its lock state."""
    asset = normalize_symbol(asset)
    now = lock_policy.as_utc(now or lock_policy.utcnow())
    lots = ledger_store.list_active_lots(db, user_id, asset)
    return [_lot_view(lot, now) for lot in reversed(lots)]
