"""
Transfer lock policy for purchase lots.

Each lot of a non-BTC asset is locked for a fixed window after it is bought
and unlocks on its own schedule; later purchases never extend earlier locks.
A lot counts toward the sellable balance only once ``now >= locked_until``,
and then in full. There is no partial unlock of a single lot.

    locked     = sum(lot.amount for lots with locked_until > now)
    available  = max(holding - locked, 0)
    status     = unlocked if locked == 0
                 locked   if locked >= holding
                 partial  otherwise

``locked > holding`` can only come from drift between the aggregate holding
and the lot history. Available is clamped to zero and the result is flagged so
an operator can reconcile.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

UNLOCKED = "unlocked"
PARTIAL = "partial"
LOCKED = "locked"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def lock_expiry(created_at: datetime, lock_hours: int) -> datetime:
    """Unlock time for a lot created at ``created_at``."""
    return as_utc(created_at) + timedelta(hours=lock_hours)


def is_locked(lot, now: datetime) -> bool:
    return as_utc(lot.locked_until) > as_utc(now)


def lot_available_amount(lot, now: datetime) -> int:
    """Contribution of a single lot to the sellable balance: all or nothing."""
    return 0 if is_locked(lot, now) else lot.amount


def locked_amount(lots: Iterable, now: datetime) -> int:
    return sum(lot.amount for lot in lots if is_locked(lot, now))


def available_amount(holding_amount: int, locked: int) -> int:
    return max(holding_amount - locked, 0)


def lock_status(holding_amount: int, locked: int) -> str:
    if locked == 0:
        return UNLOCKED
    if locked >= holding_amount:
        return LOCKED
    return PARTIAL


@dataclass
class SellableBalance:
    holding_amount: int
    locked_amount: int
    available_amount: int
    status: str
    locked_lots: int = 0
    next_unlock_at: Optional[datetime] = None
    drift: bool = False

    def to_dict(self) -> dict:
        return {
            "holding_amount": self.holding_amount,
            "locked_amount": self.locked_amount,
            "available_amount": self.available_amount,
            "status": self.status,
            "locked_lots": self.locked_lots,
            "next_unlock_at": self.next_unlock_at,
            "drift": self.drift,
        }


def sellable_balance(holding_amount: int, lots: Iterable, now: datetime) -> SellableBalance:
    """Work out how much of a holding can be transferred right now.

    Args:
        holding_amount: Aggregate holding in scaled units.
        lots: Purchase lots for the same user and asset.
        now: Evaluation time.

    Returns:
        SellableBalance with ``drift`` set when the locked lots exceed the
        holding they are supposed to be part of.
    """
    locked_lots = [lot for lot in lots if is_locked(lot, now)]
    locked = sum(lot.amount for lot in locked_lots)
    drift = locked > holding_amount
    if drift:
        logger.warning(
            "Locked lots exceed holding (locked=%d, holding=%d); reconciliation needed",
            locked, holding_amount,
        )
    next_unlock = min((as_utc(lot.locked_until) for lot in locked_lots), default=None)
    return SellableBalance(
        holding_amount=holding_amount,
        locked_amount=locked,
        available_amount=available_amount(holding_amount, locked),
        status=lock_status(holding_amount, locked),
        locked_lots=len(locked_lots),
        next_unlock_at=next_unlock,
        drift=drift,
    )
