"""Structured trade failures.

Every rejection carries a stable code plus the numbers a caller needs to fix
the request. All of them subclass ValueError so existing ``except ValueError``
handlers keep working.
"""

from typing import Any


class TradeError(ValueError):
    code = "TRADE_ERROR"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.details}


# ── Input validation (rejected before any I/O) ────────────────────────────────

class InvalidPair(TradeError):
    code = "INVALID_PAIR"


class UnsupportedPair(TradeError):
    code = "UNSUPPORTED_PAIR"


class BelowMinimum(TradeError):
    code = "BELOW_MINIMUM"


class InvalidAmount(TradeError):
    code = "INVALID_AMOUNT"


# ── Dependency errors ─────────────────────────────────────────────────────────

class PriceUnavailable(TradeError):
    code = "PRICE_UNAVAILABLE"
    status_code = 503


# ── State errors (rejected after reads) ───────────────────────────────────────

class InsufficientBalance(TradeError):
    code = "INSUFFICIENT_BALANCE"


class AssetLocked(TradeError):
    code = "ASSET_LOCKED"


# ── Concurrency errors ────────────────────────────────────────────────────────

class PersistenceConflict(TradeError):
    """Nothing was committed; the whole settlement can be retried."""

    code = "PERSISTENCE_CONFLICT"
    status_code = 409


class ReconciliationError(ValueError):
    """Replaying a trade history produced an impossible balance."""
