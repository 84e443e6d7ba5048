"""SQLAlchemy ORM models."""

from satsfolio.models.user import User
from satsfolio.models.holding import Holding
from satsfolio.models.purchase_lot import PurchaseLot
from satsfolio.models.trade import Trade
from satsfolio.models.asset import Asset
from satsfolio.models.audit_log import AuditLog

__all__ = [
    "User",
    "Holding",
    "PurchaseLot",
    "Trade",
    "Asset",
    "AuditLog",
]
