"""Purchase lot model — one row per non-BTC acquisition, immutable once written."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, BigInteger, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from satsfolio.database import Base


class PurchaseLot(Base):
    __tablename__ = "purchase_lots"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    asset_symbol = Column(String(10), nullable=False)
    amount = Column(BigInteger, nullable=False)     # scaled units acquired
    btc_spent = Column(BigInteger, nullable=False)  # sats paid
    purchase_price_usd = Column(Float, nullable=False)
    btc_price_usd = Column(Float, nullable=False)   # BTC price at purchase
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    locked_until = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_purchase_lots_user_asset_lock", "user_id", "asset_symbol", "locked_until"),
    )

    # Relationships
    user = relationship("User", back_populates="purchase_lots")
