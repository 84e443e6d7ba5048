"""Trade model — immutable audit record of every settled conversion."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, BigInteger, Float, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from satsfolio.database import Base


class Trade(Base):
    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    from_asset = Column(String(10), nullable=False)
    to_asset = Column(String(10), nullable=False)
    from_amount = Column(BigInteger, nullable=False)
    to_amount = Column(BigInteger, nullable=False)
    btc_price_usd = Column(Float, nullable=False)
    # Price of the non-BTC side of the pair
    asset_price_usd = Column(Float, nullable=False)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    # Per-user execution order; breaks ties between trades with equal timestamps
    seq = Column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_trades_user_created", "user_id", "created_at"),
        UniqueConstraint("user_id", "seq", name="uq_trade_user_seq"),
    )

    # Relationships
    user = relationship("User", back_populates="trades")
