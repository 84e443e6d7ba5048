"""Holding model — per-user, per-asset running balance in scaled units."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, BigInteger, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from satsfolio.database import Base


class Holding(Base):
    __tablename__ = "holdings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    asset_symbol = Column(String(10), nullable=False)
    # Amount × 10^8; never negative after a committed trade
    amount = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("user_id", "asset_symbol", name="uq_user_asset"),
    )

    # Relationships
    user = relationship("User", back_populates="holdings")
