"""Asset price row — last price written by the price oracle."""

from datetime import datetime, timezone

from sqlalchemy import Column, String, Float, DateTime

from satsfolio.database import Base


class Asset(Base):
    __tablename__ = "assets"

    symbol = Column(String(10), primary_key=True)
    current_price_usd = Column(Float, nullable=True)
    last_updated = Column(DateTime, nullable=True, default=lambda: datetime.now(timezone.utc))
