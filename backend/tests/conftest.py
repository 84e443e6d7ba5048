"""Shared fixtures: in-memory SQLite session, fake market data, seeded users."""

import os
import sys
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Keep the app module from creating a database file in the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

import satsfolio.models  # noqa: F401,E402
from satsfolio.database import Base  # noqa: E402
from satsfolio.models.asset import Asset  # noqa: E402
from satsfolio.services.holdings_service import open_account  # noqa: E402
from satsfolio.services.price_oracle import PriceOracle  # noqa: E402

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

PRICES = {
    "BTC": 100_000.0,
    "AMZN": 150.0,
    "XAU": 2_000.0,
    "AAPL": 200.0,
}


class FakeFetcher:
    """Stands in for MarketDataFetcher; prices can be changed mid-test."""

    def __init__(self, prices=None):
        self.prices = dict(PRICES if prices is None else prices)
        self.calls = []

    def fetch(self, symbol):
        self.calls.append(symbol)
        return self.prices.get(symbol)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def oracle(fetcher):
    return PriceOracle(fetcher=fetcher)


@pytest.fixture
def user(db):
    return open_account(db, "alice@example.com", "alice")


def seed_prices(db, prices=None, as_of=NOW):
    """Write fresh ``assets`` rows so the oracle never has to fetch."""
    for symbol, usd in (PRICES if prices is None else prices).items():
        db.merge(Asset(symbol=symbol, current_price_usd=usd, last_updated=as_of))
    db.commit()
