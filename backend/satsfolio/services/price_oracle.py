"""Price oracle — USD quotes with a last-known-good fallback.

Lookup order for a symbol:
  1. fresh entry in the in-memory PriceCache (younger than the TTL)
  2. fresh ``assets`` row
  3. live fetch from the market-data APIs (bounded timeout)
  4. stale-but-valid entry from the cache or the ``assets`` row
     (younger than ``max_stale``), flagged ``stale=True``
  5. None

A failed fetch never raises out of the oracle; the settlement engine decides
what a missing price means. Fetched prices are committed straight away in a
transaction of their own, so call the oracle before taking any row locks.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from satsfolio.assets import BASE_ASSET, market_data_symbol, normalize_symbol
from satsfolio.config import settings
from satsfolio.lock_policy import as_utc, utcnow
from satsfolio.models.asset import Asset

logger = logging.getLogger(__name__)

_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


@dataclass
class PriceQuote:
    symbol: str
    usd: float
    as_of: datetime
    stale: bool = False


class PriceCache:
    """Last-known-good prices with explicit freshness and validity bounds."""

    def __init__(self, ttl: timedelta, max_stale: timedelta):
        self.ttl = ttl
        self.max_stale = max_stale
        self._entries: dict[str, tuple[float, datetime]] = {}
        self._lock = threading.Lock()

    def put(self, symbol: str, usd: float, as_of: datetime) -> None:
        with self._lock:
            current = self._entries.get(symbol)
            if current is None or current[1] <= as_utc(as_of):
                self._entries[symbol] = (usd, as_utc(as_of))

    def _get(self, symbol: str, now: datetime, max_age: timedelta) -> Optional[PriceQuote]:
        with self._lock:
            entry = self._entries.get(symbol)
        if entry is None:
            return None
        usd, as_of = entry
        if as_utc(now) - as_of > max_age:
            return None
        return PriceQuote(symbol=symbol, usd=usd, as_of=as_of, stale=as_utc(now) - as_of > self.ttl)

    def get_fresh(self, symbol: str, now: datetime) -> Optional[PriceQuote]:
        return self._get(symbol, now, self.ttl)

    def get_last_known(self, symbol: str, now: datetime) -> Optional[PriceQuote]:
        return self._get(symbol, now, self.max_stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class MarketDataFetcher:
    """Fetches live USD prices over HTTP.

    BTC comes from CoinGecko; stocks, funds and commodities from the Yahoo
    chart endpoint.
    """

    def __init__(
        self,
        coingecko_url: str = settings.COINGECKO_API_URL,
        chart_url: str = settings.YAHOO_CHART_URL,
        timeout_sec: float = settings.PRICE_FETCH_TIMEOUT_SECONDS,
        btc_min_usd: float = settings.BTC_PRICE_MIN_USD,
        btc_max_usd: float = settings.BTC_PRICE_MAX_USD,
    ):
        self.coingecko_url = coingecko_url.rstrip("/")
        self.chart_url = chart_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self.btc_min_usd = btc_min_usd
        self.btc_max_usd = btc_max_usd

    def fetch(self, symbol: str) -> Optional[float]:
        """Return the current USD price for ``symbol`` or None on any failure."""
        try:
            if symbol == BASE_ASSET:
                return self._fetch_bitcoin()
            return self._fetch_chart(market_data_symbol(symbol))
        except (requests.RequestException, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning("Price fetch failed for %s: %s", symbol, e)
            return None

    def _fetch_bitcoin(self) -> float:
        resp = requests.get(
            f"{self.coingecko_url}/simple/price",
            params={"ids": "bitcoin", "vs_currencies": "usd"},
            timeout=self.timeout_sec,
        )
        resp.raise_for_status()
        price = float(resp.json()["bitcoin"]["usd"])
        if not (self.btc_min_usd < price < self.btc_max_usd):
            raise ValueError(f"BTC price {price} outside sanity band")
        return price

    def _fetch_chart(self, ticker: str) -> float:
        resp = requests.get(
            f"{self.chart_url}/{ticker}",
            headers={"User-Agent": _USER_AGENT},
            timeout=self.timeout_sec,
        )
        resp.raise_for_status()
        price = float(resp.json()["chart"]["result"][0]["meta"]["regularMarketPrice"])
        if price <= 0:
            raise ValueError(f"Non-positive price {price} for {ticker}")
        return price


class PriceOracle:
    def __init__(self, fetcher=None, cache: Optional[PriceCache] = None):
        self.fetcher = fetcher if fetcher is not None else MarketDataFetcher()
        self.cache = cache or PriceCache(
            ttl=timedelta(minutes=settings.PRICE_CACHE_TTL_MINUTES),
            max_stale=timedelta(hours=settings.PRICE_MAX_STALE_HOURS),
        )

    def _stored(self, db: Session, symbol: str) -> Optional[Asset]:
        asset = db.query(Asset).filter(Asset.symbol == symbol).first()
        if not asset or asset.current_price_usd is None or asset.last_updated is None:
            return None
        return asset

    def _store(self, db: Session, symbol: str, usd: float, as_of: datetime) -> None:
        """Upsert the ``assets`` row and commit it in its own short transaction.

        Callers look prices up before opening a settlement unit of work, so
        price rows are never written while a holding row is locked. Losing a
        race to insert the same symbol only drops this copy of the price; the
        in-memory cache still has it.
        """
        try:
            asset = db.query(Asset).filter(Asset.symbol == symbol).first()
            if asset:
                asset.current_price_usd = usd
                asset.last_updated = as_of
            else:
                db.add(Asset(symbol=symbol, current_price_usd=usd, last_updated=as_of))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Could not persist %s price: %s", symbol, e)

    def get_price(self, db: Session, symbol: str, now: Optional[datetime] = None) -> Optional[PriceQuote]:
        """Current USD price for ``symbol``, or None if nothing usable exists."""
        symbol = normalize_symbol(symbol)
        now = as_utc(now or utcnow())

        cached = self.cache.get_fresh(symbol, now)
        if cached:
            return cached

        stored = self._stored(db, symbol)
        if stored and now - as_utc(stored.last_updated) <= self.cache.ttl:
            self.cache.put(symbol, stored.current_price_usd, stored.last_updated)
            return PriceQuote(symbol, stored.current_price_usd, as_utc(stored.last_updated))

        price = self.fetcher.fetch(symbol)
        if price is not None:
            self.cache.put(symbol, price, now)
            self._store(db, symbol, price, now)
            logger.info("Fetched %s price: $%s", symbol, price)
            return PriceQuote(symbol, price, now)

        fallback = self.cache.get_last_known(symbol, now)
        if fallback is None and stored and now - as_utc(stored.last_updated) <= self.cache.max_stale:
            fallback = PriceQuote(
                symbol, stored.current_price_usd, as_utc(stored.last_updated), stale=True
            )
        if fallback:
            logger.warning(
                "Using last known %s price $%s from %s", symbol, fallback.usd, fallback.as_of.isoformat()
            )
            return fallback

        logger.error("No usable price for %s", symbol)
        return None

    def get_prices(self, db: Session, symbols, now: Optional[datetime] = None) -> dict[str, PriceQuote]:
        """Quotes for every symbol that resolved; missing symbols are omitted."""
        quotes = {}
        for symbol in symbols:
            quote = self.get_price(db, symbol, now=now)
            if quote is not None:
                quotes[quote.symbol] = quote
        return quotes

    def refresh(self, db: Session, symbols, now: Optional[datetime] = None) -> list[str]:
        """Force a live fetch for ``symbols`` and persist the results."""
        now = as_utc(now or utcnow())
        refreshed = []
        for symbol in (normalize_symbol(s) for s in symbols):
            price = self.fetcher.fetch(symbol)
            if price is None:
                continue
            self.cache.put(symbol, price, now)
            self._store(db, symbol, price, now)
            refreshed.append(symbol)
        return refreshed
