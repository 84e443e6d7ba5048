"""satsfolio — FastAPI Application Entry Point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from satsfolio.config import settings
from satsfolio.database import init_db
from satsfolio.routers import admin, portfolio, trades
from satsfolio.services.price_oracle import PriceOracle

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create all tables on startup
init_db()

# ── CORS origins from env (supports dev localhost + production domain) ──────
_cors_origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]

app = FastAPI(
    title="satsfolio",
    description="Bitcoin-denominated portfolio simulator.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# One oracle per process so its last-known-good cache is shared by requests
app.state.price_oracle = PriceOracle()

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(trades.router)
app.include_router(portfolio.router)
app.include_router(admin.router)

logger.info(
    "satsfolio ready: lock window %dh, minimum trade %d sats, price TTL %dm",
    settings.ASSET_LOCK_HOURS,
    settings.MIN_TRADE_SATS,
    settings.PRICE_CACHE_TTL_MINUTES,
)


@app.get("/")
def root():
    return {
        "name": "satsfolio API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
def health():
    return {"status": "ok"}
