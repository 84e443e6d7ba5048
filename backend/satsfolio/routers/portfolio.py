"""Portfolio router — valuation, sellable balances and lot history."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from satsfolio.database import get_db
from satsfolio.dependencies import get_price_oracle
from satsfolio.middleware.auth import get_current_user
from satsfolio.models.user import User
from satsfolio.routers.trades import trade_to_response
from satsfolio.schemas.portfolio import (
    AssetDetailResponse,
    AvailableToSellResponse,
    HoldingResponse,
    LotResponse,
    PortfolioResponse,
)
from satsfolio.services import holdings_service, portfolio_service
from satsfolio.services.price_oracle import PriceOracle

router = APIRouter(prefix="/api/portfolio", tags=["portfolio"])


def _iso(value):
    return value.isoformat() if value else None


@router.get("", response_model=PortfolioResponse)
def my_portfolio(
    db: Session = Depends(get_db),
    oracle: PriceOracle = Depends(get_price_oracle),
    current_user: User = Depends(get_current_user),
):
    """Get current user's holdings with value, cost basis and lock status."""
    portfolio = portfolio_service.get_portfolio(db, oracle, current_user.id)
    holdings = [
        HoldingResponse(**{**h, "last_purchase_date": _iso(h["last_purchase_date"])})
        for h in portfolio["holdings"]
    ]
    return PortfolioResponse(**{**portfolio, "holdings": holdings})


@router.get("/available/{symbol}", response_model=AvailableToSellResponse)
def available_to_sell(
    symbol: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """How much of an asset can be sold right now."""
    balance = holdings_service.get_available_to_sell(db, current_user.id, symbol)
    return AvailableToSellResponse(**{**balance, "next_unlock_at": _iso(balance["next_unlock_at"])})


@router.get("/asset/{symbol}", response_model=AssetDetailResponse)
def asset_details(
    symbol: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Individual purchase lots and sales for one asset."""
    details = portfolio_service.get_asset_details(db, current_user.id, symbol)
    return AssetDetailResponse(
        asset_symbol=details["asset_symbol"],
        purchases=[
            LotResponse(**{
                **lot,
                "created_at": lot["created_at"].isoformat(),
                "unlock_at": lot["unlock_at"].isoformat(),
            })
            for lot in details["purchases"]
        ],
        sales=[trade_to_response(t) for t in details["sales"]],
    )
