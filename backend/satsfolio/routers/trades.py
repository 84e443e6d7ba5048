"""Trades router — quoting, settlement and trade history."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from satsfolio.conversion import to_sats
from satsfolio.database import get_db
from satsfolio.dependencies import get_price_oracle
from satsfolio.errors import TradeError
from satsfolio.lock_policy import as_utc
from satsfolio.middleware.auth import get_current_user
from satsfolio.models.trade import Trade
from satsfolio.models.user import User
from satsfolio.schemas.trade import (
    TradeRequest,
    TradeQuoteResponse,
    TradeResultResponse,
    TradeResponse,
)
from satsfolio.services import trade_service
from satsfolio.services.price_oracle import PriceOracle

router = APIRouter(prefix="/api/trades", tags=["trades"])


def trade_error_to_http(e: TradeError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_dict())


def trade_to_response(t: Trade) -> TradeResponse:
    return TradeResponse(
        id=t.id,
        user_id=t.user_id,
        from_asset=t.from_asset,
        to_asset=t.to_asset,
        from_amount=t.from_amount,
        to_amount=t.to_amount,
        btc_price_usd=t.btc_price_usd,
        asset_price_usd=t.asset_price_usd,
        created_at=as_utc(t.created_at).isoformat(),
    )


@router.post("/quote", response_model=TradeQuoteResponse)
def quote_trade(
    req: TradeRequest,
    db: Session = Depends(get_db),
    oracle: PriceOracle = Depends(get_price_oracle),
    current_user: User = Depends(get_current_user),
):
    """Preview a trade at current prices."""
    try:
        amount = to_sats(req.amount, req.unit)
        result = trade_service.quote_trade(db, oracle, req.from_asset, req.to_asset, amount)
        return TradeQuoteResponse(**result)
    except TradeError as e:
        raise trade_error_to_http(e)


@router.post("", response_model=TradeResultResponse)
def execute_trade(
    req: TradeRequest,
    db: Session = Depends(get_db),
    oracle: PriceOracle = Depends(get_price_oracle),
    current_user: User = Depends(get_current_user),
):
    """Settle a trade for the current user."""
    try:
        amount = to_sats(req.amount, req.unit)
        result = trade_service.settle_trade(
            db, oracle, current_user.id, req.from_asset, req.to_asset, amount
        )
    except TradeError as e:
        raise trade_error_to_http(e)

    return TradeResultResponse(
        trade_id=result.trade_id,
        from_asset=result.from_asset,
        to_asset=result.to_asset,
        from_amount=result.from_amount,
        to_amount=result.to_amount,
        btc_price_usd=result.btc_price_usd,
        asset_price_usd=result.asset_price_usd,
        locked_until=result.locked_until.isoformat() if result.locked_until else None,
        created_at=result.created_at.isoformat(),
    )


@router.get("/history", response_model=list[TradeResponse])
def trade_history(
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get current user's trade history, newest first."""
    trades = trade_service.get_trade_history(db, current_user.id, limit)
    return [trade_to_response(t) for t in trades]
