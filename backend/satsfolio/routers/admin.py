"""Admin router — holdings drift diagnostics, repair and trade search."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from satsfolio.assets import normalize_symbol
from satsfolio.database import get_db
from satsfolio.errors import ReconciliationError
from satsfolio.lock_policy import as_utc
from satsfolio.middleware.auth import require_admin
from satsfolio.models.trade import Trade
from satsfolio.models.user import User
from satsfolio.routers.trades import trade_to_response
from satsfolio.schemas.portfolio import DriftResponse, ReconcileResponse
from satsfolio.schemas.trade import TradeFilter, TradeResponse
from satsfolio.services import reconciliation_service

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _get_user_or_404(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _parse_ts(value: str, field: str) -> datetime:
    try:
        return as_utc(datetime.fromisoformat(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field} timestamp: {value}")


@router.get("/users/{user_id}/drift", response_model=DriftResponse)
def holdings_drift(
    user_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Compare live holdings with a replay of the user's trades."""
    _get_user_or_404(db, user_id)
    try:
        drift = reconciliation_service.detect_drift(db, user_id)
    except ReconciliationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return DriftResponse(user_id=user_id, consistent=not drift, drift=drift)


@router.post("/users/{user_id}/reconcile", response_model=ReconcileResponse)
def reconcile_user(
    user_id: str,
    rebuild_lots: bool = False,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Rebuild a user's holdings (and optionally lots) from their trades."""
    _get_user_or_404(db, user_id)
    try:
        holdings = reconciliation_service.reconcile_holdings(db, user_id, actor_id=admin.id)
        lots = reconciliation_service.rebuild_lots(db, user_id, actor_id=admin.id) if rebuild_lots else None
    except ReconciliationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ReconcileResponse(user_id=user_id, holdings=holdings, lots_rebuilt=lots)


@router.post("/trades/search", response_model=list[TradeResponse])
def search_trades(
    filters: TradeFilter,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """List trades matching a typed filter, newest first."""
    query = db.query(Trade)
    if filters.user_id:
        query = query.filter(Trade.user_id == filters.user_id)
    if filters.asset:
        asset = normalize_symbol(filters.asset)
        query = query.filter((Trade.from_asset == asset) | (Trade.to_asset == asset))
    if filters.since:
        query = query.filter(Trade.created_at >= _parse_ts(filters.since, "since"))
    if filters.until:
        query = query.filter(Trade.created_at < _parse_ts(filters.until, "until"))
    trades = query.order_by(Trade.created_at.desc(), Trade.seq.desc()).limit(filters.limit).all()
    return [trade_to_response(t) for t in trades]
