"""Portfolio, lock and reconciliation schemas."""

from typing import Optional

from pydantic import BaseModel

from satsfolio.schemas.trade import TradeResponse


class HoldingResponse(BaseModel):
    asset_symbol: str
    name: str
    category: str
    amount: int
    current_price_usd: float
    price_available: bool = True
    price_stale: bool = False
    current_value_sats: int
    cost_basis_sats: int
    gain_loss_sats: int
    purchase_count: int = 0
    last_purchase_date: Optional[str] = None
    locked_amount: int = 0
    available_amount: int = 0
    lock_status: str = "unlocked"
    total_spent_sats: int = 0
    total_received_from_sales: int = 0


class PortfolioResponse(BaseModel):
    holdings: list[HoldingResponse]
    total_value_sats: int
    total_cost_sats: int
    gain_loss_sats: int
    gain_loss_pct: float
    btc_price_usd: float


class AvailableToSellResponse(BaseModel):
    asset: str
    holding_amount: int
    locked_amount: int
    available_amount: int
    status: str  # unlocked | partial | locked
    locked_lots: int = 0
    next_unlock_at: Optional[str] = None
    drift: bool = False


class LotResponse(BaseModel):
    id: str
    asset_symbol: str
    amount: int
    btc_spent: int
    purchase_price_usd: float
    btc_price_usd: float
    created_at: str
    unlock_at: str
    is_locked: bool


class AssetDetailResponse(BaseModel):
    asset_symbol: str
    purchases: list[LotResponse]
    sales: list[TradeResponse]


class DriftEntry(BaseModel):
    asset: str
    live: int
    expected: int
    delta: int


class DriftResponse(BaseModel):
    user_id: str
    consistent: bool
    drift: list[DriftEntry]


class ReconcileResponse(BaseModel):
    user_id: str
    holdings: dict[str, int]
    lots_rebuilt: Optional[int] = None
