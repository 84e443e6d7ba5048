"""Trade request/response schemas."""

from typing import Optional

from pydantic import BaseModel, Field


class TradeRequest(BaseModel):
    from_asset: str
    to_asset: str
    amount: float = Field(gt=0)
    unit: str = "sat"  # btc | sat | ksat | msat | asset


class TradeQuoteResponse(BaseModel):
    from_asset: str
    to_asset: str
    from_amount: int
    to_amount: int
    btc_price_usd: float
    asset_price_usd: float
    usd_value: float


class TradeResultResponse(BaseModel):
    trade_id: str
    from_asset: str
    to_asset: str
    from_amount: int
    to_amount: int
    btc_price_usd: float
    asset_price_usd: float
    locked_until: Optional[str]
    created_at: str


class TradeResponse(BaseModel):
    id: str
    user_id: str
    from_asset: str
    to_asset: str
    from_amount: int
    to_amount: int
    btc_price_usd: float
    asset_price_usd: float
    created_at: str

    class Config:
        from_attributes = True


class TradeFilter(BaseModel):
    """Typed filter for the admin trade listing."""

    user_id: Optional[str] = None
    asset: Optional[str] = None
    since: Optional[str] = None  # ISO-8601
    until: Optional[str] = None  # ISO-8601
    limit: int = Field(default=100, ge=1, le=1000)
