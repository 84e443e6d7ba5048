"""
Scaled-integer conversion math.

Every persisted amount is an integer number of "sats": the asset quantity
multiplied by 10^8, for BTC and for every other asset alike. Floating point is
used only for the transient USD bridge between the two sides of a trade:

    BTC -> X:   to = round((amount / 1e8) * btc_usd / x_usd * 1e8)
    X -> BTC:   to = round((amount / 1e8) * x_usd / btc_usd * 1e8)

Rounding is round-half-up, applied once per stored amount and nowhere else.
"""

import math

from satsfolio.assets import BASE_ASSET
from satsfolio.errors import InvalidAmount, UnsupportedPair

SATS_PER_UNIT = 100_000_000

# Input units accepted by the trade endpoint, as multipliers to scaled units
UNIT_MULTIPLIERS = {
    "btc": SATS_PER_UNIT,
    "asset": SATS_PER_UNIT,
    "ksat": 1_000,
    "sat": 1,
    "msat": 0.001,
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties away from zero."""
    if math.isnan(value) or math.isinf(value):
        raise InvalidAmount(f"Cannot round non-finite value {value}")
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


def usd_value(amount: int, price_usd: float) -> float:
    """USD value of a scaled amount at the given unit price."""
    return (amount / SATS_PER_UNIT) * price_usd


def convert_amount(
    from_asset: str,
    to_asset: str,
    amount: int,
    btc_price_usd: float,
    asset_price_usd: float,
) -> int:
    """Convert ``amount`` scaled units of ``from_asset`` into ``to_asset``.

    Args:
        from_asset: Symbol being given up.
        to_asset: Symbol being acquired. Exactly one side must be BTC.
        amount: Scaled units of ``from_asset``.
        btc_price_usd: Current BTC price.
        asset_price_usd: Current price of the non-BTC side.

    Returns:
        Scaled units of ``to_asset``, rounded half-up.

    Raises:
        UnsupportedPair: If neither or both sides are BTC.
    """
    if btc_price_usd <= 0 or asset_price_usd <= 0:
        raise ValueError("Prices must be positive")

    if from_asset == BASE_ASSET and to_asset != BASE_ASSET:
        usd = usd_value(amount, btc_price_usd)
        raw = usd / asset_price_usd
    elif from_asset != BASE_ASSET and to_asset == BASE_ASSET:
        usd = usd_value(amount, asset_price_usd)
        raw = usd / btc_price_usd
    else:
        raise UnsupportedPair(
            "One side of every trade must be BTC",
            from_asset=from_asset,
            to_asset=to_asset,
        )
    return round_half_up(raw * SATS_PER_UNIT)


def to_sats(amount, unit: str) -> int:
    """Convert a user-entered amount in ``unit`` to scaled units."""
    multiplier = UNIT_MULTIPLIERS.get((unit or "").lower())
    if multiplier is None:
        raise InvalidAmount(
            f"Invalid unit '{unit}'", unit=unit, valid_units=sorted(UNIT_MULTIPLIERS)
        )
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise InvalidAmount(f"Invalid amount '{amount}'", amount=amount)
    return round_half_up(value * multiplier)
