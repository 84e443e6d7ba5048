"""Shared FastAPI dependencies."""

from fastapi import Request

from satsfolio.services.price_oracle import PriceOracle


def get_price_oracle(request: Request) -> PriceOracle:
    """The process-wide price oracle created at startup."""
    return request.app.state.price_oracle
