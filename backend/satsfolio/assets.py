"""Asset catalog — display metadata and market-data symbol mapping.

Prices are not stored here; see services.price_oracle and the ``assets`` table.
"""

from typing import Optional

BASE_ASSET = "BTC"

ASSET_METADATA = {
    # Cryptocurrency
    "BTC": {"name": "Bitcoin", "type": "crypto", "category": "Cryptocurrency"},

    # Precious metals / commodities
    "XAU": {"name": "Gold", "type": "commodity", "category": "Precious Metals"},
    "XAG": {"name": "Silver", "type": "commodity", "category": "Precious Metals"},
    "WTI": {"name": "Crude Oil WTI", "type": "commodity", "category": "Energy"},
    "CPER": {"name": "United States Copper Index Fund", "type": "commodity", "category": "Industrial Metals"},
    "WEAT": {"name": "Teucrium Wheat Fund", "type": "commodity", "category": "Commodities"},
    "DBA": {"name": "Invesco DB Agriculture Fund", "type": "commodity", "category": "Commodities"},
    "UNG": {"name": "United States Natural Gas Fund", "type": "commodity", "category": "Commodities"},
    "URA": {"name": "Global X Uranium ETF", "type": "commodity", "category": "Commodities"},

    # Index funds
    "SPY": {"name": "SPDR S&P 500 ETF", "type": "fund", "category": "Stock Indices"},
    "QQQ": {"name": "Invesco QQQ Trust", "type": "fund", "category": "Stock Indices"},
    "VTI": {"name": "Vanguard Total Stock Market ETF", "type": "fund", "category": "Stock Indices"},
    "EFA": {"name": "iShares MSCI EAFE ETF", "type": "fund", "category": "International"},
    "VXUS": {"name": "Vanguard Total International Stock ETF", "type": "fund", "category": "International"},
    "TLT": {"name": "iShares 20+ Year Treasury Bond ETF", "type": "fund", "category": "Bonds"},
    "VNQ": {"name": "Vanguard Real Estate ETF", "type": "fund", "category": "Real Estate"},

    # Stocks
    "AAPL": {"name": "Apple Inc.", "type": "stock", "category": "Technology"},
    "MSFT": {"name": "Microsoft Corp.", "type": "stock", "category": "Technology"},
    "GOOGL": {"name": "Alphabet Inc.", "type": "stock", "category": "Technology"},
    "AMZN": {"name": "Amazon.com Inc.", "type": "stock", "category": "Technology"},
    "NVDA": {"name": "NVIDIA Corp.", "type": "stock", "category": "Technology"},
    "TSLA": {"name": "Tesla Inc.", "type": "stock", "category": "Technology"},
    "META": {"name": "Meta Platforms Inc.", "type": "stock", "category": "Technology"},
    "JNJ": {"name": "Johnson & Johnson", "type": "stock", "category": "Healthcare"},
    "V": {"name": "Visa Inc.", "type": "stock", "category": "Finance"},
    "BRK-B": {"name": "Berkshire Hathaway Inc.", "type": "stock", "category": "Finance"},
    "WMT": {"name": "Walmart Inc.", "type": "stock", "category": "Consumer"},
}

# Commodities quote as front-month futures on the chart API
MARKET_DATA_SYMBOLS = {
    "XAU": "GC=F",
    "XAG": "SI=F",
    "WTI": "CL=F",
}


def normalize_symbol(symbol: str) -> str:
    return (symbol or "").strip().upper()


def get_asset_metadata(symbol: str) -> Optional[dict]:
    return ASSET_METADATA.get(normalize_symbol(symbol))


def get_asset_name(symbol: str) -> str:
    meta = get_asset_metadata(symbol)
    return meta["name"] if meta else symbol


def get_asset_category(symbol: str) -> str:
    meta = get_asset_metadata(symbol)
    return meta["category"] if meta else "Other"


def market_data_symbol(symbol: str) -> str:
    """Ticker to request from the chart API for ``symbol``."""
    symbol = normalize_symbol(symbol)
    return MARKET_DATA_SYMBOLS.get(symbol, symbol)
