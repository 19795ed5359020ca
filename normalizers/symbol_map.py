"""
Coin id / ticker symbol helpers.
"""

from typing import Dict


# coin id (CoinGecko) -> (ticker, display name)
SUPPORTED_COINS: Dict[str, tuple] = {
    "bitcoin": ("BTC", "Bitcoin"),
    "ethereum": ("ETH", "Ethereum"),
    "solana": ("SOL", "Solana"),
    "usd-coin": ("USDC", "USD Coin"),
    "binancecoin": ("BNB", "BNB"),
    "cardano": ("ADA", "Cardano"),
    "dogecoin": ("DOGE", "Dogecoin"),
    "matic-network": ("MATIC", "Polygon"),
    "chainlink": ("LINK", "Chainlink"),
    "avalanche-2": ("AVAX", "Avalanche"),
}

SYMBOL_ALIASES: Dict[str, str] = {
    "WBTC": "BTC",
    "WETH": "ETH",
}

DEFAULT_SYMBOL = "BTC"


def normalize_symbol(symbol: str) -> str:
    if not symbol:
        return ""
    s = symbol.strip().upper()
    return SYMBOL_ALIASES.get(s, s)


def normalize_coin_id(coin_id: str) -> str:
    if not coin_id:
        return ""
    return coin_id.strip().lower()


def to_symbol(coin_id: str) -> str:
    """Unknown ids map to BTC, matching the upstream chart default."""
    entry = SUPPORTED_COINS.get(normalize_coin_id(coin_id))
    return entry[0] if entry else DEFAULT_SYMBOL


def to_coin_id(symbol: str) -> str:
    s = normalize_symbol(symbol)
    for coin_id, (ticker, _) in SUPPORTED_COINS.items():
        if ticker == s:
            return coin_id
    return s.lower()


def display_name(coin_id: str) -> str:
    entry = SUPPORTED_COINS.get(normalize_coin_id(coin_id))
    return entry[1] if entry else coin_id
