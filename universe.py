import math
import logging
from dataclasses import dataclass
from typing import Optional

from config import QUOTE_ASSET, STABLES
from exchange import FetchError, fetch_exchange_info, fetch_markets

log = logging.getLogger("scanner")


@dataclass(frozen=True)
class Asset:
    symbol: str
    trading_pair: str
    price: Optional[float]


def _as_price(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if math.isfinite(price) else None


def tradable_bases(exchange_info, quote: str = QUOTE_ASSET) -> set:
    """Base assets with a live perpetual contract quoted in `quote`."""
    symbols = exchange_info.get("symbols") if isinstance(exchange_info, dict) else None
    if not isinstance(symbols, list):
        return set()

    bases = set()
    for s in symbols:
        if not isinstance(s, dict):
            continue
        if s.get("contractType") != "PERPETUAL" or s.get("quoteAsset") != quote:
            continue
        if s.get("status", "TRADING") != "TRADING":
            continue
        base = s.get("baseAsset")
        if isinstance(base, str) and base:
            bases.add(base.upper())
    return bases


def resolve_universe(markets, exchange_info, quote: str = QUOTE_ASSET, stables=STABLES) -> list:
    """
    Ranked coins that also trade as perpetuals, stablecoins excluded.
    Keeps the market-cap order of `markets`; malformed payloads give [].
    """
    if not isinstance(markets, list):
        return []

    tradable = tradable_bases(exchange_info, quote)
    assets = []
    seen = set()
    for coin in markets:
        if not isinstance(coin, dict):
            continue
        raw = coin.get("symbol")
        if not isinstance(raw, str) or not raw:
            continue

        symbol = raw.upper()
        if symbol in stables or symbol not in tradable or symbol in seen:
            continue

        seen.add(symbol)
        assets.append(Asset(symbol, f"{symbol}{quote}", _as_price(coin.get("current_price"))))
    return assets


def load_universe(fetcher) -> list:
    try:
        markets = fetch_markets(fetcher)
        info = fetch_exchange_info(fetcher)
    except FetchError as e:
        log.error(f"Universe source unavailable | {e}")
        return []

    assets = resolve_universe(markets, info)
    log.info(f"Universe resolved | {len(assets)} assets")
    return assets
