import pytest

from config import BINANCE_FUTURES_INFO, COINGECKO_MARKETS
from exchange import FetchError
from tests.conftest import FakeResponse, FakeSession
from universe import Asset, load_universe, resolve_universe


def contract(base, quote="USDT", kind="PERPETUAL", status="TRADING"):
    c = {"symbol": f"{base}{quote}", "baseAsset": base, "quoteAsset": quote, "contractType": kind}
    if status is not None:
        c["status"] = status
    return c


MARKETS = [
    {"symbol": "btc", "current_price": 64000.5},
    {"symbol": "eth", "current_price": 3100},
    {"symbol": "usdt", "current_price": 1.0},
    {"symbol": "usdc", "current_price": 1.0},
    {"symbol": "leo", "current_price": 5.8},
    {"symbol": "sol", "current_price": 140.2},
    {"symbol": "ada", "current_price": 0.45},
    {"symbol": "xrp", "current_price": 0.5},
]

INFO = {
    "symbols": [
        contract("SOL"),
        contract("BTC"),
        contract("ETH"),
        contract("USDC"),
        contract("ADA", kind="CURRENT_QUARTER"),
        contract("XRP", quote="USDC"),
        contract("LINK"),
    ]
}


def test_resolve_keeps_ranked_order():
    assets = resolve_universe(MARKETS, INFO)

    assert [a.symbol for a in assets] == ["BTC", "ETH", "SOL"]
    assert assets[0] == Asset("BTC", "BTCUSDT", 64000.5)


def test_ranked_symbol_missing_from_futures_is_excluded():
    symbols = {a.symbol for a in resolve_universe(MARKETS, INFO)}
    assert "LEO" not in symbols
    assert "LINK" not in symbols


def test_stablecoins_excluded_even_when_tradable():
    symbols = {a.symbol for a in resolve_universe(MARKETS, INFO)}
    assert "USDC" not in symbols and "USDT" not in symbols


def test_only_usdt_perpetuals_count():
    symbols = {a.symbol for a in resolve_universe(MARKETS, INFO)}
    assert "ADA" not in symbols
    assert "XRP" not in symbols


def test_halted_contracts_are_skipped():
    info = {"symbols": [contract("BTC", status="SETTLING"), contract("ETH", status=None)]}
    assert [a.symbol for a in resolve_universe(MARKETS, info)] == ["ETH"]


def test_duplicates_and_bad_entries():
    markets = [
        {"symbol": "btc", "current_price": 1},
        {"symbol": "BTC", "current_price": 2},
        "garbage",
        {"current_price": 3},
        {"symbol": "eth", "current_price": None},
    ]
    assets = resolve_universe(markets, INFO)

    assert assets == [Asset("BTC", "BTCUSDT", 1.0), Asset("ETH", "ETHUSDT", None)]


@pytest.mark.parametrize("markets,info", [
    ({"error": "rate limited"}, INFO),
    (None, INFO),
    (MARKETS, {}),
    (MARKETS, None),
    (MARKETS, {"symbols": "nope"}),
    (MARKETS, []),
])
def test_malformed_payloads_give_empty_universe(markets, info):
    assert resolve_universe(markets, info) == []


def test_load_universe(make_fetcher):
    def handler(url, params):
        if url == COINGECKO_MARKETS:
            return FakeResponse(200, MARKETS)
        if url == BINANCE_FUTURES_INFO:
            return FakeResponse(200, INFO)
        return FakeResponse(404)

    fetcher = make_fetcher(FakeSession(handler))
    assert [a.symbol for a in load_universe(fetcher)] == ["BTC", "ETH", "SOL"]


def test_load_universe_source_down_is_empty(make_fetcher):
    def handler(url, params):
        if url == COINGECKO_MARKETS:
            return FakeResponse(200, MARKETS)
        return FakeResponse(503)

    fetcher = make_fetcher(FakeSession(handler))
    assert load_universe(fetcher) == []


def test_fetch_error_message_names_url():
    err = FetchError(BINANCE_FUTURES_INFO, RuntimeError("boom"))
    assert BINANCE_FUTURES_INFO in str(err)
    assert "RuntimeError" in str(err)
