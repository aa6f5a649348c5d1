COINGECKO_MARKETS = (
    "https://api.coingecko.com/api/v3/coins/markets"
    "?vs_currency=usd&order=market_cap_desc&per_page=100&page=1&sparkline=false"
)
BINANCE_FUTURES_INFO = "https://fapi.binance.com/fapi/v1/exchangeInfo"
BINANCE_KLINES = "https://fapi.binance.com/fapi/v1/klines"

QUOTE_ASSET = "USDT"

STABLES = {
    "USDT", "USDC", "BUSD", "DAI", "TUSD", "USDP", "GUSD", "USDN",
    "FDUSD", "PYUSD",
}

# role -> (interval, limit)
TIMEFRAMES = {
    "anchor": ("1d", 10),
    "trend": ("15m", 28),
    "momentum": ("5m", 28),
    "fast": ("1m", 15),
}

PARAMS = {
  "ema_len": 28,

  "batch_size": 10,
  "batch_pause_ms": 150,

  "alert_capacity": 20,
  "refresh_seconds": 120,

  "fetch_retries": 2,
  "fetch_base_delay_ms": 500,
  "fetch_timeout_s": 15,
}
