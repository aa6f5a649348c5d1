# exchange.py
import os
import time
import logging
from urllib.parse import quote, urlencode

import pandas as pd
import requests

from config import (
    BINANCE_FUTURES_INFO,
    BINANCE_KLINES,
    COINGECKO_MARKETS,
    PARAMS,
)

log = logging.getLogger("scanner")

KLINE_COLUMNS = ["ts", "high", "low", "close"]


class FetchError(Exception):
    """Raised once a request has failed on every attempt."""

    def __init__(self, url, cause):
        super().__init__(f"{url}: {type(cause).__name__}: {cause}")
        self.url = url
        self.cause = cause


class Fetcher:
    """
    JSON GET with a small retry budget.
    - statuses in `empty_statuses` (451 geo-block) return [] instead of failing
    - any other non-2xx, transport error or bad JSON is retried
    - with `relay_prefix` set, the first retry goes through the relay mirror
    """

    def __init__(self, session=None, retries=2, base_delay=0.5, empty_statuses=(451,),
                 relay_prefix=None, timeout=15, sleep=time.sleep):
        self.session = session if session is not None else requests.Session()
        self.retries = retries
        self.base_delay = base_delay
        self.empty_statuses = frozenset(empty_statuses)
        self.relay_prefix = relay_prefix
        self.timeout = timeout
        self.sleep = sleep

    def _relay(self, url, params):
        full = f"{url}?{urlencode(params)}" if params else url
        return f"{self.relay_prefix}{quote(full, safe='')}"

    def get_json(self, url, params=None):
        last_err = None
        for attempt in range(self.retries + 1):
            target, target_params = url, params
            if attempt == 1 and self.relay_prefix:
                target, target_params = self._relay(url, params), None

            try:
                res = self.session.get(target, params=target_params, timeout=self.timeout)
                if res.status_code in self.empty_statuses:
                    log.warning(f"HTTP {res.status_code} treated as empty | {url}")
                    return []
                if not 200 <= res.status_code < 300:
                    raise requests.HTTPError(f"HTTP {res.status_code}")
                return res.json()
            except (requests.RequestException, ValueError) as e:
                last_err = e
                if attempt == self.retries:
                    break
                wait = self.base_delay * (attempt + 1)
                log.warning(
                    f"Fetch failed | {url} | {type(e).__name__}: {e} | "
                    f"retry {attempt + 1}/{self.retries} in {wait:.1f}s"
                )
                self.sleep(wait)

        raise FetchError(url, last_err)


def make_fetcher():
    """
    Create a Fetcher backed by a requests.Session.
    Retry policy and relay mirror come from the environment.
    """
    s = requests.Session()
    s.headers.update({
        "User-Agent": "phase-scanner/1.0",
        "Accept": "application/json",
    })

    return Fetcher(
        session=s,
        retries=int(os.getenv("FETCH_RETRIES", str(PARAMS["fetch_retries"]))),
        base_delay=int(os.getenv("FETCH_BASE_DELAY_MS", str(PARAMS["fetch_base_delay_ms"]))) / 1000,
        relay_prefix=os.getenv("FETCH_RELAY_PREFIX") or None,
        timeout=int(os.getenv("FETCH_TIMEOUT_S", str(PARAMS["fetch_timeout_s"]))),
    )


def fetch_markets(fetcher):
    return fetcher.get_json(COINGECKO_MARKETS)


def fetch_exchange_info(fetcher):
    return fetcher.get_json(BINANCE_FUTURES_INFO)


def klines_to_df(raw) -> pd.DataFrame:
    """
    Binance kline rows [openTime, open, high, low, close, ...] -> DataFrame (UTC ts).
    Anything that is not a list of rows reads as no candles.
    """
    rows = []
    if isinstance(raw, list):
        for k in raw:
            if isinstance(k, (list, tuple)) and len(k) >= 5:
                rows.append((k[0], k[2], k[3], k[4]))

    if not rows:
        return pd.DataFrame({
            "ts": pd.Series(dtype="datetime64[ns, UTC]"),
            "high": pd.Series(dtype="float64"),
            "low": pd.Series(dtype="float64"),
            "close": pd.Series(dtype="float64"),
        })

    df = pd.DataFrame(rows, columns=KLINE_COLUMNS)
    for c in KLINE_COLUMNS:
        df[c] = pd.to_numeric(df[c], errors="coerce")
    df = df.dropna().sort_values("ts").reset_index(drop=True)
    df["ts"] = pd.to_datetime(df["ts"], unit="ms", utc=True)
    return df


def fetch_klines_df(fetcher, pair, interval, limit):
    raw = fetcher.get_json(
        BINANCE_KLINES,
        params={"symbol": pair, "interval": interval, "limit": int(limit)},
    )
    return klines_to_df(raw)
