import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
import requests

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from exchange import Fetcher
from state import StateStore


class FakeResponse:
    """Minimal stand-in for requests.Response"""

    def __init__(self, status_code=200, payload=None, bad_json=False):
        self.status_code = status_code
        self._payload = payload
        self._bad_json = bad_json

    def json(self):
        if self._bad_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    """
    Fake transport. `handler(url, params)` returns a FakeResponse or raises.
    A list of responses is served in order, the last one repeating.
    """

    def __init__(self, handler=None, responses=None):
        self.handler = handler
        self.responses = list(responses or [])
        self.calls = []
        self.posts = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params) if params else None))
        if self.handler is not None:
            return self.handler(url, params or {})
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json))
        if self.handler is not None:
            return self.handler(url, json or {})
        return FakeResponse(200, {"ok": True})


def ms(dt):
    return int(dt.timestamp() * 1000)


def make_klines(closes, start=datetime(2024, 1, 1, tzinfo=timezone.utc), step=timedelta(minutes=1)):
    """Binance-style kline rows for a list of closes."""
    rows = []
    for i, c in enumerate(closes):
        t = start + i * step
        rows.append([ms(t), str(c), str(c + 1), str(c - 1), str(c), "10.0", ms(t + step) - 1])
    return rows


def make_daily(days, start=datetime(2024, 1, 1, tzinfo=timezone.utc)):
    """
    Daily kline rows from (high, low) pairs, one per day from `start`.
    2024-01-01 is a Monday, so index 6 is the first Sunday.
    """
    rows = []
    for i, (high, low) in enumerate(days):
        t = start + timedelta(days=i)
        mid = (high + low) / 2
        rows.append([ms(t), str(mid), str(high), str(low), str(mid), "1000.0"])
    return rows


@pytest.fixture
def no_sleep():
    waits = []
    return waits, waits.append


@pytest.fixture
def make_fetcher(no_sleep):
    waits, sleep = no_sleep

    def _make(session, **kwargs):
        kwargs.setdefault("sleep", sleep)
        return Fetcher(session=session, **kwargs)

    return _make


@pytest.fixture
def store():
    return StateStore()
