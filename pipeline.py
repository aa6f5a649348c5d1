import time
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from config import PARAMS, TIMEFRAMES
from exchange import fetch_klines_df
from state import AlertEvent, StateStore
from strategy import FORMULA, NO_TRADE, build_indicators, classify_phase, score_indicators
from universe import Asset, load_universe

log = logging.getLogger("scanner")

PENDING = "pending"
DATA_FETCHED = "data_fetched"
SCORED = "scored"
CLASSIFIED = "classified"
RECORDED = "recorded"
FAILED = "failed"


@dataclass
class AssetResult:
    asset: Asset
    stage: str = PENDING
    score: Optional[float] = None
    phase: str = NO_TRADE
    error: Optional[str] = None
    prev_score: Optional[float] = None
    alert: Optional[AlertEvent] = None

    @property
    def ok(self) -> bool:
        return self.stage != FAILED

    def to_row(self) -> dict:
        if not self.ok:
            return {
                "symbol": self.asset.symbol,
                "price": None,
                "prevScore": None if self.prev_score is None else round(self.prev_score, 2),
                "score": None,
                "phase": NO_TRADE,
            }
        return {
            "symbol": self.asset.symbol,
            "price": round(self.asset.price, 6),
            "prevScore": round(self.prev_score or 0.0, 2),
            "score": round(self.score, 2),
            "phase": self.phase,
        }


@dataclass
class Snapshot:
    updated_at: datetime
    results: List[AssetResult] = field(default_factory=list)
    alerts: List[AlertEvent] = field(default_factory=list)
    new_alerts: List[AlertEvent] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "updated_at": self.updated_at.replace(microsecond=0).isoformat(),
            "data": [r.to_row() for r in self.results],
            "alerts": [a.to_dict() for a in self.alerts],
            "formula": FORMULA,
        }


def fetch_asset_frames(fetcher, asset: Asset, timeframes=None):
    tf = timeframes or TIMEFRAMES
    return {
        role: fetch_klines_df(fetcher, asset.trading_pair, interval, limit)
        for role, (interval, limit) in tf.items()
    }


def analyze_asset(fetcher, asset: Asset, timeframes=None) -> AssetResult:
    """
    Fetch, score and classify one asset without touching shared state.
    Any exception leaves the result FAILED at the stage it was in.
    """
    res = AssetResult(asset)
    try:
        if asset.price is None:
            raise ValueError("no reference price")

        frames = fetch_asset_frames(fetcher, asset, timeframes)
        res.stage = DATA_FETCHED

        ind = build_indicators(
            frames["anchor"],
            frames["trend"],
            frames["momentum"],
            frames["fast"],
            ema_len=PARAMS["ema_len"],
        )
        res.score = score_indicators(asset.price, ind)
        res.stage = SCORED

        res.phase = classify_phase(res.score)
        res.stage = CLASSIFIED

    except Exception as e:
        # Keep the cycle going even if one asset fails
        log.warning(f"ERR {asset.symbol} | stage={res.stage} | {type(e).__name__}: {e}")
        res.error = f"{type(e).__name__}: {e}"
        res.stage = FAILED
        res.score = None
        res.phase = NO_TRADE
    return res


def record(store: StateStore, res: AssetResult, now: Optional[datetime] = None) -> AssetResult:
    """Merge one analyzed asset into the store; failed assets leave it as is."""
    prev = store.get(res.asset.symbol)
    res.prev_score = prev.last_score if prev else None

    if not res.ok:
        return res

    res.alert = store.record(res.asset.symbol, res.score, res.phase, res.asset.price, now=now)
    res.stage = RECORDED
    if res.alert:
        log.info(
            f"PHASE | {res.asset.symbol} | {res.alert.old_phase} -> {res.alert.new_phase} | "
            f"score={res.score:.2f}"
        )
    return res


def batches(items, size):
    size = max(1, int(size))
    for i in range(0, len(items), size):
        yield items[i:i + size]


def run_cycle(fetcher, store: StateStore, assets=None, batch_size=PARAMS["batch_size"],
              batch_pause=PARAMS["batch_pause_ms"] / 1000, timeframes=None,
              now=None, sleep=time.sleep) -> Snapshot:
    """
    One full pass over the universe.
    - assets in fixed-size batches, each batch analyzed concurrently
    - results merged into the store on this thread, in universe order
    - a pause between batches keeps the upstream request rate down
    """
    started = time.monotonic()
    if assets is None:
        assets = load_universe(fetcher)

    results = []
    new_alerts = []
    groups = list(batches(assets, batch_size))

    with ThreadPoolExecutor(max_workers=max(1, int(batch_size))) as pool:
        for n, group in enumerate(groups):
            analyzed = list(pool.map(lambda a: analyze_asset(fetcher, a, timeframes), group))
            for res in analyzed:
                record(store, res, now=now)
                results.append(res)
                if res.alert:
                    new_alerts.append(res.alert)

            if n < len(groups) - 1 and batch_pause > 0:
                sleep(batch_pause)

    failed = sum(1 for r in results if not r.ok)
    log.info(
        f"Cycle done | assets={len(results)} | failed={failed} | "
        f"alerts={len(new_alerts)} | {time.monotonic() - started:.1f}s"
    )

    return Snapshot(
        updated_at=now or datetime.now(timezone.utc),
        results=results,
        alerts=store.alerts(),
        new_alerts=new_alerts,
    )
