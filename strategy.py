import math
from dataclasses import dataclass

import pandas as pd

from indicators import ema_last, rsi, weekly_extrema

SCORE_MIN = 1.0
SCORE_MAX = 10.0

OVERSOLD = "Oversold"
BEARISH_INCLINE = "Bearish Incline"
ACCUMULATION = "Accumulation"
BULLISH_INCLINE = "Bullish Incline"
OVERBOUGHT = "Overbought"

# ordered by severity
PHASES = (OVERSOLD, BEARISH_INCLINE, ACCUMULATION, BULLISH_INCLINE, OVERBOUGHT)

NO_TRADE = "NoTrade"

PHASE_MARKERS = {
    OVERSOLD: "🔴",
    BEARISH_INCLINE: "🔴",
    ACCUMULATION: "🟠",
    BULLISH_INCLINE: "🟡",
    OVERBOUGHT: "🟢",
}

FORMULA = {
    "base": SCORE_MIN,
    "clamp": [SCORE_MIN, SCORE_MAX],
    "hierarchy": [
        {"tier": "weekly", "rules": ["+3 price > weeklyLow", "+2 price > weeklyHigh", "-2 price < weeklyLow"]},
        {"tier": "15m", "rules": ["+2 RSI > 50 and price > EMA", "-2 RSI < 50 and price < EMA"]},
        {"tier": "5m", "rules": ["+1 RSI > 70 and price > EMA", "-1 RSI < 30 and price < EMA"]},
        {"tier": "fast", "rules": ["+0.5 RSI < 15", "-0.5 RSI > 85"]},
    ],
    "phases": [
        {"phase": OVERSOLD, "max": 3.0, "inclusive": True},
        {"phase": BEARISH_INCLINE, "max": 4.9},
        {"phase": ACCUMULATION, "max": 6.0},
        {"phase": BULLISH_INCLINE, "max": 8.1},
        {"phase": OVERBOUGHT, "max": SCORE_MAX, "inclusive": True},
    ],
}


@dataclass(frozen=True)
class IndicatorSet:
    ema15m: float
    rsi15m: float
    ema5m: float
    rsi5m: float
    rsi_fast: float
    weekly_high: float
    weekly_low: float


def build_indicators(daily: pd.DataFrame, df15: pd.DataFrame, df5: pd.DataFrame,
                     dffast: pd.DataFrame, ema_len: int = 28) -> IndicatorSet:
    """
    Indicator set for one asset:
    - weekly anchor from the daily candles
    - EMA + RSI on 15m and 5m closes
    - RSI only on the fast timeframe
    Empty frames yield NaN fields; comparisons against NaN never fire a rule.
    """
    weekly_high, weekly_low = weekly_extrema(daily)
    return IndicatorSet(
        ema15m=ema_last(df15["close"], ema_len),
        rsi15m=rsi(df15["close"]),
        ema5m=ema_last(df5["close"], ema_len),
        rsi5m=rsi(df5["close"]),
        rsi_fast=rsi(dffast["close"]),
        weekly_high=weekly_high,
        weekly_low=weekly_low,
    )


def compute_score(price: float, weekly_high: float, weekly_low: float,
                  ema15: float, rsi15: float, ema5: float, rsi5: float,
                  rsi_fast: float) -> float:
    # Every rule is evaluated against the same inputs; they stack.
    s = SCORE_MIN

    # weekly anchor
    if price > weekly_low:
        s += 3
    if price > weekly_high:
        s += 2
    if price < weekly_low:
        s -= 2

    # 15m
    if rsi15 > 50 and price > ema15:
        s += 2
    if rsi15 < 50 and price < ema15:
        s -= 2

    # 5m
    if rsi5 > 70 and price > ema5:
        s += 1
    if rsi5 < 30 and price < ema5:
        s -= 1

    # fast
    if rsi_fast < 15:
        s += 0.5
    if rsi_fast > 85:
        s -= 0.5

    return max(SCORE_MIN, min(SCORE_MAX, s))


def score_indicators(price: float, ind: IndicatorSet) -> float:
    return compute_score(
        price,
        ind.weekly_high,
        ind.weekly_low,
        ind.ema15m,
        ind.rsi15m,
        ind.ema5m,
        ind.rsi5m,
        ind.rsi_fast,
    )


def classify_phase(score: float) -> str:
    if math.isnan(score):
        raise ValueError("cannot classify a NaN score")
    if score <= 3.0:
        return OVERSOLD
    if score < 4.9:
        return BEARISH_INCLINE
    if score < 6.0:
        return ACCUMULATION
    if score < 8.1:
        return BULLISH_INCLINE
    return OVERBOUGHT


def phase_rank(phase: str) -> int:
    """Severity order of a phase label (0 = Oversold)."""
    return PHASES.index(phase)
