import math

import pandas as pd

RSI_LOSS_FLOOR = 1e-6


def ema(series: pd.Series, length: int) -> pd.Series:
    return series.ewm(span=length, adjust=False).mean()


def ema_last(series: pd.Series, length: int) -> float:
    """Last EMA value over the whole supplied window, NaN when empty."""
    if series is None or len(series) == 0:
        return math.nan
    return float(ema(series, length).iloc[-1])


def rsi(closes: pd.Series) -> float:
    """
    Simple-average RSI over the whole window:
    - gains/losses summed across consecutive closes, averaged by (len - 1)
    - a zero average loss is floored so an all-up series reads 100
    Needs at least two closes, otherwise NaN.
    """
    if closes is None or len(closes) < 2:
        return math.nan

    delta = pd.Series(closes, dtype="float64").reset_index(drop=True).diff().iloc[1:]
    periods = len(delta)

    avg_gain = float(delta.clip(lower=0).sum()) / periods
    avg_loss = float(-delta.clip(upper=0).sum()) / periods
    if avg_loss == 0:
        avg_loss = RSI_LOSS_FLOOR

    rs = avg_gain / avg_loss
    return 100 - 100 / (1 + rs)


def weekly_extrema(daily: pd.DataFrame):
    """
    High/low of the most recent Sunday (UTC) daily candle.
    Falls back to the latest candle when the window holds no Sunday.
    """
    if daily is None or daily.empty:
        return math.nan, math.nan

    ts = pd.to_datetime(daily["ts"], utc=True)
    sundays = daily[(ts.dt.dayofweek == 6).to_numpy()]
    row = sundays.iloc[-1] if not sundays.empty else daily.iloc[-1]
    return float(row["high"]), float(row["low"])
