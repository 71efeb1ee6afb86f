"""Technical indicator math over closing price series."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd


@dataclass(slots=True)
class MACDResult:
    macd: list[float]
    signal: list[float]
    histogram: list[float]


@dataclass(slots=True)
class BollingerBands:
    upper: list[float]
    middle: list[float]
    lower: list[float]


def sma(values: list[float], period: int) -> list[float]:
    """Simple moving average; one value per full window."""

    if period <= 0:
        raise ValueError("period must be positive")
    return _to_list(pd.Series(values, dtype=float).rolling(window=period).mean())


def ema(values: list[float], period: int) -> list[float]:
    """Exponential moving average seeded with the SMA of the first window."""

    if period <= 0:
        raise ValueError("period must be positive")
    if len(values) < period:
        return []
    series = pd.Series(values, dtype=float)
    return _to_list(_seeded_ewm(series, period, alpha=2.0 / (period + 1)))


def rsi(values: list[float], period: int = 14) -> list[float]:
    """Wilder-smoothed relative strength index.

    Returns an empty list when fewer than `period + 1` closes are available.
    A window with no losses scores 100.
    """

    if len(values) < period + 1:
        return []

    delta = pd.Series(values, dtype=float).diff().iloc[1:].reset_index(drop=True)
    gain = delta.clip(lower=0)
    loss = -delta.clip(upper=0)

    avg_gain = _seeded_ewm(gain, period, alpha=1.0 / period)
    avg_loss = _seeded_ewm(loss, period, alpha=1.0 / period)
    rs = avg_gain / avg_loss.replace(0, np.nan)
    return _to_list((100 - (100 / (1 + rs))).fillna(100.0))


def macd(
    values: list[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MACDResult:
    fast = pd.Series(ema(values, fast_period), dtype=float)
    slow = pd.Series(ema(values, slow_period), dtype=float)
    if slow.empty:
        return MACDResult(macd=[], signal=[], histogram=[])

    # Align the fast EMA to the later start of the slow EMA.
    offset = slow_period - fast_period
    line = fast.iloc[offset:].reset_index(drop=True) - slow
    signal = pd.Series(ema(line.tolist(), signal_period), dtype=float)
    histogram = line.iloc[len(line) - len(signal) :].reset_index(drop=True) - signal
    return MACDResult(macd=_to_list(line), signal=_to_list(signal), histogram=_to_list(histogram))


def bollinger_bands(
    values: list[float], period: int = 20, std_dev: float = 2.0
) -> BollingerBands:
    rolling = pd.Series(values, dtype=float).rolling(window=period)
    middle = rolling.mean()
    deviation = rolling.std(ddof=0)
    return BollingerBands(
        upper=_to_list(middle + deviation * std_dev),
        middle=_to_list(middle),
        lower=_to_list(middle - deviation * std_dev),
    )


def volatility(values: list[float]) -> float:
    """Population standard deviation; 0.0 for fewer than two values."""

    if len(values) < 2:
        return 0.0
    return float(pd.Series(values, dtype=float).std(ddof=0))


def last(values: list[float]) -> float | None:
    return values[-1] if values else None


def _seeded_ewm(series: pd.Series, period: int, *, alpha: float) -> pd.Series:
    # The first output is the mean of the first `period` values.
    seed = pd.Series([series.iloc[:period].mean()])
    seeded = pd.concat([seed, series.iloc[period:]], ignore_index=True)
    return seeded.ewm(alpha=alpha, adjust=False).mean()


def _to_list(series: pd.Series) -> list[float]:
    return [float(value) for value in series.dropna()]
