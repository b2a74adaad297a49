"""
Flow trend features from recent gauge readings.
"""

from __future__ import annotations

import logging
from typing import Iterable

import pandas as pd

from floodrisk.core.models import DISCHARGE, STAGE, Measurement

logger = logging.getLogger(__name__)

TREND_WINDOW = 6
TREND_INCREASING = "Increasing"
TREND_DECREASING = "Decreasing"
TREND_STABLE = "Stable"
STABLE_BAND = 0.05


def recent_values(measurements: Iterable[Measurement], parameter: str, window: int = TREND_WINDOW) -> pd.Series:
    """
    Return the last ``window`` values of one parameter, oldest first.

    Readings are ordered by timestamp when every timestamp parses; otherwise
    the given order is kept.
    """
    rows = [(m.timestamp, m.value) for m in measurements if m.parameter == parameter]
    if not rows:
        return pd.Series(dtype=float)

    df = pd.DataFrame(rows, columns=["timestamp", "value"])
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")
    if df["timestamp"].notna().all():
        df = df.sort_values("timestamp", kind="stable")
    values = pd.to_numeric(df["value"], errors="coerce").dropna()
    return values.tail(window).reset_index(drop=True)


def flow_trend_ratio(measurements: Iterable[Measurement], window: int = TREND_WINDOW) -> float:
    """
    Fractional change across the most recent readings.

    Discharge is preferred; stage is used when there are fewer than two
    discharge readings. Returns 0.0 when there is nothing to compare or the
    first value is zero.
    """
    measurements = list(measurements)
    series = recent_values(measurements, DISCHARGE, window)
    if len(series) < 2:
        series = recent_values(measurements, STAGE, window)
    if len(series) < 2:
        return 0.0

    first = float(series.iloc[0])
    last = float(series.iloc[-1])
    if first == 0:
        logger.debug("Trend base reading is zero; treating trend as flat")
        return 0.0
    return (last - first) / abs(first)


def trend_label(ratio: float) -> str:
    if ratio > STABLE_BAND:
        return TREND_INCREASING
    if ratio < -STABLE_BAND:
        return TREND_DECREASING
    return TREND_STABLE
