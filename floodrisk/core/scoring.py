"""
Weighted flood risk score.

Three factors on a 0-100 scale:

  - stage: how close the river is to minor flood stage. Rises slowly below
    70% of minor stage and steeply above it.
  - trend: recent fractional change in flow. Changes within 20% either way
    score 10-20, faster falls less, faster rises up to 100.
  - precipitation: average probability of precipitation across the rain and
    storm forecast periods, scaled linearly and capped.

The total is a weighted sum of the factors. Everything here is pure.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from floodrisk.core.models import FloodStageThresholds, RiskScore

DEFAULT_WEIGHTS: Dict[str, float] = {"stage": 0.55, "trend": 0.30, "precipitation": 0.15}
# Older weighting still used by some deployments; selectable via config.
LEGACY_WEIGHTS: Dict[str, float] = {"stage": 0.40, "trend": 0.25, "precipitation": 0.35}
PRECIPITATION_SCALE = 1.5

PROBABILITY_MIN = 5.0
PROBABILITY_MAX = 95.0


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def stage_ratio(current_stage: float, thresholds: FloodStageThresholds) -> float:
    return max(0.0, current_stage) / thresholds.minor


def stage_factor(ratio: float) -> float:
    if ratio < 0.7:
        value = (ratio / 0.7) ** 2 * 30
    elif ratio < 0.9:
        value = 30 + (ratio - 0.7) / 0.2 * 40
    elif ratio < 1.0:
        value = 70 + (ratio - 0.9) / 0.1 * 25
    else:
        value = 95 + min(5.0, (ratio - 1.0) * 20)
    return clamp(value)


def trend_factor(flow_trend: float) -> float:
    if flow_trend > 0.5:
        value = 60 + (flow_trend - 0.5) * 80
    elif flow_trend > 0.2:
        value = 30 + (flow_trend - 0.2) * 100
    elif flow_trend >= -0.2:
        # slow change; a flat river scores 15
        value = 10 + (flow_trend + 0.2) * 25
    else:
        value = 10 + flow_trend * 25
    return clamp(value)


def precipitation_factor(average_probability: float, scale: float = PRECIPITATION_SCALE) -> float:
    return clamp(average_probability * scale)


def score(
    current_stage: float,
    thresholds: FloodStageThresholds,
    flow_trend_ratio: float,
    precipitation_metric: float,
    weights: Optional[Mapping[str, float]] = None,
    precipitation_scale: float = PRECIPITATION_SCALE,
) -> RiskScore:
    """
    Compute the weighted risk score for one river.

    Args:
        current_stage: Latest gage height in feet.
        thresholds: Resolved flood stage thresholds.
        flow_trend_ratio: Fractional change across recent readings.
        precipitation_metric: Average probability of precipitation (0-100).
        weights: stage/trend/precipitation weights; DEFAULT_WEIGHTS if omitted.
    """
    weights = weights or DEFAULT_WEIGHTS
    stage = stage_factor(stage_ratio(current_stage, thresholds))
    trend = trend_factor(flow_trend_ratio)
    precipitation = precipitation_factor(precipitation_metric, precipitation_scale)
    total = clamp(
        stage * weights["stage"]
        + trend * weights["trend"]
        + precipitation * weights["precipitation"]
    )
    return RiskScore(
        stage_factor=stage,
        trend_factor=trend,
        precipitation_factor=precipitation,
        total=total,
    )


def flood_probability(risk_score: RiskScore) -> float:
    """Flood probability in percent, kept within 5-95."""
    return round(clamp(risk_score.total, PROBABILITY_MIN, PROBABILITY_MAX), 1)
