"""
Categorical time-to-flood estimate.

A fixed decision ladder over how far the river is from minor flood stage,
how fast flow is changing and how likely rain is. Always returns a label.
"""

from __future__ import annotations

from floodrisk.core.models import FloodStageThresholds
from floodrisk.core.scoring import stage_ratio

DEFAULT_LABEL = "Monitor conditions"


def estimate_time_to_flood(
    current_stage: float,
    thresholds: FloodStageThresholds,
    flow_trend: float,
    precipitation_intensity: float,
    risk_score: float,
) -> str:
    """
    Estimate when flood-level conditions may occur.

    Args:
        current_stage: Latest gage height in feet.
        thresholds: Resolved flood stage thresholds.
        flow_trend: Fractional change across recent readings.
        precipitation_intensity: Average probability of precipitation (0-100).
        risk_score: Weighted total from the scoring engine.
    """
    ratio = stage_ratio(current_stage, thresholds)
    trend = flow_trend
    precip = precipitation_intensity

    if current_stage >= thresholds.major:
        return "Major flooding now"
    if current_stage >= thresholds.moderate:
        return "Moderate flooding now"
    if current_stage >= thresholds.minor:
        return "Minor flooding now"

    if current_stage >= thresholds.action:
        if trend > 0.2 and precip > 70:
            return "1-2 hours"
        if trend > 0.15 and precip > 60:
            return "2-4 hours"
        if trend > 0.1 or precip > 50:
            return "4-8 hours"
        if precip > 30:
            return "8-12 hours"
        return "12-24 hours"

    if ratio > 0.8:
        if trend > 0.15 and precip > 60:
            return "4-8 hours"
        if trend > 0.1 and precip > 40:
            return "8-12 hours"
        if trend > 0.05 or precip > 50:
            return "12-24 hours"
        if precip > 20:
            return "1-2 days"
        return "2-3 days"

    if ratio > 0.6:
        if trend > 0.1 and precip > 50:
            return "12-24 hours"
        if trend > 0.05 and precip > 30:
            return "1-2 days"
        if precip > 60:
            return "1-3 days"
        if trend > 0.02 or precip > 15:
            return "3-5 days"
        return "5-7 days"

    if ratio > 0.4:
        if trend > 0.05 and precip > 40:
            return "1-3 days"
        if precip > 50:
            return "2-4 days"
        if trend > 0.02 or precip > 20:
            return "5-7 days"
        return "1-2 weeks"

    if risk_score < 15:
        return "No immediate threat"
    if risk_score < 25:
        return "Low threat - monitor weekly"
    if risk_score < 35:
        return "Monitor conditions daily"
    return DEFAULT_LABEL
