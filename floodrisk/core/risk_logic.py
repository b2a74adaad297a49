"""
Rule-based risk levels and recommendations.
"""

from __future__ import annotations

from typing import Iterable, List

from floodrisk.core.models import RISK_HIGH, RISK_LOW, RISK_MEDIUM, FloodStageThresholds, RiskScore
from floodrisk.core.scoring import stage_ratio

AREA_RECOMMENDATIONS = {
    RISK_HIGH: [
        "HIGH FLOOD RISK: Consider evacuation if in flood-prone areas",
        "Monitor local emergency broadcasts",
        "Move to higher ground if near rivers or creeks",
        "Avoid driving through flooded areas",
    ],
    RISK_MEDIUM: [
        "MODERATE FLOOD RISK: Stay alert to changing conditions",
        "Prepare emergency supplies",
        "Monitor river levels closely",
        "Have evacuation plan ready",
    ],
    RISK_LOW: [
        "LOW FLOOD RISK: Conditions are normal",
        "Continue monitoring weather updates",
        "Stay informed about local conditions",
    ],
}


def classify(risk_score: RiskScore, current_stage: float, thresholds: FloodStageThresholds) -> str:
    """
    Classify a single river into Low/Medium/High.

    Raw stage comparisons can escalate the level regardless of the weighted
    total.
    """
    ratio = stage_ratio(current_stage, thresholds)

    if current_stage >= thresholds.moderate or risk_score.total >= 75:
        return RISK_HIGH
    if current_stage >= thresholds.minor and risk_score.trend_factor > 50:
        return RISK_HIGH
    if ratio > 0.9 and risk_score.precipitation_factor > 60:
        return RISK_HIGH

    if current_stage >= thresholds.action or risk_score.total >= 50:
        return RISK_MEDIUM
    if ratio > 0.7 and (risk_score.trend_factor > 30 or risk_score.precipitation_factor > 40):
        return RISK_MEDIUM

    return RISK_LOW


def aggregate(risk_levels: Iterable[str], precipitation_total: float) -> str:
    """
    Combine per-river risk levels and area precipitation into an overall risk.

    Args:
        risk_levels: Risk level of each river.
        precipitation_total: Sum of precipitation probabilities across the
            rain/storm forecast periods.
    """
    levels = list(risk_levels)
    if levels.count(RISK_HIGH) > 0 or precipitation_total > 80:
        return RISK_HIGH
    if levels.count(RISK_MEDIUM) > 1 or precipitation_total > 50:
        return RISK_MEDIUM
    return RISK_LOW


def area_recommendations(overall_risk: str) -> List[str]:
    return list(AREA_RECOMMENDATIONS.get(overall_risk, AREA_RECOMMENDATIONS[RISK_LOW]))


def river_recommendations(flood_probability: float, risk_score: RiskScore) -> List[str]:
    if flood_probability >= 70:
        recommendations = [
            "IMMEDIATE ACTION REQUIRED",
            "Consider evacuation if in flood-prone areas",
            "Monitor emergency broadcasts",
            "Move to higher ground if near river",
        ]
    elif flood_probability >= 50:
        recommendations = [
            "STAY ALERT",
            "Prepare emergency supplies",
            "Monitor river levels closely",
            "Have evacuation plan ready",
        ]
    elif flood_probability >= 30:
        recommendations = [
            "MONITOR CONDITIONS",
            "Stay informed about weather updates",
            "Check local flood warnings",
            "Prepare emergency kit",
        ]
    else:
        recommendations = [
            "CONDITIONS NORMAL",
            "Continue monitoring weather updates",
            "Stay informed about local conditions",
        ]

    if risk_score.precipitation_factor > 60:
        recommendations.append("Heavy rainfall expected - avoid low-lying areas")
    if risk_score.trend_factor > 50:
        recommendations.append("River levels rising rapidly - monitor closely")
    return recommendations
