"""
Data model for gauge readings, forecasts and risk verdicts.

Everything here is recomputed per request; nothing is persisted. ``to_dict``
produces the camelCase shape the dashboard consumes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

DISCHARGE = "discharge"
STAGE = "stage"

# USGS parameter codes
PARAMETER_CODES = {"00060": DISCHARGE, "00065": STAGE}

SOURCE_OFFICIAL = "official"
SOURCE_FALLBACK = "calculated-fallback"

RISK_LOW = "Low"
RISK_MEDIUM = "Medium"
RISK_HIGH = "High"


@dataclass(frozen=True)
class Measurement:
    parameter: str  # DISCHARGE or STAGE
    value: float
    timestamp: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"parameter": self.parameter, "value": self.value, "timestamp": self.timestamp}


@dataclass
class GaugeSite:
    """A monitoring site and its recent readings, oldest first."""

    site_id: str
    name: str
    location: Tuple[float, float]
    unit: str = "ft3/s"
    last_updated: Optional[str] = None
    distance_miles: Optional[float] = None
    measurements: List[Measurement] = field(default_factory=list)

    def series(self, parameter: str) -> List[Measurement]:
        return [m for m in self.measurements if m.parameter == parameter]

    def latest(self, parameter: str) -> Optional[float]:
        values = self.series(parameter)
        return values[-1].value if values else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.site_id,
            "name": self.name,
            "location": {"lat": self.location[0], "lng": self.location[1]},
            "unit": self.unit,
            "lastUpdated": self.last_updated,
            "distance": self.distance_miles,
            "stage": self.latest(STAGE),
            "flow": self.latest(DISCHARGE),
        }


@dataclass(frozen=True)
class FloodStageThresholds:
    """Stage thresholds in feet. Always action < minor < moderate < major."""

    action: float
    minor: float
    moderate: float
    major: float
    source: str = SOURCE_OFFICIAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "minor": self.minor,
            "moderate": self.moderate,
            "major": self.major,
            "source": self.source,
        }


@dataclass(frozen=True)
class PrecipitationForecastPeriod:
    start_time: Optional[str]
    short_forecast: str
    probability: float

    def to_dict(self) -> Dict[str, Any]:
        return {"time": self.start_time, "forecast": self.short_forecast, "precipitation": self.probability}


@dataclass
class WeatherReport:
    """Latest observation near a point plus its rain/storm forecast periods."""

    current: Dict[str, Any]
    precipitation: List[PrecipitationForecastPeriod] = field(default_factory=list)

    @property
    def total_probability(self) -> float:
        return float(sum(p.probability for p in self.precipitation))

    @property
    def average_probability(self) -> float:
        if not self.precipitation:
            return 0.0
        return self.total_probability / len(self.precipitation)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.current)
        data["precipitation"] = [p.to_dict() for p in self.precipitation]
        return data


@dataclass(frozen=True)
class RiskScore:
    stage_factor: float
    trend_factor: float
    precipitation_factor: float
    total: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stageFactor": round(self.stage_factor, 1),
            "trendFactor": round(self.trend_factor, 1),
            "precipitationFactor": round(self.precipitation_factor, 1),
            "total": round(self.total, 1),
        }


@dataclass
class RiverPrediction:
    site_id: str
    site_name: str
    current_flow: float
    current_stage: float
    flow_trend: str
    flow_trend_ratio: float
    flood_stage: str
    thresholds: FloodStageThresholds
    risk_score: RiskScore
    flood_probability: float
    risk_level: str
    time_to_flood: str
    recommendations: List[str] = field(default_factory=list)
    distance_miles: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "riverId": self.site_id,
            "riverName": self.site_name,
            "distance": self.distance_miles,
            "currentFlow": self.current_flow,
            "currentStage": self.current_stage,
            "flowTrend": self.flow_trend,
            "flowTrendRatio": round(self.flow_trend_ratio, 4),
            "floodStage": self.flood_stage,
            "floodStages": self.thresholds.to_dict(),
            "riskFactors": self.risk_score.to_dict(),
            "floodProbability": self.flood_probability,
            "riskLevel": self.risk_level,
            "timeToFlood": self.time_to_flood,
            "recommendations": list(self.recommendations),
        }


@dataclass
class AssessmentRequest:
    """Validated inbound request. ``rivers`` holds optional pre-fetched river dicts."""

    lat: float
    lng: float
    radius: float
    rivers: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class AreaAssessment:
    rivers: List[RiverPrediction]
    precipitation_total: float
    overall_risk: str
    weather: WeatherReport
    recommendations: List[str]
    omitted: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rivers": [r.to_dict() for r in self.rivers],
            "overallRisk": self.overall_risk,
            "weather": self.weather.to_dict(),
            "recommendations": list(self.recommendations),
            "precipitationTotal": self.precipitation_total,
            "omitted": list(self.omitted),
        }
