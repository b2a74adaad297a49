"""
Per-river predictions and the area-wide assessment.

Rivers are scored concurrently on a bounded worker pool. A river whose fetch
or scoring fails is reported in ``omitted`` instead of failing the batch.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Tuple

from floodrisk.core.errors import FloodRiskError
from floodrisk.core.flood_stages import flood_stage_status, resolve_thresholds, thresholds_from_mapping
from floodrisk.core.models import (
    DISCHARGE,
    STAGE,
    AreaAssessment,
    AssessmentRequest,
    FloodStageThresholds,
    GaugeSite,
    Measurement,
    RiverPrediction,
    WeatherReport,
)
from floodrisk.core.risk_logic import aggregate, area_recommendations, classify, river_recommendations
from floodrisk.core.scoring import flood_probability, score
from floodrisk.core.time_to_flood import estimate_time_to_flood
from floodrisk.data_ingestion.cached_sources import PREDICTION, CachedDataSources
from floodrisk.features.trend import flow_trend_ratio, trend_label

logger = logging.getLogger(__name__)


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


def _prefetched_measurements(river: Dict[str, Any]) -> List[Measurement]:
    """Readings supplied by the caller, either as measurements or as stage/flow snapshots."""
    measurements = []
    for raw in river.get("measurements") or []:
        if not isinstance(raw, dict) or raw.get("parameter") not in (DISCHARGE, STAGE):
            continue
        value = _number(raw.get("value"))
        if value is not None:
            measurements.append(Measurement(raw["parameter"], value, raw.get("timestamp")))
    if not measurements:
        timestamp = river.get("lastUpdated")
        stage = _number(river.get("stage"))
        flow = _number(river.get("flow"))
        if stage is not None:
            measurements.append(Measurement(STAGE, stage, timestamp))
        if flow is not None:
            measurements.append(Measurement(DISCHARGE, flow, timestamp))
    return measurements


def _site_for(river: Dict[str, Any], sources: CachedDataSources) -> GaugeSite:
    """Use the caller's readings when they include a stage or a series, otherwise fetch the site."""
    measurements = _prefetched_measurements(river)
    if measurements and (river.get("measurements") or any(m.parameter == STAGE for m in measurements)):
        location = river.get("location") or {}
        return GaugeSite(
            site_id=river["id"],
            name=river.get("name") or f"Site {river['id']}",
            location=(_number(location.get("lat")) or 0.0, _number(location.get("lng")) or 0.0),
            last_updated=river.get("lastUpdated"),
            distance_miles=_number(river.get("distance")),
            measurements=measurements,
        )
    return sources.site(river["id"])


def predict_site(
    site: GaugeSite,
    weather: WeatherReport,
    sources: CachedDataSources,
    thresholds: Optional[FloodStageThresholds] = None,
) -> RiverPrediction:
    """Score one gauge site against the area weather."""
    settings = sources.settings
    current_stage = site.latest(STAGE) or 0.0
    current_flow = site.latest(DISCHARGE) or 0.0

    if thresholds is None:
        thresholds = resolve_thresholds(site.site_id, current_stage, sources.official_stages)

    trend = flow_trend_ratio(site.measurements)
    precipitation = weather.average_probability
    risk_score = score(
        current_stage,
        thresholds,
        trend,
        precipitation,
        weights=settings.weights,
        precipitation_scale=settings.precipitation_scale,
    )
    probability = flood_probability(risk_score)

    prediction = RiverPrediction(
        site_id=site.site_id,
        site_name=site.name,
        current_flow=current_flow,
        current_stage=current_stage,
        flow_trend=trend_label(trend),
        flow_trend_ratio=trend,
        flood_stage=flood_stage_status(current_stage, thresholds),
        thresholds=thresholds,
        risk_score=risk_score,
        flood_probability=probability,
        risk_level=classify(risk_score, current_stage, thresholds),
        time_to_flood=estimate_time_to_flood(current_stage, thresholds, trend, precipitation, risk_score.total),
        recommendations=river_recommendations(probability, risk_score),
        distance_miles=site.distance_miles,
    )
    logger.info(
        "River %s | stage=%.2f (%s) | score=%.1f | risk=%s | ttf=%s",
        site.site_id,
        current_stage,
        thresholds.source,
        risk_score.total,
        prediction.risk_level,
        prediction.time_to_flood,
    )
    return prediction


def predict_river(river: Dict[str, Any], weather: WeatherReport, sources: CachedDataSources) -> RiverPrediction:
    """
    Predict flood risk for one inbound river.

    Thresholds supplied with the river are honoured when they are valid;
    otherwise they are resolved from NWPS or the calculated fallback.
    """
    site = _site_for(river, sources)
    supplied = river.get("floodStages")
    thresholds = None
    if isinstance(supplied, dict):
        thresholds = thresholds_from_mapping(supplied, supplied.get("source") or "supplied")
    return predict_site(site, weather, sources, thresholds=thresholds)


def _sort_key(prediction: RiverPrediction) -> Tuple[float, str]:
    distance = prediction.distance_miles
    return (distance if distance is not None else math.inf, prediction.site_id)


def _predict_all(
    rivers: List[Dict[str, Any]],
    weather: WeatherReport,
    sources: CachedDataSources,
) -> Tuple[List[RiverPrediction], List[Dict[str, str]]]:
    predictions: List[RiverPrediction] = []
    omitted: List[Dict[str, str]] = []
    if not rivers:
        return predictions, omitted

    workers = min(sources.settings.max_workers, len(rivers))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_id = {executor.submit(predict_river, river, weather, sources): river["id"] for river in rivers}
        for future in as_completed(future_to_id):
            site_id = future_to_id[future]
            try:
                predictions.append(future.result())
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to fetch data for river %s: %s", site_id, exc)
                reason = exc.code if isinstance(exc, FloodRiskError) else "GENERAL_ERROR"
                omitted.append({"id": site_id, "reason": reason, "message": str(exc)})

    predictions.sort(key=_sort_key)
    omitted.sort(key=lambda o: o["id"])
    return predictions, omitted


def _site_as_river(site: GaugeSite) -> Dict[str, Any]:
    river = site.to_dict()
    river["measurements"] = [m.to_dict() for m in site.measurements]
    return river


def assessment_cache_key(request: AssessmentRequest) -> Tuple[Any, ...]:
    """
    Cache key for an assessment.

    Covers the river ids and a digest of everything the caller supplied with
    them, so two requests only share a result when they would compute it from
    the same inputs.
    """
    rivers = sorted(request.rivers, key=lambda r: r["id"])
    site_ids = tuple(r["id"] for r in rivers)
    supplied = json.dumps(rivers, sort_keys=True, default=str).encode("utf-8")
    return ("flood", request.lat, request.lng, request.radius, site_ids, hashlib.sha1(supplied).hexdigest())


def assess_area(request: AssessmentRequest, sources: CachedDataSources) -> AreaAssessment:
    """
    Assess flood risk for every river around a point.

    Raises:
        RateLimitExceeded if assessments are requested too quickly.
        UpstreamUnavailable if weather or site discovery fails.
    """
    cache_key = assessment_cache_key(request)
    cached = sources.cache.get(cache_key)
    if cached is not None:
        logger.info("Returning cached flood prediction for %s", cache_key)
        return cached

    sources.check_rate(PREDICTION)

    weather = sources.weather(request.lat, request.lng)

    rivers = request.rivers
    if not rivers:
        rivers = [_site_as_river(site) for site in sources.nearby_sites(request.lat, request.lng, request.radius)]

    predictions, omitted = _predict_all(rivers, weather, sources)
    if omitted:
        logger.warning("Omitted %d of %d rivers from assessment", len(omitted), len(rivers))

    precipitation_total = weather.total_probability
    overall = aggregate((p.risk_level for p in predictions), precipitation_total)
    assessment = AreaAssessment(
        rivers=predictions,
        precipitation_total=precipitation_total,
        overall_risk=overall,
        weather=weather,
        recommendations=area_recommendations(overall),
        omitted=omitted,
    )
    sources.cache.set(cache_key, assessment, ttl=sources.settings.cache_ttl_seconds)
    logger.info(
        "Assessed %d rivers around (%s, %s): overall risk %s",
        len(predictions),
        request.lat,
        request.lng,
        overall,
    )
    return assessment
