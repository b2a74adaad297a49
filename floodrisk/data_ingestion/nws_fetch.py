"""
NWS/NOAA weather ingestion.

Resolves a point to its nearest observation station and forecast, then keeps
the forecast periods that mention rain or storms for precipitation scoring.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

from floodrisk.core.errors import UnexpectedShape
from floodrisk.core.models import PrecipitationForecastPeriod, WeatherReport
from floodrisk.data_ingestion.http import DEFAULT_USER_AGENT, RetryPolicy, get_json

logger = logging.getLogger(__name__)

NWS_API_BASE = "https://api.weather.gov"
POINTS_URL_TEMPLATE = NWS_API_BASE + "/points/{lat},{lon}"
LATEST_OBSERVATION_TEMPLATE = NWS_API_BASE + "/stations/{station}/observations/latest"
REQUEST_TIMEOUT = 10

DEFAULT_PRESSURE = 1013
MPS_TO_MPH = 2.237

_PRECIPITATION_KEYWORDS = ("rain", "storm")


def _value(props: Dict[str, Any], name: str) -> Optional[float]:
    """Read a ``{"value": x, "unitCode": ...}`` quantity, or None."""
    quantity = props.get(name)
    if not isinstance(quantity, dict):
        return None
    value = quantity.get("value")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _properties(payload: Any) -> Dict[str, Any]:
    props = payload.get("properties") if isinstance(payload, dict) else None
    return props if isinstance(props, dict) else {}


def weather_icon(description: Optional[str]) -> str:
    """Map an NWS text description to an icon code."""
    if not description:
        return "01d"
    desc = description.lower()
    if "clear" in desc:
        return "01d"
    if "cloud" in desc:
        return "03d"
    if "rain" in desc:
        return "10d"
    if "snow" in desc:
        return "13d"
    if "thunder" in desc:
        return "11d"
    if "fog" in desc or "mist" in desc:
        return "50d"
    return "01d"


def get_point_metadata(
    lat: float,
    lon: float,
    timeout: float = REQUEST_TIMEOUT,
    policy: Optional[RetryPolicy] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> Dict[str, Any]:
    """
    Resolve NWS metadata for a latitude/longitude.

    Returns:
        Dict with observation_stations_url and forecast_url.
    """
    url = POINTS_URL_TEMPLATE.format(lat=lat, lon=lon)
    logger.info("Fetching NWS point metadata for (%s, %s)", lat, lon)
    payload = get_json(url, timeout=timeout, policy=policy, user_agent=user_agent)

    props = _properties(payload)
    stations_url = props.get("observationStations")
    forecast_url = props.get("forecast")
    if not (stations_url and forecast_url):
        msg = f"Incomplete point metadata for ({lat},{lon})"
        logger.error(msg)
        raise UnexpectedShape(msg)

    return {"observation_stations_url": stations_url, "forecast_url": forecast_url}


def fetch_latest_observation(
    stations_url: str,
    timeout: float = REQUEST_TIMEOUT,
    policy: Optional[RetryPolicy] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> Dict[str, Any]:
    """
    Fetch the latest observation from the nearest station.

    Returns the observation converted to imperial units.
    """
    stations = get_json(stations_url, timeout=timeout, policy=policy, user_agent=user_agent)
    features = stations.get("features") if isinstance(stations, dict) else None
    if not features or not isinstance(features, list) or not isinstance(features[0], dict):
        raise UnexpectedShape(f"No observation stations listed at {stations_url}")
    station_props = features[0].get("properties")
    station_id = station_props.get("stationIdentifier") if isinstance(station_props, dict) else None
    if not station_id:
        raise UnexpectedShape(f"Nearest station at {stations_url} has no identifier")

    url = LATEST_OBSERVATION_TEMPLATE.format(station=station_id)
    logger.info("Fetching latest observation for station %s", station_id)
    observation = get_json(url, timeout=timeout, policy=policy, user_agent=user_agent)
    props = observation.get("properties") if isinstance(observation, dict) else None
    if not isinstance(props, dict):
        raise UnexpectedShape(f"Observation for {station_id} has no properties")

    temp_c = _value(props, "temperature")
    wind_mps = _value(props, "windSpeed")
    description = props.get("textDescription") or "Unknown"
    return {
        "station": station_id,
        "main": {
            "temp": temp_c * 9 / 5 + 32 if temp_c is not None else None,
            "humidity": _value(props, "relativeHumidity"),
            "pressure": _value(props, "barometricPressure") or DEFAULT_PRESSURE,
        },
        "weather": [
            {
                "main": description,
                "description": description,
                "icon": weather_icon(props.get("textDescription")),
            }
        ],
        "wind": {
            "speed": wind_mps * MPS_TO_MPH if wind_mps is not None else 0,
            "deg": _value(props, "windDirection") or 0,
        },
        "rain": {"1h": _value(props, "precipitationLastHour") or 0},
    }


def fetch_forecast_periods(
    forecast_url: str,
    timeout: float = REQUEST_TIMEOUT,
    policy: Optional[RetryPolicy] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> List[Dict[str, Any]]:
    """Fetch the raw forecast periods from an NWS forecast URL."""
    logger.info("Fetching NWS forecast from %s", forecast_url)
    payload = get_json(forecast_url, timeout=timeout, policy=policy, user_agent=user_agent)
    periods = _properties(payload).get("periods")
    if not isinstance(periods, list):
        raise UnexpectedShape(f"Forecast at {forecast_url} has no periods")
    return periods


def filter_precipitation_periods(periods: List[Dict[str, Any]]) -> List[PrecipitationForecastPeriod]:
    """Keep periods whose short forecast mentions rain or storms."""
    out = []
    for period in periods:
        if not isinstance(period, dict):
            raise UnexpectedShape(f"Forecast period is not an object: {period!r}")
        short = period.get("shortForecast") or ""
        if not isinstance(short, str):
            raise UnexpectedShape(f"Forecast period has a non-text shortForecast: {short!r}")
        if not any(word in short.lower() for word in _PRECIPITATION_KEYWORDS):
            continue
        pop = period.get("probabilityOfPrecipitation")
        if pop is not None and not isinstance(pop, dict):
            raise UnexpectedShape(f"Unexpected probabilityOfPrecipitation: {pop!r}")
        try:
            probability = float((pop or {}).get("value") or 0)
        except (TypeError, ValueError):
            probability = 0.0
        if not math.isfinite(probability):
            probability = 0.0
        out.append(
            PrecipitationForecastPeriod(
                start_time=period.get("startTime"),
                short_forecast=short,
                probability=max(0.0, min(100.0, probability)),
            )
        )
    return out


def fetch_weather_report(
    lat: float,
    lon: float,
    timeout: float = REQUEST_TIMEOUT,
    policy: Optional[RetryPolicy] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> WeatherReport:
    """
    Fetch current conditions and precipitation periods for a point.

    There is no fallback for weather: failures propagate to the caller.
    """
    meta = get_point_metadata(lat, lon, timeout=timeout, policy=policy, user_agent=user_agent)
    current = fetch_latest_observation(
        meta["observation_stations_url"], timeout=timeout, policy=policy, user_agent=user_agent
    )
    periods = fetch_forecast_periods(meta["forecast_url"], timeout=timeout, policy=policy, user_agent=user_agent)
    precipitation = filter_precipitation_periods(periods)
    current["location"] = {"lat": lat, "lng": lon}
    report = WeatherReport(current=current, precipitation=precipitation)
    logger.info(
        "Weather for (%s, %s): %d rain/storm periods, avg PoP %.1f%%",
        lat,
        lon,
        len(precipitation),
        report.average_probability,
    )
    return report
