"""
USGS hydrology data ingestion.

Fetches recent river stage and discharge from the USGS Water Services
Instantaneous Values API, either for a single site or for every stream site
inside a bounding box, and normalizes the payload into GaugeSite objects.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from floodrisk.core.errors import UnexpectedShape
from floodrisk.core.models import DISCHARGE, PARAMETER_CODES, GaugeSite, Measurement
from floodrisk.data_ingestion.http import DEFAULT_USER_AGENT, RetryPolicy, get_json

logger = logging.getLogger(__name__)

USGS_IV_URL = "https://waterservices.usgs.gov/nwis/iv/"
USGS_PARAMETERS = "00060,00065"  # 00060=discharge (cfs), 00065=gage height (ft)
DEFAULT_PERIOD = "P7D"
SITE_TIMEOUT = 8
BBOX_TIMEOUT = 8
BBOX_TIMEOUT_LARGE = 12

EARTH_RADIUS_MILES = 3959.0
MILES_PER_DEGREE = 69.0
LARGE_RADIUS_MILES = 25.0
MAX_SITES = 200
MAX_SITES_LARGE = 100

_RIVER_NAME_RE = re.compile(r"river|creek|stream|brook|branch", re.IGNORECASE)


def distance_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in miles."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(lat: float, lng: float, radius_miles: float) -> str:
    """USGS ``bBox`` string (west,south,east,north) at 7 decimal places."""
    lat_delta = radius_miles / MILES_PER_DEGREE
    lng_delta = radius_miles / (MILES_PER_DEGREE * max(math.cos(math.radians(lat)), 1e-6))
    min_lat = max(-90.0, lat - lat_delta)
    max_lat = min(90.0, lat + lat_delta)
    min_lng = max(-180.0, lng - lng_delta)
    max_lng = min(180.0, lng + lng_delta)
    return f"{min_lng:.7f},{min_lat:.7f},{max_lng:.7f},{max_lat:.7f}"


def _series_values(series: Dict[str, Any], no_data: Optional[float]) -> List[Tuple[Optional[str], float]]:
    values = series.get("values") or []
    if not values:
        return []
    out = []
    for entry in values[0].get("value") or []:
        try:
            value = float(entry.get("value"))
        except (TypeError, ValueError):
            continue
        if math.isnan(value) or (no_data is not None and value == no_data):
            continue
        out.append((entry.get("dateTime"), value))
    return out


def _time_ordered(measurements: List[Measurement]) -> List[Measurement]:
    """Order readings by instant, so offsets that change across DST still sort correctly."""
    stamps = pd.to_datetime(pd.Series([m.timestamp for m in measurements], dtype=object), utc=True, errors="coerce")
    if stamps.isna().any():
        return sorted(measurements, key=lambda m: m.timestamp or "")
    return [measurements[i] for i in stamps.sort_values(kind="stable").index]


def parse_time_series(payload: Dict[str, Any]) -> Dict[str, GaugeSite]:
    """
    Group an IV ``timeSeries`` payload by site.

    Each parameter arrives as its own series; series for unknown parameter
    codes or with unparseable site info are skipped.

    Raises:
        UnexpectedShape if the payload has no ``value.timeSeries`` list.
    """
    value = payload.get("value") if isinstance(payload, dict) else None
    time_series = value.get("timeSeries") if isinstance(value, dict) else None
    if not isinstance(time_series, list):
        raise UnexpectedShape("USGS response has no value.timeSeries list")

    sites: Dict[str, GaugeSite] = {}
    units: Dict[str, Dict[str, str]] = {}
    for series in time_series:
        if not isinstance(series, dict):
            logger.warning("Skipping malformed USGS series: %r", series)
            continue
        source = series.get("sourceInfo") or {}
        variable = series.get("variable") or {}
        site_codes = source.get("siteCode") or []
        variable_codes = variable.get("variableCode") or []
        if not site_codes or not variable_codes:
            continue
        if not isinstance(site_codes[0], dict) or not isinstance(variable_codes[0], dict):
            continue
        site_id = str(site_codes[0].get("value"))
        param_code = variable_codes[0].get("value")
        parameter = PARAMETER_CODES.get(param_code)
        if parameter is None:
            continue

        geo = (source.get("geoLocation") or {}).get("geogLocation") or {}
        try:
            location = (float(geo.get("latitude")), float(geo.get("longitude")))
        except (TypeError, ValueError):
            location = (0.0, 0.0)

        site = sites.get(site_id)
        if site is None:
            site = GaugeSite(
                site_id=site_id,
                name=source.get("siteName") or f"Site {site_id}",
                location=location,
            )
            sites[site_id] = site

        no_data = variable.get("noDataValue")
        for timestamp, value in _series_values(series, no_data):
            site.measurements.append(Measurement(parameter=parameter, value=value, timestamp=timestamp))
        unit = (variable.get("unit") or {}).get("unitCode")
        if unit:
            units.setdefault(site_id, {})[parameter] = unit

    for site_id, site in sites.items():
        site.measurements = _time_ordered(site.measurements)
        site_units = units.get(site_id, {})
        site.unit = site_units.get(DISCHARGE) or next(iter(site_units.values()), site.unit)
        if site.measurements:
            site.last_updated = site.measurements[-1].timestamp
    return sites


def fetch_site_measurements(
    site_id: str,
    period: str = DEFAULT_PERIOD,
    timeout: float = SITE_TIMEOUT,
    policy: Optional[RetryPolicy] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> GaugeSite:
    """
    Fetch recent stage/discharge readings for one USGS gauge.

    Args:
        site_id: USGS site ID (e.g., "11447650").
        period: ISO-8601 lookback period.

    Returns:
        GaugeSite with measurements ordered oldest first.

    Raises:
        UpstreamUnavailable / UpstreamTimeout once retries are exhausted.
        UnexpectedShape if the site has no usable stage or discharge values.
    """
    params = {
        "format": "json",
        "sites": site_id,
        "parameterCd": USGS_PARAMETERS,
        "period": period,
        "siteStatus": "all",
    }
    logger.info("Fetching USGS data for gauge %s", site_id)
    payload = get_json(USGS_IV_URL, params=params, timeout=timeout, policy=policy, user_agent=user_agent)

    site = parse_time_series(payload).get(site_id)
    if site is None or not site.measurements:
        msg = f"Missing stage/discharge values for gauge {site_id}"
        logger.error(msg)
        raise UnexpectedShape(msg)

    logger.info(
        "Fetched gauge %s | readings=%d | last_updated=%s",
        site_id,
        len(site.measurements),
        site.last_updated,
    )
    return site


def fetch_bbox_sites(
    lat: float,
    lng: float,
    radius_miles: float,
    period: str = DEFAULT_PERIOD,
    timeout: Optional[float] = None,
    policy: Optional[RetryPolicy] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> List[GaugeSite]:
    """
    Discover stream gauges around a point.

    Sites outside ``radius_miles`` (great-circle) are dropped and the rest are
    sorted nearest first. Large searches keep only sites whose names look like
    rivers and are capped at MAX_SITES_LARGE.
    """
    is_large = radius_miles > LARGE_RADIUS_MILES
    if timeout is None:
        timeout = BBOX_TIMEOUT_LARGE if is_large else BBOX_TIMEOUT
    bbox = bounding_box(lat, lng, radius_miles)
    params = {
        "format": "json",
        "bBox": bbox,
        "parameterCd": USGS_PARAMETERS,
        "siteType": "ST",
        "period": period,
    }
    logger.info("Requesting USGS sites in bBox %s (radius %.1f mi)", bbox, radius_miles)
    payload = get_json(USGS_IV_URL, params=params, timeout=timeout, policy=policy, user_agent=user_agent)

    sites = []
    for site in parse_time_series(payload).values():
        if not site.measurements:
            continue
        if is_large and not _RIVER_NAME_RE.search(site.name):
            continue
        site.distance_miles = distance_miles(lat, lng, site.location[0], site.location[1])
        if site.distance_miles <= radius_miles:
            sites.append(site)

    sites.sort(key=lambda s: s.distance_miles)
    limit = MAX_SITES_LARGE if is_large else MAX_SITES
    if len(sites) > limit:
        logger.info("Limiting results from %d to %d sites", len(sites), limit)
        sites = sites[:limit]
    logger.info("Found %d gauges within %.1f miles", len(sites), radius_miles)
    return sites
