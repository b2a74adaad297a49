"""
Official flood stage lookup from the NOAA National Water Prediction Service.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from floodrisk.data_ingestion.http import DEFAULT_USER_AGENT, RetryPolicy, get_json

logger = logging.getLogger(__name__)

NWPS_GAUGES_URL = "https://api.water.noaa.gov/nwps/v1/gauges"
REQUEST_TIMEOUT = 10

STAGE_NAMES = ("action", "minor", "moderate", "major")


def _stage_value(raw: Any) -> Any:
    # categories come either as bare numbers or as {"stage": x, "flow": y}
    if isinstance(raw, dict):
        return raw.get("stage")
    return raw


def extract_flood_stages(gauge: Any) -> Optional[Dict[str, Any]]:
    """
    Pull the action/minor/moderate/major stages out of one NWPS gauge record.

    Returns None for any record that does not carry a stage mapping.
    """
    if not isinstance(gauge, dict):
        return None
    props = gauge.get("properties") or gauge
    if not isinstance(props, dict):
        return None
    stages = props.get("floodStages")
    if stages is None:
        flood = props.get("flood")
        stages = flood.get("categories") if isinstance(flood, dict) else None
    if not isinstance(stages, dict):
        return None
    return {name: _stage_value(stages.get(name)) for name in STAGE_NAMES}


def fetch_official_flood_stages(
    site_id: str,
    timeout: float = REQUEST_TIMEOUT,
    policy: Optional[RetryPolicy] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> Optional[Dict[str, Any]]:
    """
    Look up official flood stages for a USGS site.

    Returns:
        Dict with action/minor/moderate/major (values unvalidated), or None
        when NWPS has no gauge or no stages for the site.

    Raises:
        UpstreamUnavailable / UpstreamTimeout on request failure.
    """
    logger.info("Fetching official flood stages for USGS site %s", site_id)
    payload = get_json(
        NWPS_GAUGES_URL,
        params={"site.usgs": site_id},
        timeout=timeout,
        policy=policy,
        user_agent=user_agent,
    )
    features = payload.get("features") if isinstance(payload, dict) else None
    if not features or not isinstance(features, list):
        logger.info("No NWPS gauge found for USGS site %s", site_id)
        return None
    stages = extract_flood_stages(features[0])
    if stages is None:
        logger.warning("No usable official flood stages for USGS site %s", site_id)
    return stages
