"""
Flood stage threshold resolution.

Official NWPS stages are preferred. Anything missing, partial or not strictly
increasing is discarded in favour of a heuristic derived from the current
stage.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, Optional

from floodrisk.core.errors import UpstreamUnavailable
from floodrisk.core.models import SOURCE_FALLBACK, SOURCE_OFFICIAL, FloodStageThresholds

logger = logging.getLogger(__name__)

StageLookup = Callable[[str], Optional[Dict[str, Any]]]

STATUS_MAJOR = "Major Flood"
STATUS_MODERATE = "Moderate Flood"
STATUS_MINOR = "Minor Flood"
STATUS_ACTION = "Action Stage"
STATUS_NORMAL = "Normal"


def fallback_thresholds(current_stage: float) -> FloodStageThresholds:
    """Heuristic thresholds scaled from the current stage; floors keep them ordered."""
    if current_stage is None or not math.isfinite(current_stage):
        current_stage = 0.0
    base = max(current_stage, 1.0)
    return FloodStageThresholds(
        action=max(1.0, base * 0.8),
        minor=max(2.0, base * 1.2),
        moderate=max(3.0, base * 1.5),
        major=max(4.0, base * 2.0),
        source=SOURCE_FALLBACK,
    )


def thresholds_from_mapping(raw: Optional[Dict[str, Any]], source: str = SOURCE_OFFICIAL) -> Optional[FloodStageThresholds]:
    """
    Build thresholds from an action/minor/moderate/major mapping.

    Returns None unless all four are positive finite numbers in strictly
    increasing order.
    """
    if not raw:
        return None
    values = []
    for name in ("action", "minor", "moderate", "major"):
        value = raw.get(name)
        if isinstance(value, bool):
            return None
        try:
            value = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(value) or value <= 0:
            return None
        values.append(value)
    if not all(lower < upper for lower, upper in zip(values, values[1:])):
        return None
    return FloodStageThresholds(*values, source=source)


def resolve_thresholds(site_id: str, current_stage: float, lookup: StageLookup) -> FloodStageThresholds:
    """
    Resolve flood stage thresholds for a site.

    Args:
        site_id: USGS site ID passed to ``lookup``.
        current_stage: Latest gage height, used only by the fallback.
        lookup: Authoritative source returning a raw stage mapping or None.
    """
    try:
        raw = lookup(site_id)
    except UpstreamUnavailable as exc:
        logger.warning("Official flood stage lookup failed for %s: %s", site_id, exc)
        raw = None

    official = thresholds_from_mapping(raw, SOURCE_OFFICIAL)
    if official is not None:
        return official
    if raw:
        logger.warning("Discarding incomplete or unordered official stages for %s: %s", site_id, raw)
    logger.info("Using calculated fallback flood stages for USGS site %s", site_id)
    return fallback_thresholds(current_stage)


def flood_stage_status(current_stage: float, thresholds: FloodStageThresholds) -> str:
    if current_stage >= thresholds.major:
        return STATUS_MAJOR
    if current_stage >= thresholds.moderate:
        return STATUS_MODERATE
    if current_stage >= thresholds.minor:
        return STATUS_MINOR
    if current_stage >= thresholds.action:
        return STATUS_ACTION
    return STATUS_NORMAL
