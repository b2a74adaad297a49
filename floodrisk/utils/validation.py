"""
Input validation for inbound assessment requests.

Validators collect every problem before raising, so the client sees the full
list in the error details.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional, Tuple

from floodrisk.core.errors import ValidationError
from floodrisk.core.models import AssessmentRequest

MIN_RADIUS_MILES = 0.1
MAX_RADIUS_MILES = 100.0

_SITE_ID_RE = re.compile(r"^\d{8,15}$")


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(num) else num


def validate_coordinates(lat: Any, lng: Any) -> Tuple[float, float]:
    errors: List[str] = []
    lat_num = _to_float(lat)
    lng_num = _to_float(lng)

    if lat_num is None:
        errors.append("Latitude must be a valid number")
    elif not -90 <= lat_num <= 90:
        errors.append("Latitude must be between -90 and 90 degrees")

    if lng_num is None:
        errors.append("Longitude must be a valid number")
    elif not -180 <= lng_num <= 180:
        errors.append("Longitude must be between -180 and 180 degrees")

    if errors:
        raise ValidationError("Invalid coordinates", details=errors)
    return lat_num, lng_num


def validate_radius(radius: Any, min_radius: float = MIN_RADIUS_MILES, max_radius: float = MAX_RADIUS_MILES) -> float:
    radius_num = _to_float(radius)
    if radius_num is None:
        raise ValidationError("Invalid radius", details=["Radius must be a valid number"])
    if radius_num < min_radius:
        raise ValidationError("Invalid radius", details=[f"Radius must be at least {min_radius} miles"])
    if radius_num > max_radius:
        raise ValidationError("Invalid radius", details=[f"Radius cannot exceed {max_radius} miles"])
    return radius_num


def validate_site_id(site_id: Any) -> str:
    if not site_id:
        raise ValidationError("Invalid site id", details=["Site ID is required"])
    if not isinstance(site_id, str):
        raise ValidationError("Invalid site id", details=["Site ID must be a string"])
    site_id = site_id.strip()
    if not _SITE_ID_RE.match(site_id):
        raise ValidationError("Invalid site id", details=["Site ID must be 8-15 digits"])
    return site_id


def validate_prediction_request(body: Any) -> AssessmentRequest:
    """
    Validate a ``{lat, lng, radius, rivers}`` request body.

    Raises:
        ValidationError listing every problem found.
    """
    if not isinstance(body, dict):
        raise ValidationError("Invalid request data", details=["Request body must be a JSON object"])

    errors: List[str] = []
    for name in ("lat", "lng", "radius"):
        if body.get(name) is None:
            errors.append(f"Field '{name}' is required")
        elif _to_float(body[name]) is None:
            errors.append(f"Field '{name}' must be a valid number")

    rivers = body.get("rivers")
    if rivers is None:
        rivers = []
    elif not isinstance(rivers, list):
        errors.append("Field 'rivers' must be an array")
    else:
        for idx, river in enumerate(rivers):
            if not isinstance(river, dict) or not river.get("id"):
                errors.append(f"River at index {idx} must be an object with an 'id'")
                continue
            try:
                validate_site_id(str(river["id"]))
            except ValidationError as exc:
                errors.extend(f"River at index {idx}: {detail}" for detail in exc.details)

    if errors:
        raise ValidationError("Invalid request data", details=errors)

    lat, lng = validate_coordinates(body["lat"], body["lng"])
    radius = validate_radius(body["radius"])
    river_dicts: List[Dict[str, Any]] = [dict(r, id=str(r["id"]).strip()) for r in rivers]
    return AssessmentRequest(lat=lat, lng=lng, radius=radius, rivers=river_dicts)
