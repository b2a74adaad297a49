"""
CLI entrypoint for a flood risk assessment.

Usage:
    python -m floodrisk.cli.run_assessment --lat 38.58 --lng -121.49 --radius 10
    python -m floodrisk.cli.run_assessment --request request.json --config config/settings.yml
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, Optional

from floodrisk.core.errors import FloodRiskError, GeneralError
from floodrisk.core.predictor import assess_area
from floodrisk.data_ingestion.cached_sources import CachedDataSources
from floodrisk.utils.api_response import error_from_exception, success_response
from floodrisk.utils.config import load_settings
from floodrisk.utils.logger import configure_logging
from floodrisk.utils.validation import validate_prediction_request

logger = logging.getLogger(__name__)


def handle_predict(body: Any, sources: CachedDataSources) -> Dict[str, Any]:
    """
    Run one assessment request and wrap the outcome in the response envelope.

    Any transport (HTTP handler, CLI, serverless function) calls this the
    same way.
    """
    try:
        request = validate_prediction_request(body)
        assessment = assess_area(request, sources)
    except FloodRiskError as exc:
        logger.error("Flood prediction failed [%s]: %s", exc.code, exc.message)
        return error_from_exception(exc)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error during flood prediction")
        return error_from_exception(GeneralError("Failed to generate flood prediction", details=str(exc)))

    meta = {
        "coordinates": {"lat": request.lat, "lng": request.lng},
        "radius": request.radius,
        "riversAnalyzed": len(assessment.rivers),
        "riversOmitted": len(assessment.omitted),
        "dataSource": "USGS + NOAA/NWS + NWPS",
    }
    return success_response(assessment.to_dict(), "Flood prediction completed", meta)


def _build_body(args: argparse.Namespace) -> Dict[str, Any]:
    if args.request:
        with open(args.request, "r", encoding="utf-8") as f:
            return json.load(f)
    rivers = [{"id": site.strip()} for site in (args.sites or "").split(",") if site.strip()]
    return {"lat": args.lat, "lng": args.lng, "radius": args.radius, "rivers": rivers}


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(description="Run a flood risk assessment around a point.")
    parser.add_argument("--lat", type=float, help="Latitude of the area centre.")
    parser.add_argument("--lng", type=float, help="Longitude of the area centre.")
    parser.add_argument("--radius", type=float, default=10.0, help="Search radius in miles.")
    parser.add_argument(
        "--sites",
        default=None,
        help="Comma-separated USGS site IDs to assess instead of discovering nearby gauges.",
    )
    parser.add_argument("--request", default=None, help="Path to a JSON request body; overrides the other flags.")
    parser.add_argument("--config", default=None, help="Path to settings YAML.")
    parser.add_argument(
        "--loglevel",
        default=None,
        help="Logging level (e.g., INFO, DEBUG). Overrides LOGLEVEL env.",
    )
    args = parser.parse_args(argv)

    configure_logging(level=args.loglevel)
    logger.info("Starting flood risk assessment")
    sources = CachedDataSources(load_settings(args.config))
    envelope = handle_predict(_build_body(args), sources)
    print(json.dumps(envelope, default=str, indent=2))
    if not envelope["success"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
