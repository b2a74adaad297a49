"""Standard response envelope shared by every transport adapter."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from floodrisk.core.errors import FloodRiskError


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def success_response(data: Any, message: Optional[str] = None, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    response: Dict[str, Any] = {
        "success": True,
        "data": data,
        "message": message,
        "error": None,
        "timestamp": _now_iso(),
    }
    if meta:
        response["meta"] = meta
    return response


def error_response(
    message: str,
    code: str = "GENERAL_ERROR",
    details: Any = None,
    status_code: int = 500,
) -> Dict[str, Any]:
    return {
        "success": False,
        "data": None,
        "message": message,
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "statusCode": status_code,
        },
        "timestamp": _now_iso(),
    }


def error_from_exception(exc: FloodRiskError) -> Dict[str, Any]:
    return error_response(exc.message, exc.code, exc.details, exc.status_code)
