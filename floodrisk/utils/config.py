"""Engine settings, optionally overridden from a YAML file."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from floodrisk.core.scoring import DEFAULT_WEIGHTS, LEGACY_WEIGHTS, PRECIPITATION_SCALE

logger = logging.getLogger(__name__)


def load_yaml(path: str) -> Dict[str, Any]:
    """Load a YAML file into a dictionary."""
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found at {path}")
    with cfg_path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config at {path} is not a mapping")
    return data


@dataclass
class Settings:
    cache_ttl_seconds: float = 600.0
    weather_ttl_seconds: float = 300.0
    rate_limits: Dict[str, float] = field(
        default_factory=lambda: {"weather": 2.0, "gauge-query": 1.0, "prediction": 3.0}
    )
    retry_attempts: int = 3
    retry_delay_seconds: float = 0.5
    timeouts: Dict[str, float] = field(
        default_factory=lambda: {
            "gauge_site": 8.0,
            "gauge_bbox": 8.0,
            "gauge_bbox_large": 12.0,
            "weather": 10.0,
            "flood_stage": 10.0,
        }
    )
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    precipitation_scale: float = PRECIPITATION_SCALE
    max_workers: int = 5
    user_agent: str = "floodrisk/0.1 (flood risk engine)"
    period: str = "P7D"


def _as_float_map(section: Any, name: str) -> Dict[str, float]:
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return {str(k): float(v) for k, v in section.items()}


def settings_from_dict(cfg: Dict[str, Any]) -> Settings:
    """
    Build Settings from a parsed config mapping.

    Unknown keys are ignored; missing keys keep their defaults.
    """
    settings = Settings()

    cache = cfg.get("cache") or {}
    settings.cache_ttl_seconds = float(cache.get("ttl_seconds", settings.cache_ttl_seconds))
    settings.weather_ttl_seconds = float(cache.get("weather_ttl_seconds", settings.weather_ttl_seconds))

    if "rate_limits" in cfg:
        settings.rate_limits.update(_as_float_map(cfg["rate_limits"], "rate_limits"))
    if "timeouts" in cfg:
        settings.timeouts.update(_as_float_map(cfg["timeouts"], "timeouts"))

    retry = cfg.get("retry") or {}
    settings.retry_attempts = int(retry.get("max_attempts", settings.retry_attempts))
    settings.retry_delay_seconds = float(retry.get("delay_seconds", settings.retry_delay_seconds))
    if settings.retry_attempts < 1:
        raise ValueError("retry.max_attempts must be at least 1")

    scoring = cfg.get("scoring") or {}
    if scoring.get("profile") == "legacy":
        settings.weights = dict(LEGACY_WEIGHTS)
    if "weights" in scoring:
        settings.weights = _as_float_map(scoring["weights"], "scoring.weights")
    settings.precipitation_scale = float(scoring.get("precipitation_scale", settings.precipitation_scale))
    if set(settings.weights) != set(DEFAULT_WEIGHTS):
        raise ValueError(f"scoring.weights must define exactly {sorted(DEFAULT_WEIGHTS)}")
    if abs(sum(settings.weights.values()) - 1.0) > 1e-6:
        raise ValueError("scoring.weights must sum to 1.0")

    settings.max_workers = int(cfg.get("max_workers", settings.max_workers))
    if settings.max_workers < 1:
        raise ValueError("max_workers must be at least 1")
    settings.user_agent = str(cfg.get("user_agent", settings.user_agent))
    settings.period = str(cfg.get("period", settings.period))
    return settings


def load_settings(path: Optional[str] = None) -> Settings:
    """Load settings from a YAML file, or return defaults when no path is given."""
    if path is None:
        return Settings()
    settings = settings_from_dict(load_yaml(path))
    logger.info("Loaded settings from %s (weights=%s)", path, settings.weights)
    return settings
