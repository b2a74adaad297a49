"""
Cached, rate-limited access to the upstream clients.

One instance is built per process and handed to the predictor. Cached values
are never mutated after they are stored, so concurrent requests can share
them and duplicate fetches for the same key simply overwrite each other.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from floodrisk.core.errors import RateLimitExceeded
from floodrisk.core.models import GaugeSite, WeatherReport
from floodrisk.data_ingestion.http import RetryPolicy
from floodrisk.data_ingestion.nwps_fetch import fetch_official_flood_stages
from floodrisk.data_ingestion.nws_fetch import fetch_weather_report
from floodrisk.data_ingestion.usgs_fetch import LARGE_RADIUS_MILES, fetch_bbox_sites, fetch_site_measurements
from floodrisk.utils.cache import RateLimiter, TTLCache
from floodrisk.utils.config import Settings

logger = logging.getLogger(__name__)

WEATHER = "weather"
GAUGE_QUERY = "gauge-query"
PREDICTION = "prediction"


class CachedDataSources:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
        cache: Optional[TTLCache] = None,
        limiter: Optional[RateLimiter] = None,
        policy: Optional[RetryPolicy] = None,
        site_fetcher: Callable[..., GaugeSite] = fetch_site_measurements,
        bbox_fetcher: Callable[..., List[GaugeSite]] = fetch_bbox_sites,
        weather_fetcher: Callable[..., WeatherReport] = fetch_weather_report,
        stage_fetcher: Callable[..., Optional[Dict[str, Any]]] = fetch_official_flood_stages,
    ) -> None:
        self.settings = settings or Settings()
        self.cache = cache or TTLCache(self.settings.cache_ttl_seconds, clock=clock)
        self.limiter = limiter or RateLimiter(self.settings.rate_limits, clock=clock)
        self.policy = policy or RetryPolicy(
            max_attempts=self.settings.retry_attempts,
            delays=(self.settings.retry_delay_seconds,),
        )
        self._site_fetcher = site_fetcher
        self._bbox_fetcher = bbox_fetcher
        self._weather_fetcher = weather_fetcher
        self._stage_fetcher = stage_fetcher

    def check_rate(self, endpoint: str) -> None:
        """Raise RateLimitExceeded if ``endpoint`` was called too recently."""
        if not self.limiter.allow(endpoint):
            retry_after = self.limiter.retry_after(endpoint)
            logger.warning("Rate gate tripped for %s; retry in %.1fs", endpoint, retry_after)
            raise RateLimitExceeded(endpoint, retry_after=round(retry_after, 1))

    def _client_kwargs(self, timeout_name: str) -> Dict[str, Any]:
        return {
            "timeout": self.settings.timeouts[timeout_name],
            "policy": self.policy,
            "user_agent": self.settings.user_agent,
        }

    def weather(self, lat: float, lng: float) -> WeatherReport:
        key = ("weather", round(lat, 4), round(lng, 4))
        report = self.cache.get(key)
        if report is not None:
            logger.debug("Weather cache hit for %s", key)
            return report
        self.check_rate(WEATHER)
        report = self._weather_fetcher(lat, lng, **self._client_kwargs("weather"))
        self.cache.set(key, report, ttl=self.settings.weather_ttl_seconds)
        return report

    def nearby_sites(self, lat: float, lng: float, radius_miles: float) -> List[GaugeSite]:
        key = ("rivers", round(lat, 4), round(lng, 4), radius_miles)
        sites = self.cache.get(key)
        if sites is not None:
            logger.debug("Rivers cache hit for %s", key)
            return sites
        self.check_rate(GAUGE_QUERY)
        timeout_name = "gauge_bbox_large" if radius_miles > LARGE_RADIUS_MILES else "gauge_bbox"
        sites = self._bbox_fetcher(lat, lng, radius_miles, period=self.settings.period, **self._client_kwargs(timeout_name))
        self.cache.set(key, sites)
        return sites

    def site(self, site_id: str) -> GaugeSite:
        """Per-site readings. Not rate gated: a batch must not throttle its own fan-out."""
        key = ("site", site_id)
        site = self.cache.get(key)
        if site is not None:
            return site
        site = self._site_fetcher(site_id, period=self.settings.period, **self._client_kwargs("gauge_site"))
        self.cache.set(key, site)
        return site

    def official_stages(self, site_id: str) -> Optional[Dict[str, Any]]:
        key = ("stages", site_id)
        cached = self.cache.get(key)
        if cached is not None:
            # an empty mapping records "no official stages" so we do not ask again
            return cached or None
        stages = self._stage_fetcher(site_id, **self._client_kwargs("flood_stage"))
        self.cache.set(key, stages or {})
        return stages
