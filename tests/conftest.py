import pytest

from floodrisk.core.errors import UpstreamTimeout
from floodrisk.core.models import (
    DISCHARGE,
    STAGE,
    GaugeSite,
    Measurement,
    PrecipitationForecastPeriod,
    WeatherReport,
)
from floodrisk.data_ingestion.cached_sources import CachedDataSources
from floodrisk.data_ingestion.http import RetryPolicy
from floodrisk.utils.config import Settings

OFFICIAL_STAGES = {"action": 10, "minor": 12, "moderate": 15, "major": 18}


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_site(site_id, stages, flows, distance=None):
    times = [f"2024-02-10T{h:02d}:00:00.000-08:00" for h in range(len(stages))]
    measurements = [Measurement(STAGE, s, t) for s, t in zip(stages, times)]
    measurements += [Measurement(DISCHARGE, q, t) for q, t in zip(flows, times)]
    return GaugeSite(
        site_id=site_id,
        name=f"River at {site_id}",
        location=(38.58, -121.49),
        last_updated=times[-1],
        distance_miles=distance,
        measurements=measurements,
    )


class FakeUpstream:
    """Stands in for USGS, NWS and NWPS; records every call."""

    def __init__(self):
        self.sites = {
            "11447650": make_site("11447650", [11.0, 12.0], [100.0, 115.0], distance=2.0),
            "11425500": make_site("11425500", [3.0, 3.0], [50.0, 50.0], distance=7.5),
        }
        self.stages = {"11447650": OFFICIAL_STAGES}
        self.weather_report = WeatherReport(
            current={"station": "KSAC"},
            precipitation=[
                PrecipitationForecastPeriod("2024-02-10T18:00:00-08:00", "Rain Likely", 70.0),
                PrecipitationForecastPeriod("2024-02-11T06:00:00-08:00", "Chance Showers", 60.0),
            ],
        )
        self.weather_error = None
        self.calls = []

    def site(self, site_id, **kwargs):
        self.calls.append(("site", site_id))
        if site_id not in self.sites:
            raise UpstreamTimeout(f"Timed out fetching site {site_id}")
        return self.sites[site_id]

    def bbox(self, lat, lng, radius_miles, **kwargs):
        self.calls.append(("bbox", radius_miles))
        return sorted(self.sites.values(), key=lambda s: s.distance_miles)

    def weather(self, lat, lng, **kwargs):
        self.calls.append(("weather", lat, lng))
        if self.weather_error is not None:
            raise self.weather_error
        return self.weather_report

    def flood_stages(self, site_id, **kwargs):
        self.calls.append(("stages", site_id))
        return self.stages.get(site_id)

    def count(self, kind):
        return sum(1 for call in self.calls if call[0] == kind)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def sources(clock, upstream):
    return CachedDataSources(
        Settings(),
        clock=clock,
        policy=RetryPolicy(max_attempts=1, sleep=lambda _: None),
        site_fetcher=upstream.site,
        bbox_fetcher=upstream.bbox,
        weather_fetcher=upstream.weather,
        stage_fetcher=upstream.flood_stages,
    )
