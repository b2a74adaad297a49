import json
from types import SimpleNamespace

import pytest
import requests

from floodrisk.core.errors import UnexpectedShape, UpstreamTimeout, UpstreamUnavailable
from floodrisk.core.models import DISCHARGE, STAGE
from floodrisk.data_ingestion.http import RetryPolicy
from floodrisk.data_ingestion.usgs_fetch import (
    bounding_box,
    distance_miles,
    fetch_bbox_sites,
    fetch_site_measurements,
    parse_time_series,
)


class DummyResponse(SimpleNamespace):
    def raise_for_status(self):
        if getattr(self, "status_code", 200) >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


def _series(site_id, name, lat, lng, code, values, unit="ft"):
    return {
        "sourceInfo": {
            "siteName": name,
            "siteCode": [{"value": site_id}],
            "geoLocation": {"geogLocation": {"latitude": lat, "longitude": lng}},
        },
        "variable": {
            "variableCode": [{"value": code}],
            "unit": {"unitCode": unit},
            "noDataValue": -999999.0,
        },
        "values": [{"value": [{"value": str(v), "dateTime": ts} for ts, v in values]}],
    }


STAGE_VALUES = [
    ("2024-02-10T11:00:00.000-08:00", 8.1),
    ("2024-02-10T11:30:00.000-08:00", -999999),
    ("2024-02-10T12:00:00.000-08:00", 8.5),
]
FLOW_VALUES = [
    ("2024-02-10T11:00:00.000-08:00", 14000),
    ("2024-02-10T12:00:00.000-08:00", 15000),
]


def _payload(*series):
    return {"value": {"timeSeries": list(series)}}


@pytest.fixture
def no_sleep_policy():
    return RetryPolicy(max_attempts=3, delays=(0.5,), sleep=lambda _: None)


@pytest.fixture
def mock_usgs_response(monkeypatch):
    payload = _payload(
        _series("11425500", "SACRAMENTO R A VERONA CA", 38.77, -121.6, "00065", STAGE_VALUES),
        _series("11425500", "SACRAMENTO R A VERONA CA", 38.77, -121.6, "00060", FLOW_VALUES, unit="ft3/s"),
    )
    calls = []

    def fake_get(url, params=None, headers=None, timeout=10):
        calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        return DummyResponse(
            status_code=200,
            json=lambda: json.loads(json.dumps(payload)),  # return a deep copy
            text="",
        )

    monkeypatch.setattr("requests.get", fake_get)
    return calls


def test_fetch_site_measurements_parses_values(mock_usgs_response):
    site = fetch_site_measurements("11425500")
    assert site.site_id == "11425500"
    assert site.name == "SACRAMENTO R A VERONA CA"
    assert site.location == (38.77, -121.6)
    assert site.latest(STAGE) == 8.5
    assert site.latest(DISCHARGE) == 15000.0
    assert site.unit == "ft3/s"
    assert site.last_updated == "2024-02-10T12:00:00.000-08:00"


def test_fetch_site_measurements_skips_no_data_values(mock_usgs_response):
    site = fetch_site_measurements("11425500")
    assert [m.value for m in site.series(STAGE)] == [8.1, 8.5]


def test_fetch_site_measurements_sends_query(mock_usgs_response):
    fetch_site_measurements("11425500", period="P1D", timeout=8)
    call = mock_usgs_response[0]
    assert call["params"]["sites"] == "11425500"
    assert call["params"]["parameterCd"] == "00060,00065"
    assert call["params"]["period"] == "P1D"
    assert call["timeout"] == 8
    assert "User-Agent" in call["headers"]


def test_missing_time_series_is_unexpected_shape(monkeypatch):
    monkeypatch.setattr(
        "requests.get",
        lambda url, **kwargs: DummyResponse(status_code=200, json=lambda: {"value": {}}),
    )
    with pytest.raises(UnexpectedShape):
        fetch_site_measurements("11425500")


def test_retries_transient_failures_then_succeeds(monkeypatch, no_sleep_policy):
    payload = _payload(_series("11425500", "Site", 38.0, -121.0, "00065", STAGE_VALUES))
    attempts = {"n": 0}

    def flaky_get(url, params=None, headers=None, timeout=10):
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise requests.Timeout("read timed out")
        return DummyResponse(status_code=200, json=lambda: payload)

    monkeypatch.setattr("requests.get", flaky_get)
    site = fetch_site_measurements("11425500", policy=no_sleep_policy)
    assert attempts["n"] == 3
    assert site.latest(STAGE) == 8.5


def test_exhausted_retries_raise_upstream_timeout(monkeypatch, no_sleep_policy):
    attempts = {"n": 0}

    def always_timeout(url, params=None, headers=None, timeout=10):
        attempts["n"] += 1
        raise requests.Timeout("read timed out")

    monkeypatch.setattr("requests.get", always_timeout)
    with pytest.raises(UpstreamTimeout) as excinfo:
        fetch_site_measurements("11425500", policy=no_sleep_policy)
    assert attempts["n"] == 3
    assert isinstance(excinfo.value, UpstreamUnavailable)
    assert isinstance(excinfo.value.last_error, requests.Timeout)


def test_client_errors_are_not_retried(monkeypatch, no_sleep_policy):
    attempts = {"n": 0}

    def not_found(url, params=None, headers=None, timeout=10):
        attempts["n"] += 1
        return DummyResponse(status_code=404, json=lambda: {})

    monkeypatch.setattr("requests.get", not_found)
    with pytest.raises(UpstreamUnavailable):
        fetch_site_measurements("11425500", policy=no_sleep_policy)
    assert attempts["n"] == 1


def test_bounding_box_format():
    bbox = bounding_box(38.0, -121.0, 6.9)
    west, south, east, north = (float(v) for v in bbox.split(","))
    assert south == pytest.approx(37.9)
    assert north == pytest.approx(38.1)
    assert west < -121.0 < east
    assert all(len(v.split(".")[1]) == 7 for v in bbox.split(","))


def test_distance_miles_one_degree_latitude():
    assert distance_miles(38.0, -121.0, 39.0, -121.0) == pytest.approx(69.1, abs=0.2)


def test_fetch_bbox_sites_filters_and_sorts_by_distance(monkeypatch):
    payload = _payload(
        _series("11447650", "SACRAMENTO R A FREEPORT CA", 38.10, -121.0, "00065", STAGE_VALUES),
        _series("11425500", "SACRAMENTO R A VERONA CA", 38.02, -121.0, "00065", STAGE_VALUES),
        _series("11446500", "AMERICAN R A FAIR OAKS CA", 38.02, -121.0, "00060", []),
        # inside the box corner but outside the radius
        _series("11390500", "SACRAMENTO R BL WILKINS SLOUGH", 38.13, -120.84, "00065", STAGE_VALUES),
    )
    seen = {}

    def fake_get(url, params=None, headers=None, timeout=10):
        seen["params"] = params
        seen["timeout"] = timeout
        return DummyResponse(status_code=200, json=lambda: payload)

    monkeypatch.setattr("requests.get", fake_get)
    sites = fetch_bbox_sites(38.0, -121.0, 10.0)

    assert [s.site_id for s in sites] == ["11425500", "11447650"]
    assert sites[0].distance_miles < sites[1].distance_miles
    assert seen["params"]["siteType"] == "ST"
    assert "bBox" in seen["params"]
    assert seen["timeout"] == 8


def test_fetch_bbox_sites_large_radius_keeps_river_names_only(monkeypatch):
    payload = _payload(
        _series("11447650", "SACRAMENTO RIVER AT FREEPORT", 38.1, -121.0, "00065", STAGE_VALUES),
        _series("11447655", "LAKE NATOMA OUTLET", 38.1, -121.0, "00065", STAGE_VALUES),
    )
    seen = {}

    def fake_get(url, params=None, headers=None, timeout=10):
        seen["timeout"] = timeout
        return DummyResponse(status_code=200, json=lambda: payload)

    monkeypatch.setattr("requests.get", fake_get)
    sites = fetch_bbox_sites(38.0, -121.0, 50.0)
    assert [s.site_id for s in sites] == ["11447650"]
    assert seen["timeout"] == 12


def test_readings_are_ordered_across_dst_fall_back():
    # 01:45 PDT is 08:45Z; the two PST readings come after it
    values = [
        ("2023-11-05T01:00:00.000-08:00", 5.2),
        ("2023-11-05T01:45:00.000-07:00", 5.0),
        ("2023-11-05T01:15:00.000-08:00", 5.4),
    ]
    sites = parse_time_series(_payload(_series("11425500", "SACRAMENTO R A VERONA CA", 38.77, -121.6, "00065", values)))
    site = sites["11425500"]
    assert [m.value for m in site.series(STAGE)] == [5.0, 5.2, 5.4]
    assert site.latest(STAGE) == 5.4
    assert site.last_updated == "2023-11-05T01:15:00.000-08:00"


def test_malformed_series_are_skipped():
    good = _series("11425500", "SACRAMENTO R A VERONA CA", 38.77, -121.6, "00065", STAGE_VALUES)
    bad = {"sourceInfo": {"siteCode": ["11425500"]}, "variable": {"variableCode": [{"value": "00065"}]}}
    sites = parse_time_series(_payload("oops", bad, good))
    assert list(sites) == ["11425500"]
    assert sites["11425500"].latest(STAGE) == 8.5
