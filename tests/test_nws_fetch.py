from types import SimpleNamespace

import pytest
import requests

from floodrisk.core.errors import UnexpectedShape, UpstreamUnavailable
from floodrisk.data_ingestion.http import RetryPolicy
from floodrisk.data_ingestion.nws_fetch import (
    fetch_weather_report,
    filter_precipitation_periods,
    weather_icon,
)


class DummyResponse(SimpleNamespace):
    def raise_for_status(self):
        if getattr(self, "status_code", 200) >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


POINTS_URL = "https://api.weather.gov/points/38.58,-121.49"
STATIONS_URL = "https://api.weather.gov/gridpoints/STO/41,68/stations"
FORECAST_URL = "https://api.weather.gov/gridpoints/STO/41,68/forecast"
OBSERVATION_URL = "https://api.weather.gov/stations/KSAC/observations/latest"

RESPONSES = {
    POINTS_URL: {"properties": {"observationStations": STATIONS_URL, "forecast": FORECAST_URL}},
    STATIONS_URL: {"features": [{"properties": {"stationIdentifier": "KSAC"}}]},
    OBSERVATION_URL: {
        "properties": {
            "textDescription": "Light Rain",
            "temperature": {"value": 10.0},
            "relativeHumidity": {"value": 92.5},
            "barometricPressure": {"value": None},
            "windSpeed": {"value": 5.0},
            "windDirection": {"value": 180},
            "precipitationLastHour": {"value": 1.2},
        }
    },
    FORECAST_URL: {
        "properties": {
            "periods": [
                {"startTime": "2024-02-10T18:00:00-08:00", "shortForecast": "Rain Likely",
                 "probabilityOfPrecipitation": {"value": 70}},
                {"startTime": "2024-02-11T06:00:00-08:00", "shortForecast": "Mostly Sunny",
                 "probabilityOfPrecipitation": {"value": 10}},
                {"startTime": "2024-02-11T18:00:00-08:00", "shortForecast": "Chance Thunderstorms",
                 "probabilityOfPrecipitation": {"value": None}},
                {"startTime": "2024-02-12T06:00:00-08:00", "shortForecast": "Showers And Thunderstorms",
                 "probabilityOfPrecipitation": {"value": 50}},
            ]
        }
    },
}


@pytest.fixture
def mock_nws(monkeypatch):
    def fake_get(url, params=None, headers=None, timeout=10):
        if url not in RESPONSES:
            return DummyResponse(status_code=404, json=lambda: {})
        return DummyResponse(status_code=200, json=lambda: RESPONSES[url])

    monkeypatch.setattr("requests.get", fake_get)


def test_fetch_weather_report_chains_point_station_and_forecast(mock_nws):
    report = fetch_weather_report(38.58, -121.49)

    assert report.current["station"] == "KSAC"
    assert report.current["main"]["temp"] == pytest.approx(50.0)
    assert report.current["main"]["humidity"] == 92.5
    assert report.current["main"]["pressure"] == 1013
    assert report.current["wind"]["speed"] == pytest.approx(11.185)
    assert report.current["weather"][0]["icon"] == "10d"
    assert report.current["rain"]["1h"] == 1.2


def test_fetch_weather_report_keeps_rain_and_storm_periods(mock_nws):
    report = fetch_weather_report(38.58, -121.49)

    assert [p.short_forecast for p in report.precipitation] == [
        "Rain Likely",
        "Chance Thunderstorms",
        "Showers And Thunderstorms",
    ]
    assert [p.probability for p in report.precipitation] == [70.0, 0.0, 50.0]
    assert report.total_probability == 120.0
    assert report.average_probability == pytest.approx(40.0)


def test_missing_weather_propagates(monkeypatch):
    monkeypatch.setattr(
        "requests.get",
        lambda url, **kwargs: DummyResponse(status_code=503, json=lambda: {}),
    )
    policy = RetryPolicy(max_attempts=2, sleep=lambda _: None)
    with pytest.raises(UpstreamUnavailable):
        fetch_weather_report(38.58, -121.49, policy=policy)


def test_incomplete_point_metadata_is_unexpected_shape(monkeypatch):
    monkeypatch.setattr(
        "requests.get",
        lambda url, **kwargs: DummyResponse(status_code=200, json=lambda: {"properties": {}}),
    )
    with pytest.raises(UnexpectedShape):
        fetch_weather_report(38.58, -121.49)


def test_filter_precipitation_periods_empty():
    assert filter_precipitation_periods([]) == []
    assert filter_precipitation_periods([{"shortForecast": "Sunny"}]) == []


@pytest.mark.parametrize(
    "description,icon",
    [
        (None, "01d"),
        ("Clear", "01d"),
        ("Mostly Cloudy", "03d"),
        ("Heavy Rain", "10d"),
        ("Snow", "13d"),
        ("Thunderstorms", "11d"),
        ("Fog/Mist", "50d"),
        ("Haze", "01d"),
    ],
)
def test_weather_icon(description, icon):
    assert weather_icon(description) == icon


@pytest.mark.parametrize(
    "periods",
    [
        [{"shortForecast": "Rain", "probabilityOfPrecipitation": 40}],
        ["Rain Likely"],
        [{"shortForecast": ["Rain"]}],
    ],
)
def test_malformed_forecast_periods_are_unexpected_shape(periods):
    with pytest.raises(UnexpectedShape):
        filter_precipitation_periods(periods)


def test_non_finite_probability_counts_as_zero():
    periods = [
        {"shortForecast": "Rain", "probabilityOfPrecipitation": {"value": float("nan")}},
        {"shortForecast": "Rain Showers", "probabilityOfPrecipitation": {"value": "inf"}},
    ]
    assert [p.probability for p in filter_precipitation_periods(periods)] == [0.0, 0.0]


def test_malformed_station_list_is_unexpected_shape(monkeypatch):
    responses = dict(RESPONSES)
    responses[STATIONS_URL] = {"features": ["KSAC"]}
    monkeypatch.setattr(
        "requests.get",
        lambda url, **kwargs: DummyResponse(status_code=200, json=lambda: responses[url]),
    )
    with pytest.raises(UnexpectedShape) as excinfo:
        fetch_weather_report(38.58, -121.49)
    assert excinfo.value.status_code == 502
