"""Tests for BrightSky provider."""
import pytest
from unittest.mock import Mock, patch

from brightsky_provider import BrightSkyAdapter, BrightSkyProvider


def _row(timestamp, temperature, **extra):
    row = {
        "timestamp": timestamp,
        "temperature": temperature,
        "relative_humidity": 80,
        "precipitation": 0.2,
        "wind_speed": 10.0,
        "sunshine": 30,
        "icon": "rain",
    }
    row.update(extra)
    return row


def test_brightsky_current_weather_object():
    raw = {
        "weather": {
            "timestamp": "2024-06-01T14:00:00+02:00",
            "temperature": 18.4,
            "relative_humidity": 60,
            "pressure_msl": 1015.2,
            "wind_speed_10": 12.6,
            "wind_direction_10": 200,
            "cloud_cover": 88,
            "visibility": 35000,
            "precipitation_60": 0.3,
            "icon": "cloudy",
        },
        "sources": [{"id": 1, "station_name": "Berlin"}],
    }
    weather = BrightSkyAdapter.normalize_current(raw)
    assert weather.temperature == 18.4
    assert weather.feels_like == 18.4
    assert weather.wind_speed == 12.6
    assert weather.wind_direction == 200.0
    assert weather.visibility == pytest.approx(35.0)
    assert weather.precipitation == 0.3
    assert weather.weather_code == 3
    assert weather.timestamp == 1717243200000
    assert weather.sources == ["brightsky"]


def test_brightsky_hourly_normalizes_offsets():
    raw = {"weather": [
        _row("2024-01-01T01:00:00+01:00", 2.0),
        _row("2024-01-01T02:00:00+01:00", 3.0, icon="clear-night"),
    ]}
    hours = BrightSkyAdapter.normalize_hourly(raw)
    assert [h.timestamp for h in hours] == ["2024-01-01T00:00:00", "2024-01-01T01:00:00"]
    assert hours[0].weather_code == 63
    assert hours[1].weather_code == 0


def test_brightsky_daily_aggregates_hours():
    raw = {"weather": [
        _row("2024-01-01T00:00:00+00:00", 1.0, wind_speed=5.0),
        _row("2024-01-01T12:00:00+00:00", 5.0, wind_speed=15.0),
        _row("2024-01-01T23:00:00+00:00", 3.0, wind_speed=None, wind_speed_10=9.0),
        _row("2024-01-02T00:00:00+00:00", -1.0, precipitation=None),
    ]}
    days = BrightSkyAdapter.normalize_daily(raw)
    assert [d.date for d in days] == ["2024-01-01", "2024-01-02"]

    first = days[0]
    assert first.temp_min == 1.0
    assert first.temp_max == 5.0
    assert first.temp_avg == 3.0
    assert first.precipitation == pytest.approx(0.6)
    assert first.wind_speed_max == 15.0
    assert first.humidity == 80.0
    assert first.sunshine_hours == pytest.approx(1.5)
    assert first.weather_code == 63
    assert days[1].precipitation == 0.0


def test_brightsky_empty_payloads():
    assert BrightSkyAdapter.normalize_current({"weather": []}) is None
    assert BrightSkyAdapter.normalize_daily({}) == []
    assert BrightSkyAdapter.normalize_hourly({"weather": None}) == []


def test_brightsky_provider_history_request():
    provider = BrightSkyProvider()
    with patch('weather_provider.requests.get') as mock_get:
        mock_response = Mock()
        mock_response.ok = True
        mock_response.json.return_value = {"weather": []}
        mock_get.return_value = mock_response

        provider.fetch_daily(52.52, 13.41, "2024-01-01", "2024-01-03", api_key="ignored")

        assert mock_get.call_args.args[0] == "https://api.brightsky.dev/weather"
        params = mock_get.call_args.kwargs["params"]
        assert params["date"] == "2024-01-01"
        assert params["last_date"] == "2024-01-03T23:00:00+00:00"
        assert mock_get.call_args.kwargs["timeout"] == 8.0
