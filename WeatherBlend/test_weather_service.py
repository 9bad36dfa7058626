"""Tests for weather service."""
import asyncio
import time

import pytest

from weather_cache import MemoryStore, WeatherCache
from weather_data import CurrentConditions, DailyRecord, HourlyRecord
from weather_provider import (
    AllSourcesFailedError,
    ClientError,
    NoDataError,
    ValidationError,
    WeatherAdapterBase,
    WeatherProviderBase,
    WeatherProviderError,
)
from weather_retry import RetryOptions
from weather_service import WeatherService, synthesize_hourly


class PassthroughAdapter(WeatherAdapterBase):
    """The mock providers already return canonical records."""

    @staticmethod
    def normalize_current(raw):
        return raw

    @staticmethod
    def normalize_daily(raw):
        return raw or []

    @staticmethod
    def normalize_hourly(raw):
        return raw or []


class MockProvider(WeatherProviderBase):
    """Mock weather provider for testing."""

    adapter = PassthroughAdapter

    def __init__(self, source_id, current=None, daily=None, hourly=None,
                 raise_error=None, requires_key=False):
        super().__init__()
        self.source_id = source_id
        self.requires_key = requires_key
        self.current = current
        self.daily = daily
        self.hourly = hourly
        self.raise_error = raise_error
        self.call_count = 0
        self.api_keys = []

    def _respond(self, value, api_key):
        self.call_count += 1
        self.api_keys.append(api_key)
        if self.raise_error:
            raise self.raise_error
        return value

    def fetch_current(self, lat, lon, api_key=None, timeout=None):
        return self._respond(self.current, api_key)

    def fetch_daily(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        return self._respond(self.daily, api_key)

    def fetch_hourly(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        return self._respond(self.hourly, api_key)


class StaticKeys:
    def __init__(self, **keys):
        self.keys = keys

    def get_key(self, provider_id):
        return self.keys.get(provider_id)


class RecordingHistory:
    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error
        self.calls = []

    def fetch_historical_data(self, lat, lon, start_date, end_date):
        self.calls.append((lat, lon, start_date, end_date))
        if self.error:
            raise self.error
        return self.records


async def no_sleep(delay):
    pass


def make_service(providers, **kwargs):
    kwargs.setdefault("cache", WeatherCache(MemoryStore(), version="v2"))
    kwargs.setdefault("retry_options", RetryOptions(max_attempts=2, base_delay=0))
    return WeatherService(providers=providers, sleep=no_sleep, **kwargs)


def five_days():
    return [
        DailyRecord(date=f"2024-01-0{i}", temp_avg=float(i), humidity=70.0,
                    precipitation=0.5, wind_speed_max=10.0, weather_code=61,
                    sources=["open-meteo"])
        for i in range(1, 6)
    ]


def test_current_merges_sources_by_priority():
    providers = [
        MockProvider("brightsky", current=CurrentConditions(temperature=18.0, humidity=55.0, sources=["brightsky"])),
        MockProvider("open-meteo", current=CurrentConditions(temperature=20.0, sources=["open-meteo"])),
    ]
    service = make_service(providers)

    weather = asyncio.run(service.load_current_weather(52.52, 13.41))

    assert weather.temperature == 20.0
    assert weather.humidity == 55.0
    assert weather.sources == ["open-meteo", "brightsky"]


def test_current_is_cached():
    """Second identical request is served from cache."""
    provider = MockProvider("open-meteo", current=CurrentConditions(temperature=20.0, sources=["open-meteo"]))
    service = make_service([provider])

    first = asyncio.run(service.load_current_weather(52.52, 13.41))
    second = asyncio.run(service.load_current_weather(52.52, 13.41))

    assert provider.call_count == 1
    assert second == first


def test_one_failing_source_does_not_affect_others():
    providers = [
        MockProvider("open-meteo", raise_error=WeatherProviderError("HTTP 503: down", status_code=503)),
        MockProvider("brightsky", current=CurrentConditions(temperature=12.0, sources=["brightsky"])),
    ]
    service = make_service(providers)

    weather = asyncio.run(service.load_current_weather(52.52, 13.41))

    assert weather.sources == ["brightsky"]
    assert providers[0].call_count == 2  # retried
    assert "open-meteo" in service.last_failures["current"]


def test_empty_current_response_is_not_a_success():
    providers = [
        MockProvider("openweathermap", current=CurrentConditions(
            weather_code=3, description="Overcast", icon="cloudy", sources=["openweathermap"])),
        MockProvider("brightsky", current=CurrentConditions(temperature=12.0, sources=["brightsky"])),
    ]
    service = make_service(providers)

    weather = asyncio.run(service.load_current_weather(52.52, 13.41))

    assert weather.sources == ["brightsky"]
    assert weather.temperature == 12.0

    with pytest.raises(AllSourcesFailedError):
        asyncio.run(make_service(providers[:1]).load_current_weather(52.52, 13.41))


def test_all_current_sources_failed():
    providers = [
        MockProvider(source_id, raise_error=WeatherProviderError("Network error: unreachable"))
        for source_id in ("open-meteo", "openweathermap", "visualcrossing", "brightsky", "meteostat")
    ]
    service = make_service(providers)

    with pytest.raises(AllSourcesFailedError, match="All current weather sources failed"):
        asyncio.run(service.load_current_weather(52.52, 13.41))

    assert set(service.last_failures["current"]) == {p.source_id for p in providers}


def test_permanent_error_is_tried_once():
    provider = MockProvider("open-meteo", raise_error=ClientError("HTTP 401: Invalid API key", status_code=401))
    service = make_service([provider])

    with pytest.raises(AllSourcesFailedError):
        asyncio.run(service.load_current_weather(52.52, 13.41))

    assert provider.call_count == 1


def test_keyed_providers_need_a_key():
    keyless = MockProvider("open-meteo", current=CurrentConditions(temperature=1.0, sources=["open-meteo"]))
    keyed = MockProvider("visualcrossing", requires_key=True,
                         current=CurrentConditions(humidity=80.0, sources=["visualcrossing"]))

    service = make_service([keyless, keyed])
    asyncio.run(service.load_current_weather(52.52, 13.41))
    assert keyed.call_count == 0

    service = make_service([keyless, keyed], key_lookup=StaticKeys(visualcrossing="secret"))
    weather = asyncio.run(service.load_current_weather(52.52, 13.41))
    assert keyed.api_keys == ["secret"]
    assert weather.humidity == 80.0


def test_slow_source_times_out():
    class SlowProvider(MockProvider):
        def fetch_current(self, lat, lon, api_key=None, timeout=None):
            time.sleep(0.5)
            return super().fetch_current(lat, lon, api_key, timeout)

    slow = SlowProvider("open-meteo", current=CurrentConditions(temperature=1.0, sources=["open-meteo"]))
    fast = MockProvider("brightsky", current=CurrentConditions(temperature=2.0, sources=["brightsky"]))
    service = make_service([slow, fast], timeout=0.05, retry_options=RetryOptions(max_attempts=1))

    weather = asyncio.run(service.load_current_weather(52.52, 13.41))

    assert weather.sources == ["brightsky"]
    assert "timeout" in service.last_failures["current"]["open-meteo"]


@pytest.mark.parametrize("lat,lon", [(91, 0), (-90.5, 0), (0, 181), (0, -180.1), ("52", 13)])
def test_invalid_coordinates(lat, lon):
    provider = MockProvider("open-meteo")
    service = make_service([provider])
    with pytest.raises(ValidationError):
        asyncio.run(service.load_current_weather(lat, lon))
    assert provider.call_count == 0


@pytest.mark.parametrize("start,end", [
    ("2024-1-01", "2024-01-05"),
    ("2024-02-30", "2024-03-01"),
    ("2024-01-05", "2024-01-01"),
    ("1939-12-31", "1940-01-05"),
])
def test_invalid_date_ranges(start, end):
    provider = MockProvider("open-meteo")
    service = make_service([provider])
    with pytest.raises(ValidationError):
        asyncio.run(service.load_history(52.52, 13.41, start, end))
    assert provider.call_count == 0


def test_daily_merge_and_range_filter():
    providers = [
        MockProvider("visualcrossing", daily=[
            DailyRecord(date="2024-01-01", temp_max=12.0, temp_min=2.0, sources=["visualcrossing"]),
        ]),
        MockProvider("open-meteo", daily=[
            DailyRecord(date="2024-01-01", temp_max=10.0, sources=["open-meteo"]),
            DailyRecord(date="2024-01-02", temp_max=11.0, sources=["open-meteo"]),
            DailyRecord(date="2024-01-09", temp_max=99.0, sources=["open-meteo"]),
        ]),
    ]
    service = make_service(providers)

    days = asyncio.run(service.load_history(52.52, 13.41, "2024-01-01", "2024-01-02"))

    assert [d.date for d in days] == ["2024-01-01", "2024-01-02"]
    assert days[0].temp_max == 10.0
    assert days[0].temp_min == 2.0
    assert days[0].sources == ["open-meteo", "visualcrossing"]


def test_daily_history_cached_without_expiry():
    provider = MockProvider("open-meteo", daily=five_days())
    cache = WeatherCache(MemoryStore(), version="v2")
    service = make_service([provider], cache=cache)

    asyncio.run(service.load_history(52.52, 13.41, "2024-01-01", "2024-01-05"))
    days = asyncio.run(service.load_history(52.52, 13.41, "2024-01-01", "2024-01-05"))

    assert provider.call_count == 1
    assert days == five_days()
    key = cache.generate_key("daily", "2024-01-01", "2024-01-05", 52.52, 13.41)
    assert '"expires_at": null' in cache.store.get("weather_cache:" + key)


def test_daily_falls_back_to_history_collaborator():
    history = RecordingHistory(records=[{"date": "2024-01-01", "temp_avg": 4.0}])
    service = make_service([MockProvider("open-meteo", daily=[])], history_fallback=history)

    days = asyncio.run(service.load_history(52.52, 13.41, "2024-01-01", "2024-01-01"))

    assert history.calls == [(52.52, 13.41, "2024-01-01", "2024-01-01")]
    assert days[0].temp_avg == 4.0
    assert days[0].sources == ["history-fallback"]


def test_history_fallback_skips_malformed_rows():
    history = RecordingHistory(records=[
        {"temp_avg": 4.0},
        "2024-01-02",
        {"date": 20240103, "temp_avg": 1.0},
        {"date": "2023-12-31", "temp_avg": 9.0},
        {"date": "2024-01-02T00:00:00", "temp_avg": 5.0, "sources": ["archive"]},
    ])
    service = make_service([MockProvider("open-meteo", daily=[])], history_fallback=history)

    days = asyncio.run(service.load_history(52.52, 13.41, "2024-01-01", "2024-01-02"))

    assert [d.date for d in days] == ["2024-01-02"]
    assert days[0].temp_avg == 5.0
    assert days[0].sources == ["archive"]


@pytest.mark.parametrize("payload", [
    [{"temp_avg": 4.0}],
    [None, 42],
    {"date": "2024-01-01"},
    "not a list",
])
def test_unusable_history_fallback_is_no_data(payload):
    history = RecordingHistory()
    history.records = payload
    service = make_service([MockProvider("open-meteo", daily=[])], history_fallback=history)

    with pytest.raises(NoDataError):
        asyncio.run(service.load_history(52.52, 13.41, "2024-01-01", "2024-01-01"))


def test_daily_no_data_anywhere():
    history = RecordingHistory(error=RuntimeError("archive offline"))
    service = make_service([MockProvider("open-meteo", daily=[])], history_fallback=history)

    with pytest.raises(NoDataError):
        asyncio.run(service.load_history(52.52, 13.41, "2024-01-01", "2024-01-02"))


def test_hourly_merge():
    providers = [
        MockProvider("open-meteo", hourly=[
            HourlyRecord(timestamp="2024-01-01T00:00:00", temperature=1.0, sources=["open-meteo"]),
        ]),
        MockProvider("brightsky", hourly=[
            HourlyRecord(timestamp="2024-01-01T00:00:00", temperature=3.0, pressure=1001.0, sources=["brightsky"]),
            HourlyRecord(timestamp="2024-01-01T01:00:00", temperature=2.0, sources=["brightsky"]),
        ]),
    ]
    service = make_service(providers)

    hours = asyncio.run(service.load_hourly_history(52.52, 13.41, "2024-01-01", "2024-01-01"))

    assert [h.timestamp for h in hours] == ["2024-01-01T00:00:00", "2024-01-01T01:00:00"]
    assert hours[0].temperature == 1.0
    assert hours[0].pressure == 1001.0


def test_hourly_falls_back_to_daily():
    """Empty hourly fan-out with 5 daily records yields 5 mid-day records."""
    provider = MockProvider("open-meteo", hourly=[], daily=five_days())
    service = make_service([provider])

    hours = asyncio.run(service.load_hourly_history(52.52, 13.41, "2024-01-01", "2024-01-05"))

    assert len(hours) == 5
    assert all(h.daily_fallback for h in hours)
    assert all(h.timestamp.endswith("T12:00:00") for h in hours)
    assert hours[0].timestamp == "2024-01-01T12:00:00"
    assert hours[2].temperature == 3.0
    assert hours[2].wind_speed == 10.0
    assert hours[2].sources == ["open-meteo"]


def test_hourly_no_data_when_daily_also_empty():
    service = make_service([MockProvider("open-meteo", hourly=[], daily=[])])
    with pytest.raises(NoDataError):
        asyncio.run(service.load_hourly_history(52.52, 13.41, "2024-01-01", "2024-01-02"))


def test_synthesize_hourly_one_record_per_day():
    days = five_days()
    hours = synthesize_hourly(days)
    assert len(hours) == len(days)
    assert [h.date for h in hours] == [d.date for d in days]
    assert hours[0].precipitation == 0.5
    assert hours[0].weather_code == 61


def test_construction_sweeps_stale_versions():
    store = MemoryStore()
    WeatherCache(store, version="v1").set("v1:current:x", {"temperature": 1.0}, ttl=None)

    make_service([], cache=WeatherCache(store, version="v2"))

    assert store.keys() == []
