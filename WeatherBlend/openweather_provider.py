"""OpenWeatherMap provider implementation (requires an API key)."""
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from weather_codes import DEFAULT_CODE, describe, owm_id_to_code
from weather_data import CurrentConditions, DailyRecord, HourlyRecord, normalize_timestamp
from weather_provider import (
    WeatherAdapterBase,
    WeatherProviderBase,
    first_not_none,
    safe_float,
    scale,
)

SOURCE_ID = "openweathermap"

MS_TO_KMH = 3.6


def _condition(block: dict) -> Optional[dict]:
    weather_array = block.get("weather")
    if isinstance(weather_array, list) and weather_array and isinstance(weather_array[0], dict):
        return weather_array[0]
    return None


def _code(block: dict) -> int:
    weather = _condition(block)
    return owm_id_to_code(weather.get("id")) if weather else DEFAULT_CODE


def _precip_1h(block: dict) -> float:
    """Rain plus snow of the last hour; One Call nests it as {"1h": x}, daily as a number."""
    total = 0.0
    for key in ("rain", "snow"):
        value = block.get(key)
        if isinstance(value, dict):
            value = value.get("1h")
        total += safe_float(value) or 0.0
    return total


def _epoch_ms(value: Any) -> Optional[int]:
    seconds = safe_float(value)
    return int(seconds * 1000) if seconds is not None else None


def _iso(value: Any) -> Optional[str]:
    seconds = safe_float(value)
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


class OpenWeatherAdapter(WeatherAdapterBase):
    """
    Understands both the One Call 3.0 layout (``current``/``daily``/``hourly``,
    timemachine ``data``) and the free Current Weather 2.5 layout, where fields
    sit at the top level under ``main``, ``wind``, ``clouds``.

    Requested with ``units=metric``: wind arrives in m/s and visibility in metres.
    """

    source_id = SOURCE_ID

    @staticmethod
    def normalize_current(raw: Any) -> Optional[CurrentConditions]:
        if not isinstance(raw, dict):
            return None
        if isinstance(raw.get("current"), dict):
            return OpenWeatherAdapter._from_onecall(raw["current"])
        if isinstance(raw.get("main"), dict):
            return OpenWeatherAdapter._from_current_weather(raw)
        return None

    @staticmethod
    def _from_onecall(c: dict) -> CurrentConditions:
        code = _code(c)
        info = describe(code)
        temperature = safe_float(c.get("temp"))
        return CurrentConditions(
            temperature=temperature,
            feels_like=first_not_none(safe_float(c.get("feels_like")), temperature),
            humidity=safe_float(c.get("humidity")),
            pressure=safe_float(c.get("pressure")),
            wind_speed=scale(safe_float(c.get("wind_speed")), MS_TO_KMH),
            wind_direction=safe_float(c.get("wind_deg")),
            cloud_cover=safe_float(c.get("clouds")),
            visibility=scale(safe_float(c.get("visibility")), 1 / 1000),
            uv_index=safe_float(c.get("uvi")),
            precipitation=_precip_1h(c),
            weather_code=code,
            description=info.description,
            icon=info.icon,
            timestamp=_epoch_ms(c.get("dt")),
            sources=[SOURCE_ID],
        )

    @staticmethod
    def _from_current_weather(data: dict) -> CurrentConditions:
        main_data = data.get("main") or {}
        wind_data = data.get("wind") or {}
        clouds_data = data.get("clouds") or {}
        code = _code(data)
        info = describe(code)
        weather = _condition(data)
        if weather:
            logging.debug(f"OpenWeather condition: {weather.get('main')} - {weather.get('description')}")

        temperature = safe_float(main_data.get("temp"))
        return CurrentConditions(
            temperature=temperature,
            feels_like=first_not_none(safe_float(main_data.get("feels_like")), temperature),
            humidity=safe_float(main_data.get("humidity")),
            pressure=safe_float(main_data.get("pressure")),
            wind_speed=scale(safe_float(wind_data.get("speed")), MS_TO_KMH),
            wind_direction=safe_float(wind_data.get("deg")),
            cloud_cover=safe_float(clouds_data.get("all")) if isinstance(clouds_data, dict) else None,
            visibility=scale(safe_float(data.get("visibility")), 1 / 1000),
            uv_index=None,
            precipitation=_precip_1h(data),
            weather_code=code,
            description=info.description,
            icon=info.icon,
            timestamp=_epoch_ms(data.get("dt")),
            sources=[SOURCE_ID],
        )

    @staticmethod
    def normalize_daily(raw: Any) -> List[DailyRecord]:
        if not isinstance(raw, dict):
            return []
        # Timemachine responses hold a single hourly point, not a day
        if not isinstance(raw.get("daily"), list):
            return []
        return [record for record in map(OpenWeatherAdapter._daily_entry, raw["daily"]) if record]

    @staticmethod
    def _daily_entry(d: Any) -> Optional[DailyRecord]:
        if not isinstance(d, dict):
            return None
        timestamp = normalize_timestamp(safe_float(d.get("dt")))
        if timestamp is None:
            return None
        temp = d.get("temp") if isinstance(d.get("temp"), dict) else {}
        return DailyRecord(
            date=timestamp.split("T")[0],
            temp_min=safe_float(temp.get("min")),
            temp_max=safe_float(temp.get("max")),
            temp_avg=safe_float(temp.get("day")),
            precipitation=_precip_1h(d),
            precipitation_probability=scale(safe_float(d.get("pop")), 100),
            wind_speed_max=scale(safe_float(d.get("wind_speed")), MS_TO_KMH),
            wind_direction=safe_float(d.get("wind_deg")),
            humidity=safe_float(d.get("humidity")),
            uv_index_max=safe_float(d.get("uvi")),
            weather_code=_code(d),
            sunrise=_iso(d.get("sunrise")),
            sunset=_iso(d.get("sunset")),
            sources=[SOURCE_ID],
        )

    @staticmethod
    def normalize_hourly(raw: Any) -> List[HourlyRecord]:
        if not isinstance(raw, dict):
            return []
        rows = raw.get("hourly") if isinstance(raw.get("hourly"), list) else raw.get("data")
        if not isinstance(rows, list):
            return []

        records = []
        for h in rows:
            if not isinstance(h, dict):
                continue
            timestamp = normalize_timestamp(safe_float(h.get("dt")))
            if timestamp is None:
                continue
            temperature = safe_float(h.get("temp"))
            records.append(HourlyRecord(
                timestamp=timestamp,
                temperature=temperature,
                feels_like=first_not_none(safe_float(h.get("feels_like")), temperature),
                humidity=safe_float(h.get("humidity")),
                precipitation=_precip_1h(h),
                precipitation_probability=scale(safe_float(h.get("pop")), 100),
                wind_speed=scale(safe_float(h.get("wind_speed")), MS_TO_KMH),
                wind_direction=safe_float(h.get("wind_deg")),
                cloud_cover=safe_float(h.get("clouds")),
                pressure=safe_float(h.get("pressure")),
                weather_code=_code(h),
                sources=[SOURCE_ID],
            ))
        return records


class OpenWeatherProvider(WeatherProviderBase):
    """
    Weather provider using OpenWeatherMap.

    Current conditions come from the free Current Weather API
    (https://openweathermap.org/current); history uses the One Call 3.0
    timemachine endpoint, which needs a paid subscription.
    """

    CURRENT_URL = "https://api.openweathermap.org/data/2.5/weather"
    TIMEMACHINE_URL = "https://api.openweathermap.org/data/3.0/onecall/timemachine"

    source_id = SOURCE_ID
    requires_key = True
    adapter = OpenWeatherAdapter

    def __init__(self, timeout: float = 8.0, lang: str = "en"):
        """
        Args:
            timeout: HTTP request timeout in seconds
            lang: Language code for descriptions (e.g., "en", "de")
        """
        super().__init__(timeout=timeout)
        self.lang = lang

    def fetch_current(self, lat, lon, api_key=None, timeout=None):
        params = {
            "lat": lat,
            "lon": lon,
            "appid": self._require_key(api_key),
            "units": "metric",
            "lang": self.lang,
        }
        return self._get_json(self.CURRENT_URL, params=params, timeout=timeout)

    def fetch_daily(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        return self.fetch_hourly(lat, lon, start_date, end_date, api_key=api_key, timeout=timeout)

    def fetch_hourly(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        start = datetime.strptime(start_date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        params = {
            "lat": lat,
            "lon": lon,
            "dt": int(start.timestamp()),
            "appid": self._require_key(api_key),
            "units": "metric",
        }
        return self._get_json(self.TIMEMACHINE_URL, params=params, timeout=timeout)
