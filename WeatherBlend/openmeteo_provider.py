"""Open-Meteo provider: free, keyless, global forecast and ERA5 archive."""
from typing import Any, List, Optional

from weather_codes import DEFAULT_CODE, describe
from weather_data import (
    CurrentConditions,
    DailyRecord,
    HourlyRecord,
    epoch_millis,
    normalize_timestamp,
)
from weather_provider import (
    WeatherAdapterBase,
    WeatherProviderBase,
    average_of_bounds,
    first_not_none,
    safe_float,
    safe_index,
    scale,
)

SOURCE_ID = "open-meteo"

CURRENT_FIELDS = [
    "temperature_2m", "relative_humidity_2m", "apparent_temperature", "precipitation",
    "rain", "weather_code", "cloud_cover", "visibility", "wind_speed_10m",
    "wind_direction_10m", "surface_pressure", "uv_index",
]
DAILY_FIELDS = [
    "temperature_2m_max", "temperature_2m_min", "temperature_2m_mean", "precipitation_sum",
    "wind_speed_10m_max", "wind_direction_10m_dominant", "relative_humidity_2m_mean",
    "sunshine_duration", "weather_code", "sunrise", "sunset",
]
HOURLY_FIELDS = [
    "temperature_2m", "apparent_temperature", "relative_humidity_2m", "precipitation",
    "weather_code", "surface_pressure", "cloud_cover", "wind_speed_10m", "wind_direction_10m",
]


def _column(block: dict, index: int, *names: str) -> Optional[float]:
    """Value at index from the first present column among the aliases."""
    for name in names:
        if name in block and block[name] is not None:
            return safe_float(safe_index(block[name], index))
    return None


def _code(value: Any) -> int:
    code = safe_float(value)
    return int(code) if code is not None else DEFAULT_CODE


class OpenMeteoAdapter(WeatherAdapterBase):
    """Open-Meteo returns column arrays (``daily.time[i]``, ``daily.x[i]``)."""

    source_id = SOURCE_ID

    @staticmethod
    def normalize_current(raw: Any) -> Optional[CurrentConditions]:
        if not isinstance(raw, dict) or not isinstance(raw.get("current"), dict):
            return None
        c = raw["current"]
        code = _code(first_not_none(c.get("weather_code"), c.get("weathercode")))
        info = describe(code)
        temperature = safe_float(first_not_none(c.get("temperature_2m"), c.get("temperature")))

        offset_hours = (safe_float(raw.get("utc_offset_seconds")) or 0) / 3600
        return CurrentConditions(
            temperature=temperature,
            feels_like=first_not_none(safe_float(c.get("apparent_temperature")), temperature),
            humidity=safe_float(first_not_none(c.get("relative_humidity_2m"), c.get("relativehumidity_2m"))),
            pressure=safe_float(first_not_none(c.get("surface_pressure"), c.get("pressure_msl"))),
            wind_speed=safe_float(first_not_none(c.get("wind_speed_10m"), c.get("windspeed_10m"))),
            wind_direction=safe_float(first_not_none(c.get("wind_direction_10m"), c.get("winddirection_10m"))),
            cloud_cover=safe_float(first_not_none(c.get("cloud_cover"), c.get("cloudcover"))),
            visibility=scale(safe_float(c.get("visibility")), 1 / 1000),  # m -> km
            uv_index=safe_float(c.get("uv_index")),
            precipitation=first_not_none(safe_float(c.get("precipitation")), safe_float(c.get("rain")), 0.0),
            weather_code=code,
            description=info.description,
            icon=info.icon,
            timestamp=epoch_millis(c.get("time"), offset_hours),
            sources=[SOURCE_ID],
        )

    @staticmethod
    def normalize_daily(raw: Any) -> List[DailyRecord]:
        if not isinstance(raw, dict) or not isinstance(raw.get("daily"), dict):
            return []
        d = raw["daily"]
        dates = d.get("time")
        if not isinstance(dates, list):
            return []

        records = []
        for i, date in enumerate(dates):
            if not date:
                continue
            temp_min = _column(d, i, "temperature_2m_min")
            temp_max = _column(d, i, "temperature_2m_max")
            sunshine = _column(d, i, "sunshine_duration")
            records.append(DailyRecord(
                date=str(date).split("T")[0],
                temp_min=temp_min,
                temp_max=temp_max,
                temp_avg=first_not_none(_column(d, i, "temperature_2m_mean"),
                                        average_of_bounds(temp_min, temp_max)),
                precipitation=first_not_none(_column(d, i, "precipitation_sum"), 0.0),
                precipitation_probability=_column(d, i, "precipitation_probability_max"),
                wind_speed_max=_column(d, i, "wind_speed_10m_max", "windspeed_10m_max"),
                wind_direction=_column(d, i, "wind_direction_10m_dominant", "winddirection_10m_dominant"),
                humidity=_column(d, i, "relative_humidity_2m_mean", "relativehumidity_2m_mean"),
                sunshine_hours=scale(sunshine, 1 / 3600),  # seconds -> hours
                uv_index_max=_column(d, i, "uv_index_max"),
                weather_code=_code(safe_index(d.get("weather_code"), i)),
                sunrise=safe_index(d.get("sunrise"), i),
                sunset=safe_index(d.get("sunset"), i),
                sources=[SOURCE_ID],
            ))
        return records

    @staticmethod
    def normalize_hourly(raw: Any) -> List[HourlyRecord]:
        if not isinstance(raw, dict) or not isinstance(raw.get("hourly"), dict):
            return []
        h = raw["hourly"]
        times = h.get("time")
        if not isinstance(times, list):
            return []
        offset_hours = (safe_float(raw.get("utc_offset_seconds")) or 0) / 3600

        records = []
        for i, value in enumerate(times):
            timestamp = normalize_timestamp(value, offset_hours)
            if timestamp is None:
                continue
            records.append(HourlyRecord(
                timestamp=timestamp,
                temperature=_column(h, i, "temperature_2m"),
                feels_like=_column(h, i, "apparent_temperature"),
                humidity=_column(h, i, "relative_humidity_2m", "relativehumidity_2m"),
                precipitation=first_not_none(_column(h, i, "precipitation"), 0.0),
                precipitation_probability=_column(h, i, "precipitation_probability"),
                wind_speed=_column(h, i, "wind_speed_10m", "windspeed_10m"),
                wind_direction=_column(h, i, "wind_direction_10m", "winddirection_10m"),
                cloud_cover=_column(h, i, "cloud_cover", "cloudcover"),
                pressure=_column(h, i, "surface_pressure", "pressure_msl"),
                weather_code=_code(safe_index(h.get("weather_code"), i)),
                sources=[SOURCE_ID],
            ))
        return records


class OpenMeteoProvider(WeatherProviderBase):
    """Open-Meteo forecast API for current conditions, archive API for history."""

    FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
    ARCHIVE_URL = "https://archive-api.open-meteo.com/v1/archive"

    source_id = SOURCE_ID
    adapter = OpenMeteoAdapter

    def fetch_current(self, lat, lon, api_key=None, timeout=None):
        params = {
            "latitude": lat,
            "longitude": lon,
            "current": ",".join(CURRENT_FIELDS),
            "wind_speed_unit": "kmh",
            "timezone": "UTC",
        }
        return self._get_json(self.FORECAST_URL, params=params, timeout=timeout)

    def fetch_daily(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        params = {
            "latitude": lat,
            "longitude": lon,
            "start_date": start_date,
            "end_date": end_date,
            "daily": ",".join(DAILY_FIELDS),
            "wind_speed_unit": "kmh",
            "timezone": "auto",
        }
        return self._get_json(self.ARCHIVE_URL, params=params, timeout=timeout)

    def fetch_hourly(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        params = {
            "latitude": lat,
            "longitude": lon,
            "start_date": start_date,
            "end_date": end_date,
            "hourly": ",".join(HOURLY_FIELDS),
            "wind_speed_unit": "kmh",
            "timezone": "UTC",
        }
        return self._get_json(self.ARCHIVE_URL, params=params, timeout=timeout)
