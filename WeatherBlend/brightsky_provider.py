"""BrightSky provider: keyless JSON API over DWD (German weather service) data."""
from typing import Any, Dict, List, Optional

from weather_codes import DEFAULT_CODE, describe, icon_to_code
from weather_data import CurrentConditions, DailyRecord, HourlyRecord, epoch_millis, normalize_timestamp
from weather_provider import (
    WeatherAdapterBase,
    WeatherProviderBase,
    first_not_none,
    mean,
    safe_float,
    scale,
)

SOURCE_ID = "brightsky"


def _rows(raw: Any) -> List[Dict[str, Any]]:
    """``weather`` is an object for /current_weather and a list for /weather."""
    if not isinstance(raw, dict):
        return []
    weather = raw.get("weather")
    if isinstance(weather, dict):
        return [weather]
    if isinstance(weather, list):
        return [row for row in weather if isinstance(row, dict)]
    return []


def _wind_speed(row: dict) -> Optional[float]:
    return safe_float(first_not_none(row.get("wind_speed"), row.get("wind_speed_10")))


def _precipitation(row: dict) -> Optional[float]:
    return safe_float(first_not_none(row.get("precipitation"), row.get("precipitation_60")))


class BrightSkyAdapter(WeatherAdapterBase):
    """
    BrightSky reports one row per hour in km/h, hPa and mm; visibility is in
    metres and sunshine in minutes per period.
    """

    source_id = SOURCE_ID

    @staticmethod
    def normalize_current(raw: Any) -> Optional[CurrentConditions]:
        rows = _rows(raw)
        if not rows:
            return None
        w = rows[0]
        code = icon_to_code(w.get("icon"))
        info = describe(code)
        temperature = safe_float(w.get("temperature"))
        return CurrentConditions(
            temperature=temperature,
            feels_like=temperature,
            humidity=safe_float(w.get("relative_humidity")),
            pressure=safe_float(w.get("pressure_msl")),
            wind_speed=_wind_speed(w),
            wind_direction=safe_float(first_not_none(w.get("wind_direction"), w.get("wind_direction_10"))),
            cloud_cover=safe_float(w.get("cloud_cover")),
            visibility=scale(safe_float(w.get("visibility")), 1 / 1000),
            uv_index=None,
            precipitation=first_not_none(_precipitation(w), 0.0),
            weather_code=code,
            description=info.description,
            icon=info.icon,
            timestamp=epoch_millis(w.get("timestamp")),
            sources=[SOURCE_ID],
        )

    @staticmethod
    def normalize_daily(raw: Any) -> List[DailyRecord]:
        by_date: Dict[str, Dict[str, Any]] = {}
        for row in _rows(raw):
            timestamp = normalize_timestamp(row.get("timestamp"))
            if timestamp is None:
                continue
            date = timestamp.split("T")[0]
            bucket = by_date.setdefault(date, {
                "temps": [], "precip": 0.0, "winds": [], "humidity": [],
                "sunshine": None, "codes": [],
            })
            temperature = safe_float(row.get("temperature"))
            if temperature is not None:
                bucket["temps"].append(temperature)
            precipitation = _precipitation(row)
            if precipitation is not None:
                bucket["precip"] += precipitation
            wind = _wind_speed(row)
            if wind is not None:
                bucket["winds"].append(wind)
            humidity = safe_float(row.get("relative_humidity"))
            if humidity is not None:
                bucket["humidity"].append(humidity)
            sunshine = safe_float(row.get("sunshine"))
            if sunshine is not None:
                bucket["sunshine"] = (bucket["sunshine"] or 0.0) + sunshine / 60
            if row.get("icon"):
                bucket["codes"].append(icon_to_code(row.get("icon")))

        records = []
        for date in sorted(by_date):
            bucket = by_date[date]
            temps = bucket["temps"]
            codes = bucket["codes"]
            records.append(DailyRecord(
                date=date,
                temp_min=min(temps) if temps else None,
                temp_max=max(temps) if temps else None,
                temp_avg=mean(temps),
                precipitation=round(bucket["precip"], 2),
                wind_speed_max=max(bucket["winds"]) if bucket["winds"] else None,
                humidity=mean(bucket["humidity"]),
                sunshine_hours=bucket["sunshine"],
                weather_code=codes[len(codes) // 2] if codes else DEFAULT_CODE,
                sources=[SOURCE_ID],
            ))
        return records

    @staticmethod
    def normalize_hourly(raw: Any) -> List[HourlyRecord]:
        records = []
        for w in _rows(raw):
            timestamp = normalize_timestamp(w.get("timestamp"))
            if timestamp is None:
                continue
            temperature = safe_float(w.get("temperature"))
            records.append(HourlyRecord(
                timestamp=timestamp,
                temperature=temperature,
                feels_like=temperature,
                humidity=safe_float(w.get("relative_humidity")),
                precipitation=first_not_none(_precipitation(w), 0.0),
                precipitation_probability=safe_float(w.get("precipitation_probability")),
                wind_speed=_wind_speed(w),
                wind_direction=safe_float(w.get("wind_direction")),
                cloud_cover=safe_float(w.get("cloud_cover")),
                pressure=safe_float(w.get("pressure_msl")),
                weather_code=icon_to_code(w.get("icon")),
                sources=[SOURCE_ID],
            ))
        return records


class BrightSkyProvider(WeatherProviderBase):
    """BrightSky current_weather and weather (hourly history) endpoints."""

    BASE_URL = "https://api.brightsky.dev"

    source_id = SOURCE_ID
    adapter = BrightSkyAdapter

    def fetch_current(self, lat, lon, api_key=None, timeout=None):
        params = {"lat": lat, "lon": lon, "tz": "Etc/UTC"}
        return self._get_json(f"{self.BASE_URL}/current_weather", params=params, timeout=timeout)

    def fetch_daily(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        # Daily values are aggregated from the hourly rows
        return self.fetch_hourly(lat, lon, start_date, end_date, timeout=timeout)

    def fetch_hourly(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        params = {
            "lat": lat,
            "lon": lon,
            "date": start_date,
            "last_date": f"{end_date}T23:00:00+00:00",
            "tz": "Etc/UTC",
        }
        return self._get_json(f"{self.BASE_URL}/weather", params=params, timeout=timeout)
