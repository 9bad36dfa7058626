"""Meteostat provider: daily station observations via RapidAPI (requires a key)."""
from datetime import date, timedelta
from typing import Any, List, Optional

from weather_codes import describe, precipitation_to_code
from weather_data import CurrentConditions, DailyRecord, HourlyRecord, epoch_millis
from weather_provider import (
    WeatherAdapterBase,
    WeatherProviderBase,
    average_of_bounds,
    first_not_none,
    safe_float,
    scale,
)

SOURCE_ID = "meteostat"


def _rows(raw: Any) -> List[dict]:
    if not isinstance(raw, dict) or not isinstance(raw.get("data"), list):
        return []
    return [row for row in raw["data"] if isinstance(row, dict) and row.get("date")]


def _avg_temp(row: dict) -> Optional[float]:
    return first_not_none(
        safe_float(row.get("tavg")),
        average_of_bounds(safe_float(row.get("tmin")), safe_float(row.get("tmax"))),
    )


def _code(row: dict) -> int:
    return precipitation_to_code(row.get("prcp"), row.get("snow"))


class MeteostatAdapter(WeatherAdapterBase):
    """
    Meteostat only has daily station rows (``tavg``, ``prcp``, ``wspd`` in km/h,
    ``tsun`` in minutes). There is no current or hourly endpoint: the latest
    row stands in for current conditions and each day becomes one midday
    hourly record flagged ``daily_fallback``.
    """

    source_id = SOURCE_ID

    @staticmethod
    def normalize_current(raw: Any) -> Optional[CurrentConditions]:
        rows = _rows(raw)
        if not rows:
            return None
        latest = rows[-1]
        code = _code(latest)
        info = describe(code)
        return CurrentConditions(
            temperature=_avg_temp(latest),
            feels_like=safe_float(latest.get("tavg")),
            pressure=safe_float(latest.get("pres")),
            wind_speed=safe_float(latest.get("wspd")),
            wind_direction=safe_float(latest.get("wdir")),
            precipitation=first_not_none(safe_float(latest.get("prcp")), 0.0),
            weather_code=code,
            description=info.description,
            icon=info.icon,
            timestamp=epoch_millis(str(latest["date"]).split(" ")[0]),
            sources=[SOURCE_ID],
        )

    @staticmethod
    def normalize_daily(raw: Any) -> List[DailyRecord]:
        records = []
        for d in _rows(raw):
            records.append(DailyRecord(
                date=str(d["date"]).split(" ")[0].split("T")[0],
                temp_min=safe_float(d.get("tmin")),
                temp_max=safe_float(d.get("tmax")),
                temp_avg=_avg_temp(d),
                precipitation=first_not_none(safe_float(d.get("prcp")), 0.0),
                wind_speed_max=safe_float(d.get("wspd")),
                wind_direction=safe_float(d.get("wdir")),
                sunshine_hours=scale(safe_float(d.get("tsun")), 1 / 60),
                weather_code=_code(d),
                sources=[SOURCE_ID],
            ))
        return records

    @staticmethod
    def normalize_hourly(raw: Any) -> List[HourlyRecord]:
        records = []
        for day in MeteostatAdapter.normalize_daily(raw):
            records.append(HourlyRecord(
                timestamp=f"{day.date}T12:00:00",
                temperature=day.temp_avg,
                feels_like=day.temp_avg,
                precipitation=day.precipitation,
                wind_speed=day.wind_speed_max,
                wind_direction=day.wind_direction,
                weather_code=day.weather_code,
                sources=[SOURCE_ID],
                daily_fallback=True,
            ))
        return records


class MeteostatProvider(WeatherProviderBase):
    BASE_URL = "https://meteostat.p.rapidapi.com/point/daily"
    RAPIDAPI_HOST = "meteostat.p.rapidapi.com"

    source_id = SOURCE_ID
    requires_key = True
    adapter = MeteostatAdapter

    def fetch_current(self, lat, lon, api_key=None, timeout=None):
        # Latest station day; the adapter picks the last row
        today = date.today()
        start = (today - timedelta(days=7)).isoformat()
        return self.fetch_daily(lat, lon, start, today.isoformat(), api_key=api_key, timeout=timeout)

    def fetch_daily(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        headers = {
            "x-rapidapi-key": self._require_key(api_key),
            "x-rapidapi-host": self.RAPIDAPI_HOST,
        }
        params = {"lat": lat, "lon": lon, "start": start_date, "end": end_date}
        return self._get_json(self.BASE_URL, params=params, headers=headers, timeout=timeout)

    def fetch_hourly(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        return self.fetch_daily(lat, lon, start_date, end_date, api_key=api_key, timeout=timeout)
