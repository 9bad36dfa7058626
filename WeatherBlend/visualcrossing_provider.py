"""Visual Crossing Timeline API provider (requires an API key)."""
from typing import Any, List, Optional

from weather_codes import condition_to_code, describe
from weather_data import CurrentConditions, DailyRecord, HourlyRecord, normalize_timestamp
from weather_provider import (
    WeatherAdapterBase,
    WeatherProviderBase,
    average_of_bounds,
    first_not_none,
    safe_float,
)

SOURCE_ID = "visualcrossing"


class VisualCrossingAdapter(WeatherAdapterBase):
    """
    Requested with ``unitGroup=metric``, so speeds are already km/h and
    visibility km. Hour rows carry local wall-clock times; the payload's
    ``tzoffset`` (hours) converts them to UTC keys.
    """

    source_id = SOURCE_ID

    @staticmethod
    def normalize_current(raw: Any) -> Optional[CurrentConditions]:
        if not isinstance(raw, dict) or not isinstance(raw.get("currentConditions"), dict):
            return None
        c = raw["currentConditions"]
        code = condition_to_code(c.get("conditions"))
        info = describe(code)
        temperature = safe_float(c.get("temp"))
        epoch = safe_float(c.get("datetimeEpoch"))
        return CurrentConditions(
            temperature=temperature,
            feels_like=first_not_none(safe_float(c.get("feelslike")), temperature),
            humidity=safe_float(c.get("humidity")),
            pressure=safe_float(c.get("pressure")),
            wind_speed=safe_float(c.get("windspeed")),
            wind_direction=safe_float(c.get("winddir")),
            cloud_cover=safe_float(c.get("cloudcover")),
            visibility=safe_float(c.get("visibility")),
            uv_index=safe_float(c.get("uvindex")),
            precipitation=first_not_none(safe_float(c.get("precip")), 0.0),
            weather_code=code,
            description=info.description,
            icon=info.icon,
            timestamp=int(epoch * 1000) if epoch is not None else None,
            sources=[SOURCE_ID],
        )

    @staticmethod
    def normalize_daily(raw: Any) -> List[DailyRecord]:
        if not isinstance(raw, dict) or not isinstance(raw.get("days"), list):
            return []
        records = []
        for d in raw["days"]:
            if not isinstance(d, dict) or not d.get("datetime"):
                continue
            temp_min = safe_float(d.get("tempmin"))
            temp_max = safe_float(d.get("tempmax"))
            sunrise = d.get("sunrise")
            sunset = d.get("sunset")
            records.append(DailyRecord(
                date=str(d["datetime"]).split("T")[0],
                temp_min=temp_min,
                temp_max=temp_max,
                temp_avg=first_not_none(safe_float(d.get("temp")), average_of_bounds(temp_min, temp_max)),
                precipitation=first_not_none(safe_float(d.get("precip")), 0.0),
                precipitation_probability=safe_float(d.get("precipprob")),
                wind_speed_max=safe_float(d.get("windspeed")),
                wind_direction=safe_float(d.get("winddir")),
                humidity=safe_float(d.get("humidity")),
                uv_index_max=safe_float(d.get("uvindex")),
                weather_code=condition_to_code(d.get("conditions")),
                sunrise=f"{d['datetime']}T{sunrise}" if sunrise else None,
                sunset=f"{d['datetime']}T{sunset}" if sunset else None,
                sources=[SOURCE_ID],
            ))
        return records

    @staticmethod
    def normalize_hourly(raw: Any) -> List[HourlyRecord]:
        if not isinstance(raw, dict) or not isinstance(raw.get("days"), list):
            return []
        offset_hours = safe_float(raw.get("tzoffset"))
        records = []
        for day in raw["days"]:
            if not isinstance(day, dict) or not isinstance(day.get("hours"), list):
                continue
            for h in day["hours"]:
                if not isinstance(h, dict) or not h.get("datetime"):
                    continue
                timestamp = normalize_timestamp(f"{day.get('datetime')}T{h['datetime']}", offset_hours)
                if timestamp is None:
                    continue
                temperature = safe_float(h.get("temp"))
                records.append(HourlyRecord(
                    timestamp=timestamp,
                    temperature=temperature,
                    feels_like=first_not_none(safe_float(h.get("feelslike")), temperature),
                    humidity=safe_float(h.get("humidity")),
                    precipitation=first_not_none(safe_float(h.get("precip")), 0.0),
                    precipitation_probability=safe_float(h.get("precipprob")),
                    wind_speed=safe_float(h.get("windspeed")),
                    wind_direction=safe_float(h.get("winddir")),
                    cloud_cover=safe_float(h.get("cloudcover")),
                    pressure=safe_float(h.get("pressure")),
                    weather_code=condition_to_code(h.get("conditions")),
                    sources=[SOURCE_ID],
                ))
        return records


class VisualCrossingProvider(WeatherProviderBase):
    BASE_URL = "https://weather.visualcrossing.com/VisualCrossingWebServices/rest/services/timeline"

    source_id = SOURCE_ID
    requires_key = True
    adapter = VisualCrossingAdapter

    def fetch_current(self, lat, lon, api_key=None, timeout=None):
        key = self._require_key(api_key)
        params = {"unitGroup": "metric", "key": key, "include": "current", "contentType": "json"}
        return self._get_json(f"{self.BASE_URL}/{lat},{lon}/today", params=params, timeout=timeout)

    def fetch_daily(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        return self._timeline(lat, lon, start_date, end_date, "days", api_key, timeout)

    def fetch_hourly(self, lat, lon, start_date, end_date, api_key=None, timeout=None):
        return self._timeline(lat, lon, start_date, end_date, "hours", api_key, timeout)

    def _timeline(self, lat, lon, start_date, end_date, include, api_key, timeout):
        key = self._require_key(api_key)
        params = {"unitGroup": "metric", "include": include, "key": key, "contentType": "json"}
        url = f"{self.BASE_URL}/{lat},{lon}/{start_date}/{end_date}"
        return self._get_json(url, params=params, timeout=timeout)
