"""Weather domain model - canonical records shared by every provider adapter."""
from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional, Union


# Hourly merge keys are UTC wall-clock timestamps in this format.
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Strip any time-of-day component from an ISO date/datetime string."""
    if not value:
        return None
    return str(value).split("T")[0]


def normalize_timestamp(
    value: Union[str, int, float, None],
    offset_hours: Optional[float] = None,
) -> Optional[str]:
    """
    Convert a provider timestamp into the canonical hourly key.

    Accepts ISO 8601 strings with or without an explicit offset (``Z`` included)
    and UNIX epoch seconds. Naive strings are taken as UTC unless
    ``offset_hours`` says which local offset they were reported in.

    Returns:
        str: ``YYYY-MM-DDTHH:MM:SS`` in UTC, or None if the value can't be parsed
    """
    if value is None or value == "":
        return None

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        moment = datetime.fromtimestamp(value, tz=timezone.utc)
        return moment.strftime(TIMESTAMP_FORMAT)

    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None

    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    elif offset_hours:
        moment = moment - timedelta(hours=offset_hours)
    return moment.strftime(TIMESTAMP_FORMAT)


def epoch_millis(value: Union[str, int, float, None], offset_hours: Optional[float] = None) -> Optional[int]:
    """Epoch milliseconds for any value normalize_timestamp accepts."""
    key = normalize_timestamp(value, offset_hours)
    if key is None:
        return None
    moment = datetime.strptime(key, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


class _Record:
    """Serialization shared by the canonical records."""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        values["sources"] = list(values.get("sources") or [])
        return cls(**values)

    def has_data(self) -> bool:
        """True if any measured field is populated."""
        for f in fields(self):
            if f.name in self._unmeasured_fields():
                continue
            if getattr(self, f.name) is not None:
                return True
        return False

    @classmethod
    def _unmeasured_fields(cls) -> tuple:
        return ("sources",)


@dataclass
class CurrentConditions(_Record):
    """A single snapshot of the current weather at one location."""
    temperature: Optional[float] = None  # °C
    feels_like: Optional[float] = None  # °C
    humidity: Optional[float] = None  # %
    pressure: Optional[float] = None  # hPa
    wind_speed: Optional[float] = None  # km/h
    wind_direction: Optional[float] = None  # degrees
    cloud_cover: Optional[float] = None  # %
    visibility: Optional[float] = None  # km
    uv_index: Optional[float] = None
    precipitation: Optional[float] = 0.0  # mm, absent means none recorded
    weather_code: Optional[int] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    timestamp: Optional[int] = None  # epoch milliseconds
    sources: List[str] = field(default_factory=list)

    @classmethod
    def _unmeasured_fields(cls) -> tuple:
        # weather_code falls back to DEFAULT_CODE and description/icon derive from it
        return ("sources", "timestamp", "precipitation", "weather_code", "description", "icon")

    def is_stale(self, max_age_seconds: int = 900) -> bool:
        """Check if this data is stale (older than max_age_seconds)."""
        if self.timestamp is None:
            return True
        current_ms = int(datetime.now(tz=timezone.utc).timestamp() * 1000)
        age = (current_ms - self.timestamp) / 1000
        return age > max_age_seconds


@dataclass
class DailyRecord(_Record):
    """Aggregated weather for one calendar day, keyed by ``date``."""
    date: str
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None
    temp_avg: Optional[float] = None
    precipitation: Optional[float] = 0.0  # mm
    precipitation_probability: Optional[float] = None  # %
    wind_speed_max: Optional[float] = None  # km/h
    wind_direction: Optional[float] = None  # dominant, degrees
    humidity: Optional[float] = None  # daily mean, %
    sunshine_hours: Optional[float] = None
    uv_index_max: Optional[float] = None
    weather_code: Optional[int] = None
    sunrise: Optional[str] = None
    sunset: Optional[str] = None
    sources: List[str] = field(default_factory=list)

    @classmethod
    def _unmeasured_fields(cls) -> tuple:
        return ("sources", "date", "precipitation")


@dataclass
class HourlyRecord(_Record):
    """Weather for one hour slot, keyed by its UTC ``timestamp``."""
    timestamp: str
    temperature: Optional[float] = None
    feels_like: Optional[float] = None
    humidity: Optional[float] = None
    precipitation: Optional[float] = 0.0
    precipitation_probability: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None
    cloud_cover: Optional[float] = None
    pressure: Optional[float] = None
    weather_code: Optional[int] = None
    sources: List[str] = field(default_factory=list)
    # Set when the record was synthesized from a daily aggregate
    daily_fallback: bool = False

    @classmethod
    def _unmeasured_fields(cls) -> tuple:
        return ("sources", "timestamp", "precipitation", "daily_fallback")

    @property
    def date(self) -> str:
        return self.timestamp.split("T")[0]

    @property
    def hour(self) -> int:
        time_part = self.timestamp.split("T")[1] if "T" in self.timestamp else "00"
        return int(time_part.split(":")[0])
