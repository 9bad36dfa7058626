"""Weather service: concurrent multi-source fetching with caching, merging and fallbacks."""
import asyncio
import functools
import inspect
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from brightsky_provider import BrightSkyProvider
from meteostat_provider import MeteostatProvider
from openmeteo_provider import OpenMeteoProvider
from openweather_provider import OpenWeatherProvider
from visualcrossing_provider import VisualCrossingProvider
from weather_cache import MemoryStore, WeatherCache, ttl_for
from weather_data import CurrentConditions, DailyRecord, HourlyRecord, normalize_date
from weather_merger import SOURCE_PRIORITY, merge_current, merge_daily, merge_hourly, priority_rank
from weather_provider import (
    AllSourcesFailedError,
    NoDataError,
    ValidationError,
    WeatherProviderBase,
    WeatherProviderError,
)
from weather_retry import RetryOptions, with_retry

# Earliest date the historical archives cover
MIN_HISTORY_DATE = "1940-01-01"
FALLBACK_HOUR = "12:00:00"


class KeyLookup(Protocol):
    def get_key(self, provider_id: str) -> Optional[str]: ...


class HistoryFallback(Protocol):
    """External batch-history source consulted when no provider has daily data."""

    def fetch_historical_data(self, lat: float, lon: float, start_date: str, end_date: str) -> Any: ...


@dataclass
class SourceResult:
    """Outcome of one provider call: normalized data or the error that stopped it."""
    source_id: str
    data: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        if self.error is not None or not self.data:
            return False
        if isinstance(self.data, list):
            return True
        return self.data.has_data()


def default_providers(timeout: float = 8.0) -> List[WeatherProviderBase]:
    return [
        OpenMeteoProvider(timeout=timeout),
        OpenWeatherProvider(timeout=timeout),
        VisualCrossingProvider(timeout=timeout),
        BrightSkyProvider(timeout=timeout),
        MeteostatProvider(timeout=timeout),
    ]


def validate_coordinates(lat: float, lon: float) -> None:
    if isinstance(lat, bool) or not isinstance(lat, (int, float)) or not -90 <= lat <= 90:
        raise ValidationError(f"Invalid latitude: {lat!r} (expected -90..90)")
    if isinstance(lon, bool) or not isinstance(lon, (int, float)) or not -180 <= lon <= 180:
        raise ValidationError(f"Invalid longitude: {lon!r} (expected -180..180)")


def _parse_date(value: str, name: str) -> date:
    try:
        if not isinstance(value, str) or len(value) != 10:
            raise ValueError(value)
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValidationError(f"Invalid {name}: {value!r} (expected YYYY-MM-DD)") from exc


def validate_date_range(start_date: str, end_date: str) -> None:
    start = _parse_date(start_date, "start_date")
    end = _parse_date(end_date, "end_date")
    if start > end:
        raise ValidationError(f"start_date {start_date} is after end_date {end_date}")
    if start_date < MIN_HISTORY_DATE:
        raise ValidationError(f"start_date {start_date} is before {MIN_HISTORY_DATE}")


def synthesize_hourly(days: Iterable[DailyRecord]) -> List[HourlyRecord]:
    """One mid-day hourly record per daily record, flagged daily_fallback."""
    return [
        HourlyRecord(
            timestamp=f"{day.date}T{FALLBACK_HOUR}",
            temperature=day.temp_avg,
            humidity=day.humidity,
            precipitation=day.precipitation,
            precipitation_probability=day.precipitation_probability,
            wind_speed=day.wind_speed_max,
            wind_direction=day.wind_direction,
            weather_code=day.weather_code,
            sources=list(day.sources),
            daily_fallback=True,
        )
        for day in days
    ]


def _fallback_record(item: Any) -> Optional[DailyRecord]:
    """A DailyRecord from a fallback row, or None when the row has no usable date."""
    if isinstance(item, DailyRecord):
        record = DailyRecord.from_dict(item.to_dict())
    elif isinstance(item, dict):
        try:
            record = DailyRecord.from_dict(item)
        except (TypeError, ValueError):
            return None
    else:
        return None
    record.date = normalize_date(record.date) if isinstance(record.date, str) else None
    if not record.date:
        return None
    return record


class WeatherService:
    """
    Aggregates weather data from every eligible provider.

    Each request runs CACHE_CHECK -> FANOUT -> COLLECT -> MERGE -> (FALLBACK)
    -> CACHE_WRITE. Providers are called concurrently, each through its own
    retry loop and timeout; a failing source is recorded in ``last_failures``
    and never affects its siblings. Only an aggregate failure reaches the
    caller.

    Build one instance at startup and pass it to whoever needs weather data.
    """

    def __init__(
        self,
        providers: Optional[List[WeatherProviderBase]] = None,
        cache: Optional[WeatherCache] = None,
        key_lookup: Optional[KeyLookup] = None,
        history_fallback: Optional[HistoryFallback] = None,
        retry_options: Optional[RetryOptions] = None,
        timeout: float = 8.0,
        historical_timeout: float = 15.0,
        sleep: Callable[[float], Any] = asyncio.sleep,
        priority=SOURCE_PRIORITY,
    ):
        """
        Args:
            providers: Providers to query (default: all five)
            cache: Result cache (default: process-local memory cache)
            key_lookup: Object with get_key(provider_id) for keyed providers
            history_fallback: Optional daily fallback collaborator
            retry_options: Retry attempts and backoff
            timeout: Per-call timeout for current conditions, seconds
            historical_timeout: Per-call timeout for daily/hourly ranges, seconds
            sleep: Backoff sleep (tests inject a recorder)
            priority: Source ids in merge priority order
        """
        self.providers = providers if providers is not None else default_providers(timeout)
        self.cache = cache or WeatherCache(MemoryStore())
        self.key_lookup = key_lookup
        self.history_fallback = history_fallback
        self.retry_options = retry_options or RetryOptions()
        self.timeout = timeout
        self.historical_timeout = historical_timeout
        self.sleep = sleep
        self.priority = priority
        self.last_failures: Dict[str, Dict[str, str]] = {}

        removed = self.cache.sweep()
        logging.info(
            f"Weather service ready: {len(self.providers)} providers, "
            f"cache version {self.cache.version} ({removed} stale entries swept)"
        )

    def close(self) -> None:
        self.cache.close()

    # Public API ---------------------------------------------------------

    async def load_current_weather(self, lat: float, lon: float) -> CurrentConditions:
        """
        Current conditions merged from every source that answered.

        Raises:
            ValidationError: Bad coordinates
            AllSourcesFailedError: No source produced data
        """
        validate_coordinates(lat, lon)
        today = datetime.now(tz=timezone.utc).date().isoformat()
        key = self.cache.generate_key("current", today, today, lat, lon)

        cached = self.cache.get(key)
        if cached is not None:
            logging.info("Current weather from cache")
            return CurrentConditions.from_dict(cached)

        logging.info(f"Loading current weather for {lat}, {lon}")
        results = await self._fan_out("current", lat, lon)
        merged = merge_current([r.data for r in results if r.ok], self.priority)
        if merged is None:
            logging.error(f"All current weather sources failed: {self.last_failures.get('current')}")
            raise AllSourcesFailedError("All current weather sources failed")

        self.cache.set(key, merged.to_dict(), ttl=ttl_for("current"))
        return merged

    async def load_history(self, lat: float, lon: float, start_date: str, end_date: str) -> List[DailyRecord]:
        """
        Daily records for an inclusive date range.

        Falls back to the history collaborator when no provider has data.

        Raises:
            ValidationError: Bad coordinates or dates
            NoDataError: Nothing found, fallback included
        """
        validate_coordinates(lat, lon)
        validate_date_range(start_date, end_date)
        key = self.cache.generate_key("daily", start_date, end_date, lat, lon)

        cached = self.cache.get(key)
        if cached is not None:
            logging.info(f"Daily history {start_date}..{end_date} from cache")
            return [DailyRecord.from_dict(item) for item in cached]

        logging.info(f"Loading daily history for {lat}, {lon} ({start_date} to {end_date})")
        results = await self._fan_out("daily", lat, lon, start_date, end_date)
        merged = merge_daily(r.data for r in results if r.ok)

        if not merged:
            merged = await self._history_fallback(lat, lon, start_date, end_date)
        if not merged:
            raise NoDataError(f"No daily weather data for {start_date} to {end_date}")

        self.cache.set(key, [record.to_dict() for record in merged], ttl=ttl_for("daily", end_date))
        return merged

    async def load_hourly_history(self, lat: float, lon: float, start_date: str, end_date: str) -> List[HourlyRecord]:
        """
        Hourly records for an inclusive date range, keyed by UTC timestamp.

        When no provider returns hourly data the daily history is used instead,
        one mid-day record per day with ``daily_fallback=True``.

        Raises:
            ValidationError: Bad coordinates or dates
            NoDataError: Neither hourly nor daily data could be found
        """
        validate_coordinates(lat, lon)
        validate_date_range(start_date, end_date)
        key = self.cache.generate_key("hourly", start_date, end_date, lat, lon)

        cached = self.cache.get(key)
        if cached is not None:
            logging.info(f"Hourly history {start_date}..{end_date} from cache")
            return [HourlyRecord.from_dict(item) for item in cached]

        logging.info(f"Loading hourly history for {lat}, {lon} ({start_date} to {end_date})")
        results = await self._fan_out("hourly", lat, lon, start_date, end_date)
        merged = merge_hourly(r.data for r in results if r.ok)

        if not merged:
            logging.warning("No hourly data from any source, deriving from daily history")
            try:
                days = await self.load_history(lat, lon, start_date, end_date)
            except NoDataError as e:
                raise NoDataError(f"No hourly weather data for {start_date} to {end_date}") from e
            merged = synthesize_hourly(days)

        self.cache.set(key, [record.to_dict() for record in merged], ttl=ttl_for("hourly", end_date))
        return merged

    # Fan-out ------------------------------------------------------------

    def eligible_providers(self) -> List[WeatherProviderBase]:
        eligible = []
        for provider in self.providers:
            if provider.requires_key and not self._key_for(provider):
                logging.debug(f"Skipping {provider.source_id}: no API key configured")
                continue
            eligible.append(provider)
        return eligible

    def _key_for(self, provider: WeatherProviderBase) -> Optional[str]:
        if self.key_lookup is None:
            return None
        return self.key_lookup.get_key(provider.source_id)

    async def _fan_out(self, kind: str, lat: float, lon: float,
                       start_date: Optional[str] = None, end_date: Optional[str] = None) -> List[SourceResult]:
        providers = self.eligible_providers()
        tasks = [self._fetch_source(p, kind, lat, lon, start_date, end_date) for p in providers]
        results = await asyncio.gather(*tasks)

        failures = {r.source_id: str(r.error) for r in results if r.error is not None}
        self.last_failures[kind] = failures
        succeeded = [r.source_id for r in results if r.ok]
        logging.info(f"{kind}: {len(succeeded)}/{len(results)} sources returned data {succeeded}")

        # Arrival order is irrelevant; merge precedence follows source priority
        return sorted(results, key=lambda r: priority_rank(r.source_id, self.priority))

    async def _fetch_source(self, provider: WeatherProviderBase, kind: str, lat: float, lon: float,
                            start_date: Optional[str], end_date: Optional[str]) -> SourceResult:
        api_key = self._key_for(provider)
        if kind == "current":
            timeout = self.timeout
            call = functools.partial(provider.fetch_current, lat, lon, api_key=api_key, timeout=timeout)
            normalize = provider.adapter.normalize_current
        elif kind == "daily":
            timeout = self.historical_timeout
            call = functools.partial(provider.fetch_daily, lat, lon, start_date, end_date,
                                     api_key=api_key, timeout=timeout)
            normalize = provider.adapter.normalize_daily
        else:
            timeout = self.historical_timeout
            call = functools.partial(provider.fetch_hourly, lat, lon, start_date, end_date,
                                     api_key=api_key, timeout=timeout)
            normalize = provider.adapter.normalize_hourly

        async def attempt():
            try:
                return await asyncio.wait_for(asyncio.to_thread(call), timeout)
            except asyncio.TimeoutError as e:
                raise WeatherProviderError(f"Network error: timeout after {timeout}s") from e

        name = f"{provider.source_id} {kind}"
        try:
            raw = await with_retry(attempt, name, self.retry_options, sleep=self.sleep)
            data = normalize(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logging.warning(f"[{name}] source failed: {e}")
            return SourceResult(provider.source_id, error=e)

        if kind == "daily" and data:
            data = [r for r in data if start_date <= r.date <= end_date]
        result = SourceResult(provider.source_id, data=data)
        if not result.ok:
            logging.info(f"[{name}] no data in response")
        return result


    # Fallback -----------------------------------------------------------

    async def _history_fallback(self, lat: float, lon: float, start_date: str, end_date: str) -> List[DailyRecord]:
        if self.history_fallback is None:
            return []
        logging.warning(f"No daily data from any source, asking history fallback for {start_date}..{end_date}")
        try:
            result = self.history_fallback.fetch_historical_data(lat, lon, start_date, end_date)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logging.error(f"History fallback failed: {e}")
            self.last_failures.setdefault("daily", {})["history-fallback"] = str(e)
            return []

        if result is None:
            return []
        if not isinstance(result, (list, tuple)):
            logging.error(f"History fallback returned {type(result).__name__}, expected a list of days")
            return []

        records = []
        for item in result:
            record = _fallback_record(item)
            if record is None:
                logging.warning(f"Skipping invalid history fallback row: {item!r}")
                continue
            if not start_date <= record.date <= end_date:
                continue
            if not record.sources:
                record.sources = ["history-fallback"]
            records.append(record)
        return merge_daily([records])
