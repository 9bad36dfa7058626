"""Combine normalized results from several sources into one canonical result."""
import logging
from dataclasses import fields, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from weather_data import CurrentConditions, DailyRecord, HourlyRecord, normalize_date

# Free aggregator first, keyed/premium sources next, regional sources last
SOURCE_PRIORITY = ("open-meteo", "openweathermap", "visualcrossing", "brightsky", "meteostat")

# Never backfilled from another source
_SKIP_FIELDS = ("sources", "daily_fallback")

Record = TypeVar("Record", CurrentConditions, DailyRecord, HourlyRecord)


def priority_rank(source_id: str, priority: Sequence[str] = SOURCE_PRIORITY) -> int:
    """Position of source_id in the priority list; unknown sources rank last."""
    try:
        return priority.index(source_id)
    except ValueError:
        return len(priority)


def _copy(record: Record) -> Record:
    return replace(record, sources=list(record.sources))


def _backfill(target: Record, candidate: Record) -> bool:
    """Fill target's None fields from candidate. Returns True if anything was adopted."""
    adopted = False
    for f in fields(target):
        if f.name in _SKIP_FIELDS:
            continue
        if getattr(target, f.name) is None and getattr(candidate, f.name) is not None:
            setattr(target, f.name, getattr(candidate, f.name))
            adopted = True
    return adopted


def _add_sources(target: Record, candidate: Record) -> None:
    for source in candidate.sources:
        if source not in target.sources:
            target.sources.append(source)


def merge_current(
    results: Iterable[Optional[CurrentConditions]],
    priority: Sequence[str] = SOURCE_PRIORITY,
) -> Optional[CurrentConditions]:
    """
    Null-coalescing merge of per-source current conditions.

    Results are ordered by the priority of their first source (stable, so
    unknown sources keep their input order at the end). The highest priority
    result seeds the merge; later ones only fill fields that are still None.
    ``sources`` lists every source that contributed, in priority order.

    Returns:
        The merged conditions, or None if no result was given
    """
    candidates = [r for r in results if r is not None]
    if not candidates:
        return None
    candidates.sort(key=lambda r: priority_rank(r.sources[0] if r.sources else "", priority))

    merged = _copy(candidates[0])
    for candidate in candidates[1:]:
        if _backfill(merged, candidate):
            _add_sources(merged, candidate)
    logging.debug(f"Merged current conditions from {merged.sources}")
    return merged


def _merge_keyed(
    results: Iterable[Optional[List[Record]]],
    key_func: Callable[[Record], Optional[str]],
) -> List[Record]:
    by_key: Dict[str, Record] = {}
    for records in results:
        for record in records or []:
            key = key_func(record)
            if not key:
                continue
            existing = by_key.get(key)
            if existing is None:
                by_key[key] = _copy(record)
            else:
                _backfill(existing, record)
                _add_sources(existing, record)
    return [by_key[key] for key in sorted(by_key)]


def _daily_key(record: DailyRecord) -> Optional[str]:
    return normalize_date(record.date)


def _hourly_key(record: HourlyRecord) -> Optional[str]:
    return record.timestamp or None


def merge_daily(results: Iterable[Optional[List[DailyRecord]]]) -> List[DailyRecord]:
    """
    Keyed merge by date; results must already be in priority order.

    The first record seen for a date wins, later ones backfill None fields
    and append their source ids. Sorted ascending by date.
    """
    merged = _merge_keyed(results, _daily_key)
    for record in merged:
        record.date = normalize_date(record.date)
    return merged


def merge_hourly(results: Iterable[Optional[List[HourlyRecord]]]) -> List[HourlyRecord]:
    """Keyed merge by canonical UTC timestamp, same rules as merge_daily."""
    return _merge_keyed(results, _hourly_key)
