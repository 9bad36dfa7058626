"""Tests for the data merger."""
from weather_data import CurrentConditions, DailyRecord, HourlyRecord
from weather_merger import SOURCE_PRIORITY, merge_current, merge_daily, merge_hourly, priority_rank


def test_merge_current_null_coalescing():
    """Higher priority wins when both have a value; gaps are filled from the rest."""
    a = CurrentConditions(temperature=20.0, humidity=None, sources=["A"])
    b = CurrentConditions(temperature=18.0, humidity=55.0, sources=["B"])

    merged = merge_current([a, b], priority=("A", "B"))

    assert merged.temperature == 20.0
    assert merged.humidity == 55.0
    assert merged.sources == ["A", "B"]


def test_merge_current_orders_by_priority_not_arrival():
    brightsky = CurrentConditions(temperature=15.0, pressure=1010.0, sources=["brightsky"])
    open_meteo = CurrentConditions(temperature=16.0, sources=["open-meteo"])

    merged = merge_current([brightsky, open_meteo])

    assert merged.temperature == 16.0
    assert merged.pressure == 1010.0
    assert merged.sources == ["open-meteo", "brightsky"]


def test_merge_current_skips_sources_that_add_nothing():
    full = CurrentConditions(temperature=1.0, humidity=2.0, sources=["open-meteo"])
    redundant = CurrentConditions(temperature=3.0, sources=["meteostat"])
    merged = merge_current([full, redundant])
    assert merged.sources == ["open-meteo"]


def test_merge_current_does_not_mutate_inputs():
    a = CurrentConditions(temperature=20.0, sources=["open-meteo"])
    b = CurrentConditions(humidity=40.0, sources=["brightsky"])
    merge_current([a, b])
    assert a.humidity is None
    assert a.sources == ["open-meteo"]


def test_merge_current_empty():
    assert merge_current([]) is None
    assert merge_current([None, None]) is None


def test_merge_daily_scenario():
    a = [DailyRecord(date="2024-01-01", temp_max=10.0, sources=["A"])]
    b = [DailyRecord(date="2024-01-01", temp_max=12.0, temp_min=2.0, sources=["B"])]

    merged = merge_daily([a, b])

    assert len(merged) == 1
    assert merged[0].date == "2024-01-01"
    assert merged[0].temp_max == 10.0
    assert merged[0].temp_min == 2.0
    assert merged[0].sources == ["A", "B"]


def test_merge_daily_keys_strip_time_and_sort():
    a = [
        DailyRecord(date="2024-01-03", temp_max=1.0, sources=["open-meteo"]),
        DailyRecord(date="2024-01-01T00:00", temp_max=2.0, sources=["open-meteo"]),
    ]
    b = [
        DailyRecord(date="2024-01-01", humidity=70.0, sources=["visualcrossing"]),
        DailyRecord(date="2024-01-02", temp_max=3.0, sources=["visualcrossing"]),
    ]
    merged = merge_daily([a, [], None, b])

    assert [d.date for d in merged] == ["2024-01-01", "2024-01-02", "2024-01-03"]
    assert merged[0].humidity == 70.0
    assert merged[0].sources == ["open-meteo", "visualcrossing"]
    assert merged[1].sources == ["visualcrossing"]


def test_merge_daily_empty():
    assert merge_daily([]) == []
    assert merge_daily([[], []]) == []


def test_merge_hourly_unique_sorted_keys():
    a = [
        HourlyRecord(timestamp="2024-01-01T01:00:00", temperature=1.0, sources=["open-meteo"]),
        HourlyRecord(timestamp="2024-01-01T00:00:00", temperature=0.5, sources=["open-meteo"]),
    ]
    b = [
        HourlyRecord(timestamp="2024-01-01T00:00:00", temperature=9.0, pressure=1000.0, sources=["brightsky"]),
        HourlyRecord(timestamp="2024-01-01T12:00:00", temperature=5.0, sources=["meteostat"], daily_fallback=True),
    ]
    merged = merge_hourly([a, b])

    timestamps = [h.timestamp for h in merged]
    assert timestamps == sorted(timestamps)
    assert len(set(timestamps)) == len(timestamps) == 3
    assert merged[0].temperature == 0.5
    assert merged[0].pressure == 1000.0
    assert merged[0].sources == ["open-meteo", "brightsky"]
    assert merged[0].daily_fallback is False
    assert merged[2].daily_fallback is True


def test_priority_rank():
    assert priority_rank("open-meteo") == 0
    assert priority_rank("meteostat") == len(SOURCE_PRIORITY) - 1
    assert priority_rank("unknown") == len(SOURCE_PRIORITY)
