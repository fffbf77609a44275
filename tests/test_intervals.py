import asyncio

import pytest

from conftest import encode_activity, power_records
from tp_analytics.aggregation.intervals import (
    LapFilters,
    WorkoutIdentity,
    align_laps,
    compare_intervals,
    filter_laps,
    parse_laps_from_fit,
    summarize_laps,
)
from tp_analytics.models.types import LapAggregate


def _lap(n, power=None, duration=None, cadence=None, max_power=None):
    return LapAggregate(lap_number=n, avg_power=power, duration=duration, avg_cadence=cadence, max_power=max_power)


def _lap_msg(power=None, duration=None, cadence=None, **extra):
    msg = dict(extra)
    if power is not None:
        msg["avg_power"] = power
    if duration is not None:
        msg["total_elapsed_time"] = duration
    if cadence is not None:
        msg["avg_cadence"] = cadence
    return msg


def test_parse_laps_from_fit_maps_fields():
    data = encode_activity(
        laps=[
            {"start_time": "2025-01-01T06:00:00", "total_elapsed_time": 300.5, "total_distance": 2500.0,
             "avg_power": 250, "max_power": 410, "avg_heart_rate": 150, "max_heart_rate": 168, "avg_cadence": 92},
            {"total_elapsed_time": 120.0},
        ]
    )
    laps = parse_laps_from_fit(data)

    assert [l.lap_number for l in laps] == [1, 2]
    first = laps[0]
    assert first.duration == 300.5
    assert first.distance == 2500.0
    assert first.avg_power == 250
    assert first.max_power == 410
    assert first.avg_heart_rate == 150
    assert first.max_heart_rate == 168
    assert first.avg_cadence == 92
    assert laps[1].avg_power is None


def test_parse_laps_from_undecodable_bytes_is_empty():
    assert parse_laps_from_fit(b"\xff\xfe not fit") == []


def test_filter_by_min_power_drops_laps_without_power():
    laps = [_lap(1, 300), _lap(2, 150), _lap(3, None), _lap(4, 200)]
    kept = filter_laps(laps, LapFilters(min_power=200))
    assert [l.lap_number for l in kept] == [1, 4]


def test_filter_by_target_duration_uses_tolerance():
    laps = [_lap(1, duration=58), _lap(2, duration=60.5), _lap(3, duration=63), _lap(4), _lap(5, duration=62)]
    kept = filter_laps(laps, LapFilters(target_duration=60))
    assert [l.lap_number for l in kept] == [1, 2, 5]

    kept = filter_laps(laps, LapFilters(target_duration=60, tolerance=0.5))
    assert [l.lap_number for l in kept] == [2]


def test_no_filters_keeps_everything():
    laps = [_lap(1), _lap(2)]
    assert filter_laps(laps, None) == laps
    assert filter_laps(laps, LapFilters()) == laps


def test_align_pads_missing_laps_with_absent_values():
    a = WorkoutIdentity(1, "A", "2025-01-01")
    b = WorkoutIdentity(2, "B", "2025-01-02")
    c = WorkoutIdentity(3, None, None)
    rows = align_laps([
        (a, [_lap(1, 300, 60)]),
        (b, [_lap(1, 310, 61), _lap(2, 305, 59)]),
        (c, [_lap(1, 290, 60)]),
    ])

    assert len(rows) == 2
    assert all(len(r.values) == 3 for r in rows)
    assert [r.lap_number for r in rows] == [1, 2]

    second = rows[1].to_dict()["values"]
    assert second[0] == {"workout_id": 1, "title": "A", "date": "2025-01-01"}
    assert second[1]["avg_power"] == 305
    assert second[2] == {"workout_id": 3}


def test_align_with_no_laps_is_empty():
    assert align_laps([(WorkoutIdentity(1), [])]) == []
    assert align_laps([]) == []


def test_summary_statistics():
    laps = [_lap(1, 300, 60, 90), _lap(2, 281, 61, 95), _lap(3, None, None, None)]
    summary = summarize_laps(WorkoutIdentity(7, "VO2", "2025-03-01"), laps)

    assert summary.lap_count == 3
    assert summary.avg_power == 291  # 290.5 rounds up
    assert summary.min_power == 281
    assert summary.max_power == 300
    assert summary.power_range == 19
    assert summary.avg_cadence == 93  # 92.5 rounds up
    assert summary.total_duration == 121


def test_summary_of_no_laps():
    summary = summarize_laps(WorkoutIdentity(7), []).to_dict()
    assert summary == {
        "workout_id": 7,
        "title": None,
        "date": None,
        "lap_count": 0,
        "avg_power": None,
        "min_power": None,
        "max_power": None,
        "power_range": None,
        "avg_cadence": None,
        "total_duration": 0.0,
    }


def test_compare_intervals_aligns_across_workouts(source, client):
    source.add(1, title="Week 1", completed_date="2025-01-01T07:00:00",
               data=encode_activity(laps=[_lap_msg(300, 60)]))
    source.add(2, title="Week 2", data=encode_activity(laps=[_lap_msg(310, 60), _lap_msg(305, 60)]))
    source.add(3, title="Week 3", data=encode_activity(laps=[_lap_msg(320, 60)]))

    result = asyncio.run(compare_intervals(client, [1, 2, 3]))
    out = result.to_dict()

    assert "warnings" not in out
    assert len(out["laps"]) == 2
    assert [len(row["values"]) for row in out["laps"]] == [3, 3]
    assert [v["workout_id"] for v in out["laps"][0]["values"]] == [1, 2, 3]
    assert out["laps"][0]["values"][0]["date"] == "2025-01-01T07:00:00"
    assert out["laps"][0]["values"][1]["date"] == "2025-01-01"
    assert "avg_power" not in out["laps"][1]["values"][0]
    assert [s["lap_count"] for s in out["summaries"]] == [1, 2, 1]


def test_compare_intervals_applies_filters_per_workout(source, client):
    source.add(1, data=encode_activity(laps=[_lap_msg(120, 600), _lap_msg(300, 240), _lap_msg(310, 241)]))
    source.add(2, data=encode_activity(laps=[_lap_msg(290, 239), _lap_msg(100, 300)]))

    result = asyncio.run(compare_intervals(client, [1, 2], LapFilters(min_power=250, target_duration=240)))

    assert [s.lap_count for s in result.summaries] == [2, 1]
    assert result.laps[0].values[0].avg_power == 300
    assert result.laps[0].values[1].avg_power == 290
    assert result.laps[1].values[1].avg_power is None


def test_compare_intervals_warns_for_missing_or_lapless_files(source, client):
    source.add(1, title="Intervals", data=encode_activity(laps=[_lap_msg(300, 60)]))
    source.add(2, title="No file")
    source.add(3, data=encode_activity(power_records([100, 100])))
    source.add(4, title="Broken", data=RuntimeError("boom"))

    result = asyncio.run(compare_intervals(client, [1, 2, 3, 4]))

    assert result.warnings == [
        "Workout 2 (No file): no activity file available",
        "Workout 3 (Untitled): activity file contains no laps",
        "Workout 4 (Broken): no activity file available",
    ]
    assert [s.lap_count for s in result.summaries] == [1, 0, 0, 0]
    assert [s.total_duration for s in result.summaries[1:]] == [0, 0, 0]


def test_compare_intervals_survives_metadata_failure(source, client):
    source.add(1, title="Hidden", data=encode_activity(laps=[_lap_msg(300, 60)]))
    source.broken_metadata.add(1)

    result = asyncio.run(compare_intervals(client, [1]))

    assert result.summaries[0].workout_id == 1
    assert result.summaries[0].title is None
    assert result.summaries[0].lap_count == 1
    assert len(result.warnings) == 1
    assert result.warnings[0].startswith("Workout 1: metadata unavailable")


def test_compare_intervals_requires_ids(client):
    with pytest.raises(ValueError):
        asyncio.run(compare_intervals(client, []))
