from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional

import pandas as pd

# workoutTypeValueId -> sport name, used when the service omits workoutType
WORKOUT_TYPE_VALUE_MAP: Dict[int, str] = {
    1: "Swim",
    2: "Bike",
    3: "Run",
    4: "Brick",
    5: "CrossTrain",
    6: "RestDay",
    7: "Strength",
    8: "Custom",
    9: "Walk",
    10: "Other",
}

RECORD_COLUMNS = ["timestamp", "power", "heart_rate", "cadence", "speed", "distance", "altitude"]


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def _iso(value: Any) -> Any:
    if isinstance(value, (datetime, pd.Timestamp)):
        return value.isoformat()
    return value


# --- Cache -----------------------------------------------------------------


@dataclass
class CacheEntry:
    path: str
    size_bytes: int
    last_access: float  # epoch seconds
    sequence: int = 0  # touch order, breaks equal last_access values


@dataclass
class CacheStats:
    entry_count: int
    total_bytes: int
    max_bytes: int
    location: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_count": self.entry_count,
            "total_bytes": self.total_bytes,
            "max_bytes": self.max_bytes,
            "location": self.location,
        }


@dataclass
class ClearResult:
    count: int
    bytes: int

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "bytes": self.bytes}


# --- Workouts and decoded activities ----------------------------------------


@dataclass
class WorkoutSummary:
    workout_id: int
    workout_day: str
    workout_type: str
    title: Optional[str] = None
    completed_date: Optional[str] = None
    total_time: Optional[float] = None  # hours
    total_distance: Optional[float] = None  # meters
    tss_actual: Optional[float] = None
    is_deleted: bool = False

    @property
    def display_date(self) -> str:
        return self.completed_date or self.workout_day

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkoutSummary":
        """Build from a service-shaped workout object (camelCase keys)."""
        workout_type = data.get("workoutType")
        if not workout_type:
            workout_type = WORKOUT_TYPE_VALUE_MAP.get(data.get("workoutTypeValueId", -1))
        if not workout_type and data.get("userTags"):
            workout_type = str(data["userTags"]).split(",")[0].strip() or None
        return cls(
            workout_id=int(data["workoutId"]),
            workout_day=str(data.get("workoutDay", "")),
            workout_type=workout_type or "Unknown",
            title=data.get("title"),
            completed_date=data.get("startTime") or data.get("completedDate"),
            total_time=data.get("totalTime"),
            total_distance=data.get("distance", data.get("totalDistance")),
            tss_actual=data.get("tssActual"),
            is_deleted=bool(data.get("isDeleted", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "workout_id": self.workout_id,
                "workout_day": self.workout_day,
                "workout_type": self.workout_type,
                "title": self.title,
                "completed_date": self.completed_date,
                "total_time": self.total_time,
                "total_distance": self.total_distance,
                "tss_actual": self.tss_actual,
            }
        )


@dataclass
class LapAggregate:
    lap_number: int  # 1-based
    start_time: Optional[datetime] = None
    duration: Optional[float] = None  # seconds (total elapsed)
    distance: Optional[float] = None  # meters
    avg_power: Optional[float] = None
    max_power: Optional[float] = None
    avg_heart_rate: Optional[float] = None
    max_heart_rate: Optional[float] = None
    avg_cadence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "lap_number": self.lap_number,
                "start_time": _iso(self.start_time),
                "duration": self.duration,
                "distance": self.distance,
                "avg_power": self.avg_power,
                "max_power": self.max_power,
                "avg_heart_rate": self.avg_heart_rate,
                "max_heart_rate": self.max_heart_rate,
                "avg_cadence": self.avg_cadence,
            }
        )


@dataclass
class DecodedActivity:
    records: pd.DataFrame  # one row per record message, RECORD_COLUMNS
    laps: List[LapAggregate] = field(default_factory=list)
    sessions: List[Dict[str, Any]] = field(default_factory=list)
    file_id: Optional[Dict[str, Any]] = None

    @property
    def record_count(self) -> int:
        return int(len(self.records))


# --- Best power --------------------------------------------------------------


class BestEffort(NamedTuple):
    value: int  # rounded window average, watts
    start_index: int


@dataclass
class BestPowerResult:
    duration_seconds: int
    best_power_watts: Optional[int]
    start_offset_seconds: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "duration_seconds": self.duration_seconds,
            "best_power_watts": self.best_power_watts,
        }
        if self.start_offset_seconds is not None:
            result["start_offset_seconds"] = self.start_offset_seconds
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class WorkoutBestPower:
    workout_id: int
    workout_date: Optional[str]
    workout_title: Optional[str]
    total_records: int
    results: List[BestPowerResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workout_id": self.workout_id,
            "workout_date": self.workout_date,
            "workout_title": self.workout_title,
            "total_records": self.total_records,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class PowerCurvePoint:
    duration_seconds: int
    duration_label: str
    best_power_watts: int
    workout_id: int
    workout_date: Optional[str] = None
    workout_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "duration_seconds": self.duration_seconds,
            "duration_label": self.duration_label,
            "best_power_watts": self.best_power_watts,
            "workout_id": self.workout_id,
            "workout_date": self.workout_date,
            "workout_title": self.workout_title,
        }


@dataclass
class PowerDurationCurve:
    start_date: str
    end_date: str
    workouts_analysed: int
    workouts_skipped: int
    curve: List[PowerCurvePoint] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_date": self.start_date,
            "end_date": self.end_date,
            "workouts_analysed": self.workouts_analysed,
            "workouts_skipped": self.workouts_skipped,
            "curve": [p.to_dict() for p in self.curve],
            "warnings": list(self.warnings),
        }


# --- Aerobic decoupling ------------------------------------------------------


@dataclass
class HalfSummary:
    avg_power: int
    avg_hr: int
    hr_power_ratio: float

    def to_dict(self) -> Dict[str, Any]:
        return {"avg_power": self.avg_power, "avg_hr": self.avg_hr, "hr_power_ratio": self.hr_power_ratio}


@dataclass
class DecouplingResult:
    first_half: HalfSummary
    second_half: HalfSummary
    decoupling_percent: float
    interpretation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "first_half": self.first_half.to_dict(),
            "second_half": self.second_half.to_dict(),
            "decoupling_percent": self.decoupling_percent,
            "interpretation": self.interpretation,
        }


@dataclass
class WorkoutDecoupling:
    workout_id: int
    workout_date: Optional[str]
    workout_title: Optional[str]
    total_records: int
    decoupling: DecouplingResult

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "workout_id": self.workout_id,
            "workout_date": self.workout_date,
            "workout_title": self.workout_title,
            "total_records": self.total_records,
        }
        result.update(self.decoupling.to_dict())
        return result


# --- Interval comparison -----------------------------------------------------


@dataclass
class LapValue:
    workout_id: int
    title: Optional[str] = None
    date: Optional[str] = None
    avg_power: Optional[float] = None
    max_power: Optional[float] = None
    avg_cadence: Optional[float] = None
    duration: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        # Absent metrics are omitted, never reported as zero or null
        return _drop_none(
            {
                "workout_id": self.workout_id,
                "title": self.title,
                "date": self.date,
                "avg_power": self.avg_power,
                "max_power": self.max_power,
                "avg_cadence": self.avg_cadence,
                "duration": self.duration,
            }
        )


@dataclass
class AlignedLapRow:
    lap_number: int
    values: List[LapValue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"lap_number": self.lap_number, "values": [v.to_dict() for v in self.values]}


@dataclass
class WorkoutLapSummary:
    workout_id: int
    title: Optional[str]
    date: Optional[str]
    lap_count: int
    avg_power: Optional[int]
    min_power: Optional[float]
    max_power: Optional[float]
    power_range: Optional[float]
    avg_cadence: Optional[int]
    total_duration: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workout_id": self.workout_id,
            "title": self.title,
            "date": self.date,
            "lap_count": self.lap_count,
            "avg_power": self.avg_power,
            "min_power": self.min_power,
            "max_power": self.max_power,
            "power_range": self.power_range,
            "avg_cadence": self.avg_cadence,
            "total_duration": self.total_duration,
        }


@dataclass
class IntervalComparison:
    laps: List[AlignedLapRow] = field(default_factory=list)
    summaries: List[WorkoutLapSummary] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "laps": [row.to_dict() for row in self.laps],
            "summaries": [s.to_dict() for s in self.summaries],
        }
        if self.warnings:
            result["warnings"] = list(self.warnings)
        return result
