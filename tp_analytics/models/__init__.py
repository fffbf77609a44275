from .types import (
    AlignedLapRow,
    BestEffort,
    BestPowerResult,
    CacheEntry,
    CacheStats,
    ClearResult,
    DecodedActivity,
    DecouplingResult,
    HalfSummary,
    IntervalComparison,
    LapAggregate,
    LapValue,
    PowerCurvePoint,
    PowerDurationCurve,
    WorkoutBestPower,
    WorkoutDecoupling,
    WorkoutLapSummary,
    WorkoutSummary,
)
