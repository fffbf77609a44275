"""
Cross-workout lap comparison.

Laps come from the activity file's lap messages. After optional filtering,
the i-th remaining lap of every workout is put side by side in row i, and
each workout gets a summary of its filtered laps.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..config import get_config
from ..exceptions import ActivityDecodeError
from ..io.client import TrainingDataClient
from ..io.fit_decoder import decode_activity
from ..models.types import (
    AlignedLapRow,
    DecodedActivity,
    IntervalComparison,
    LapAggregate,
    LapValue,
    WorkoutLapSummary,
    WorkoutSummary,
)
from ..metrics.common import round_half_up

logger = logging.getLogger(__name__)


@dataclass
class LapFilters:
    min_power: Optional[float] = None  # keep laps with avg_power >= min_power
    target_duration: Optional[float] = None  # keep laps within tolerance of this many seconds
    tolerance: Optional[float] = None  # defaults to analysis.duration_tolerance_s


@dataclass
class WorkoutIdentity:
    workout_id: int
    title: Optional[str] = None
    date: Optional[str] = None

    @classmethod
    def from_summary(cls, workout: WorkoutSummary) -> "WorkoutIdentity":
        return cls(workout.workout_id, workout.title, workout.display_date)


def parse_laps_from_decoded(decoded: DecodedActivity) -> List[LapAggregate]:
    return list(decoded.laps)


def parse_laps_from_fit(data: bytes) -> List[LapAggregate]:
    """Lap aggregates from FIT bytes. Undecodable files yield no laps."""
    try:
        decoded = decode_activity(data)
    except ActivityDecodeError as e:
        logger.warning("Could not read laps from activity file (%s)", e)
        return []
    return parse_laps_from_decoded(decoded)


def filter_laps(laps: Sequence[LapAggregate], filters: Optional[LapFilters] = None) -> List[LapAggregate]:
    """Apply the minimum-power and target-duration filters. Laps missing the value fail the filter."""
    filtered = list(laps)
    if filters is None:
        return filtered

    if filters.min_power is not None:
        filtered = [l for l in filtered if l.avg_power is not None and l.avg_power >= filters.min_power]

    if filters.target_duration is not None:
        tolerance = filters.tolerance
        if tolerance is None:
            tolerance = get_config().analysis.duration_tolerance_s
        filtered = [
            l for l in filtered
            if l.duration is not None and abs(l.duration - filters.target_duration) <= tolerance
        ]
    return filtered


def align_laps(workout_laps: Sequence[Tuple[WorkoutIdentity, Sequence[LapAggregate]]]) -> List[AlignedLapRow]:
    """One row per lap position, one value per workout; workouts short of a lap get an empty value."""
    max_laps = max((len(laps) for _, laps in workout_laps), default=0)
    rows = []
    for i in range(max_laps):
        values = []
        for identity, laps in workout_laps:
            lap = laps[i] if i < len(laps) else None
            values.append(
                LapValue(
                    workout_id=identity.workout_id,
                    title=identity.title,
                    date=identity.date,
                    avg_power=lap.avg_power if lap else None,
                    max_power=lap.max_power if lap else None,
                    avg_cadence=lap.avg_cadence if lap else None,
                    duration=lap.duration if lap else None,
                )
            )
        rows.append(AlignedLapRow(lap_number=i + 1, values=values))
    return rows


def summarize_laps(identity: WorkoutIdentity, laps: Sequence[LapAggregate]) -> WorkoutLapSummary:
    powers = [l.avg_power for l in laps if l.avg_power is not None]
    cadences = [l.avg_cadence for l in laps if l.avg_cadence is not None]

    min_power = min(powers) if powers else None
    max_power = max(powers) if powers else None
    return WorkoutLapSummary(
        workout_id=identity.workout_id,
        title=identity.title,
        date=identity.date,
        lap_count=len(laps),
        avg_power=int(round_half_up(float(np.mean(powers)))) if powers else None,
        min_power=min_power,
        max_power=max_power,
        power_range=max_power - min_power if powers else None,
        avg_cadence=int(round_half_up(float(np.mean(cadences)))) if cadences else None,
        total_duration=float(sum(l.duration or 0 for l in laps)),
    )


async def _fetch_workout_laps(
    client: TrainingDataClient, workout_id: int, warnings: List[str]
) -> Tuple[WorkoutIdentity, List[LapAggregate]]:
    meta, data = await asyncio.gather(
        asyncio.to_thread(client.get_workout, workout_id),
        asyncio.to_thread(client.download_activity_file, workout_id),
        return_exceptions=True,
    )

    if isinstance(meta, Exception):
        logger.warning("Could not load metadata for workout %s (%s)", workout_id, meta)
        warnings.append(f"Workout {workout_id}: metadata unavailable ({meta})")
        identity = WorkoutIdentity(workout_id)
    else:
        identity = WorkoutIdentity.from_summary(meta)
    label = f"Workout {workout_id} ({identity.title or 'Untitled'})"

    if isinstance(data, Exception) or data is None:
        if isinstance(data, Exception):
            logger.warning("Activity file download failed for workout %s (%s)", workout_id, data)
        warnings.append(f"{label}: no activity file available")
        return identity, []

    laps = await asyncio.to_thread(parse_laps_from_fit, data)
    if not laps:
        warnings.append(f"{label}: activity file contains no laps")
    return identity, laps


async def compare_intervals(
    client: TrainingDataClient,
    workout_ids: Iterable[int],
    filters: Optional[LapFilters] = None,
) -> IntervalComparison:
    """
    Compare laps across workouts.

    Args:
        client: Fetch client
        workout_ids: Workouts to compare, in output order
        filters: Optional lap filters applied per workout before alignment

    Returns:
        Aligned lap rows, per-workout summaries and warnings for workouts
        that contributed no laps
    """
    workout_ids = list(workout_ids)
    if not workout_ids:
        raise ValueError("At least one workout id is required")

    # Each task appends to its own list so warnings keep request order
    per_workout_warnings: List[List[str]] = [[] for _ in workout_ids]
    fetched = await asyncio.gather(
        *(_fetch_workout_laps(client, wid, w) for wid, w in zip(workout_ids, per_workout_warnings))
    )

    workout_laps = [(identity, filter_laps(laps, filters)) for identity, laps in fetched]
    comparison = IntervalComparison(
        laps=align_laps(workout_laps),
        summaries=[summarize_laps(identity, laps) for identity, laps in workout_laps],
        warnings=[msg for msgs in per_workout_warnings for msg in msgs],
    )
    logger.info("Compared %d workouts across %d lap positions", len(workout_ids), len(comparison.laps))
    return comparison
