from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..config import get_config
from ..exceptions import NoPowerDataError
from ..io.client import TrainingDataClient
from ..io.fit_decoder import decode_activity
from ..models.types import (
    BestEffort,
    BestPowerResult,
    PowerCurvePoint,
    PowerDurationCurve,
    WorkoutBestPower,
    WorkoutSummary,
)
from .common import as_samples, extract_stream, load_workout_records, round_half_up

logger = logging.getLogger(__name__)

DURATION_EXCEEDS_RECORDING = "Duration exceeds recording length"


def compute_best_power(samples: Iterable[Optional[float]], duration_samples: int) -> Optional[BestEffort]:
    """Best average power over any window of `duration_samples` consecutive samples.

    Absent samples count as 0. The earliest window wins ties. Returns None
    when the window is longer than the stream.
    """
    if duration_samples < 1:
        raise ValueError("duration_samples must be at least 1")
    power = pd.Series(as_samples(samples))
    if duration_samples > len(power):
        return None

    sums = power.rolling(window=duration_samples, min_periods=duration_samples).sum()
    end_index = int(sums.idxmax())  # first occurrence of the maximum
    best_sum = float(sums.iloc[end_index])
    return BestEffort(
        value=int(round_half_up(best_sum / duration_samples)),
        start_index=end_index - duration_samples + 1,
    )


def format_duration(seconds: int) -> str:
    """5 -> '5s', 300 -> '5min', 90 -> '1min 30s'."""
    if seconds < 60:
        return f"{seconds}s"
    mins, secs = divmod(int(seconds), 60)
    if secs == 0:
        return f"{mins}min"
    return f"{mins}min {secs}s"


def extract_power_stream(records: pd.DataFrame) -> np.ndarray:
    return extract_stream(records, "power")


def has_power(stream: Sequence[float]) -> bool:
    return bool(np.any(np.asarray(stream, dtype=float) > 0))


def _best_power_results(stream: np.ndarray, durations: Iterable[int]) -> List[BestPowerResult]:
    results = []
    for duration in sorted(durations):
        effort = compute_best_power(stream, duration)
        if effort is None:
            results.append(BestPowerResult(duration, None, error=DURATION_EXCEEDS_RECORDING))
        else:
            results.append(BestPowerResult(duration, effort.value, start_offset_seconds=effort.start_index))
    return results


async def get_best_power(client: TrainingDataClient, workout_id: int, durations: Iterable[int]) -> WorkoutBestPower:
    """Best power per duration for one workout.

    Raises:
        WorkoutNotFoundError, ActivityFileNotFoundError, ActivityDecodeError,
        NoRecordDataError, NoPowerDataError
    """
    durations = list(durations)
    workout, decoded = await asyncio.to_thread(load_workout_records, client, workout_id)
    stream = extract_power_stream(decoded.records)
    if not has_power(stream):
        raise NoPowerDataError(details={"workout_id": workout_id})

    return WorkoutBestPower(
        workout_id=workout_id,
        workout_date=workout.workout_day,
        workout_title=workout.title,
        total_records=len(stream),
        results=_best_power_results(stream, durations),
    )


def _load_power_stream(client: TrainingDataClient, workout: WorkoutSummary) -> Tuple[Optional[np.ndarray], Optional[str]]:
    data = client.download_activity_file(workout.workout_id)
    if data is None:
        return None, "no activity file"
    decoded = decode_activity(data)
    if decoded.records.empty:
        return None, "no record data in activity file"
    stream = extract_power_stream(decoded.records)
    if not has_power(stream):
        return None, "no power data"
    return stream, None


async def build_power_duration_curve(
    client: TrainingDataClient,
    start_date: str,
    end_date: str,
    durations: Optional[Iterable[int]] = None,
    exclude_workout_ids: Optional[Iterable[int]] = None,
) -> PowerDurationCurve:
    """
    Best power per duration across every cycling workout in a date range.

    Workouts without a usable power stream are skipped with a warning.
    For each duration the highest value wins; on an exact tie the workout
    listed first keeps it. Durations no workout can cover are left out.
    """
    settings = get_config().analysis
    durations = sorted(durations if durations is not None else settings.default_durations)
    excluded = set(exclude_workout_ids or [])

    all_workouts = await asyncio.to_thread(client.get_workouts, start_date, end_date)
    cycling = [
        w for w in all_workouts
        if w.workout_type == settings.cycling_workout_type and w.workout_id not in excluded
    ]
    logger.info("Building power curve from %d cycling workouts (%s to %s)", len(cycling), start_date, end_date)

    warnings: List[str] = []
    streams: List[Tuple[WorkoutSummary, np.ndarray]] = []
    batch_size = max(1, settings.batch_size)
    for i in range(0, len(cycling), batch_size):
        batch = cycling[i:i + batch_size]
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(_load_power_stream, client, w) for w in batch),
            return_exceptions=True,
        )
        for workout, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                reason = str(outcome)
            else:
                stream, reason = outcome
                if stream is not None:
                    streams.append((workout, stream))
                    continue
            warnings.append(f"Workout {workout.workout_id}: {reason}")
            logger.warning("Skipping workout %s: %s", workout.workout_id, reason)

    curve: List[PowerCurvePoint] = []
    for duration in durations:
        best: Optional[Tuple[int, WorkoutSummary]] = None
        for workout, stream in streams:
            effort = compute_best_power(stream, duration)
            if effort is not None and (best is None or effort.value > best[0]):
                best = (effort.value, workout)
        if best is None:
            continue
        value, workout = best
        curve.append(
            PowerCurvePoint(
                duration_seconds=duration,
                duration_label=format_duration(duration),
                best_power_watts=value,
                workout_id=workout.workout_id,
                workout_date=workout.workout_day,
                workout_title=workout.title,
            )
        )

    return PowerDurationCurve(
        start_date=start_date,
        end_date=end_date,
        workouts_analysed=len(streams),
        workouts_skipped=len(cycling) - len(streams),
        curve=curve,
        warnings=warnings,
    )
