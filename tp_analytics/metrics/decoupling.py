from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

import numpy as np

from ..exceptions import InsufficientDataError, NoHeartRateDataError, NoPowerDataError, NoValidDataError
from ..io.client import TrainingDataClient
from ..models.types import DecouplingResult, HalfSummary, WorkoutDecoupling
from .common import as_samples, extract_stream, load_workout_records, round_half_up

logger = logging.getLogger(__name__)

GOOD_THRESHOLD_PCT = 5.0
MODERATE_THRESHOLD_PCT = 10.0


def interpret_decoupling(percent: float) -> str:
    magnitude = abs(percent)
    if magnitude < GOOD_THRESHOLD_PCT:
        return "Good aerobic fitness - minimal cardiac drift"
    if magnitude < MODERATE_THRESHOLD_PCT:
        return "Moderate decoupling - aerobic endurance developing"
    return "High decoupling - aerobic base needs work"


def _half_summary(power: np.ndarray, hr: np.ndarray) -> HalfSummary:
    avg_power = float(np.mean(power))
    avg_hr = float(np.mean(hr))
    if avg_power == 0 or avg_hr == 0:
        raise InsufficientDataError("Power or heart rate is zero across one half of the workout")
    return HalfSummary(
        avg_power=int(round_half_up(avg_power)),
        avg_hr=int(round_half_up(avg_hr)),
        hr_power_ratio=avg_hr / avg_power,
    )


def compute_aerobic_decoupling(
    power_samples: Iterable[Optional[float]],
    hr_samples: Iterable[Optional[float]],
) -> DecouplingResult:
    """Heart-rate-per-watt drift between the first and second half of a workout.

    Indices where both power and heart rate are 0 (paused) are dropped before
    the split. The shorter stream is padded with 0.
    """
    power = as_samples(power_samples)
    hr = as_samples(hr_samples)
    n = max(len(power), len(hr))
    power = np.pad(power, (0, n - len(power)))
    hr = np.pad(hr, (0, n - len(hr)))

    moving = (power != 0) | (hr != 0)
    power, hr = power[moving], hr[moving]

    if len(power) == 0:
        raise NoValidDataError()
    if not np.any(power > 0):
        raise NoPowerDataError()
    if not np.any(hr > 0):
        raise NoHeartRateDataError()
    if len(power) < 2:
        raise InsufficientDataError("At least two valid records are needed to split the workout")

    mid = len(power) // 2
    first = _half_summary(power[:mid], hr[:mid])
    second = _half_summary(power[mid:], hr[mid:])

    percent = (second.hr_power_ratio - first.hr_power_ratio) / first.hr_power_ratio * 100
    rounded = round_half_up(percent, 2)

    first.hr_power_ratio = round_half_up(first.hr_power_ratio, 4)
    second.hr_power_ratio = round_half_up(second.hr_power_ratio, 4)
    return DecouplingResult(
        first_half=first,
        second_half=second,
        decoupling_percent=rounded,
        interpretation=interpret_decoupling(rounded),
    )


async def get_aerobic_decoupling(client: TrainingDataClient, workout_id: int) -> WorkoutDecoupling:
    """Aerobic decoupling for one workout.

    Raises:
        WorkoutNotFoundError, ActivityFileNotFoundError, ActivityDecodeError,
        NoRecordDataError and the InsufficientDataError family
    """
    workout, decoded = await asyncio.to_thread(load_workout_records, client, workout_id)
    result = compute_aerobic_decoupling(
        extract_stream(decoded.records, "power"),
        extract_stream(decoded.records, "heart_rate"),
    )
    logger.info("Workout %s decoupling: %.2f%%", workout_id, result.decoupling_percent)
    return WorkoutDecoupling(
        workout_id=workout_id,
        workout_date=workout.workout_day,
        workout_title=workout.title,
        total_records=decoded.record_count,
        decoupling=result,
    )
