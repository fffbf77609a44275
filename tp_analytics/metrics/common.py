from __future__ import annotations

import math
from typing import Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from ..exceptions import ActivityFileNotFoundError, NoRecordDataError
from ..io.client import TrainingDataClient
from ..io.fit_decoder import decode_activity
from ..models.types import DecodedActivity, WorkoutSummary


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from negative infinity (2.5 -> 3, -2.5 -> -2)."""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def extract_stream(records: pd.DataFrame, column: str) -> np.ndarray:
    """Per-record values of one column with absent values as 0."""
    if records.empty or column not in records.columns:
        return np.zeros(len(records), dtype=float)
    return pd.to_numeric(records[column], errors="coerce").fillna(0).to_numpy(dtype=float)


def as_samples(samples: Iterable[Optional[float]]) -> np.ndarray:
    series = pd.to_numeric(pd.Series(list(samples), dtype=object), errors="coerce")
    return series.fillna(0).to_numpy(dtype=float)


def load_workout_records(client: TrainingDataClient, workout_id: int) -> Tuple[WorkoutSummary, DecodedActivity]:
    """Metadata and decoded activity for one workout, failing fast on absence."""
    workout = client.get_workout(workout_id)
    data = client.download_activity_file(workout_id)
    if data is None:
        raise ActivityFileNotFoundError(workout_id)
    decoded = decode_activity(data)
    if decoded.records.empty:
        raise NoRecordDataError(details={"workout_id": workout_id})
    return workout, decoded
