"""
Sources of workout metadata and raw activity files.

The analytics only need three calls from the training service, described by
ActivitySource. LocalActivitySource serves them from a directory export:

    <data_dir>/workouts.json        list of workout objects (service JSON)
    <data_dir>/<workout_id>.fit     activity file, optionally gzipped as .fit.gz
"""
from __future__ import annotations

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

from ..config import get_config
from ..exceptions import WorkoutNotFoundError
from ..models.types import WorkoutSummary

logger = logging.getLogger(__name__)

DateLike = Union[str, date, datetime]


def to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()


class ActivitySource(Protocol):
    def fetch_activity_bytes(self, workout_id: int) -> Optional[bytes]:
        """Raw activity file bytes (possibly gzip-compressed), or None if the workout has no file."""
        ...

    def get_workout(self, workout_id: int) -> WorkoutSummary:
        ...

    def list_workouts(self, start_date: DateLike, end_date: DateLike, include_deleted: bool = False) -> List[WorkoutSummary]:
        """Workouts whose day falls in [start_date, end_date] inclusive."""
        ...


class LocalActivitySource:
    """ActivitySource backed by a local export directory."""

    def __init__(self, data_dir: Optional[str] = None):
        settings = get_config().source
        self.data_dir = Path(data_dir or settings.data_dir).expanduser()
        self.index_file = self.data_dir / settings.workouts_index
        self._workouts: Optional[Dict[int, WorkoutSummary]] = None

    def _load_index(self) -> Dict[int, WorkoutSummary]:
        if self._workouts is not None:
            return self._workouts
        workouts: Dict[int, WorkoutSummary] = {}
        if self.index_file.exists():
            with open(self.index_file, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
            for item in raw:
                try:
                    workout = WorkoutSummary.from_dict(item)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Skipping malformed workout entry in %s (%s)", self.index_file, e)
                    continue
                workouts[workout.workout_id] = workout
        else:
            logger.warning("No workout index found at %s", self.index_file)
        self._workouts = workouts
        logger.debug("Loaded %d workouts from %s", len(workouts), self.index_file)
        return workouts

    def fetch_activity_bytes(self, workout_id: int) -> Optional[bytes]:
        for name in (f"{workout_id}.fit", f"{workout_id}.fit.gz"):
            path = self.data_dir / name
            if path.exists():
                return path.read_bytes()
        return None

    def get_workout(self, workout_id: int) -> WorkoutSummary:
        workout = self._load_index().get(int(workout_id))
        if workout is None:
            raise WorkoutNotFoundError(workout_id)
        return workout

    def list_workouts(self, start_date: DateLike, end_date: DateLike, include_deleted: bool = False) -> List[WorkoutSummary]:
        start, end = to_date(start_date), to_date(end_date)
        result = []
        for workout in self._load_index().values():
            if workout.is_deleted and not include_deleted:
                continue
            try:
                day = to_date(workout.workout_day)
            except ValueError:
                continue
            if start <= day <= end:
                result.append(workout)
        return sorted(result, key=lambda w: (w.workout_day, w.workout_id))
