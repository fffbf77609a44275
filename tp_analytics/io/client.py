"""
Fetch facade used by every analysis.
Activity files are looked up in the disk cache before the source is asked,
and fetched payloads are decompressed and cached before being returned.
"""
import logging
from typing import List, Optional

from ..models.types import WorkoutSummary
from ..storage.cache import ActivityFileCache
from .fit_decoder import maybe_decompress
from .sources import ActivitySource, DateLike

logger = logging.getLogger(__name__)


class TrainingDataClient:
    """Thin typed client over an ActivitySource with an optional file cache."""

    def __init__(self, source: ActivitySource, cache: Optional[ActivityFileCache] = None):
        self.source = source
        self.cache = cache

    def get_workout(self, workout_id: int) -> WorkoutSummary:
        return self.source.get_workout(workout_id)

    def get_workouts(self, start_date: DateLike, end_date: DateLike, include_deleted: bool = False) -> List[WorkoutSummary]:
        return self.source.list_workouts(start_date, end_date, include_deleted=include_deleted)

    def download_activity_file(self, workout_id: int) -> Optional[bytes]:
        """
        Raw (decompressed) activity file bytes for a workout.

        Returns:
            The file bytes, or None if the workout has no activity file
        """
        if self.cache is not None:
            cached = self.cache.get(workout_id)
            if cached is not None:
                return cached

        data = self.source.fetch_activity_bytes(workout_id)
        if data is None:
            logger.debug("No activity file for workout %s", workout_id)
            return None

        data = maybe_decompress(data)
        if self.cache is not None:
            self.cache.set(workout_id, data)
        return data

    def search_workouts(self, title: str, start_date: DateLike, end_date: DateLike) -> List[WorkoutSummary]:
        """Workouts in the range whose title contains `title` (case-insensitive)."""
        needle = title.lower()
        return [
            w for w in self.get_workouts(start_date, end_date)
            if w.title and needle in w.title.lower()
        ]
