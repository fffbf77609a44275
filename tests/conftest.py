import json
from datetime import datetime, timedelta

import pytest

from tp_analytics import config as config_module
from tp_analytics.io import fit_decoder
from tp_analytics.io.client import TrainingDataClient
from tp_analytics.models.types import WorkoutSummary
from tp_analytics.storage.cache import ActivityFileCache

TIME_FIELDS = ("timestamp", "start_time", "time_created")
START = datetime(2025, 1, 1, 6, 0, 0)


class FakeField:
    def __init__(self, name, value):
        self.name = name
        self.value = value


class FakeMessage:
    def __init__(self, fields):
        self._fields = fields

    def __iter__(self):
        return iter(self._fields)


class FakeFitFile:
    """Stands in for fitparse.FitFile; the 'file' is a JSON object of message lists."""

    def __init__(self, fileish):
        raw = fileish.read() if hasattr(fileish, "read") else fileish
        self._messages = json.loads(raw.decode("utf-8"))
        if not isinstance(self._messages, dict):
            raise ValueError("not an activity file")

    def get_messages(self, kind):
        for row in self._messages.get(kind, []):
            fields = []
            for name, value in row.items():
                if name in TIME_FIELDS and isinstance(value, str):
                    value = datetime.fromisoformat(value)
                fields.append(FakeField(name, value))
            yield FakeMessage(fields)


def encode_activity(records=None, laps=None, sessions=None, file_id=None) -> bytes:
    payload = {"record": records or [], "lap": laps or [], "session": sessions or []}
    if file_id is not None:
        payload["file_id"] = [file_id]
    return json.dumps(payload).encode("utf-8")


def power_records(power, heart_rate=None):
    rows = []
    for i, p in enumerate(power):
        row = {"timestamp": (START + timedelta(seconds=i)).isoformat()}
        if p is not None:
            row["power"] = p
        if heart_rate is not None and i < len(heart_rate) and heart_rate[i] is not None:
            row["heart_rate"] = heart_rate[i]
        rows.append(row)
    return rows


class FakeSource:
    """In-memory ActivitySource that counts file fetches."""

    def __init__(self):
        self.workouts = {}
        self.files = {}
        self.fetch_calls = []
        self.broken_metadata = set()

    def add(self, workout_id, workout_type="Bike", title=None, day="2025-01-01", data=None, **extra):
        self.workouts[workout_id] = WorkoutSummary(
            workout_id=workout_id,
            workout_day=day,
            workout_type=workout_type,
            title=title,
            **extra,
        )
        if data is not None:
            self.files[workout_id] = data

    def fetch_activity_bytes(self, workout_id):
        self.fetch_calls.append(workout_id)
        data = self.files.get(workout_id)
        if isinstance(data, Exception):
            raise data
        return data

    def get_workout(self, workout_id):
        from tp_analytics.exceptions import WorkoutNotFoundError

        if workout_id in self.broken_metadata or workout_id not in self.workouts:
            raise WorkoutNotFoundError(workout_id)
        return self.workouts[workout_id]

    def list_workouts(self, start_date, end_date, include_deleted=False):
        return [
            w for w in self.workouts.values()
            if str(start_date) <= w.workout_day <= str(end_date) and (include_deleted or not w.is_deleted)
        ]


@pytest.fixture(autouse=True)
def fake_fit(monkeypatch):
    monkeypatch.setattr(fit_decoder, "FitFile", FakeFitFile)
    return FakeFitFile


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    for name in ("TP_CACHE_DIR", "TP_CACHE_MAX_BYTES", "TP_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)
    config_module.reset_config()
    yield
    config_module.reset_config()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def cache(tmp_path):
    return ActivityFileCache(cache_dir=str(tmp_path / "cache"), max_bytes=10 * 1024 * 1024)


@pytest.fixture
def client(source, cache):
    return TrainingDataClient(source, cache=cache)
