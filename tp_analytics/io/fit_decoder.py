from __future__ import annotations

import gzip
import io
import logging
import zlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from fitparse import FitFile

from ..exceptions import ActivityDecodeError
from ..models.types import RECORD_COLUMNS, DecodedActivity, LapAggregate

logger = logging.getLogger(__name__)

SESSION_FIELDS = [
    "sport",
    "sub_sport",
    "start_time",
    "total_elapsed_time",
    "total_timer_time",
    "total_distance",
    "total_calories",
    "avg_speed",
    "max_speed",
    "avg_heart_rate",
    "max_heart_rate",
    "avg_power",
    "max_power",
    "normalized_power",
    "avg_cadence",
    "max_cadence",
    "total_ascent",
    "total_descent",
]

GZIP_MAGIC = b"\x1f\x8b"

FILE_ID_FIELDS = ["type", "manufacturer", "product", "serial_number", "time_created"]


def _normalize_ts(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _float_or_none(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _int_or_float(value: Any) -> Optional[float]:
    # FIT stores power, heart rate and cadence as integers
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return _float_or_none(value)


def _message_to_dict(message) -> Dict[str, Any]:
    return {field.name: field.value for field in message}


def _extract_record_fields(row: Dict[str, Any]) -> Dict[str, Any]:
    data: Dict[str, Any] = {col: None for col in RECORD_COLUMNS}
    data["timestamp"] = _normalize_ts(row.get("timestamp"))
    for name in ("power", "heart_rate", "cadence", "distance"):
        data[name] = _float_or_none(row.get(name))
    # Prefer enhanced fields when the device writes both
    for name in ("speed", "altitude"):
        enhanced = row.get(f"enhanced_{name}")
        data[name] = _float_or_none(enhanced if enhanced is not None else row.get(name))
    return data


def _lap_from_row(lap_number: int, row: Dict[str, Any]) -> LapAggregate:
    return LapAggregate(
        lap_number=lap_number,
        start_time=_normalize_ts(row.get("start_time")),
        duration=_float_or_none(row.get("total_elapsed_time")),
        distance=_float_or_none(row.get("total_distance")),
        avg_power=_int_or_float(row.get("avg_power")),
        max_power=_int_or_float(row.get("max_power")),
        avg_heart_rate=_int_or_float(row.get("avg_heart_rate")),
        max_heart_rate=_int_or_float(row.get("max_heart_rate")),
        avg_cadence=_int_or_float(row.get("avg_cadence")),
    )


def _pick(row: Dict[str, Any], names: List[str]) -> Dict[str, Any]:
    return {name: _normalize_ts(row[name]) for name in names if row.get(name) is not None}


def empty_records() -> pd.DataFrame:
    return pd.DataFrame(columns=RECORD_COLUMNS).astype({"timestamp": "datetime64[ns]"})


def maybe_decompress(data: bytes) -> bytes:
    """Gunzip payloads that carry the gzip magic bytes, pass others through."""
    if data[:2] != GZIP_MAGIC:
        return data
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise ActivityDecodeError(f"Failed to decompress activity file: {e}", details={"size_bytes": len(data)}) from e


def decode_activity(data: bytes) -> DecodedActivity:
    """Decode FIT bytes into records, laps, sessions and the file id.

    Records keep file order, one row per record message, without resampling.
    Columns: timestamp, power (W), heart_rate (bpm), cadence (rpm), speed (m/s), distance (m), altitude (m)
    """
    try:
        fit = FitFile(io.BytesIO(data))
        records = [_extract_record_fields(_message_to_dict(m)) for m in fit.get_messages("record")]
        lap_rows = [_message_to_dict(m) for m in fit.get_messages("lap")]
        session_rows = [_message_to_dict(m) for m in fit.get_messages("session")]
        file_id_rows = [_message_to_dict(m) for m in fit.get_messages("file_id")]
    except Exception as e:
        raise ActivityDecodeError(f"Failed to decode activity file: {e}", details={"size_bytes": len(data)}) from e

    if records:
        df = pd.DataFrame.from_records(records, columns=RECORD_COLUMNS)
        for col in RECORD_COLUMNS[1:]:
            df[col] = pd.to_numeric(df[col], errors="coerce")
        df["timestamp"] = pd.to_datetime(df["timestamp"], errors="coerce")
    else:
        df = empty_records()

    laps = [_lap_from_row(i, row) for i, row in enumerate(lap_rows, start=1)]
    sessions = [_pick(row, SESSION_FIELDS) for row in session_rows]
    file_id = _pick(file_id_rows[0], FILE_ID_FIELDS) if file_id_rows else None

    logger.debug("Decoded activity: %d records, %d laps, %d sessions", len(df), len(laps), len(sessions))
    return DecodedActivity(records=df, laps=laps, sessions=sessions, file_id=file_id)


def _record_to_dict(row: pd.Series) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for col in RECORD_COLUMNS:
        value = row[col]
        if value is None or (isinstance(value, float) and np.isnan(value)) or value is pd.NaT:
            continue
        out[col] = value.isoformat() if isinstance(value, (pd.Timestamp, datetime)) else float(value)
    return out


def summarize_activity(decoded: DecodedActivity) -> Dict[str, Any]:
    """JSON-ready overview of a decoded activity file."""
    records = decoded.records
    summary: Dict[str, Any] = {
        "file_id": decoded.file_id,
        "sessions": decoded.sessions,
        "laps": [lap.to_dict() for lap in decoded.laps],
        "record_count": decoded.record_count,
    }
    if not records.empty:
        summary["record_summary"] = {
            "first_record": _record_to_dict(records.iloc[0]),
            "last_record": _record_to_dict(records.iloc[-1]),
        }
    return summary


def parse_activity_file(file_path: str) -> Dict[str, Any]:
    """Read a local FIT file and summarise it."""
    path = Path(file_path).expanduser()
    data = maybe_decompress(path.read_bytes())
    logger.info("Parsing activity file %s (%d bytes)", path, len(data))
    return summarize_activity(decode_activity(data))
