# ABOUTME: Adapts review and assignment data into the types the segmenter consumes.
# ABOUTME: Wraps every fetch failure as DataUnavailable so callers can report it explicitly.

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Sequence

import pandas as pd

from .schemas import ReviewEvent

APPRENTICE_STAGES = (1, 2, 3, 4)
NEW_KANJI_STAGES = (1, 2)

EVENT_COLUMNS = [
    "timestamp",
    "subject_id",
    "incorrect_meaning_count",
    "incorrect_reading_count",
]


class DataUnavailable(RuntimeError):
    """Reviews or stage counts could not be fetched."""


class EventSource(Protocol):
    def fetch_reviews(self, since: datetime) -> Sequence[ReviewEvent]: ...


class StageCountSource(Protocol):
    def count_items(self, stages: Sequence[int], subject_types: Optional[Sequence[str]] = None) -> int: ...


def _parse_time(value: Any) -> datetime:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize(timezone.utc)
    return ts.tz_convert(timezone.utc).to_pydatetime()


def review_from_api(record: Mapping[str, Any]) -> ReviewEvent:
    """Convert an API v2 review resource; every field is read from its ``data`` block."""

    data = record["data"]
    stage = data.get("starting_srs_stage")
    return ReviewEvent(
        timestamp=_parse_time(data["created_at"]),
        subject_id=int(data["subject_id"]),
        incorrect_meaning_count=int(data.get("incorrect_meaning_answers") or 0),
        incorrect_reading_count=int(data.get("incorrect_reading_answers") or 0),
        starting_srs_stage=None if stage is None else int(stage),
    )


def review_from_cache_row(row: Sequence[Any]) -> ReviewEvent:
    """Convert a review-cache row ``[created_ms, subject_id, starting_srs, meaning, reading]``."""

    created_ms, subject_id, starting_srs, meaning, reading = row[:5]
    return ReviewEvent(
        timestamp=datetime.fromtimestamp(created_ms / 1000, tz=timezone.utc),
        subject_id=int(subject_id),
        incorrect_meaning_count=int(meaning),
        incorrect_reading_count=int(reading),
        starting_srs_stage=int(starting_srs),
    )


def events_from_frame(df: pd.DataFrame) -> List[ReviewEvent]:
    """Convert a review table into events ordered by timestamp, dropping unparseable rows."""

    missing = [c for c in ("timestamp", "subject_id") if c not in df.columns]
    if missing:
        raise ValueError(f"Review table is missing columns: {missing}")
    if df.empty:
        return []

    frame = df.copy()
    if not pd.api.types.is_datetime64_any_dtype(frame["timestamp"]):
        frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True, errors="coerce")
    elif frame["timestamp"].dt.tz is None:
        frame["timestamp"] = frame["timestamp"].dt.tz_localize("UTC")
    frame = frame.dropna(subset=["timestamp", "subject_id"])
    for column in ("incorrect_meaning_count", "incorrect_reading_count"):
        if column not in frame.columns:
            frame[column] = 0
        frame[column] = pd.to_numeric(frame[column], errors="coerce").fillna(0).astype(int)
    frame = frame.sort_values("timestamp", kind="mergesort")

    return [
        ReviewEvent(
            timestamp=row.timestamp.to_pydatetime(),
            subject_id=int(row.subject_id),
            incorrect_meaning_count=int(row.incorrect_meaning_count),
            incorrect_reading_count=int(row.incorrect_reading_count),
        )
        for row in frame[EVENT_COLUMNS].itertuples(index=False)
    ]


def events_from_records(records: Iterable[Any]) -> List[ReviewEvent]:
    """Convert API review resources or review-cache rows, ordered by timestamp."""

    events = [
        review_from_api(record) if isinstance(record, Mapping) else review_from_cache_row(record)
        for record in records
    ]
    return sorted(events, key=lambda event: event.timestamp)


def load_reviews(path: Path) -> List[ReviewEvent]:
    """Read reviews from a table file, or from a JSON list of API resources or cache rows."""

    suffix = path.suffix.lower()
    if suffix == ".json":
        payload = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(payload, Mapping):
            payload = payload.get("data", [])
        if not isinstance(payload, list):
            raise ValueError("expected a list of reviews")
        if payload and (not isinstance(payload[0], Mapping) or "data" in payload[0]):
            try:
                return events_from_records(payload)
            except (KeyError, TypeError) as exc:
                raise ValueError(f"malformed review record: {exc}") from exc
        return events_from_frame(pd.DataFrame(payload, columns=None if payload else EVENT_COLUMNS))
    return events_from_frame(read_review_table(path))


def read_review_table(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix == ".parquet":
        return pd.read_parquet(path)
    if suffix in {".jsonl", ".ndjson"}:
        return pd.read_json(path, lines=True)
    raise ValueError(f"Unsupported review file type '{suffix}'. Expected csv, parquet, json, or jsonl.")


class FileEventSource:
    """Reads a review table from disk and serves the reviews after a cutoff."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def fetch_reviews(self, since: datetime) -> List[ReviewEvent]:
        try:
            events = load_reviews(self.path)
        except (OSError, ValueError) as exc:
            raise DataUnavailable(f"Could not read reviews from {self.path}: {exc}") from exc
        return [event for event in events if event.timestamp >= since]


class RecordEventSource:
    """Serves reviews from in-memory API resources or review-cache rows."""

    def __init__(self, records: Iterable[Any]):
        self.records = list(records)

    def fetch_reviews(self, since: datetime) -> List[ReviewEvent]:
        try:
            events = events_from_records(self.records)
        except (KeyError, TypeError, ValueError) as exc:
            raise DataUnavailable(f"Malformed review record: {exc}") from exc
        return [event for event in events if event.timestamp >= since]


class AssignmentStageCounts:
    """Counts assignments by SRS stage and subject type."""

    def __init__(self, assignments: Iterable[Mapping[str, Any]]):
        self.assignments = [a.get("data", a) for a in assignments]

    @classmethod
    def from_json(cls, path: Path) -> "AssignmentStageCounts":
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise DataUnavailable(f"Could not read assignments from {path}: {exc}") from exc
        # Accept either a bare list or an API collection with a "data" array.
        if isinstance(payload, Mapping):
            payload = payload.get("data", [])
        if not isinstance(payload, list):
            raise DataUnavailable(f"Assignments in {path} are not a list")
        return cls(payload)

    def count_items(self, stages: Sequence[int], subject_types: Optional[Sequence[str]] = None) -> int:
        wanted = set(stages)
        types = None if subject_types is None else set(subject_types)
        return sum(
            1
            for a in self.assignments
            if a.get("srs_stage") in wanted and (types is None or a.get("subject_type") in types)
        )


def count_apprentice(source: StageCountSource) -> int:
    return source.count_items(APPRENTICE_STAGES)


def count_new_kanji(source: StageCountSource) -> int:
    return source.count_items(NEW_KANJI_STAGES, subject_types=("kanji",))
