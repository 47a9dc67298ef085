# ABOUTME: Tests conversion of API resources, cache rows, and review tables into events.
# ABOUTME: Verifies stage counting and that read failures surface as DataUnavailable.

import json
from datetime import datetime, timezone

import pandas as pd
import pytest

from ganbarometer.sources import (
    AssignmentStageCounts,
    DataUnavailable,
    FileEventSource,
    RecordEventSource,
    count_apprentice,
    count_new_kanji,
    events_from_frame,
    review_from_api,
    review_from_cache_row,
)

EPOCH_CUTOFF = datetime(2000, 1, 1, tzinfo=timezone.utc)


def _api_review(created_at, subject_id, meaning=0, reading=0, stage=1):
    return {
        "id": subject_id * 10,
        "object": "review",
        "data": {
            "created_at": created_at,
            "subject_id": subject_id,
            "starting_srs_stage": stage,
            "incorrect_meaning_answers": meaning,
            "incorrect_reading_answers": reading,
        },
    }


def _assignment(stage, subject_type):
    return {"object": "assignment", "data": {"srs_stage": stage, "subject_type": subject_type}}


def test_review_from_api_reads_nested_fields():
    event = review_from_api(_api_review("2024-03-01T09:00:00.000000Z", 440, meaning=1, reading=2, stage=3))

    assert event.timestamp == datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    assert event.subject_id == 440
    assert event.incorrect_meaning_count == 1
    assert event.incorrect_reading_count == 2
    assert event.starting_srs_stage == 3
    assert event.is_miss


def test_review_from_cache_row_converts_milliseconds():
    event = review_from_cache_row([1709283600000, 12, 5, 0, 0])

    assert event.timestamp == datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    assert event.starting_srs_stage == 5
    assert not event.is_miss


def test_events_from_frame_sorts_and_drops_bad_rows():
    df = pd.DataFrame(
        {
            "timestamp": ["2024-03-01 10:00", "not a time", "2024-03-01 09:00"],
            "subject_id": [2, 3, 1],
            "incorrect_meaning_count": [0, 1, None],
        }
    )

    events = events_from_frame(df)

    assert [e.subject_id for e in events] == [1, 2]
    assert events[0].timestamp.tzinfo is not None
    assert events[0].incorrect_meaning_count == 0
    assert events[0].incorrect_reading_count == 0


def test_events_from_frame_requires_timestamp_column():
    with pytest.raises(ValueError):
        events_from_frame(pd.DataFrame({"subject_id": [1]}))


def test_file_source_reads_csv_and_applies_cutoff(tmp_path):
    path = tmp_path / "reviews.csv"
    path.write_text(
        "timestamp,subject_id,incorrect_meaning_count,incorrect_reading_count\n"
        "2024-03-01T09:00:00Z,1,0,0\n"
        "2024-03-02T09:00:00Z,2,1,0\n",
        encoding="utf-8",
    )

    events = FileEventSource(path).fetch_reviews(datetime(2024, 3, 2, tzinfo=timezone.utc))

    assert [e.subject_id for e in events] == [2]
    assert events[0].is_miss


def test_file_source_reads_api_collection_json(tmp_path):
    path = tmp_path / "reviews.json"
    payload = {
        "object": "collection",
        "data": [
            _api_review("2024-03-01T09:05:00Z", 2),
            _api_review("2024-03-01T09:00:00Z", 1, reading=1),
        ],
    }
    path.write_text(json.dumps(payload), encoding="utf-8")

    events = FileEventSource(path).fetch_reviews(EPOCH_CUTOFF)

    assert [e.subject_id for e in events] == [1, 2]


def test_file_source_missing_file_is_unavailable(tmp_path):
    with pytest.raises(DataUnavailable):
        FileEventSource(tmp_path / "missing.csv").fetch_reviews(EPOCH_CUTOFF)


def test_file_source_unknown_format_is_unavailable(tmp_path):
    path = tmp_path / "reviews.txt"
    path.write_text("hello", encoding="utf-8")
    with pytest.raises(DataUnavailable):
        FileEventSource(path).fetch_reviews(EPOCH_CUTOFF)


def test_record_source_accepts_cache_rows():
    source = RecordEventSource([[1709283660000, 2, 1, 0, 1], [1709283600000, 1, 1, 0, 0]])

    events = source.fetch_reviews(EPOCH_CUTOFF)

    assert [e.subject_id for e in events] == [1, 2]
    assert events[1].is_miss


def test_record_source_malformed_record_is_unavailable():
    with pytest.raises(DataUnavailable):
        RecordEventSource([{"id": 1}]).fetch_reviews(EPOCH_CUTOFF)


def test_stage_counts_filter_by_stage_and_type():
    counts = AssignmentStageCounts(
        [
            _assignment(1, "radical"),
            _assignment(2, "kanji"),
            _assignment(1, "kanji"),
            _assignment(4, "vocabulary"),
            _assignment(3, "kanji"),
            _assignment(5, "kanji"),
            {"srs_stage": 2, "subject_type": "kanji"},
        ]
    )

    assert count_apprentice(counts) == 6
    assert count_new_kanji(counts) == 3


def test_stage_counts_from_json_collection(tmp_path):
    path = tmp_path / "assignments.json"
    path.write_text(json.dumps({"data": [_assignment(1, "kanji"), _assignment(6, "kanji")]}), encoding="utf-8")

    counts = AssignmentStageCounts.from_json(path)

    assert count_apprentice(counts) == 1


def test_stage_counts_from_bad_json_is_unavailable(tmp_path):
    path = tmp_path / "assignments.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(DataUnavailable):
        AssignmentStageCounts.from_json(path)
