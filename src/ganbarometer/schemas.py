# ABOUTME: Defines the value types shared by the segmenter and the metrics engine.
# ABOUTME: Centralizes review event, session, histogram, and snapshot definitions.

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pandas as pd

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Sessions shorter than this report MIN_SESSION_SECONDS instead of their span.
MIN_SESSION_SECONDS = 15


@dataclass(frozen=True)
class ReviewEvent:
    """A single review submitted by the learner."""

    timestamp: datetime
    subject_id: int
    incorrect_meaning_count: int = 0
    incorrect_reading_count: int = 0
    starting_srs_stage: Optional[int] = None

    @property
    def is_miss(self) -> bool:
        return self.incorrect_meaning_count + self.incorrect_reading_count > 0


@dataclass(frozen=True)
class Session:
    """A maximal run of reviews whose consecutive gaps stay within the session threshold."""

    start_time: datetime
    end_time: datetime
    count: int
    miss_count: int = 0

    @property
    def duration_minutes(self) -> float:
        seconds = (self.end_time - self.start_time).total_seconds()
        return max(seconds, MIN_SESSION_SECONDS) / 60


@dataclass(frozen=True)
class HistogramBucket:
    label: str
    lower_bound_seconds: int
    count: int = 0


@dataclass(frozen=True)
class LatencyHistogram:
    """Distribution of gaps between consecutive reviews, independent of sessions."""

    buckets: Tuple[HistogramBucket, ...]

    @property
    def total(self) -> int:
        return sum(bucket.count for bucket in self.buckets)

    def counts(self) -> Dict[str, int]:
        return {bucket.label: bucket.count for bucket in self.buckets}

    def __getitem__(self, label: str) -> HistogramBucket:
        for bucket in self.buckets:
            if bucket.label == label:
                return bucket
        raise KeyError(label)

    def to_frame(self) -> pd.DataFrame:
        total = self.total
        return pd.DataFrame(
            {
                "label": [b.label for b in self.buckets],
                "lower_bound_seconds": [b.lower_bound_seconds for b in self.buckets],
                "count": [b.count for b in self.buckets],
                "share": [(b.count / total) if total else 0.0 for b in self.buckets],
            }
        )


@dataclass(frozen=True)
class MetricsSnapshot:
    """Everything the gauges display for one invocation, recomputed from scratch each time."""

    reviewed_count: int
    sessions: List[Session]
    histogram: LatencyHistogram
    apprentice_count: int
    new_kanji_count: int
    difficulty: float
    pace: float
    reviews_per_day: int
    misses_per_day: int
    seconds_per_review: Optional[int]
    total_minutes: float = 0.0
    total_misses: int = 0
    review_days: int = 0
    allowed_misses_per_day: int = 0
    extra_misses_per_day: int = 0

    def as_dict(self) -> Dict:
        payload = asdict(self)
        payload["histogram"] = self.histogram.counts()
        payload["sessions"] = [
            {
                "start_time": s.start_time.isoformat(),
                "end_time": s.end_time.isoformat(),
                "count": s.count,
                "miss_count": s.miss_count,
                "duration_minutes": s.duration_minutes,
            }
            for s in self.sessions
        ]
        return payload
