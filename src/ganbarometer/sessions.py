# ABOUTME: Partitions a review stream into sessions using an inactivity-gap threshold.
# ABOUTME: Builds the inter-review latency histogram in the same linear pass.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from .schemas import EPOCH, HistogramBucket, LatencyHistogram, ReviewEvent, Session

# (label, lower bound in seconds); a label names the upper edge of its bucket.
LATENCY_BUCKETS: Tuple[Tuple[str, int], ...] = (
    ('10"', 0),
    ('20"', 10),
    ('30"', 20),
    ("1'", 30),
    ("1.5'", 60),
    ("2'", 90),
    ("5'", 120),
    ("10'", 300),
    (">10'", 600),
)

_LOWER_BOUNDS = np.array([lower for _, lower in LATENCY_BUCKETS], dtype=float)


@dataclass(frozen=True)
class Segmentation:
    sessions: Tuple[Session, ...]
    histogram: LatencyHistogram


def filter_recent(events: Iterable[ReviewEvent], hours: float, now: datetime) -> List[ReviewEvent]:
    """Keep the reviews submitted within the last ``hours`` hours before ``now``."""

    cutoff = now - timedelta(hours=hours)
    return [event for event in events if event.timestamp >= cutoff]


def bucket_index(gap_seconds: float) -> int:
    """Index of the highest bucket whose lower bound does not exceed the gap."""

    return max(int(np.searchsorted(_LOWER_BOUNDS, gap_seconds, side="right")) - 1, 0)


def find_sessions(events: Sequence[ReviewEvent], session_gap_minutes: float) -> Segmentation:
    """
    Split reviews into sessions and histogram the gaps between consecutive reviews.

    A review joins the running session when it arrives no more than
    ``session_gap_minutes`` after that session's last review (inclusive);
    otherwise the running session is closed and the review starts a new one.
    Every consecutive pair is histogrammed, including pairs that straddle a
    session boundary.

    Empty input yields a single zero-count session pinned to the epoch.
    """

    counts = [0] * len(LATENCY_BUCKETS)
    ordered = sorted(events, key=lambda event: event.timestamp)

    if not ordered:
        return Segmentation(
            sessions=(Session(start_time=EPOCH, end_time=EPOCH, count=0, miss_count=0),),
            histogram=_freeze(counts),
        )

    max_gap = timedelta(minutes=session_gap_minutes)
    sessions: List[Session] = []

    first = ordered[0]
    start, end = first.timestamp, first.timestamp
    count, misses = 1, int(first.is_miss)

    for event in ordered[1:]:
        gap = event.timestamp - end
        counts[bucket_index(gap.total_seconds())] += 1

        if gap <= max_gap:
            count += 1
            misses += int(event.is_miss)
            end = event.timestamp
        else:
            sessions.append(Session(start_time=start, end_time=end, count=count, miss_count=misses))
            start, end = event.timestamp, event.timestamp
            count, misses = 1, int(event.is_miss)

    sessions.append(Session(start_time=start, end_time=end, count=count, miss_count=misses))
    return Segmentation(sessions=tuple(sessions), histogram=_freeze(counts))


def _freeze(counts: Sequence[int]) -> LatencyHistogram:
    return LatencyHistogram(
        buckets=tuple(
            HistogramBucket(label=label, lower_bound_seconds=lower, count=n)
            for (label, lower), n in zip(LATENCY_BUCKETS, counts)
        )
    )
