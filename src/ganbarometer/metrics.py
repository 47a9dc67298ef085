# ABOUTME: Derives pace, difficulty, and per-day review rates from segmented sessions.
# ABOUTME: Pure functions only; fetching and rendering live elsewhere.

from __future__ import annotations

import math
from typing import Dict, Optional, Sequence

from .schemas import LatencyHistogram, MetricsSnapshot, Session
from .settings import Settings

SECONDS_PER_DAY = 24 * 60 * 60


def round_half_up(value: float) -> int:
    """Round to the nearest integer with ties going up (2.5 -> 3, -2.5 -> -2)."""

    return int(math.floor(value + 0.5))


def review_days(sessions: Sequence[Session]) -> int:
    span = (sessions[-1].end_time - sessions[0].start_time).total_seconds()
    return max(0, round_half_up(span / SECONDS_PER_DAY))


def seconds_per_review(total_minutes: float, reviewed_count: int) -> Optional[int]:
    """Average seconds per review, or None when nothing was reviewed."""

    if reviewed_count == 0:
        return None
    return round_half_up(60 * total_minutes / reviewed_count)


def difficulty_score(
    apprentice_count: int,
    new_kanji_count: int,
    extra_misses_per_day: float,
    settings: Settings,
) -> float:
    """
    Blend apprentice load, new kanji, and excess misses into a 0-1 score.

    An apprentice queue of ``normal_apprentice_qty`` items with nothing else
    going on reads as 0.5. Each new kanji and each miss per day beyond the
    allowance scales the score up by its weighting.
    """

    score = apprentice_count / (2 * settings.normal_apprentice_qty)
    score *= 1 + new_kanji_count * settings.new_kanji_weighting
    if extra_misses_per_day > 0:
        score *= 1 + extra_misses_per_day * settings.extra_misses_weighting
    return min(1.0, max(0.0, score))


def pace_score(reviews_per_day: float, settings: Settings) -> float:
    return min(1.0, max(0.0, reviews_per_day / settings.max_pace))


def compute_metrics(
    sessions: Sequence[Session],
    histogram: LatencyHistogram,
    apprentice_count: int,
    new_kanji_count: int,
    settings: Settings,
) -> MetricsSnapshot:
    """Combine sessions with the current stage counts into a MetricsSnapshot."""

    if not sessions:
        raise ValueError("at least one session is required; segmentation always yields one")

    reviewed = sum(s.count for s in sessions)
    total_minutes = sum(s.duration_minutes for s in sessions)
    total_misses = sum(s.miss_count for s in sessions)
    days = review_days(sessions)

    # Less than a day of history counts as a single day.
    if days < 1:
        per_day = reviewed
        misses_per_day = total_misses
    else:
        per_day = round_half_up(reviewed / days)
        misses_per_day = round_half_up(total_misses / days)

    allowed = round_half_up(per_day * settings.normal_miss_percent / 100)
    extra = misses_per_day - allowed

    return MetricsSnapshot(
        reviewed_count=reviewed,
        sessions=list(sessions),
        histogram=histogram,
        apprentice_count=apprentice_count,
        new_kanji_count=new_kanji_count,
        difficulty=difficulty_score(apprentice_count, new_kanji_count, extra, settings),
        pace=pace_score(per_day, settings),
        reviews_per_day=per_day,
        misses_per_day=misses_per_day,
        seconds_per_review=seconds_per_review(total_minutes, reviewed),
        total_minutes=total_minutes,
        total_misses=total_misses,
        review_days=days,
        allowed_misses_per_day=allowed,
        extra_misses_per_day=extra,
    )


def gauge_text(snapshot: MetricsSnapshot) -> Dict[str, str]:
    """Display strings for each gauge; an undefined pace per review shows as a dash."""

    spr = snapshot.seconds_per_review
    return {
        "difficulty": f"{snapshot.difficulty * 100:.0f}%",
        "pace": f"{snapshot.pace * 100:.0f}%",
        "reviews/day": str(snapshot.reviews_per_day),
        "misses/day": str(snapshot.misses_per_day),
        "seconds/review": "–" if spr is None else f"{spr}s",
        "sessions": str(sum(1 for s in snapshot.sessions if s.count)),
    }
