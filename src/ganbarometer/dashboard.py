# ABOUTME: Runs one gauge refresh: load settings, fetch reviews and stage counts, compute metrics.
# ABOUTME: Reports fetch failures explicitly and discards results from superseded refreshes.

from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, TypeVar

from rich.console import Console
from rich.markup import escape

from .metrics import compute_metrics
from .schemas import MetricsSnapshot
from .sessions import filter_recent, find_sessions
from .settings import SCRIPT_ID, Settings, SettingsStore, load_settings
from .sources import DataUnavailable, EventSource, StageCountSource, count_apprentice, count_new_kanji

T = TypeVar("T")


@dataclass(frozen=True)
class RenderResult:
    generation: int
    settings: Settings
    snapshot: Optional[MetricsSnapshot] = None
    error: Optional[str] = None
    notice: Optional[str] = None

    @property
    def status(self) -> str:
        return "ok" if self.snapshot is not None else "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _fetch(what: str, call: Callable[[], T]) -> T:
    try:
        return call()
    except DataUnavailable:
        raise
    except Exception as exc:
        raise DataUnavailable(f"Fetching {what} failed: {exc}") from exc


class Ganbarometer:
    """
    Wires the injected data sources and settings store to the metrics engine.

    Every call to ``render`` starts from nothing: settings are reloaded, data
    is refetched, and a new snapshot is computed. Each render is numbered;
    ``latest`` only ever moves forward, so a slow render that finishes after a
    newer one cannot overwrite it.
    """

    def __init__(
        self,
        event_source: EventSource,
        stage_counts: StageCountSource,
        settings_store: SettingsStore,
        script_id: str = SCRIPT_ID,
        clock: Optional[Callable[[], datetime]] = None,
        console: Optional[Console] = None,
    ):
        self.event_source = event_source
        self.stage_counts = stage_counts
        self.settings_store = settings_store
        self.script_id = script_id
        self.clock = clock or _utcnow
        self.console = console or Console(stderr=True)
        self._generations = itertools.count(1)
        self._latest: Optional[RenderResult] = None

    @property
    def latest(self) -> Optional[RenderResult]:
        return self._latest

    def publish(self, result: RenderResult) -> bool:
        """Store ``result`` unless a newer render has already been stored."""

        if self._latest is not None and result.generation < self._latest.generation:
            return False
        self._latest = result
        return True

    def render(self) -> RenderResult:
        generation = next(self._generations)
        try:
            settings, notice = load_settings(self.settings_store, self.script_id)
        except OSError as exc:
            result = RenderResult(
                generation=generation,
                settings=Settings(),
                error=f"Loading settings failed: {exc}",
            )
            self.publish(result)
            return result
        if notice:
            self.console.print(f"[yellow]{escape(self._tag)} {escape(notice)}[/yellow]")

        now = self.clock()
        since = now - timedelta(hours=settings.interval)
        try:
            reviews = _fetch("reviews", lambda: self.event_source.fetch_reviews(since))
            apprentice = _fetch("apprentice count", lambda: count_apprentice(self.stage_counts))
            new_kanji = _fetch("new kanji count", lambda: count_new_kanji(self.stage_counts))
        except DataUnavailable as exc:
            if settings.debug:
                self._debug(f"refresh {generation} failed: {exc}")
            result = RenderResult(generation=generation, settings=settings, error=str(exc), notice=notice)
            self.publish(result)
            return result

        recent = filter_recent(reviews, settings.interval, now)
        segmentation = find_sessions(recent, settings.session_interval_max)
        snapshot = compute_metrics(
            segmentation.sessions,
            segmentation.histogram,
            apprentice,
            new_kanji,
            settings,
        )

        if settings.debug:
            self._debug(f"{snapshot.reviewed_count} items reviewed over past {settings.interval} hours")
            self._debug(f"{len(snapshot.sessions)} review sessions")
            self._debug(f"{apprentice} apprentice items, {new_kanji} new kanji")
            self._debug(f"latency histogram {segmentation.histogram.counts()}")
            self._debug(
                f"difficulty={snapshot.difficulty:.3f} pace={snapshot.pace:.3f} "
                f"reviews/day={snapshot.reviews_per_day} misses/day={snapshot.misses_per_day}"
            )

        result = RenderResult(generation=generation, settings=settings, snapshot=snapshot, notice=notice)
        self.publish(result)
        return result

    @property
    def _tag(self) -> str:
        return f"[{self.script_id}]"

    def _debug(self, message: str) -> None:
        self.console.print(f"[dim]{escape(self._tag)}[/dim] {escape(message)}", highlight=False)
