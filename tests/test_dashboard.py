# ABOUTME: Tests a full gauge refresh against fake sources and an in-memory settings store.
# ABOUTME: Ensures fetch failures are reported, stale results are discarded, and debug output appears.

import io
from datetime import datetime, timedelta, timezone

from rich.console import Console

from ganbarometer.dashboard import Ganbarometer, RenderResult
from ganbarometer.schemas import ReviewEvent
from ganbarometer.settings import MAX_INTERVAL_HOURS, SCRIPT_ID, SETTINGS_VERSION, MemorySettingsStore, Settings
from ganbarometer.sources import AssignmentStageCounts, DataUnavailable

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


class FakeEvents:
    def __init__(self, events):
        self.events = events
        self.calls = []

    def fetch_reviews(self, since):
        self.calls.append(since)
        return list(self.events)


class BrokenEvents:
    def fetch_reviews(self, since):
        raise ConnectionError("api down")


class BrokenCounts:
    def count_items(self, stages, subject_types=None):
        raise DataUnavailable("assignments unavailable")


def _counts(apprentice=100, new_kanji=0):
    rows = [{"srs_stage": 3, "subject_type": "vocabulary"}] * (apprentice - new_kanji)
    rows += [{"srs_stage": 1, "subject_type": "kanji"}] * new_kanji
    return AssignmentStageCounts(rows)


def _meter(events, counts=None, store=None, console=None):
    return Ganbarometer(
        events,
        counts or _counts(),
        store or MemorySettingsStore(),
        clock=lambda: NOW,
        console=console or Console(file=io.StringIO(), width=200),
    )


def _events_before_now(offsets_min):
    return [
        ReviewEvent(timestamp=NOW - timedelta(minutes=m), subject_id=i)
        for i, m in enumerate(sorted(offsets_min, reverse=True))
    ]


def test_render_computes_snapshot_over_lookback_window():
    # The 80-hour-old review falls outside the default 72-hour window.
    source = FakeEvents(_events_before_now([80 * 60, 30, 29, 28]))
    meter = _meter(source)

    result = meter.render()

    assert result.status == "ok"
    assert source.calls == [NOW - timedelta(hours=72)]
    assert result.snapshot.reviewed_count == 3
    assert len(result.snapshot.sessions) == 1
    assert result.snapshot.difficulty == 0.5
    assert meter.latest is result


def test_render_without_reviews_is_degenerate_not_failed():
    result = _meter(FakeEvents([]), counts=_counts(60, 10)).render()

    assert result.status == "ok"
    assert result.snapshot.reviewed_count == 0
    assert result.snapshot.seconds_per_review is None
    assert result.snapshot.new_kanji_count == 10


def test_event_fetch_failure_is_reported_not_zeroed():
    result = _meter(BrokenEvents()).render()

    assert result.status == "failed"
    assert result.snapshot is None
    assert "api down" in result.error


def test_stage_count_failure_is_reported():
    result = _meter(FakeEvents([]), counts=BrokenCounts()).render()

    assert result.status == "failed"
    assert "assignments unavailable" in result.error


def test_stale_settings_notice_is_attached_and_shown():
    buffer = io.StringIO()
    store = MemorySettingsStore({SCRIPT_ID: {"version": "1.0", "interval": 24}})
    result = _meter(FakeEvents([]), store=store, console=Console(file=buffer, width=200)).render()

    assert result.notice is not None
    assert result.settings.interval == 72
    assert "reset to defaults" in buffer.getvalue()


def test_settings_are_reloaded_each_render():
    store = MemorySettingsStore()
    source = FakeEvents([])
    meter = _meter(source, store=store)

    meter.render()
    store.save(SCRIPT_ID, Settings(interval=24))
    second = meter.render()

    assert second.settings.interval == 24
    assert source.calls[-1] == NOW - timedelta(hours=24)
    assert second.generation == 2


def test_older_generation_cannot_replace_newer_result():
    meter = _meter(FakeEvents([]))
    first = meter.render()
    second = meter.render()

    assert meter.publish(first) is False
    assert meter.latest is second
    assert meter.publish(RenderResult(generation=3, settings=Settings())) is True


def test_debug_setting_prints_diagnostics():
    buffer = io.StringIO()
    store = MemorySettingsStore({SCRIPT_ID: {"version": SETTINGS_VERSION, "debug": True}})
    meter = _meter(FakeEvents(_events_before_now([10, 9])), store=store, console=Console(file=buffer, width=200))

    meter.render()

    output = buffer.getvalue()
    assert "[ganbarometer]" in output
    assert "2 items reviewed over past 72 hours" in output
    assert "1 review sessions" in output


def test_quiet_by_default():
    buffer = io.StringIO()
    _meter(FakeEvents(_events_before_now([10, 9])), console=Console(file=buffer, width=200)).render()
    assert buffer.getvalue() == ""


class UnreadableSettings:
    def load(self, script_id, defaults):
        raise PermissionError("settings file is not readable")

    def save(self, script_id, settings):
        raise PermissionError("settings file is not writable")


def test_settings_load_failure_is_reported():
    meter = _meter(FakeEvents([]), store=UnreadableSettings())

    result = meter.render()

    assert result.status == "failed"
    assert "not readable" in result.error
    assert meter.latest is result


def test_largest_interval_renders():
    store = MemorySettingsStore({SCRIPT_ID: {"version": SETTINGS_VERSION, "interval": 24 * 10**6}})
    source = FakeEvents([])

    result = _meter(source, store=store).render()

    assert result.status == "ok"
    assert result.settings.interval == MAX_INTERVAL_HOURS
    assert source.calls == [NOW - timedelta(hours=MAX_INTERVAL_HOURS)]
