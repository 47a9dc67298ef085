# ABOUTME: Exposes the review-session segmenter and gauge metrics as one package.
# ABOUTME: Re-exports the value types and entry points most callers need.

from .dashboard import Ganbarometer, RenderResult
from .metrics import compute_metrics
from .schemas import LatencyHistogram, MetricsSnapshot, ReviewEvent, Session
from .sessions import filter_recent, find_sessions
from .settings import Settings, load_settings
from .sources import DataUnavailable

__all__ = [
    "DataUnavailable",
    "Ganbarometer",
    "LatencyHistogram",
    "MetricsSnapshot",
    "RenderResult",
    "ReviewEvent",
    "Session",
    "Settings",
    "compute_metrics",
    "filter_recent",
    "find_sessions",
    "load_settings",
]
