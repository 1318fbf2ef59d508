"""
In-memory editorial timeline engine.

Rational time arithmetic, a composition tree of clips, gaps, transitions,
tracks and stacks, coordinate transforms between nested items, atomic edit
algorithms and schema-versioned JSON documents.

Usage:
    from timeline_engine.models import Clip, TimeRange, Timeline, TrackKind
    from timeline_engine.operators import overwrite, to_json_string

    timeline = Timeline.create_empty("Cut 1")
    track = timeline.add_track("V1", TrackKind.VIDEO)
    overwrite(Clip(name="shot"), track, TimeRange.from_frames(0, 48))
    text = to_json_string(timeline)
"""

from .config import TimelineSettings, configure_logging, get_settings, reset_settings
from .errors import (
    ErrorCode,
    ErrorStatus,
    TimelineError,
    capture_status,
)

__all__ = [
    "TimelineSettings",
    "configure_logging",
    "get_settings",
    "reset_settings",
    "ErrorCode",
    "ErrorStatus",
    "TimelineError",
    "capture_status",
]
