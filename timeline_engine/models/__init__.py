"""
Timeline document models.

Usage:
    from timeline_engine.models import Clip, Gap, RationalTime, TimeRange, Track

    track = Track(name="V1")
    track.append_child(Clip(name="shot", source_range=TimeRange.from_frames(0, 24)))
    track.append_child(Gap.with_duration(RationalTime(value=12, rate=24)))
"""

from .time_models import RationalTime, TimeRange
from .base_models import SerializableObject
from .media_models import (
    Effect,
    EffectType,
    ExternalReference,
    FreezeFrame,
    GeneratorKind,
    GeneratorReference,
    ImageSequenceReference,
    LinearTimeWarp,
    Marker,
    MarkerColor,
    MediaReference,
    MediaReferenceType,
    MissingFramePolicy,
    MissingReference,
)
from .timeline_models import (
    DEFAULT_MEDIA_KEY,
    Clip,
    Composable,
    ComposableKind,
    Composition,
    Gap,
    Item,
    NeighborGapPolicy,
    Stack,
    Timeline,
    Track,
    TrackKind,
    Transition,
    TransitionType,
    composable_kind,
)

__all__ = [
    "RationalTime",
    "TimeRange",
    "SerializableObject",
    "Effect",
    "EffectType",
    "ExternalReference",
    "FreezeFrame",
    "GeneratorKind",
    "GeneratorReference",
    "ImageSequenceReference",
    "LinearTimeWarp",
    "Marker",
    "MarkerColor",
    "MediaReference",
    "MediaReferenceType",
    "MissingFramePolicy",
    "MissingReference",
    "DEFAULT_MEDIA_KEY",
    "Clip",
    "Composable",
    "ComposableKind",
    "Composition",
    "Gap",
    "Item",
    "NeighborGapPolicy",
    "Stack",
    "Timeline",
    "Track",
    "TrackKind",
    "Transition",
    "TransitionType",
    "composable_kind",
]
