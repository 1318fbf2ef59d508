"""
OpenTimelineIO-style composition tree.

Hierarchy: Timeline -> Stack -> Tracks -> Clips/Gaps/Transitions, with Stacks
and Tracks nestable inside each other.

Ownership:
- A Composition owns its ``children`` list; a node appears in at most one
  Composition at a time.
- Each attached node holds a weak reference back to its parent. Detaching
  clears the link but never destroys a node that a caller still references.
- ``copy.deepcopy`` of any node yields an unattached copy whose own subtree is
  re-linked to the copy.
"""

from __future__ import annotations

import weakref
from enum import Enum, IntEnum
from typing import Annotated, Any, Literal, Union

from pydantic import Field, PrivateAttr, field_validator, model_validator

from timeline_engine.config import get_settings
from timeline_engine.errors import (
    AlreadyHasParentError,
    IndexOutOfBoundsError,
    InvalidOperationError,
    InvalidTimeRangeError,
    NoAvailableRangeError,
    NoMediaReferenceError,
    NoParentError,
    require,
)
from timeline_engine.models.base_models import SerializableObject
from timeline_engine.models.media_models import (
    EffectType,
    Marker,
    MediaReference,
    MediaReferenceType,
)
from timeline_engine.models.time_models import RationalTime, TimeRange

DEFAULT_MEDIA_KEY = "DEFAULT_MEDIA"


# =============================================================================
# ENUMS
# =============================================================================


class TrackKind(str, Enum):
    """Type of track content."""
    VIDEO = "Video"
    AUDIO = "Audio"


class TransitionType(str, Enum):
    """Common transition types."""
    SMPTE_DISSOLVE = "SMPTE_Dissolve"
    CUSTOM = "Custom_Transition"
    FADE_IN = "FadeIn"
    FADE_OUT = "FadeOut"
    WIPE = "Wipe"


class ComposableKind(IntEnum):
    """Discriminant reported alongside untyped child/parent handles."""
    CLIP = 0
    GAP = 1
    STACK = 2
    TRACK = 3
    TRANSITION = 4


class NeighborGapPolicy(str, Enum):
    NEVER = "never"
    AROUND_TRANSITIONS = "around_transitions"


def _zero_time(rate: float | None = None) -> RationalTime:
    return RationalTime(value=0, rate=rate or get_settings().default_framerate)


def _empty_range(rate: float | None = None) -> TimeRange:
    return TimeRange(start_time=_zero_time(rate), duration=_zero_time(rate))


# =============================================================================
# COMPOSABLE BASE
# =============================================================================


class Composable(SerializableObject):
    """
    Any node that can live inside a Composition.

    ``parent`` is a weak back-reference; it never keeps the parent alive.
    """
    _parent: Any = PrivateAttr(default=None)

    @property
    def parent(self) -> Composition | None:
        ref = self._parent
        return ref() if ref is not None else None

    def _set_parent(self, parent: Composition | None) -> None:
        self._parent = weakref.ref(parent) if parent is not None else None

    def ancestors(self) -> list[Composition]:
        """Parents from nearest to root."""
        chain: list[Composition] = []
        node = self.parent
        while node is not None:
            chain.append(node)
            node = node.parent
        return chain

    def duration(self) -> RationalTime:
        raise NotImplementedError

    def range_in_parent(self) -> TimeRange:
        """This node's range in its parent's local space."""
        parent = self.parent
        if parent is None:
            raise NoParentError(self.name)
        return parent.range_of_child(self)

    def trimmed_range_in_parent(self) -> TimeRange | None:
        """Like range_in_parent, clipped to the parent's source_range."""
        parent = self.parent
        if parent is None:
            raise NoParentError(self.name)
        return parent.trimmed_range_of_child(self)

    def __deepcopy__(self, memo: dict[int, Any] | None = None):
        copied = super().__deepcopy__(memo)
        copied._parent = None
        return copied


# =============================================================================
# ITEMS
# =============================================================================


class Item(Composable):
    """A Composable with timed content and an optional trim window."""
    source_range: TimeRange | None = Field(
        default=None,
        description="Trimmed window into the underlying content (in/out points)"
    )
    effects: list[EffectType] = Field(default_factory=list)
    markers: list[Marker] = Field(default_factory=list)

    @field_validator("source_range")
    @classmethod
    def _non_negative_duration(cls, value: TimeRange | None) -> TimeRange | None:
        if value is not None and value.duration.value < 0:
            raise ValueError("source_range duration must be non-negative")
        return value

    def available_range(self) -> TimeRange:
        raise NoAvailableRangeError(self.name)

    def trimmed_range(self) -> TimeRange:
        if self.source_range is not None:
            return self.source_range
        return self.available_range()

    def duration(self) -> RationalTime:
        return self.trimmed_range().duration

    def transformed_time(self, time: RationalTime, to_item: Composable) -> RationalTime:
        from timeline_engine.operators.range_operator import transformed_time
        return transformed_time(time, self, to_item)

    def transformed_time_range(self, time_range: TimeRange, to_item: Composable) -> TimeRange:
        from timeline_engine.operators.range_operator import transformed_time_range
        return transformed_time_range(time_range, self, to_item)

    def add_marker(self, marker: Marker) -> Marker:
        self.markers.append(require(marker, "marker"))
        return marker

    def add_effect(self, effect: EffectType) -> EffectType:
        self.effects.append(require(effect, "effect"))
        return effect


class Clip(Item):
    """
    A clip of media on the timeline.

    Clips hold any number of keyed media references; the one named by
    ``active_media_reference_key`` supplies the available range. An empty key
    means the clip has no reference.
    """
    OTIO_SCHEMA: Literal["Clip.2"] = "Clip.2"
    media_references: dict[str, MediaReferenceType] = Field(
        default_factory=dict,
        description="Media references by key"
    )
    active_media_reference_key: str = Field(
        default="",
        description="Key of the reference in use ('' = none)"
    )

    @model_validator(mode="before")
    @classmethod
    def _single_reference_shorthand(cls, data: Any) -> Any:
        if isinstance(data, dict) and "media_reference" in data:
            data = dict(data)
            reference = data.pop("media_reference")
            if reference is not None and "media_references" not in data:
                data["media_references"] = {DEFAULT_MEDIA_KEY: reference}
                data.setdefault("active_media_reference_key", DEFAULT_MEDIA_KEY)
        return data

    @model_validator(mode="after")
    def _active_key_exists(self) -> Clip:
        key = self.active_media_reference_key
        if key and key not in self.media_references:
            raise ValueError(f"active_media_reference_key '{key}' names no media reference")
        return self

    @property
    def media_reference(self) -> MediaReference | None:
        """The active media reference, if any."""
        if not self.active_media_reference_key:
            return None
        return self.media_references.get(self.active_media_reference_key)

    def media_reference_keys(self) -> list[str]:
        return list(self.media_references)

    def set_media_reference(
        self,
        reference: MediaReference,
        key: str = DEFAULT_MEDIA_KEY
    ) -> None:
        """Store ``reference`` under ``key`` and make it active."""
        require(reference, "reference")
        self.media_references[key] = reference
        self.active_media_reference_key = key

    def set_media_references(
        self,
        references: dict[str, MediaReference],
        active_key: str
    ) -> None:
        require(references, "references")
        if active_key and active_key not in references:
            raise NoMediaReferenceError(self.name, active_key)
        self.active_media_reference_key = ""
        self.media_references = dict(references)
        self.active_media_reference_key = active_key

    def set_active_media_reference_key(self, key: str) -> None:
        if key and key not in self.media_references:
            raise NoMediaReferenceError(self.name, key)
        self.active_media_reference_key = key

    def available_range(self) -> TimeRange:
        reference = self.media_reference
        if reference is None:
            raise NoMediaReferenceError(self.name)
        if reference.available_range is None:
            raise NoAvailableRangeError(self.name)
        return reference.available_range


class Gap(Item):
    """
    Empty space on the timeline.

    A Gap always has a source_range starting at 0 of its own rate.
    """
    OTIO_SCHEMA: Literal["Gap.1"] = "Gap.1"
    source_range: TimeRange = Field(
        default_factory=_empty_range,
        description="Duration of the gap"
    )

    @field_validator("source_range")
    @classmethod
    def _starts_at_zero(cls, value: TimeRange) -> TimeRange:
        if value.start_time.value != 0:
            raise ValueError("Gap source_range must start at 0")
        return value

    def available_range(self) -> TimeRange:
        return self.source_range

    def set_duration(self, duration: RationalTime) -> None:
        if duration.value < 0:
            raise InvalidTimeRangeError(f"Gap duration must be non-negative, got {duration}")
        self.source_range = TimeRange(
            start_time=RationalTime(value=0, rate=duration.rate),
            duration=duration
        )

    @classmethod
    def with_duration(cls, duration: RationalTime, name: str = "") -> Gap:
        """Create a gap with specified duration."""
        return cls(
            name=name,
            source_range=TimeRange(
                start_time=RationalTime(value=0, rate=duration.rate),
                duration=duration
            )
        )


class Transition(Composable):
    """
    A transition between two adjacent items on a track.

    Transitions overlap the end of the outgoing clip and the
    beginning of the incoming clip:

    Clip A:     [==========]
    Transition:        [====]
    Clip B:            [==========]

    - in_offset: time taken from the outgoing clip
    - out_offset: time taken from the incoming clip

    The transition spans in_offset + out_offset but adds nothing to the
    duration of its track.
    """
    OTIO_SCHEMA: Literal["Transition.1"] = "Transition.1"
    transition_type: TransitionType = Field(
        default=TransitionType.SMPTE_DISSOLVE,
        description="Type of transition effect"
    )
    in_offset: RationalTime = Field(default_factory=_zero_time)
    out_offset: RationalTime = Field(default_factory=_zero_time)

    def duration(self) -> RationalTime:
        """Total span of the transition."""
        return self.in_offset + self.out_offset

    @classmethod
    def dissolve(
        cls,
        duration_frames: float = 24,
        rate: float = 24.0
    ) -> Transition:
        """Create a standard dissolve transition."""
        half = RationalTime(value=duration_frames / 2, rate=rate)
        return cls(
            name="Dissolve",
            transition_type=TransitionType.SMPTE_DISSOLVE,
            in_offset=half,
            out_offset=half
        )


# =============================================================================
# COMPOSITIONS (Containers)
# =============================================================================


class Composition(Item):
    """
    An Item owning an ordered list of children.

    Subclasses declare ``children`` with the node types they accept and
    provide the layout (``range_of_child_at_index`` and the content duration).
    """

    @model_validator(mode="after")
    def _adopt_children(self) -> Composition:
        seen: set[int] = set()
        for child in self.children:
            if id(child) in seen:
                raise AlreadyHasParentError(child.name, self.name)
            seen.add(id(child))
            current = child.parent
            if current is not None and current is not self:
                raise AlreadyHasParentError(child.name, current.name)
        for child in self.children:
            child._set_parent(self)
        return self

    def _accepts(self, child: Composable) -> bool:
        return True

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self.children):
            raise IndexOutOfBoundsError(index, len(self.children))

    def _check_attachable(self, child: Composable) -> None:
        require(child, "child")
        if not isinstance(child, Composable) or not self._accepts(child):
            raise InvalidOperationError(
                f"{type(self).__name__} cannot hold a {type(child).__name__}"
            )
        current = child.parent
        if current is not None:
            raise AlreadyHasParentError(child.name, current.name)
        if any(existing is child for existing in self.children):
            raise AlreadyHasParentError(child.name, self.name)
        if child is self or any(ancestor is child for ancestor in self.ancestors()):
            raise InvalidOperationError(
                f"Attaching '{child.name}' to '{self.name}' would create a cycle"
            )

    def append_child(self, child: Composable) -> None:
        self._check_attachable(child)
        self.children.append(child)
        child._set_parent(self)

    def insert_child(self, index: int, child: Composable) -> None:
        """Insert at ``index`` in ``[0, len]``."""
        if index < 0 or index > len(self.children):
            raise IndexOutOfBoundsError(index, len(self.children))
        self._check_attachable(child)
        self.children.insert(index, child)
        child._set_parent(self)

    def set_child(self, index: int, child: Composable) -> Composable:
        """Replace the child at ``index`` and return the detached one."""
        self._check_index(index)
        previous = self.children[index]
        if child is previous:
            return previous
        self._check_attachable(child)
        self.children[index] = child
        previous._set_parent(None)
        child._set_parent(self)
        return previous

    def remove_child(self, index: int) -> Composable:
        self._check_index(index)
        child = self.children.pop(index)
        child._set_parent(None)
        return child

    def clear_children(self) -> list[Composable]:
        """Detach every child; returns them in their former order."""
        removed = list(self.children)
        self.children.clear()
        for child in removed:
            child._set_parent(None)
        return removed

    def index_of_child(self, child: Composable) -> int:
        require(child, "child")
        for i, existing in enumerate(self.children):
            if existing is child:
                return i
        raise InvalidOperationError(f"'{child.name}' is not a child of '{self.name}'")

    def has_child(self, child: Composable) -> bool:
        return any(existing is child for existing in self.children)

    def _content_duration(self) -> RationalTime:
        raise NotImplementedError

    def available_range(self) -> TimeRange:
        duration = self._content_duration()
        return TimeRange(
            start_time=RationalTime(value=0, rate=duration.rate),
            duration=duration
        )

    def range_of_child_at_index(self, index: int) -> TimeRange:
        raise NotImplementedError

    def range_of_all_children(self) -> list[TimeRange]:
        return [self.range_of_child_at_index(i) for i in range(len(self.children))]

    def range_of_child(self, child: Composable) -> TimeRange:
        return self.range_of_child_at_index(self.index_of_child(child))

    def trimmed_range_of_child_at_index(self, index: int) -> TimeRange | None:
        """Child range clipped to this composition's source_range (None if hidden)."""
        child_range = self.range_of_child_at_index(index)
        if self.source_range is None:
            return child_range
        return child_range.clamped_to(self.source_range)

    def trimmed_range_of_child(self, child: Composable) -> TimeRange | None:
        return self.trimmed_range_of_child_at_index(self.index_of_child(child))

    def __deepcopy__(self, memo: dict[int, Any] | None = None):
        copied = super().__deepcopy__(memo)
        for child in copied.children:
            child._set_parent(copied)
        return copied


class Stack(Composition):
    """
    Parallel container - children are layered/composited.

    In a Stack, all children exist at the same time and are
    composited together (like video layers in Photoshop).
    Higher indexed children are rendered on top.

    The Stack's duration is the maximum duration of its children.
    """
    OTIO_SCHEMA: Literal["Stack.1"] = "Stack.1"
    children: list[StackItem] = Field(
        default_factory=list,
        description="Child tracks, nested stacks or items"
    )

    def _accepts(self, child: Composable) -> bool:
        return not isinstance(child, Transition)

    def _content_duration(self) -> RationalTime:
        longest: RationalTime | None = None
        for child in self.children:
            child_dur = child.duration()
            if longest is None or child_dur > longest:
                longest = child_dur
        return longest if longest is not None else _zero_time()

    def range_of_child_at_index(self, index: int) -> TimeRange:
        self._check_index(index)
        child_dur = self.children[index].duration()
        return TimeRange(
            start_time=RationalTime(value=0, rate=child_dur.rate),
            duration=child_dur
        )


class Track(Composition):
    """
    Sequential container - items play one after another.

    Items in a Track are arranged sequentially in time.
    The Track's duration is the sum of its children's durations.

    Transitions overlap adjacent items and don't add to duration.
    """
    OTIO_SCHEMA: Literal["Track.1"] = "Track.1"
    kind: TrackKind = Field(
        default=TrackKind.VIDEO,
        description="Track type (Video or Audio)"
    )
    children: list[TrackItem] = Field(
        default_factory=list,
        description="Clips, gaps, transitions, or nested compositions"
    )

    def _layout_rate(self) -> float:
        for child in self.children:
            if not isinstance(child, Transition):
                return child.duration().rate
        return get_settings().default_framerate

    def _content_duration(self) -> RationalTime:
        total = _zero_time(self._layout_rate())
        for child in self.children:
            if isinstance(child, Transition):
                # Transitions overlap, don't add to duration
                continue
            total = total + child.duration()
        return total

    def range_of_all_children(self) -> list[TimeRange]:
        ranges: list[TimeRange] = []
        start = _zero_time(self._layout_rate())
        for child in self.children:
            if isinstance(child, Transition):
                ranges.append(TimeRange(
                    start_time=start - child.in_offset,
                    duration=child.duration()
                ))
                continue
            child_dur = child.duration()
            ranges.append(TimeRange(start_time=start, duration=child_dur))
            start = start + child_dur
        return ranges

    def range_of_child_at_index(self, index: int) -> TimeRange:
        """
        Range of a child in this track's local space.

        A Transition reports the span it overlaps around its edit point:
        ``(boundary - in_offset, in_offset + out_offset)``.
        """
        self._check_index(index)
        start = _zero_time(self._layout_rate())
        for child in self.children[:index]:
            if not isinstance(child, Transition):
                start = start + child.duration()

        child = self.children[index]
        if isinstance(child, Transition):
            return TimeRange(start_time=start - child.in_offset, duration=child.duration())
        return TimeRange(start_time=start, duration=child.duration())

    def child_at_time(self, time: RationalTime) -> tuple[int, Composable] | None:
        """
        Find the (non-transition) child at a specific time.

        Returns (index, item) or None if time is outside track.
        """
        require(time, "time")
        for i, child_range in enumerate(self.range_of_all_children()):
            child = self.children[i]
            if isinstance(child, Transition):
                continue
            if child_range.contains(time):
                return (i, child)
        return None

    def neighbors_of(
        self,
        index: int,
        gap_policy: NeighborGapPolicy = NeighborGapPolicy.NEVER
    ) -> tuple[Composable | None, Composable | None]:
        """
        Previous and next children of the child at ``index``.

        With ``AROUND_TRANSITIONS``, a Transition at either end of the track
        gets a synthetic (unattached) Gap on its open side sized to the
        offset it would consume.
        """
        self._check_index(index)
        child = self.children[index]
        previous = self.children[index - 1] if index > 0 else None
        following = self.children[index + 1] if index + 1 < len(self.children) else None

        if gap_policy == NeighborGapPolicy.AROUND_TRANSITIONS and isinstance(child, Transition):
            if previous is None:
                previous = Gap.with_duration(child.in_offset)
            if following is None:
                following = Gap.with_duration(child.out_offset)
        return previous, following


TrackItem = Annotated[
    Union[Clip, Gap, Transition, Stack, Track],
    Field(discriminator="OTIO_SCHEMA")
]

StackItem = Annotated[
    Union[Clip, Gap, Stack, Track],
    Field(discriminator="OTIO_SCHEMA")
]

Stack.model_rebuild()
Track.model_rebuild()


def composable_kind(node: Composable) -> ComposableKind:
    """Discriminant for an untyped node."""
    require(node, "node")
    if isinstance(node, Clip):
        return ComposableKind.CLIP
    if isinstance(node, Gap):
        return ComposableKind.GAP
    if isinstance(node, Stack):
        return ComposableKind.STACK
    if isinstance(node, Track):
        return ComposableKind.TRACK
    if isinstance(node, Transition):
        return ComposableKind.TRANSITION
    raise InvalidOperationError(f"No kind for {type(node).__name__}")


# =============================================================================
# TOP-LEVEL TIMELINE
# =============================================================================


class Timeline(SerializableObject):
    """
    Top-level timeline object - the root of the composition tree.

    A Timeline contains a Stack of Tracks. The Stack allows for
    multiple video/audio layers that are composited together.
    """
    OTIO_SCHEMA: Literal["Timeline.1"] = "Timeline.1"
    global_start_time: RationalTime | None = Field(
        default=None,
        description="Timeline start time (e.g., 01:00:00:00)"
    )
    tracks: Stack = Field(
        default_factory=lambda: Stack(name="tracks"),
        description="Root stack containing all tracks"
    )

    @model_validator(mode="after")
    def _tracks_is_root(self) -> Timeline:
        owner = self.tracks.parent
        if owner is not None:
            raise AlreadyHasParentError(self.tracks.name, owner.name)
        return self

    def duration(self) -> RationalTime:
        """Get the total duration of the timeline."""
        return self.tracks.duration()

    def video_tracks(self) -> list[Track]:
        """Get all video tracks."""
        return [
            t for t in self.tracks.children
            if isinstance(t, Track) and t.kind == TrackKind.VIDEO
        ]

    def audio_tracks(self) -> list[Track]:
        """Get all audio tracks."""
        return [
            t for t in self.tracks.children
            if isinstance(t, Track) and t.kind == TrackKind.AUDIO
        ]

    def add_track(self, name: str = "", kind: TrackKind = TrackKind.VIDEO) -> Track:
        track = Track(name=name, kind=kind)
        self.tracks.append_child(track)
        return track

    def find_clips(self) -> list[Clip]:
        """Find all clips in the timeline (recursive)."""
        clips: list[Clip] = []
        self._find_items_recursive(self.tracks, Clip, clips)
        return clips

    def find_gaps(self) -> list[Gap]:
        """Find all gaps in the timeline."""
        gaps: list[Gap] = []
        self._find_items_recursive(self.tracks, Gap, gaps)
        return gaps

    def find_transitions(self) -> list[Transition]:
        """Find all transitions in the timeline."""
        transitions: list[Transition] = []
        self._find_items_recursive(self.tracks, Transition, transitions)
        return transitions

    def _find_items_recursive(
        self,
        item: Composable,
        item_type: type,
        results: list
    ) -> None:
        """Recursively find items of a specific type."""
        if isinstance(item, item_type):
            results.append(item)
        elif isinstance(item, Composition):
            for child in item.children:
                self._find_items_recursive(child, item_type, results)

    @classmethod
    def create_empty(
        cls,
        name: str,
        rate: float | None = None,
        global_start_time: RationalTime | None = None
    ) -> Timeline:
        """Create an empty timeline with default structure."""
        rate = rate or get_settings().default_framerate
        return cls(
            name=name,
            global_start_time=global_start_time,
            tracks=Stack(name="tracks", children=[]),
            metadata={"default_rate": rate}
        )
