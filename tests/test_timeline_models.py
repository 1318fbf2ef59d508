import gc
from copy import deepcopy

import pytest

from timeline_engine.errors import (
    AlreadyHasParentError,
    IndexOutOfBoundsError,
    InvalidOperationError,
    InvalidTimeRangeError,
    NoAvailableRangeError,
    NoMediaReferenceError,
    NoParentError,
)
from timeline_engine.models.media_models import (
    ExternalReference,
    FreezeFrame,
    GeneratorKind,
    GeneratorReference,
    ImageSequenceReference,
    LinearTimeWarp,
    Marker,
    MarkerColor,
    MissingReference,
)
from timeline_engine.models.time_models import RationalTime, TimeRange
from timeline_engine.models.timeline_models import (
    DEFAULT_MEDIA_KEY,
    Clip,
    ComposableKind,
    Gap,
    NeighborGapPolicy,
    Stack,
    Timeline,
    Track,
    TrackKind,
    Transition,
    composable_kind,
)


def _clip(name: str, frames: float, start: float = 0, rate: float = 24.0) -> Clip:
    return Clip(name=name, source_range=TimeRange.from_frames(start, frames, rate))


def _gap(frames: float, rate: float = 24.0) -> Gap:
    return Gap.with_duration(RationalTime(value=frames, rate=rate))


@pytest.fixture
def clip_and_gap_track() -> Track:
    track = Track(name="V1")
    track.append_child(_clip("shot", 24))
    track.append_child(_gap(12))
    return track


class TestOwnership:
    def test_append_sets_parent(self):
        track = Track(name="V1")
        clip = _clip("a", 10)

        track.append_child(clip)

        assert clip.parent is track
        assert track.children[0] is clip

    def test_attach_to_second_parent_fails(self):
        first = Track(name="V1")
        second = Track(name="V2")
        clip = _clip("a", 10)
        first.append_child(clip)

        with pytest.raises(AlreadyHasParentError):
            second.append_child(clip)
        with pytest.raises(AlreadyHasParentError):
            second.insert_child(0, clip)
        assert clip.parent is first
        assert second.children == []

    def test_cycle_is_rejected(self):
        stack = Stack(name="outer")
        track = Track(name="inner")
        stack.append_child(track)

        with pytest.raises(InvalidOperationError):
            track.append_child(stack)

        lone = Track(name="lone")
        with pytest.raises(InvalidOperationError):
            lone.append_child(lone)

    def test_stack_rejects_transition(self):
        stack = Stack(name="layers")

        with pytest.raises(InvalidOperationError):
            stack.append_child(Transition.dissolve(12))

    def test_index_bounds(self):
        track = Track(name="V1")

        with pytest.raises(IndexOutOfBoundsError):
            track.remove_child(0)
        with pytest.raises(IndexOutOfBoundsError):
            track.insert_child(1, _clip("a", 10))

        track.insert_child(0, _clip("a", 10))
        with pytest.raises(IndexOutOfBoundsError):
            track.remove_child(-1)

    def test_removed_child_survives_and_is_detached(self):
        track = Track(name="V1")
        clip = _clip("a", 10)
        track.append_child(clip)

        removed = track.remove_child(0)

        assert removed is clip
        assert clip.parent is None
        assert clip.duration().value == 10
        Track(name="V2").append_child(clip)

    def test_clear_children_detaches_all(self, clip_and_gap_track):
        children = list(clip_and_gap_track.children)

        removed = clip_and_gap_track.clear_children()

        assert [id(c) for c in removed] == [id(c) for c in children]
        assert clip_and_gap_track.children == []
        assert all(child.parent is None for child in removed)

    def test_parent_link_is_weak(self):
        clip = _clip("a", 10)
        track = Track(name="V1")
        track.append_child(clip)

        del track
        gc.collect()

        assert clip.parent is None

    def test_constructor_adopts_children(self):
        track = Track(name="V1", children=[_clip("a", 10), _gap(5)])

        assert all(child.parent is track for child in track.children)

    def test_deepcopy_is_unattached_and_relinked(self, clip_and_gap_track):
        stack = Stack(name="root")
        stack.append_child(clip_and_gap_track)

        copied = deepcopy(clip_and_gap_track)

        assert copied.parent is None
        assert copied == clip_and_gap_track
        assert all(child.parent is copied for child in copied.children)
        assert all(child.parent is clip_and_gap_track for child in clip_and_gap_track.children)

    def test_structural_equality(self):
        assert _clip("a", 10) == _clip("a", 10)
        assert _clip("a", 10) != _clip("a", 11)
        assert _clip("a", 10) != _gap(10)

    def test_range_in_parent_requires_parent(self):
        with pytest.raises(NoParentError):
            _clip("a", 10).range_in_parent()

    def test_composable_kind(self):
        assert composable_kind(_clip("a", 1)) == ComposableKind.CLIP
        assert composable_kind(_gap(1)) == ComposableKind.GAP
        assert composable_kind(Stack()) == ComposableKind.STACK
        assert composable_kind(Track()) == ComposableKind.TRACK
        assert composable_kind(Transition()) == ComposableKind.TRANSITION


class TestMetadata:
    def test_nested_maps_allowed(self):
        clip = Clip(name="a", metadata={"camera": {"iso": 800, "lens": "35mm"}, "ok": True})

        assert clip.metadata["camera"]["iso"] == 800

    def test_unsupported_values_rejected(self):
        with pytest.raises(ValueError):
            Clip(name="a", metadata={"takes": [1, 2]})


class TestClip:
    def test_single_reference_shorthand(self):
        reference = ExternalReference(
            target_url="file:///media/a.mov",
            available_range=TimeRange.from_frames(0, 100),
        )
        clip = Clip(name="a", media_reference=reference)

        assert clip.media_reference_keys() == [DEFAULT_MEDIA_KEY]
        assert clip.active_media_reference_key == DEFAULT_MEDIA_KEY
        assert clip.available_range() == TimeRange.from_frames(0, 100)
        assert clip.trimmed_range() == TimeRange.from_frames(0, 100)

    def test_active_key_must_exist(self):
        with pytest.raises(ValueError):
            Clip(name="a", active_media_reference_key="HIGH_RES")

        clip = Clip(name="a")
        with pytest.raises(NoMediaReferenceError):
            clip.set_active_media_reference_key("HIGH_RES")

    def test_multiple_references(self):
        clip = Clip(name="a")
        clip.set_media_references(
            {
                "PROXY": ExternalReference(available_range=TimeRange.from_frames(0, 50)),
                "HIGH_RES": ExternalReference(available_range=TimeRange.from_frames(0, 200)),
            },
            "PROXY",
        )

        assert clip.available_range().duration.value == 50
        clip.set_active_media_reference_key("HIGH_RES")
        assert clip.available_range().duration.value == 200

        with pytest.raises(NoMediaReferenceError):
            clip.set_media_references({"A": MissingReference()}, "B")

    def test_no_reference(self):
        with pytest.raises(NoMediaReferenceError):
            Clip(name="a").available_range()

        clip = Clip(name="a")
        clip.set_active_media_reference_key("")
        assert clip.media_reference is None

    def test_cleared_available_range(self):
        clip = Clip(
            name="a",
            media_reference=ExternalReference(available_range=TimeRange.from_frames(0, 48)),
        )
        clip.media_reference.available_range = None

        with pytest.raises(NoAvailableRangeError):
            clip.available_range()

    def test_negative_source_range_rejected(self):
        with pytest.raises(ValueError):
            _clip("a", -1)

    def test_assignment_is_validated(self):
        clip = _clip("a", 10)

        with pytest.raises(ValueError):
            clip.source_range = TimeRange.from_frames(0, -5)
        with pytest.raises(ValueError):
            clip.active_media_reference_key = "HIGH_RES"
        with pytest.raises(ValueError):
            clip.metadata = {"bad": object()}

        assert clip.source_range == TimeRange.from_frames(0, 10)
        assert clip.active_media_reference_key == ""

    def test_replacing_references_drops_stale_key(self):
        clip = Clip(name="a", media_reference=ExternalReference())

        clip.set_media_references({"PROXY": MissingReference()}, "PROXY")

        assert clip.media_reference_keys() == ["PROXY"]
        assert clip.active_media_reference_key == "PROXY"

    def test_markers_and_effects(self):
        clip = _clip("a", 10)
        marker = clip.add_marker(Marker(name="note", marked_range=TimeRange.from_frames(2, 1)))
        clip.add_effect(LinearTimeWarp.slow_motion("slow", 0.5))

        assert marker.color == MarkerColor.GREEN
        assert clip.markers[0].name == "note"
        assert clip.effects[0].time_scalar == 0.5

    def test_schema_tag(self):
        clip = _clip("a", 1)

        assert clip.schema_name == "Clip"
        assert clip.schema_version == 2
        assert _gap(1).schema_version == 1


class TestGapAndTransition:
    def test_gap_starts_at_zero(self):
        gap = _gap(12)

        assert gap.source_range.start_time.value == 0
        assert gap.duration().value == 12
        with pytest.raises(ValueError):
            Gap(source_range=TimeRange.from_frames(5, 10))

    def test_gap_rejects_negative_duration(self):
        gap = _gap(12)

        with pytest.raises(InvalidTimeRangeError):
            gap.set_duration(RationalTime(value=-1, rate=24))
        with pytest.raises(ValueError):
            gap.source_range = TimeRange.from_frames(3, 4)
        assert gap.duration().value == 12

    def test_transition_duration(self):
        transition = Transition.dissolve(duration_frames=12, rate=24)

        assert transition.in_offset.value == 6
        assert transition.duration().value == 12


class TestTrackLayout:
    def test_trimmed_range_sums_items(self, clip_and_gap_track):
        assert clip_and_gap_track.trimmed_range() == TimeRange(
            start_time=RationalTime(value=0, rate=24),
            duration=RationalTime(value=36, rate=24),
        )

    def test_range_of_child_at_index(self, clip_and_gap_track):
        assert clip_and_gap_track.range_of_child_at_index(1) == TimeRange(
            start_time=RationalTime(value=24, rate=24),
            duration=RationalTime(value=12, rate=24),
        )
        with pytest.raises(IndexOutOfBoundsError):
            clip_and_gap_track.range_of_child_at_index(2)

    def test_range_in_parent(self, clip_and_gap_track):
        gap = clip_and_gap_track.children[1]

        assert gap.range_in_parent() == TimeRange.from_frames(24, 12)

    def test_transitions_add_no_duration(self):
        track = Track(name="V1")
        track.append_child(_clip("a", 48))
        track.append_child(Transition.dissolve(12))
        track.append_child(_clip("b", 48))

        assert track.duration().value == 96
        assert track.range_of_child_at_index(1) == TimeRange.from_frames(42, 12)
        assert track.range_of_child_at_index(2) == TimeRange.from_frames(48, 48)

    def test_child_at_time(self, clip_and_gap_track):
        index, child = clip_and_gap_track.child_at_time(RationalTime(value=30, rate=24))

        assert index == 1
        assert isinstance(child, Gap)
        assert clip_and_gap_track.child_at_time(RationalTime(value=36, rate=24)) is None

    def test_empty_track(self):
        track = Track(name="V1")

        assert track.duration().value == 0

    def test_source_range_trims_track(self, clip_and_gap_track):
        clip_and_gap_track.source_range = TimeRange.from_frames(6, 12)

        assert clip_and_gap_track.duration().value == 12
        assert clip_and_gap_track.trimmed_range_of_child_at_index(0) == TimeRange.from_frames(6, 12)
        assert clip_and_gap_track.trimmed_range_of_child_at_index(1) is None

    def test_neighbors_of(self):
        track = Track(name="V1")
        track.append_child(Transition.dissolve(12))
        track.append_child(_clip("a", 24))

        previous, following = track.neighbors_of(0)
        assert previous is None
        assert following is track.children[1]

        previous, _ = track.neighbors_of(0, NeighborGapPolicy.AROUND_TRANSITIONS)
        assert isinstance(previous, Gap)
        assert previous.duration().value == 6
        assert previous.parent is None


class TestStackLayout:
    def test_duration_is_max(self, clip_and_gap_track):
        stack = Stack(name="layers")
        stack.append_child(clip_and_gap_track)
        longer = Track(name="V2")
        longer.append_child(_clip("long", 48))
        stack.append_child(longer)

        assert stack.trimmed_range().duration.value == 48
        assert stack.range_of_child_at_index(0) == TimeRange.from_frames(0, 36)
        assert stack.range_of_child_at_index(1) == TimeRange.from_frames(0, 48)


class TestTimeline:
    def test_create_empty(self):
        timeline = Timeline.create_empty("Cut", rate=30)

        assert timeline.metadata["default_rate"] == 30
        assert timeline.tracks.children == []
        assert timeline.tracks.parent is None

    def test_tracks_by_kind(self):
        timeline = Timeline.create_empty("Cut")
        video = timeline.add_track("V1", TrackKind.VIDEO)
        audio = timeline.add_track("A1", TrackKind.AUDIO)

        assert timeline.video_tracks() == [video]
        assert timeline.audio_tracks() == [audio]
        assert video.parent is timeline.tracks

    def test_find_items_recursive(self):
        timeline = Timeline.create_empty("Cut")
        track = timeline.add_track("V1")
        track.append_child(_clip("a", 24))
        track.append_child(Transition.dissolve(4))
        nested = Stack(name="nested")
        inner = Track(name="inner")
        inner.append_child(_clip("b", 12))
        inner.append_child(_gap(6))
        nested.append_child(inner)
        track.append_child(nested)

        assert [c.name for c in timeline.find_clips()] == ["a", "b"]
        assert len(timeline.find_gaps()) == 1
        assert len(timeline.find_transitions()) == 1
        assert timeline.duration().value == 42


class TestMediaReferences:
    def _sequence(self, frame_step: int = 1, base: str = "/base/") -> ImageSequenceReference:
        return ImageSequenceReference(
            target_url_base=base,
            name_prefix="shot_",
            name_suffix=".exr",
            start_frame=1,
            frame_step=frame_step,
            rate=24,
            frame_zero_padding=4,
            available_range=TimeRange.from_frames(0, 100),
        )

    def test_number_of_images(self):
        assert self._sequence().number_of_images_in_sequence() == 100
        assert self._sequence(frame_step=2).number_of_images_in_sequence() == 50
        assert ImageSequenceReference().number_of_images_in_sequence() == 0

    def test_target_url_for_image_number(self):
        sequence = self._sequence()

        assert sequence.target_url_for_image_number(0) == "/base/shot_0001.exr"
        assert sequence.target_url_for_image_number(99) == "/base/shot_0100.exr"
        assert self._sequence(base="renders").target_url_for_image_number(0) == "renders/shot_0001.exr"
        with pytest.raises(IndexOutOfBoundsError):
            sequence.target_url_for_image_number(100)

    def test_frame_for_time(self):
        sequence = self._sequence()

        assert sequence.frame_for_time(RationalTime(value=10, rate=24)) == 11
        assert sequence.end_frame() == 100
        with pytest.raises(InvalidTimeRangeError):
            sequence.frame_for_time(RationalTime(value=100, rate=24))

    def test_image_sequence_without_range(self):
        with pytest.raises(NoAvailableRangeError):
            ImageSequenceReference().frame_for_time(RationalTime(value=0, rate=24))

    def test_generator_helpers(self):
        assert GeneratorReference.black().generator_kind == GeneratorKind.BLACK.value
        assert GeneratorReference.smpte_bars("bars").generator_kind == "SMPTEBars"

    def test_time_effects(self):
        freeze = FreezeFrame()

        assert freeze.time_scalar == 0
        assert isinstance(freeze, LinearTimeWarp)
        assert LinearTimeWarp.reverse().time_scalar == -1
        assert LinearTimeWarp.fast_forward(multiplier=4).time_scalar == 4

    def test_freeze_frame_scalar_is_pinned(self):
        with pytest.raises(ValueError):
            FreezeFrame(time_scalar=1)

        freeze = FreezeFrame()
        with pytest.raises(ValueError):
            freeze.time_scalar = 2.0
        assert freeze.time_scalar == 0
