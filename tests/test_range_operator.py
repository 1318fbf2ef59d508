import pytest

from timeline_engine.errors import (
    NoAvailableRangeError,
    NoMediaReferenceError,
    NoParentError,
    NotRelatedError,
    NullArgumentError,
)
from timeline_engine.models.media_models import ExternalReference
from timeline_engine.models.time_models import RationalTime, TimeRange
from timeline_engine.models.timeline_models import Clip, Gap, Stack, Track
from timeline_engine.operators.range_operator import (
    available_range,
    lowest_common_ancestor,
    range_in_parent,
    range_of_child_at_index,
    transformed_time,
    transformed_time_range,
    transformed_time_to_track,
    trimmed_range,
)


def _clip(name: str, frames: float, start: float = 0) -> Clip:
    return Clip(name=name, source_range=TimeRange.from_frames(start, frames))


@pytest.fixture
def clip_and_gap():
    track = Track(name="V1")
    clip = _clip("shot", 24)
    gap = Gap.with_duration(RationalTime(value=12, rate=24))
    track.append_child(clip)
    track.append_child(gap)
    return track, clip, gap


@pytest.fixture
def nested_tree():
    """
    root stack
      outer track: [gap 10][nested stack]
                               inner track: [clip c, source 100..120]
    """
    root = Stack(name="root")
    outer = Track(name="outer")
    root.append_child(outer)
    outer.append_child(Gap.with_duration(RationalTime(value=10, rate=24)))
    nested = Stack(name="nested")
    outer.append_child(nested)
    inner = Track(name="inner")
    nested.append_child(inner)
    clip = _clip("c", 20, start=100)
    inner.append_child(clip)
    return root, outer, inner, clip


class TestTransformedTime:
    def test_clip_to_sibling_gap(self, clip_and_gap):
        _, clip, gap = clip_and_gap

        result = transformed_time(RationalTime(value=5, rate=24), clip, gap)

        assert result == RationalTime(value=-19, rate=24)
        assert result.rate == 24

    def test_result_keeps_input_rate(self, clip_and_gap):
        _, clip, gap = clip_and_gap

        result = transformed_time(RationalTime(value=10, rate=48), clip, gap)

        assert result.rate == 48
        assert result.value == -38

    def test_trimmed_start_is_local_origin(self):
        track = Track(name="V1")
        clip = _clip("a", 24, start=100)
        track.append_child(clip)

        assert transformed_time(RationalTime(value=100, rate=24), clip, track).value == 0
        assert clip.transformed_time(RationalTime(value=110, rate=24), track).value == 10

    def test_nested_round_trip(self, nested_tree):
        _, outer, _, clip = nested_tree

        up = transformed_time(RationalTime(value=105, rate=24), clip, outer)
        down = transformed_time(up, outer, clip)

        assert up.value == 15
        assert down.value == 105

    def test_same_item_is_identity(self, clip_and_gap):
        _, clip, _ = clip_and_gap

        assert transformed_time(RationalTime(value=7, rate=24), clip, clip).value == 7

    def test_unrelated_items(self):
        with pytest.raises(NotRelatedError):
            transformed_time(RationalTime(value=0, rate=24), _clip("a", 1), _clip("b", 1))

    def test_null_arguments(self, clip_and_gap):
        _, clip, gap = clip_and_gap

        with pytest.raises(NullArgumentError):
            transformed_time(None, clip, gap)
        with pytest.raises(NullArgumentError):
            transformed_time(RationalTime(value=0, rate=24), clip, None)

    def test_transformed_time_range(self, clip_and_gap):
        _, clip, gap = clip_and_gap

        result = transformed_time_range(TimeRange.from_frames(0, 24), clip, gap)

        assert result == TimeRange.from_frames(-24, 24)
        assert clip.transformed_time_range(TimeRange.from_frames(0, 24), gap) == result

    def test_transformed_time_to_track(self, nested_tree):
        _, _, inner, clip = nested_tree

        assert transformed_time_to_track(RationalTime(value=105, rate=24), clip).value == 5
        with pytest.raises(NotRelatedError):
            transformed_time_to_track(RationalTime(value=0, rate=24), _clip("lone", 1))


class TestAncestry:
    def test_lowest_common_ancestor(self, nested_tree):
        root, outer, inner, clip = nested_tree

        assert lowest_common_ancestor(clip, outer) is outer
        assert lowest_common_ancestor(clip, outer.children[0]) is outer
        assert lowest_common_ancestor(inner, root) is root
        assert lowest_common_ancestor(clip, _clip("lone", 1)) is None


class TestRanges:
    def test_trimmed_range_and_child_range(self, clip_and_gap):
        track, _, _ = clip_and_gap

        assert trimmed_range(track) == TimeRange.from_frames(0, 36)
        assert range_of_child_at_index(track, 1) == TimeRange.from_frames(24, 12)

    def test_range_in_parent(self, nested_tree):
        _, outer, _, _ = nested_tree
        nested = outer.children[1]

        assert range_in_parent(nested) == TimeRange.from_frames(10, 20)
        with pytest.raises(NoParentError):
            range_in_parent(_clip("lone", 1))

    def test_available_range(self):
        reference = ExternalReference(available_range=TimeRange.from_frames(0, 48))
        clip = Clip(name="a", media_reference=reference)

        assert available_range(clip) == TimeRange.from_frames(0, 48)

        clip.media_reference.available_range = None
        with pytest.raises(NoAvailableRangeError):
            available_range(clip)

        with pytest.raises(NoMediaReferenceError):
            available_range(Clip(name="bare"))
