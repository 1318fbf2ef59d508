import logging
from contextlib import contextmanager
from copy import deepcopy
from typing import Iterator

from timeline_engine.errors import (
    AlreadyHasParentError,
    IndexOutOfBoundsError,
    InsufficientNeighborDurationError,
    InvalidOperationError,
    InvalidTimeRangeError,
    NoParentError,
    NoPreviousSiblingError,
    OutOfAvailableRangeError,
    TransitionConflictError,
    require,
)
from timeline_engine.models.time_models import RationalTime, TimeRange
from timeline_engine.models.timeline_models import (
    Clip,
    Composable,
    Composition,
    Gap,
    Item,
    Stack,
    Track,
    Transition,
    TransitionType,
)

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================


@contextmanager
def _atomic_edit(operation: str, track: Track, *extra: Composable) -> Iterator[None]:
    """
    Restore ``track`` if the body raises.

    Snapshots the child list, every child's parent link and source_range,
    and the same for ``extra`` nodes (items being placed into the track).
    Edits only ever replace a source_range, never mutate one in place.
    """
    saved_children = list(track.children)
    saved_state = [
        (node, node._parent, getattr(node, "source_range", None))
        for node in saved_children + [n for n in extra if n is not None]
    ]
    try:
        yield
    except Exception as exc:
        added = [
            node for node in track.children
            if not any(node is kept for kept in saved_children)
        ]
        track.children[:] = saved_children
        for node in added:
            node._set_parent(None)
        for node, parent_ref, source_range in saved_state:
            node._parent = parent_ref
            if isinstance(node, Item):
                node.source_range = source_range
        logger.warning(
            "edit_rollback operation=%s track=%s error=%s",
            operation,
            track.name,
            f"{type(exc).__name__}: {exc}",
        )
        raise


def _require_track(track: Track) -> Track:
    require(track, "track")
    if not isinstance(track, Track):
        raise InvalidOperationError(f"'{track.name}' is not a Track")
    return track


def _require_placeable(item: Item) -> Item:
    require(item, "item")
    if isinstance(item, Transition) or not isinstance(item, Item):
        raise InvalidOperationError(
            f"'{item.name}' cannot be placed by an edit; use add_transition for transitions"
        )
    owner = item.parent
    if owner is not None:
        raise AlreadyHasParentError(item.name, owner.name)
    return item


def _require_editable(item: Item) -> Item:
    require(item, "item")
    if not isinstance(item, Item):
        raise InvalidOperationError(f"Transition '{item.name}' is not an edit target")
    return item


def _parent_track(item: Item) -> Track:
    parent = item.parent
    if parent is None:
        raise NoParentError(item.name)
    if not isinstance(parent, Track):
        raise InvalidOperationError(f"'{item.name}' is not inside a Track")
    return parent


def _track_end(track: Track) -> RationalTime:
    return track.available_range().end_time_exclusive


def _zero_like(time: RationalTime) -> RationalTime:
    return RationalTime(value=0, rate=time.rate)


def _frames(time: RationalTime) -> str:
    return f"{time.value:g}"


def _bounds_of(item: Composable) -> TimeRange | None:
    if isinstance(item, Clip):
        reference = item.media_reference
        return reference.available_range if reference is not None else None
    if isinstance(item, Composition):
        return item.available_range()
    return None


def _check_within_available(item: Composable, new_range: TimeRange) -> None:
    if isinstance(item, Gap):
        return
    bounds = _bounds_of(item)
    if bounds is not None and not bounds.contains_range(new_range):
        raise OutOfAvailableRangeError(
            f"'{item.name}' range {new_range} exceeds available range {bounds}"
        )


def _window(item: Item, offset: RationalTime, duration: RationalTime) -> TimeRange:
    current = item.trimmed_range()
    return TimeRange(start_time=current.start_time + offset, duration=duration)


def _apply_range(item: Item, new_range: TimeRange) -> None:
    if isinstance(item, Gap):
        item.set_duration(new_range.duration)
    else:
        item.source_range = new_range


def _set_window(item: Item, offset: RationalTime, duration: RationalTime) -> None:
    """Keep ``duration`` of the item's content starting ``offset`` into its current window."""
    if duration.value < 0:
        raise InsufficientNeighborDurationError(
            f"'{item.name}' cannot be shortened to {_frames(duration)} frames"
        )
    new_range = _window(item, offset, duration)
    _check_within_available(item, new_range)
    _apply_range(item, new_range)


def _resize_tail(item: Item, duration: RationalTime) -> None:
    _set_window(item, _zero_like(duration), duration)


def _fit_to_duration(item: Item, duration: RationalTime) -> None:
    """Give ``item`` exactly ``duration``, keeping its in-point when it has one."""
    if isinstance(item, Gap):
        item.set_duration(duration)
        return
    bounds = _bounds_of(item)
    if item.source_range is not None:
        if item.source_range.duration == duration:
            return
        start = item.source_range.start_time
    elif bounds is not None:
        if isinstance(item, Composition) and bounds.duration == duration:
            return
        start = bounds.start_time
    else:
        start = _zero_like(duration)
    new_range = TimeRange(start_time=start, duration=duration)
    _check_within_available(item, new_range)
    item.source_range = new_range


def _split_at(track: Track, index: int, offset: RationalTime) -> Item:
    """
    Split the child at ``index`` ``offset`` into its range.

    The original node keeps the left part; a copy holding the right part is
    inserted after it and returned.
    """
    child = track.children[index]
    child_duration = child.duration()
    right = deepcopy(child)
    _set_window(right, offset, child_duration - offset)
    _resize_tail(child, offset)
    track.insert_child(index + 1, right)
    return right


def _transition_spans(track: Track) -> list[tuple[Transition, TimeRange]]:
    return [
        (child, child_range)
        for child, child_range in zip(track.children, track.range_of_all_children())
        if isinstance(child, Transition)
    ]


def _strip_or_raise(
    track: Track,
    transitions: list[Transition],
    remove_transitions: bool,
    context: str,
) -> None:
    if not transitions:
        return
    if not remove_transitions:
        names = ", ".join(f"'{t.name}'" for t in transitions)
        raise TransitionConflictError(
            f"{context} touches transition {names} in track '{track.name}'; "
            f"pass remove_transitions=True to strip it"
        )
    for transition in transitions:
        track.remove_child(track.index_of_child(transition))
        logger.debug(
            "edit_strip_transition track=%s transition=%s", track.name, transition.name
        )


def _resolve_transitions_in_range(
    track: Track,
    start: RationalTime,
    end: RationalTime,
    remove_transitions: bool,
) -> None:
    conflicts = [
        transition for transition, span in _transition_spans(track)
        if span.start_time < end and span.end_time_exclusive > start
    ]
    _strip_or_raise(track, conflicts, remove_transitions, f"Range [{start}, {end})")


def _resolve_transitions_at_time(
    track: Track,
    time: RationalTime,
    remove_transitions: bool,
) -> None:
    conflicts = []
    for transition, span in _transition_spans(track):
        boundary = span.start_time + transition.in_offset
        if span.start_time < time < span.end_time_exclusive or boundary == time:
            conflicts.append(transition)
    _strip_or_raise(track, conflicts, remove_transitions, f"Time {time}")


def _resolve_adjacent_transitions(
    track: Track,
    item: Composable,
    before: bool,
    after: bool,
    remove_transitions: bool,
) -> None:
    previous, following = track.neighbors_of(track.index_of_child(item))
    adjacent = []
    if before and isinstance(previous, Transition):
        adjacent.append(previous)
    if after and isinstance(following, Transition):
        adjacent.append(following)
    _strip_or_raise(track, adjacent, remove_transitions, f"Edit of '{item.name}'")


def _validate_transition_position(track: Track, position: int) -> None:
    if position < 1 or position >= len(track.children):
        raise InvalidOperationError(
            f"Transition position {position} is invalid. "
            f"Must be between 1 and {len(track.children) - 1}"
        )
    prev_item = track.children[position - 1]
    next_item = track.children[position] if position < len(track.children) else None
    if isinstance(prev_item, Transition):
        raise InvalidOperationError(
            "Cannot place transition: previous item is already a transition"
        )
    if next_item and isinstance(next_item, Transition):
        raise InvalidOperationError(
            "Cannot place transition: next item is already a transition"
        )


def _roll_neighbor(item: Item, offset: RationalTime, duration: RationalTime) -> None:
    try:
        _set_window(item, offset, duration)
    except OutOfAvailableRangeError as e:
        raise InsufficientNeighborDurationError(
            f"'{item.name}' cannot absorb the roll: {e}"
        ) from e


def _drop_if_empty_gap(track: Track, node: Composable) -> bool:
    if isinstance(node, Gap) and node.duration().value == 0:
        track.remove_child(track.index_of_child(node))
        return True
    return False


def _validate_edit_time(track: Track, time: RationalTime) -> None:
    require(time, "time")
    if not track.children or time.value < 0 or time >= _track_end(track):
        raise InvalidTimeRangeError(
            f"Time {time} is outside track '{track.name}' [0, {_track_end(track)})"
        )


def _new_trimmed_range(
    item: Item,
    delta_in: RationalTime,
    delta_out: RationalTime,
) -> TimeRange:
    require(delta_in, "delta_in")
    require(delta_out, "delta_out")
    current = item.trimmed_range()
    new_duration = current.duration - delta_in + delta_out
    if new_duration.value < 0:
        raise InvalidTimeRangeError(
            f"Trimming '{item.name}' by in={delta_in} out={delta_out} "
            f"leaves a negative duration"
        )
    return TimeRange(start_time=current.start_time + delta_in, duration=new_duration)


# =============================================================================
# TRACK EDITS
# =============================================================================


def overwrite(
    item: Item,
    track: Track,
    time_range: TimeRange,
    remove_transitions: bool = True,
) -> None:
    """
    Place ``item`` exactly at ``time_range``, replacing whatever was there.

    Children fully inside the range are removed; children straddling an
    edge are trimmed (a child spanning the whole range is split around
    ``item``). The item is resized to the range's duration. A range past the
    end of the track is preceded by a filling Gap.
    """
    _require_track(track)
    _require_placeable(item)
    require(time_range, "time_range")
    if time_range.start_time.value < 0 or time_range.duration.value < 0:
        raise InvalidTimeRangeError(f"Cannot overwrite at {time_range}")

    start = time_range.start_time
    end = time_range.end_time_exclusive
    with _atomic_edit("overwrite", track, item):
        _resolve_transitions_in_range(track, start, end, remove_transitions)
        _fit_to_duration(item, time_range.duration)

        track_end = _track_end(track)
        if start >= track_end:
            if start > track_end:
                track.append_child(Gap.with_duration(start - track_end))
            track.append_child(item)
        else:
            before: list[Composable] = []
            after: list[Composable] = []
            for child, child_range in zip(list(track.children), track.range_of_all_children()):
                if isinstance(child, Transition):
                    boundary = child_range.start_time + child.in_offset
                    (before if boundary <= start else after).append(child)
                    continue
                child_start = child_range.start_time
                child_end = child_range.end_time_exclusive
                if child_end <= start:
                    before.append(child)
                elif child_start >= end:
                    after.append(child)
                else:
                    if child_end > end:
                        right = deepcopy(child)
                        _set_window(right, end - child_start, child_end - end)
                        after.append(right)
                    if child_start < start:
                        _resize_tail(child, start - child_start)
                        before.append(child)

            track.clear_children()
            for child in before + [item] + after:
                track.append_child(child)

    logger.debug(
        "edit_overwrite track=%s item=%s range=%s", track.name, item.name, time_range
    )


def insert_at_time(
    item: Item,
    track: Track,
    time: RationalTime,
    remove_transitions: bool = True,
) -> None:
    """
    Insert ``item`` at ``time``, pushing later content back by its duration.

    A time strictly inside a child splits it; a boundary time inserts without
    splitting. Times at or before 0 insert first, times past the end append
    after a filling Gap.
    """
    _require_track(track)
    _require_placeable(item)
    require(time, "time")
    # raises NoMediaReferenceError/NoAvailableRangeError for an unsized clip
    item.duration()

    with _atomic_edit("insert", track, item):
        _resolve_transitions_at_time(track, time, remove_transitions)
        track_end = _track_end(track)
        if time.value <= 0:
            track.insert_child(0, item)
        elif time >= track_end:
            if time > track_end:
                track.append_child(Gap.with_duration(time - track_end))
            track.append_child(item)
        else:
            index, child = track.child_at_time(time)
            offset = time - track.range_of_child_at_index(index).start_time
            if offset.value == 0:
                track.insert_child(index, item)
            else:
                _split_at(track, index, offset)
                track.insert_child(index + 1, item)

    logger.debug("edit_insert track=%s item=%s time=%s", track.name, item.name, time)


def slice_at_time(
    track: Track,
    time: RationalTime,
    remove_transitions: bool = True,
) -> None:
    """Split the child under ``time`` in two; a boundary time is a no-op."""
    _require_track(track)
    _validate_edit_time(track, time)

    with _atomic_edit("slice", track):
        _resolve_transitions_at_time(track, time, remove_transitions)
        index, child = track.child_at_time(time)
        offset = time - track.range_of_child_at_index(index).start_time
        if offset.value == 0:
            return
        _split_at(track, index, offset)

    logger.debug("edit_slice track=%s item=%s time=%s", track.name, child.name, time)


def remove_at_time(
    track: Track,
    time: RationalTime,
    fill_with_gap: bool = True,
    remove_transitions: bool = True,
) -> Composable:
    """
    Remove the child under ``time`` and return it.

    With ``fill_with_gap`` a Gap of equal duration takes its place; otherwise
    later children move earlier.
    """
    _require_track(track)
    _validate_edit_time(track, time)

    with _atomic_edit("remove", track):
        index, child = track.child_at_time(time)
        _resolve_adjacent_transitions(track, child, True, True, remove_transitions)
        index = track.index_of_child(child)
        duration = child.duration()
        track.remove_child(index)
        if fill_with_gap:
            track.insert_child(index, Gap.with_duration(duration))

    logger.debug(
        "edit_remove track=%s item=%s time=%s fill_with_gap=%s",
        track.name,
        child.name,
        time,
        fill_with_gap,
    )
    return child


# =============================================================================
# ITEM EDITS
# =============================================================================


def slip(item: Item, delta: RationalTime) -> None:
    """
    Shift the item's source window by ``delta`` without moving it in time.

    Bounded by the available range when one is known.
    """
    _require_editable(item)
    require(delta, "delta")
    if isinstance(item, Gap):
        raise InvalidOperationError(f"Gap '{item.name}' has no content to slip")

    current = item.trimmed_range()
    new_range = TimeRange(start_time=current.start_time + delta, duration=current.duration)
    _check_within_available(item, new_range)
    item.source_range = new_range

    direction = "forward" if delta.value > 0 else "backward"
    logger.debug(
        "Slipped clip '%s' %s frames %s", item.name, f"{abs(delta.value):g}", direction
    )


def slide(
    item: Item,
    delta: RationalTime,
    remove_transitions: bool = False,
) -> None:
    """
    Move ``item`` later (or earlier) by ``delta`` within its track.

    The previous sibling absorbs the move by lengthening (or shortening); the
    next sibling gives up (or gains) the same amount at its in-point. The last
    item can only slide earlier; a trailing Gap fills the space it leaves, so
    the track duration never changes.
    """
    _require_editable(item)
    require(delta, "delta")
    track = _parent_track(item)
    index = track.index_of_child(item)
    if not any(not isinstance(c, Transition) for c in track.children[:index]):
        raise NoPreviousSiblingError(item.name)

    with _atomic_edit("slide", track, item):
        _resolve_adjacent_transitions(track, item, True, True, remove_transitions)
        previous, following = track.neighbors_of(track.index_of_child(item))

        previous_duration = previous.duration() + delta
        if previous_duration.value < 0:
            raise InsufficientNeighborDurationError(
                f"'{previous.name}' cannot absorb a slide of {delta}"
            )
        if following is not None:
            following_duration = following.duration() - delta
            if following_duration.value < 0:
                raise InsufficientNeighborDurationError(
                    f"'{following.name}' cannot absorb a slide of {delta}"
                )
            _set_window(following, delta, following_duration)
        elif delta.value > 0:
            raise InsufficientNeighborDurationError(
                f"Nothing after '{item.name}' can absorb a slide of {delta}"
            )
        elif delta.value < 0:
            # the track end stays put
            track.append_child(Gap.with_duration(-delta))
        _resize_tail(previous, previous_duration)

    logger.debug("edit_slide track=%s item=%s delta=%s", track.name, item.name, delta)


def trim(
    item: Item,
    delta_in: RationalTime,
    delta_out: RationalTime,
    remove_transitions: bool = False,
) -> None:
    """
    Move the item's in/out points without moving its neighbors.

    A positive ``delta_in`` or negative ``delta_out`` opens space that is
    filled by a new or lengthened Gap. A negative ``delta_in`` takes time from
    the previous neighbor; a positive ``delta_out`` from the next one (or
    grows the track when the item is last).
    """
    _require_editable(item)
    new_range = _new_trimmed_range(item, delta_in, delta_out)
    _check_within_available(item, new_range)

    parent = item.parent
    if not isinstance(parent, Track):
        _apply_range(item, new_range)
        logger.debug("edit_trim item=%s range=%s", item.name, new_range)
        return

    track = parent
    with _atomic_edit("trim", track, item):
        _resolve_adjacent_transitions(
            track, item, delta_in.value != 0, delta_out.value != 0, remove_transitions
        )
        index = track.index_of_child(item)

        if delta_in.value > 0:
            previous = track.children[index - 1] if index > 0 else None
            if isinstance(previous, Gap):
                previous.set_duration(previous.duration() + delta_in)
            else:
                track.insert_child(index, Gap.with_duration(delta_in))
        elif delta_in.value < 0:
            shrink = -delta_in
            previous = track.children[index - 1] if index > 0 else None
            if previous is None or previous.duration() < shrink:
                raise InsufficientNeighborDurationError(
                    f"No room before '{item.name}' to extend its in-point by {shrink}"
                )
            _resize_tail(previous, previous.duration() - shrink)
            _drop_if_empty_gap(track, previous)

        index = track.index_of_child(item)
        following = track.children[index + 1] if index + 1 < len(track.children) else None
        if delta_out.value > 0 and following is not None:
            if following.duration() < delta_out:
                raise InsufficientNeighborDurationError(
                    f"No room after '{item.name}' to extend its out-point by {delta_out}"
                )
            _set_window(following, delta_out, following.duration() - delta_out)
            _drop_if_empty_gap(track, following)
        elif delta_out.value < 0 and following is not None:
            grow = -delta_out
            if isinstance(following, Gap):
                following.set_duration(following.duration() + grow)
            else:
                track.insert_child(index + 1, Gap.with_duration(grow))

        _apply_range(item, new_range)

    logger.debug(
        "edit_trim track=%s item=%s delta_in=%s delta_out=%s",
        track.name,
        item.name,
        delta_in,
        delta_out,
    )


def ripple(
    item: Item,
    delta_in: RationalTime,
    delta_out: RationalTime,
    remove_transitions: bool = False,
) -> None:
    """Trim the item's in/out points and let every later sibling shift."""
    _require_editable(item)
    new_range = _new_trimmed_range(item, delta_in, delta_out)
    _check_within_available(item, new_range)

    parent = item.parent
    if not isinstance(parent, Track):
        _apply_range(item, new_range)
    else:
        with _atomic_edit("ripple", parent, item):
            _resolve_adjacent_transitions(
                parent, item, delta_in.value != 0, delta_out.value != 0, remove_transitions
            )
            _apply_range(item, new_range)

    logger.debug(
        "edit_ripple item=%s delta_in=%s delta_out=%s", item.name, delta_in, delta_out
    )


def roll(
    item: Item,
    delta_in: RationalTime,
    delta_out: RationalTime,
    remove_transitions: bool = False,
) -> None:
    """
    Move the item's edit points, trading duration with the adjacent neighbors.

    Nothing else in the track moves and its duration is unchanged.
    """
    _require_editable(item)
    track = _parent_track(item)
    new_range = _new_trimmed_range(item, delta_in, delta_out)
    _check_within_available(item, new_range)

    with _atomic_edit("roll", track, item):
        _resolve_adjacent_transitions(
            track, item, delta_in.value != 0, delta_out.value != 0, remove_transitions
        )
        previous, following = track.neighbors_of(track.index_of_child(item))

        if delta_in.value != 0:
            if previous is None:
                raise InsufficientNeighborDurationError(
                    f"'{item.name}' has no previous neighbor to roll into"
                )
            previous_duration = previous.duration() + delta_in
            if previous_duration.value < 0:
                raise InsufficientNeighborDurationError(
                    f"'{previous.name}' cannot give up {-delta_in}"
                )
            _roll_neighbor(previous, _zero_like(previous_duration), previous_duration)

        if delta_out.value != 0:
            if following is None:
                raise InsufficientNeighborDurationError(
                    f"'{item.name}' has no next neighbor to roll into"
                )
            following_duration = following.duration() - delta_out
            if following_duration.value < 0:
                raise InsufficientNeighborDurationError(
                    f"'{following.name}' cannot give up {delta_out}"
                )
            _roll_neighbor(following, delta_out, following_duration)

        _apply_range(item, new_range)

    logger.debug(
        "edit_roll track=%s item=%s delta_in=%s delta_out=%s",
        track.name,
        item.name,
        delta_in,
        delta_out,
    )


# =============================================================================
# TRACK MAINTENANCE
# =============================================================================


def add_transition(
    track: Track,
    position: int,
    transition_type: TransitionType = TransitionType.SMPTE_DISSOLVE,
    in_offset: RationalTime | None = None,
    out_offset: RationalTime | None = None,
    name: str = "",
) -> Transition:
    """Insert a transition between the children at ``position - 1`` and ``position``."""
    _require_track(track)
    rate = track.available_range().duration.rate

    if in_offset is None:
        in_offset = RationalTime(value=12, rate=rate)
    if out_offset is None:
        out_offset = RationalTime(value=12, rate=rate)

    _validate_transition_position(track, position)
    outgoing = track.children[position - 1]
    incoming = track.children[position]
    if outgoing.duration() < in_offset or incoming.duration() < out_offset:
        raise InsufficientNeighborDurationError(
            f"Neighbors of position {position} in track '{track.name}' are too short "
            f"for a {in_offset}+{out_offset} transition"
        )

    transition = Transition(
        name=name,
        transition_type=transition_type,
        in_offset=in_offset,
        out_offset=out_offset,
    )
    track.insert_child(position, transition)

    logger.debug(
        "Added %s transition (%s frames) in track '%s'",
        transition_type.value,
        _frames(transition.duration()),
        track.name,
    )
    return transition


def nest_items_as_stack(
    track: Track,
    start_index: int,
    end_index: int,
    stack_name: str,
) -> Stack:
    """Move children ``start_index..end_index`` into a Stack holding one Track."""
    _require_track(track)
    if start_index < 0 or end_index >= len(track.children) or start_index > end_index:
        raise IndexOutOfBoundsError(
            end_index if start_index >= 0 else start_index,
            len(track.children),
        )

    num_items = end_index - start_index + 1
    items_to_nest = [track.remove_child(start_index) for _ in range(num_items)]
    inner_track = Track(
        name=f"{stack_name}_track",
        kind=track.kind,
        children=items_to_nest,
    )
    nested_stack = Stack(name=stack_name, children=[inner_track])
    track.insert_child(start_index, nested_stack)

    logger.debug(
        "Nested %d items as '%s' in track '%s'", num_items, stack_name, track.name
    )
    return nested_stack


def flatten_nested_stack(track: Track, stack_index: int) -> list[Composable]:
    """
    Replace the Stack at ``stack_index`` with the contents of its first child.

    A first child that is a Track is inlined item by item; any other first
    child is inlined as a single node.
    """
    _require_track(track)
    if stack_index < 0 or stack_index >= len(track.children):
        raise IndexOutOfBoundsError(stack_index, len(track.children))
    item = track.children[stack_index]
    if not isinstance(item, Stack):
        raise InvalidOperationError(f"Item at index {stack_index} is not a Stack")
    if not item.children:
        raise InvalidOperationError("Stack has no children to flatten")

    first_child = item.children[0]
    if isinstance(first_child, Track):
        items_to_inline = first_child.clear_children()
    else:
        items_to_inline = [item.remove_child(0)]

    track.remove_child(stack_index)
    for offset, child in enumerate(items_to_inline):
        track.insert_child(stack_index + offset, child)

    logger.debug(
        "Flattened nested stack '%s' (%d items)", item.name, len(items_to_inline)
    )
    return items_to_inline
