from timeline_engine.errors import InvalidOperationError, NotRelatedError, require
from timeline_engine.models.time_models import RationalTime, TimeRange
from timeline_engine.models.timeline_models import (
    Composable,
    Composition,
    Item,
    Track,
)


def _lineage(node: Composable) -> list[Composable]:
    return [node] + node.ancestors()


def _trimmed_start(node: Composable, rate: float) -> RationalTime:
    if isinstance(node, Item):
        return node.trimmed_range().start_time
    return RationalTime(value=0, rate=rate)


def _to_parent_space(time: RationalTime, node: Composable) -> RationalTime:
    return time - _trimmed_start(node, time.rate) + node.range_in_parent().start_time


def _from_parent_space(time: RationalTime, node: Composable) -> RationalTime:
    return time - node.range_in_parent().start_time + _trimmed_start(node, time.rate)


def lowest_common_ancestor(a: Composable, b: Composable) -> Composable | None:
    """
    Nearest node that is ``a`` or an ancestor of ``a`` and also ``b`` or an
    ancestor of ``b``. Returns None for nodes in different trees.
    """
    require(a, "a")
    require(b, "b")
    other_lineage = _lineage(b)
    for node in _lineage(a):
        if any(node is other for other in other_lineage):
            return node
    return None


def transformed_time(
    time: RationalTime,
    from_item: Composable,
    to_item: Composable,
) -> RationalTime:
    """
    Map ``time`` from ``from_item``'s local space to ``to_item``'s.

    Local space of an item is its trimmed range: a clip trimmed to start at
    frame 100 has local time 100 at its first visible frame. Walks up to the
    lowest common ancestor and back down; the result keeps ``time``'s rate.
    """
    require(time, "time")
    require(from_item, "from_item")
    require(to_item, "to_item")

    ancestor = lowest_common_ancestor(from_item, to_item)
    if ancestor is None:
        raise NotRelatedError(from_item.name, to_item.name)

    result = time
    node = from_item
    while node is not ancestor:
        result = _to_parent_space(result, node)
        node = node.parent

    path_down: list[Composable] = []
    node = to_item
    while node is not ancestor:
        path_down.append(node)
        node = node.parent
    for node in reversed(path_down):
        result = _from_parent_space(result, node)
    return result


def transformed_time_range(
    time_range: TimeRange,
    from_item: Composable,
    to_item: Composable,
) -> TimeRange:
    require(time_range, "time_range")
    start = transformed_time(time_range.start_time, from_item, to_item)
    end = transformed_time(time_range.end_time_exclusive, from_item, to_item)
    return TimeRange.from_start_end(start, end)


def transformed_time_to_track(time: RationalTime, item: Composable) -> RationalTime:
    """Map ``time`` from ``item``'s space into the nearest enclosing Track."""
    require(item, "item")
    track = next((a for a in item.ancestors() if isinstance(a, Track)), None)
    if track is None:
        raise NotRelatedError(item.name, "<track>")
    return transformed_time(time, item, track)


def trimmed_range(composition: Composition) -> TimeRange:
    return require(composition, "composition").trimmed_range()


def range_of_child_at_index(composition: Composition, index: int) -> TimeRange:
    require(composition, "composition")
    if not isinstance(composition, Composition):
        raise InvalidOperationError(f"'{composition.name}' has no children")
    return composition.range_of_child_at_index(index)


def available_range(item: Item) -> TimeRange:
    """
    Full extent of content an item can supply.

    For a Clip this comes from its active media reference and raises
    NoMediaReferenceError or NoAvailableRangeError when unresolvable.
    """
    return require(item, "item").available_range()


def range_in_parent(item: Composable) -> TimeRange:
    return require(item, "item").range_in_parent()
