import logging
from typing import Generic, Iterable, Iterator, TypeVar

from timeline_engine.errors import InvalidOperationError, require
from timeline_engine.models.time_models import TimeRange
from timeline_engine.models.timeline_models import (
    Clip,
    Composable,
    ComposableKind,
    Composition,
    Timeline,
    Track,
    TrackKind,
    composable_kind,
)
from timeline_engine.operators.range_operator import transformed_time_range

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SearchResult(Generic[T]):
    """
    Ordered snapshot of search matches with a cursor.

    The list is materialized when the search runs; later changes to the tree
    are not reflected. ``next()`` returns None once exhausted or closed.
    """

    def __init__(self, items: Iterable[T]):
        self._items: list[T] = list(items)
        self._position = 0
        self._closed = False

    @property
    def count(self) -> int:
        return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    def next(self) -> T | None:
        if self._closed or self._position >= len(self._items):
            return None
        item = self._items[self._position]
        self._position += 1
        return item

    def reset(self) -> None:
        self._position = 0

    def close(self) -> None:
        """Release the snapshot; the result is empty afterwards."""
        self._items = []
        self._position = 0
        self._closed = True

    def to_list(self) -> list[T]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __repr__(self) -> str:
        return f"SearchResult(count={len(self._items)}, position={self._position})"


def _search_root(root: Composition | Timeline) -> Composition:
    require(root, "root")
    if isinstance(root, Timeline):
        return root.tracks
    if not isinstance(root, Composition):
        raise InvalidOperationError(f"'{root.name}' has no children to search")
    return root


def _matches(node: Composable, kind: type | ComposableKind | None) -> bool:
    if kind is None:
        return True
    if isinstance(kind, ComposableKind):
        return composable_kind(node) == kind
    return isinstance(node, kind)


def _collect(
    composition: Composition,
    root: Composition,
    kind: type | ComposableKind | None,
    search_range: TimeRange | None,
    shallow_search: bool,
    results: list[Composable],
) -> None:
    for child in composition.children:
        if search_range is not None:
            child_range = transformed_time_range(child.range_in_parent(), composition, root)
            if not child_range.overlaps(search_range):
                continue
        if _matches(child, kind):
            results.append(child)
        if not shallow_search and isinstance(child, Composition):
            _collect(child, root, kind, search_range, shallow_search, results)


def find_children(
    root: Composition | Timeline,
    kind: type | ComposableKind | None = None,
    search_range: TimeRange | None = None,
    shallow_search: bool = False,
) -> SearchResult[Composable]:
    """
    Depth-first, in-order snapshot of descendants of ``root``.

    ``kind`` filters by class or ComposableKind. ``search_range`` is in
    ``root``'s local space; subtrees outside it are skipped.
    """
    container = _search_root(root)
    results: list[Composable] = []
    _collect(container, container, kind, search_range, shallow_search, results)
    logger.debug(
        "search_children root=%s kind=%s matches=%d",
        container.name,
        getattr(kind, "__name__", kind),
        len(results),
    )
    return SearchResult(results)


def find_clips(
    root: Composition | Timeline,
    search_range: TimeRange | None = None,
    shallow_search: bool = False,
) -> SearchResult[Clip]:
    return find_children(root, Clip, search_range, shallow_search)


def find_tracks(
    root: Composition | Timeline,
    track_kind: TrackKind | None = None,
) -> SearchResult[Track]:
    tracks = [
        track for track in find_children(root, Track)
        if track_kind is None or track.kind == track_kind
    ]
    return SearchResult(tracks)


def children_snapshot(composition: Composition) -> SearchResult[tuple[ComposableKind, Composable]]:
    """Direct children of ``composition`` paired with their kind."""
    container = _search_root(composition)
    return SearchResult((composable_kind(child), child) for child in container.children)


def parent_of(node: Composable) -> tuple[ComposableKind, Composition] | None:
    """The node's parent paired with its kind, or None when unattached."""
    parent = require(node, "node").parent
    if parent is None:
        return None
    return composable_kind(parent), parent
