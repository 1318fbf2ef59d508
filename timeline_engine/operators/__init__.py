"""Operations over timeline trees: transforms, edits, serialization and search."""

from .range_operator import (
    available_range,
    lowest_common_ancestor,
    range_in_parent,
    range_of_child_at_index,
    transformed_time,
    transformed_time_range,
    transformed_time_to_track,
    trimmed_range,
)
from .timeline_editor import (
    add_transition,
    flatten_nested_stack,
    insert_at_time,
    nest_items_as_stack,
    overwrite,
    remove_at_time,
    ripple,
    roll,
    slice_at_time,
    slide,
    slip,
    trim,
)
from .serialization_operator import (
    decode,
    encode,
    from_json_string,
    read_from_file,
    schema_versions,
    to_json_string,
    write_to_file,
)
from .search_operator import (
    SearchResult,
    children_snapshot,
    find_children,
    find_clips,
    find_tracks,
    parent_of,
)

__all__ = [
    "available_range",
    "lowest_common_ancestor",
    "range_in_parent",
    "range_of_child_at_index",
    "transformed_time",
    "transformed_time_range",
    "transformed_time_to_track",
    "trimmed_range",
    "add_transition",
    "flatten_nested_stack",
    "insert_at_time",
    "nest_items_as_stack",
    "overwrite",
    "remove_at_time",
    "ripple",
    "roll",
    "slice_at_time",
    "slide",
    "slip",
    "trim",
    "decode",
    "encode",
    "from_json_string",
    "read_from_file",
    "schema_versions",
    "to_json_string",
    "write_to_file",
    "SearchResult",
    "children_snapshot",
    "find_children",
    "find_clips",
    "find_tracks",
    "parent_of",
]
