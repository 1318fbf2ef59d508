"""
Schema-versioned JSON documents.

Every node is written as a dict tagged ``"OTIO_SCHEMA": "<Name>.<version>"``.
Older versions are produced on request through per-schema downgrade rules and
accepted on read through the matching upgrade rules; there is no generic
field reflection.
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from timeline_engine.config import get_settings
from timeline_engine.errors import (
    DocumentIOError,
    MalformedDocumentError,
    UnknownSchemaError,
    require,
)
from timeline_engine.models.base_models import split_schema
from timeline_engine.models.media_models import (
    Effect,
    ExternalReference,
    FreezeFrame,
    GeneratorReference,
    ImageSequenceReference,
    LinearTimeWarp,
    Marker,
    MissingReference,
)
from timeline_engine.models.time_models import RationalTime, TimeRange
from timeline_engine.models.timeline_models import (
    DEFAULT_MEDIA_KEY,
    Clip,
    Gap,
    Stack,
    Timeline,
    Track,
    Transition,
)

logger = logging.getLogger(__name__)

SCHEMA_KEY = "OTIO_SCHEMA"

Document = dict[str, Any]
Rule = Callable[[Document], Document]


def _tag_of(cls: type[BaseModel]) -> str:
    return cls.model_fields[SCHEMA_KEY].default


SCHEMA_REGISTRY: dict[str, type[BaseModel]] = {
    split_schema(_tag_of(cls))[0]: cls
    for cls in (
        RationalTime,
        TimeRange,
        ExternalReference,
        GeneratorReference,
        MissingReference,
        ImageSequenceReference,
        Effect,
        LinearTimeWarp,
        FreezeFrame,
        Marker,
        Clip,
        Gap,
        Transition,
        Stack,
        Track,
        Timeline,
    )
}


def schema_versions() -> dict[str, int]:
    """Current version of every known schema."""
    return {name: split_schema(_tag_of(cls))[1] for name, cls in SCHEMA_REGISTRY.items()}


# =============================================================================
# VERSION RULES
# =============================================================================


def _clip_2_to_1(data: Document) -> Document:
    references = data.pop("media_references", {}) or {}
    active_key = data.pop("active_media_reference_key", "")
    data["media_reference"] = references.get(active_key) if active_key else None
    return data


def _clip_1_to_2(data: Document) -> Document:
    reference = data.pop("media_reference", None)
    if reference is None:
        data["media_references"] = {}
        data["active_media_reference_key"] = ""
    else:
        data["media_references"] = {DEFAULT_MEDIA_KEY: reference}
        data["active_media_reference_key"] = DEFAULT_MEDIA_KEY
    return data


def _marker_2_to_1(data: Document) -> Document:
    data.pop("comment", None)
    return data


def _marker_1_to_2(data: Document) -> Document:
    data.setdefault("comment", "")
    return data


# schema name -> version -> rule converting that version to version - 1
DOWNGRADE_RULES: dict[str, dict[int, Rule]] = {
    "Clip": {2: _clip_2_to_1},
    "Marker": {2: _marker_2_to_1},
}

# schema name -> version -> rule converting that version to version + 1
UPGRADE_RULES: dict[str, dict[int, Rule]] = {
    "Clip": {1: _clip_1_to_2},
    "Marker": {1: _marker_1_to_2},
}


# =============================================================================
# TREE WALK
# =============================================================================


def _transform_tree(node: Any, visit: Callable[[Document], Document]) -> Any:
    """Rebuild ``node`` bottom-up, calling ``visit`` on every tagged dict."""
    if isinstance(node, list):
        return [_transform_tree(value, visit) for value in node]
    if not isinstance(node, dict):
        return node
    result = {
        # metadata is opaque user data
        key: value if key == "metadata" else _transform_tree(value, visit)
        for key, value in node.items()
    }
    if SCHEMA_KEY in result:
        result = visit(result)
    return result


def _parse_tag(tag: Any) -> tuple[str, int]:
    if not isinstance(tag, str):
        raise MalformedDocumentError(f"Schema tag must be a string, got {tag!r}")
    try:
        return split_schema(tag)
    except ValueError as e:
        raise MalformedDocumentError(str(e)) from e


def _downgrader(version_overrides: dict[str, int]) -> Callable[[Document], Document]:
    def visit(data: Document) -> Document:
        tag = data[SCHEMA_KEY]
        name, version = _parse_tag(tag)
        target = version_overrides.get(name)
        if target is None or version <= target:
            return data
        while version > target:
            rule = DOWNGRADE_RULES.get(name, {}).get(version)
            if rule is None:
                raise UnknownSchemaError(f"{name}.{target}", reason=f"no downgrade path from {tag}")
            data = rule(data)
            version -= 1
        data[SCHEMA_KEY] = f"{name}.{version}"
        return data
    return visit


def _upgrade(data: Document) -> Document:
    tag = data[SCHEMA_KEY]
    name, version = _parse_tag(tag)
    cls = SCHEMA_REGISTRY.get(name)
    if cls is None:
        raise UnknownSchemaError(tag)
    current = split_schema(_tag_of(cls))[1]
    if version > current:
        raise UnknownSchemaError(tag, reason=f"version newer than supported {name}.{current}")
    while version < current:
        rule = UPGRADE_RULES.get(name, {}).get(version)
        if rule is None:
            raise UnknownSchemaError(tag, reason="no upgrade path")
        data = rule(data)
        version += 1
    data[SCHEMA_KEY] = f"{name}.{version}"
    return data


# =============================================================================
# ENCODE / DECODE
# =============================================================================


def encode(obj: BaseModel, version_overrides: dict[str, int] | None = None) -> Document:
    """
    Convert a model tree into a JSON-ready document.

    ``version_overrides`` maps schema names to the highest version the
    reader understands; newer nodes are downgraded by their schema's rules.
    """
    require(obj, "obj")
    document = obj.model_dump(mode="json")
    if not version_overrides:
        return document

    for name, target in version_overrides.items():
        if name not in SCHEMA_REGISTRY:
            raise UnknownSchemaError(name)
        if target < 1:
            raise UnknownSchemaError(f"{name}.{target}", reason="invalid schema version")
    logger.debug("document_downgrade overrides=%s", version_overrides)
    return _transform_tree(document, _downgrader(version_overrides))


def decode(document: Document) -> BaseModel:
    """Rebuild a model tree from a document; older schema versions are upgraded."""
    require(document, "document")
    if not isinstance(document, dict) or SCHEMA_KEY not in document:
        raise MalformedDocumentError(f"Document root has no {SCHEMA_KEY} tag")

    upgraded = _transform_tree(document, _upgrade)
    name, _ = _parse_tag(upgraded[SCHEMA_KEY])
    cls = SCHEMA_REGISTRY[name]
    try:
        return cls.model_validate(upgraded)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise MalformedDocumentError(
            f"Invalid {name} document ({e.error_count()} errors); "
            f"{location}: {first['msg']}"
        ) from e


def to_json_string(
    obj: BaseModel,
    version_overrides: dict[str, int] | None = None,
    compact: bool = False,
) -> str:
    indent = None if compact else get_settings().json_indent
    return json.dumps(encode(obj, version_overrides), indent=indent)


def from_json_string(text: str) -> BaseModel:
    require(text, "text")
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedDocumentError(f"Invalid JSON at line {e.lineno} column {e.colno}: {e.msg}") from e
    return decode(document)


def write_to_file(
    obj: BaseModel,
    path: str | Path,
    version_overrides: dict[str, int] | None = None,
) -> None:
    require(path, "path")
    text = to_json_string(obj, version_overrides)
    try:
        Path(path).write_text(text, encoding="utf-8")
    except OSError as e:
        raise DocumentIOError(f"Cannot write '{path}': {e}") from e
    logger.info("document_written path=%s schema=%s bytes=%d", path, _tag_of(type(obj)), len(text))


def read_from_file(path: str | Path) -> BaseModel:
    require(path, "path")
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DocumentIOError(f"Cannot read '{path}': {e}") from e
    logger.info("document_read path=%s bytes=%d", path, len(text))
    return from_json_string(text)
