"""
Common base for every schema-tagged object in the timeline document.

Each concrete model declares an ``OTIO_SCHEMA`` literal of the form
``"<Name>.<version>"``. The literal doubles as the pydantic discriminator for
polymorphic fields and as the tag written to serialized documents.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

METADATA_SCALARS = (str, int, float, bool)


def _check_metadata_value(key: str, value: Any) -> None:
    if isinstance(value, dict):
        for sub_key, sub_value in value.items():
            if not isinstance(sub_key, str):
                raise ValueError(f"metadata key {sub_key!r} under '{key}' must be a string")
            _check_metadata_value(f"{key}.{sub_key}", sub_value)
    elif not isinstance(value, METADATA_SCALARS):
        raise ValueError(
            f"metadata value for '{key}' must be str, number, bool or a nested map, "
            f"got {type(value).__name__}"
        )


def split_schema(tag: str) -> tuple[str, int]:
    """Split ``"Clip.2"`` into ``("Clip", 2)``."""
    name, sep, version = tag.rpartition(".")
    if not sep or not name or not version.isdigit():
        raise ValueError(f"Malformed schema tag: {tag!r}")
    return name, int(version)


class SerializableObject(BaseModel):
    """Named object with a metadata map and a schema tag."""
    model_config = ConfigDict(validate_assignment=True)

    name: str = Field(default="", description="Display name")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Ordered map of str | number | bool | nested map values"
    )

    @field_validator("metadata")
    @classmethod
    def _validate_metadata(cls, value: dict[str, Any]) -> dict[str, Any]:
        for key, item in value.items():
            _check_metadata_value(key, item)
        return value

    @classmethod
    def schema_tag(cls) -> str:
        return cls.model_fields["OTIO_SCHEMA"].default

    @property
    def schema_name(self) -> str:
        return split_schema(self.schema_tag())[0]

    @property
    def schema_version(self) -> int:
        return split_schema(self.schema_tag())[1]

    def __eq__(self, other: object) -> bool:
        # Structural: two separately built trees with the same content are equal.
        if not isinstance(other, SerializableObject) or type(self) is not type(other):
            return False
        return self.model_dump(mode="json") == other.model_dump(mode="json")

