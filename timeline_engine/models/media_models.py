"""
Media references, effects and markers.

These are leaf objects owned by Clips and other Items. They carry no parent
link; copying a Clip copies its references, effects and markers with it.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import Field, field_validator

from timeline_engine.errors import (
    IndexOutOfBoundsError,
    InvalidTimeRangeError,
    NoAvailableRangeError,
)
from timeline_engine.models.base_models import SerializableObject
from timeline_engine.models.time_models import RationalTime, TimeRange


# =============================================================================
# ENUMS
# =============================================================================


class MarkerColor(str, Enum):
    """Standard marker colors (OTIO palette)."""
    PINK = "PINK"
    RED = "RED"
    ORANGE = "ORANGE"
    YELLOW = "YELLOW"
    GREEN = "GREEN"
    CYAN = "CYAN"
    BLUE = "BLUE"
    PURPLE = "PURPLE"
    MAGENTA = "MAGENTA"
    WHITE = "WHITE"
    BLACK = "BLACK"


class MissingFramePolicy(str, Enum):
    """What a player should do when an image of a sequence is absent."""
    ERROR = "error"
    HOLD = "hold"
    BLACK = "black"


class GeneratorKind(str, Enum):
    SOLID_COLOR = "SolidColor"
    SMPTE_BARS = "SMPTEBars"
    BLACK = "Black"


# =============================================================================
# MEDIA REFERENCES
# =============================================================================


class MediaReference(SerializableObject):
    """Shared fields of every media reference variant."""
    available_range: TimeRange | None = Field(
        default=None,
        description="Full range of media the reference can supply"
    )

    def require_available_range(self) -> TimeRange:
        if self.available_range is None:
            raise NoAvailableRangeError(self.name or self.schema_name)
        return self.available_range


class ExternalReference(MediaReference):
    """
    Reference to a single external media file.
    """
    OTIO_SCHEMA: Literal["ExternalReference.1"] = "ExternalReference.1"
    target_url: str = Field(default="", description="Location of the media")


class GeneratorReference(MediaReference):
    """
    Reference to procedurally generated media.

    Used for solid colors, test patterns, tone generators, etc.
    """
    OTIO_SCHEMA: Literal["GeneratorReference.1"] = "GeneratorReference.1"
    generator_kind: str = Field(
        default="",
        description="Type of generator: SolidColor, SMPTEBars, Black, etc."
    )
    parameters: dict[str, str | int | float | bool] = Field(
        default_factory=dict,
        description="Generator parameters, e.g., {'color': '#000000'}"
    )

    @classmethod
    def black(cls, name: str = "", available_range: TimeRange | None = None) -> GeneratorReference:
        return cls(name=name, generator_kind=GeneratorKind.BLACK.value, available_range=available_range)

    @classmethod
    def smpte_bars(cls, name: str = "", available_range: TimeRange | None = None) -> GeneratorReference:
        return cls(
            name=name,
            generator_kind=GeneratorKind.SMPTE_BARS.value,
            available_range=available_range,
        )


class MissingReference(MediaReference):
    """
    Placeholder for missing or offline media.

    Used when the actual media is unavailable but we want to
    preserve the timeline structure.
    """
    OTIO_SCHEMA: Literal["MissingReference.1"] = "MissingReference.1"


class ImageSequenceReference(MediaReference):
    """
    Reference to a numbered sequence of image files.

    Image ``n`` (0-based) lives at
    ``target_url_base + name_prefix + <start_frame + n * frame_step> + name_suffix``
    with the frame number zero-padded to ``frame_zero_padding`` digits.
    """
    OTIO_SCHEMA: Literal["ImageSequenceReference.1"] = "ImageSequenceReference.1"
    target_url_base: str = Field(default="")
    name_prefix: str = Field(default="")
    name_suffix: str = Field(default="")
    start_frame: int = Field(default=1)
    frame_step: int = Field(default=1, gt=0)
    rate: float = Field(default=1.0, gt=0, description="Images per second")
    frame_zero_padding: int = Field(default=0, ge=0)
    missing_frame_policy: MissingFramePolicy = Field(default=MissingFramePolicy.ERROR)

    def number_of_images_in_sequence(self) -> int:
        if self.available_range is None:
            return 0
        frames = self.available_range.duration.value_rescaled_to(self.rate)
        return int(math.ceil(frames / self.frame_step))

    def end_frame(self) -> int:
        """Frame number of the last image in the sequence."""
        count = self.number_of_images_in_sequence()
        if count == 0:
            return self.start_frame
        return self.start_frame + (count - 1) * self.frame_step

    def frame_for_time(self, time: RationalTime) -> int:
        """Frame number of the image shown at ``time`` (reference space)."""
        available = self.require_available_range()
        if not available.contains(time):
            raise InvalidTimeRangeError(f"{time} is outside the available range {available}")
        offset = (time - available.start_time).value_rescaled_to(self.rate)
        return self.start_frame + int(math.floor(offset / self.frame_step)) * self.frame_step

    def target_url_for_image_number(self, image_number: int) -> str:
        self.require_available_range()
        count = self.number_of_images_in_sequence()
        if image_number < 0 or image_number >= count:
            raise IndexOutOfBoundsError(image_number, count, what="image")

        frame = self.start_frame + image_number * self.frame_step
        digits = str(abs(frame)).zfill(self.frame_zero_padding)
        if frame < 0:
            digits = "-" + digits

        base = self.target_url_base
        if base and not base.endswith("/"):
            base += "/"
        return f"{base}{self.name_prefix}{digits}{self.name_suffix}"

    def presentation_time_for_image_number(self, image_number: int) -> RationalTime:
        available = self.require_available_range()
        count = self.number_of_images_in_sequence()
        if image_number < 0 or image_number >= count:
            raise IndexOutOfBoundsError(image_number, count, what="image")
        offset = RationalTime(value=image_number * self.frame_step, rate=self.rate)
        return available.start_time + offset


MediaReferenceType = Annotated[
    Union[ExternalReference, GeneratorReference, MissingReference, ImageSequenceReference],
    Field(discriminator="OTIO_SCHEMA")
]


# =============================================================================
# EFFECTS
# =============================================================================


class Effect(SerializableObject):
    """
    Generic effect applied to an item.
    """
    OTIO_SCHEMA: Literal["Effect.1"] = "Effect.1"
    effect_name: str = Field(default="", description="Effect identifier")


class LinearTimeWarp(Effect):
    """
    Linear time warp effect (speed change).

    time_scalar controls playback speed:
    - 1.0 = normal speed
    - 2.0 = 2x speed (fast motion)
    - 0.5 = half speed (slow motion)
    - -1.0 = reverse playback
    """
    OTIO_SCHEMA: Literal["LinearTimeWarp.1"] = "LinearTimeWarp.1"
    effect_name: str = Field(default="LinearTimeWarp")
    time_scalar: float = Field(
        default=1.0,
        description="Speed multiplier (1.0 = normal, 2.0 = 2x speed)"
    )

    @classmethod
    def slow_motion(cls, name: str = "", speed: float = 0.5) -> LinearTimeWarp:
        return cls(name=name, time_scalar=speed)

    @classmethod
    def fast_forward(cls, name: str = "", multiplier: float = 2.0) -> LinearTimeWarp:
        return cls(name=name, time_scalar=multiplier)

    @classmethod
    def reverse(cls, name: str = "") -> LinearTimeWarp:
        return cls(name=name, time_scalar=-1.0)


class FreezeFrame(LinearTimeWarp):
    """
    Freeze frame effect - holds a single frame.
    """
    OTIO_SCHEMA: Literal["FreezeFrame.1"] = "FreezeFrame.1"
    effect_name: str = Field(default="FreezeFrame")
    time_scalar: float = Field(default=0.0, description="Always 0 (held frame)")

    @field_validator("time_scalar")
    @classmethod
    def _held_frame(cls, value: float) -> float:
        if value != 0:
            raise ValueError(f"FreezeFrame time_scalar must be 0, got {value}")
        return value


EffectType = Annotated[
    Union[Effect, LinearTimeWarp, FreezeFrame],
    Field(discriminator="OTIO_SCHEMA")
]


# =============================================================================
# MARKERS
# =============================================================================


class Marker(SerializableObject):
    """
    A marker/annotation at a specific point or range of an item.

    ``marked_range`` is expressed in the owning item's local space.
    """
    OTIO_SCHEMA: Literal["Marker.2"] = "Marker.2"
    marked_range: TimeRange = Field(
        default_factory=lambda: TimeRange.from_frames(0, 0),
        description="Range this marker covers"
    )
    color: MarkerColor = Field(
        default=MarkerColor.GREEN,
        description="Visual color for the marker"
    )
    comment: str = Field(default="", description="Free-form note")

    @classmethod
    def with_default_color(cls, name: str, marked_range: TimeRange) -> Marker:
        return cls(name=name, marked_range=marked_range)
