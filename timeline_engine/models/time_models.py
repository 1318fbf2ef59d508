"""
Rational time types.

A time is a ``value`` counted at ``rate`` ticks per second. Arithmetic and
comparison between times of different rates rescale the right-hand operand to
the left-hand operand's rate first; nothing is rounded, so fractional frame
positions are valid.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from timeline_engine.errors import InvalidRateError


class RationalTime(BaseModel):
    """
    Represents a point in time with a rational number (value/rate).

    Examples:
        - Frame 100 at 24fps: RationalTime(value=100, rate=24)
        - 5 seconds at 24fps: RationalTime(value=120, rate=24)
        - Timecode 00:00:01:00 at 30fps: RationalTime(value=30, rate=30)
    """
    OTIO_SCHEMA: Literal["RationalTime.1"] = "RationalTime.1"
    value: float = Field(default=0.0, description="Time value (typically frame number)")
    rate: float = Field(default=24.0, gt=0, description="Rate (ticks per second)")

    def to_seconds(self) -> float:
        """Convert to seconds."""
        return self.value / self.rate

    def to_frames(self, target_rate: float | None = None) -> float:
        """Convert to frame count at target rate (or same rate if None)."""
        if target_rate is None:
            return self.value
        return self.value_rescaled_to(target_rate)

    def to_milliseconds(self) -> float:
        """Convert to milliseconds."""
        return (self.value / self.rate) * 1000

    def value_rescaled_to(self, new_rate: float) -> float:
        if new_rate <= 0:
            raise InvalidRateError(new_rate)
        if new_rate == self.rate:
            return self.value
        return self.value * (new_rate / self.rate)

    def rescaled_to(self, new_rate: float) -> RationalTime:
        """Return new RationalTime at different rate, preserving actual time."""
        return RationalTime(value=self.value_rescaled_to(new_rate), rate=new_rate)

    def add(self, other: RationalTime) -> RationalTime:
        return RationalTime(
            value=self.value + other.value_rescaled_to(self.rate),
            rate=self.rate,
        )

    def subtract(self, other: RationalTime) -> RationalTime:
        return RationalTime(
            value=self.value - other.value_rescaled_to(self.rate),
            rate=self.rate,
        )

    def compare(self, other: RationalTime) -> int:
        """Return -1, 0 or 1 after rescaling ``other`` to this rate."""
        other_value = other.value_rescaled_to(self.rate)
        if self.value < other_value:
            return -1
        if self.value > other_value:
            return 1
        return 0

    def almost_equal(self, other: RationalTime, delta: float = 0.0) -> bool:
        return abs(self.value - other.value_rescaled_to(self.rate)) <= delta

    def __add__(self, other: RationalTime) -> RationalTime:
        return self.add(other)

    def __sub__(self, other: RationalTime) -> RationalTime:
        return self.subtract(other)

    def __neg__(self) -> RationalTime:
        return RationalTime(value=-self.value, rate=self.rate)

    def __mul__(self, scalar: float) -> RationalTime:
        """Multiply by scalar."""
        return RationalTime(value=self.value * scalar, rate=self.rate)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RationalTime):
            return False
        return self.compare(other) == 0

    def __lt__(self, other: RationalTime) -> bool:
        return self.compare(other) < 0

    def __le__(self, other: RationalTime) -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: RationalTime) -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: RationalTime) -> bool:
        return self.compare(other) >= 0

    def __str__(self) -> str:
        return f"{self.value:g}@{self.rate:g}"

    @classmethod
    def from_seconds(cls, seconds: float, rate: float = 24.0) -> RationalTime:
        """Create RationalTime from seconds."""
        return cls(value=seconds * rate, rate=rate)

    @classmethod
    def from_milliseconds(cls, ms: float, rate: float = 24.0) -> RationalTime:
        """Create RationalTime from milliseconds."""
        return cls(value=(ms / 1000) * rate, rate=rate)

    @classmethod
    def from_frames(cls, frames: float, rate: float = 24.0) -> RationalTime:
        """Create RationalTime from frame count."""
        return cls(value=frames, rate=rate)


class TimeRange(BaseModel):
    """
    Represents a range of time with a start point and duration.

    Used to define:
    - Source ranges (in/out points) for items
    - Available ranges for media references
    - Marked ranges for markers

    Note: The end time is exclusive (start_time + duration).
    """
    OTIO_SCHEMA: Literal["TimeRange.1"] = "TimeRange.1"
    start_time: RationalTime = Field(description="Start of the range")
    duration: RationalTime = Field(description="Duration of the range")

    @property
    def end_time_exclusive(self) -> RationalTime:
        """Get the exclusive end time (start + duration)."""
        return self.start_time + self.duration

    @property
    def end_time_inclusive(self) -> RationalTime:
        """Get the inclusive end time (last valid frame)."""
        end = self.end_time_exclusive
        if self.duration.value_rescaled_to(self.start_time.rate) > 1:
            return RationalTime(value=end.value - 1, rate=end.rate)
        return self.start_time

    def contains(self, time: RationalTime) -> bool:
        """Check if a time point falls within this range."""
        return self.start_time <= time < self.end_time_exclusive

    def overlaps(self, other: TimeRange) -> bool:
        """Check if this range overlaps with another."""
        return (
            self.start_time < other.end_time_exclusive and
            other.start_time < self.end_time_exclusive
        )

    def contains_range(self, other: TimeRange) -> bool:
        """Check if this range fully contains another range."""
        return (
            self.start_time <= other.start_time and
            self.end_time_exclusive >= other.end_time_exclusive
        )

    def extended_by(self, other: TimeRange) -> TimeRange:
        """Return a new range that encompasses both ranges."""
        new_start = min(self.start_time, other.start_time)
        new_end = max(self.end_time_exclusive, other.end_time_exclusive)
        return TimeRange.from_start_end(new_start, new_end)

    def clamped_to(self, other: TimeRange) -> TimeRange | None:
        """Return intersection of ranges, or None if no overlap."""
        if not self.overlaps(other):
            return None
        new_start = max(self.start_time, other.start_time)
        new_end = min(self.end_time_exclusive, other.end_time_exclusive)
        return TimeRange.from_start_end(new_start, new_end)

    def to_milliseconds(self) -> tuple[float, float]:
        """Convert to (start_ms, duration_ms) tuple."""
        return (self.start_time.to_milliseconds(), self.duration.to_milliseconds())

    def __str__(self) -> str:
        return f"[{self.start_time}, +{self.duration})"

    @classmethod
    def from_start_end(
        cls,
        start: RationalTime,
        end: RationalTime
    ) -> TimeRange:
        """Create TimeRange from start and end times."""
        return cls(start_time=start, duration=end - start)

    @classmethod
    def from_frames(cls, start: float, duration: float, rate: float = 24.0) -> TimeRange:
        return cls(
            start_time=RationalTime(value=start, rate=rate),
            duration=RationalTime(value=duration, rate=rate),
        )

    @classmethod
    def from_milliseconds(
        cls,
        start_ms: float,
        duration_ms: float,
        rate: float = 24.0
    ) -> TimeRange:
        """Create TimeRange from millisecond values."""
        return cls(
            start_time=RationalTime.from_milliseconds(start_ms, rate),
            duration=RationalTime.from_milliseconds(duration_ms, rate)
        )
