"""
Exception taxonomy for timeline operations.

Every error raised by the engine derives from ``TimelineError`` and carries an
integer ``code``. Callers that need a status value instead of an exception
(for example a binding layer) can use ``capture_status``.
"""

from enum import IntEnum
from typing import Any, Callable

from pydantic import BaseModel, Field

from timeline_engine.config import get_settings


class ErrorCode(IntEnum):
    OK = 0
    INVALID_RATE = 1
    ALREADY_HAS_PARENT = 2
    INDEX_OUT_OF_BOUNDS = 3
    NOT_RELATED = 4
    NO_PARENT = 5
    NO_MEDIA_REFERENCE = 6
    NO_AVAILABLE_RANGE = 7
    OUT_OF_AVAILABLE_RANGE = 8
    NO_PREVIOUS_SIBLING = 9
    INSUFFICIENT_NEIGHBOR_DURATION = 10
    TRANSITION_CONFLICT = 11
    UNKNOWN_SCHEMA = 12
    MALFORMED_DOCUMENT = 13
    NULL_ARGUMENT = 14
    INVALID_TIME_RANGE = 15
    INVALID_OPERATION = 16
    DOCUMENT_IO = 17


class ErrorStatus(BaseModel):
    """Structured error outcome with a bounded message."""
    code: int = Field(default=ErrorCode.OK, description="ErrorCode value (0 = success)")
    message: str = Field(default="", description="Human-readable, length-bounded")

    @property
    def ok(self) -> bool:
        return self.code == ErrorCode.OK


# =============================================================================
# EXCEPTIONS
# =============================================================================


class TimelineError(Exception):
    """Base exception for timeline operations."""
    code: ErrorCode = ErrorCode.INVALID_OPERATION

    def to_status(self, limit: int | None = None) -> ErrorStatus:
        """Convert to an ErrorStatus, truncating the message to ``limit``."""
        if limit is None:
            limit = get_settings().error_message_limit
        return ErrorStatus(code=int(self.code), message=str(self)[:limit])


class InvalidOperationError(TimelineError):
    """Raised when an operation is invalid."""
    code = ErrorCode.INVALID_OPERATION


class InvalidRateError(TimelineError):
    code = ErrorCode.INVALID_RATE

    def __init__(self, rate: float):
        self.rate = rate
        super().__init__(f"Invalid rate: {rate} (rate must be positive)")


class InvalidTimeRangeError(TimelineError):
    code = ErrorCode.INVALID_TIME_RANGE


class AlreadyHasParentError(TimelineError):
    """Raised when attaching a node that is already a child elsewhere."""
    code = ErrorCode.ALREADY_HAS_PARENT

    def __init__(self, child_name: str, parent_name: str | None = None):
        self.child_name = child_name
        self.parent_name = parent_name
        if parent_name is not None:
            super().__init__(
                f"'{child_name}' already has a parent ('{parent_name}'); "
                f"remove it from its parent first"
            )
        else:
            super().__init__(f"'{child_name}' is already attached")


class IndexOutOfBoundsError(TimelineError):
    code = ErrorCode.INDEX_OUT_OF_BOUNDS

    def __init__(self, index: int, size: int, what: str = "child"):
        self.index = index
        self.size = size
        super().__init__(f"{what.capitalize()} index {index} out of range (size {size})")


class NotRelatedError(TimelineError):
    """Raised when two items share no common ancestor."""
    code = ErrorCode.NOT_RELATED

    def __init__(self, from_name: str, to_name: str):
        super().__init__(f"'{from_name}' and '{to_name}' have no common ancestor")


class NoParentError(TimelineError):
    code = ErrorCode.NO_PARENT

    def __init__(self, name: str):
        super().__init__(f"'{name}' is not attached to a composition")


class NoMediaReferenceError(TimelineError):
    code = ErrorCode.NO_MEDIA_REFERENCE

    def __init__(self, clip_name: str, key: str | None = None):
        self.key = key
        if key:
            super().__init__(f"Clip '{clip_name}' has no media reference named '{key}'")
        else:
            super().__init__(f"Clip '{clip_name}' has no active media reference")


class NoAvailableRangeError(TimelineError):
    code = ErrorCode.NO_AVAILABLE_RANGE

    def __init__(self, name: str):
        super().__init__(f"No available range for '{name}'")


class OutOfAvailableRangeError(TimelineError):
    code = ErrorCode.OUT_OF_AVAILABLE_RANGE


class NoPreviousSiblingError(TimelineError):
    code = ErrorCode.NO_PREVIOUS_SIBLING

    def __init__(self, name: str):
        super().__init__(f"'{name}' has no previous sibling")


class InsufficientNeighborDurationError(TimelineError):
    code = ErrorCode.INSUFFICIENT_NEIGHBOR_DURATION


class TransitionConflictError(TimelineError):
    code = ErrorCode.TRANSITION_CONFLICT


class UnknownSchemaError(TimelineError):
    code = ErrorCode.UNKNOWN_SCHEMA

    def __init__(self, schema: str, reason: str = "unknown schema"):
        self.schema = schema
        super().__init__(f"{reason}: {schema}")


class MalformedDocumentError(TimelineError):
    code = ErrorCode.MALFORMED_DOCUMENT


class NullArgumentError(TimelineError):
    code = ErrorCode.NULL_ARGUMENT

    def __init__(self, argument: str):
        self.argument = argument
        super().__init__(f"Required argument '{argument}' is None")


class DocumentIOError(TimelineError):
    code = ErrorCode.DOCUMENT_IO


def require(value: Any, argument: str) -> Any:
    """Return ``value`` or raise NullArgumentError if it is None."""
    if value is None:
        raise NullArgumentError(argument)
    return value


def capture_status(
    fn: Callable[..., Any],
    *args: Any,
    default: Any = None,
    **kwargs: Any,
) -> tuple[Any, ErrorStatus]:
    """
    Call ``fn`` and report the outcome as ``(result, ErrorStatus)``.

    On a TimelineError the result is ``default`` and the status carries the
    error code and truncated message. Other exceptions propagate.
    """
    try:
        return fn(*args, **kwargs), ErrorStatus()
    except TimelineError as e:
        return default, e.to_status()
