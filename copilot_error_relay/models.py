# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Error record model and error classification."""

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from .errors import StackTraceError, TagSerializationError
from .frames import SourceReader, extract_frames, format_frame

ERROR_TYPE_BACKEND = "BACKEND"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class ErrorRecord:
    """One reported error occurrence.

    Records are immutable. ``timestamp`` is captured when the error is
    consumed, not when it is flushed.
    """

    session_id: str
    request_id: str
    event: str
    stack_trace: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    payload: str | None = None
    type: str = ERROR_TYPE_BACKEND
    url: str = ""
    source: str = ""

    def is_empty(self) -> bool:
        """Check whether this is the zero-valued sentinel record."""
        return not (self.session_id or self.request_id or self.event or self.stack_trace)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation sent to sinks."""
        return {
            "session_id": self.session_id,
            "request_id": self.request_id,
            "event": self.event,
            "type": self.type,
            "url": self.url,
            "source": self.source,
            "stackTrace": self.stack_trace,
            "timestamp": self.timestamp.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "payload": self.payload,
        }


EMPTY_RECORD = ErrorRecord(session_id="", request_id="", event="", stack_trace="", timestamp=_EPOCH)


@runtime_checkable
class StackTracer(Protocol):
    """Protocol for error values that carry their own structured stack."""

    def stack_trace(self) -> Sequence[str]: ...


@dataclass(frozen=True)
class PlainMessage:
    """Error value with only a message."""

    message: str


@dataclass(frozen=True)
class StructuredStack:
    """Error value with a message and serialized stack frames."""

    message: str
    frames: tuple[str, ...]


ClassifiedError = PlainMessage | StructuredStack


def classify_error(value: Any, source_reader: SourceReader | None = None) -> ClassifiedError:
    """Classify an arbitrary error value.

    Args:
        value: Exception, StackTracer, or any other value
        source_reader: Optional reader; when given, traceback frames are
            serialized as JSON objects that include surrounding source lines

    Returns:
        PlainMessage or StructuredStack

    Raises:
        StackTraceError: If a StackTracer reports no frames
    """
    if isinstance(value, StackTracer):
        frames = tuple(str(frame) for frame in value.stack_trace())
        if not frames:
            raise StackTraceError("no stack frames in stack trace for StackTracer error")
        return StructuredStack(message=str(value), frames=frames)

    if isinstance(value, BaseException) and value.__traceback__ is not None:
        summaries = extract_frames(value.__traceback__)
        if source_reader is not None:
            frames = tuple(
                json.dumps(source_reader.frame_with_context(summary).to_dict())
                for summary in summaries
            )
        else:
            frames = tuple(format_frame(summary) for summary in summaries)
        return StructuredStack(message=str(value) or type(value).__name__, frames=frames)

    return PlainMessage(message=str(value))


def serialize_tags(tags: Iterable[Any]) -> str:
    """Serialize tags to a JSON array string.

    Raises:
        TagSerializationError: If a tag is not a string or cannot be encoded
    """
    tag_list = list(tags)
    for tag in tag_list:
        if not isinstance(tag, str):
            raise TagSerializationError(f"tags must be strings, got {type(tag).__name__}")
    try:
        return json.dumps(tag_list)
    except (TypeError, ValueError) as e:
        raise TagSerializationError(f"failed to serialize tags: {e}") from e


def build_record(
    session_id: str,
    request_id: str,
    classified: ClassifiedError,
    payload: str | None,
    timestamp: datetime | None = None,
) -> ErrorRecord:
    """Build an ErrorRecord from a classified error value."""
    if isinstance(classified, StructuredStack):
        event = classified.message
        stack_trace = json.dumps(list(classified.frames))
    else:
        event = classified.message
        stack_trace = classified.message

    return ErrorRecord(
        session_id=session_id,
        request_id=request_id,
        event=event,
        stack_trace=stack_trace,
        timestamp=timestamp or datetime.now(timezone.utc),
        payload=payload,
    )

