"""Backend stream event models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class StreamEventType(str, Enum):
    """Normalized kinds of events emitted by an execution backend."""

    INIT = "init"
    TEXT_DELTA = "text_delta"
    TOOL_START = "tool_start"
    TOOL_END = "tool_end"
    RESULT = "result"


class StreamEvent(BaseModel):
    """Single event from an execution stream.

    ``type`` is kept as a plain string so that kinds this bridge does not
    know about can still flow through and be skipped by the aggregator.
    """

    type: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] = Field(default_factory=dict)


class InitEventData(BaseModel):
    """Data for init events."""

    resumption_token: str


class TextDeltaEventData(BaseModel):
    """Data for assistant text events."""

    text: str


class ToolStartEventData(BaseModel):
    """Data for tool invocation start events."""

    name: str
    tool_id: str | None = None
    detail: str = ""
    input: dict[str, Any] = Field(default_factory=dict)


class ToolEndEventData(BaseModel):
    """Data for tool invocation end events."""

    tool_id: str | None = None
    name: str | None = None
    detail: str | None = None
    output: Any = None
    is_error: bool = False


class ResultEventData(BaseModel):
    """Data for the terminal result event."""

    status: str  # "complete" or "error"
    cost_usd: float | None = None
    duration_ms: int | None = None
    error: str | None = None


def make_event(event_type: StreamEventType | str, **data: Any) -> StreamEvent:
    """Build a stream event from keyword data."""
    kind = event_type.value if isinstance(event_type, StreamEventType) else event_type
    return StreamEvent(type=kind, data=data)
