"""Display snapshot models."""

from enum import Enum

from pydantic import BaseModel, Field


class SnapshotStatus(str, Enum):
    """Display status of a task."""

    THINKING = "thinking"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({SnapshotStatus.COMPLETE, SnapshotStatus.ERROR})


class ToolCallStatus(str, Enum):
    """Status of a single tool invocation."""

    RUNNING = "running"
    DONE = "done"


class ToolCall(BaseModel):
    """Tool invocation as shown to the user."""

    name: str
    detail: str = ""
    status: ToolCallStatus = ToolCallStatus.RUNNING
    tool_id: str | None = None


class DisplaySnapshot(BaseModel):
    """Rendering-ready state folded from backend events.

    One instance is mutated in place for the whole life of a task,
    including across continuation rounds.
    """

    status: SnapshotStatus = SnapshotStatus.THINKING
    user_prompt: str = ""
    response_text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    cost_usd: float | None = None
    duration_ms: int | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def fail(self, message: str) -> None:
        """Move to the error state unless already terminal."""
        if self.is_terminal:
            return
        self.status = SnapshotStatus.ERROR
        self.error_message = message

    def hit_turn_limit(self, marker: str) -> bool:
        """Whether the snapshot ended on the backend's turn-limit condition."""
        return (
            self.status == SnapshotStatus.ERROR
            and self.error_message is not None
            and marker in self.error_message
        )
