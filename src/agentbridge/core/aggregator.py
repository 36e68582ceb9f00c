"""Stream aggregation: folds backend events into a display snapshot."""

import logging

from pydantic import ValidationError

from agentbridge.models.events import (
    InitEventData,
    ResultEventData,
    StreamEvent,
    StreamEventType,
    TextDeltaEventData,
    ToolEndEventData,
    ToolStartEventData,
)
from agentbridge.models.snapshot import (
    DisplaySnapshot,
    SnapshotStatus,
    ToolCall,
    ToolCallStatus,
)
from agentbridge.utils.artifacts import collect_image_paths, extract_image_paths

logger = logging.getLogger(__name__)


class StreamAggregator:
    """Owns one display snapshot and evolves it event by event.

    Unknown event kinds and payloads that fail validation are skipped.
    Once a result event makes the snapshot terminal, further events are
    ignored until ``resume()`` opens the next continuation round.
    """

    def __init__(self, user_prompt: str):
        self.snapshot = DisplaySnapshot(user_prompt=user_prompt)
        self._resumption_token: str | None = None
        self._artifact_paths: set[str] = set()

    @property
    def resumption_token(self) -> str | None:
        """Latest resumption token reported by the backend."""
        return self._resumption_token

    def process(self, event: StreamEvent) -> DisplaySnapshot:
        """Fold a single event into the snapshot.

        Returns:
            The (shared, mutated) snapshot
        """
        if self.snapshot.is_terminal:
            logger.debug(f"Ignoring {event.type} event after terminal result")
            return self.snapshot

        handler = {
            StreamEventType.INIT.value: self._on_init,
            StreamEventType.TEXT_DELTA.value: self._on_text_delta,
            StreamEventType.TOOL_START.value: self._on_tool_start,
            StreamEventType.TOOL_END.value: self._on_tool_end,
            StreamEventType.RESULT.value: self._on_result,
        }.get(event.type)

        if handler is None:
            logger.debug(f"Ignoring unknown event type: {event.type}")
            return self.snapshot

        try:
            handler(event)
        except ValidationError as e:
            logger.debug(f"Ignoring malformed {event.type} event: {e.error_count()} errors")
        return self.snapshot

    def resume(self) -> DisplaySnapshot:
        """Reopen the snapshot for a continuation round.

        Response text and tool history are kept; terminal fields are cleared.
        """
        self.snapshot.status = SnapshotStatus.RUNNING
        self.snapshot.error_message = None
        self.snapshot.cost_usd = None
        self.snapshot.duration_ms = None
        return self.snapshot

    def artifact_paths(self) -> set[str]:
        """Image paths seen in tool payloads and in the response text."""
        paths = set(self._artifact_paths)
        paths.update(extract_image_paths(self.snapshot.response_text))
        return paths

    # Event handlers

    def _mark_running(self) -> None:
        if self.snapshot.status == SnapshotStatus.THINKING:
            self.snapshot.status = SnapshotStatus.RUNNING

    def _on_init(self, event: StreamEvent) -> None:
        data = InitEventData.model_validate(event.data)
        self._resumption_token = data.resumption_token

    def _on_text_delta(self, event: StreamEvent) -> None:
        data = TextDeltaEventData.model_validate(event.data)
        self._mark_running()
        self.snapshot.response_text += data.text

    def _on_tool_start(self, event: StreamEvent) -> None:
        data = ToolStartEventData.model_validate(event.data)
        self._mark_running()
        self.snapshot.tool_calls.append(
            ToolCall(name=data.name, detail=data.detail, tool_id=data.tool_id)
        )
        self._artifact_paths |= collect_image_paths(data.input)

    def _on_tool_end(self, event: StreamEvent) -> None:
        data = ToolEndEventData.model_validate(event.data)
        call = self._find_open_call(data.tool_id, data.name)
        if call is None:
            logger.debug(f"No running tool call matches end event ({data.tool_id}, {data.name})")
        else:
            call.status = ToolCallStatus.DONE
            if data.detail:
                call.detail = data.detail
        if not data.is_error:
            self._artifact_paths |= collect_image_paths(data.output)

    def _on_result(self, event: StreamEvent) -> None:
        data = ResultEventData.model_validate(event.data)
        snapshot = self.snapshot
        if data.status == SnapshotStatus.COMPLETE.value:
            snapshot.status = SnapshotStatus.COMPLETE
            snapshot.error_message = None
        else:
            snapshot.status = SnapshotStatus.ERROR
            snapshot.error_message = data.error or "Unknown error"
        snapshot.cost_usd = data.cost_usd
        snapshot.duration_ms = data.duration_ms

    def _find_open_call(self, tool_id: str | None, name: str | None) -> ToolCall | None:
        running = [c for c in self.snapshot.tool_calls if c.status == ToolCallStatus.RUNNING]
        if tool_id is not None:
            for call in reversed(running):
                if call.tool_id == tool_id:
                    return call
            # Only calls started without an id can still match by name
            running = [c for c in running if c.tool_id is None]
        if name is not None:
            for call in reversed(running):
                if call.name == name:
                    return call
        return running[-1] if running else None
