"""Per-conversation task slots."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from agentbridge.core.aggregator import StreamAggregator
from agentbridge.core.cancellation import CancelReason, CancellationToken
from agentbridge.core.exceptions import TaskBusyError

logger = logging.getLogger(__name__)


class TaskState(str, Enum):
    """Externally visible state of a conversation's task slot."""

    IDLE = "idle"
    RUNNING = "running"
    SUSPENDED = "suspended"


class ContinuationReply(str, Enum):
    """Classification of a reply to the continue prompt."""

    AFFIRMATIVE = "affirmative"
    NEGATIVE = "negative"
    INVALID = "invalid"


_AFFIRMATIVE = frozenset({"yes", "y"})
_NEGATIVE = frozenset({"no", "n"})


def classify_reply(text: str) -> ContinuationReply:
    """Classify a free-text reply while a task waits to continue."""
    answer = text.strip().lower()
    if answer in _AFFIRMATIVE:
        return ContinuationReply.AFFIRMATIVE
    if answer in _NEGATIVE:
        return ContinuationReply.NEGATIVE
    return ContinuationReply.INVALID


@dataclass
class PendingContinuation:
    """A task suspended at the turn limit, waiting for yes/no."""

    message_handle: str
    aggregator: StreamAggregator
    resolver: "asyncio.Future[bool]"

    def resolve(self, should_continue: bool) -> bool:
        """Deliver the user's answer; False if one was already delivered."""
        if self.resolver.done():
            return False
        self.resolver.set_result(should_continue)
        return True


@dataclass
class RunningTask:
    """The task occupying a conversation's slot."""

    conversation_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    runner: "asyncio.Task[None] | None" = None
    pending: PendingContinuation | None = None

    @property
    def state(self) -> TaskState:
        return TaskState.SUSPENDED if self.pending is not None else TaskState.RUNNING


class TaskRegistry:
    """Conversation-partitioned map of running tasks.

    ``claim`` is a synchronous check-and-set, so under a single event
    loop two coroutines can never both take the same slot.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, RunningTask] = {}

    def claim(self, conversation_id: str) -> RunningTask:
        """Take the slot for a conversation.

        Raises:
            TaskBusyError: If the conversation already has a task
        """
        if conversation_id in self._tasks:
            raise TaskBusyError(conversation_id)
        task = RunningTask(conversation_id=conversation_id)
        self._tasks[conversation_id] = task
        logger.info(f"Conversation {conversation_id}: task slot claimed")
        return task

    def release(self, conversation_id: str, task: RunningTask) -> None:
        """Free the slot, but only if ``task`` still owns it."""
        if self._tasks.get(conversation_id) is task:
            del self._tasks[conversation_id]
            logger.info(f"Conversation {conversation_id}: task slot released")

    def get(self, conversation_id: str) -> RunningTask | None:
        return self._tasks.get(conversation_id)

    def state_of(self, conversation_id: str) -> TaskState:
        task = self._tasks.get(conversation_id)
        return task.state if task is not None else TaskState.IDLE

    def cancel_all(self, reason: CancelReason = CancelReason.SHUTDOWN) -> list[RunningTask]:
        """Cancel every task's token.

        Returns:
            The tasks that were registered
        """
        tasks = list(self._tasks.values())
        for task in tasks:
            task.token.cancel(reason)
        return tasks

    def clear(self) -> None:
        self._tasks.clear()

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
