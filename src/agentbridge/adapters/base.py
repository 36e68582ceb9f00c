"""Abstract interfaces for the bridge's external collaborators.

The orchestrator talks to two collaborators:

1. An execution backend that runs an agent task and emits a stream of
   normalized events
2. A chat surface that shows cards to the user and delivers files
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agentbridge.core.cancellation import CancellationToken
from agentbridge.models.events import StreamEvent

Card = dict[str, Any]


@dataclass
class ExecutionRequest:
    """Parameters for one backend execution round."""

    prompt: str
    cwd: str
    resumption_token: str | None = None
    system_prompt: str | None = None
    model: str | None = None
    max_turns: int | None = None


class ExecutionBackend(ABC):
    """Runs agent tasks and streams their progress."""

    @abstractmethod
    def execute(
        self,
        request: ExecutionRequest,
        token: CancellationToken,
    ) -> AsyncIterator[StreamEvent]:
        """Start a task and yield its events in order.

        The stream ends after the terminal result event. Implementations
        should stop work promptly once ``token`` is cancelled.
        """
        ...


class ChatSurface(ABC):
    """Outbound side of the chat platform."""

    @abstractmethod
    async def create_message(self, conversation_id: str, card: Card) -> str | None:
        """Post a card that will be updated in place.

        Returns:
            A handle for later updates, or None if the post failed
        """
        ...

    @abstractmethod
    async def update_message(self, handle: str, card: Card) -> bool:
        """Replace the content of a posted card. Safe to call repeatedly."""
        ...

    async def send_card(self, conversation_id: str, card: Card) -> str | None:
        """Post a one-off card."""
        return await self.create_message(conversation_id, card)

    @abstractmethod
    async def send_text(self, conversation_id: str, text: str) -> bool:
        ...

    @abstractmethod
    async def send_file(self, conversation_id: str, path: Path) -> bool:
        ...

    @abstractmethod
    async def send_image(self, conversation_id: str, path: Path) -> bool:
        ...

    @abstractmethod
    async def download_image(self, message_id: str | None, image_key: str, dest: Path) -> bool:
        """Fetch an image attached to an inbound message into ``dest``."""
        ...
