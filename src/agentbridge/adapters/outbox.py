"""In-process chat surface backed by per-conversation outboxes.

Every card, text and file the bridge sends is kept in a bounded outbox
that clients read by revision cursor, so updates made in place to an
existing card show up again on the next poll.
"""

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from agentbridge.adapters.base import Card, ChatSurface

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OutboundMessage:
    """A message as currently shown in a conversation."""

    handle: str
    conversation_id: str
    sequence: int
    kind: str  # "card", "text", "file", "image"
    content: dict[str, Any]
    revision: int
    version: int = 1
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass
class OutboxPage:
    """Messages changed since a revision cursor."""

    messages: list[OutboundMessage]
    total: int
    has_more: bool
    truncated: bool  # True if older messages were dropped
    cursor: int


@dataclass
class _Outbox:
    entries: deque[OutboundMessage] = field(default_factory=deque)
    sequence: int = 0
    revision: int = 0
    dropped: int = 0


class OutboxSurface(ChatSurface):
    """Chat surface that records outbound traffic for polling clients."""

    def __init__(self, max_messages: int = 500, max_images: int = 100):
        """Initialize the surface.

        Args:
            max_messages: Messages kept per conversation before dropping oldest
            max_images: Uploaded images held before dropping oldest
        """
        self.max_messages = max_messages
        self.max_images = max_images
        self._outboxes: dict[str, _Outbox] = {}
        self._by_handle: dict[str, OutboundMessage] = {}
        self._images: dict[str, bytes] = {}

    # ChatSurface

    async def create_message(self, conversation_id: str, card: Card) -> str | None:
        message = self._append(conversation_id, "card", card)
        return message.handle

    async def update_message(self, handle: str, card: Card) -> bool:
        message = self._by_handle.get(handle)
        if message is None:
            logger.warning(f"Update for unknown or dropped message {handle}")
            return False
        outbox = self._outboxes[message.conversation_id]
        outbox.revision += 1
        message.content = card
        message.revision = outbox.revision
        message.version += 1
        message.updated_at = _utcnow()
        return True

    async def send_text(self, conversation_id: str, text: str) -> bool:
        self._append(conversation_id, "text", {"text": text})
        return True

    async def send_file(self, conversation_id: str, path: Path) -> bool:
        return await self._attach(conversation_id, "file", path)

    async def send_image(self, conversation_id: str, path: Path) -> bool:
        return await self._attach(conversation_id, "image", path)

    async def download_image(self, message_id: str | None, image_key: str, dest: Path) -> bool:
        # Each upload is consumed by the one message that references it
        data = self._images.pop(image_key, None)
        if data is None:
            logger.warning(f"Image {image_key} (message {message_id}) was never uploaded")
            return False
        try:
            async with aiofiles.open(dest, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.warning(f"Failed to write image {image_key} to {dest}: {e}")
            return False
        return True

    # Inbound images

    def put_image(self, image_key: str, data: bytes) -> None:
        """Register an image that an inbound message may reference once."""
        self._images.pop(image_key, None)
        while len(self._images) >= self.max_images:
            dropped = next(iter(self._images))
            del self._images[dropped]
            logger.warning(f"Dropping unreferenced image {dropped}")
        self._images[image_key] = data

    @property
    def pending_images(self) -> int:
        """Number of uploaded images not yet downloaded."""
        return len(self._images)

    # Reading

    def get_since(self, conversation_id: str, cursor: int = 0, limit: int = 100) -> OutboxPage:
        """Get messages created or updated after ``cursor``.

        Args:
            conversation_id: Conversation to read
            cursor: Revision returned by the previous call (0 for everything)
            limit: Maximum number of messages to return
        """
        outbox = self._outboxes.get(conversation_id)
        if outbox is None:
            return OutboxPage(messages=[], total=0, has_more=False, truncated=False, cursor=cursor)

        changed = sorted(
            (m for m in outbox.entries if m.revision > cursor),
            key=lambda m: m.revision,
        )
        page = changed[:limit]
        return OutboxPage(
            messages=page,
            total=len(changed),
            has_more=len(changed) > limit,
            truncated=outbox.dropped > 0,
            cursor=page[-1].revision if page else cursor,
        )

    def get_message(self, handle: str) -> OutboundMessage | None:
        return self._by_handle.get(handle)

    def messages(self, conversation_id: str) -> list[OutboundMessage]:
        """All retained messages of a conversation, oldest first."""
        outbox = self._outboxes.get(conversation_id)
        return list(outbox.entries) if outbox else []

    # Internals

    def _append(self, conversation_id: str, kind: str, content: dict[str, Any]) -> OutboundMessage:
        outbox = self._outboxes.setdefault(conversation_id, _Outbox())

        while len(outbox.entries) >= self.max_messages and outbox.entries:
            dropped = outbox.entries.popleft()
            self._by_handle.pop(dropped.handle, None)
            outbox.dropped += 1

        outbox.sequence += 1
        outbox.revision += 1
        message = OutboundMessage(
            handle=f"msg_{uuid.uuid4().hex[:12]}",
            conversation_id=conversation_id,
            sequence=outbox.sequence,
            kind=kind,
            content=content,
            revision=outbox.revision,
        )
        outbox.entries.append(message)
        self._by_handle[message.handle] = message
        return message

    async def _attach(self, conversation_id: str, kind: str, path: Path) -> bool:
        try:
            stat = await aiofiles.os.stat(path)
        except OSError as e:
            logger.warning(f"Cannot send {kind} {path}: {e}")
            return False
        self._append(
            conversation_id,
            kind,
            {"path": str(path), "name": path.name, "size": stat.st_size},
        )
        logger.info(f"Sent {kind} {path} to {conversation_id}")
        return True
