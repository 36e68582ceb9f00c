"""Conversation session store with lazy expiry."""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConversationSession:
    """Per-conversation state that lives for the process lifetime."""

    conversation_id: str
    working_directory: str | None = None
    resumption_token: str | None = None
    system_prompt: str | None = None
    model: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)

    def touch(self) -> None:
        """Update last activity timestamp."""
        self.last_activity = _utcnow()

    @property
    def has_working_directory(self) -> bool:
        return bool(self.working_directory)


class SessionStore:
    """Conversation-partitioned session table.

    Every method is synchronous, so a read-modify-write on one
    conversation never interleaves with another coroutine. Missing or
    expired sessions are replaced by defaults; nothing here raises.
    """

    def __init__(
        self,
        default_working_directory: str | None = None,
        ttl: timedelta = timedelta(hours=24),
        sweep_interval: float = 300.0,
    ):
        self._sessions: dict[str, ConversationSession] = {}
        self._default_working_directory = default_working_directory
        self._ttl = ttl
        self._sweep_interval = sweep_interval
        self._cleanup_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Start the periodic expiry sweep."""
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info(f"SessionStore started (ttl {self._ttl})")

    async def stop(self) -> None:
        """Stop the sweep and drop all sessions."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None
        self._sessions.clear()
        logger.info("SessionStore stopped")

    def get_or_create(self, conversation_id: str) -> ConversationSession:
        """Return the live session for a conversation, creating it if needed."""
        session = self._sessions.get(conversation_id)
        if session is not None and self._is_expired(session):
            logger.info(f"Session {conversation_id} expired, starting fresh")
            session = None

        if session is None:
            session = ConversationSession(
                conversation_id=conversation_id,
                working_directory=self._default_working_directory,
            )
            self._sessions[conversation_id] = session

        session.touch()
        return session

    def peek(self, conversation_id: str) -> ConversationSession | None:
        """Return a live session without creating or touching it."""
        session = self._sessions.get(conversation_id)
        if session is None or self._is_expired(session):
            return None
        return session

    def set_working_directory(self, conversation_id: str, path: str) -> ConversationSession:
        """Set the working directory; a new directory starts a new backend conversation."""
        session = self.get_or_create(conversation_id)
        session.working_directory = path
        session.resumption_token = None
        logger.info(f"Session {conversation_id}: working directory -> {path}")
        return session

    def set_resumption_token(self, conversation_id: str, token: str | None) -> None:
        session = self.get_or_create(conversation_id)
        session.resumption_token = token

    def set_system_prompt(self, conversation_id: str, prompt: str | None) -> None:
        session = self.get_or_create(conversation_id)
        session.system_prompt = prompt

    def set_model(self, conversation_id: str, model: str | None) -> None:
        session = self.get_or_create(conversation_id)
        session.model = model

    def reset(self, conversation_id: str) -> ConversationSession:
        """Clear conversation continuity and overrides, keep the working directory."""
        session = self.get_or_create(conversation_id)
        session.resumption_token = None
        session.system_prompt = None
        session.model = None
        logger.info(f"Session {conversation_id}: reset")
        return session

    def sweep_expired(self) -> int:
        """Remove expired sessions.

        Returns:
            Number of sessions removed
        """
        stale_ids = [cid for cid, s in self._sessions.items() if self._is_expired(s)]
        for conversation_id in stale_ids:
            del self._sessions[conversation_id]
            logger.info(f"Session {conversation_id} expired and removed")
        return len(stale_ids)

    def _is_expired(self, session: ConversationSession) -> bool:
        return _utcnow() - session.last_activity > self._ttl

    async def _cleanup_loop(self) -> None:
        """Background task to drop stale sessions."""
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep_expired()

    @property
    def active_count(self) -> int:
        """Number of sessions currently held."""
        return len(self._sessions)
