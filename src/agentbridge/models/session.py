"""Conversation session models."""

from datetime import datetime

from pydantic import BaseModel, Field


class InboundMessage(BaseModel):
    """A user message arriving from the chat surface."""

    conversation_id: str
    text: str
    user_id: str = "anonymous"
    message_id: str | None = None
    image_key: str | None = None


class SessionInfo(BaseModel):
    """Conversation state for API responses."""

    conversation_id: str
    working_directory: str | None = None
    resumption_token: str | None = None
    system_prompt: str | None = None
    model: str | None = None
    created_at: datetime
    last_activity: datetime
    task_state: str = Field(default="idle", description="idle, running or suspended")
    task_started_at: datetime | None = None
