"""API response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    active_tasks: int


class InfoResponse(BaseModel):
    """Server information response."""

    name: str
    version: str
    python_version: str
    active_tasks: int
    active_sessions: int
    update_interval_seconds: float
    task_timeout_seconds: int


class MessageOutcomeResponse(BaseModel):
    """Result of delivering a message to a conversation."""

    conversation_id: str
    outcome: str


class OutboundMessageResponse(BaseModel):
    """A message the bridge sent to the chat surface."""

    handle: str
    sequence: int
    kind: str
    version: int
    content: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class OutboxResponse(BaseModel):
    """Page of outbound messages for a conversation."""

    messages: list[OutboundMessageResponse]
    total: int
    has_more: bool
    truncated: bool
    cursor: int


class StopTaskResponse(BaseModel):
    """Response after cancelling a running task."""

    conversation_id: str
    stopped: bool


class ImageUploadResponse(BaseModel):
    """Response after uploading an inbound image."""

    image_key: str
    size: int
