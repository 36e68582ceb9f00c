"""API request models."""

from pydantic import BaseModel, Field, field_validator


class PostMessageRequest(BaseModel):
    """Request to deliver a user message to a conversation."""

    text: str = Field(default="", max_length=100_000)
    user_id: str = "anonymous"
    message_id: str | None = None
    image_key: str | None = None

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()
