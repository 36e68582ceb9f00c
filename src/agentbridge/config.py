"""Application configuration using Pydantic Settings."""

import tempfile
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Server settings
    host: str = "127.0.0.1"
    port: int = 5680
    debug: bool = False
    log_level: str = "INFO"

    # Task limits
    task_timeout_seconds: int = Field(default=1800, ge=1)  # 30 minutes
    timeout_resets_on_continuation: bool = False
    update_interval_seconds: float = Field(default=1.5, ge=0.0, le=60.0)
    shutdown_grace_seconds: float = Field(default=5.0, ge=0.0)

    # Sessions
    session_ttl_hours: float = Field(default=24.0, gt=0)
    session_sweep_interval_seconds: int = Field(default=300, ge=1)
    default_working_directory: str | None = None

    # Agent backend
    agent_cli_path: str = "claude"
    system_prompt: str | None = None
    default_model: str | None = None
    max_turns: int = Field(default=50, ge=1)
    turn_limit_marker: str = "error_max_turns"
    continue_prompt: str = "Please continue with the previous task."

    # Rendering
    max_content_length: int = Field(default=50_000, ge=1000)
    max_visible_tool_calls: int = Field(default=20, ge=1)

    # File delivery
    max_output_image_bytes: int = Field(default=10 * 1024 * 1024, ge=1)
    max_send_file_bytes: int = Field(default=30 * 1024 * 1024, ge=1)

    # Outbox
    outbox_max_messages: int = Field(default=500, ge=10, le=100_000)
    outbox_max_images: int = Field(default=100, ge=1, le=10_000)

    temp_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / "agentbridge")

    @property
    def images_dir(self) -> Path:
        """Directory for downloaded inbound images."""
        return self.temp_dir / "images"

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.images_dir.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
