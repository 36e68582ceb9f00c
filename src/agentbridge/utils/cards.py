"""Interactive card rendering for the chat surface.

Cards are plain JSON-serializable dicts in the chat platform's card
layout: a colored header and a list of markdown/note elements.
"""

from dataclasses import dataclass
from typing import Any

from agentbridge.models.catalog import ModelInfo
from agentbridge.models.snapshot import (
    DisplaySnapshot,
    SnapshotStatus,
    ToolCall,
    ToolCallStatus,
)

ELISION_MARKER = "\n\n... (content truncated) ...\n\n"

_STATUS_STYLE: dict[SnapshotStatus, tuple[str, str, str]] = {
    # status: (color, title, icon)
    SnapshotStatus.THINKING: ("blue", "Thinking...", "🔵"),
    SnapshotStatus.RUNNING: ("blue", "Running...", "🔵"),
    SnapshotStatus.COMPLETE: ("green", "Complete", "🟢"),
    SnapshotStatus.ERROR: ("red", "Error", "🔴"),
}


@dataclass
class CardConfig:
    """Configuration for card rendering."""

    max_content_length: int = 50_000
    max_visible_tool_calls: int = 20
    agent_name: str = "Claude"


def truncate_content(text: str, max_length: int = 50_000) -> str:
    """Cap text for display, keeping both its head and its tail."""
    if len(text) <= max_length:
        return text
    half = max_length // 2 - 50
    return text[:half] + ELISION_MARKER + text[-half:]


def window_tool_calls(tool_calls: list[ToolCall], limit: int = 20) -> list[str]:
    """Render the most recent tool calls, summarizing the hidden ones."""
    lines = []
    for call in tool_calls[-limit:]:
        icon = "⏳" if call.status == ToolCallStatus.RUNNING else "✅"
        lines.append(f"{icon} **{call.name}** {call.detail}".rstrip())

    hidden = len(tool_calls) - limit
    if hidden > 0:
        lines.insert(0, f"_... ({hidden} earlier tool calls hidden)_")
    return lines


def format_stats(snapshot: DisplaySnapshot) -> str:
    """Duration and cost line for terminal cards."""
    parts = []
    if snapshot.duration_ms is not None:
        parts.append(f"Duration: {snapshot.duration_ms / 1000:.1f}s")
    if snapshot.cost_usd is not None:
        parts.append(f"Cost: ${snapshot.cost_usd:.4f}")
    return " | ".join(parts)


def _card(title: str, color: str, elements: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "config": {"wide_screen_mode": True},
        "header": {
            "template": color,
            "title": {"content": title, "tag": "plain_text"},
        },
        "elements": elements,
    }


def _markdown(content: str) -> dict[str, Any]:
    return {"tag": "markdown", "content": content}


class CardBuilder:
    """Builds chat cards from display state.

    Example:
        builder = CardBuilder()
        card = builder.build_task_card(snapshot)
    """

    def __init__(self, config: CardConfig | None = None):
        self.config = config or CardConfig()

    def build_task_card(self, snapshot: DisplaySnapshot) -> dict[str, Any]:
        """Render the live progress card for a task."""
        color, title, icon = _STATUS_STYLE[snapshot.status]
        elements: list[dict[str, Any]] = []

        if snapshot.tool_calls:
            lines = window_tool_calls(snapshot.tool_calls, self.config.max_visible_tool_calls)
            elements.append(_markdown("\n".join(lines)))
            elements.append({"tag": "hr"})

        if snapshot.response_text:
            elements.append(
                _markdown(truncate_content(snapshot.response_text, self.config.max_content_length))
            )
        elif snapshot.status == SnapshotStatus.THINKING:
            elements.append(_markdown(f"_{self.config.agent_name} is thinking..._"))

        if snapshot.error_message:
            elements.append(_markdown(f"**Error:** {snapshot.error_message}"))

        if snapshot.is_terminal:
            stats = format_stats(snapshot)
            if stats:
                elements.append(
                    {
                        "tag": "note",
                        "elements": [{"tag": "plain_text", "content": stats}],
                    }
                )

        return _card(f"{icon} {title}", color, elements)

    def build_text_card(self, title: str, content: str, color: str = "blue") -> dict[str, Any]:
        return _card(title, color, [_markdown(content)])

    def build_continue_card(self, max_turns: int) -> dict[str, Any]:
        """Card asking whether to continue after the turn limit."""
        return _card(
            "⚠️ Max Turns Reached",
            "orange",
            [
                _markdown(
                    f"{self.config.agent_name} has reached the maximum turn limit "
                    f"({max_turns} turns).\n\n"
                    "Do you want to continue execution?\n\n"
                    "Reply with **yes** or **no**."
                )
            ],
        )

    def build_status_card(
        self,
        user_id: str,
        working_directory: str | None,
        resumption_token: str | None,
        task_state: str,
        model: str | None = None,
    ) -> dict[str, Any]:
        running = {"running": "Yes ⏳", "suspended": "Waiting for reply ⏸️"}.get(task_state, "No")
        lines = [
            f"**User:** `{user_id}`",
            "**Working Directory:** "
            + (f"`{working_directory}`" if working_directory else "_Not set (use /cd to set)_"),
            "**Session:** " + (f"`{resumption_token[:8]}...`" if resumption_token else "_None_"),
            "**Model:** " + (f"`{model}`" if model else "_Default_"),
            f"**Running:** {running}",
        ]
        return _card("📊 Status", "blue", [_markdown("\n".join(lines))])

    def build_help_card(self) -> dict[str, Any]:
        lines = [
            "**Available Commands:**",
            "`/cd /path/to/project` - Set working directory",
            "`/reset` - Clear session, start fresh (keeps working directory)",
            "`/show-system-prompt` - Display current system prompt",
            "`/set-system-prompt <text>` - Set custom system prompt",
            "`/reset-system-prompt` - Reset system prompt to default",
            "`/model [id]` - List models or select one for this chat",
            "`/stop` - Abort current running task",
            "`/status` - Show current session and directory info",
            "`/send-file /path/to/file` - Send a file to this chat",
            "`/help` - Show this help message",
            "",
            "**Usage:**",
            f"Send any text message to start a conversation with {self.config.agent_name}.",
            f"{self.config.agent_name} will execute in the working directory you set with `/cd`.",
            "Each chat has an independent session and working directory.",
        ]
        return _card("📖 Help", "blue", [_markdown("\n".join(lines))])

    def build_model_list_card(
        self, models: list[ModelInfo], current: str | None
    ) -> dict[str, Any]:
        lines = ["**Available Models:**"]
        for model in models:
            marker = " ✅" if model.id == current else ""
            lines.append(f"`{model.id}` - {model.name}: {model.description}{marker}")
        lines.append("")
        lines.append("Use `/model <id>` to select, `/model default` to clear.")
        return _card("🤖 Models", "blue", [_markdown("\n".join(lines))])
