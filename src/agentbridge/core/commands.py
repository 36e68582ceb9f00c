"""Slash-command handling for conversations."""

import logging
import os
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles.os

from agentbridge.models.catalog import AVAILABLE_MODELS, get_model_info
from agentbridge.models.session import InboundMessage

if TYPE_CHECKING:
    from agentbridge.core.orchestrator import TaskOrchestrator

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_PREVIEW = 2000
SYSTEM_PROMPT_ECHO = 200


def resolve_user_path(arg: str) -> Path:
    """Expand ``~`` and make a user-supplied path absolute."""
    return Path(os.path.expanduser(arg)).resolve()


class CommandHandler:
    """Executes ``/command`` messages against the orchestrator's state."""

    def __init__(self, orchestrator: "TaskOrchestrator"):
        self._orch = orchestrator
        self._commands: dict[str, Callable[[InboundMessage, str], Awaitable[None]]] = {
            "/help": self._help,
            "/cd": self._cd,
            "/reset": self._reset,
            "/set-system-prompt": self._set_system_prompt,
            "/reset-system-prompt": self._reset_system_prompt,
            "/show-system-prompt": self._show_system_prompt,
            "/model": self._model,
            "/stop": self._stop,
            "/status": self._status,
            "/send-file": self._send_file,
        }

    async def handle(self, msg: InboundMessage) -> None:
        cmd, _, rest = msg.text.strip().partition(" ")
        arg = rest.strip()
        logger.info(
            f"Processing command {cmd} (conversation {msg.conversation_id}, user {msg.user_id})"
        )

        handler = self._commands.get(cmd.lower())
        if handler is None:
            await self._reply(
                msg,
                "❓ Unknown Command",
                f"Unknown command: `{cmd}`\nUse `/help` for available commands.",
                "orange",
            )
            return
        await handler(msg, arg)

    async def _reply(self, msg: InboundMessage, title: str, content: str, color: str) -> None:
        card = self._orch.cards.build_text_card(title, content, color)
        await self._orch.send_card(msg.conversation_id, card)

    # Commands

    async def _help(self, msg: InboundMessage, arg: str) -> None:
        await self._orch.send_card(msg.conversation_id, self._orch.cards.build_help_card())

    async def _cd(self, msg: InboundMessage, arg: str) -> None:
        if not arg:
            await self._reply(msg, "⚠️ Usage", "`/cd /path/to/project`", "orange")
            return

        path = resolve_user_path(arg)
        if not await aiofiles.os.path.exists(path):
            await self._reply(msg, "❌ Error", f"Directory not found: `{path}`", "red")
            return
        if not await aiofiles.os.path.isdir(path):
            await self._reply(msg, "❌ Error", f"Not a directory: `{path}`", "red")
            return

        self._orch.sessions.set_working_directory(msg.conversation_id, str(path))
        await self._reply(msg, "✅ Working Directory Set", f"`{path}`", "green")

    async def _reset(self, msg: InboundMessage, arg: str) -> None:
        self._orch.sessions.reset(msg.conversation_id)
        await self._reply(
            msg,
            "✅ Session Reset",
            "Conversation cleared. Working directory preserved.",
            "green",
        )

    async def _set_system_prompt(self, msg: InboundMessage, arg: str) -> None:
        if not arg:
            await self._reply(
                msg,
                "⚠️ Usage",
                "`/set-system-prompt <your custom prompt>`\n\nExample:\n"
                "`/set-system-prompt You are a helpful coding assistant. "
                "Always explain your reasoning.`",
                "orange",
            )
            return

        self._orch.sessions.set_system_prompt(msg.conversation_id, arg)
        preview = arg if len(arg) <= SYSTEM_PROMPT_ECHO else arg[:SYSTEM_PROMPT_ECHO] + "..."
        await self._reply(
            msg,
            "✅ System Prompt Set",
            f"Custom system prompt applied:\n```\n{preview}\n```",
            "green",
        )

    async def _reset_system_prompt(self, msg: InboundMessage, arg: str) -> None:
        self._orch.sessions.set_system_prompt(msg.conversation_id, None)
        await self._reply(
            msg,
            "✅ System Prompt Reset",
            "System prompt reset to default from configuration.",
            "green",
        )

    async def _show_system_prompt(self, msg: InboundMessage, arg: str) -> None:
        session = self._orch.sessions.get_or_create(msg.conversation_id)
        prompt = self._orch.effective_system_prompt(session)
        if not prompt:
            await self._reply(
                msg,
                "ℹ️ System Prompt",
                "No custom system prompt is set. Using the agent's default behavior.",
                "blue",
            )
            return

        if len(prompt) > SYSTEM_PROMPT_PREVIEW:
            prompt = prompt[:SYSTEM_PROMPT_PREVIEW] + "...(truncated)"
        source = "**Custom**" if session.system_prompt is not None else "**Default (from config)**"
        await self._reply(
            msg,
            "ℹ️ Current System Prompt",
            f"{source}\n\n```\n{prompt}\n```",
            "blue",
        )

    async def _model(self, msg: InboundMessage, arg: str) -> None:
        cid = msg.conversation_id
        session = self._orch.sessions.get_or_create(cid)
        if not arg:
            current = session.model or self._orch.config.default_model
            card = self._orch.cards.build_model_list_card(AVAILABLE_MODELS, current)
            await self._orch.send_card(cid, card)
            return

        if arg.lower() == "default":
            self._orch.sessions.set_model(cid, None)
            await self._reply(msg, "✅ Model Reset", "Using the default model.", "green")
            return

        info = get_model_info(arg)
        if info is None:
            await self._reply(
                msg,
                "❌ Unknown Model",
                f"Unknown model: `{arg}`\nUse `/model` to list available models.",
                "red",
            )
            return

        self._orch.sessions.set_model(cid, info.id)
        await self._reply(msg, "✅ Model Set", f"**{info.name}** (`{info.id}`)", "green")

    async def _stop(self, msg: InboundMessage, arg: str) -> None:
        if self._orch.stop_task(msg.conversation_id):
            await self._reply(msg, "🛑 Stopped", "Current task has been aborted.", "orange")
        else:
            await self._reply(msg, "ℹ️ No Running Task", "There is no task to stop.", "blue")

    async def _status(self, msg: InboundMessage, arg: str) -> None:
        cid = msg.conversation_id
        session = self._orch.sessions.get_or_create(cid)
        card = self._orch.cards.build_status_card(
            msg.user_id,
            session.working_directory,
            session.resumption_token,
            self._orch.tasks.state_of(cid).value,
            session.model,
        )
        await self._orch.send_card(cid, card)

    async def _send_file(self, msg: InboundMessage, arg: str) -> None:
        if not arg:
            await self._reply(msg, "⚠️ Usage", "`/send-file /path/to/file`", "orange")
            return

        path = resolve_user_path(arg)
        try:
            stat = await aiofiles.os.stat(path)
        except OSError:
            await self._reply(msg, "❌ Error", f"File not found: `{path}`", "red")
            return
        if not await aiofiles.os.path.isfile(path):
            await self._reply(msg, "❌ Error", f"Not a file: `{path}`", "red")
            return

        limit = self._orch.config.max_send_file_bytes
        if stat.st_size > limit:
            await self._reply(
                msg,
                "❌ Error",
                f"File too large: {stat.st_size / 1024 / 1024:.2f}MB "
                f"(max {limit / 1024 / 1024:.0f}MB)",
                "red",
            )
            return

        try:
            sent = await self._orch.surface.send_file(msg.conversation_id, path)
        except Exception as e:
            logger.warning(f"send_file failed for {path}: {e}")
            sent = False

        if sent:
            await self._reply(msg, "✅ File Sent", f"`{path}`", "green")
        else:
            await self._reply(
                msg, "❌ Error", "Failed to send file. Check logs for details.", "red"
            )
