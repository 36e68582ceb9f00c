"""Execution backend driving an agent CLI in stream-json mode.

The CLI prints one JSON message per line. ``StreamTranslator`` turns
those messages into the bridge's normalized stream events.
"""

import asyncio
import contextlib
import json
import logging
import os
import shutil
from collections.abc import AsyncIterator
from typing import Any

from agentbridge.adapters.base import ExecutionBackend, ExecutionRequest
from agentbridge.core.cancellation import CancelReason, CancellationToken
from agentbridge.core.exceptions import BackendUnavailableError, ExecutionError
from agentbridge.models.events import StreamEvent, StreamEventType, make_event

logger = logging.getLogger(__name__)

_LINE_LIMIT = 16 * 1024 * 1024
_STDERR_TAIL = 2000
_DETAIL_MAX_LEN = 80

# Tool input keys that best describe what a tool call is doing, by tool
_DETAIL_KEYS: dict[str, tuple[str, ...]] = {
    "Bash": ("command",),
    "Read": ("file_path",),
    "Write": ("file_path",),
    "Edit": ("file_path",),
    "MultiEdit": ("file_path",),
    "NotebookEdit": ("notebook_path",),
    "Grep": ("pattern", "path"),
    "Glob": ("pattern", "path"),
    "WebFetch": ("url",),
    "WebSearch": ("query",),
    "Task": ("description",),
    "TodoWrite": (),
}
_FALLBACK_KEYS = ("file_path", "path", "command", "pattern", "url", "query", "description")


def _trunc(text: str, length: int = _DETAIL_MAX_LEN) -> str:
    text = " ".join(text.split())
    if len(text) <= length:
        return text
    return text[: length - 3] + "..."


def describe_tool_input(name: str, tool_input: dict[str, Any]) -> str:
    """Short human-readable detail for a tool invocation."""
    keys = _DETAIL_KEYS.get(name, _FALLBACK_KEYS)
    for key in keys:
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return f"`{_trunc(value)}`"
    return ""


def _tool_result_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "\n".join(p for p in parts if p)
    return ""


class StreamTranslator:
    """Translates CLI stream-json messages into normalized events."""

    def __init__(self) -> None:
        self._has_text = False

    def translate(self, message: dict[str, Any]) -> list[StreamEvent]:
        msg_type = message.get("type")
        if msg_type == "system":
            return self._translate_system(message)
        if msg_type == "assistant":
            return self._translate_assistant(message)
        if msg_type == "user":
            return self._translate_user(message)
        if msg_type == "result":
            return [self._translate_result(message)]
        return []

    def _translate_system(self, message: dict[str, Any]) -> list[StreamEvent]:
        session_id = message.get("session_id")
        if message.get("subtype") == "init" and isinstance(session_id, str):
            return [make_event(StreamEventType.INIT, resumption_token=session_id)]
        return []

    def _translate_assistant(self, message: dict[str, Any]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for block in (message.get("message") or {}).get("content") or []:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text" and block.get("text"):
                text = block["text"]
                if self._has_text:
                    text = "\n\n" + text
                self._has_text = True
                events.append(make_event(StreamEventType.TEXT_DELTA, text=text))
            elif block_type == "tool_use":
                name = block.get("name") or "tool"
                tool_input = block.get("input") if isinstance(block.get("input"), dict) else {}
                events.append(
                    make_event(
                        StreamEventType.TOOL_START,
                        tool_id=block.get("id"),
                        name=name,
                        detail=describe_tool_input(name, tool_input),
                        input=tool_input,
                    )
                )
        return events

    def _translate_user(self, message: dict[str, Any]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for block in (message.get("message") or {}).get("content") or []:
            if isinstance(block, dict) and block.get("type") == "tool_result":
                events.append(
                    make_event(
                        StreamEventType.TOOL_END,
                        tool_id=block.get("tool_use_id"),
                        output=_tool_result_text(block.get("content")),
                        is_error=bool(block.get("is_error", False)),
                    )
                )
        return events

    def _translate_result(self, message: dict[str, Any]) -> StreamEvent:
        subtype = message.get("subtype") or "unknown"
        is_error = bool(message.get("is_error", False))
        complete = subtype == "success" and not is_error
        error = None
        if not complete:
            error = subtype if subtype != "success" else str(message.get("result") or "error")
        return make_event(
            StreamEventType.RESULT,
            status="complete" if complete else "error",
            cost_usd=message.get("total_cost_usd"),
            duration_ms=message.get("duration_ms"),
            error=error,
        )


def parse_line(line: bytes | str) -> dict[str, Any] | None:
    """Decode one stdout line; None for blank or malformed lines."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None
    try:
        parsed = json.loads(line)
    except json.JSONDecodeError:
        logger.debug(f"Skipping non-JSON backend line: {line[:200]}")
        return None
    return parsed if isinstance(parsed, dict) else None


class AgentCliBackend(ExecutionBackend):
    """Runs each execution round as an agent CLI subprocess."""

    def __init__(self, cli_path: str = "claude", max_turns: int = 50):
        self._cli_path = cli_path
        self._max_turns = max_turns

    def build_command(self, executable: str, request: ExecutionRequest) -> list[str]:
        args = [
            executable,
            "-p",
            request.prompt,
            "--output-format",
            "stream-json",
            "--verbose",
            "--max-turns",
            str(request.max_turns or self._max_turns),
        ]
        if request.resumption_token:
            args += ["--resume", request.resumption_token]
        if request.system_prompt:
            args += ["--append-system-prompt", request.system_prompt]
        if request.model:
            args += ["--model", request.model]
        return args

    async def execute(
        self,
        request: ExecutionRequest,
        token: CancellationToken,
    ) -> AsyncIterator[StreamEvent]:
        executable = shutil.which(self._cli_path)
        if not executable:
            raise BackendUnavailableError(f"'{self._cli_path}' not found on PATH")

        try:
            process = await asyncio.create_subprocess_exec(
                *self.build_command(executable, request),
                cwd=request.cwd,
                env=os.environ.copy(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_LINE_LIMIT,
            )
        except OSError as e:
            raise BackendUnavailableError(str(e))

        logger.info(f"Started agent process {process.pid} in {request.cwd}")

        def on_cancel(reason: CancelReason) -> None:
            if process.returncode is None:
                logger.info(f"Terminating agent process {process.pid} ({reason.value})")
                with contextlib.suppress(ProcessLookupError):
                    process.terminate()

        token.add_callback(on_cancel)
        assert process.stdout is not None
        assert process.stderr is not None
        stderr_task = asyncio.create_task(process.stderr.read())
        translator = StreamTranslator()
        saw_result = False

        try:
            async for line in process.stdout:
                message = parse_line(line)
                if message is None:
                    continue
                for event in translator.translate(message):
                    if event.type == StreamEventType.RESULT.value:
                        saw_result = True
                    yield event

            returncode = await process.wait()
            stderr = (await stderr_task).decode("utf-8", errors="replace")
            if not saw_result and not token.cancelled:
                raise ExecutionError(
                    f"Agent process exited with code {returncode} without a result",
                    details={"returncode": returncode, "stderr": stderr[-_STDERR_TAIL:]},
                )
        finally:
            token.remove_callback(on_cancel)
            await self._cleanup(process, stderr_task)

    async def _cleanup(
        self,
        process: asyncio.subprocess.Process,
        stderr_task: "asyncio.Task[bytes]",
    ) -> None:
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=5.0)
            except asyncio.TimeoutError:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
        if not stderr_task.done():
            stderr_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await stderr_task
