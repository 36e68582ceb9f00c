"""Tests for slash commands."""

from pathlib import Path

import pytest

from agentbridge.core.orchestrator import MessageOutcome
from agentbridge.models.session import InboundMessage

CID = "chat-1"


async def run(orchestrator, text: str) -> dict:
    """Send a command and return the card it produced."""
    outcome = await orchestrator.handle_message(
        InboundMessage(conversation_id=CID, text=text, user_id="u1")
    )
    assert outcome == MessageOutcome.COMMAND
    return orchestrator.surface.messages(CID)[-1].content


def title(card: dict) -> str:
    return card["header"]["title"]["content"]


def body(card: dict) -> str:
    return card["elements"][0]["content"]


class TestDirectoryCommands:
    """Tests for /cd and /reset."""

    @pytest.mark.asyncio
    async def test_cd_sets_directory_and_clears_session(self, orchestrator, tmp_path: Path):
        target = tmp_path / "other"
        target.mkdir()
        orchestrator.sessions.set_resumption_token(CID, "T1")

        card = await run(orchestrator, f"/cd {target}")

        session = orchestrator.sessions.peek(CID)
        assert "Working Directory Set" in title(card)
        assert session.working_directory == str(target.resolve())
        assert session.resumption_token is None

    @pytest.mark.asyncio
    async def test_cd_missing_directory(self, orchestrator, tmp_path: Path, workdir: Path):
        card = await run(orchestrator, f"/cd {tmp_path / 'nope'}")

        assert "Directory not found" in body(card)
        assert orchestrator.sessions.peek(CID).working_directory == str(workdir)

    @pytest.mark.asyncio
    async def test_cd_to_file(self, orchestrator, tmp_path: Path):
        path = tmp_path / "file.txt"
        path.write_text("x")

        card = await run(orchestrator, f"/cd {path}")

        assert "Not a directory" in body(card)

    @pytest.mark.asyncio
    async def test_cd_usage(self, orchestrator):
        card = await run(orchestrator, "/cd")

        assert "Usage" in title(card)

    @pytest.mark.asyncio
    async def test_reset(self, orchestrator, workdir: Path):
        orchestrator.sessions.set_resumption_token(CID, "T1")
        orchestrator.sessions.set_model(CID, "claude-sonnet-4-5")

        card = await run(orchestrator, "/reset")

        session = orchestrator.sessions.peek(CID)
        assert "Session Reset" in title(card)
        assert session.resumption_token is None
        assert session.model is None
        assert session.working_directory == str(workdir)


class TestSystemPromptCommands:
    """Tests for system prompt overrides."""

    @pytest.mark.asyncio
    async def test_set_and_show(self, orchestrator):
        await run(orchestrator, "/set-system-prompt Always answer in French.")

        card = await run(orchestrator, "/show-system-prompt")

        assert orchestrator.sessions.peek(CID).system_prompt == "Always answer in French."
        assert "**Custom**" in body(card)
        assert "Always answer in French." in body(card)

    @pytest.mark.asyncio
    async def test_show_default_prompt(self, orchestrator):
        orchestrator.config = orchestrator.config.model_copy(update={"system_prompt": "Be terse."})

        card = await run(orchestrator, "/show-system-prompt")

        assert "Default (from config)" in body(card)
        assert "Be terse." in body(card)

    @pytest.mark.asyncio
    async def test_show_without_prompt(self, orchestrator):
        card = await run(orchestrator, "/show-system-prompt")

        assert "No custom system prompt" in body(card)

    @pytest.mark.asyncio
    async def test_show_truncates_long_prompt(self, orchestrator):
        await run(orchestrator, "/set-system-prompt " + "p" * 3000)

        card = await run(orchestrator, "/show-system-prompt")

        assert "p" * 2000 + "...(truncated)" in body(card)
        assert "p" * 2001 not in body(card)

    @pytest.mark.asyncio
    async def test_reset_prompt(self, orchestrator):
        await run(orchestrator, "/set-system-prompt custom")

        card = await run(orchestrator, "/reset-system-prompt")

        assert "System Prompt Reset" in title(card)
        assert orchestrator.sessions.peek(CID).system_prompt is None

    @pytest.mark.asyncio
    async def test_prompt_passed_to_backend(self, orchestrator, backend):
        await run(orchestrator, "/set-system-prompt Be careful.")

        await orchestrator.handle_message(InboundMessage(conversation_id=CID, text="go"))
        await orchestrator.wait_for_task(CID)

        assert backend.requests[0].system_prompt == "Be careful."


class TestModelCommand:
    """Tests for /model."""

    @pytest.mark.asyncio
    async def test_list(self, orchestrator):
        card = await run(orchestrator, "/model")

        assert "Models" in title(card)
        assert "`claude-sonnet-4-5`" in body(card)

    @pytest.mark.asyncio
    async def test_select_and_clear(self, orchestrator):
        card = await run(orchestrator, "/model claude-sonnet-4-5")

        assert "Model Set" in title(card)
        assert orchestrator.sessions.peek(CID).model == "claude-sonnet-4-5"

        await run(orchestrator, "/model default")
        assert orchestrator.sessions.peek(CID).model is None

    @pytest.mark.asyncio
    async def test_unknown_model(self, orchestrator):
        card = await run(orchestrator, "/model gpt-4")

        assert "Unknown Model" in title(card)
        assert orchestrator.sessions.peek(CID).model is None


class TestMiscCommands:
    """Tests for /help, /status, /send-file and unknown commands."""

    @pytest.mark.asyncio
    async def test_help(self, orchestrator):
        card = await run(orchestrator, "/help")

        assert "Help" in title(card)

    @pytest.mark.asyncio
    async def test_status(self, orchestrator, workdir: Path):
        orchestrator.sessions.set_resumption_token(CID, "0123456789abcdef")

        card = await run(orchestrator, "/status")

        assert "`u1`" in body(card)
        assert f"`{workdir}`" in body(card)
        assert "`01234567...`" in body(card)
        assert "**Running:** No" in body(card)

    @pytest.mark.asyncio
    async def test_unknown_command(self, orchestrator):
        card = await run(orchestrator, "/frobnicate now")

        assert "Unknown Command" in title(card)
        assert "`/frobnicate`" in body(card)

    @pytest.mark.asyncio
    async def test_command_name_is_case_insensitive(self, orchestrator):
        card = await run(orchestrator, "/HELP")

        assert "Help" in title(card)

    @pytest.mark.asyncio
    async def test_send_file(self, orchestrator, tmp_path: Path):
        path = tmp_path / "report.txt"
        path.write_text("results")

        card = await run(orchestrator, f"/send-file {path}")

        files = [m for m in orchestrator.surface.messages(CID) if m.kind == "file"]
        assert "File Sent" in title(card)
        assert files[0].content["name"] == "report.txt"

    @pytest.mark.asyncio
    async def test_send_missing_file(self, orchestrator, tmp_path: Path):
        card = await run(orchestrator, f"/send-file {tmp_path / 'gone.txt'}")

        assert "File not found" in body(card)

    @pytest.mark.asyncio
    async def test_send_file_too_large(self, orchestrator, tmp_path: Path):
        orchestrator.config = orchestrator.config.model_copy(update={"max_send_file_bytes": 4})
        path = tmp_path / "big.bin"
        path.write_bytes(b"0123456789")

        card = await run(orchestrator, f"/send-file {path}")

        assert "File too large" in body(card)
        assert not [m for m in orchestrator.surface.messages(CID) if m.kind == "file"]

    @pytest.mark.asyncio
    async def test_send_directory(self, orchestrator, tmp_path: Path):
        card = await run(orchestrator, f"/send-file {tmp_path}")

        assert "Not a file" in body(card)
