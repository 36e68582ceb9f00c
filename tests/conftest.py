"""Global test fixtures."""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from agentbridge.adapters.base import ExecutionBackend, ExecutionRequest
from agentbridge.adapters.outbox import OutboxSurface
from agentbridge.config import Settings
from agentbridge.core.cancellation import CancellationToken
from agentbridge.core.orchestrator import TaskOrchestrator
from agentbridge.main import create_app
from agentbridge.models.events import StreamEvent


class ScriptedBackend(ExecutionBackend):
    """Backend that replays one scripted list of events per execution round.

    A round whose script ends without a result stalls until cancelled
    when ``stall`` is set.
    """

    def __init__(self) -> None:
        self.rounds: list[list[StreamEvent]] = []
        self.requests: list[ExecutionRequest] = []
        self.stall = False
        self.started = asyncio.Event()
        self.closed = 0

    async def execute(
        self,
        request: ExecutionRequest,
        token: CancellationToken,
    ) -> AsyncIterator[StreamEvent]:
        self.requests.append(request)
        self.started.set()
        events = self.rounds.pop(0) if self.rounds else []
        try:
            for event in events:
                await asyncio.sleep(0)
                yield event
            if self.stall:
                await asyncio.Event().wait()
        finally:
            self.closed += 1


class FailingSurface(OutboxSurface):
    """Outbox whose message creation always fails."""

    async def create_message(self, conversation_id, card):
        return None


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """Create a project directory for tasks to run in."""
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def test_settings(tmp_path: Path, workdir: Path) -> Settings:
    """Create test settings with fast updates and a temp directory."""
    return Settings(
        update_interval_seconds=0.01,
        task_timeout_seconds=60,
        default_working_directory=str(workdir),
        temp_dir=tmp_path / "tmp",
        shutdown_grace_seconds=1.0,
        max_turns=5,
    )


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def outbox() -> OutboxSurface:
    return OutboxSurface(max_messages=100)


@pytest_asyncio.fixture
async def orchestrator(
    backend: ScriptedBackend,
    outbox: OutboxSurface,
    test_settings: Settings,
) -> AsyncGenerator[TaskOrchestrator, None]:
    """Create a started orchestrator wired to the scripted backend."""
    orch = TaskOrchestrator(backend=backend, surface=outbox, config=test_settings)
    await orch.start()
    yield orch
    await orch.shutdown()


@pytest_asyncio.fixture
async def client(
    orchestrator: TaskOrchestrator,
    outbox: OutboxSurface,
) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP test client with the test orchestrator installed."""
    app = create_app()
    app.state.orchestrator = orchestrator
    app.state.outbox = outbox
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
def failing_surface() -> OutboxSurface:
    return FailingSurface(max_messages=100)
