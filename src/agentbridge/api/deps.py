"""API dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from agentbridge.adapters.outbox import OutboxSurface
from agentbridge.core.orchestrator import TaskOrchestrator


async def get_orchestrator(request: Request) -> TaskOrchestrator:
    """Get the task orchestrator from app state."""
    orchestrator: TaskOrchestrator = request.app.state.orchestrator
    return orchestrator


async def get_outbox(request: Request) -> OutboxSurface:
    """Get the outbox chat surface from app state."""
    outbox: OutboxSurface = request.app.state.outbox
    return outbox


OrchestratorDep = Annotated[TaskOrchestrator, Depends(get_orchestrator)]
OutboxDep = Annotated[OutboxSurface, Depends(get_outbox)]
