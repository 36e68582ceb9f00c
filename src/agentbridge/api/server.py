"""Server endpoints - health and info."""

import sys

from fastapi import APIRouter

from agentbridge import __version__
from agentbridge.api.deps import OrchestratorDep
from agentbridge.models.responses import HealthResponse, InfoResponse

router = APIRouter(tags=["Server"])


@router.get("/health", response_model=HealthResponse)
async def health_check(orchestrator: OrchestratorDep) -> HealthResponse:
    """Check server health status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        active_tasks=orchestrator.active_count,
    )


@router.get("/info", response_model=InfoResponse)
async def server_info(orchestrator: OrchestratorDep) -> InfoResponse:
    """Get server information."""
    config = orchestrator.config
    return InfoResponse(
        name="Agent Bridge",
        version=__version__,
        python_version=sys.version.split()[0],
        active_tasks=orchestrator.active_count,
        active_sessions=orchestrator.sessions.active_count,
        update_interval_seconds=config.update_interval_seconds,
        task_timeout_seconds=config.task_timeout_seconds,
    )
