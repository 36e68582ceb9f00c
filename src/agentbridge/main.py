"""Main application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from agentbridge import __version__
from agentbridge.adapters.agent_cli import AgentCliBackend
from agentbridge.adapters.outbox import OutboxSurface
from agentbridge.api.errors import register_error_handlers
from agentbridge.api.router import api_router
from agentbridge.config import settings
from agentbridge.core.orchestrator import TaskOrchestrator

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    logger.info(f"Starting Agent Bridge v{__version__}")
    logger.info(f"Agent CLI: {settings.agent_cli_path} (max turns {settings.max_turns})")
    logger.info(f"Task timeout: {settings.task_timeout_seconds}s")

    outbox = OutboxSurface(
        max_messages=settings.outbox_max_messages,
        max_images=settings.outbox_max_images,
    )
    backend = AgentCliBackend(cli_path=settings.agent_cli_path, max_turns=settings.max_turns)
    orchestrator = TaskOrchestrator(backend=backend, surface=outbox)
    await orchestrator.start()
    app.state.outbox = outbox
    app.state.orchestrator = orchestrator

    yield

    # Shutdown
    logger.info("Shutting down...")
    await orchestrator.shutdown()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Agent Bridge",
        description="Bridges chat conversations to a stream-emitting agent backend",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Register routers
    app.include_router(api_router)

    # Register error handlers
    register_error_handlers(app)

    return app


# Create app instance
app = create_app()


def main() -> None:
    """Run the server."""
    uvicorn.run(
        "agentbridge.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
