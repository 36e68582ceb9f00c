"""Main API router aggregator."""

from fastapi import APIRouter

from agentbridge.api import conversations, server

# Create main router with API version prefix
api_router = APIRouter(prefix="/api/v1")

# Include all sub-routers
api_router.include_router(server.router)
api_router.include_router(conversations.router)
