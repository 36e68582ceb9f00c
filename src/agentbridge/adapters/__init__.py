"""Collaborator adapters - execution backends and chat surfaces.

This package provides:
- ExecutionBackend / ChatSurface: Abstract interfaces used by the orchestrator
- AgentCliBackend: Runs an agent CLI and translates its stream-json output
- OutboxSurface: In-process chat surface read by the HTTP API
"""

from agentbridge.adapters.agent_cli import AgentCliBackend, StreamTranslator
from agentbridge.adapters.base import ChatSurface, ExecutionBackend, ExecutionRequest
from agentbridge.adapters.outbox import OutboxSurface

__all__ = [
    # Interfaces
    "ExecutionBackend",
    "ExecutionRequest",
    "ChatSurface",
    # Implementations
    "AgentCliBackend",
    "StreamTranslator",
    "OutboxSurface",
]
