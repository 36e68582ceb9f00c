"""Rendering and artifact discovery helpers."""

from agentbridge.utils.artifacts import collect_image_paths, extract_image_paths
from agentbridge.utils.cards import CardBuilder, CardConfig, truncate_content, window_tool_calls

__all__ = [
    "CardBuilder",
    "CardConfig",
    "truncate_content",
    "window_tool_calls",
    "extract_image_paths",
    "collect_image_paths",
]
