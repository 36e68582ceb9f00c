"""Catalog of agent models that can be selected per conversation."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ModelInfo:
    """A selectable backend model."""

    id: str
    name: str
    description: str


AVAILABLE_MODELS: list[ModelInfo] = [
    ModelInfo(
        id="claude-opus-4-6",
        name="Claude Opus 4.6",
        description="Most capable model (latest)",
    ),
    ModelInfo(
        id="claude-sonnet-4-5",
        name="Claude Sonnet 4.5",
        description="Balanced performance and speed (recommended)",
    ),
    ModelInfo(
        id="claude-haiku-3-5",
        name="Claude Haiku 3.5",
        description="Fastest model, good for simple tasks",
    ),
    ModelInfo(
        id="claude-3-5-sonnet-20241022",
        name="Claude 3.5 Sonnet (Oct 2024)",
        description="Previous Sonnet version",
    ),
    ModelInfo(
        id="claude-3-5-haiku-20241022",
        name="Claude 3.5 Haiku (Oct 2024)",
        description="Previous Haiku version",
    ),
    ModelInfo(
        id="claude-3-opus-20240229",
        name="Claude 3 Opus (Feb 2024)",
        description="Previous Opus version",
    ),
]


def get_model_info(model_id: str) -> ModelInfo | None:
    for model in AVAILABLE_MODELS:
        if model.id == model_id:
            return model
    return None
