"""Discovery of output artifact paths in agent output."""

import os
import re
from typing import Any

IMAGE_EXTENSIONS = ("png", "jpg", "jpeg", "gif", "webp", "bmp")

_IMAGE_PATH_RE = re.compile(
    r"(?<![\w/.:])(~?/[^\s'\"`<>()\[\]{}|,;]*\.(?:" + "|".join(IMAGE_EXTENSIONS) + r"))(?![\w])",
    re.IGNORECASE,
)


def extract_image_paths(text: str) -> list[str]:
    """Find absolute image paths in free text.

    Returns:
        Paths in order of first appearance, without duplicates
    """
    seen: dict[str, None] = {}
    for match in _IMAGE_PATH_RE.finditer(text or ""):
        path = match.group(1)
        if path.startswith("~"):
            path = os.path.expanduser(path)
        seen.setdefault(path, None)
    return list(seen)


def collect_image_paths(value: Any) -> set[str]:
    """Find image paths anywhere inside a structured tool payload."""
    found: set[str] = set()
    if value is None:
        return found
    if isinstance(value, str):
        found.update(extract_image_paths(value))
    elif isinstance(value, dict):
        for item in value.values():
            found |= collect_image_paths(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            found |= collect_image_paths(item)
    return found
