from __future__ import annotations

from typing import Any
from urllib.parse import quote


def segment(resource_id: str) -> str:
    value = resource_id.strip()
    if not value:
        raise ValueError("Resource id is required")
    return quote(value, safe="")


def update_mask(update: dict[str, Any]) -> str:
    if not update:
        raise ValueError("Partial update must change at least one field")
    return ",".join(sorted(update))
