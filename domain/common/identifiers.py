"""Boundary helpers that normalize loosely-shaped identifiers."""
from __future__ import annotations

from typing import Any, Optional


def extract_id(value: Any) -> Optional[str]:
    """Return a plain string id from ``str | int | {"id": ...} | obj.id``.

    Relations coming from upstream collaborators may be either a bare id or a
    populated document; core logic only ever sees the bare id. Blank values
    normalize to ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (str, int)):
        text = str(value).strip()
        return text or None
    if isinstance(value, dict):
        return extract_id(value.get("id"))
    return extract_id(getattr(value, "id", None))
