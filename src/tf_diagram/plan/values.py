from __future__ import annotations

from typing import Any, Optional

from .model import PlanValue


def resolve_attribute(value: PlanValue, path: str) -> Optional[Any]:
    """
    Walk a dotted attribute path through nested mappings and sequences.
    Numeric segments index into lists. Returns None instead of raising on a miss.

    >>> resolve_attribute({"tags": {"Name": "web"}}, "tags.Name")
    'web'
    """
    if not path:
        return None
    current: Any = value
    for segment in path.split("."):
        if isinstance(current, dict):
            if segment not in current:
                return None
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def as_display_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip()
    return text or None
