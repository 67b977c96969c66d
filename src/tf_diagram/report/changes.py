from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Sequence

from ..plan.model import ChangeRecord
from ..util.serialization import sanitize_for_json

KNOWN_AFTER_APPLY = "(known after apply)"
NO_CHANGES_TEXT = "No changes detected"

ACTION_SYMBOLS: Dict[str, str] = {
    "create": "+",
    "delete": "-",
    "update": "~",
    "delete-create": "-/+",
    "create-delete": "+/-",
    "read": "<=",
    "no-op": " ",
}


def _render_value(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


def _unknown_keys(record: ChangeRecord) -> List[str]:
    if not isinstance(record.after_unknown, dict):
        return []
    return sorted(k for k, v in record.after_unknown.items() if v is True or (isinstance(v, (dict, list)) and v))


def _attribute_lines(record: ChangeRecord, show_unknown: bool) -> List[str]:
    before = sanitize_for_json(record.before) if isinstance(record.before, dict) else {}
    after = sanitize_for_json(record.after) if isinstance(record.after, dict) else {}
    unknown = _unknown_keys(record)
    lines: List[str] = []
    for key in sorted(set(before) | set(after)):
        if key in unknown:
            continue
        old = before.get(key)
        new = after.get(key)
        if old == new:
            continue
        if key not in after:
            lines.append(f"    {key}: {_render_value(old)} -> null")
        elif old is None:
            lines.append(f"    {key}: {_render_value(new)}")
        else:
            lines.append(f"    {key}: {_render_value(old)} -> {_render_value(new)}")
    if show_unknown:
        for key in unknown:
            old = before.get(key)
            prefix = f"{_render_value(old)} -> " if old is not None else ""
            lines.append(f"    {key}: {prefix}{KNOWN_AFTER_APPLY}")
    return lines


def describe_record(record: ChangeRecord, *, show_unknown: bool = False) -> List[str]:
    tag = record.action_tag
    symbol = ACTION_SYMBOLS.get(tag, "~")
    lines = [f"{symbol} {record.address} ({tag})"]
    if tag in ("no-op", "read", "delete"):
        return lines
    lines.extend(_attribute_lines(record, show_unknown))
    return lines


def describe_changes(records: Iterable[ChangeRecord], *, show_unknown: bool = False) -> str:
    """
    Human-readable summary of a set of change records, one block per record.
    Attributes only known after apply are listed when show_unknown is set.
    """
    blocks = ["\n".join(describe_record(r, show_unknown=show_unknown)) for r in records]
    return "\n\n".join(blocks) if blocks else NO_CHANGES_TEXT


def summarize_states(states: Sequence[str]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for state in states:
        counts[state] = counts.get(state, 0) + 1
    return dict(sorted(counts.items()))
