from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..logging import get_logger
from ..util.errors import PlanLoadError

LOG = get_logger(__name__)

# JSON-shaped plan attribute value
PlanValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]


class ChangeState(str, Enum):
    NO_OP = "no-op"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    DELETE_CREATE = "delete-create"
    CREATE_DELETE = "create-delete"

    @property
    def is_low(self) -> bool:
        return self in (ChangeState.NO_OP, ChangeState.READ)


@dataclass(frozen=True)
class ChangeRecord:
    address: str
    actions: Tuple[str, ...]
    before: PlanValue = None
    after: PlanValue = None
    after_unknown: PlanValue = None
    resource_type: Optional[str] = None
    name: Optional[str] = None
    mode: Optional[str] = None

    @property
    def action_tag(self) -> str:
        return "-".join(self.actions)

    @property
    def tags_all(self) -> Dict[str, Any]:
        if isinstance(self.after, dict):
            tags = self.after.get("tags_all")
            if isinstance(tags, dict):
                return tags
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "type": self.resource_type,
            "name": self.name,
            "mode": self.mode,
            "change": {
                "actions": list(self.actions),
                "before": self.before,
                "after": self.after,
                "after_unknown": self.after_unknown,
            },
        }


@dataclass(frozen=True)
class PlanDocument:
    resource_changes: Tuple[ChangeRecord, ...] = field(default_factory=tuple)
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def __len__(self) -> int:
        return len(self.resource_changes)


def _record_from_json(raw: Mapping[str, Any]) -> Optional[ChangeRecord]:
    address = raw.get("address")
    if not isinstance(address, str) or not address:
        return None
    change = raw.get("change") if isinstance(raw.get("change"), Mapping) else {}
    actions = change.get("actions") or []
    if not isinstance(actions, list):
        actions = [actions]
    return ChangeRecord(
        address=address,
        actions=tuple(str(a) for a in actions) or ("no-op",),
        before=change.get("before"),
        after=change.get("after"),
        after_unknown=change.get("after_unknown"),
        resource_type=raw.get("type"),
        name=raw.get("name"),
        mode=raw.get("mode"),
    )


def plan_from_obj(obj: Mapping[str, Any]) -> PlanDocument:
    if not isinstance(obj, Mapping):
        raise PlanLoadError("Plan document must be a JSON object")
    raw_changes = obj.get("resource_changes") or []
    if not isinstance(raw_changes, list):
        raise PlanLoadError("Plan field 'resource_changes' must be a list")
    records: List[ChangeRecord] = []
    skipped = 0
    for raw in raw_changes:
        rec = _record_from_json(raw) if isinstance(raw, Mapping) else None
        if rec is None:
            skipped += 1
            continue
        records.append(rec)
    if skipped:
        LOG.warning("Skipped malformed resource changes", extra={"skipped": skipped})
    return PlanDocument(resource_changes=tuple(records), raw=obj)


def parse_plan(text: Optional[Union[str, Mapping[str, Any]]]) -> Optional[PlanDocument]:
    """
    Parse a plan JSON document (``terraform show -json``). Empty input means no plan.
    """
    if text is None:
        return None
    if isinstance(text, Mapping):
        return plan_from_obj(text)
    if not text.strip():
        return None
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise PlanLoadError(f"Failed to parse plan JSON: {e}") from e
    return plan_from_obj(obj)


def load_plan_file(path: Path) -> Optional[PlanDocument]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PlanLoadError(f"Failed to read plan file {path}: {e}") from e
    return parse_plan(text)
