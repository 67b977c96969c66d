from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from ..logging import get_logger
from ..util.errors import StateError
from ..util.serialization import stable_json_dumps

LOG = get_logger(__name__)

STATE_KEYS = (
    "graph",
    "plan",
    "groups",
    "detailed",
    "show_inactive",
    "excluded_categories",
    "selected_tags",
)


class StateStore:
    """
    Key/value state persisted as a single JSON object.
    ``send`` merges the given fields into what is stored; ``get`` returns a copy.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def get(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise StateError(f"Failed to read state file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StateError(f"State file {self.path} must hold a JSON object")
        return data

    def send(self, **fields: Any) -> Dict[str, Any]:
        state = self.get()
        unknown = sorted(set(fields) - set(STATE_KEYS))
        if unknown:
            LOG.debug("Storing non-standard state keys", extra={"keys": unknown})
        state.update(fields)
        self._write(state)
        return state

    def _write(self, state: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(stable_json_dumps(state), encoding="utf-8")
        except OSError as e:
            raise StateError(f"Failed to write state file {self.path}: {e}") from e
