from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from ..core.pipeline import Resolution
from ..util.errors import ExportError
from ..util.serialization import sanitize_for_json, stable_json_dumps

GROUPS_FILENAME = "groups.json"


def resolution_payload(resolution: Resolution) -> Dict[str, Any]:
    """JSON-ready view of a resolution with sensitive plan attributes redacted."""
    return sanitize_for_json(resolution.to_dict())


def write_groups(outdir: Path, resolution: Resolution) -> Path:
    """
    Write groups.json with stable key ordering. Group order follows the resolution.
    """
    path = outdir / GROUPS_FILENAME
    try:
        outdir.mkdir(parents=True, exist_ok=True)
        path.write_text(stable_json_dumps(resolution_payload(resolution), indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write {path}: {e}") from e
    return path
