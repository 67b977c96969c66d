from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Dict, List, Sequence

from ..core.classifier import type_label
from ..core.grouping import ResourceGroup
from ..core.modules import ModuleNode
from ..plan.model import ChangeState
from ..util.errors import ExportError

DIAGRAM_FILENAME = "diagram.mmd"

_STATE_CLASSES: Dict[ChangeState, str] = {
    ChangeState.CREATE: "create",
    ChangeState.UPDATE: "update",
    ChangeState.DELETE: "delete",
    ChangeState.DELETE_CREATE: "replace",
    ChangeState.CREATE_DELETE: "replace",
}


def _mermaid_id(key: str) -> str:
    # stable across runs; raw addresses contain characters Mermaid rejects
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
    return f"N{digest[:12]}"


def _label(text: str) -> str:
    return text.replace('"', "'")


def _style_block_lines() -> List[str]:
    return [
        "%% Styles (by change state)",
        "classDef create stroke:#1a7f37,stroke-width:3px;",
        "classDef update stroke:#bf8700,stroke-width:3px;",
        "classDef delete stroke:#cf222e,stroke-width:3px;",
        "classDef replace stroke:#8250df,stroke-width:3px;",
        "classDef inactive opacity:0.4,stroke-dasharray: 4 3;",
    ]


def _node_class(group: ResourceGroup, has_plan: bool) -> str:
    cls = _STATE_CLASSES.get(group.state)
    if cls:
        return cls
    return "inactive" if has_plan else ""


def _group_lines(group: ResourceGroup, indent: str, has_plan: bool) -> List[str]:
    node_id = _mermaid_id(group.id)
    kind = type_label(group.resource_type) or group.resource_type
    lines = [f'{indent}{node_id}["{_label(group.name)}<br>{_label(kind)}"]']
    cls = _node_class(group, has_plan)
    if cls:
        lines.append(f"{indent}class {node_id} {cls}")
    return lines


def render_mermaid(
    groups: Sequence[ResourceGroup],
    modules: Sequence[ModuleNode],
    *,
    has_plan: bool = False,
    direction: str = "TB",
) -> str:
    """
    Render groups as a Mermaid flowchart: module containers become nested subgraphs,
    group connections become edges.
    """
    lines: List[str] = [f"flowchart {direction}"]
    lines.extend(_style_block_lines())

    children: Dict[str, List[ModuleNode]] = {}
    for module in modules:
        children.setdefault(module.parent or "", []).append(module)
    members: Dict[str, List[ResourceGroup]] = {}
    for group in groups:
        members.setdefault(group.module_id or "", []).append(group)

    def _emit(scope: str, depth: int) -> None:
        indent = "  " * depth
        for group in members.get(scope, []):
            lines.extend(_group_lines(group, indent, has_plan))
        for module in children.get(scope, []):
            lines.append(f'{indent}subgraph {_mermaid_id(module.id)}["module.{_label(module.name)}"]')
            _emit(module.id, depth + 1)
            lines.append(f"{indent}end")

    _emit("", 0)

    known = {g.id for g in groups}
    for group in groups:
        for target in group.connections_out:
            if target in known:
                lines.append(f"{_mermaid_id(group.id)} --> {_mermaid_id(target)}")
    return "\n".join(lines) + "\n"


def write_mermaid(
    outdir: Path,
    groups: Sequence[ResourceGroup],
    modules: Sequence[ModuleNode],
    *,
    has_plan: bool = False,
) -> Path:
    path = outdir / DIAGRAM_FILENAME
    try:
        outdir.mkdir(parents=True, exist_ok=True)
        path.write_text(render_mermaid(groups, modules, has_plan=has_plan), encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write {path}: {e}") from e
    return path
