from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .grouping import ResourceGroup, module_address


@dataclass(frozen=True)
class ModuleNode:
    id: str
    name: str
    parent: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"id": self.id, "name": self.name, "parent": self.parent}


def module_hierarchy(groups: Iterable[ResourceGroup]) -> List[ModuleNode]:
    """
    Module container nodes for the given groups, parents before children.
    A group in ``vpc.subnets`` yields ``module.vpc`` and ``module.vpc.module.subnets``.
    """
    nodes: Dict[str, ModuleNode] = {}
    for group in groups:
        if not group.module_name:
            continue
        parent: Optional[str] = None
        names: List[str] = []
        for name in group.module_name.split("."):
            names.append(name)
            module_id = module_address(names)
            if module_id not in nodes:
                nodes[module_id] = ModuleNode(id=module_id, name=name, parent=parent)
            parent = module_id
    return sorted(nodes.values(), key=lambda n: (len(n.id.split(".module.")), n.id))
