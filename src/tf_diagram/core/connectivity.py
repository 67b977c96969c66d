from __future__ import annotations

from typing import Dict, Mapping, Set, Tuple

from ..graph.model import DependencyGraph
from ..logging import get_logger
from .grouping import ResourceGroup

LOG = get_logger(__name__)


def owner_index(groups: Mapping[str, ResourceGroup]) -> Dict[str, str]:
    owners: Dict[str, str] = {}
    for group_id, group in groups.items():
        for node_id in group.member_ids():
            owners.setdefault(node_id, group_id)
    return owners


def connect_groups(groups: Mapping[str, ResourceGroup], graph: DependencyGraph) -> int:
    """
    Reduce node-level edges to group-level edges over the given (surviving) groups.
    Connections are rebuilt from scratch; returns the number of group edges recorded.
    """
    for group in groups.values():
        group.connections_out = []
        group.connections_in = []

    owners = owner_index(groups)
    seen: Set[Tuple[str, str]] = set()
    dropped = 0
    for edge in graph.primary.edges:
        from_group = owners.get(edge.source)
        to_group = owners.get(edge.target)
        if from_group is None or to_group is None:
            dropped += 1
            continue
        if from_group == to_group:
            continue
        pair = (from_group, to_group)
        if pair in seen:
            continue
        seen.add(pair)
        groups[from_group].connections_out.append(to_group)
        groups[to_group].connections_in.append(from_group)

    LOG.debug("Group connectivity resolved", extra={"group_edges": len(seen), "dropped_edges": dropped})
    return len(seen)
