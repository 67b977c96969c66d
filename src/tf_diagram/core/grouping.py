from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from ..graph.model import DependencyGraph, GraphNode
from ..logging import get_logger
from ..mapping import DEFAULT_NAME_ATTRIBUTE, MappingRow, MappingTable
from ..plan.model import ChangeRecord, ChangeState, PlanDocument
from ..plan.resolver import fold_state, records_for_address, resolve_display_name, resolve_state
from .classifier import DEFAULT_RESOURCE_PREFIXES, BlockClassification, block_reference, classify_block

LOG = get_logger(__name__)


def module_address(names: Sequence[str]) -> str:
    """('vpc', 'subnets') -> module.vpc.module.subnets"""
    return ".".join(f"module.{name}" for name in names)


@dataclass
class GroupMember:
    node: GraphNode
    changes: List[ChangeRecord] = field(default_factory=list)

    @property
    def state(self) -> ChangeState:
        return resolve_state(self.changes)


@dataclass
class ResourceGroup:
    id: str
    main_node: GraphNode
    resource_type: str
    name: str
    category: str
    service_name: str
    icon_path: str
    module_name: Optional[str] = None
    state: ChangeState = ChangeState.NO_OP
    members: List[GroupMember] = field(default_factory=list)
    connections_out: List[str] = field(default_factory=list)
    connections_in: List[str] = field(default_factory=list)

    def member_ids(self) -> List[str]:
        return [m.node.id for m in self.members]

    def iter_changes(self) -> Iterator[ChangeRecord]:
        for member in self.members:
            yield from member.changes

    @property
    def module_id(self) -> Optional[str]:
        if not self.module_name:
            return None
        return module_address(self.module_name.split("."))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "mainNode": self.main_node.id,
            "type": self.resource_type,
            "name": self.name,
            "category": self.category,
            "serviceName": self.service_name,
            "iconPath": self.icon_path,
            "moduleName": self.module_name,
            "state": self.state.value,
            "connectionsOut": list(self.connections_out),
            "connectionsIn": list(self.connections_in),
            "nodes": [
                {"id": m.node.id, "resourceChanges": [c.to_dict() for c in m.changes]} for m in self.members
            ],
        }


@dataclass(frozen=True)
class GroupingOptions:
    detailed: bool = False
    hide_inactive: bool = False
    resource_prefixes: Sequence[str] = DEFAULT_RESOURCE_PREFIXES


def _new_group(
    node: GraphNode,
    info: BlockClassification,
    row: MappingRow,
    name_attribute: str,
    plan: Optional[PlanDocument],
) -> ResourceGroup:
    address = block_reference(node.id)
    changes = records_for_address(plan, address)
    resource_type = info.resource_type or ""
    return ResourceGroup(
        id=address,
        main_node=node,
        resource_type=resource_type,
        name=resolve_display_name(changes, name_attribute, info.resource_name),
        category=row.category,
        service_name=row.service_name,
        icon_path=row.icon_path,
        module_name=info.module_path or None,
        state=resolve_state(changes),
        members=[GroupMember(node=node, changes=changes)],
    )


class GroupingPass:
    """
    One grouping run over a graph. Owns the claimed-node set and the group map;
    a node is claimed before its neighbours are visited, so it can join one group only.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        table: MappingTable,
        plan: Optional[PlanDocument] = None,
        options: Optional[GroupingOptions] = None,
    ) -> None:
        self.graph = graph
        self.table = table
        self.plan = plan
        self.options = options or GroupingOptions()
        self.groups: Dict[str, ResourceGroup] = {}
        self.claimed: Dict[str, str] = {}
        self._nodes = graph.node_index()
        self._outgoing, self._incoming = graph.adjacency()
        self._classified: Dict[str, BlockClassification] = {}

    def classify(self, node_id: str) -> BlockClassification:
        info = self._classified.get(node_id)
        if info is None:
            info = classify_block(node_id, self.options.resource_prefixes)
            self._classified[node_id] = info
        return info

    def _claim(self, node_id: str, group_id: str) -> bool:
        if node_id in self.claimed:
            return False
        self.claimed[node_id] = group_id
        return True

    def seed(self) -> None:
        for node in self.graph.iter_seed_nodes():
            info = self.classify(node.id)
            if not info.is_resource_with_name:
                continue
            row = self.table.main_row(info.resource_type)
            if row is None:
                LOG.debug("No mapping row for resource type", extra={"resource_type": info.resource_type})
                continue
            group = _new_group(node, info, row, self.table.name_attribute(info.resource_type), self.plan)
            if group.id in self.groups or not self._claim(node.id, group.id):
                continue
            self.groups[group.id] = group

    def _absorbable(self, group: ResourceGroup, node_id: str) -> bool:
        if node_id in self.claimed or node_id not in self._nodes:
            return False
        info = self.classify(node_id)
        if info.is_resource_with_name:
            return self.table.absorbs(group.resource_type, info.resource_type, is_data=False)
        if info.is_data_with_name:
            return self.table.absorbs(group.resource_type, info.resource_type, is_data=True)
        return False

    def _neighbours(self, node_id: str, outgoing_first: bool) -> Iterator[Tuple[str, bool]]:
        """Edge endpoints of a node as (endpoint, reached_via_outgoing), in traversal order."""
        directions = (True, False) if outgoing_first else (False, True)
        for outgoing in directions:
            adjacency = self._outgoing if outgoing else self._incoming
            for endpoint in adjacency.get(node_id, []):
                yield endpoint, outgoing

    def expand(self, group: ResourceGroup) -> None:
        """
        Depth-first absorption from the main node, pre-order.
        A node is claimed and appended before its own neighbours are pushed; it continues
        in the direction it was reached through before turning around.
        """
        stack: List[Iterator[Tuple[str, bool]]] = [self._neighbours(group.main_node.id, outgoing_first=True)]
        while stack:
            step = next(stack[-1], None)
            if step is None:
                stack.pop()
                continue
            node_id, outgoing = step
            if not self._absorbable(group, node_id) or not self._claim(node_id, group.id):
                continue
            member = GroupMember(
                node=self._nodes[node_id],
                changes=records_for_address(self.plan, block_reference(node_id)),
            )
            group.members.append(member)
            if self.plan is not None:
                group.state = fold_state(group.state, member.state)
            stack.append(self._neighbours(node_id, outgoing_first=outgoing))

    def add_orphans(self) -> None:
        for node in self.graph.primary.nodes:
            if node.id in self.claimed:
                continue
            info = self.classify(node.id)
            if not info.is_resource_with_name:
                continue
            row = self.table.row_for_any(info.resource_type)
            if row is None:
                continue
            group = _new_group(node, info, row, DEFAULT_NAME_ATTRIBUTE, self.plan)
            if group.id in self.groups:
                continue
            self._claim(node.id, group.id)
            self.groups[group.id] = group

    def prune_inactive(self) -> None:
        for group_id in list(self.groups):
            if not self.groups[group_id].members[0].changes:
                del self.groups[group_id]
        for group in self.groups.values():
            group.members = [m for m in group.members if m.changes]

    def run(self) -> Dict[str, ResourceGroup]:
        self.seed()
        for group in list(self.groups.values()):
            self.expand(group)
        if self.options.detailed:
            self.add_orphans()
        if self.plan is not None and self.options.hide_inactive:
            self.prune_inactive()
        LOG.debug("Grouping complete", extra={"groups": len(self.groups), "claimed": len(self.claimed)})
        return self.groups


def build_groups(
    graph: DependencyGraph,
    table: MappingTable,
    plan: Optional[PlanDocument] = None,
    options: Optional[GroupingOptions] = None,
) -> Dict[str, ResourceGroup]:
    return GroupingPass(graph, table, plan, options).run()


def claimed_node_ids(groups: Dict[str, ResourceGroup]) -> Set[str]:
    return {node_id for group in groups.values() for node_id in group.member_ids()}
