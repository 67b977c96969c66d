from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple


@dataclass(frozen=True)
class GraphNode:
    id: str
    label: str = ""

    @property
    def block_reference(self) -> str:
        """Second space-separated token of the id, e.g. ``aws_instance.web`` for ``[root] aws_instance.web (expand)``."""
        parts = self.id.split(" ")
        return parts[1] if len(parts) > 1 else ""


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str


@dataclass
class DependencyGraph:
    """
    A parsed dependency graph scope. ``subgraphs[0]`` of the root is the primary
    scope: its nodes and edges drive grouping and connectivity.
    """

    name: str = ""
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    subgraphs: List["DependencyGraph"] = field(default_factory=list)

    @property
    def primary(self) -> "DependencyGraph":
        return self.subgraphs[0] if self.subgraphs else self

    def iter_seed_nodes(self) -> Iterator[GraphNode]:
        scopes = self.subgraphs or [self]
        for scope in scopes:
            yield from scope.nodes

    def node_index(self) -> Dict[str, GraphNode]:
        return {node.id: node for node in self.primary.nodes}

    def adjacency(self) -> Tuple[Dict[str, List[str]], Dict[str, List[str]]]:
        outgoing: Dict[str, List[str]] = {}
        incoming: Dict[str, List[str]] = {}
        for edge in self.primary.edges:
            outgoing.setdefault(edge.source, []).append(edge.target)
            incoming.setdefault(edge.target, []).append(edge.source)
        return outgoing, incoming
