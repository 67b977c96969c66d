from __future__ import annotations

from pathlib import Path
from typing import Any, List

import pydot

from ..logging import get_logger
from ..util.errors import GraphLoadError
from .model import DependencyGraph, GraphEdge, GraphNode

LOG = get_logger(__name__)

# pydot reports default-attribute statements as pseudo nodes
_PSEUDO_NODE_NAMES = {"node", "edge", "graph"}


def _unquote(value: Any) -> str:
    text = str(value or "").strip()
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = text[1:-1].replace('\\"', '"')
    return text


def _endpoint(value: Any) -> str:
    # pydot may hand back a "name:port" string or a frozendict for anonymous subgraphs
    if isinstance(value, dict):
        return ""
    return _unquote(value)


def _convert(graph: Any) -> DependencyGraph:
    nodes: List[GraphNode] = []
    seen = set()
    for node in graph.get_nodes():
        node_id = _unquote(node.get_name())
        if not node_id or node_id in _PSEUDO_NODE_NAMES or node_id in seen:
            continue
        seen.add(node_id)
        label = _unquote(node.get("label")) if node.get("label") is not None else node_id
        nodes.append(GraphNode(id=node_id, label=label))

    edges: List[GraphEdge] = []
    for edge in graph.get_edges():
        source = _endpoint(edge.get_source())
        target = _endpoint(edge.get_destination())
        if not source or not target:
            continue
        edges.append(GraphEdge(source=source, target=target))

    return DependencyGraph(
        name=_unquote(graph.get_name()),
        nodes=nodes,
        edges=edges,
        subgraphs=[_convert(sub) for sub in graph.get_subgraphs()],
    )


def parse_dot(text: str) -> DependencyGraph:
    """
    Parse DOT text (e.g. ``terraform graph`` output) into a DependencyGraph.
    Only nodes, edges and nested subgraphs are retained.
    """
    if not text or not text.strip():
        return DependencyGraph()
    try:
        graphs = pydot.graph_from_dot_data(text)
    except Exception as e:
        raise GraphLoadError(f"Failed to parse DOT graph: {e}") from e
    if not graphs:
        raise GraphLoadError("Failed to parse DOT graph: no graph found")
    if len(graphs) > 1:
        LOG.warning("DOT input holds several graphs; using the first", extra={"graphs": len(graphs)})
    model = _convert(graphs[0])
    LOG.debug(
        "Parsed DOT graph",
        extra={
            "nodes": len(model.primary.nodes),
            "edges": len(model.primary.edges),
            "subgraphs": len(model.subgraphs),
        },
    )
    return model


def load_dot_file(path: Path) -> DependencyGraph:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise GraphLoadError(f"Failed to read graph file {path}: {e}") from e
    return parse_dot(text)
