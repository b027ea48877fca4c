"""
Graph validation - Repair and check graphs for structural issues.

Two entry points:
- `repair_graph` silently drops what would break rendering (dangling edges,
  duplicate node ids) and reports what it dropped
- `inspect_graph` produces an advisory list of issues without changing anything
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .models import Graph

if TYPE_CHECKING:
    from .models import GraphEdge, GraphNode

logger = logging.getLogger(__name__)


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Invalid state, repaired on load
    WARNING = "warning"  # Potential problem, should review
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """A single validation issue found in a graph."""
    severity: IssueSeverity
    message: str
    node_id: str | None = None
    edge_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.node_id:
            result["node_id"] = self.node_id
        if self.edge_id:
            result["edge_id"] = self.edge_id
        return result


@dataclass
class GraphRepair:
    """A repaired graph together with everything that was dropped from it."""
    graph: Graph
    dropped_edges: list["GraphEdge"] = field(default_factory=list)
    dropped_nodes: list["GraphNode"] = field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return bool(self.dropped_edges or self.dropped_nodes)

    def to_dict(self) -> dict:
        return {
            "dropped_edges": [e.model_dump(mode="json") for e in self.dropped_edges],
            "dropped_nodes": [n.model_dump(mode="json") for n in self.dropped_nodes],
        }


def unique_edge_id(base: str, taken: set[str]) -> str:
    """`base`, or `base-2`, `base-3`, ... whichever is first not in `taken`."""
    edge_id = base
    suffix = 1
    while edge_id in taken:
        suffix += 1
        edge_id = f"{base}-{suffix}"
    return edge_id


def repair_graph(graph: Graph) -> GraphRepair:
    """
    Return a copy of `graph` that is safe to lay out and render.

    - Nodes whose id was already seen are dropped (first occurrence wins)
    - Edges whose source or target is not a node id of the graph are dropped
    - Edges reusing an earlier edge's id are renamed `<id>-2`, `<id>-3`, ...

    Never raises. The input graph is left untouched.
    """
    nodes = []
    dropped_nodes = []
    seen: set[str] = set()
    for node in graph.nodes:
        if node.id in seen:
            dropped_nodes.append(node.model_copy(deep=True))
            continue
        seen.add(node.id)
        nodes.append(node.model_copy(deep=True))

    edges = []
    dropped_edges = []
    edge_ids: set[str] = set()
    for edge in graph.edges:
        if edge.source not in seen or edge.target not in seen:
            dropped_edges.append(edge.model_copy(deep=True))
            continue
        edge_id = unique_edge_id(edge.id, edge_ids)
        edge_ids.add(edge_id)
        edges.append(edge.model_copy(update={"id": edge_id}, deep=True))

    if dropped_edges or dropped_nodes:
        logger.warning(
            "Repaired graph: dropped %d dangling edge(s) %s and %d duplicate node(s)",
            len(dropped_edges),
            [f"{e.source}->{e.target}" for e in dropped_edges],
            len(dropped_nodes),
        )

    return GraphRepair(
        graph=Graph(nodes=nodes, edges=edges),
        dropped_edges=dropped_edges,
        dropped_nodes=dropped_nodes,
    )


def inspect_graph(graph: Graph) -> list[ValidationIssue]:
    """
    Check a graph and return a list of issues.

    Checks for:
    - Empty graph - INFO
    - Orphan nodes (no connections) - INFO
    - Empty labels - WARNING
    - Duplicate node ids - ERROR
    - Dangling edge references (source/target doesn't exist) - ERROR
    - Self-referencing edges - WARNING
    - Duplicate edges (same source->target) - WARNING

    Args:
        graph: The graph to check

    Returns:
        List of ValidationIssue objects
    """
    issues: list[ValidationIssue] = []

    nodes = graph.nodes
    edges = graph.edges

    if not nodes:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Graph has no nodes"
        ))
        # Every edge in an empty graph dangles; fall through to report them

    node_ids: set[str] = set()
    for node in nodes:
        if node.id in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Duplicate node id: {node.id}",
                node_id=node.id
            ))
        node_ids.add(node.id)

    connected_nodes: set[str] = set()
    for edge in edges:
        connected_nodes.add(edge.source)
        connected_nodes.add(edge.target)

    orphans = [n for n in nodes if n.id not in connected_nodes]
    if orphans and len(nodes) > 1:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Orphan nodes (no connections): "
            + ", ".join(f"{n.label} ({n.id})" for n in orphans)
        ))

    for node in nodes:
        if not node.label.strip():
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message="Node has empty label",
                node_id=node.id
            ))

    for edge in edges:
        if edge.source not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Edge references non-existent source node: {edge.source}",
                edge_id=edge.id
            ))
        if edge.target not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Edge references non-existent target node: {edge.target}",
                edge_id=edge.id
            ))

    for edge in edges:
        if edge.source == edge.target:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message="Self-referencing edge (node points to itself)",
                edge_id=edge.id,
                node_id=edge.source
            ))

    seen_pairs: set[tuple[str, str]] = set()
    for edge in edges:
        pair = (edge.source, edge.target)
        if pair in seen_pairs:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Duplicate edge from {edge.source} to {edge.target}",
                edge_id=edge.id
            ))
        else:
            seen_pairs.add(pair)

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of validation issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts by severity
    """
    errors = len([i for i in issues if i.severity == IssueSeverity.ERROR])
    return {
        "total": len(issues),
        "errors": errors,
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": errors == 0
    }
