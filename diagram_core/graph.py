"""
Graph encoding - Convert between Graph objects and their persisted JSON form.

Parsing never raises. Malformed input yields an empty graph with `error` set,
so callers can always render something; well-formed input is passed through
`repair_graph` before it is returned.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from .models import Graph, GraphEdge, GraphNode
from .validation import repair_graph

logger = logging.getLogger(__name__)


@dataclass
class ParsedGraph:
    """Result of parsing a raw graph payload."""
    graph: Graph
    error: Optional[str] = None
    dropped_edges: list[GraphEdge] = field(default_factory=list)
    dropped_nodes: list[GraphNode] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "graph": self.graph.to_json_dict(),
            "error": self.error,
            "dropped_edges": [e.model_dump(mode="json") for e in self.dropped_edges],
            "dropped_nodes": [n.model_dump(mode="json") for n in self.dropped_nodes],
        }


def _failed(message: str) -> ParsedGraph:
    logger.warning("Graph payload rejected, using empty graph: %s", message)
    return ParsedGraph(graph=Graph(), error=message)


def _decode(raw: Any, what: str) -> tuple[Any, Optional[str]]:
    """Decode JSON text/bytes; other values are returned unchanged."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            return None, f"{what} is not valid UTF-8: {e}"
    if isinstance(raw, str):
        if not raw.strip():
            return None, None
        try:
            return json.loads(raw), None
        except json.JSONDecodeError as e:
            return None, f"{what} is not valid JSON: {e.msg} (line {e.lineno}, column {e.colno})"
        except RecursionError:
            return None, f"{what} is nested too deeply"
    return raw, None


def _build(nodes: Any, edges: Any) -> ParsedGraph:
    if nodes is None:
        nodes = []
    if edges is None:
        edges = []
    if not isinstance(nodes, list):
        return _failed(f"nodes must be a list, got {type(nodes).__name__}")
    if not isinstance(edges, list):
        return _failed(f"edges must be a list, got {type(edges).__name__}")

    try:
        graph = Graph.model_validate({"nodes": nodes, "edges": edges})
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(p) for p in first.get("loc", ()))
        return _failed(f"{e.error_count()} invalid field(s), first at {location}: {first.get('msg', 'invalid')}")

    repair = repair_graph(graph)
    return ParsedGraph(
        graph=repair.graph,
        dropped_edges=repair.dropped_edges,
        dropped_nodes=repair.dropped_nodes,
    )


def parse_graph(raw: Any) -> ParsedGraph:
    """
    Parse a graph from any of its accepted encodings.

    Accepts:
    - A Graph instance
    - A mapping with "nodes" and "edges" lists
    - JSON text or bytes encoding such a mapping
    - None or empty text (an empty graph, not an error)
    """
    if isinstance(raw, Graph):
        repair = repair_graph(raw)
        return ParsedGraph(
            graph=repair.graph,
            dropped_edges=repair.dropped_edges,
            dropped_nodes=repair.dropped_nodes,
        )

    data, error = _decode(raw, "graph")
    if error:
        return _failed(error)
    if data is None:
        return ParsedGraph(graph=Graph())
    if not isinstance(data, dict):
        return _failed(f"graph must be an object with nodes and edges, got {type(data).__name__}")

    return _build(data.get("nodes"), data.get("edges"))


def parse_graph_parts(nodes_raw: Any, edges_raw: Any) -> ParsedGraph:
    """
    Parse a graph stored as separate node and edge payloads.

    This is the template record shape, where each part is either a list or
    JSON text encoding a list.
    """
    nodes, error = _decode(nodes_raw, "nodes")
    if error:
        return _failed(error)
    edges, error = _decode(edges_raw, "edges")
    if error:
        return _failed(error)
    return _build(nodes, edges)


def serialize_graph(graph: Graph) -> str:
    """Encode a graph as JSON text. Node and edge order is preserved."""
    return json.dumps(graph.to_json_dict())
