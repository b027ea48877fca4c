"""
Core data models for diagram graphs.

These models define the canonical graph schema shared by templates and diagrams:
- Nodes with a label, an optional kind tag and a position
- Directed edges connecting nodes (using source/target naming convention)
- The layout directions a template or diagram can be rendered with

Field Naming Convention:
- Edges use `source` and `target` (React Flow, D3, Cytoscape)
- Nodes are stored flat (`label`, `kind`, `position`)
- For compatibility with stored React Flow payloads, `data.label` and `type`
  are accepted on node input, and `from`/`to` on edge input
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field, field_validator, model_validator


class LayoutDirection(str, Enum):
    """Directions the layout engine can arrange a graph in."""
    TOP_DOWN = "top-down"
    LEFT_RIGHT = "left-right"
    GRID = "grid"

    @classmethod
    def coerce(cls, value: Any) -> "LayoutDirection":
        """Map stored or legacy direction names onto a LayoutDirection."""
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.TOP_DOWN
        key = str(value).strip().lower()
        if key in _DIRECTION_ALIASES:
            return _DIRECTION_ALIASES[key]
        raise ValueError(f"Unknown layout direction: {value!r}")


_DIRECTION_ALIASES = {
    "top-down": LayoutDirection.TOP_DOWN,
    "tb": LayoutDirection.TOP_DOWN,
    "vertical": LayoutDirection.TOP_DOWN,
    "dagre": LayoutDirection.TOP_DOWN,
    "hierarchical": LayoutDirection.TOP_DOWN,
    "left-right": LayoutDirection.LEFT_RIGHT,
    "lr": LayoutDirection.LEFT_RIGHT,
    "horizontal": LayoutDirection.LEFT_RIGHT,
    "grid": LayoutDirection.GRID,
}


class Position(BaseModel):
    """Top-left corner of a node on the canvas."""
    x: float = 0
    y: float = 0


class GraphNode(BaseModel):
    """A node in a template or diagram graph."""
    id: str
    label: str = ""
    kind: Optional[str] = None
    position: Position = Field(default_factory=Position)

    @model_validator(mode='before')
    @classmethod
    def convert_flow_fields(cls, data: Any) -> Any:
        """Convert React Flow style 'data.label'/'type' fields to 'label'/'kind'."""
        if isinstance(data, dict):
            data = dict(data)
            payload = data.pop('data', None)
            if 'label' not in data and isinstance(payload, dict) and 'label' in payload:
                data['label'] = payload['label']
            if 'type' in data and 'kind' not in data:
                data['kind'] = data.pop('type')
            # Flat coordinates from older exports
            if 'position' not in data and ('x' in data or 'y' in data):
                data['position'] = {'x': data.pop('x', 0), 'y': data.pop('y', 0)}
        return data

    @field_validator('id', mode='before')
    @classmethod
    def id_as_string(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator('label', mode='before')
    @classmethod
    def label_as_string(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)):
            return str(value)
        return value


class GraphEdge(BaseModel):
    """
    A directed edge connecting two nodes.

    Uses `source` and `target` as canonical field names.
    Accepts `from`/`to` on input for backward compatibility.
    """
    id: str = ""
    source: str  # Source node ID
    target: str  # Target node ID
    animated: bool = False  # Cosmetic only

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert legacy 'from'/'to' fields to 'source'/'target'."""
        if isinstance(data, dict):
            data = dict(data)
            if 'from' in data and 'source' not in data:
                data['source'] = data.pop('from')
            if 'to' in data and 'target' not in data:
                data['target'] = data.pop('to')
            for key in ('id', 'source', 'target'):
                value = data.get(key)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    data[key] = str(value)
        return data

    @model_validator(mode='after')
    def default_id(self) -> "GraphEdge":
        # Derived rather than random so parsing the same payload twice is stable
        if not self.id:
            self.id = f"e{self.source}-{self.target}"
        return self


class Graph(BaseModel):
    """
    A node/edge collection.

    Node and edge lists keep insertion order; layout and serialization
    both depend on it.
    """
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)

    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        """Get a node by ID (O(n))."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[GraphEdge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "nodes": [n.model_dump(mode="json") for n in self.nodes],
            "edges": [e.model_dump(mode="json") for e in self.edges],
        }

    def copy_graph(self) -> "Graph":
        """Deep copy, so the result shares no node or edge objects with self."""
        return self.model_copy(deep=True)
