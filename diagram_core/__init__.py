"""
Diagram Core - Graph models, encoding, validation and layout algorithms.

This package is the pure part of the system: no storage and no I/O. The
backend services and the API use it as the single source of truth for
graph logic.
"""

from .models import (
    LayoutDirection,
    Position,
    GraphNode,
    GraphEdge,
    Graph,
)

from .validation import (
    GraphRepair,
    IssueSeverity,
    ValidationIssue,
    inspect_graph,
    repair_graph,
    validation_summary,
)
from .graph import ParsedGraph, parse_graph, parse_graph_parts, serialize_graph
from .layout import (
    LayoutOptions,
    Layering,
    compute_layering,
    grid_layout,
    layered_layout,
    layout,
    layout_graph,
)

__all__ = [
    # Models
    "LayoutDirection",
    "Position",
    "GraphNode",
    "GraphEdge",
    "Graph",
    # Validation
    "GraphRepair",
    "IssueSeverity",
    "ValidationIssue",
    "inspect_graph",
    "repair_graph",
    "validation_summary",
    # Encoding
    "ParsedGraph",
    "parse_graph",
    "parse_graph_parts",
    "serialize_graph",
    # Layout
    "LayoutOptions",
    "Layering",
    "compute_layering",
    "grid_layout",
    "layered_layout",
    "layout",
    "layout_graph",
]
