"""
Layout algorithms for diagram graphs.

Provides the layout strategies a template or diagram can be rendered with:
- Layered: Sugiyama-style hierarchical layout (top-down or left-right)
- Grid: Fixed-column grid in insertion order

All layout functions are pure: they return new node objects carrying the
computed positions and never modify their inputs. Node size is a fixed
constant, so the result depends only on node order, edges and direction.
"""

import heapq
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, TYPE_CHECKING

from .models import Graph, LayoutDirection, Position

if TYPE_CHECKING:
    from .models import GraphNode, GraphEdge

logger = logging.getLogger(__name__)


# Default layout parameters
NODE_WIDTH = 150
NODE_HEIGHT = 50
RANK_GAP = 50
NODE_GAP = 50
DEFAULT_BARYCENTER_PASSES = 4
DEFAULT_GRID_COLUMNS = 3


@dataclass(frozen=True)
class LayoutOptions:
    """Tunable layout parameters."""
    node_width: float = NODE_WIDTH
    node_height: float = NODE_HEIGHT
    rank_gap: float = RANK_GAP      # Space between ranks along the primary axis
    node_gap: float = NODE_GAP      # Space between nodes within a rank
    barycenter_passes: int = DEFAULT_BARYCENTER_PASSES
    grid_columns: int = DEFAULT_GRID_COLUMNS
    start_x: float = 0
    start_y: float = 0


@dataclass
class Layering:
    """Ranks and within-rank order computed for a graph."""
    ranks: dict[str, int] = field(default_factory=dict)
    order: list[list[str]] = field(default_factory=list)
    reversed_edges: list[tuple[str, str]] = field(default_factory=list)
    passes_run: int = 0
    converged: bool = False

    @property
    def rank_count(self) -> int:
        return len(self.order)


# --- Rank assignment ---

def _unique_ids(nodes: Iterable["GraphNode"]) -> list[str]:
    return list(dict.fromkeys(n.id for n in nodes))


def _successors(node_ids: list[str], edges: Iterable["GraphEdge"]) -> dict[str, list[str]]:
    """Adjacency in edge order, ignoring self-loops and unknown endpoints."""
    known = set(node_ids)
    successors: dict[str, list[str]] = {nid: [] for nid in node_ids}
    for edge in edges:
        if edge.source == edge.target:
            continue
        if edge.source in known and edge.target in known:
            if edge.target not in successors[edge.source]:
                successors[edge.source].append(edge.target)
    return successors


def _find_back_edges(node_ids: list[str], successors: dict[str, list[str]]) -> set[tuple[str, str]]:
    """
    Depth-first search in insertion order; an edge into a node that is still
    on the traversal stack closes a cycle.
    """
    NEW, ACTIVE, DONE = 0, 1, 2
    state = {nid: NEW for nid in node_ids}
    back: set[tuple[str, str]] = set()

    for root in node_ids:
        if state[root] != NEW:
            continue
        state[root] = ACTIVE
        stack = [(root, iter(successors[root]))]
        while stack:
            node, children = stack[-1]
            for child in children:
                if state[child] == ACTIVE:
                    back.add((node, child))
                elif state[child] == NEW:
                    state[child] = ACTIVE
                    stack.append((child, iter(successors[child])))
                    break
            else:
                state[node] = DONE
                stack.pop()

    return back


def assign_ranks(
    nodes: list["GraphNode"],
    edges: list["GraphEdge"],
) -> tuple[dict[str, int], list[tuple[str, str]], dict[str, list[str]]]:
    """
    Longest-path layering.

    Back edges found by `_find_back_edges` are reversed, which makes the graph
    acyclic; each node's rank is then the length of the longest path reaching
    it from a node with no incoming edges.

    Returns:
        (ranks, reversed_edges, dag_successors)
    """
    node_ids = _unique_ids(nodes)
    successors = _successors(node_ids, edges)
    back = _find_back_edges(node_ids, successors)

    dag: dict[str, list[str]] = {nid: [] for nid in node_ids}
    reversed_edges: list[tuple[str, str]] = []
    for source in node_ids:
        for target in successors[source]:
            if (source, target) in back:
                reversed_edges.append((source, target))
                source_, target_ = target, source
            else:
                source_, target_ = source, target
            if target_ not in dag[source_]:
                dag[source_].append(target_)

    # Kahn's algorithm; ties resolved by insertion index
    index = {nid: i for i, nid in enumerate(node_ids)}
    in_degree = {nid: 0 for nid in node_ids}
    for source in node_ids:
        for target in dag[source]:
            in_degree[target] += 1

    ranks = {nid: 0 for nid in node_ids}
    ready = [index[nid] for nid in node_ids if in_degree[nid] == 0]
    heapq.heapify(ready)
    while ready:
        node = node_ids[heapq.heappop(ready)]
        for target in dag[node]:
            ranks[target] = max(ranks[target], ranks[node] + 1)
            in_degree[target] -= 1
            if in_degree[target] == 0:
                heapq.heappush(ready, index[target])

    return ranks, reversed_edges, dag


# --- Crossing reduction ---

def _reorder(layer: list[str], reference: list[str], neighbours: dict[str, set[str]]) -> None:
    """Sort `layer` in place by the barycenter of its neighbours in `reference`."""
    reference_pos = {nid: i for i, nid in enumerate(reference)}
    current_pos = {nid: i for i, nid in enumerate(layer)}

    def score(nid: str) -> tuple[float, int]:
        positions = [reference_pos[n] for n in neighbours[nid] if n in reference_pos]
        if not positions:
            # No anchor in the adjacent rank: stay where it is
            return (float(current_pos[nid]), current_pos[nid])
        return (sum(positions) / len(positions), current_pos[nid])

    layer.sort(key=score)


def order_ranks(
    node_ids: list[str],
    ranks: dict[str, int],
    dag: dict[str, list[str]],
    passes: int = DEFAULT_BARYCENTER_PASSES,
) -> tuple[list[list[str]], int, bool]:
    """
    Barycenter crossing reduction.

    Each pass sweeps down (ordering every rank by its neighbours in the rank
    above) and then up (by its neighbours in the rank below). Stops after a
    pass that changes nothing, or after `passes` passes.

    Returns:
        (order, passes_run, converged)
    """
    rank_count = (max(ranks.values()) + 1) if ranks else 0
    order: list[list[str]] = [[] for _ in range(rank_count)]
    for nid in node_ids:
        order[ranks[nid]].append(nid)

    neighbours: dict[str, set[str]] = {nid: set() for nid in node_ids}
    for source, targets in dag.items():
        for target in targets:
            neighbours[source].add(target)
            neighbours[target].add(source)

    passes_run = 0
    converged = False
    for _ in range(max(0, passes)):
        before = [list(layer) for layer in order]

        for r in range(1, rank_count):
            _reorder(order[r], order[r - 1], neighbours)
        for r in range(rank_count - 2, -1, -1):
            _reorder(order[r], order[r + 1], neighbours)

        passes_run += 1
        if order == before:
            converged = True
            break

    return order, passes_run, converged


def compute_layering(
    nodes: list["GraphNode"],
    edges: list["GraphEdge"],
    options: Optional[LayoutOptions] = None,
) -> Layering:
    """Run rank assignment and crossing reduction without placing nodes."""
    options = options or LayoutOptions()
    node_ids = _unique_ids(nodes)
    ranks, reversed_edges, dag = assign_ranks(nodes, edges)
    order, passes_run, converged = order_ranks(node_ids, ranks, dag, options.barycenter_passes)
    return Layering(
        ranks=ranks,
        order=order,
        reversed_edges=reversed_edges,
        passes_run=passes_run,
        converged=converged,
    )


# --- Coordinate assignment ---

def _place_layers(
    layering: Layering,
    direction: LayoutDirection,
    options: LayoutOptions,
) -> dict[str, Position]:
    """
    Convert rank/order into coordinates.

    Ranks run along the primary axis (vertical for top-down, horizontal for
    left-right); each rank is centred on the widest rank along the secondary axis.
    """
    if direction == LayoutDirection.LEFT_RIGHT:
        primary_step = options.node_width + options.rank_gap
        secondary_step = options.node_height + options.node_gap
    else:
        primary_step = options.node_height + options.rank_gap
        secondary_step = options.node_width + options.node_gap

    widest = max((len(layer) for layer in layering.order), default=0)
    positions: dict[str, Position] = {}

    for rank, layer in enumerate(layering.order):
        offset = (widest - len(layer)) * secondary_step / 2
        for index, nid in enumerate(layer):
            primary = rank * primary_step
            secondary = offset + index * secondary_step
            if direction == LayoutDirection.LEFT_RIGHT:
                positions[nid] = Position(x=options.start_x + primary, y=options.start_y + secondary)
            else:
                positions[nid] = Position(x=options.start_x + secondary, y=options.start_y + primary)

    return positions


def grid_layout(
    nodes: list["GraphNode"],
    options: Optional[LayoutOptions] = None,
) -> list["GraphNode"]:
    """
    Arrange nodes in a fixed-column grid, in insertion order.

    Args:
        nodes: Nodes to arrange
        options: Layout parameters (`grid_columns`, node size and gaps)

    Returns:
        New node objects with positions set
    """
    options = options or LayoutOptions()
    columns = max(1, options.grid_columns)
    spacing_x = options.node_width + options.node_gap
    spacing_y = options.node_height + options.rank_gap

    placed = []
    for i, node in enumerate(nodes):
        row = i // columns
        col = i % columns
        placed.append(node.model_copy(update={
            "position": Position(x=options.start_x + col * spacing_x, y=options.start_y + row * spacing_y)
        }, deep=True))
    return placed


def layered_layout(
    nodes: list["GraphNode"],
    edges: list["GraphEdge"],
    direction: LayoutDirection = LayoutDirection.TOP_DOWN,
    options: Optional[LayoutOptions] = None,
) -> list["GraphNode"]:
    """
    Arrange nodes in ranks following edge direction.

    Nodes with no incoming edges are placed in rank 0; every edge of an
    acyclic graph points from a lower rank to a higher one.

    Args:
        nodes: Nodes to arrange
        edges: Edges defining the hierarchy
        direction: TOP_DOWN (ranks stack vertically) or LEFT_RIGHT
        options: Layout parameters

    Returns:
        New node objects with positions set, in input order
    """
    options = options or LayoutOptions()
    layering = compute_layering(nodes, edges, options)
    positions = _place_layers(layering, direction, options)
    return [
        node.model_copy(update={"position": positions[node.id].model_copy()}, deep=True)
        for node in nodes
    ]


def layout_graph(
    nodes: list["GraphNode"],
    edges: list["GraphEdge"],
    direction: LayoutDirection | str = LayoutDirection.TOP_DOWN,
    options: Optional[LayoutOptions] = None,
) -> list["GraphNode"]:
    """
    Compute positions for every node.

    Expects a repaired graph; edges with unknown endpoints are ignored.
    An unknown direction falls back to top-down rather than failing.
    """
    try:
        direction = LayoutDirection.coerce(direction)
    except ValueError:
        logger.warning("Unknown layout direction %r, using top-down", direction)
        direction = LayoutDirection.TOP_DOWN

    if not nodes:
        return []
    if direction == LayoutDirection.GRID:
        return grid_layout(nodes, options)
    return layered_layout(nodes, edges, direction, options)


def layout(
    graph: Graph,
    direction: LayoutDirection | str = LayoutDirection.TOP_DOWN,
    options: Optional[LayoutOptions] = None,
) -> Graph:
    """Lay out a whole graph; edges are copied unchanged."""
    return Graph(
        nodes=layout_graph(graph.nodes, graph.edges, direction, options),
        edges=[e.model_copy(deep=True) for e in graph.edges],
    )
