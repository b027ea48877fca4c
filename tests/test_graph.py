"""Tests for graph models and parsing."""

import json

from diagram_core.graph import parse_graph, parse_graph_parts, serialize_graph
from diagram_core.models import Graph, GraphEdge, GraphNode, LayoutDirection
from diagram_core.validation import repair_graph

import pytest


def make_graph():
    return Graph(
        nodes=[GraphNode(id="a", label="A"), GraphNode(id="b", label="B", kind="task")],
        edges=[GraphEdge(source="a", target="b")],
    )


class TestModels:
    def test_edge_id_derived_from_endpoints(self):
        assert GraphEdge(source="a", target="b").id == "ea-b"

    def test_legacy_edge_fields(self):
        edge = GraphEdge.model_validate({"from": 1, "to": 2})
        assert edge.source == "1"
        assert edge.target == "2"

    def test_react_flow_node_shape(self):
        node = GraphNode.model_validate({
            "id": 7,
            "type": "default",
            "data": {"label": "Start"},
            "position": {"x": 10, "y": 20},
        })
        assert node.id == "7"
        assert node.label == "Start"
        assert node.kind == "default"
        assert node.position.x == 10

    def test_flat_coordinates(self):
        node = GraphNode.model_validate({"id": "n", "x": 5, "y": 6})
        assert (node.position.x, node.position.y) == (5, 6)

    def test_copy_graph_shares_nothing(self):
        graph = make_graph()
        copy = graph.copy_graph()
        copy.nodes[0].label = "changed"
        copy.edges.append(GraphEdge(source="b", target="a"))
        assert graph.nodes[0].label == "A"
        assert len(graph.edges) == 1

    @pytest.mark.parametrize("value,expected", [
        (None, LayoutDirection.TOP_DOWN),
        ("dagre", LayoutDirection.TOP_DOWN),
        ("hierarchical", LayoutDirection.TOP_DOWN),
        ("Horizontal", LayoutDirection.LEFT_RIGHT),
        ("left-right", LayoutDirection.LEFT_RIGHT),
        ("grid", LayoutDirection.GRID),
    ])
    def test_direction_aliases(self, value, expected):
        assert LayoutDirection.coerce(value) == expected

    def test_unknown_direction(self):
        with pytest.raises(ValueError):
            LayoutDirection.coerce("radial")


class TestParseGraph:
    def test_round_trip_preserves_order(self):
        graph = make_graph()
        parsed = parse_graph(serialize_graph(graph))
        assert parsed.ok
        assert parsed.graph == graph

    def test_round_trip_equals_repair(self):
        graph = Graph(
            nodes=[GraphNode(id="a"), GraphNode(id="a", label="dup"), GraphNode(id="b")],
            edges=[GraphEdge(source="a", target="b"), GraphEdge(source="b", target="zz")],
        )
        assert parse_graph(serialize_graph(graph)).graph == repair_graph(graph).graph

    def test_accepts_dict_and_bytes(self):
        data = make_graph().to_json_dict()
        assert parse_graph(data).graph.node_ids() == ["a", "b"]
        assert parse_graph(json.dumps(data).encode()).graph.node_ids() == ["a", "b"]

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_input_is_not_an_error(self, raw):
        parsed = parse_graph(raw)
        assert parsed.ok
        assert parsed.graph.nodes == []

    @pytest.mark.parametrize("raw", [
        "{not json",
        "[1, 2]",
        {"nodes": "nope", "edges": []},
        {"nodes": [{"label": "missing id"}], "edges": []},
        "[" * 100000,
    ])
    def test_malformed_input_yields_empty_graph(self, raw):
        parsed = parse_graph(raw)
        assert not parsed.ok
        assert parsed.error
        assert parsed.graph.nodes == []
        assert parsed.graph.edges == []

    def test_dangling_edges_dropped(self):
        parsed = parse_graph({
            "nodes": [{"id": "a"}, {"id": "b"}],
            "edges": [
                {"source": "a", "target": "b"},
                {"source": "a", "target": "ghost"},
            ],
        })
        assert parsed.ok
        assert [e.id for e in parsed.graph.edges] == ["ea-b"]
        assert [e.target for e in parsed.dropped_edges] == ["ghost"]

    def test_graph_instance_is_not_mutated(self):
        graph = Graph(
            nodes=[GraphNode(id="a")],
            edges=[GraphEdge(source="a", target="b")],
        )
        parsed = parse_graph(graph)
        assert parsed.graph.edges == []
        assert len(graph.edges) == 1


class TestParseGraphParts:
    def test_json_text_parts(self):
        parsed = parse_graph_parts(
            json.dumps([{"id": "1", "label": "Start"}, {"id": "2", "label": "End"}]),
            json.dumps([{"source": "1", "target": "2"}]),
        )
        assert parsed.ok
        assert parsed.graph.node_ids() == ["1", "2"]
        assert parsed.graph.edges[0].id == "e1-2"

    def test_bad_edges_text(self):
        parsed = parse_graph_parts("[]", "{oops")
        assert not parsed.ok
        assert "edges" in parsed.error

    def test_deeply_nested_part(self):
        parsed = parse_graph_parts("[" * 100000, "[]")
        assert not parsed.ok
        assert "nested too deeply" in parsed.error
        assert parsed.graph == Graph()

    def test_missing_parts(self):
        parsed = parse_graph_parts(None, None)
        assert parsed.ok
        assert parsed.graph == Graph()
