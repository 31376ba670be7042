"""Tests for bridge orientation."""

import pytest

from py_flowpath.core.bridges import compute_bridges
from py_flowpath.core.graph import Graph
from py_flowpath.core.partition import partition
from py_flowpath.core.subgraph import compute_sub_graph
from py_flowpath.core.tree_direction import TreeDirection
from py_flowpath.core.types import DirectionType, FlowpathRecord


def direct(graph, sinks):
    sub = compute_sub_graph(graph, sinks[0])
    parts = partition(sub, compute_bridges(sub, sinks[0]))
    return TreeDirection().directionalize(sub, sinks, parts)


class TestTreeDirection:
    """Test orientation of bridges toward sinks."""

    @pytest.fixture
    def path_graph(self):
        """A-B-C-D digitized away from A."""
        return Graph.build([
            FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=1),
            FlowpathRecord(coordinates=[(1, 0), (2, 0)], fid=2),
            FlowpathRecord(coordinates=[(2, 0), (3, 0)], fid=3),
        ])

    def test_path_flows_to_sink(self, path_graph):
        """Test that a path flows to its sink."""
        a = path_graph.node_at((0, 0)).index
        assert direct(path_graph, [a]) == set()

        for edge in path_graph.edges.values():
            assert edge.is_known
            assert edge.flipped
            assert path_graph.nodes[edge.node_b].coordinate[0] < path_graph.nodes[edge.node_a].coordinate[0]

    def test_already_correct_edges_are_kept(self, path_graph):
        """Test that correct edges are not flipped."""
        d = path_graph.node_at((3, 0)).index
        direct(path_graph, [d])
        assert all(e.is_known and not e.flipped for e in path_graph.edges.values())

    def test_known_bridge_against_sink_is_unresolved(self):
        """Test that a known bridge against the sink is unresolved."""
        graph = Graph.build([
            FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=1, direction=DirectionType.KNOWN),
            FlowpathRecord(coordinates=[(1, 0), (2, 0)], fid=2),
        ])
        a = graph.node_at((0, 0)).index
        unresolved = direct(graph, [a])

        assert unresolved == {1}
        assert not graph.edges[0].flipped
        assert not graph.edges[1].is_known

    def test_two_sinks_split_at_midpoint(self):
        """Test a path between two sinks."""
        graph = Graph.build([
            FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=1),
            FlowpathRecord(coordinates=[(1, 0), (2, 0)], fid=2),
        ])
        a = graph.node_at((0, 0)).index
        b = graph.node_at((1, 0)).index
        c = graph.node_at((2, 0)).index

        assert direct(graph, [a, c]) == set()
        assert (graph.edges[0].node_a, graph.edges[0].node_b) == (b, a)
        assert (graph.edges[1].node_a, graph.edges[1].node_b) == (b, c)

    def test_bridge_into_block(self):
        """A sink hangs off a triangle; the bridge drains the triangle."""
        graph = Graph.build([
            FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=1),
            FlowpathRecord(coordinates=[(1, 0), (2, 1)], fid=2),
            FlowpathRecord(coordinates=[(2, 1), (2, -1)], fid=3),
            FlowpathRecord(coordinates=[(2, -1), (1, 0)], fid=4),
            FlowpathRecord(coordinates=[(2, 1), (3, 1)], fid=5),
        ])
        a = graph.node_at((0, 0)).index
        b = graph.node_at((1, 0)).index
        tail = graph.node_at((3, 1)).index

        assert direct(graph, [a]) == set()
        assert (graph.edges[0].node_a, graph.edges[0].node_b) == (b, a)
        assert graph.edges[4].node_a == tail
        # block edges are left for the block directionalizer
        assert not any(graph.edges[i].is_known for i in (1, 2, 3))
