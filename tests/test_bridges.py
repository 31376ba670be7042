"""Tests for component extraction, bridge detection and partitioning."""

import pytest

from py_flowpath.core.bridges import compute_bridges
from py_flowpath.core.exceptions import ExceptionWithLocation
from py_flowpath.core.graph import Graph
from py_flowpath.core.partition import partition
from py_flowpath.core.subgraph import compute_sub_graph
from py_flowpath.core.types import FlowpathRecord


def build(*segments):
    return Graph.build(
        FlowpathRecord(coordinates=list(segment), fid=i + 1) for i, segment in enumerate(segments)
    )


def disconnects(graph, sub, edge_index):
    """True if dropping the edge splits the component."""
    edge = graph.edges[edge_index]
    reached = compute_sub_graph(
        graph, edge.node_a, lambda e: e.index != edge_index and e.index in sub.edge_ids
    )
    return edge.node_b not in reached.node_ids


GRAPHS = {
    "triangle_with_tail": [
        [(0, 0), (1, 0)], [(1, 0), (0, 1)], [(0, 1), (0, 0)], [(0, 1), (0, 2)],
    ],
    "two_triangles_joined": [
        [(0, 0), (1, 0)], [(1, 0), (0, 1)], [(0, 1), (0, 0)],
        [(1, 0), (3, 0)],
        [(3, 0), (4, 0)], [(4, 0), (3, 1)], [(3, 1), (3, 0)],
    ],
    "parallel_edges": [
        [(0, 0), (0.5, 0.5), (1, 0)], [(0, 0), (0.5, -0.5), (1, 0)], [(1, 0), (2, 0)],
    ],
    "square_with_diagonal_and_branches": [
        [(0, 0), (1, 0)], [(1, 0), (1, 1)], [(1, 1), (0, 1)], [(0, 1), (0, 0)],
        [(0, 0), (1, 1)], [(1, 1), (2, 2)], [(2, 2), (3, 2)], [(2, 2), (2, 3)],
        [(2, 3), (3, 3)], [(3, 3), (3, 2)], [(0, 1), (-1, 2)], [(-1, 2), (-2, 2)],
    ],
    "path": [
        [(0, 0), (1, 0)], [(1, 0), (2, 0)], [(2, 0), (3, 0)],
    ],
}


class TestComponents:
    """Test connected component extraction."""

    def test_components_are_separate(self):
        """Test that components do not leak into each other."""
        graph = build([(0, 0), (1, 0)], [(1, 0), (2, 0)], [(5, 5), (6, 5)])
        sub = compute_sub_graph(graph, graph.node_at((0, 0)).index)
        assert sub.edge_ids == {0, 1}
        assert len(sub.node_ids) == 3

    def test_edge_filter(self):
        """Test component extraction with an edge filter."""
        graph = build([(0, 0), (1, 0)], [(1, 0), (2, 0)])
        sub = compute_sub_graph(graph, graph.node_at((0, 0)).index, lambda e: e.index != 1)
        assert sub.edge_ids == {0}
        assert graph.node_at((2, 0)).index not in sub.node_ids


class TestBridges:
    """Test bridge detection."""

    @pytest.mark.parametrize("name", sorted(GRAPHS))
    def test_matches_edge_removal(self, name):
        """Test bridges against removing each edge in turn."""
        graph = build(*GRAPHS[name])
        sub = compute_sub_graph(graph, 0)
        bridges = compute_bridges(sub, 0)
        expected = {e for e in sub.edge_ids if disconnects(graph, sub, e)}
        assert bridges == expected

    def test_triangle_with_tail(self):
        """Test that only the tail of a triangle is a bridge."""
        graph = build(*GRAPHS["triangle_with_tail"])
        sub = compute_sub_graph(graph, 0)
        assert compute_bridges(sub) == {3}

    def test_parallel_edges_are_not_bridges(self):
        """Test that parallel edges are not bridges."""
        graph = build(*GRAPHS["parallel_edges"])
        sub = compute_sub_graph(graph, 0)
        assert compute_bridges(sub) == {2}

    def test_root_does_not_change_result(self):
        """Test that the DFS root does not change the bridges."""
        graph = build(*GRAPHS["square_with_diagonal_and_branches"])
        sub = compute_sub_graph(graph, 0)
        results = {frozenset(compute_bridges(sub, n)) for n in sub.node_ids}
        assert len(results) == 1


class TestPartition:
    """Test splitting components into blocks."""

    def test_blocks_and_bridges(self):
        """Test partition into blocks and bridges."""
        graph = build(*GRAPHS["two_triangles_joined"])
        sub = compute_sub_graph(graph, 0)
        parts = partition(sub)

        assert parts.bridges == {3}
        assert sorted(sorted(block.edge_ids) for block in parts.blocks) == [[0, 1, 2], [4, 5, 6]]

    def test_tree_has_no_blocks(self):
        """Test that a tree partitions into bridges only."""
        graph = build(*GRAPHS["path"])
        parts = partition(compute_sub_graph(graph, 0))
        assert parts.bridges == {0, 1, 2}
        assert parts.blocks == []

    def test_every_edge_assigned_once(self):
        """Test that every edge lands in exactly one part."""
        graph = build(*GRAPHS["square_with_diagonal_and_branches"])
        sub = compute_sub_graph(graph, 0)
        parts = partition(sub)

        assigned = list(parts.bridges)
        for block in parts.blocks:
            assigned.extend(block.edge_ids)
        assert sorted(assigned) == sorted(sub.edge_ids)

    def test_single_edge_block_is_fatal(self):
        """Test that a single edge block raises."""
        graph = build(*GRAPHS["path"])
        sub = compute_sub_graph(graph, 0)
        with pytest.raises(ExceptionWithLocation, match="Partition with a single edge found:"):
            partition(sub, bridges={1, 2})
