"""Tests for whole-graph directionalization."""

import random
from collections import deque
from unittest.mock import patch

import pytest

from py_flowpath.core.cycle_checker import CycleChecker
from py_flowpath.core.directionalizer import DirectionalizeOptions, Directionalizer
from py_flowpath.core.exceptions import ExceptionWithLocation, NoSinkError
from py_flowpath.core.graph import Edge, Graph, SubGraph
from py_flowpath.core.types import DirectionType, EfType, FlowpathRecord


def build(*lines, **kwargs):
    return Graph.build(
        FlowpathRecord(coordinates=list(line), fid=i + 1, **kwargs) for i, line in enumerate(lines)
    )


def all_drain(graph):
    """Every node reaches a sink node along known edges."""
    reached = {n.index for n in graph.nodes.values() if n.is_sink}
    queue = deque(reached)
    while queue:
        node = queue.popleft()
        for edge in graph.incident_edges(node):
            if edge.is_known and edge.node_b == node and edge.node_a not in reached:
                reached.add(edge.node_a)
                queue.append(edge.node_a)
    return reached == set(graph.nodes)


class TestDirectionalizer:
    """Test the directionalize scenarios."""

    @pytest.fixture
    def directionalizer(self):
        return Directionalizer(DirectionalizeOptions())

    def test_simple_path_is_flipped(self, directionalizer):
        """Test a path digitized against the flow."""
        # A(0,0) B(1,0) C(2,0), digitized C->B and B->A, sink at C
        graph = build([(2, 0), (1, 0)], [(1, 0), (0, 0)])
        directionalizer.directionalize(graph, [(2, 0)])

        assert directionalizer.features_to_flip == {1, 2}
        assert directionalizer.processed_features == {1, 2}
        assert all_drain(graph)

    def test_loop_with_branch_to_sink(self, directionalizer):
        """Test a loop draining through a branch."""
        graph = build(
            [(0, 0), (1, 0)], [(1, 0), (1, 1)], [(1, 1), (0, 1)], [(0, 1), (0, 0)],
            [(1, 0), (2, 0)],
        )
        directionalizer.directionalize(graph, [(2, 0)])

        b = graph.node_at((1, 0)).index
        e = graph.node_at((2, 0)).index
        assert (graph.edges[4].node_a, graph.edges[4].node_b) == (b, e)
        assert all(edge.is_known for edge in graph.edges.values())
        assert not CycleChecker().has_cycle(graph)
        assert all_drain(graph)
        assert directionalizer.processed_features == {1, 2, 3, 4, 5}

    def test_two_sinks_are_merged(self, directionalizer):
        """Test a network with two sinks."""
        graph = build([(0, 0), (1, 1)], [(2, 0), (1, 1)], [(1, 1), (1, 2)])
        directionalizer.directionalize(graph, [(0, 0), (2, 0)])

        assert len(graph.nodes) == 4
        assert all(not edge.is_synthetic for edge in graph.edges.values())
        for sink in ((0, 0), (2, 0)):
            node = graph.node_at(sink).index
            assert graph.in_degree(node) >= 1
            assert graph.out_degree(node) == 0
        assert not CycleChecker().has_cycle(graph)
        assert directionalizer.processed_features == {1, 2, 3}

    def test_isolated_ring_gets_a_sink(self, directionalizer):
        """Test that an isolated ring gets a sink."""
        graph = build(
            [(0, 0), (1, 0)],
            [(10, 0), (11, 0)], [(11, 0), (11, 1)], [(11, 1), (10, 1)], [(10, 1), (10, 0)],
        )
        directionalizer.directionalize(graph, [(0, 0)])

        assert directionalizer.processed_features == {1, 2, 3, 4, 5}
        assert all(edge.is_known for edge in graph.edges.values())
        assert not CycleChecker().has_cycle(graph)
        assert all_drain(graph)

    def test_isolated_tree_drains_to_skeleton_end(self, directionalizer):
        """Test that an isolated tree drains to a skeleton end."""
        graph = Graph.build([
            FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=1),
            FlowpathRecord(coordinates=[(10, 0), (11, 0)], fid=2),
            FlowpathRecord(coordinates=[(11, 0), (12, 0)], fid=3, ef_type=EfType.SKELETON),
        ])
        directionalizer.directionalize(graph, [(0, 0)])

        end = graph.node_at((12, 0)).index
        assert graph.edges[2].node_b == end
        assert graph.edges[1].node_b == graph.edges[2].node_a

    def test_known_edges_define_isolated_sinks(self, directionalizer):
        """Test sinks found downstream of known edges."""
        graph = Graph.build([
            FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=1),
            FlowpathRecord(coordinates=[(10, 0), (11, 0)], fid=2, direction=DirectionType.KNOWN),
            FlowpathRecord(coordinates=[(13, 0), (11, 0)], fid=3),
        ])
        directionalizer.directionalize(graph, [(0, 0)])

        # the only free end downstream of the known edge becomes the sink
        assert graph.edges[2].node_b == graph.node_at((13, 0)).index
        assert directionalizer.features_to_flip == {1, 3}

    def test_same_edges_share_orientation(self, directionalizer):
        """Test that same edges get the same orientation."""
        graph = build(
            [(0, 0), (0.5, 0.2), (1, 0)],
            [(1, 0), (0.5, -0.2), (0, 0)],
            [(2, 0), (1, 0)],
        )
        directionalizer.directionalize(graph, [(0, 0)])

        assert directionalizer.processed_features == {1, 2, 3}
        assert directionalizer.features_to_flip == {1}

    def test_no_sink_is_fatal(self, directionalizer):
        """Test that a graph without sinks raises."""
        graph = build([(0, 0), (1, 0)])
        with pytest.raises(NoSinkError, match="No sink points found for graph."):
            directionalizer.directionalize(graph, [(5, 5)])

    def test_unmatched_sink_is_fatal(self, directionalizer):
        """Test that a sink off the network raises."""
        graph = build([(0, 0), (1, 0)])
        with pytest.raises(ExceptionWithLocation, match="No flowpath meets sink node defined at") as info:
            directionalizer.directionalize(graph, [(0, 0), (5, 5)])
        assert info.value.location.x == 5


class TestShortEdges:
    """Test the short junction edge clean-up."""

    @pytest.fixture
    def graph(self):
        """Short edge a(0,0)->b(0.3,0) against a flow heading south-west."""
        graph = build(
            [(0, 0), (0.3, 0)],
            [(1.3, 0), (0.3, 0)],
            [(0.3, 1), (0.3, 0)],
            [(0, 0), (-1, 0)],
            [(0, 0), (0, -1)],
        )
        for edge in graph.edges.values():
            edge.set_known()
        return graph

    def block(self, graph):
        return SubGraph(graph, graph.nodes, graph.edges)

    def test_short_edge_is_flipped(self, graph):
        """Test that a short edge against the flow is flipped."""
        Directionalizer().post_process_short_edges(graph, self.block(graph))
        assert graph.edges[0].flipped
        assert graph.edges[0].node_a == graph.node_at((0.3, 0)).index

    def test_long_edges_are_ignored(self, graph):
        """Test that edges over the threshold are kept."""
        Directionalizer(DirectionalizeOptions(short_segment=0.1)).post_process_short_edges(
            graph, self.block(graph)
        )
        assert not graph.edges[0].flipped

    def test_flip_keeps_outflow(self, graph):
        """Test that a flip never removes the last outflow."""
        # with both other edges at a flowing in, a has no other outflow
        graph.edges[3].flip()
        graph.edges[4].flip()
        Directionalizer().post_process_short_edges(graph, self.block(graph))
        assert not graph.edges[0].flipped

    def test_known_input_is_kept(self):
        """Test that edges known in the input are kept."""
        graph = build(
            [(0, 0), (0.3, 0)],
            [(1.3, 0), (0.3, 0)],
            [(0.3, 1), (0.3, 0)],
            [(0, 0), (-1, 0)],
            [(0, 0), (0, -1)],
            direction=DirectionType.KNOWN,
        )
        Directionalizer().post_process_short_edges(graph, SubGraph(graph, graph.nodes, graph.edges))
        assert not graph.edges[0].flipped

    def test_flip_closing_cycle_is_reverted(self):
        """Test that a flip closing a cycle is undone."""
        # a->c->b already exists, so b->a would close a loop
        graph = build(
            [(0, 0), (0.3, 0)],
            [(1.3, 0), (0.3, 0)],
            [(0.3, 1), (0.3, 0)],
            [(0, 0), (-1, 0)],
            [(0, 0), (0, -1)],
            [(0, 0), (0.15, -1)],
            [(0.15, -1), (0.3, 0)],
        )
        for edge in graph.edges.values():
            edge.set_known()

        original = Edge.flip
        with patch.object(Edge, "flip", autospec=True, side_effect=original) as flip:
            Directionalizer().post_process_short_edges(graph, self.block(graph))

        assert flip.call_count == 2
        assert not graph.edges[0].flipped
        assert graph.edges[0].node_a == graph.node_at((0, 0)).index
        assert not CycleChecker().has_cycle(graph)


def random_network(seed):
    """Random flowpath lines and sink points over one to three components."""
    rng = random.Random(seed)
    lines, sinks = [], []
    grid = [(x, y) for x in range(6) for y in range(6)]
    for component in range(rng.randint(1, 3)):
        points = [(x + 100 * component, y) for x, y in rng.sample(grid, rng.randint(3, 10))]

        # spanning tree plus a few extra edges
        pairs = {(rng.randrange(i), i) for i in range(1, len(points))}
        for _ in range(rng.randint(0, len(points))):
            i, j = sorted(rng.sample(range(len(points)), 2))
            pairs.add((i, j))
        for i, j in sorted(pairs):
            line = [points[i], points[j]]
            lines.append(line if rng.random() < 0.5 else line[::-1])

        if component == 0:
            for offset in range(rng.choice([1, 1, 2])):
                anchor = points[rng.randrange(len(points))]
                outlet = (anchor[0] + 0.5, anchor[1] - 0.5 - offset)
                line = [anchor, outlet]
                lines.append(line if rng.random() < 0.5 else line[::-1])
                sinks.append(outlet)
    return lines, sinks


class TestRandomNetworks:
    """Test drainage and acyclicity over generated networks."""

    @pytest.mark.parametrize("seed", range(60))
    def test_network_drains_without_cycles(self, seed):
        """Test that every generated network drains to a sink without cycles."""
        lines, sinks = random_network(seed)
        graph = build(*lines)
        directionalizer = Directionalizer(DirectionalizeOptions(short_segment=1.5))
        directionalizer.directionalize(graph, sinks)

        assert all(edge.is_known for edge in graph.edges.values())
        assert not CycleChecker().has_cycle(graph)
        assert all_drain(graph)
        assert directionalizer.processed_features == set(range(1, len(lines) + 1))
