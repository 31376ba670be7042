"""
Directed cycle detection and source/sink validation.

This module implements:
- Cycle detection over the known-direction edges of a graph
- Cycle probing restricted to what is reachable from a set of edges
- Detection of suspicious pure sources/sinks on waterbody boundaries
"""

from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import structlog
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry
from shapely.strtree import STRtree

from .graph import Edge, Graph
from .types import Coordinate

logger = structlog.get_logger()


class CycleChecker:
    """Checks a (partially) directed graph for directed cycles."""

    def has_cycle(self, graph: Graph, edge_ids: Optional[Set[int]] = None) -> bool:
        """
        Check the known-direction edges for a directed cycle.

        Edges whose direction is unknown are not traversed.

        Args:
            graph: Graph to check
            edge_ids: Restrict the check to these edges

        Returns:
            True if a directed cycle exists
        """
        return self.find_cycle(graph, edge_ids) is not None

    def find_cycle(self, graph: Graph, edge_ids: Optional[Set[int]] = None) -> Optional[Edge]:
        """Return an edge that closes a directed cycle, or None."""
        edges = graph.edges.values() if edge_ids is None else (graph.edges[i] for i in sorted(edge_ids))
        starts = [e.node_a for e in edges if e.is_known]
        edge = self._search(graph, starts, edge_ids)
        if edge is not None:
            logger.error("Cycle found", location=graph.edge_wkt(edge))
        return edge

    def path_has_cycle(
        self, graph: Graph, path_edges: Iterable[int], edge_ids: Optional[Set[int]] = None
    ) -> bool:
        """
        Probe for a cycle reachable from the given edges.

        Used after tentatively orienting a path to decide whether the new
        orientation closed a loop.
        """
        starts = [graph.edges[i].node_a for i in path_edges if graph.edges[i].is_known]
        return self._search(graph, starts, edge_ids) is not None

    def reaches(
        self, graph: Graph, source: int, target: int, edge_ids: Optional[Set[int]] = None
    ) -> bool:
        """True if target can be reached from source along known edges."""
        if source == target:
            return True
        seen = {source}
        stack = [source]
        while stack:
            node = stack.pop()
            for edge in _outgoing(graph, node, edge_ids):
                if edge.node_b == target:
                    return True
                if edge.node_b not in seen:
                    seen.add(edge.node_b)
                    stack.append(edge.node_b)
        return False

    def _search(
        self, graph: Graph, starts: Sequence[int], edge_ids: Optional[Set[int]]
    ) -> Optional[Edge]:
        finished: Set[int] = set()
        for start in starts:
            if start in finished:
                continue
            on_stack = {start}
            stack = [(start, _outgoing(graph, start, edge_ids))]
            while stack:
                node, edges = stack[-1]
                for edge in edges:
                    nxt = edge.node_b
                    if nxt in on_stack:
                        return edge
                    if nxt in finished:
                        continue
                    on_stack.add(nxt)
                    stack.append((nxt, _outgoing(graph, nxt, edge_ids)))
                    break
                else:
                    stack.pop()
                    on_stack.discard(node)
                    finished.add(node)
        return None

    def find_invalid_source_sink_nodes(
        self,
        graph: Graph,
        terminal_points: Iterable[Coordinate],
        waterbodies: Sequence[BaseGeometry],
    ) -> Tuple[List[Point], List[Point]]:
        """
        Find pure sources and sinks that sit on waterbody boundaries.

        Only nodes of degree > 1 that are not terminal nodes are considered.
        A sink has no outflow and more than one inflow; a source has no
        inflow and more than one outflow.

        Returns:
            (potential sink errors, potential source errors)
        """
        terminals = {(float(p[0]), float(p[1])) for p in terminal_points}
        sinks_to_check: List[Point] = []
        sources_to_check: List[Point] = []

        for node in graph.nodes.values():
            if node.degree <= 1 or node.coordinate in terminals:
                continue
            in_count = 0
            out_count = 0
            for edge in graph.incident_edges(node.index):
                if edge.node_a == node.index:
                    out_count += 1
                if edge.node_b == node.index:
                    in_count += 1
            if in_count == 0 and out_count > 1:
                sources_to_check.append(node.to_geometry())
            if out_count == 0 and in_count > 1:
                sinks_to_check.append(node.to_geometry())

        if not waterbodies:
            return [], []

        tree = STRtree(list(waterbodies))

        def on_waterbody(point: Point) -> bool:
            return len(tree.query(point, predicate="intersects")) > 0

        sink_warnings = [p for p in sinks_to_check if on_waterbody(p)]
        source_warnings = [p for p in sources_to_check if on_waterbody(p)]
        return sink_warnings, source_warnings


def _outgoing(graph: Graph, node: int, edge_ids: Optional[Set[int]]) -> Iterator[Edge]:
    for edge in graph.incident_edges(node):
        if not edge.is_known or edge.node_a != node:
            continue
        if edge_ids is not None and edge.index not in edge_ids:
            continue
        yield edge
