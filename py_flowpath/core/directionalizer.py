"""
Flow direction assignment for a flowpath network.

This module implements:
- Per-sink processing of connected components (bridges, blocks, trees)
- Merging of multiple local sinks through synthetic edges
- Sink selection for isolated components without a declared sink
- Short junction-to-junction edge clean-up
- Collection of the features to flip and the features processed
"""

from collections import deque
from dataclasses import dataclass
from typing import Hashable, List, Optional, Sequence, Set

import structlog
from shapely.geometry import Point

from .block_direction import BlockDirectionalizer, BlockOptions
from .bridges import compute_bridges
from .cycle_checker import CycleChecker
from .exceptions import ExceptionWithLocation, NoSinkError
from .geodesy import BearingComputer, angle_between
from .graph import Graph, SubGraph
from .partition import partition
from .subgraph import compute_sub_graph
from .tree_direction import TreeDirection
from .types import Coordinate, DirectionType, EdgeOrigin, EfType

logger = structlog.get_logger()


@dataclass
class DirectionalizeOptions:
    """Directionalize options, see Settings for the matching environment values."""
    short_segment: float = 0.5  # Max length of a junction-to-junction edge to reconsider
    angle_diff: float = 15.0  # Degrees of improvement needed to reverse an ear
    source_crs: Optional[str] = None  # CRS of the coordinates; None means planar

    @classmethod
    def from_settings(cls, settings=None) -> "DirectionalizeOptions":
        if settings is None:
            from ..config import settings
        return cls(
            short_segment=settings.dir_short_segment,
            angle_diff=settings.dir_angle_diff,
            source_crs=settings.source_crs or None,
        )


class Directionalizer:
    """
    Assigns a direction to every edge of a graph.

    Sinks are processed in the order given, so the most important sinks
    should come first. After directionalize() the ids of the features
    whose geometry must be reversed are in features_to_flip and the ids of
    all features given a direction are in processed_features.
    """

    def __init__(self, options: Optional[DirectionalizeOptions] = None):
        self.options = options or DirectionalizeOptions()
        self.bearings = BearingComputer(self.options.source_crs)
        self.checker = CycleChecker()
        self.features_to_flip: Set[Hashable] = set()
        self.processed_features: Set[Hashable] = set()

    def directionalize(self, graph: Graph, sink_points: Sequence[Coordinate]) -> None:
        """
        Directionalize the graph toward the sink points.

        Args:
            graph: Graph built from the flowpaths
            sink_points: Sink coordinates, most important first

        Raises:
            NoSinkError: if no sink point matches a graph node
            ExceptionWithLocation: if a sink point matches no node, or the
                topology cannot be directionalized
        """
        self.features_to_flip = set()
        self.processed_features = set()

        graph.remove_same_edges()

        sinks: List[int] = []
        missing: List[Coordinate] = []
        for point in sink_points:
            node = graph.node_at(point)
            if node is None:
                missing.append(point)
                continue
            node.is_sink = True
            if node.index not in sinks:
                sinks.append(node.index)

        if not sinks:
            raise NoSinkError("No sink points found for graph.")
        if missing:
            raise ExceptionWithLocation("No flowpath meets sink node defined at", Point(missing[0]))

        logger.info("Directionalizing graph", edges=len(graph.edges), sinks=len(sinks))
        self._directionalize_graph(graph, sinks)

        logger.info("Processing isolated areas")
        for index in sorted(graph.edges):
            edge = graph.edges.get(index)
            if edge is not None and not edge.is_known:
                self._process_no_sink(graph, edge.node_a)

        unresolved = [e for e in graph.edges.values() if not e.is_known]
        for edge in unresolved:
            logger.error("Edge not directionalized", location=graph.edge_wkt(edge))

        self._harvest(graph)
        logger.info(
            "Graph directionalized",
            flipped=len(self.features_to_flip),
            processed=len(self.processed_features),
            unresolved=len(unresolved),
        )

    def _directionalize_graph(self, graph: Graph, sinks: Sequence[int]) -> None:
        to_process = deque(sinks)

        while to_process:
            sink = to_process.popleft()
            sub = compute_sub_graph(graph, sink)

            for node in sub.node_ids:
                if graph.nodes[node].is_sink and node in to_process:
                    to_process.remove(node)

            local_sinks = [s for s in sinks if s in sub.node_ids]
            merged = False
            if len(local_sinks) > 1 and any(n.degree > 2 for n in sub.nodes):
                logger.warning(
                    "A sub network has multiple sinks",
                    sinks=[str(graph.nodes[s]) for s in local_sinks],
                )
                sink = self._merge_sinks(graph, local_sinks)
                local_sinks = [sink]
                sub = compute_sub_graph(graph, sink)
                merged = True

            bridges = compute_bridges(sub, sink)
            parts = partition(sub, bridges)
            TreeDirection().directionalize(sub, local_sinks, parts)

            blocks = BlockDirectionalizer(
                graph, self.bearings, BlockOptions(angle_diff=self.options.angle_diff)
            )
            for block in parts.blocks:
                if not blocks.find_exits(block):
                    logger.warning(
                        "Block is not connected to a sink",
                        location=graph.edge_wkt(block.edges[0]),
                    )
                    continue
                blocks.directionalize(block)
                self.post_process_short_edges(graph, block)

            if merged:
                graph.remove_synthetic()

    def _merge_sinks(self, graph: Graph, local_sinks: Sequence[int]) -> int:
        """Join the local sinks to one synthetic sink with a single inflow."""
        coordinate = graph.nodes[local_sinks[0]].coordinate
        joint = graph.add_node(coordinate, synthetic=True)
        for sink in local_sinks:
            graph.add_edge(
                sink,
                joint.index,
                direction=DirectionType.KNOWN,
                origin=EdgeOrigin.SYNTHETIC_MERGE,
            )
        outlet = graph.add_node(coordinate, synthetic=True)
        outlet.is_sink = True
        graph.add_edge(
            joint.index,
            outlet.index,
            direction=DirectionType.KNOWN,
            origin=EdgeOrigin.SYNTHETIC_MERGE,
        )
        return outlet.index

    def _process_no_sink(self, graph: Graph, start: int) -> None:
        sub = compute_sub_graph(graph, start)

        count = sum(1 for e in sub.edges if e.ef_type != EfType.SKELETON)
        if count > 5:
            logger.warning(
                "An isolated subgraph without any defined sinks is larger than 5 edges; "
                "a sink will be computed from the network",
                size=count,
                location=str(sub.nodes[0]),
            )

        sinks: List[int] = []
        visited: Set[int] = set()
        for edge in sub.edges:
            if not edge.is_known:
                continue
            visited.add(edge.index)
            queue = deque([edge.node_b])
            while queue:
                node = queue.popleft()
                for other_edge in graph.incident_edges(node):
                    if other_edge.index in visited or other_edge.is_known:
                        continue
                    visited.add(other_edge.index)
                    nxt = other_edge.other_node(node)
                    if graph.degree(nxt) == 1:
                        if nxt not in sinks:
                            sinks.append(nxt)
                    else:
                        queue.append(nxt)

        if not sinks:
            for node in sub.nodes:
                if node.degree == 1 and graph.edges[node.edges[0]].ef_type == EfType.SKELETON:
                    sinks.append(node.index)
                    break
        if not sinks:
            for node in sub.nodes:
                if node.degree == 1:
                    sinks.append(node.index)
                    break
        if not sinks:
            sinks.append(sub.nodes[0].index)

        for sink in sinks:
            graph.nodes[sink].is_sink = True
        logger.debug("Computed sinks for isolated area", sinks=[str(graph.nodes[s]) for s in sinks])
        self._directionalize_graph(graph, sinks)

    def post_process_short_edges(self, graph: Graph, block: SubGraph) -> None:
        """
        Reconsider short edges that join two junctions.

        An edge is flipped when the reverse direction is closer to the
        average direction of the other block edges at its ends. Flips that
        would leave either end without inflow or outflow are not made, and
        a flip that closes a cycle is reverted.
        """
        for edge in block.edges:
            if edge.length > self.options.short_segment:
                continue
            if edge.raw_direction == DirectionType.KNOWN or not edge.is_known:
                continue
            a, b = edge.node_a, edge.node_b
            if graph.degree(a) < 3 or graph.degree(b) < 3:
                continue

            a_out = sum(
                1 for e in graph.incident_edges(a) if e is not edge and e.is_known and e.node_a == a
            )
            b_in = sum(
                1 for e in graph.incident_edges(b) if e is not edge and e.is_known and e.node_b == b
            )
            if a_out == 0 or b_in == 0:
                continue

            # direction vectors of the neighbouring edges, translated to a
            start = graph.nodes[a].coordinate
            dx, dy, count = 0.0, 0.0, 0
            for node in (a, b):
                for other in graph.incident_edges(node):
                    if other is edge or other.is_synthetic or not block.contains_edge(other):
                        continue
                    p, q = graph.nodes[other.node_a].coordinate, graph.nodes[other.node_b].coordinate
                    dx += q[0] - p[0]
                    dy += q[1] - p[1]
                    count += 1
            if count == 0:
                continue
            end = (start[0] + dx / count, start[1] + dy / count)

            bearing = self.bearings.bearing(start, end)
            end_b = graph.nodes[b].coordinate
            keep = angle_between(bearing, self.bearings.bearing(start, end_b))
            reverse = angle_between(bearing, self.bearings.bearing(end_b, start))
            if reverse < keep:
                edge.flip()
                if self.checker.path_has_cycle(graph, [edge.index], block.edge_ids):
                    edge.flip()
                else:
                    logger.debug("Short edge flipped", location=graph.edge_wkt(edge))

    def _harvest(self, graph: Graph) -> None:
        for edge in graph.edges.values():
            if edge.is_synthetic:
                continue
            if edge.fid is not None:
                if edge.flipped:
                    self.features_to_flip.add(edge.fid)
                if edge.is_known:
                    self.processed_features.add(edge.fid)
            if not edge.is_known:
                continue
            for same in edge.same_edges:
                if same.fid is None:
                    continue
                self.processed_features.add(same.fid)
                if same.node_a != edge.node_a:
                    self.features_to_flip.add(same.fid)
