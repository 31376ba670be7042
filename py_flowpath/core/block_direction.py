"""
Direction assignment inside 2-edge-connected blocks.

Every node of a block lies on a loop, so reachability alone cannot decide
the direction of its edges. This module implements:
- Trunk paths: shortest paths from the block entries to its exits
- Ears: straightest walks from already-draining nodes, oriented so they
  never close a directed cycle
- A bearing-continuity rule that prefers the orientation continuing an
  inflowing edge most straightly

Nodes are "drained" once they have a directed path to an exit of the
block. Walks only run through nodes that are not yet connected to any
known edge of the block.
"""

import heapq
import math
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

import structlog

from .cycle_checker import CycleChecker
from .exceptions import ExceptionWithLocation
from .geodesy import BearingComputer
from .graph import Edge, Graph, Path, SubGraph

logger = structlog.get_logger()


@dataclass
class BlockOptions:
    """Tuning for the block heuristics."""
    angle_diff: float = 15.0  # Degrees a reversed ear must improve continuity by


class BlockDirectionalizer:
    """Resolves the direction of every edge in a block."""

    def __init__(
        self,
        graph: Graph,
        bearings: Optional[BearingComputer] = None,
        options: Optional[BlockOptions] = None,
    ):
        self.graph = graph
        self.bearings = bearings or BearingComputer()
        self.options = options or BlockOptions()
        self.checker = CycleChecker()

    def find_exits(self, block: SubGraph) -> List[int]:
        """Sinks plus nodes where a known edge outside the block leaves it."""
        exits = []
        for node in block.nodes:
            if node.is_sink:
                exits.append(node.index)
                continue
            for edge in self.graph.incident_edges(node.index):
                if not block.contains_edge(edge) and edge.is_known and edge.node_a == node.index:
                    exits.append(node.index)
                    break
        return exits

    def find_entries(self, block: SubGraph, exits: List[int]) -> List[int]:
        """Nodes fed by a known outside edge, or whose edges all flow out."""
        entries = []
        for node in block.nodes:
            if node.index in exits:
                continue
            incident = list(self.graph.incident_edges(node.index))
            fed = any(
                not block.contains_edge(e) and e.is_known and e.node_b == node.index
                for e in incident
            )
            source = all(e.is_known and e.node_a == node.index for e in incident)
            if fed or source:
                entries.append(node.index)
        return entries

    def directionalize(self, block: SubGraph) -> None:
        """
        Give every edge of the block a known direction.

        Args:
            block: 2-edge-connected block of the graph

        Raises:
            ExceptionWithLocation: if the block has no exit
        """
        if all(e.is_known for e in block.edges):
            return

        exits = self.find_exits(block)
        if not exits:
            raise ExceptionWithLocation(
                "No exit found for block:", self.graph.edge_geometry(block.edges[0])
            )

        entries = self.find_entries(block, exits)
        if not entries:
            source = self._pick_source(block, exits)
            if source is not None:
                logger.warning(
                    "Block has no entry, starting from a source node",
                    location=str(self.graph.nodes[source]),
                )
                entries = [source]

        drained = self._drain_closure(block, set(exits), exits)
        skipped: Set[int] = set()

        distances = self._distances_to(block, exits)
        for entry in sorted(entries, key=lambda n: (-distances.get(n, math.inf), n)):
            if entry not in drained:
                self._add_trunk(block, entry, drained)

        while True:
            seed = self._next_seed(block, drained, skipped)
            if seed is None:
                break
            start, edge = seed
            path = self._walk(block, start, edge, drained, skipped)
            if path is None or not self._orient_ear(block, path, drained):
                skipped.add(edge.index)

        self._orient_remaining(block)

    def _add_trunk(self, block: SubGraph, entry: int, drained: Set[int]) -> None:
        upstream = self._upstream(block, entry)
        blocked = {
            n
            for n in block.node_ids
            if n != entry and (n in upstream or (n not in drained and self._has_known_edge(block, n)))
        }
        path = self._shortest_path(
            block,
            Path(nodes=[entry], edges=[]),
            is_target=lambda n: n in drained and n not in upstream,
            blocked=blocked,
            usable=lambda e, n: not e.is_known or e.node_a == n,
        )
        if path is None:
            logger.debug("No trunk path from entry", location=str(self.graph.nodes[entry]))
            return
        self._orient_forward(path)
        self._drain_closure(block, drained, path.nodes)

    def _next_seed(
        self, block: SubGraph, drained: Set[int], skipped: Set[int]
    ) -> Optional[Tuple[int, Edge]]:
        for node in sorted(drained):
            candidates = [
                e
                for e in self.graph.incident_edges(node)
                if block.contains_edge(e) and not e.is_known and e.index not in skipped
            ]
            if candidates:
                candidates.sort(key=lambda e: (-e.length, e.index))
                return node, candidates[0]
        return None

    def _walk(
        self, block: SubGraph, start: int, first: Edge, drained: Set[int], skipped: Set[int]
    ) -> Optional[Path]:
        """Follow the straightest continuation until an anchored node is reached."""
        path = Path(nodes=[start, first.other_node(start)], edges=[first.index])
        previous = first
        current = path.nodes[-1]

        while not self._is_anchor(block, current, drained):
            interior = set(path.nodes[1:])
            candidates = [
                e
                for e in self.graph.incident_edges(current)
                if block.contains_edge(e)
                and not e.is_known
                and e.index not in skipped
                and e.index not in path.edges
                and e.other_node(current) not in interior
            ]
            if not candidates:
                return self._shortest_path(
                    block,
                    Path(nodes=path.nodes[:2], edges=path.edges[:1]),
                    is_target=lambda n: self._is_anchor(block, n, drained),
                    blocked=set(),
                    usable=lambda e, n: not e.is_known and e.index not in skipped,
                )
            nxt = min(candidates, key=lambda e: self._continuation_key(previous, current, e))
            current = nxt.other_node(current)
            path.nodes.append(current)
            path.edges.append(nxt.index)
            previous = nxt
        return path

    def _continuation_key(self, previous: Edge, node: int, candidate: Edge):
        deviation = self._deviation(previous, node, candidate)
        other = self.graph.nodes[candidate.other_node(node)].coordinate
        return (round(deviation, 9), -candidate.length, other, candidate.index)

    def _deviation(self, incoming: Edge, node: int, outgoing: Edge) -> float:
        """Deviation from a straight line when passing through node."""
        angle = self.bearings.angle(
            incoming.next_to(node), self.graph.nodes[node].coordinate, outgoing.next_to(node)
        )
        return math.pi - angle

    def _orient_ear(self, block: SubGraph, path: Path, drained: Set[int]) -> bool:
        start, end = path.nodes[0], path.nodes[-1]

        if start == end:
            self._orient_split(path)
            self._drain_closure(block, drained, path.nodes)
            return True

        forward_ok = not self.checker.reaches(self.graph, end, start, block.edge_ids)
        reverse_ok = not self.checker.reaches(self.graph, start, end, block.edge_ids)

        if end not in drained:
            # reversing lets the anchored end drain through the start
            if reverse_ok:
                path.reverse()
                self._orient_forward(path)
                self._drain_closure(block, drained, path.nodes)
                return True
            if forward_ok:
                self._orient_forward(path)
                return True
            return False

        if forward_ok and reverse_ok and self._prefer_reverse(path):
            forward_ok = False
        if forward_ok:
            self._orient_forward(path)
        elif reverse_ok:
            path.reverse()
            self._orient_forward(path)
        else:
            return False
        self._drain_closure(block, drained, path.nodes)
        return True

    def _prefer_reverse(self, path: Path) -> bool:
        """True if flowing from the far end continues an inflow much more straightly."""
        ear = set(path.edges)
        forward = self._inflow_deviation(path.nodes[0], self.graph.edges[path.edges[0]], ear)
        reverse = self._inflow_deviation(path.nodes[-1], self.graph.edges[path.edges[-1]], ear)
        return forward - reverse > math.radians(self.options.angle_diff)

    def _inflow_deviation(self, node: int, leaving: Edge, ear: Set[int]) -> float:
        best = math.pi
        for edge in self.graph.incident_edges(node):
            if edge.index in ear or not edge.is_known or edge.node_b != node:
                continue
            best = min(best, self._deviation(edge, node, leaving))
        return best

    def _orient_split(self, path: Path) -> None:
        """Orient a closed walk so both halves drain back to its start."""
        lengths = [self.graph.edges[e].length for e in path.edges]
        total = sum(lengths)
        split = 1
        best = -1.0
        travelled = 0.0
        for i in range(1, len(path.nodes) - 1):
            travelled += lengths[i - 1]
            value = min(travelled, total - travelled)
            if value > best:
                best = value
                split = i
        for j, index in enumerate(path.edges, start=1):
            edge = self.graph.edges[index]
            if j <= split:
                self._orient(edge, path.nodes[j], path.nodes[j - 1])
            else:
                self._orient(edge, path.nodes[j - 1], path.nodes[j])

    def _orient_forward(self, path: Path) -> None:
        for i, index in enumerate(path.edges):
            self._orient(self.graph.edges[index], path.nodes[i], path.nodes[i + 1])

    @staticmethod
    def _orient(edge: Edge, upstream: int, downstream: int) -> None:
        if edge.is_known:
            return
        if edge.node_a == upstream and edge.node_b == downstream:
            edge.set_known()
        else:
            edge.flip()

    def _orient_remaining(self, block: SubGraph) -> None:
        remaining = [e for e in block.edges if not e.is_known]
        if not remaining:
            return
        for edge in remaining:
            if self.checker.reaches(self.graph, edge.node_b, edge.node_a, block.edge_ids):
                edge.flip()
            else:
                edge.set_known()
        logger.warning(
            "Block edges oriented without a drainage path",
            count=len(remaining),
            location=self.graph.edge_wkt(remaining[0]),
        )

    def _pick_source(self, block: SubGraph, exits: List[int]) -> Optional[int]:
        for node in block.nodes:
            edges = list(self.graph.incident_edges(node.index))
            has_out = any(e.is_known and e.node_a == node.index for e in edges)
            has_in = any(e.is_known and e.node_b == node.index for e in edges)
            if has_out and not has_in and node.index not in exits:
                return node.index

        distances = self._distances_to(block, exits)
        candidates = [
            n.index for n in block.nodes if n.degree == 2 and n.index in distances and n.index not in exits
        ]
        if candidates:
            return max(candidates, key=lambda n: (distances[n], -n))

        others = [n.index for n in block.nodes if n.index not in exits]
        return others[0] if others else None

    def _is_anchor(self, block: SubGraph, node: int, drained: Set[int]) -> bool:
        return node in drained or self._has_known_edge(block, node)

    def _has_known_edge(self, block: SubGraph, node: int) -> bool:
        return any(
            block.contains_edge(e) and e.is_known for e in self.graph.incident_edges(node)
        )

    def _upstream(self, block: SubGraph, node: int) -> Set[int]:
        """Nodes with a known path into node."""
        found = {node}
        queue = deque([node])
        while queue:
            current = queue.popleft()
            for edge in self.graph.incident_edges(current):
                if block.contains_edge(edge) and edge.is_known and edge.node_b == current:
                    if edge.node_a not in found:
                        found.add(edge.node_a)
                        queue.append(edge.node_a)
        return found

    def _drain_closure(self, block: SubGraph, drained: Set[int], seeds) -> Set[int]:
        """Add the seeds and everything flowing into them to the drained set."""
        for seed in seeds:
            drained.update(self._upstream(block, seed))
        return drained

    def _distances_to(self, block: SubGraph, targets: List[int]) -> Dict[int, float]:
        """Path length from each node to the nearest target, against the flow."""
        distances: Dict[int, float] = {}
        heap = [(0.0, t) for t in sorted(targets)]
        heapq.heapify(heap)
        while heap:
            dist, node = heapq.heappop(heap)
            if node in distances:
                continue
            distances[node] = dist
            for edge in self.graph.incident_edges(node):
                if not block.contains_edge(edge):
                    continue
                other = edge.other_node(node)
                if edge.is_known and edge.node_a != other:
                    continue
                if other not in distances:
                    heapq.heappush(heap, (dist + edge.length, other))
        return distances

    def _shortest_path(
        self,
        block: SubGraph,
        prefix: Path,
        is_target: Callable[[int], bool],
        blocked: Set[int],
        usable: Callable[[Edge, int], bool],
    ) -> Optional[Path]:
        """
        Dijkstra search continuing a path prefix to the nearest target.

        Args:
            block: Block to search in
            prefix: Path so far; the search starts from its last node
            is_target: Predicate for nodes that end the search
            blocked: Nodes the search may not pass through
            usable: Predicate (edge, from_node) for edges that may be crossed

        Returns:
            The prefix extended to the nearest target, or None
        """
        origin = prefix.nodes[-1]
        used = set(prefix.edges)
        settled: Set[int] = set()
        previous: Dict[int, Tuple[int, int]] = {}
        heap = [(0.0, origin)]
        best = {origin: 0.0}

        while heap:
            dist, node = heapq.heappop(heap)
            if node in settled:
                continue
            settled.add(node)
            if node != origin and is_target(node):
                nodes, edges = [node], []
                while node != origin:
                    node, edge = previous[node]
                    nodes.append(node)
                    edges.append(edge)
                nodes.reverse()
                edges.reverse()
                return Path(nodes=prefix.nodes + nodes[1:], edges=prefix.edges + edges)
            if node != origin and (node in blocked or node in prefix.nodes):
                continue
            for edge in self.graph.incident_edges(node):
                if not block.contains_edge(edge) or edge.index in used or not usable(edge, node):
                    continue
                other = edge.other_node(node)
                if other in settled or (other in prefix.nodes and not is_target(other)):
                    continue
                alt = dist + edge.length
                if alt < best.get(other, math.inf):
                    best[other] = alt
                    previous[other] = (node, edge.index)
                    heapq.heappush(heap, (alt, other))
        return None
