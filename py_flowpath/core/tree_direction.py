"""
Orients the bridge edges of a component toward its sinks.

Each 2-edge-connected block is collapsed into a single vertex so the bridges
form a tree. A breadth-first search from the sink vertices crosses every
bridge away from the sinks and orients it back toward them.
"""

from collections import deque
from typing import Dict, List, Sequence, Set

import structlog

from .graph import Edge, SubGraph
from .partition import Partition

logger = structlog.get_logger()


class TreeDirection:
    """Directs bridge edges so flow moves monotonically toward the sinks."""

    def directionalize(self, subgraph: SubGraph, sinks: Sequence[int], parts: Partition) -> Set[int]:
        """
        Orient every reachable bridge of the component.

        A bridge that already has a known direction is only crossed when it
        flows toward the sink side. Bridges whose two ends are both reached
        from different sinks are oriented from the farther end to the nearer
        one.

        Args:
            subgraph: Component being directed
            sinks: Sink node indices inside the component
            parts: Bridges and blocks of the component

        Returns:
            Indices of bridges left without a direction
        """
        graph = subgraph.graph
        bridges = {b for b in parts.bridges if b in subgraph.edge_ids}

        # blocks become negative vertex ids, other nodes keep their index
        owner: Dict[int, int] = {}
        for i, block in enumerate(parts.blocks):
            for node in block.node_ids:
                owner[node] = -(i + 1)
        for node in subgraph.node_ids:
            owner.setdefault(node, node)
        members: Dict[int, List[int]] = {}
        for node in sorted(owner):
            members.setdefault(owner[node], []).append(node)

        distance: Dict[int, int] = {}
        order: Dict[int, int] = {}
        queue = deque()
        sink_nodes = set(sinks)
        for sink in sinks:
            vertex = owner.get(sink)
            if vertex is None or vertex in distance:
                continue
            distance[vertex] = 0
            order[vertex] = len(order)
            queue.append(vertex)

        oriented: Set[int] = set()
        while queue:
            vertex = queue.popleft()
            for node in members[vertex]:
                for edge in graph.incident_edges(node):
                    if edge.index not in bridges or edge.index in oriented:
                        continue
                    far = owner[edge.other_node(node)]
                    if far in distance:
                        continue
                    if edge.is_known and edge.node_b != node:
                        continue
                    self._orient_toward(edge, node)
                    oriented.add(edge.index)
                    distance[far] = distance[vertex] + 1
                    order[far] = len(order)
                    queue.append(far)

        unresolved: Set[int] = set()
        for index in sorted(bridges - oriented):
            edge = graph.edges[index]
            if edge.is_known:
                continue
            va, vb = owner[edge.node_a], owner[edge.node_b]
            if va not in distance or vb not in distance:
                unresolved.add(index)
                continue
            # both ends reached from different sinks
            key_a = (distance[va], edge.node_a not in sink_nodes, order[va])
            key_b = (distance[vb], edge.node_b not in sink_nodes, order[vb])
            self._orient_toward(edge, edge.node_a if key_a < key_b else edge.node_b)

        if unresolved:
            logger.warning(
                "Bridges could not be reached from a sink",
                count=len(unresolved),
                location=graph.edge_wkt(graph.edges[min(unresolved)]),
            )
        return unresolved

    @staticmethod
    def _orient_toward(edge: Edge, node: int) -> None:
        if edge.node_b == node:
            edge.set_known()
        else:
            edge.flip()
