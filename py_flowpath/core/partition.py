"""
Splits a component into its bridge edges and 2-edge-connected blocks.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set

import structlog

from .bridges import compute_bridges
from .exceptions import ExceptionWithLocation
from .graph import SubGraph
from .subgraph import compute_sub_graph

logger = structlog.get_logger()


@dataclass
class Partition:
    """Bridges of a component plus the blocks left once they are removed."""
    bridges: Set[int] = field(default_factory=set)  # Bridge edge indices
    blocks: List[SubGraph] = field(default_factory=list)  # 2-edge-connected blocks


def partition(
    subgraph: SubGraph, bridges: Optional[Set[int]] = None, sink: Optional[int] = None
) -> Partition:
    """
    Partition a component using its bridges as separators.

    Args:
        subgraph: Connected component to split
        bridges: Precomputed bridge edges; computed when not given
        sink: Root for the bridge search when bridges are computed here

    Returns:
        Partition with the bridge set and the blocks

    Raises:
        ExceptionWithLocation: if a block consists of a single edge
    """
    if bridges is None:
        bridges = compute_bridges(subgraph, sink)

    graph = subgraph.graph
    assigned: Set[int] = set(bridges)
    blocks: List[SubGraph] = []

    def in_block(edge) -> bool:
        return edge.index in subgraph.edge_ids and edge.index not in bridges

    for node in sorted(subgraph.node_ids):
        if all(e in assigned for e in graph.nodes[node].edges if e in subgraph.edge_ids):
            continue
        block = compute_sub_graph(graph, node, in_block)
        if not block.edge_ids:
            continue
        if len(block.edge_ids) == 1:
            edge = graph.edges[next(iter(block.edge_ids))]
            raise ExceptionWithLocation(
                "Partition with a single edge found:", graph.edge_geometry(edge)
            )
        assigned.update(block.edge_ids)
        blocks.append(block)

    logger.debug("Component partitioned", bridges=len(bridges), blocks=len(blocks))
    return Partition(bridges=set(bridges), blocks=blocks)
