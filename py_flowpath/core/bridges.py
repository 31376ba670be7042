"""
Bridge (cut-edge) detection.

Uses an iterative Tarjan low-link search rooted at the sink. Children are
visited by ascending edge length and then by the coordinate of the node
at the far end, so the search order is the same on every run.
"""

from typing import Dict, Iterator, List, Optional, Set, Tuple

import structlog

from .graph import Edge, SubGraph

logger = structlog.get_logger()


def _ordered_edges(subgraph: SubGraph, node: int) -> List[Edge]:
    graph = subgraph.graph
    edges = [e for e in graph.incident_edges(node) if e.index in subgraph.edge_ids]
    edges.sort(key=lambda e: (e.length, graph.nodes[e.other_node(node)].coordinate, e.index))
    return edges


def compute_bridges(subgraph: SubGraph, sink: Optional[int] = None) -> Set[int]:
    """
    Find every edge whose removal disconnects the subgraph.

    Args:
        subgraph: Component to search, treated as undirected
        sink: Node to root the search at; defaults to the lowest node index

    Returns:
        Indices of the bridge edges
    """
    if not subgraph.node_ids:
        return set()
    if sink is None or sink not in subgraph.node_ids:
        sink = min(subgraph.node_ids)

    discovery: Dict[int, int] = {}
    low: Dict[int, int] = {}
    bridges: Set[int] = set()
    counter = 0

    roots = [sink] + sorted(n for n in subgraph.node_ids if n != sink)
    for root in roots:
        if root in discovery:
            continue
        discovery[root] = low[root] = counter
        counter += 1
        # (node, edge used to reach it, iterator over its edges)
        stack: List[Tuple[int, Optional[int], Iterator[Edge]]] = [
            (root, None, iter(_ordered_edges(subgraph, root)))
        ]

        while stack:
            node, parent_edge, edges = stack[-1]
            descended = False
            for edge in edges:
                if edge.index == parent_edge:
                    continue
                other = edge.other_node(node)
                if other in discovery:
                    low[node] = min(low[node], discovery[other])
                    continue
                discovery[other] = low[other] = counter
                counter += 1
                stack.append((other, edge.index, iter(_ordered_edges(subgraph, other))))
                descended = True
                break

            if descended:
                continue

            stack.pop()
            if stack:
                parent = stack[-1][0]
                low[parent] = min(low[parent], low[node])
                if low[node] > discovery[parent]:
                    bridges.add(parent_edge)

    logger.debug("Bridges computed", edges=len(subgraph.edge_ids), bridges=len(bridges))
    return bridges
