"""
Connected component extraction.

Traversal ignores edge direction; an optional filter restricts which
edges may be crossed (used to drop bridges when partitioning).
"""

from collections import deque
from typing import Callable, Optional

from .graph import Edge, Graph, SubGraph


def compute_sub_graph(
    graph: Graph,
    seed: int,
    edge_filter: Optional[Callable[[Edge], bool]] = None,
) -> SubGraph:
    """
    Collect every node and edge reachable from the seed node.

    Args:
        graph: Graph to traverse
        seed: Index of the starting node
        edge_filter: Optional predicate; edges failing it are not crossed

    Returns:
        SubGraph view of the component
    """
    nodes = {seed}
    edges = set()
    queue = deque([seed])

    while queue:
        current = queue.popleft()
        for edge in graph.incident_edges(current):
            if edge.index in edges:
                continue
            if edge_filter is not None and not edge_filter(edge):
                continue
            edges.add(edge.index)
            other = edge.other_node(current)
            if other not in nodes:
                nodes.add(other)
                queue.append(other)

    return SubGraph(graph, nodes, edges)
