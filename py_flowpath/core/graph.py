"""
In-memory graph model used for directionalizing a flowpath network.

Nodes and edges are stored in per-graph arenas and addressed by stable
integer indices; adjacency lists hold edge indices. Nodes are identified
by their coordinate and are created lazily (and de-duplicated) while
edges are built. Synthetic nodes used for merging sinks share the
coordinate of a real node and are never de-duplicated.
"""

from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterable, Iterator, List, Optional, Set

import structlog
from shapely.geometry import LineString, Point

from .exceptions import ExceptionWithLocation
from .types import Coordinate, DirectionType, EdgeOrigin, EfType, FlowpathRecord

logger = structlog.get_logger()


@dataclass(eq=False)
class Node:
    """A network node; identity is its coordinate."""

    index: int
    coordinate: Coordinate
    edges: List[int] = field(default_factory=list)
    is_sink: bool = False
    synthetic: bool = False

    @property
    def degree(self) -> int:
        return len(self.edges)

    def to_geometry(self) -> Point:
        return Point(self.coordinate)

    def __str__(self) -> str:
        return f"POINT({self.coordinate[0]} {self.coordinate[1]})"


@dataclass(eq=False)
class Edge:
    """
    A flowpath segment between node_a and node_b.

    Once the direction is KNOWN the edge flows from node_a to node_b.
    next_to_a/next_to_b are the vertices adjacent to each end of the
    original geometry and are used to compute bearings at the nodes.
    """

    index: int
    node_a: int
    node_b: int
    next_to_a: Coordinate
    next_to_b: Coordinate
    ef_type: EfType = EfType.REACH
    length: float = 0.0
    direction: DirectionType = DirectionType.UNKNOWN
    fid: Optional[Hashable] = None
    origin: EdgeOrigin = EdgeOrigin.REAL
    flipped: bool = False
    same_edges: List["Edge"] = field(default_factory=list)
    raw_direction: DirectionType = field(init=False)

    def __post_init__(self):
        self.raw_direction = self.direction

    @property
    def is_known(self) -> bool:
        return self.direction == DirectionType.KNOWN

    @property
    def is_synthetic(self) -> bool:
        return self.origin is EdgeOrigin.SYNTHETIC_MERGE

    def other_node(self, node: int) -> Optional[int]:
        if node == self.node_a:
            return self.node_b
        if node == self.node_b:
            return self.node_a
        return None

    def next_to(self, node: int) -> Coordinate:
        """Vertex adjacent to the given end node."""
        return self.next_to_a if node == self.node_a else self.next_to_b

    def set_known(self) -> None:
        self.direction = DirectionType.KNOWN

    def flip(self) -> None:
        """Reverse the edge and mark its direction as known."""
        if self.raw_direction == DirectionType.KNOWN:
            logger.error("Flipping the direction of a known edge", fid=self.fid)
        self.node_a, self.node_b = self.node_b, self.node_a
        self.next_to_a, self.next_to_b = self.next_to_b, self.next_to_a
        self.direction = DirectionType.KNOWN
        self.flipped = not self.flipped

    def add_same_edge(self, other: "Edge") -> None:
        if other not in self.same_edges:
            self.same_edges.append(other)


@dataclass
class Path:
    """Ordered nodes and the edges joining consecutive nodes."""

    nodes: List[int] = field(default_factory=list)
    edges: List[int] = field(default_factory=list)

    def reverse(self) -> None:
        self.nodes.reverse()
        self.edges.reverse()

    def to_wkt(self, graph: "Graph") -> str:
        if not self.nodes:
            return "EMPTY"
        coords = ", ".join(
            f"{graph.nodes[n].coordinate[0]} {graph.nodes[n].coordinate[1]}" for n in self.nodes
        )
        return f"LINESTRING({coords})"


class Graph:
    """Undirected multigraph of flowpath edges for one processing area."""

    def __init__(self):
        self.nodes: Dict[int, Node] = {}
        self.edges: Dict[int, Edge] = {}
        self._by_coordinate: Dict[Coordinate, int] = {}
        self._next_node = 0
        self._next_edge = 0

    @classmethod
    def build(cls, records: Iterable[FlowpathRecord]) -> "Graph":
        """Build a graph from flowpath records, sharing nodes by coordinate."""
        graph = cls()
        for record in records:
            a = graph.get_or_create_node(record.start)
            b = graph.get_or_create_node(record.end)
            graph.add_edge(
                a.index,
                b.index,
                next_to_a=record.start_next,
                next_to_b=record.end_prev,
                ef_type=record.ef_type,
                length=record.length,
                direction=record.direction,
                fid=record.fid,
            )
        logger.debug("Graph built", nodes=len(graph.nodes), edges=len(graph.edges))
        return graph

    def node_at(self, coordinate: Coordinate) -> Optional[Node]:
        index = self._by_coordinate.get((float(coordinate[0]), float(coordinate[1])))
        return None if index is None else self.nodes[index]

    def get_or_create_node(self, coordinate: Coordinate) -> Node:
        node = self.node_at(coordinate)
        if node is None:
            node = self.add_node(coordinate)
            self._by_coordinate[node.coordinate] = node.index
        return node

    def add_node(self, coordinate: Coordinate, synthetic: bool = False) -> Node:
        node = Node(
            index=self._next_node,
            coordinate=(float(coordinate[0]), float(coordinate[1])),
            synthetic=synthetic,
        )
        self._next_node += 1
        self.nodes[node.index] = node
        return node

    def add_edge(
        self,
        node_a: int,
        node_b: int,
        next_to_a: Optional[Coordinate] = None,
        next_to_b: Optional[Coordinate] = None,
        ef_type: EfType = EfType.REACH,
        length: float = 0.0,
        direction: DirectionType = DirectionType.UNKNOWN,
        fid: Optional[Hashable] = None,
        origin: EdgeOrigin = EdgeOrigin.REAL,
    ) -> Edge:
        edge = Edge(
            index=self._next_edge,
            node_a=node_a,
            node_b=node_b,
            next_to_a=next_to_a if next_to_a is not None else self.nodes[node_b].coordinate,
            next_to_b=next_to_b if next_to_b is not None else self.nodes[node_a].coordinate,
            ef_type=ef_type,
            length=float(length),
            direction=direction,
            fid=fid,
            origin=origin,
        )
        self._next_edge += 1
        self.edges[edge.index] = edge
        self.nodes[node_a].edges.append(edge.index)
        if node_b != node_a:
            self.nodes[node_b].edges.append(edge.index)
        return edge

    def remove_edge(self, edge: Edge) -> None:
        """Detach an edge from its nodes and drop it from the arena."""
        for n in (edge.node_a, edge.node_b):
            node = self.nodes.get(n)
            if node is not None and edge.index in node.edges:
                node.edges.remove(edge.index)
        self.edges.pop(edge.index, None)

    def remove_node(self, node: Node) -> None:
        if node.edges:
            raise ValueError(f"Cannot remove node with edges attached: {node}")
        self.nodes.pop(node.index, None)
        if self._by_coordinate.get(node.coordinate) == node.index:
            del self._by_coordinate[node.coordinate]

    def incident_edges(self, node: int) -> Iterator[Edge]:
        for e in self.nodes[node].edges:
            yield self.edges[e]

    def degree(self, node: int) -> int:
        return self.nodes[node].degree

    def remove_same_edges(self) -> None:
        """
        Merge edges that join the same pair of nodes.

        The first edge (by index) stays in the graph as the representative
        and every duplicate is recorded in its same_edges list so the whole
        group can receive the same final orientation.

        Raises:
            ExceptionWithLocation: if an edge starts and ends at the same node
        """
        representatives: Dict[tuple, Edge] = {}
        removed: List[Edge] = []
        for edge in list(self.edges.values()):
            if edge.node_a == edge.node_b:
                raise ExceptionWithLocation(
                    "Circular reference found in graph:", self.nodes[edge.node_a].to_geometry()
                )
            key = (min(edge.node_a, edge.node_b), max(edge.node_a, edge.node_b))
            rep = representatives.get(key)
            if rep is None:
                representatives[key] = edge
            else:
                rep.add_same_edge(edge)
                removed.append(edge)

        for edge in removed:
            self.remove_edge(edge)
        if removed:
            logger.info("Merged coincident duplicate edges", count=len(removed))

    def remove_synthetic(self) -> None:
        """Drop all synthetic merge edges and nodes."""
        for edge in [e for e in self.edges.values() if e.is_synthetic]:
            self.remove_edge(edge)
        for node in [n for n in self.nodes.values() if n.synthetic]:
            for e in list(node.edges):
                self.remove_edge(self.edges[e])
            self.remove_node(node)

    def edge_geometry(self, edge: Edge) -> LineString:
        a = self.nodes[edge.node_a].coordinate
        b = self.nodes[edge.node_b].coordinate
        return LineString([a, edge.next_to_a, edge.next_to_b, b])

    def edge_wkt(self, edge: Edge) -> str:
        return self.edge_geometry(edge).wkt

    def in_degree(self, node: int, edges: Optional[Set[int]] = None) -> int:
        """Number of known edges flowing into the node."""
        return sum(
            1
            for e in self.incident_edges(node)
            if e.is_known and e.node_b == node and (edges is None or e.index in edges)
        )

    def out_degree(self, node: int, edges: Optional[Set[int]] = None) -> int:
        """Number of known edges flowing out of the node."""
        return sum(
            1
            for e in self.incident_edges(node)
            if e.is_known and e.node_a == node and (edges is None or e.index in edges)
        )


class SubGraph:
    """
    View on a subset of a graph's nodes and edges.

    Nodes in the view keep their full adjacency, so edges leaving the
    view can still be inspected through the parent graph.
    """

    def __init__(self, graph: Graph, node_ids: Iterable[int], edge_ids: Iterable[int]):
        self.graph = graph
        self.node_ids: Set[int] = set(node_ids)
        self.edge_ids: Set[int] = set(edge_ids)

    @property
    def nodes(self) -> List[Node]:
        return [self.graph.nodes[i] for i in sorted(self.node_ids)]

    @property
    def edges(self) -> List[Edge]:
        return [self.graph.edges[i] for i in sorted(self.edge_ids)]

    def contains_edge(self, edge: Edge) -> bool:
        return edge.index in self.edge_ids

    def contains_node(self, node: int) -> bool:
        return node in self.node_ids

    def __repr__(self) -> str:
        return f"SubGraph(nodes={len(self.node_ids)}, edges={len(self.edge_ids)})"
