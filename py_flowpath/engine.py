"""
Directionalize and cycle check drivers.

This module implements:
- Sink point collection from terminal nodes, shorelines, known edges and
  construction points
- The directionalize run for one data source, bank edges included
- Post-run validation for cycles and suspicious sources/sinks
"""

import time
from dataclasses import dataclass, field, replace
from typing import Hashable, List, Optional, Set

import structlog
from shapely.geometry import LineString, Point

from .core.cycle_checker import CycleChecker
from .core.directionalizer import DirectionalizeOptions, Directionalizer
from .core.exceptions import CycleError, DirectionalizeError
from .core.graph import Graph
from .core.types import Coordinate, DirectionType, EfType, FlowDirection, FlowpathRecord
from .datasource.base import FlowpathDataSource
from .utils.logging import ProcessingLogger

logger = structlog.get_logger()


@dataclass
class DirectionalizeResult:
    """Outcome of one directionalize run."""
    features_to_flip: Set[Hashable] = field(default_factory=set)  # Flowpaths reversed
    processed_features: Set[Hashable] = field(default_factory=set)  # Flowpaths given a direction
    sink_warnings: List[Point] = field(default_factory=list)  # Potential sink errors
    source_warnings: List[Point] = field(default_factory=list)  # Potential source errors
    elapsed_seconds: float = 0.0


class DirectionalizeEngine:
    """Runs the directionalizer against a data source and stores the results."""

    def __init__(self, data_source: FlowpathDataSource, options: Optional[DirectionalizeOptions] = None):
        self.data_source = data_source
        self.options = options or DirectionalizeOptions()
        self.processing = ProcessingLogger(data_source)

    def do_work(self) -> DirectionalizeResult:
        """
        Directionalize every flowpath of the data source.

        Fatal problems are recorded in the data source before being raised.

        Raises:
            DirectionalizeError: if the network cannot be directionalized or
                contains a cycle afterwards
        """
        try:
            return self._run()
        except DirectionalizeError as ex:
            self.processing.error(str(ex), getattr(ex, "location", None))
            raise

    def _run(self) -> DirectionalizeResult:
        start = time.perf_counter()
        options = self.options
        if not options.source_crs and self.data_source.crs:
            options = replace(options, source_crs=self.data_source.crs)

        logger.info("Loading flowpaths")
        edges: List[FlowpathRecord] = []
        banks: List[FlowpathRecord] = []
        for record in self.data_source.query_edges():
            (banks if record.ef_type == EfType.BANK else edges).append(record)

        logger.info("Building graph", edges=len(edges), banks=len(banks))
        graph = Graph.build(edges)

        logger.info("Locating sink nodes")
        sinks = self.get_sink_points(graph)

        logger.info("Directionalizing network", sinks=len(sinks))
        directionalizer = Directionalizer(options)
        directionalizer.directionalize(graph, sinks)

        result = DirectionalizeResult(
            features_to_flip=set(directionalizer.features_to_flip),
            processed_features=set(directionalizer.processed_features),
        )

        logger.info("Processing bank edges")
        self._directionalize_banks(graph, banks, result)

        logger.info("Saving results")
        self.data_source.flip_flow_edges(result.features_to_flip, result.processed_features)

        logger.info("Checking output for cycles")
        checker = CycleCheckEngine(self.data_source)
        checker.do_work(allow_unknown=True)

        logger.info("Checking output for invalid source/sink nodes")
        sinks_found, sources_found = checker.find_invalid_source_sink_nodes()
        for point in sinks_found:
            self.processing.warning("Potential sink error", point)
        for point in sources_found:
            self.processing.warning("Potential source error", point)
        result.sink_warnings = sinks_found
        result.source_warnings = sources_found

        result.elapsed_seconds = time.perf_counter() - start
        logger.info(
            "Directionalize complete",
            flipped=len(result.features_to_flip),
            processed=len(result.processed_features),
            seconds=round(result.elapsed_seconds, 3),
        )
        return result

    def get_sink_points(self, graph: Graph) -> List[Coordinate]:
        """
        Collect sink coordinates, most important first.

        Sinks are terminal nodes flowing out of the area, nodes on a
        shoreline, nodes where every edge is known and flows in, and
        degree-1 nodes at output construction points.
        """
        sinks: List[Coordinate] = []

        def add(point: Coordinate) -> None:
            point = (float(point[0]), float(point[1]))
            if point not in sinks:
                sinks.append(point)

        for terminal in self.data_source.get_terminal_nodes():
            if terminal.flow_direction == FlowDirection.OUTPUT:
                add(terminal.point)

        shoreline = {(float(x), float(y)) for x, y in self.data_source.query_shoreline_points()}
        for node in graph.nodes.values():
            if node.coordinate in shoreline or all(
                e.direction == DirectionType.KNOWN and e.node_b == node.index
                for e in graph.incident_edges(node.index)
            ):
                add(node.coordinate)

        construction = self.data_source.get_output_construction_points()
        for node in graph.nodes.values():
            if node.degree == 1 and node.coordinate in construction:
                add(node.coordinate)
        return sinks

    def _directionalize_banks(
        self, graph: Graph, banks: List[FlowpathRecord], result: DirectionalizeResult
    ) -> None:
        """Banks flow into the network: keep those ending on it, flip those starting on it."""
        nodes = {n.coordinate for n in graph.nodes.values()}
        for bank in banks:
            if bank.end in nodes:
                pass
            elif bank.start in nodes:
                result.features_to_flip.add(bank.fid)
            else:
                self.processing.error(
                    "Bank flowpath does not intersect flow network", LineString(bank.coordinates)
                )
                continue
            result.processed_features.add(bank.fid)


class CycleCheckEngine:
    """Validates the stored direction of every flowpath in a data source."""

    def __init__(self, data_source: FlowpathDataSource):
        self.data_source = data_source
        self.checker = CycleChecker()
        self._graph: Optional[Graph] = None

    def build_graph(self, allow_unknown: bool = False) -> Graph:
        if self._graph is None:
            records = self.data_source.query_edges()
            if not allow_unknown:
                for record in records:
                    if record.direction == DirectionType.UNKNOWN:
                        raise DirectionalizeError(
                            "An unknown direction edge type found. "
                            "Cannot check cycles when direction is unknown"
                        )
            self._graph = Graph.build(records)
        return self._graph

    def do_work(self, allow_unknown: bool = False) -> None:
        """
        Raises:
            CycleError: if the stored directions contain a cycle
        """
        graph = self.build_graph(allow_unknown)
        edge = self.checker.find_cycle(graph)
        if edge is not None:
            raise CycleError("Dataset contains cycles after directionalization.", graph.edge_geometry(edge))
        logger.info("No cycles found", edges=len(graph.edges))

    def find_invalid_source_sink_nodes(self):
        """(potential sink errors, potential source errors) as lists of points."""
        graph = self.build_graph(allow_unknown=True)
        terminals = [t.point for t in self.data_source.get_terminal_nodes()]
        return self.checker.find_invalid_source_sink_nodes(
            graph, terminals, self.data_source.query_waterbodies()
        )
