"""In-memory data source, used for tests and when embedding the engine."""

from dataclasses import replace
from typing import Hashable, Iterable, List, Optional, Sequence, Set, Tuple

from shapely.geometry.base import BaseGeometry

from ..core.types import Coordinate, DirectionType, FlowpathRecord, TerminalNode
from .base import FlowpathDataSource


class MemoryDataSource(FlowpathDataSource):
    """
    Holds all layers in lists.

    Flipping a flowpath reverses its stored coordinates, so the records
    always show the digitized direction of the current result.
    """

    def __init__(
        self,
        flowpaths: Sequence[FlowpathRecord],
        terminal_nodes: Optional[Sequence[TerminalNode]] = None,
        construction_points: Optional[Iterable[Coordinate]] = None,
        shorelines: Optional[Sequence[Sequence[Coordinate]]] = None,
        waterbodies: Optional[Sequence[BaseGeometry]] = None,
        crs: Optional[str] = None,
    ):
        self.flowpaths: List[FlowpathRecord] = list(flowpaths)
        self.terminal_nodes = list(terminal_nodes or [])
        self.construction_points = {(float(x), float(y)) for x, y in construction_points or []}
        self.shorelines = [list(line) for line in shorelines or []]
        self.waterbodies = list(waterbodies or [])
        self._crs = crs
        self.errors: List[Tuple[str, str, BaseGeometry]] = []
        self.flipped: Set[Hashable] = set()
        self.processed: Set[Hashable] = set()

    @property
    def crs(self) -> Optional[str]:
        return self._crs

    def query_edges(self) -> List[FlowpathRecord]:
        return list(self.flowpaths)

    def get_terminal_nodes(self) -> List[TerminalNode]:
        return list(self.terminal_nodes)

    def get_output_construction_points(self) -> Set[Coordinate]:
        return set(self.construction_points)

    def query_shoreline_points(self) -> List[Coordinate]:
        return [(float(x), float(y)) for line in self.shorelines for x, y in line]

    def query_waterbodies(self) -> List[BaseGeometry]:
        return list(self.waterbodies)

    def flip_flow_edges(self, ids_to_flip: Iterable[Hashable], ids_processed: Iterable[Hashable]) -> None:
        to_flip = set(ids_to_flip)
        processed = set(ids_processed)
        updated = []
        for record in self.flowpaths:
            if record.fid in to_flip:
                record = replace(record, coordinates=list(reversed(record.coordinates)))
            if record.fid in processed:
                record = replace(record, direction=DirectionType.KNOWN)
            updated.append(record)
        self.flowpaths = updated
        self.flipped |= to_flip
        self.processed |= processed

    def log_error(self, message: str, location: BaseGeometry) -> None:
        self.errors.append(("error", message, location))

    def log_warning(self, message: str, location: BaseGeometry) -> None:
        self.errors.append(("warning", message, location))

    def record(self, fid: Hashable) -> FlowpathRecord:
        """Current record for a flowpath id."""
        for record in self.flowpaths:
            if record.fid == fid:
                return record
        raise KeyError(fid)
