"""
Data source interface for flowpath processing.

A data source supplies the flowpaths of one processing area together with
the point and polygon layers used to locate sinks, and persists the
direction results.
"""

from abc import ABC, abstractmethod
from typing import Hashable, Iterable, List, Optional, Set

from shapely.geometry.base import BaseGeometry

from ..core.types import Coordinate, FlowpathRecord, TerminalNode

# Layer names
EFLOWPATHS = "EFlowpaths"
ECATCHMENTS = "ECatchments"
SHORELINES = "Shorelines"
TERMINAL_NODES = "TerminalNodes"
CONSTRUCTION_POINTS = "ConstructionPoints"
PROCESSING_ERRORS = "ProcessingErrors"

# Attribute names
EF_TYPE = "ef_type"
EC_TYPE = "ec_type"
DIRECTION = "direction_known"
FLOW_DIRECTION = "flow_direction"
INTERNAL_ID = "internal_id"


class FlowpathDataSource(ABC):
    """Source of flowpaths and sink metadata for one processing area."""

    @property
    @abstractmethod
    def crs(self) -> Optional[str]:
        """CRS of the coordinates as a user input string, None if unknown."""

    @abstractmethod
    def query_edges(self) -> List[FlowpathRecord]:
        """All flowpaths, bank flowpaths included."""

    @abstractmethod
    def get_terminal_nodes(self) -> List[TerminalNode]:
        """Terminal nodes on the processing area boundary."""

    @abstractmethod
    def get_output_construction_points(self) -> Set[Coordinate]:
        """Construction points whose flow direction is output."""

    @abstractmethod
    def query_shoreline_points(self) -> List[Coordinate]:
        """Every vertex of the shoreline lines."""

    @abstractmethod
    def query_waterbodies(self) -> List[BaseGeometry]:
        """Polygons of the waterbody catchments."""

    @abstractmethod
    def flip_flow_edges(self, ids_to_flip: Iterable[Hashable], ids_processed: Iterable[Hashable]) -> None:
        """Reverse the listed flowpaths and mark the processed ones as known."""

    @abstractmethod
    def log_error(self, message: str, location: BaseGeometry) -> None:
        """Record a processing error at a location."""

    @abstractmethod
    def log_warning(self, message: str, location: BaseGeometry) -> None:
        """Record a processing warning at a location."""

    def close(self) -> None:
        """Release any resources held by the data source."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
