"""
Attribute enumerations and input records for flowpath networks.

The integer codes match the values stored in the flowpath datasets:
- direction_known: -1 unknown, 1 known
- ef_type: flowpath types (reach, bank, skeleton, infrastructure)
- ec_type: catchment types
- flow_direction: terminal/construction point flow direction
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Hashable, List, Optional, Sequence, Tuple

Coordinate = Tuple[float, float]


class DirectionType(IntEnum):
    """Values for the direction attribute on flowpaths."""

    UNKNOWN = -1
    KNOWN = 1

    @classmethod
    def parse_value(cls, value: Optional[int]) -> "DirectionType":
        if value is None:
            return cls.UNKNOWN
        for t in cls:
            if t.value == int(value):
                return t
        raise ValueError(f"{value} is an invalid value for direction attribute")


class EfType(IntEnum):
    """Elementary flowpath types."""

    REACH = 1
    BANK = 2
    SKELETON = 3
    INFRASTRUCTURE = 4

    @classmethod
    def parse_value(cls, value: int) -> "EfType":
        for t in cls:
            if t.value == int(value):
                return t
        raise ValueError(f"The value {value} is not supported for the EfType attribute.")


class EcType(IntEnum):
    """Elementary catchment types."""

    REACH = 1
    BANK = 2
    EMPTY = 3
    WATER = 4
    BUILTUPAREA = 5

    @classmethod
    def parse_value(cls, value: int) -> "EcType":
        for t in cls:
            if t.value == int(value):
                return t
        raise ValueError(f"The value {value} is not supported for the EcType attribute.")


class FlowDirection(IntEnum):
    """Flow direction on point datasets."""

    INPUT = 1
    OUTPUT = 2
    UNKNOWN = 3

    @classmethod
    def parse_value(cls, value: int) -> "FlowDirection":
        for t in cls:
            if t.value == int(value):
                return t
        raise ValueError(f"The value {value} is not supported for the flow_direction attribute.")


class EdgeOrigin(Enum):
    """Where a graph edge came from."""

    REAL = "real"
    SYNTHETIC_MERGE = "synthetic_merge"


@dataclass
class FlowpathRecord:
    """One flowpath as loaded from a data source."""

    coordinates: List[Coordinate]
    ef_type: EfType = EfType.REACH
    fid: Optional[Hashable] = None
    length: Optional[float] = None
    direction: DirectionType = DirectionType.UNKNOWN

    def __post_init__(self):
        self.coordinates = [(float(c[0]), float(c[1])) for c in self.coordinates]
        if len(self.coordinates) < 2:
            raise ValueError(f"Flowpath {self.fid} needs at least two coordinates")
        if self.length is None:
            self.length = polyline_length(self.coordinates)

    @property
    def start(self) -> Coordinate:
        return self.coordinates[0]

    @property
    def end(self) -> Coordinate:
        return self.coordinates[-1]

    @property
    def start_next(self) -> Coordinate:
        return self.coordinates[1]

    @property
    def end_prev(self) -> Coordinate:
        return self.coordinates[-2]


@dataclass
class TerminalNode:
    """A terminal point on the AOI boundary with its flow direction."""

    point: Coordinate
    flow_direction: FlowDirection = FlowDirection.UNKNOWN


def polyline_length(coordinates: Sequence[Coordinate]) -> float:
    """Planar length of a coordinate sequence."""
    total = 0.0
    for (x1, y1), (x2, y2) in zip(coordinates, coordinates[1:]):
        total += ((x2 - x1) ** 2 + (y2 - y1) ** 2) ** 0.5
    return total
