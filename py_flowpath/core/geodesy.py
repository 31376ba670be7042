"""
Bearing and angle calculations for flowpath geometries.

This module implements:
- Compass bearings between two points, geodesic when a CRS is configured
- Interior angles at a vertex
- Angle difference helpers used by the direction heuristics
"""

import math
from typing import Optional

import structlog
from pyproj import CRS, Geod, Transformer

from .types import Coordinate

logger = structlog.get_logger()

TWO_PI = 2 * math.pi


class BearingComputer:
    """
    Computes compass bearings in radians, clockwise from north.

    With a source CRS the points are projected to geographic coordinates
    and the forward azimuth on the WGS84 ellipsoid is used. Without one the
    coordinates are taken as planar x/y.
    """

    def __init__(self, source_crs: Optional[str] = None):
        self.source_crs = source_crs or None
        self._geod: Optional[Geod] = None
        self._transformer: Optional[Transformer] = None
        if self.source_crs:
            crs = CRS.from_user_input(self.source_crs)
            self._geod = Geod(ellps="WGS84")
            if not crs.is_geographic or crs.to_epsg() != 4326:
                self._transformer = Transformer.from_crs(crs, "EPSG:4326", always_xy=True)
            logger.debug("Geodesic bearings enabled", crs=self.source_crs)

    def bearing(self, p1: Coordinate, p2: Coordinate) -> float:
        """
        Bearing from p1 to p2.

        Returns:
            Angle in radians in [0, 2π)
        """
        if self._geod is None:
            value = math.atan2(p2[0] - p1[0], p2[1] - p1[1])
        else:
            lon1, lat1 = self._to_geographic(p1)
            lon2, lat2 = self._to_geographic(p2)
            azimuth, _, _ = self._geod.inv(lon1, lat1, lon2, lat2)
            value = math.radians(azimuth)
        return normalize(value)

    def angle(self, p1: Coordinate, vertex: Coordinate, p3: Coordinate) -> float:
        """
        Interior angle p1-vertex-p3.

        Returns:
            Angle in radians in [0, π]
        """
        b1 = self.bearing(vertex, p1)
        b2 = self.bearing(vertex, p3)
        diff = abs(b1 - b2)
        if diff > math.pi:
            diff = TWO_PI - diff
        return diff

    def _to_geographic(self, point: Coordinate) -> Coordinate:
        if self._transformer is None:
            return point
        return self._transformer.transform(point[0], point[1])


def normalize(angle: float) -> float:
    """Wrap an angle into [0, 2π)."""
    value = math.fmod(angle, TWO_PI)
    if value < 0:
        value += TWO_PI
    if value >= TWO_PI:
        value = 0.0
    return value


def angle_between(b1: float, b2: float) -> float:
    """Smallest difference between two bearings, in [0, π]."""
    diff = abs(normalize(b1) - normalize(b2))
    return TWO_PI - diff if diff > math.pi else diff
