"""Exceptions raised while directionalizing a flowpath network."""

from typing import Optional

from shapely.geometry.base import BaseGeometry


class DirectionalizeError(Exception):
    """Base class for fatal directionalization failures."""


class NoSinkError(DirectionalizeError):
    """No sink point matches a node of the graph."""


class ExceptionWithLocation(DirectionalizeError):
    """
    Error that carries the geometry where the problem was found.

    The WKT of the location is appended to the message so the offending
    feature can be found from the log alone.
    """

    def __init__(self, message: str, location: Optional[BaseGeometry] = None):
        self.location = location
        if location is not None:
            message = f"{message} {location.wkt}"
        super().__init__(message)


class CycleError(ExceptionWithLocation):
    """A directed cycle exists in a network that should be acyclic."""
