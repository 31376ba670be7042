"""
Flowpath data sources.
"""

from .base import FlowpathDataSource
from .geopackage import GeoPackageDataSource
from .memory import MemoryDataSource

__all__ = ['FlowpathDataSource', 'GeoPackageDataSource', 'MemoryDataSource']
