"""
Database utilities and models.

This package provides:
- SQLAlchemy models for the PostGIS flowpath schema
- Database connection management
"""

from .connection import Database, db
from .models import (
    Aoi, Base, Catchment, ConstructionPoint, DirectionalizeJob, Flowpath, ProcessingError,
    Shoreline, TerminalNodePoint
)

__all__ = [
    # Connection management
    'Database', 'db',

    # Models
    'Aoi', 'Base', 'Catchment', 'ConstructionPoint', 'DirectionalizeJob', 'Flowpath',
    'ProcessingError', 'Shoreline', 'TerminalNodePoint'
]
