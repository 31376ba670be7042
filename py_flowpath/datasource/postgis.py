"""
PostGIS data source.

Reads the layers of one processing area through the SQLAlchemy models and
writes the direction results in a single transaction.
"""

import uuid
from typing import Hashable, Iterable, List, Optional, Set, Union

import structlog
from geoalchemy2.shape import from_shape, to_shape
from shapely.geometry import MultiLineString
from shapely.geometry.base import BaseGeometry
from sqlalchemy import func

from ..core.types import (
    Coordinate,
    DirectionType,
    EcType,
    EfType,
    FlowDirection,
    FlowpathRecord,
    TerminalNode,
)
from ..db.connection import Database
from ..db.models import (
    Catchment,
    ConstructionPoint,
    Flowpath,
    ProcessingError,
    Shoreline,
    TerminalNodePoint,
)
from .base import FlowpathDataSource

logger = structlog.get_logger()


class PostGISDataSource(FlowpathDataSource):
    """Flowpath data source for one AOI stored in PostGIS."""

    def __init__(self, database: Database, aoi_id: Union[str, uuid.UUID], process: str = "direction"):
        self.database = database
        self.aoi_id = aoi_id if isinstance(aoi_id, uuid.UUID) else uuid.UUID(str(aoi_id))
        self.process = process
        self._crs: Optional[str] = None
        self._srid: Optional[int] = None

    def _load_srid(self) -> int:
        if self._srid is None:
            with self.database.get_session() as session:
                srid = (
                    session.query(func.ST_SRID(Flowpath.geometry))
                    .filter(Flowpath.aoi_id == self.aoi_id)
                    .limit(1)
                    .scalar()
                )
            self._srid = int(srid or 0)
        return self._srid

    @property
    def crs(self) -> Optional[str]:
        srid = self._load_srid()
        return f"EPSG:{srid}" if srid > 0 else None

    def query_edges(self) -> List[FlowpathRecord]:
        records = []
        with self.database.get_session() as session:
            rows = session.query(Flowpath).filter(Flowpath.aoi_id == self.aoi_id).order_by(Flowpath.id)
            for row in rows:
                line = to_shape(row.geometry)
                if isinstance(line, MultiLineString):
                    line = line.geoms[0]
                records.append(
                    FlowpathRecord(
                        coordinates=[c[:2] for c in line.coords],
                        ef_type=EfType.parse_value(row.ef_type),
                        fid=row.id,
                        length=line.length,
                        direction=DirectionType.parse_value(row.direction_known),
                    )
                )
        logger.info("Flowpaths loaded", count=len(records), aoi=str(self.aoi_id))
        return records

    def get_terminal_nodes(self) -> List[TerminalNode]:
        with self.database.get_session() as session:
            rows = session.query(TerminalNodePoint).filter(TerminalNodePoint.aoi_id == self.aoi_id)
            nodes = []
            for row in rows:
                point = to_shape(row.geometry)
                nodes.append(
                    TerminalNode(point=(point.x, point.y), flow_direction=FlowDirection.parse_value(row.flow_direction))
                )
        return nodes

    def get_output_construction_points(self) -> Set[Coordinate]:
        with self.database.get_session() as session:
            rows = session.query(ConstructionPoint).filter(
                ConstructionPoint.aoi_id == self.aoi_id,
                ConstructionPoint.flow_direction == FlowDirection.OUTPUT.value,
            )
            return {(p.x, p.y) for p in (to_shape(row.geometry) for row in rows)}

    def query_shoreline_points(self) -> List[Coordinate]:
        points: List[Coordinate] = []
        with self.database.get_session() as session:
            for row in session.query(Shoreline).filter(Shoreline.aoi_id == self.aoi_id):
                points.extend(c[:2] for c in to_shape(row.geometry).coords)
        return points

    def query_waterbodies(self) -> List[BaseGeometry]:
        with self.database.get_session() as session:
            rows = session.query(Catchment).filter(
                Catchment.aoi_id == self.aoi_id, Catchment.ec_type == EcType.WATER.value
            )
            return [to_shape(row.geometry) for row in rows]

    def flip_flow_edges(self, ids_to_flip: Iterable[Hashable], ids_processed: Iterable[Hashable]) -> None:
        to_flip = list(ids_to_flip)
        processed = list(ids_processed)
        # one session, so the update is all-or-nothing
        with self.database.get_session() as session:
            if to_flip:
                session.query(Flowpath).filter(
                    Flowpath.aoi_id == self.aoi_id, Flowpath.id.in_(to_flip)
                ).update({Flowpath.geometry: func.ST_Reverse(Flowpath.geometry)}, synchronize_session=False)
            if processed:
                session.query(Flowpath).filter(
                    Flowpath.aoi_id == self.aoi_id, Flowpath.id.in_(processed)
                ).update({Flowpath.direction_known: DirectionType.KNOWN.value}, synchronize_session=False)
        logger.info("Flowpaths updated", flipped=len(to_flip), processed=len(processed), aoi=str(self.aoi_id))

    def _log(self, level: str, message: str, location: BaseGeometry) -> None:
        with self.database.get_session() as session:
            session.add(
                ProcessingError(
                    aoi_id=self.aoi_id,
                    type=level,
                    message=message,
                    process=self.process,
                    geometry=from_shape(location, srid=self._load_srid() or -1),
                )
            )

    def log_error(self, message: str, location: BaseGeometry) -> None:
        self._log("ERROR", message, location)

    def log_warning(self, message: str, location: BaseGeometry) -> None:
        self._log("WARNING", message, location)
