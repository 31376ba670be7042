"""
GeoPackage data source.

Reads and writes the flowpath layers with geopandas. Results are written
back into the same package: flipped flowpaths get reversed geometries and
processing findings are appended to the ProcessingErrors layer on close.
"""

import shutil
from pathlib import Path
from typing import Dict, Hashable, Iterable, List, Optional, Set, Union

import geopandas as gpd
import pandas as pd
import structlog
from shapely.geometry import LineString, MultiLineString
from shapely.geometry.base import BaseGeometry

from ..core.types import (
    Coordinate,
    DirectionType,
    EcType,
    EfType,
    FlowDirection,
    FlowpathRecord,
    TerminalNode,
)
from .base import (
    CONSTRUCTION_POINTS,
    DIRECTION,
    EC_TYPE,
    ECATCHMENTS,
    EF_TYPE,
    EFLOWPATHS,
    FLOW_DIRECTION,
    INTERNAL_ID,
    PROCESSING_ERRORS,
    SHORELINES,
    TERMINAL_NODES,
    FlowpathDataSource,
)

logger = structlog.get_logger()

PathLike = Union[str, Path]


class GeoPackageDataSource(FlowpathDataSource):
    """Flowpath data source backed by a GeoPackage file."""

    def __init__(self, path: PathLike, process: str = "direction"):
        self.path = Path(path)
        if not self.path.exists():
            raise FileNotFoundError(f"GeoPackage not found: {self.path}")
        self.process = process
        self._layers = set(gpd.list_layers(self.path)["name"])
        self._flowpaths: Optional[gpd.GeoDataFrame] = None
        self._findings: List[Dict] = []

    @staticmethod
    def prepare_output(input_path: PathLike, output_path: PathLike) -> None:
        """Copy the input package to the output location, replacing any existing file."""
        output = Path(output_path)
        if output.exists():
            output.unlink()
        shutil.copyfile(input_path, output)
        logger.info("Output prepared", input=str(input_path), output=str(output))

    def _read(self, layer: str) -> Optional[gpd.GeoDataFrame]:
        if layer not in self._layers:
            return None
        return gpd.read_file(self.path, layer=layer)

    def _read_flowpaths(self) -> gpd.GeoDataFrame:
        if self._flowpaths is None:
            frame = self._read(EFLOWPATHS)
            if frame is None:
                raise ValueError(f"Layer {EFLOWPATHS} not found in {self.path}")
            self._flowpaths = frame
        return self._flowpaths

    @property
    def crs(self) -> Optional[str]:
        frame = self._read_flowpaths()
        return frame.crs.to_string() if frame.crs is not None else None

    def _feature_ids(self, frame: gpd.GeoDataFrame) -> pd.Series:
        if INTERNAL_ID in frame.columns:
            return frame[INTERNAL_ID]
        return pd.Series(frame.index, index=frame.index)

    def query_edges(self) -> List[FlowpathRecord]:
        frame = self._read_flowpaths()
        ids = self._feature_ids(frame)
        records = []
        for index, row in frame.iterrows():
            line = _as_linestring(row.geometry)
            direction = row[DIRECTION] if DIRECTION in frame.columns else None
            records.append(
                FlowpathRecord(
                    coordinates=[c[:2] for c in line.coords],
                    ef_type=EfType.parse_value(row[EF_TYPE]),
                    fid=_plain(ids[index]),
                    length=line.length,
                    direction=DirectionType.parse_value(None if pd.isna(direction) else direction),
                )
            )
        logger.info("Flowpaths loaded", count=len(records), path=str(self.path))
        return records

    def get_terminal_nodes(self) -> List[TerminalNode]:
        frame = self._read(TERMINAL_NODES)
        if frame is None:
            return []
        return [
            TerminalNode(
                point=(row.geometry.x, row.geometry.y),
                flow_direction=FlowDirection.parse_value(row[FLOW_DIRECTION]),
            )
            for _, row in frame.iterrows()
        ]

    def get_output_construction_points(self) -> Set[Coordinate]:
        frame = self._read(CONSTRUCTION_POINTS)
        if frame is None:
            return set()
        output = frame[frame[FLOW_DIRECTION] == FlowDirection.OUTPUT.value]
        return {(p.x, p.y) for p in output.geometry}

    def query_shoreline_points(self) -> List[Coordinate]:
        frame = self._read(SHORELINES)
        if frame is None:
            return []
        points = []
        for geometry in frame.geometry:
            lines = geometry.geoms if isinstance(geometry, MultiLineString) else [geometry]
            for line in lines:
                points.extend(c[:2] for c in line.coords)
        return points

    def query_waterbodies(self) -> List[BaseGeometry]:
        frame = self._read(ECATCHMENTS)
        if frame is None:
            return []
        return list(frame[frame[EC_TYPE] == EcType.WATER.value].geometry)

    def flip_flow_edges(self, ids_to_flip: Iterable[Hashable], ids_processed: Iterable[Hashable]) -> None:
        frame = self._read_flowpaths().copy()
        ids = self._feature_ids(frame).map(_plain)
        flip_mask = ids.isin(set(ids_to_flip))
        processed_mask = ids.isin(set(ids_processed))

        frame.loc[flip_mask, "geometry"] = frame.loc[flip_mask, "geometry"].map(_reverse)
        frame.loc[processed_mask, DIRECTION] = DirectionType.KNOWN.value

        frame.to_file(self.path, layer=EFLOWPATHS, driver="GPKG")
        self._flowpaths = frame
        logger.info(
            "Flowpaths updated",
            flipped=int(flip_mask.sum()),
            processed=int(processed_mask.sum()),
        )

    def log_error(self, message: str, location: BaseGeometry) -> None:
        self._findings.append({"type": "ERROR", "message": message, "process": self.process, "geometry": location})

    def log_warning(self, message: str, location: BaseGeometry) -> None:
        self._findings.append({"type": "WARNING", "message": message, "process": self.process, "geometry": location})

    def close(self) -> None:
        if not self._findings:
            return
        findings = gpd.GeoDataFrame(self._findings, geometry="geometry", crs=self._read_flowpaths().crs)
        existing = self._read(PROCESSING_ERRORS)
        if existing is not None:
            findings = pd.concat([existing, findings], ignore_index=True)
        findings.to_file(self.path, layer=PROCESSING_ERRORS, driver="GPKG")
        self._layers.add(PROCESSING_ERRORS)
        logger.info("Processing findings written", count=len(self._findings))
        self._findings = []


def _as_linestring(geometry: BaseGeometry) -> LineString:
    if isinstance(geometry, MultiLineString):
        if len(geometry.geoms) != 1:
            raise ValueError(f"Flowpath must be a single linestring: {geometry.wkt}")
        return geometry.geoms[0]
    return geometry


def _reverse(geometry: BaseGeometry) -> LineString:
    return LineString(list(_as_linestring(geometry).coords)[::-1])


def _plain(value):
    """numpy scalars to builtins so ids compare and hash like the graph ids."""
    return value.item() if hasattr(value, "item") else value
