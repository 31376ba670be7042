"""Shared fixtures."""

import geopandas as gpd
import pytest
from shapely.geometry import LineString, Point


@pytest.fixture
def flowpath_gpkg(tmp_path):
    """
    GeoPackage with a loop draining through a branch to an output terminal.

    Flowpath 5 leads from the loop to the terminal node at (2, 0) but is
    digitized the wrong way round.
    """
    path = tmp_path / "input.gpkg"
    flowpaths = gpd.GeoDataFrame(
        {
            "internal_id": [1, 2, 3, 4, 5],
            "ef_type": [1, 1, 1, 1, 1],
            "direction_known": [-1, -1, -1, -1, -1],
        },
        geometry=[
            LineString([(0, 0), (1, 0)]),
            LineString([(1, 0), (1, 1)]),
            LineString([(1, 1), (0, 1)]),
            LineString([(0, 1), (0, 0)]),
            LineString([(2, 0), (1, 0)]),
        ],
        crs="EPSG:3857",
    )
    flowpaths.to_file(path, layer="EFlowpaths", driver="GPKG")

    terminals = gpd.GeoDataFrame(
        {"flow_direction": [2]}, geometry=[Point(2, 0)], crs="EPSG:3857"
    )
    terminals.to_file(path, layer="TerminalNodes", driver="GPKG")
    return path
