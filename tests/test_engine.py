"""Tests for the directionalize and cycle check engines."""

import pytest
from shapely.geometry import Point, box

from py_flowpath.core.directionalizer import DirectionalizeOptions
from py_flowpath.core.exceptions import CycleError, DirectionalizeError, NoSinkError
from py_flowpath.core.graph import Graph
from py_flowpath.core.types import DirectionType, EfType, FlowDirection, FlowpathRecord, TerminalNode
from py_flowpath.datasource.memory import MemoryDataSource
from py_flowpath.engine import CycleCheckEngine, DirectionalizeEngine
from py_flowpath.utils.logging import ProcessingLogger


class TestDirectionalizeEngine:
    """Test a full directionalize run against an in-memory data source."""

    @pytest.fixture
    def source(self):
        """A(0,0) B(1,0) C(2,0) digitized toward A, flowing out at C, with banks."""
        return MemoryDataSource(
            flowpaths=[
                FlowpathRecord(coordinates=[(2, 0), (1, 0)], fid=1),
                FlowpathRecord(coordinates=[(1, 0), (0, 0)], fid=2),
                FlowpathRecord(coordinates=[(1, 5), (1, 0)], fid=10, ef_type=EfType.BANK),
                FlowpathRecord(coordinates=[(0, 0), (-3, 3)], fid=11, ef_type=EfType.BANK),
                FlowpathRecord(coordinates=[(9, 9), (8, 8)], fid=12, ef_type=EfType.BANK),
            ],
            terminal_nodes=[
                TerminalNode(point=(2, 0), flow_direction=FlowDirection.OUTPUT),
                TerminalNode(point=(0, 0), flow_direction=FlowDirection.INPUT),
            ],
        )

    def test_flowpaths_are_flipped(self, source):
        """Test flip and processed sets."""
        result = DirectionalizeEngine(source, DirectionalizeOptions()).do_work()

        assert result.features_to_flip == {1, 2, 11}
        assert result.processed_features == {1, 2, 10, 11}
        assert source.record(1).coordinates == [(1.0, 0.0), (2.0, 0.0)]
        assert source.record(2).coordinates == [(0.0, 0.0), (1.0, 0.0)]
        assert source.record(1).direction == DirectionType.KNOWN
        assert result.elapsed_seconds >= 0

    def test_banks_flow_into_network(self, source):
        """Test that banks flow into the network."""
        DirectionalizeEngine(source).do_work()

        assert source.record(10).coordinates[-1] == (1.0, 0.0)
        assert source.record(11).coordinates[-1] == (0.0, 0.0)
        assert source.record(12).direction == DirectionType.UNKNOWN
        assert [(level, message) for level, message, _ in source.errors] == [
            ("error", "Bank flowpath does not intersect flow network")
        ]

    def test_without_sinks_fails(self):
        """Test that a source without sinks raises."""
        source = MemoryDataSource(flowpaths=[FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=1)])
        with pytest.raises(NoSinkError):
            DirectionalizeEngine(source).do_work()
        assert source.processed == set()

    def test_sink_on_waterbody_is_reported(self):
        """Test the waterbody sink warning."""
        source = MemoryDataSource(
            flowpaths=[
                FlowpathRecord(coordinates=[(0, 0), (-1, 0)], fid=1),
                FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=2),
            ],
            shorelines=[[(0, 0), (0, -5)]],
            waterbodies=[box(-0.5, -0.5, 0.5, 0.5)],
        )
        result = DirectionalizeEngine(source).do_work()

        assert result.features_to_flip == {1, 2}
        assert result.sink_warnings == [Point(0, 0)]
        assert result.source_warnings == []
        assert ("warning", "Potential sink error") in [(lvl, msg) for lvl, msg, _ in source.errors]


class TestSinkPoints:
    """Test sink collection order and sources."""

    def test_sink_sources_in_order(self):
        """Test sink point order."""
        source = MemoryDataSource(
            flowpaths=[
                FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=1),
                FlowpathRecord(coordinates=[(1, 0), (2, 0)], fid=2),
                FlowpathRecord(coordinates=[(1, 0), (1, 1)], fid=3, direction=DirectionType.KNOWN),
            ],
            terminal_nodes=[
                TerminalNode(point=(0, 0), flow_direction=FlowDirection.OUTPUT),
                TerminalNode(point=(5, 5), flow_direction=FlowDirection.INPUT),
            ],
            construction_points=[(0, 0), (2, 0)],
            shorelines=[[(2, 0), (2, 5)]],
        )
        graph = Graph.build(source.query_edges())
        sinks = DirectionalizeEngine(source).get_sink_points(graph)
        assert sinks == [(0.0, 0.0), (2.0, 0.0), (1.0, 1.0)]

    def test_construction_points_need_dangling_nodes(self):
        """Test that construction points need a dangling node."""
        source = MemoryDataSource(
            flowpaths=[
                FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=1),
                FlowpathRecord(coordinates=[(1, 0), (2, 0)], fid=2),
            ],
            construction_points=[(1, 0), (2, 0)],
        )
        graph = Graph.build(source.query_edges())
        assert DirectionalizeEngine(source).get_sink_points(graph) == [(2.0, 0.0)]


class TestCycleCheckEngine:
    """Test validation of stored directions."""

    def test_cycle_is_reported(self):
        """Test cycle reporting."""
        source = MemoryDataSource(
            flowpaths=[
                FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=1, direction=DirectionType.KNOWN),
                FlowpathRecord(coordinates=[(1, 0), (0, 1)], fid=2, direction=DirectionType.KNOWN),
                FlowpathRecord(coordinates=[(0, 1), (0, 0)], fid=3, direction=DirectionType.KNOWN),
            ]
        )
        with pytest.raises(CycleError, match="Dataset contains cycles after directionalization.") as info:
            CycleCheckEngine(source).do_work()
        assert info.value.location.geom_type == "LineString"

    def test_unknown_direction_not_allowed(self):
        """Test that unknown directions are rejected."""
        source = MemoryDataSource(flowpaths=[FlowpathRecord(coordinates=[(0, 0), (1, 0)], fid=1)])
        with pytest.raises(DirectionalizeError, match="unknown direction"):
            CycleCheckEngine(source).do_work()
        CycleCheckEngine(source).do_work(allow_unknown=True)


class TestProcessingLogger:
    """Test finding capture."""

    def test_located_findings_reach_data_source(self):
        """Test that located findings are logged to the data source."""
        source = MemoryDataSource(flowpaths=[])
        processing = ProcessingLogger(source)

        processing.error("Broken", Point(1, 2))
        processing.warning("Suspicious", Point(3, 4), size=2)
        processing.warning("Unlocated")

        assert processing.errors == 1
        assert processing.warnings == 2
        assert [(level, message) for level, message, _ in source.errors] == [
            ("error", "Broken"),
            ("warning", "Suspicious"),
        ]
