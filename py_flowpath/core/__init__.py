"""
Core flowpath directionalization functionality.
"""

from .types import DirectionType, EdgeOrigin, EcType, EfType, FlowDirection, FlowpathRecord, TerminalNode
from .exceptions import CycleError, DirectionalizeError, ExceptionWithLocation, NoSinkError
from .graph import Edge, Graph, Node, Path, SubGraph
from .cycle_checker import CycleChecker
from .directionalizer import DirectionalizeOptions, Directionalizer

__all__ = ['DirectionType', 'EdgeOrigin', 'EcType', 'EfType', 'FlowDirection', 'FlowpathRecord',
           'TerminalNode', 'CycleError', 'DirectionalizeError', 'ExceptionWithLocation', 'NoSinkError',
           'Edge', 'Graph', 'Node', 'Path', 'SubGraph', 'CycleChecker',
           'DirectionalizeOptions', 'Directionalizer']
