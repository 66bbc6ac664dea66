"""Flow Compiler - Edit step graphs, validate them, and compile to/from flow documents"""
from .manifest import (
    FlowGraph, StepNode, FlowEdge, FlowSettings, FlowDocument, StepRecord,
    DeliveryConfig, Diagnostic, StepType, TimeGrain, TimeMode,
)
from .errors import FlowBuilderError, StructuralRejection, ImportParseFailure, NodeNotFoundError
from .store import GraphStore
from .validator import FlowValidator, validate
from .compiler import FlowCompiler, compile_flow
from .reconstructor import FlowReconstructor, reconstruct, parse_flow_json
from .registry import FlowSession, FlowRegistry

__all__ = [
    "FlowGraph", "StepNode", "FlowEdge", "FlowSettings", "FlowDocument", "StepRecord",
    "DeliveryConfig", "Diagnostic", "StepType", "TimeGrain", "TimeMode",
    "FlowBuilderError", "StructuralRejection", "ImportParseFailure", "NodeNotFoundError",
    "GraphStore",
    "FlowValidator", "validate",
    "FlowCompiler", "compile_flow",
    "FlowReconstructor", "reconstruct", "parse_flow_json",
    "FlowSession", "FlowRegistry",
]
