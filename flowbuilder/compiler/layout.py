"""
Canvas projection - Read-only view data derived from a graph snapshot.
Positions, duplicate highlighting, edge colours and sidebar placeholder
hints live here. Nothing in this module writes to the graph, and compile
and validate never read from it.
"""

from collections import Counter
from typing import Optional, Dict, List
from pydantic import BaseModel, Field

from flowbuilder.compiler.manifest import (
    FlowGraph, FlowSettings, StepType, PLACEHOLDERS,
)
from flowbuilder.config.settings import settings

ORIGIN_X = 50
ORIGIN_Y = 50
X_STEP = 300
Y_STEP = 150
PEER_OFFSET = 20

EDGE_COLOR_DEFAULT = "#2563eb"
EDGE_COLOR_ITERATION = "#059669"
EDGE_COLOR_ERROR = "#ef4444"


class NodeView(BaseModel):
    node_id: str
    label: str
    sequence_order: int
    step_type: Optional[str] = None
    is_start: bool = False
    position: Dict[str, float] = Field(default_factory=lambda: {"x": 0, "y": 0})
    has_error: bool = False


class EdgeView(BaseModel):
    edge_id: str
    source_node_id: str
    target_node_id: str
    color: str = EDGE_COLOR_DEFAULT
    dashed: bool = False


class PredecessorHint(BaseModel):
    node_id: str
    sequence_order: int
    label: str
    placeholder: str


class NodeHints(BaseModel):
    """What the property sidebar offers for the selected node."""
    node_id: str
    predecessors: List[PredecessorHint] = Field(default_factory=list)
    is_start_connected: bool = False
    iteration_available: bool = False
    placeholders: List[Dict[str, str]] = Field(default_factory=list)
    default_llm_model: Optional[str] = None


def project_nodes(graph: FlowGraph) -> List[NodeView]:
    """
    Staircase layout: each order moves one column right and one row down.
    Nodes sharing an order are nudged apart and flagged.
    """
    counts = Counter(n.sequence_order for n in graph.nodes)
    seen_per_order: Counter = Counter()
    views = []
    for n in graph.nodes:
        order = n.sequence_order
        peer_index = seen_per_order[order]
        seen_per_order[order] += 1
        x = ORIGIN_X + order * X_STEP
        y = ORIGIN_Y + order * Y_STEP
        if counts[order] > 1:
            x += peer_index * PEER_OFFSET
            y += peer_index * PEER_OFFSET
        views.append(NodeView(
            node_id=n.node_id,
            label=n.label,
            sequence_order=order,
            step_type=n.step_type,
            is_start=n.is_start,
            position={"x": x, "y": y},
            has_error=counts[order] > 1,
        ))
    return views


def project_edges(graph: FlowGraph, config: FlowSettings) -> List[EdgeView]:
    start_valid = config.iterate_flow or len(graph.start_edges()) <= 1
    views = []
    for e in graph.edges:
        color, dashed = EDGE_COLOR_DEFAULT, False
        if graph.is_start(e.source_node_id):
            if not start_valid:
                color = EDGE_COLOR_ERROR
            elif config.iterate_flow:
                color, dashed = EDGE_COLOR_ITERATION, True
        views.append(EdgeView(
            edge_id=e.edge_id,
            source_node_id=e.source_node_id,
            target_node_id=e.target_node_id,
            color=color,
            dashed=dashed,
        ))
    return views


def node_hints(graph: FlowGraph, config: FlowSettings, node_id: str) -> Optional[NodeHints]:
    node = graph.get_node(node_id)
    if not node:
        return None
    predecessors = sorted(graph.predecessors(node_id), key=lambda p: p.sequence_order)
    start_connected = graph.is_start_connected(node_id)
    hints = NodeHints(
        node_id=node_id,
        predecessors=[
            PredecessorHint(
                node_id=p.node_id,
                sequence_order=p.sequence_order,
                label=p.label,
                placeholder=f"{{{{step_{p.sequence_order}}}}}",
            )
            for p in predecessors
        ],
        is_start_connected=start_connected,
        iteration_available=config.iterate_flow and start_connected,
        placeholders=list(PLACEHOLDERS),
    )
    if node.step_type == StepType.LLM.value:
        hints.default_llm_model = node.llm_model if node.llm_model is not None else settings.default_llm_model
    return hints
