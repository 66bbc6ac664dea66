"""
Graph Store - The single mutable copy of a flow graph.
All edits from the canvas go through here. Connect is total except for one
refusal: a second start connection on a non-iterated flow. The start node
keeps sequence order 0.
Cycles, duplicate orders and dangling placeholders are left for the
validator to report.
"""

import uuid
import logging
from typing import Optional, Any, List

from flowbuilder.compiler.manifest import (
    FlowGraph, StepNode, FlowEdge, StepType, IDENTITY_FIELDS,
)
from flowbuilder.compiler.errors import StructuralRejection, NodeNotFoundError

logger = logging.getLogger(__name__)


class GraphStore:
    """Owns one FlowGraph and applies edit intents to it."""

    def __init__(self, graph: Optional[FlowGraph] = None):
        self._graph = graph or FlowGraph()

    @property
    def graph(self) -> FlowGraph:
        return self._graph

    def snapshot(self) -> FlowGraph:
        """Deep copy for compile/validate so later edits don't leak in."""
        return self._graph.model_copy(deep=True)

    def replace(self, graph: FlowGraph) -> None:
        """Swap in a whole new graph (used by import)."""
        self._graph = graph
        logger.debug(f"[STORE] Graph replaced ({len(graph.nodes)} nodes, {len(graph.edges)} edges)")

    # ── Nodes ─────────────────────────────────────────────────────────

    def add_node(self, kind: str) -> str:
        """Append a step after the current highest sequence order and return its id."""
        kind_value = kind.value if isinstance(kind, StepType) else str(kind)
        node = StepNode(
            node_id=f"node-{uuid.uuid4().hex[:8]}",
            label=f"New {kind_value.upper()} Step",
            sequence_order=self._graph.max_sequence_order() + 1,
            step_type=kind_value,
        )
        self._graph.nodes.append(node)
        logger.debug(f"[STORE] Added {kind_value} node {node.node_id} at order {node.sequence_order}")
        return node.node_id

    def remove_node(self, node_id: str) -> bool:
        """Delete a step and every edge touching it. The start node is never removed."""
        node = self._graph.get_node(node_id)
        if not node or node.is_start:
            return False
        self._graph.nodes = [n for n in self._graph.nodes if n.node_id != node_id]
        before = len(self._graph.edges)
        self._graph.edges = [
            e for e in self._graph.edges
            if e.source_node_id != node_id and e.target_node_id != node_id
        ]
        logger.debug(
            f"[STORE] Removed node {node_id} and {before - len(self._graph.edges)} incident edges"
        )
        return True

    def update_field(self, node_id: str, field: str, value: Any) -> Optional[StepNode]:
        """Set one node field as-is. No cross-field checks happen here."""
        if field in IDENTITY_FIELDS:
            raise ValueError(f"Field '{field}' cannot be edited")
        if field not in StepNode.model_fields:
            raise ValueError(f"Unknown node field '{field}'")
        node = self._graph.get_node(node_id)
        if not node:
            return None
        if node.is_start and field == "sequence_order":
            raise ValueError("The start node always has sequence order 0")
        setattr(node, field, value)
        return node

    # ── Edges ─────────────────────────────────────────────────────────

    def connect(self, source_node_id: str, target_node_id: str, iterate_flow: bool = False) -> FlowEdge:
        """
        Add a directed edge. Without iteration the start node may feed only
        one step; a second start edge raises StructuralRejection and leaves
        the edge set untouched.
        """
        source = self._graph.get_node(source_node_id)
        if not source:
            raise NodeNotFoundError(source_node_id)
        if not self._graph.get_node(target_node_id):
            raise NodeNotFoundError(target_node_id)

        existing = self._graph.find_edge(source_node_id, target_node_id)
        if existing:
            return existing

        if source.is_start and not iterate_flow and self._graph.get_outgoing_edges(source_node_id):
            logger.warning(
                f"[STORE] Rejected start connection to {target_node_id}: single path only"
            )
            raise StructuralRejection(
                source_node_id,
                target_node_id,
                "Without 'Iterate Flow' enabled, the start node can only connect to one step.",
            )

        edge = self._graph.add_edge(source_node_id, target_node_id)
        logger.debug(f"[STORE] Connected {source_node_id} -> {target_node_id} ({edge.edge_id})")
        return edge

    def disconnect(self, edge_id: str) -> bool:
        before = len(self._graph.edges)
        self._graph.edges = [e for e in self._graph.edges if e.edge_id != edge_id]
        removed = len(self._graph.edges) != before
        if removed:
            logger.debug(f"[STORE] Disconnected {edge_id}")
        return removed

    def list_nodes(self) -> List[StepNode]:
        return list(self._graph.nodes)

    def list_edges(self) -> List[FlowEdge]:
        return list(self._graph.edges)
