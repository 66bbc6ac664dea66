"""
Flow Manifest Schema - In-memory graph and exported document for step flows.
The FlowGraph is what the canvas edits; the FlowDocument is the normalized
JSON handed to the execution engine. Every exported flow serializes to the
FlowDocument shape and every import starts from it.
"""

import uuid
from typing import Optional, Dict, List, Any
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field

from flowbuilder.config.settings import settings


START_NODE_ID = "start"
START_NODE_LABEL = "Start / Configuration"
GLOBAL_SCOPE = "global"


class StepType(str, Enum):
    """Step kinds available in the canvas palette."""
    SQL = "sql"
    LLM = "llm"
    CONCAT = "concat"


class TimeGrain(str, Enum):
    MONTH = "month"
    DAY = "day"


class TimeMode(str, Enum):
    CLOSED_OPEN = "closed_open"
    CLOSED_CLOSED = "closed_closed"
    OPEN_CLOSED = "open_closed"
    OPEN_OPEN = "open_open"


STEP_TYPES = [
    {"value": StepType.SQL.value, "label": "SQL Query"},
    {"value": StepType.LLM.value, "label": "LLM Analysis"},
    {"value": StepType.CONCAT.value, "label": "Concatenation / Formatting"},
]

PLACEHOLDERS = [
    {"label": "{{iteration_value}}", "desc": "Current iteration value (e.g. Consultant Name)"},
    {"label": "{{step_N}}", "desc": "Output of Step N (e.g., {{step_1}})"},
    {"label": "{{sequence_name}}", "desc": "Refer to step by name"},
]


def step_scope(sequence_order: Any) -> str:
    return f"step:{sequence_order}"


# ── Graph ─────────────────────────────────────────────────────────────

class StepNode(BaseModel):
    """
    A node on the canvas. The start node is a StepNode with is_start=True
    and sequence_order 0; it holds no step content of its own.
    Kind and time vocabulary fields are plain strings so that edits and
    imports store exactly what they were given.
    """
    model_config = ConfigDict(validate_assignment=True)

    node_id: str
    label: str = ""
    sequence_order: int = 0
    step_type: Optional[str] = None  # sql | llm | concat
    content: str = ""
    max_retry: Optional[int] = None

    # SQL
    iteration_column: Optional[str] = None
    time_column: Optional[str] = None
    time_amount: Optional[int] = None
    time_grain: Optional[str] = None  # day | month
    time_mode: Optional[str] = None
    reference_date: Optional[str] = None  # YYYY-MM

    # LLM
    llm_model: Optional[str] = None

    is_start: bool = False

    @property
    def effective_type(self) -> str:
        """Kind written to the exported `type` field; absent means SQL."""
        return self.step_type or StepType.SQL.value


IDENTITY_FIELDS = frozenset({"node_id", "is_start"})


def make_start_node() -> StepNode:
    return StepNode(
        node_id=START_NODE_ID,
        label=START_NODE_LABEL,
        sequence_order=0,
        is_start=True,
    )


class FlowEdge(BaseModel):
    """A directed connection between two nodes."""
    edge_id: str = Field(default_factory=lambda: f"edge-{uuid.uuid4().hex[:8]}")
    source_node_id: str
    target_node_id: str


class FlowGraph(BaseModel):
    """
    Node/edge arena. Nodes and edges reference each other by id only, so
    cycles and dangling orders are representable; whether they are valid is
    reported by the validator, never enforced here.
    """
    nodes: List[StepNode] = Field(default_factory=lambda: [make_start_node()])
    edges: List[FlowEdge] = Field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[StepNode]:
        for n in self.nodes:
            if n.node_id == node_id:
                return n
        return None

    def get_start_node(self) -> Optional[StepNode]:
        for n in self.nodes:
            if n.is_start:
                return n
        return None

    def is_start(self, node_id: str) -> bool:
        node = self.get_node(node_id)
        return node is not None and node.is_start

    def step_nodes(self) -> List[StepNode]:
        """Non-start nodes in stored order."""
        return [n for n in self.nodes if not n.is_start]

    def get_edge(self, edge_id: str) -> Optional[FlowEdge]:
        for e in self.edges:
            if e.edge_id == edge_id:
                return e
        return None

    def find_edge(self, source_node_id: str, target_node_id: str) -> Optional[FlowEdge]:
        for e in self.edges:
            if e.source_node_id == source_node_id and e.target_node_id == target_node_id:
                return e
        return None

    def get_outgoing_edges(self, node_id: str) -> List[FlowEdge]:
        return [e for e in self.edges if e.source_node_id == node_id]

    def get_incoming_edges(self, node_id: str) -> List[FlowEdge]:
        return [e for e in self.edges if e.target_node_id == node_id]

    def start_edges(self) -> List[FlowEdge]:
        return [e for e in self.edges if self.is_start(e.source_node_id)]

    def predecessors(self, node_id: str) -> List[StepNode]:
        """Direct non-start predecessors of a node, in stored node order."""
        source_ids = {e.source_node_id for e in self.get_incoming_edges(node_id)}
        return [n for n in self.nodes if n.node_id in source_ids and not n.is_start]

    def is_start_connected(self, node_id: str) -> bool:
        return any(self.is_start(e.source_node_id) for e in self.get_incoming_edges(node_id))

    def max_sequence_order(self) -> int:
        return max((n.sequence_order for n in self.nodes), default=0)

    def add_edge(self, source_node_id: str, target_node_id: str) -> FlowEdge:
        """Append an edge, or return the existing one for the same ordered pair."""
        existing = self.find_edge(source_node_id, target_node_id)
        if existing:
            return existing
        edge = FlowEdge(source_node_id=source_node_id, target_node_id=target_node_id)
        self.edges.append(edge)
        return edge


# ── Global configuration ──────────────────────────────────────────────

class DeliveryConfig(BaseModel):
    """Who receives the flow output."""
    method: str = "email"
    recipients: List[str] = Field(default_factory=list)
    iteration_names: List[str] = Field(default_factory=list)


class FlowSettings(BaseModel):
    """Global settings carried by the start node, passed explicitly to compile/validate."""
    flow_name: str = Field(default_factory=lambda: settings.default_flow_name)
    cron_expression: str = ""
    iterate_flow: bool = False
    iteration_query: str = ""
    delivery_config: List[DeliveryConfig] = Field(default_factory=list)


# ── Exported document ─────────────────────────────────────────────────

class StepRecord(BaseModel):
    """One step of the exported document. Unset optional fields are omitted on the wire."""
    sequence_order: int
    sequence_name: str = ""
    type: str = StepType.SQL.value
    value: str = ""
    depends_on: Optional[str] = None  # "1,2"
    max_retry: Optional[int] = None

    # SQL
    append_iteration_column: Optional[str] = None
    append_time_column: Optional[str] = None
    time_range: Optional[str] = None  # last_7_days
    time_grain: Optional[str] = None
    time_mode: Optional[str] = None
    reference_date: Optional[str] = None

    # LLM
    llm_model: Optional[str] = None


class FlowDocument(BaseModel):
    """The normalized flow JSON consumed by the execution engine."""
    flow_name: str
    iterate_flow: bool = False
    iterable_steps: Optional[List[int]] = None
    get_iterate_list: Optional[str] = None
    steps: List[StepRecord] = Field(default_factory=list)
    delivery_config: Optional[List[DeliveryConfig]] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Diagnostic(BaseModel):
    """An advisory validation finding. Never blocks export."""
    scope: str = GLOBAL_SCOPE  # "global" | "step:<order>"
    message: str
