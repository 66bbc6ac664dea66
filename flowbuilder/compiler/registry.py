"""
Flow Registry - In-memory sessions for flows being edited.
A FlowSession pairs one Graph Store with its global settings and is the unit
that export and import act on. Import swaps both in one step or not at all.
"""

import uuid
import logging
from typing import Optional, Dict, List, Any, Union
from datetime import datetime

from flowbuilder.compiler.manifest import FlowGraph, FlowSettings, Diagnostic
from flowbuilder.compiler.store import GraphStore
from flowbuilder.compiler.validator import FlowValidator
from flowbuilder.compiler.compiler import FlowCompiler
from flowbuilder.compiler.reconstructor import (
    FlowReconstructor, parse_flow_json, ensure_document_object,
)

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = ("flow_name", "cron_expression", "iterate_flow", "iteration_query", "delivery_config")


class FlowSession:
    """One editable flow: graph store, global settings and timestamps."""

    def __init__(
        self,
        flow_id: Optional[str] = None,
        config: Optional[FlowSettings] = None,
        graph: Optional[FlowGraph] = None,
        validator: Optional[FlowValidator] = None,
        compiler: Optional[FlowCompiler] = None,
        reconstructor: Optional[FlowReconstructor] = None,
    ):
        self.flow_id = flow_id or f"FL-{uuid.uuid4().hex[:8].upper()}"
        self.store = GraphStore(graph)
        self.config = config or FlowSettings()
        self.created_at = datetime.utcnow()
        self.updated_at = self.created_at
        self.import_count = 0
        self._validator = validator or FlowValidator()
        self._compiler = compiler or FlowCompiler()
        self._reconstructor = reconstructor or FlowReconstructor()

    @property
    def graph(self) -> FlowGraph:
        return self.store.graph

    def touch(self) -> None:
        self.updated_at = datetime.utcnow()

    # ── Global settings ───────────────────────────────────────────────

    def update_settings(self, updates: Dict[str, Any]) -> FlowSettings:
        """Apply partial settings. Unknown keys are refused before anything changes."""
        unknown = [k for k in updates if k not in SETTINGS_FIELDS]
        if unknown:
            raise ValueError(f"Unknown settings: {unknown}")
        merged = self.config.model_dump()
        merged.update(updates)
        self.config = FlowSettings(**merged)
        self.touch()
        return self.config

    # ── Validate / export ─────────────────────────────────────────────

    def validate(self) -> List[Diagnostic]:
        return self._validator.validate(self.store.snapshot(), self.config)

    def export(self) -> Dict[str, Any]:
        return self._compiler.compile(self.store.snapshot(), self.config).to_wire()

    # ── Import ────────────────────────────────────────────────────────

    def import_document(self, document: Any) -> None:
        """
        Replace graph and settings from a parsed document. If the payload is
        refused, ImportParseFailure propagates and the session is untouched.
        """
        try:
            graph, config = self._reconstructor.reconstruct(ensure_document_object(document))
        except ValueError as e:
            logger.warning(f"[IMPORT] Rejected import into {self.flow_id}: {e}")
            raise
        self.store.replace(graph)
        self.config = config
        self.import_count += 1
        self.touch()
        logger.info(f"[IMPORT] Flow {self.flow_id} replaced from document '{config.flow_name}'")

    def import_json(self, raw: Union[str, bytes], max_bytes: Optional[int] = None) -> None:
        try:
            document = parse_flow_json(raw, max_bytes)
        except ValueError as e:
            logger.warning(f"[IMPORT] Rejected import into {self.flow_id}: {e}")
            raise
        self.import_document(document)

    def summary(self) -> Dict[str, Any]:
        return {
            "flow_id": self.flow_id,
            "flow_name": self.config.flow_name,
            "iterate_flow": self.config.iterate_flow,
            "step_count": len(self.graph.step_nodes()),
            "edge_count": len(self.graph.edges),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class FlowRegistry:
    """Central in-memory registry of flow sessions."""

    def __init__(self):
        self._flows: Dict[str, FlowSession] = {}

    # ── CRUD ──────────────────────────────────────────────────────────

    def create(self, flow_name: Optional[str] = None) -> FlowSession:
        config = FlowSettings(flow_name=flow_name) if flow_name else FlowSettings()
        session = FlowSession(config=config)
        self._flows[session.flow_id] = session
        logger.info(f"[REGISTRY] Created flow {session.flow_id} '{config.flow_name}'")
        return session

    def get(self, flow_id: str) -> Optional[FlowSession]:
        return self._flows.get(flow_id)

    def delete(self, flow_id: str) -> bool:
        removed = self._flows.pop(flow_id, None)
        if removed:
            logger.info(f"[REGISTRY] Deleted flow {flow_id}")
        return removed is not None

    def list_all(self) -> List[FlowSession]:
        return sorted(self._flows.values(), key=lambda s: s.updated_at, reverse=True)

    def search(self, query: str) -> List[FlowSession]:
        q = query.lower()
        return [s for s in self._flows.values() if q in s.config.flow_name.lower()]

    # ── Import ────────────────────────────────────────────────────────

    def import_flow(self, raw: Union[str, bytes]) -> FlowSession:
        """Create a new session from an uploaded flow file."""
        session = FlowSession()
        session.import_json(raw)
        self._flows[session.flow_id] = session
        return session

    # ── Stats ─────────────────────────────────────────────────────────

    def get_stats(self) -> Dict[str, Any]:
        sessions = list(self._flows.values())
        return {
            "total_flows": len(sessions),
            "iterated_flows": sum(1 for s in sessions if s.config.iterate_flow),
            "total_steps": sum(len(s.graph.step_nodes()) for s in sessions),
            "total_imports": sum(s.import_count for s in sessions),
        }
