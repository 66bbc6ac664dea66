"""
Flow Reconstructor - Rebuilds an editable graph from an exported flow document.
Input is untrusted: missing or malformed fields fall back to defaults or are
skipped, so a partial or legacy document still yields a usable graph. Only a
payload that is not a JSON object at all is refused, and that happens at the
parse boundary before reconstruction starts.
"""

import json
import uuid
import logging
from typing import Optional, Dict, List, Any, Tuple, Union

from flowbuilder.compiler.manifest import (
    FlowGraph, FlowSettings, StepNode, DeliveryConfig, TimeGrain, make_start_node,
)
from flowbuilder.compiler.errors import ImportParseFailure
from flowbuilder.config.settings import settings

logger = logging.getLogger(__name__)

KNOWN_GRAINS = {g.value for g in TimeGrain}


# ── Parse boundary ────────────────────────────────────────────────────

def parse_flow_json(raw: Union[str, bytes], max_bytes: Optional[int] = None) -> Dict[str, Any]:
    """Decode an uploaded flow file. Anything but a JSON object raises ImportParseFailure."""
    limit = max_bytes if max_bytes is not None else settings.max_import_bytes
    if len(raw) > limit:
        raise ImportParseFailure(f"Import payload exceeds {limit} bytes")
    try:
        data = json.loads(raw)
    except (ValueError, TypeError) as e:
        raise ImportParseFailure(f"Invalid JSON file: {e}") from e
    return ensure_document_object(data)


def ensure_document_object(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ImportParseFailure(
            f"Flow export must be a JSON object, got {type(data).__name__}"
        )
    return data


# ── Field coercion ────────────────────────────────────────────────────

def _as_int(value: Any) -> Optional[int]:
    """Best-effort integer: 3, 3.0, "3", " 3 " -> 3; anything else -> None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _as_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def normalize_depends_on(value: Any) -> Optional[List[int]]:
    """
    Canonical predecessor orders for a step.
    Accepts "1,2", 1, [1, "2"]. Returns None when the step declares no
    dependencies (absent, "", 0, false) so the caller can fall back to
    positional wiring. Unparsable entries are dropped.
    """
    if value is None or value is False or value == "" or value == 0:
        return None
    if isinstance(value, str):
        parts = value.split(",")
    elif isinstance(value, list):
        parts = value
    elif isinstance(value, (int, float)):
        parts = [value]
    else:
        return []
    orders = []
    for part in parts:
        order = _as_int(part)
        if order is not None:
            orders.append(order)
    return orders


def parse_time_range(time_range: Any) -> Tuple[Optional[int], Optional[str]]:
    """
    "last_7_days" -> (7, "day"). Each half is kept only if it parses; the
    grain must be one of the known TimeGrain values.
    """
    if not isinstance(time_range, str):
        return None, None
    parts = time_range.split("_")
    if len(parts) < 3:
        return None, None
    amount = _as_int(parts[1])
    grain = parts[2]
    if grain.endswith("s"):
        grain = grain[:-1]
    return amount, grain if grain in KNOWN_GRAINS else None


def _parse_delivery_config(value: Any) -> List[DeliveryConfig]:
    if not isinstance(value, list):
        return []
    rules = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        rules.append(DeliveryConfig(
            method=_as_str(entry.get("method")) or "email",
            recipients=_as_str_list(entry.get("recipients")),
            iteration_names=_as_str_list(entry.get("iteration_names")),
        ))
    return rules


# ── Reconstruction ────────────────────────────────────────────────────

class FlowReconstructor:
    """Inverse of FlowCompiler. Never raises for field-level problems."""

    def reconstruct(self, document: Dict[str, Any]) -> Tuple[FlowGraph, FlowSettings]:
        document = ensure_document_object(document)
        start = make_start_node()
        graph = FlowGraph(nodes=[start], edges=[])

        raw_steps = document.get("steps")
        steps = [s for s in raw_steps if isinstance(s, dict)] if isinstance(raw_steps, list) else []

        # Steps, plus the order -> node id lookup used for wiring
        order_to_id: Dict[int, str] = {}
        built: List[Tuple[Dict[str, Any], StepNode]] = []
        for position, step in enumerate(steps, start=1):
            node = self._build_node(step, position)
            graph.nodes.append(node)
            order_to_id[node.sequence_order] = node.node_id
            built.append((step, node))

        iterate_flow = bool(document.get("iterate_flow"))

        # Iteration edges: start -> each iterable step
        if iterate_flow and isinstance(document.get("iterable_steps"), list):
            for value in document["iterable_steps"]:
                target_id = order_to_id.get(_as_int(value))
                if target_id:
                    graph.add_edge(start.node_id, target_id)

        # Dependency edges, or linear wiring when none are declared
        for step, node in built:
            dependencies = normalize_depends_on(step.get("depends_on"))
            if dependencies is not None:
                for order in dependencies:
                    source_id = order_to_id.get(order)
                    if source_id:
                        graph.add_edge(source_id, node.node_id)
            elif node.sequence_order == 1:
                graph.add_edge(start.node_id, node.node_id)
            elif node.sequence_order > 1:
                source_id = order_to_id.get(node.sequence_order - 1)
                if source_id:
                    graph.add_edge(source_id, node.node_id)

        config = FlowSettings(
            flow_name=_as_str(document.get("flow_name")) or settings.imported_flow_name,
            iterate_flow=iterate_flow,
            iteration_query=_as_str(document.get("get_iterate_list")) or "",
            delivery_config=_parse_delivery_config(document.get("delivery_config")),
        )

        logger.info(
            f"[IMPORT] Reconstructed '{config.flow_name}': "
            f"{len(graph.nodes) - 1} steps, {len(graph.edges)} edges"
        )
        return graph, config

    def _build_node(self, step: Dict[str, Any], position: int) -> StepNode:
        order = _as_int(step.get("sequence_order"))
        if order is None:
            order = position
            logger.debug(f"[IMPORT] Step #{position} has no usable sequence_order; using {order}")

        if step.get("time_range"):
            time_amount, time_grain = parse_time_range(step["time_range"])
        else:
            time_amount, time_grain = None, _as_str(step.get("time_grain"))

        return StepNode(
            node_id=f"node-{order}-{uuid.uuid4().hex[:8]}",
            label=_as_str(step.get("sequence_name")) or f"Step {order}",
            sequence_order=order,
            step_type=_as_str(step.get("type")),
            content=_as_str(step.get("value")) or "",
            max_retry=_as_int(step.get("max_retry")),
            iteration_column=_as_str(step.get("append_iteration_column")),
            time_column=_as_str(step.get("append_time_column")),
            time_amount=time_amount,
            time_grain=time_grain,
            time_mode=_as_str(step.get("time_mode")),
            reference_date=_as_str(step.get("reference_date")),
            llm_model=_as_str(step.get("llm_model")),
        )


_default_reconstructor = FlowReconstructor()


def reconstruct(document: Dict[str, Any]) -> Tuple[FlowGraph, FlowSettings]:
    return _default_reconstructor.reconstruct(document)
