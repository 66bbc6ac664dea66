"""
Flow Validator - Advisory checks over a graph snapshot.
Every rule runs on every call; findings are returned as a complete list and
never block export. Global rules come first in a fixed order, then per-step
rules for each node in stored order.
"""

import re
from typing import List, Optional, Set

from flowbuilder.compiler.manifest import (
    FlowGraph, FlowSettings, StepNode, StepType, Diagnostic, GLOBAL_SCOPE, step_scope,
)

PLACEHOLDER_PATTERN = re.compile(r"\{\{(.*?)\}\}")
STEP_TAG_PATTERN = re.compile(r"^step_(\d+)$")
ITERATION_TAG = "iteration_value"


def extract_placeholders(content: Optional[str]) -> List[str]:
    """Distinct `{{tag}}` names in first-seen order, taken verbatim."""
    tags: List[str] = []
    for tag in PLACEHOLDER_PATTERN.findall(str(content or "")):
        if tag not in tags:
            tags.append(tag)
    return tags


def _is_blank(value) -> bool:
    return not value or not str(value).strip()


class FlowValidator:
    """Stateless rule set. Instances hold no graph; pass one in per call."""

    def validate(self, graph: FlowGraph, config: FlowSettings) -> List[Diagnostic]:
        diagnostics: List[Diagnostic] = []
        steps = graph.step_nodes()

        # 1. Duplicate sequence orders
        if self._has_duplicate_orders(steps):
            diagnostics.append(Diagnostic(scope=GLOBAL_SCOPE, message="Duplicate Sequence # Detected"))

        # 2. Single path from start
        if not config.iterate_flow and len(graph.start_edges()) > 1:
            diagnostics.append(Diagnostic(
                scope=GLOBAL_SCOPE, message="Invalid Start Connection (Single path only)",
            ))

        # 3. Terminal step must be CONCAT
        if steps:
            last = max(steps, key=lambda n: n.sequence_order)
            if last.step_type != StepType.CONCAT.value:
                diagnostics.append(Diagnostic(scope=GLOBAL_SCOPE, message="Flow must end with CONCAT"))

        # 4. Iteration needs a query
        if config.iterate_flow and _is_blank(config.iteration_query):
            diagnostics.append(Diagnostic(scope=GLOBAL_SCOPE, message="Iteration Query Empty"))

        for node in steps:
            diagnostics.extend(self._check_node(graph, node, config))

        return diagnostics

    def _has_duplicate_orders(self, steps: List[StepNode]) -> bool:
        seen: Set[int] = set()
        for n in steps:
            if n.sequence_order in seen:
                return True
            seen.add(n.sequence_order)
        return False

    def _check_node(self, graph: FlowGraph, node: StepNode, config: FlowSettings) -> List[Diagnostic]:
        order = node.sequence_order
        scope = step_scope(order)
        found: List[Diagnostic] = []
        is_sql = node.step_type == StepType.SQL.value

        if is_sql and _is_blank(node.content):
            found.append(Diagnostic(scope=scope, message=f"Step {order}: SQL Query is empty"))

        if is_sql and node.time_column:
            if not node.time_amount or not node.time_grain or not node.time_mode:
                found.append(Diagnostic(scope=scope, message=f"Step {order}: Incomplete Time Configuration"))

        tags = extract_placeholders(node.content)
        if not tags:
            return found

        predecessor_orders = {p.sequence_order for p in graph.predecessors(node.node_id)}
        start_connected = graph.is_start_connected(node.node_id)

        for tag in tags:
            if tag == ITERATION_TAG:
                if not config.iterate_flow:
                    found.append(Diagnostic(
                        scope=scope,
                        message=f"Step {order}: {{{{iteration_value}}}} requires Iterated Flow",
                    ))
                elif not start_connected:
                    found.append(Diagnostic(
                        scope=scope,
                        message=f"Step {order}: {{{{iteration_value}}}} used but not connected to Start",
                    ))
                continue

            match = STEP_TAG_PATTERN.match(tag)
            if not match:
                # Other tag shapes (e.g. {{sequence_name}}) are not checked
                continue
            referenced = int(match.group(1))
            if referenced not in predecessor_orders:
                found.append(Diagnostic(
                    scope=scope,
                    message=f"Step {order}: {{{{{tag}}}}} used but Step {referenced} is not connected",
                ))

        return found


_default_validator = FlowValidator()


def validate(graph: FlowGraph, config: FlowSettings) -> List[Diagnostic]:
    return _default_validator.validate(graph, config)
