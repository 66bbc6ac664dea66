"""
Flow Compiler - Compiles the canvas graph into the normalized flow document.
This is the export path: whatever the validator says, compile always
produces a document.

Compilation Pipeline:
1. Step selection (non-start nodes, stable sort by sequence order)
2. Iteration entry points (steps fed directly by the start node)
3. Step record generation (dependencies, retry, SQL / LLM options)
4. Document assembly
"""

import time
import logging
from typing import Optional, List, Dict, Any

from flowbuilder.compiler.manifest import (
    FlowGraph, FlowSettings, FlowDocument, StepRecord, StepNode, StepType,
)

logger = logging.getLogger(__name__)


def format_time_range(amount: Any, grain: Any) -> str:
    """7, "day" -> "last_7_days"."""
    return f"last_{amount}_{grain}s"


class FlowCompiler:
    """
    Turns a FlowGraph plus FlowSettings into a FlowDocument. Pure and total:
    the same inputs always give the same document and nothing is rejected.
    """

    def compile(self, graph: FlowGraph, config: FlowSettings) -> FlowDocument:
        start = time.time()

        # Step 1: Select and order steps
        steps = sorted(graph.step_nodes(), key=lambda n: n.sequence_order)

        # Step 2: Iteration entry points
        iterable_steps: Optional[List[int]] = None
        if config.iterate_flow:
            start_targets = {e.target_node_id for e in graph.start_edges()}
            iterable_steps = [n.sequence_order for n in steps if n.node_id in start_targets]

        # Step 3: Step records
        records = [self._build_step_record(graph, node) for node in steps]

        # Step 4: Assemble
        document = FlowDocument(
            flow_name=config.flow_name,
            iterate_flow=config.iterate_flow,
            steps=records,
        )
        if config.iterate_flow:
            document.iterable_steps = iterable_steps
            document.get_iterate_list = config.iteration_query
        if config.delivery_config:
            document.delivery_config = [d.model_copy(deep=True) for d in config.delivery_config]

        elapsed_ms = round((time.time() - start) * 1000, 1)
        logger.info(
            f"[COMPILER] Compiled '{config.flow_name}': {len(records)} steps, "
            f"iterate={config.iterate_flow} ({elapsed_ms}ms)"
        )
        return document

    def compile_to_dict(self, graph: FlowGraph, config: FlowSettings) -> Dict[str, Any]:
        return self.compile(graph, config).to_wire()

    def _build_step_record(self, graph: FlowGraph, node: StepNode) -> StepRecord:
        record = StepRecord(
            sequence_order=node.sequence_order,
            sequence_name=node.label,
            type=node.effective_type,
            value=node.content,
        )

        dependency_orders = sorted({p.sequence_order for p in graph.predecessors(node.node_id)})
        if dependency_orders:
            record.depends_on = ",".join(str(o) for o in dependency_orders)

        if node.max_retry:
            record.max_retry = node.max_retry

        # SQL and LLM options follow the stored kind; an absent kind is only labelled SQL
        if node.step_type == StepType.SQL.value:
            self._apply_sql_options(node, record)
        elif node.step_type == StepType.LLM.value and node.llm_model:
            record.llm_model = node.llm_model

        return record

    def _apply_sql_options(self, node: StepNode, record: StepRecord) -> None:
        if node.iteration_column:
            record.append_iteration_column = node.iteration_column
        if node.time_column:
            record.append_time_column = node.time_column
            if node.time_amount and node.time_grain:
                record.time_range = format_time_range(node.time_amount, node.time_grain)
            if node.time_grain:
                record.time_grain = node.time_grain
            if node.time_mode:
                record.time_mode = node.time_mode
        if node.reference_date:
            record.reference_date = node.reference_date


_default_compiler = FlowCompiler()


def compile_flow(graph: FlowGraph, config: FlowSettings) -> FlowDocument:
    return _default_compiler.compile(graph, config)
