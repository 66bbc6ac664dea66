"""
Tests for FlowValidator - global rules, per-step rules, placeholder scan.
Run: pytest tests/test_validator.py -v
"""
import pytest
from flowbuilder.compiler.manifest import (
    FlowSettings, FlowGraph, StepNode, START_NODE_ID, make_start_node,
)
from flowbuilder.compiler.store import GraphStore
from flowbuilder.compiler.validator import validate, extract_placeholders


def _messages(diagnostics):
    return [d.message for d in diagnostics]


def _add(store, kind, content="", **fields):
    node_id = store.add_node(kind)
    store.update_field(node_id, "content", content)
    for field, value in fields.items():
        store.update_field(node_id, field, value)
    return node_id


class TestEndToEnd:

    def test_linear_flow_is_valid(self, linear_flow, flow_settings):
        store, _, _ = linear_flow
        assert validate(store.graph, flow_settings) == []

    def test_iterated_flow_is_valid(self):
        store = GraphStore()
        sql = _add(store, "sql", "SELECT * FROM t WHERE id = {{iteration_value}}")
        concat = _add(store, "concat", "{{step_1}}")
        store.connect(START_NODE_ID, sql, iterate_flow=True)
        store.connect(sql, concat)
        config = FlowSettings(iterate_flow=True, iteration_query="SELECT id FROM t")
        assert validate(store.graph, config) == []

    def test_empty_graph_is_valid(self, graph_store, flow_settings):
        assert validate(graph_store.graph, flow_settings) == []


class TestGlobalRules:

    def test_duplicate_orders_flagged_once(self, flow_settings):
        store = GraphStore()
        a = _add(store, "sql", "SELECT 1")
        b = _add(store, "sql", "SELECT 2")
        c = _add(store, "concat", "x")
        store.update_field(b, "sequence_order", 1)
        store.update_field(c, "sequence_order", 1)
        diagnostics = validate(store.graph, flow_settings)
        assert _messages(diagnostics).count("Duplicate Sequence # Detected") == 1
        assert diagnostics[0].scope == "global"

    def test_distinct_orders_not_flagged(self, linear_flow, flow_settings):
        store, _, _ = linear_flow
        assert "Duplicate Sequence # Detected" not in _messages(validate(store.graph, flow_settings))

    def test_step_sharing_start_order_not_duplicate(self, flow_settings):
        store = GraphStore()
        a = _add(store, "concat", "x")
        store.update_field(a, "sequence_order", 0)
        assert "Duplicate Sequence # Detected" not in _messages(validate(store.graph, flow_settings))

    def test_start_fan_out_flagged_without_iteration(self):
        store = GraphStore()
        a = _add(store, "sql", "SELECT 1")
        b = _add(store, "concat", "x")
        store.connect(START_NODE_ID, a, iterate_flow=True)
        store.connect(START_NODE_ID, b, iterate_flow=True)
        non_iterated = validate(store.graph, FlowSettings(iterate_flow=False))
        assert "Invalid Start Connection (Single path only)" in _messages(non_iterated)
        iterated = validate(store.graph, FlowSettings(iterate_flow=True, iteration_query="q"))
        assert "Invalid Start Connection (Single path only)" not in _messages(iterated)

    def test_terminal_must_be_concat(self, flow_settings):
        store = GraphStore()
        _add(store, "concat", "x")
        _add(store, "sql", "SELECT 1")
        assert "Flow must end with CONCAT" in _messages(validate(store.graph, flow_settings))

    def test_adding_higher_concat_clears_terminal_rule(self, flow_settings):
        store = GraphStore()
        _add(store, "sql", "SELECT 1")
        assert "Flow must end with CONCAT" in _messages(validate(store.graph, flow_settings))
        _add(store, "concat", "done")
        assert "Flow must end with CONCAT" not in _messages(validate(store.graph, flow_settings))

    def test_terminal_uses_order_not_insertion(self, flow_settings):
        store = GraphStore()
        concat = _add(store, "concat", "x")
        _add(store, "sql", "SELECT 1")
        store.update_field(concat, "sequence_order", 5)
        assert "Flow must end with CONCAT" not in _messages(validate(store.graph, flow_settings))

    def test_iteration_query_required(self):
        store = GraphStore()
        config = FlowSettings(iterate_flow=True, iteration_query="   ")
        assert "Iteration Query Empty" in _messages(validate(store.graph, config))

    def test_iteration_query_ignored_when_not_iterating(self, graph_store):
        config = FlowSettings(iterate_flow=False, iteration_query="")
        assert "Iteration Query Empty" not in _messages(validate(graph_store.graph, config))

    def test_global_rules_in_fixed_order(self):
        store = GraphStore()
        a = _add(store, "sql", "SELECT 1")
        b = _add(store, "sql", "SELECT 2")
        store.update_field(b, "sequence_order", 1)
        store.connect(START_NODE_ID, a, iterate_flow=True)
        store.connect(START_NODE_ID, b, iterate_flow=True)
        # start-path rule only fires when not iterating, query rule only when iterating
        off = _messages(validate(store.graph, FlowSettings(iterate_flow=False)))
        assert off[:3] == [
            "Duplicate Sequence # Detected",
            "Invalid Start Connection (Single path only)",
            "Flow must end with CONCAT",
        ]
        on = _messages(validate(store.graph, FlowSettings(iterate_flow=True, iteration_query="")))
        assert on[:3] == [
            "Duplicate Sequence # Detected",
            "Flow must end with CONCAT",
            "Iteration Query Empty",
        ]


class TestStepRules:

    def test_empty_sql_flagged(self, flow_settings):
        store = GraphStore()
        _add(store, "sql", "   \n")
        _add(store, "concat", "x")
        diagnostics = validate(store.graph, flow_settings)
        assert "Step 1: SQL Query is empty" in _messages(diagnostics)
        scoped = [d for d in diagnostics if d.message == "Step 1: SQL Query is empty"]
        assert scoped[0].scope == "step:1"

    def test_empty_llm_not_flagged(self, flow_settings):
        store = GraphStore()
        _add(store, "llm", "")
        _add(store, "concat", "x")
        assert validate(store.graph, flow_settings) == []

    def test_kindless_step_skips_sql_rules(self, flow_settings):
        graph = FlowGraph(nodes=[
            make_start_node(),
            StepNode(node_id="n1", sequence_order=1, content="", time_column="created_at"),
            StepNode(node_id="n2", sequence_order=2, step_type="concat", content="x"),
        ])
        assert validate(graph, flow_settings) == []

    def test_incomplete_time_configuration(self, flow_settings):
        store = GraphStore()
        _add(store, "sql", "SELECT 1", time_column="created_at", time_amount=7, time_grain="day")
        _add(store, "concat", "x")
        assert "Step 1: Incomplete Time Configuration" in _messages(validate(store.graph, flow_settings))

    def test_complete_time_configuration(self, flow_settings):
        store = GraphStore()
        _add(
            store, "sql", "SELECT 1",
            time_column="created_at", time_amount=7, time_grain="day", time_mode="closed_open",
        )
        _add(store, "concat", "x")
        assert validate(store.graph, flow_settings) == []

    def test_time_fields_without_time_column_ignored(self, flow_settings):
        store = GraphStore()
        _add(store, "sql", "SELECT 1", time_amount=7)
        _add(store, "concat", "x")
        assert validate(store.graph, flow_settings) == []

    def test_step_rules_follow_stored_order(self, flow_settings):
        store = GraphStore()
        first = _add(store, "sql", "")
        second = _add(store, "sql", "")
        _add(store, "concat", "x")
        store.update_field(first, "sequence_order", 2)
        store.update_field(second, "sequence_order", 1)
        step_messages = [d.message for d in validate(store.graph, flow_settings) if d.scope != "global"]
        assert step_messages == ["Step 2: SQL Query is empty", "Step 1: SQL Query is empty"]

    def test_sub_rules_in_fixed_order(self, flow_settings):
        store = GraphStore()
        _add(store, "sql", "SELECT {{step_9}}", time_column="created_at")
        _add(store, "concat", "x")
        messages = [d.message for d in validate(store.graph, flow_settings) if d.scope == "step:1"]
        assert messages == [
            "Step 1: Incomplete Time Configuration",
            "Step 1: {{step_9}} used but Step 9 is not connected",
        ]


class TestPlaceholders:

    def test_extract_dedupes_verbatim(self):
        assert extract_placeholders("{{step_1}} and {{step_1}} then {{ x }}") == ["step_1", " x "]

    def test_extract_none(self):
        assert extract_placeholders(None) == []

    def test_iteration_value_requires_iterated_flow(self, flow_settings):
        store = GraphStore()
        sql = _add(store, "sql", "SELECT {{iteration_value}}")
        _add(store, "concat", "x")
        store.connect(START_NODE_ID, sql)
        assert "Step 1: {{iteration_value}} requires Iterated Flow" in _messages(
            validate(store.graph, flow_settings)
        )

    def test_iteration_value_requires_start_edge(self):
        store = GraphStore()
        sql = _add(store, "sql", "SELECT 1")
        llm = _add(store, "llm", "About {{iteration_value}}")
        _add(store, "concat", "x")
        store.connect(START_NODE_ID, sql, iterate_flow=True)
        store.connect(sql, llm)
        config = FlowSettings(iterate_flow=True, iteration_query="SELECT id FROM t")
        assert _messages(validate(store.graph, config)) == [
            "Step 2: {{iteration_value}} used but not connected to Start",
        ]

    def test_direct_predecessor_satisfies_step_tag(self, flow_settings):
        store = GraphStore()
        a = _add(store, "sql", "SELECT 1")
        b = _add(store, "sql", "SELECT 2")
        c = _add(store, "concat", "{{step_2}}")
        store.connect(a, b)
        store.connect(b, c)
        assert validate(store.graph, flow_settings) == []

    def test_transitive_path_does_not_satisfy_step_tag(self, flow_settings):
        store = GraphStore()
        a = _add(store, "sql", "SELECT 1")
        b = _add(store, "sql", "SELECT 2")
        c = _add(store, "concat", "{{step_1}}")
        store.connect(a, b)
        store.connect(b, c)
        assert _messages(validate(store.graph, flow_settings)) == [
            "Step 3: {{step_1}} used but Step 1 is not connected",
        ]

    def test_padded_tags_not_checked(self, flow_settings):
        store = GraphStore()
        _add(store, "concat", "{{ iteration_value }} {{ step_4 }}")
        assert validate(store.graph, flow_settings) == []

    def test_repeated_tag_reported_once(self, flow_settings):
        store = GraphStore()
        _add(store, "concat", "{{step_2}} {{step_2}}")
        assert len(validate(store.graph, flow_settings)) == 1

    def test_unknown_tag_shapes_ignored(self, flow_settings):
        store = GraphStore()
        _add(store, "concat", "{{sequence_name}} {{step_x}} {{foo}}")
        assert validate(store.graph, flow_settings) == []

    def test_is_pure(self, linear_flow, flow_settings):
        store, sql_id, _ = linear_flow
        store.update_field(sql_id, "content", "")
        before = store.graph.model_dump()
        first = validate(store.graph, flow_settings)
        second = validate(store.graph, flow_settings)
        assert first == second
        assert store.graph.model_dump() == before
