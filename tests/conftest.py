"""
Shared fixtures for the Flow Builder test suite.
"""
import sys
import os
import pytest

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

os.environ.setdefault("FLOWBUILDER_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")


@pytest.fixture
def graph_store():
    """Fresh GraphStore holding only the start node."""
    from flowbuilder.compiler.store import GraphStore
    return GraphStore()


@pytest.fixture
def flow_settings():
    """Default, non-iterated global settings."""
    from flowbuilder.compiler.manifest import FlowSettings
    return FlowSettings(flow_name="Test Flow")


@pytest.fixture
def validator():
    from flowbuilder.compiler.validator import FlowValidator
    return FlowValidator()


@pytest.fixture
def compiler():
    from flowbuilder.compiler.compiler import FlowCompiler
    return FlowCompiler()


@pytest.fixture
def reconstructor():
    from flowbuilder.compiler.reconstructor import FlowReconstructor
    return FlowReconstructor()


@pytest.fixture
def flow_registry():
    """Fresh FlowRegistry instance (in-memory)."""
    from flowbuilder.compiler.registry import FlowRegistry
    return FlowRegistry()


@pytest.fixture
def linear_flow(graph_store):
    """start -> SQL(1, "SELECT 1") -> CONCAT(2, "{{step_1}}")."""
    store = graph_store
    sql_id = store.add_node("sql")
    concat_id = store.add_node("concat")
    store.update_field(sql_id, "content", "SELECT 1")
    store.update_field(concat_id, "content", "{{step_1}}")
    store.connect("start", sql_id)
    store.connect(sql_id, concat_id)
    return store, sql_id, concat_id
