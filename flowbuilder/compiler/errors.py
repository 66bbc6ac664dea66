"""Errors raised by the flow graph store and the import boundary."""


class FlowBuilderError(ValueError):
    """Base class for rejected flow operations."""


class StructuralRejection(FlowBuilderError):
    """A connect was refused; the edge set is unchanged."""

    def __init__(self, source_node_id: str, target_node_id: str, reason: str):
        self.source_node_id = source_node_id
        self.target_node_id = target_node_id
        self.reason = reason
        super().__init__(reason)


class ImportParseFailure(FlowBuilderError):
    """Import payload is not a well-formed flow object. Nothing was replaced."""


class NodeNotFoundError(FlowBuilderError):
    """An operation referenced a node id that is not in the graph."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node '{node_id}' not found")
