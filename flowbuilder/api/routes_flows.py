"""
Flow Builder - Flow API Routes
Flow sessions, node/edge editing, validation, export and import
"""

from typing import Optional, List, Any
from fastapi import HTTPException, Request
from pydantic import BaseModel, Field

from flowbuilder.compiler.errors import StructuralRejection, ImportParseFailure, NodeNotFoundError
from flowbuilder.compiler.layout import project_nodes, project_edges, node_hints
from flowbuilder.compiler.manifest import StepType, STEP_TYPES, PLACEHOLDERS
from flowbuilder.config.settings import settings


# ── Request Models ────────────────────────────────────────────────

class CreateFlowRequest(BaseModel):
    flow_name: Optional[str] = None

class UpdateSettingsRequest(BaseModel):
    flow_name: Optional[str] = None
    cron_expression: Optional[str] = None
    iterate_flow: Optional[bool] = None
    iteration_query: Optional[str] = None
    delivery_config: Optional[List[dict]] = None

class AddNodeRequest(BaseModel):
    kind: StepType = StepType.SQL

class UpdateNodeRequest(BaseModel):
    field: str
    value: Any = None

class ConnectRequest(BaseModel):
    source: str
    target: str


def register_flow_routes(app_router, flow_registry, max_import_bytes: Optional[int] = None):
    """Register all flow routes onto the given router."""
    import_limit = max_import_bytes if max_import_bytes is not None else settings.max_import_bytes

    def _session(flow_id: str):
        session = flow_registry.get(flow_id)
        if not session:
            raise HTTPException(404, f"Flow '{flow_id}' not found")
        return session

    # ═══════════════════════════════════════════════════════════════
    # FLOWS
    # ═══════════════════════════════════════════════════════════════

    @app_router.get("/flows", tags=["Flows"])
    async def list_flows():
        flows = flow_registry.list_all()
        return {"count": len(flows), "flows": [s.summary() for s in flows]}

    @app_router.get("/flows/stats", tags=["Flows"])
    async def flow_stats():
        return flow_registry.get_stats()

    @app_router.get("/flows/search/{query}", tags=["Flows"])
    async def search_flows(query: str):
        results = flow_registry.search(query)
        return {"count": len(results), "results": [{"flow_id": s.flow_id, "flow_name": s.config.flow_name} for s in results]}

    @app_router.get("/flows/catalog", tags=["Flows"])
    async def flow_catalog():
        return {"step_types": STEP_TYPES, "placeholders": PLACEHOLDERS}

    @app_router.post("/flows", tags=["Flows"])
    async def create_flow(req: CreateFlowRequest):
        session = flow_registry.create(req.flow_name)
        return {"status": "created", "flow_id": session.flow_id, "flow_name": session.config.flow_name}

    @app_router.get("/flows/{flow_id}", tags=["Flows"])
    async def get_flow(flow_id: str):
        session = _session(flow_id)
        return {
            "flow_id": session.flow_id,
            "settings": session.config.model_dump(mode="json"),
            "graph": session.graph.model_dump(mode="json"),
        }

    @app_router.delete("/flows/{flow_id}", tags=["Flows"])
    async def delete_flow(flow_id: str):
        if not flow_registry.delete(flow_id):
            raise HTTPException(404, f"Flow '{flow_id}' not found")
        return {"status": "deleted"}

    @app_router.put("/flows/{flow_id}/settings", tags=["Flows"])
    async def update_flow_settings(flow_id: str, req: UpdateSettingsRequest):
        session = _session(flow_id)
        updates = {k: v for k, v in req.model_dump().items() if v is not None}
        try:
            config = session.update_settings(updates)
        except ValueError as e:
            raise HTTPException(400, str(e))
        return {"status": "updated", "settings": config.model_dump(mode="json")}

    # ═══════════════════════════════════════════════════════════════
    # NODES & EDGES
    # ═══════════════════════════════════════════════════════════════

    @app_router.post("/flows/{flow_id}/nodes", tags=["Flows"])
    async def add_node(flow_id: str, req: AddNodeRequest):
        session = _session(flow_id)
        node_id = session.store.add_node(req.kind)
        session.touch()
        return session.graph.get_node(node_id).model_dump(mode="json")

    @app_router.patch("/flows/{flow_id}/nodes/{node_id}", tags=["Flows"])
    async def update_node(flow_id: str, node_id: str, req: UpdateNodeRequest):
        session = _session(flow_id)
        try:
            node = session.store.update_field(node_id, req.field, req.value)
        except ValueError as e:
            raise HTTPException(400, str(e))
        if not node:
            raise HTTPException(404, f"Node '{node_id}' not found")
        session.touch()
        return node.model_dump(mode="json")

    @app_router.delete("/flows/{flow_id}/nodes/{node_id}", tags=["Flows"])
    async def remove_node(flow_id: str, node_id: str):
        session = _session(flow_id)
        if not session.store.remove_node(node_id):
            raise HTTPException(404, f"Node '{node_id}' not found or not deletable")
        session.touch()
        return {"status": "deleted"}

    @app_router.post("/flows/{flow_id}/edges", tags=["Flows"])
    async def connect_nodes(flow_id: str, req: ConnectRequest):
        session = _session(flow_id)
        try:
            edge = session.store.connect(req.source, req.target, iterate_flow=session.config.iterate_flow)
        except NodeNotFoundError as e:
            raise HTTPException(404, str(e))
        except StructuralRejection as e:
            raise HTTPException(409, e.reason)
        session.touch()
        return edge.model_dump(mode="json")

    @app_router.delete("/flows/{flow_id}/edges/{edge_id}", tags=["Flows"])
    async def disconnect_edge(flow_id: str, edge_id: str):
        session = _session(flow_id)
        if not session.store.disconnect(edge_id):
            raise HTTPException(404, f"Edge '{edge_id}' not found")
        session.touch()
        return {"status": "disconnected"}

    # ═══════════════════════════════════════════════════════════════
    # VALIDATE / EXPORT / IMPORT
    # ═══════════════════════════════════════════════════════════════

    @app_router.get("/flows/{flow_id}/validate", tags=["Flows"])
    async def validate_flow(flow_id: str):
        diagnostics = _session(flow_id).validate()
        return {
            "valid": len(diagnostics) == 0,
            "diagnostics": [d.model_dump(mode="json") for d in diagnostics],
        }

    @app_router.get("/flows/{flow_id}/export", tags=["Flows"])
    async def export_flow(flow_id: str):
        return _session(flow_id).export()

    @app_router.post("/flows/{flow_id}/import", tags=["Flows"])
    async def import_flow(flow_id: str, request: Request):
        session = _session(flow_id)
        # Refuse a declared oversize upload before reading the body
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > import_limit:
            raise HTTPException(400, f"Invalid flow file: Import payload exceeds {import_limit} bytes")
        raw = await request.body()
        try:
            session.import_json(raw, import_limit)
        except ImportParseFailure as e:
            raise HTTPException(400, f"Invalid flow file: {e}")
        return {"status": "imported", **session.summary()}

    # ═══════════════════════════════════════════════════════════════
    # CANVAS PROJECTION
    # ═══════════════════════════════════════════════════════════════

    @app_router.get("/flows/{flow_id}/layout", tags=["Canvas"])
    async def flow_layout(flow_id: str):
        session = _session(flow_id)
        graph = session.store.snapshot()
        return {
            "nodes": [v.model_dump(mode="json") for v in project_nodes(graph)],
            "edges": [v.model_dump(mode="json") for v in project_edges(graph, session.config)],
        }

    @app_router.get("/flows/{flow_id}/nodes/{node_id}/hints", tags=["Canvas"])
    async def flow_node_hints(flow_id: str, node_id: str):
        session = _session(flow_id)
        hints = node_hints(session.store.snapshot(), session.config, node_id)
        if not hints:
            raise HTTPException(404, f"Node '{node_id}' not found")
        return hints.model_dump(mode="json")
