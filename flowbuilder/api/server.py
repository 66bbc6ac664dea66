"""
Flow Builder - FastAPI Server
REST API behind the flow canvas: flow sessions, graph editing, live
validation, JSON export and import.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware

from flowbuilder.config.settings import settings
from flowbuilder.compiler.registry import FlowRegistry
from flowbuilder.api.routes_flows import register_flow_routes

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── Global Instances ──────────────────────────────────────────────────────────

flow_registry = FlowRegistry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"[FLOWBUILDER] Starting (env={settings.environment})")
    logger.info(f"[FLOWBUILDER]   Import limit: {settings.max_import_bytes} bytes")
    logger.info(f"[FLOWBUILDER]   Default LLM model: {settings.default_llm_model}")
    yield
    logger.info(f"[FLOWBUILDER] Shutting down ({flow_registry.get_stats()['total_flows']} flows in memory)")


_openapi_tags = [
    {"name": "System", "description": "Health checks and platform info"},
    {"name": "Flows", "description": "Flow sessions - editing, validation, export, import"},
    {"name": "Canvas", "description": "Read-only layout and sidebar hints for the canvas"},
]

app = FastAPI(
    title="Flow Builder",
    description=(
        "## Step Flow Builder\n\n"
        "Build SQL / LLM / Concat step graphs, validate them live, and export "
        "the normalized flow JSON consumed by the execution engine.\n"
    ),
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=_openapi_tags,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS - configurable allowed origins ─────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["System"])
async def health():
    return {"status": "ok", "version": "1.0.0", "flows": flow_registry.get_stats()["total_flows"]}


@app.get("/info", tags=["System"])
async def platform_info():
    return {
        "platform": "Flow Builder",
        "version": "1.0.0",
        "environment": settings.environment,
        "default_llm_model": settings.default_llm_model,
    }


# ══════════════════════════════════════════════════════════════════════════════
# FLOW ROUTES
# ══════════════════════════════════════════════════════════════════════════════

flow_router = APIRouter()
register_flow_routes(flow_router, flow_registry, settings.max_import_bytes)
app.include_router(flow_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
