"""
Flow Builder Service.

Conversation flow editor backend with simulated test runs.

API Endpoints:
- Flows: CRUD, duplication and selection
- Nodes/Edges: graph editing of a flow
- Versions: save, publish, rollback
- Runs: simulated chat/voice test runs of a flow
"""

import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import FlowStatus, Settings, get_settings
from .exceptions import FlowBuilderError, FlowNotFoundError, InvalidFlowError
from .models import (
    AddEdgeRequest,
    AddNodeRequest,
    CreateFlowRequest,
    DigitsRequest,
    FlowListResponse,
    MutationError,
    MutationResult,
    PositionModel,
    PublishFlowRequest,
    RunResponse,
    StartRunRequest,
    TextInputRequest,
    UpdateNodeDataRequest,
)
from .canvas import CanvasManager, FlowEditor
from .executor import FlowTestSession
from .nodes import get_node_registry

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Service metadata
SERVICE_VERSION = "1.0.0"
START_TIME = time.time()

_NOT_FOUND_ERRORS = {
    MutationError.NODE_NOT_FOUND,
    MutationError.EDGE_NOT_FOUND,
    MutationError.VERSION_NOT_FOUND,
}

router = APIRouter()


# =============================================================================
# Dependencies & helpers
# =============================================================================


def get_manager(request: Request) -> CanvasManager:
    return request.app.state.canvas_manager


def get_session(request: Request) -> FlowTestSession:
    return request.app.state.test_session


def _raise_for(error: FlowBuilderError) -> None:
    if isinstance(error, FlowNotFoundError):
        status_code = 404
    elif isinstance(error, InvalidFlowError):
        status_code = 422
    else:
        status_code = 409

    detail = {"error": error.code, "message": error.message}
    if isinstance(error, InvalidFlowError):
        detail["issues"] = error.issues
    raise HTTPException(status_code=status_code, detail=detail)


def _unwrap(result: MutationResult) -> Dict[str, Any]:
    """Return the mutated value or raise the matching HTTP error."""
    if not result.success:
        raise HTTPException(
            status_code=404 if result.error in _NOT_FOUND_ERRORS else 409,
            detail={"error": result.error.value, "message": result.message},
        )
    value = result.value
    return value.to_dict() if hasattr(value, "to_dict") else {"success": True}


def _open_flow(manager: CanvasManager, flow_id: str) -> FlowEditor:
    """Editor for ``flow_id``, selecting the flow first if another one is open."""
    try:
        if not manager.active_flow or manager.active_flow.id != flow_id:
            manager.select_flow(flow_id)
    except FlowBuilderError as e:
        _raise_for(e)
    return manager.editor


# =============================================================================
# Health & Info
# =============================================================================


@router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    """Health check endpoint."""
    settings: Settings = request.app.state.settings
    return {
        "status": "healthy",
        "service": settings.service_name,
        "version": SERVICE_VERSION,
        "uptime_seconds": time.time() - START_TIME,
    }


@router.get("/nodes")
async def list_node_types() -> Dict[str, Any]:
    """Node palette grouped by category."""
    registry = get_node_registry()
    return {
        "catalog": registry.to_catalog(),
        "total": len(registry.list_all()),
    }


# =============================================================================
# Flows API
# =============================================================================


@router.post("/flows")
async def create_flow(
    body: CreateFlowRequest,
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    """Create a new flow with a single start node."""
    flow = manager.create_flow(
        name=body.name,
        description=body.description,
        category=body.category,
    )
    return flow.to_dict()


@router.post("/flows/import")
async def import_flow(
    body: Dict[str, Any],
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    """Store a flow exported with ``GET /flows/{flow_id}``."""
    try:
        return manager.import_flow(body).to_dict()
    except FlowBuilderError as e:
        _raise_for(e)


@router.get("/flows", response_model=FlowListResponse)
async def list_flows(
    category: Optional[str] = Query(None),
    status: Optional[FlowStatus] = Query(None),
    search: Optional[str] = Query(None),
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    """List flows, most recently updated first."""
    flows, total = manager.list_flows(category=category, status=status, search=search)
    return {"flows": [f.to_summary() for f in flows], "total": total}


@router.get("/flows/{flow_id}")
async def get_flow(flow_id: str, manager: CanvasManager = Depends(get_manager)) -> Dict[str, Any]:
    try:
        return manager.get_flow(flow_id).to_dict()
    except FlowBuilderError as e:
        _raise_for(e)


@router.delete("/flows/{flow_id}")
async def delete_flow(flow_id: str, manager: CanvasManager = Depends(get_manager)) -> Dict[str, Any]:
    try:
        manager.delete_flow(flow_id)
    except FlowBuilderError as e:
        _raise_for(e)
    return {"status": "deleted", "flow_id": flow_id}


@router.post("/flows/{flow_id}/duplicate")
async def duplicate_flow(flow_id: str, manager: CanvasManager = Depends(get_manager)) -> Dict[str, Any]:
    try:
        return manager.duplicate_flow(flow_id).to_dict()
    except FlowBuilderError as e:
        _raise_for(e)


@router.post("/flows/{flow_id}/select")
async def select_flow(flow_id: str, manager: CanvasManager = Depends(get_manager)) -> Dict[str, Any]:
    """Open a flow in the editor."""
    try:
        flow = manager.select_flow(flow_id)
    except FlowBuilderError as e:
        _raise_for(e)
    return {**flow.to_dict(), "has_unsaved_changes": manager.has_unsaved_changes}


@router.post("/flows/{flow_id}/validate")
async def validate_flow(flow_id: str, manager: CanvasManager = Depends(get_manager)) -> Dict[str, Any]:
    try:
        return manager.validate_flow(flow_id).to_dict()
    except FlowBuilderError as e:
        _raise_for(e)


# =============================================================================
# Nodes & Edges API
# =============================================================================


@router.post("/flows/{flow_id}/nodes")
async def add_node(
    flow_id: str,
    body: AddNodeRequest,
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    editor = _open_flow(manager, flow_id)
    return _unwrap(editor.add_node(body.type, body.position.model_dump()))


@router.patch("/flows/{flow_id}/nodes/{node_id}")
async def update_node_data(
    flow_id: str,
    node_id: str,
    body: UpdateNodeDataRequest,
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    editor = _open_flow(manager, flow_id)
    return _unwrap(editor.update_node_data(node_id, body.data))


@router.delete("/flows/{flow_id}/nodes/{node_id}")
async def delete_node(
    flow_id: str,
    node_id: str,
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    editor = _open_flow(manager, flow_id)
    return _unwrap(editor.delete_node(node_id))


@router.post("/flows/{flow_id}/nodes/{node_id}/duplicate")
async def duplicate_node(
    flow_id: str,
    node_id: str,
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    editor = _open_flow(manager, flow_id)
    return _unwrap(editor.duplicate_node(node_id))


@router.put("/flows/{flow_id}/nodes/{node_id}/position")
async def move_node(
    flow_id: str,
    node_id: str,
    body: PositionModel,
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    editor = _open_flow(manager, flow_id)
    return _unwrap(editor.move_node(node_id, body.model_dump()))


@router.post("/flows/{flow_id}/edges")
async def add_edge(
    flow_id: str,
    body: AddEdgeRequest,
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    editor = _open_flow(manager, flow_id)
    return _unwrap(editor.add_edge(body.source, body.target, body.handle))


@router.delete("/flows/{flow_id}/edges/{edge_id}")
async def delete_edge(
    flow_id: str,
    edge_id: str,
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    editor = _open_flow(manager, flow_id)
    return _unwrap(editor.delete_edge(edge_id))


# =============================================================================
# Versioning API
# =============================================================================


@router.post("/flows/{flow_id}/save")
async def save_draft(flow_id: str, manager: CanvasManager = Depends(get_manager)) -> Dict[str, Any]:
    _open_flow(manager, flow_id)
    flow = manager.versioning.save_draft()
    return {**flow.to_summary(), "has_unsaved_changes": manager.has_unsaved_changes}


@router.post("/flows/{flow_id}/publish")
async def publish_flow(
    flow_id: str,
    body: PublishFlowRequest,
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    _open_flow(manager, flow_id)
    version = manager.versioning.publish_flow(body.changelog, author=body.author)
    return version.to_summary()


@router.get("/flows/{flow_id}/versions")
async def list_versions(flow_id: str, manager: CanvasManager = Depends(get_manager)) -> Dict[str, Any]:
    _open_flow(manager, flow_id)
    versions = manager.versioning.list_versions()
    return {"flow_id": flow_id, "versions": versions, "total": len(versions)}


@router.post("/flows/{flow_id}/versions/{version_id}/rollback")
async def rollback_version(
    flow_id: str,
    version_id: str,
    manager: CanvasManager = Depends(get_manager),
) -> Dict[str, Any]:
    _open_flow(manager, flow_id)
    result = manager.versioning.rollback_to_version(version_id)
    _unwrap(result)
    return manager.active_flow.to_summary()


# =============================================================================
# Test Runs API
# =============================================================================


@router.post("/flows/{flow_id}/runs", response_model=RunResponse)
async def start_run(
    flow_id: str,
    body: StartRunRequest,
    manager: CanvasManager = Depends(get_manager),
    session: FlowTestSession = Depends(get_session),
) -> Dict[str, Any]:
    """Start a simulated run; returns once it waits for input or ends."""
    try:
        flow = manager.get_flow(flow_id)
    except FlowBuilderError as e:
        _raise_for(e)

    await session.start_run(flow, body.channel)
    return session.to_dict()


@router.get("/runs/current", response_model=RunResponse)
async def get_run(session: FlowTestSession = Depends(get_session)) -> Dict[str, Any]:
    return session.to_dict()


def _rejected_input(session: FlowTestSession) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={
            "error": "invalid_run_state",
            "message": f"Run is not accepting this input (state: {session.state.value})",
        },
    )


@router.post("/runs/current/input", response_model=RunResponse)
async def submit_text_input(
    body: TextInputRequest,
    session: FlowTestSession = Depends(get_session),
) -> Dict[str, Any]:
    if not await session.submit_text_input(body.text):
        raise _rejected_input(session)
    return session.to_dict()


@router.post("/runs/current/digits", response_model=RunResponse)
async def submit_digits(
    body: DigitsRequest,
    session: FlowTestSession = Depends(get_session),
) -> Dict[str, Any]:
    if not await session.submit_digits(body.digits):
        raise _rejected_input(session)
    return session.to_dict()


@router.post("/runs/current/hangup", response_model=RunResponse)
async def end_call(session: FlowTestSession = Depends(get_session)) -> Dict[str, Any]:
    if not session.end_call():
        raise _rejected_input(session)
    return session.to_dict()


@router.delete("/runs/current", response_model=RunResponse)
async def reset_run(session: FlowTestSession = Depends(get_session)) -> Dict[str, Any]:
    session.reset_run()
    return session.to_dict()


# =============================================================================
# Application Factory
# =============================================================================


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Service settings (defaults to the environment)

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("service_starting", service=settings.service_name, version=SERVICE_VERSION)
        yield
        app.state.test_session.reset_run()
        logger.info("service_stopped", service=settings.service_name)

    app = FastAPI(
        title="Flow Builder Service",
        description="Conversation flow editor with simulated test runs",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.canvas_manager = CanvasManager(settings=settings)
    app.state.test_session = FlowTestSession(settings=settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.include_router(router)
    return app


app = create_app()


# =============================================================================
# Main
# =============================================================================


def run() -> None:
    """Serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "flow_builder.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
