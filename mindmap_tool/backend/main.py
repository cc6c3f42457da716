"""
Mindmap Tool Backend - FastAPI Application

This is the main entry point for the mindmap tool backend.
It provides:
- REST API for document operations (actions, undo/redo, export/import)
- Layout and text measurement endpoints for renderers
- Validation and summary endpoints
- WebSocket endpoint for real-time updates
- CORS configuration for local frontend development
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ..config import API_HOST, API_PORT, CORS_ORIGINS, INITIAL_ROOT_ID, INITIAL_ROOT_TEXT
from ..core import (
    ActionRequest, ImportRequest, LayoutRequest, MeasureRequest,
    DEFAULT_FONT, DEFAULT_LAYOUT, DuplicateNodeIdError, Node,
)
from ..core.analysis import summarize_document
from ..core.connectors import route_connectors
from ..core.layout import CAPABILITIES as LAYOUT_CAPABILITIES, PillowTextMeasurer, TextMeasurer, layout, measure
from ..core.validation import validate_document, validation_summary
from .runtime import CommandRuntime
from .websocket_manager import WebSocketManager


def _http_error(e: ValueError) -> HTTPException:
    """Map runtime errors to HTTP errors (409 for id conflicts, 400 otherwise)."""
    if isinstance(e, DuplicateNodeIdError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def create_app(
    runtime: Optional[CommandRuntime] = None,
    measurer: Optional[TextMeasurer] = None,
) -> FastAPI:
    """
    Build the API around a command runtime.

    Args:
        runtime: Runtime to serve (a new one with a single root node if None)
        measurer: Text measurer for layout and measure requests (Pillow font
            metrics if None)
    """
    if runtime is None:
        runtime = CommandRuntime(Node(id=INITIAL_ROOT_ID, text=INITIAL_ROOT_TEXT))
    if measurer is None:
        measurer = PillowTextMeasurer()
    ws_manager = WebSocketManager()

    # --- Async change notification ---
    # Bridge between sync runtime subscriptions and async WebSocket broadcasts

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan handler for startup/shutdown tasks."""
        change_event = asyncio.Event()

        def on_document_change(_document: Node):
            """Subscription callback - sets event for async handler."""
            change_event.set()

        async def change_broadcaster():
            """Background task that broadcasts changes to WebSocket clients."""
            while True:
                await change_event.wait()
                change_event.clear()
                await ws_manager.notify_document_updated(runtime)

        unsubscribe = runtime.subscribe(on_document_change)
        broadcaster_task = asyncio.create_task(change_broadcaster())
        logger.info("Serving document {!r}", runtime.get_state().id)

        yield

        unsubscribe()
        broadcaster_task.cancel()
        try:
            await broadcaster_task
        except asyncio.CancelledError:
            pass

    app = FastAPI(
        title="Mindmap Tool API",
        description="Backend API for the mind map editor",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.runtime = runtime
    app.state.ws_manager = ws_manager

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Health Check ---

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "connections": ws_manager.connection_count,
            "capabilities": [CommandRuntime.capabilities, LAYOUT_CAPABILITIES],
            "actions": runtime.action_types,
        }

    # --- Document State ---

    @app.get("/api/document")
    async def get_document():
        """Get the current document and history counters."""
        return runtime.status()

    @app.get("/api/document/export")
    async def export_document(indent: Optional[int] = Query(default=None, ge=0)):
        """Get the canonical JSON snapshot of the document."""
        return {"success": True, "snapshot": runtime.export_snapshot(indent=indent)}

    @app.post("/api/document/import")
    async def import_document(request: ImportRequest):
        """Replace the document with a snapshot (undoable)."""
        try:
            runtime.import_snapshot(request.snapshot)
        except ValueError as e:
            raise _http_error(e)
        await runtime.join()
        return {"success": True, "document": runtime.get_state().to_json_dict()}

    # --- Actions ---

    @app.post("/api/actions")
    async def dispatch_action(request: ActionRequest):
        """Dispatch an action {type, params}."""
        try:
            document = await runtime.dispatch(request.type, request.params)
        except ValueError as e:
            raise _http_error(e)
        return {"success": True, "document": document.to_json_dict()}

    @app.get("/api/nodes/{node_id}")
    async def get_node(node_id: str):
        """Get a specific node with its subtree."""
        node = runtime.find(node_id)
        if node:
            return {"success": True, "node": node.to_json_dict()}
        raise HTTPException(status_code=404, detail="Node not found")

    # --- Undo/Redo ---

    @app.post("/api/undo")
    async def undo():
        """Undo the last action."""
        await runtime.join()
        if not runtime.can_undo:
            return {"success": False, "message": "Nothing to undo"}
        runtime.undo()
        await runtime.join()
        return {"success": True, "document": runtime.get_state().to_json_dict()}

    @app.post("/api/redo")
    async def redo():
        """Redo the last undone action."""
        await runtime.join()
        if not runtime.can_redo:
            return {"success": False, "message": "Nothing to redo"}
        runtime.redo()
        await runtime.join()
        return {"success": True, "document": runtime.get_state().to_json_dict()}

    # --- Layout ---

    @app.post("/api/layout")
    async def layout_document(request: LayoutRequest):
        """Lay out the current document and return the scene graph."""
        scene = layout(
            runtime.get_state(),
            config=request.layout or DEFAULT_LAYOUT,
            font=request.font or DEFAULT_FONT,
            collapsed_ids=request.collapsed_ids,
            measurer=measurer,
        )
        result = {"success": True, "scene": scene.to_json_dict()}
        if request.include_paths:
            result["connectors"] = [
                c.to_json_dict() for c in route_connectors(scene, request.curvature)
            ]
        return result

    @app.post("/api/measure")
    async def measure_text(request: MeasureRequest):
        """Size a node box for a piece of text."""
        size = measure(
            request.text,
            font=request.font or DEFAULT_FONT,
            config=request.layout or DEFAULT_LAYOUT,
            measurer=measurer,
        )
        return {"success": True, "size": size.to_json_dict()}

    # --- Analysis & Validation ---

    @app.get("/api/document/validate")
    async def validate_current_document(known_classes: Optional[list[str]] = Query(default=None)):
        """
        Validate the current document for structural issues.

        Returns a list of issues (errors, warnings, info) and a summary.
        """
        issues = validate_document(runtime.get_state(), known_classes=known_classes)
        return {
            "success": True,
            "issues": [issue.to_dict() for issue in issues],
            "summary": validation_summary(issues)
        }

    @app.get("/api/document/summary")
    async def summarize_current_document(top_n: int = Query(default=5, ge=0)):
        """
        Get a structural summary of the current document.

        Returns node counts, depth, class tag usage and the widest nodes.
        """
        summary = summarize_document(runtime.get_state(), top_n=top_n)
        return {"success": True, "summary": summary.to_dict()}

    # --- WebSocket ---

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        WebSocket endpoint for real-time updates.

        Clients connect here to receive document_updated events.
        """
        await ws_manager.connect(websocket)

        try:
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text('{"type": "pong"}')
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)

    return app


app = create_app()


# --- Run with uvicorn ---

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)
