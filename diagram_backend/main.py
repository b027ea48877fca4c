"""
Diagram Backend - FastAPI Application

It provides:
- REST API for entity categories, entities, templates and diagrams
- Entity binding, manual edges and rendering for diagrams
- Stateless layout and validation of raw graph payloads
- WebSocket endpoint broadcasting cache invalidation events
- CORS configuration for local frontend development
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from diagram_core.graph import parse_graph_parts
from diagram_core.layout import layout_graph
from diagram_core.models import Graph
from diagram_core.validation import inspect_graph, validation_summary

from .config import Settings, get_settings
from .diagrams import DiagramService
from .events import ChangeNotifier
from .exceptions import DiagramToolError
from .logging_config import setup_logging
from .models import (
    AddEdgeRequest,
    BindEntityRequest,
    CategoryCreateRequest,
    CategoryUpdateRequest,
    DiagramCreateRequest,
    DiagramUpdateRequest,
    EntityCreateRequest,
    EntityUpdateRequest,
    LayoutRequest,
    TemplateCreateRequest,
    TemplateUpdateRequest,
)
from .registry import EntityRegistry
from .store import JsonStore
from .templates import TemplateService
from .websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, store: Optional[JsonStore] = None) -> FastAPI:
    """
    Build the API around one store.

    Args:
        settings: Settings to use (defaults to the cached environment settings)
        store: Store to use (defaults to one at `settings.data_file`)
    """
    settings = settings or get_settings()
    store = store if store is not None else JsonStore(settings.data_file)

    notifier = ChangeNotifier()
    registry = EntityRegistry(store, notifier)
    templates = TemplateService(store, notifier)
    diagrams = DiagramService(store, templates, registry, notifier, settings.layout_options())
    ws_manager = WebSocketManager()

    # --- Async change notification ---
    # Bridge between sync service callbacks and async WebSocket broadcasts

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan handler for startup/shutdown tasks."""
        pending: set[str] = set()
        change_event = asyncio.Event()

        def on_change(resource: str):
            pending.add(resource)
            change_event.set()

        async def change_broadcaster():
            """Background task that broadcasts invalidations to WebSocket clients."""
            while True:
                await change_event.wait()
                change_event.clear()
                resources = sorted(pending)
                pending.clear()
                for resource in resources:
                    await ws_manager.notify_invalidated(resource)

        notifier.on_change(on_change)
        broadcaster_task = asyncio.create_task(change_broadcaster())

        yield

        notifier.remove_on_change(on_change)
        broadcaster_task.cancel()
        try:
            await broadcaster_task
        except asyncio.CancelledError:
            pass

    # --- FastAPI App ---

    app = FastAPI(
        title="Entity Diagrams API",
        description="Diagram templates, entity bindings and automatic layout",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.store = store
    app.state.notifier = notifier
    app.state.registry = registry
    app.state.templates = templates
    app.state.diagrams = diagrams
    app.state.ws_manager = ws_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DiagramToolError)
    async def handle_tool_error(request: Request, exc: DiagramToolError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    # --- Health Check ---

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "connections": ws_manager.connection_count}

    # --- Entity Categories ---

    @app.get("/api/entity-categories")
    async def list_categories():
        return [c.to_api() for c in registry.list_categories()]

    @app.get("/api/entity-categories/{category_id}")
    async def get_category(category_id: int):
        return registry.require_category(category_id).to_api()

    @app.post("/api/entity-categories", status_code=201)
    async def create_category(request: CategoryCreateRequest):
        return registry.create_category(request.name, request.description).to_api()

    @app.put("/api/entity-categories/{category_id}")
    async def update_category(category_id: int, request: CategoryUpdateRequest):
        return registry.update_category(category_id, **request.model_dump(exclude_unset=True)).to_api()

    @app.delete("/api/entity-categories/{category_id}")
    async def delete_category(category_id: int):
        registry.delete_category(category_id)
        return {"success": True, "message": "Entity category deleted successfully"}

    # --- Entities ---

    @app.get("/api/entities")
    async def list_entities(category_id: Optional[int] = Query(default=None, alias="categoryId")):
        return [e.to_api() for e in registry.list_entities(category_id=category_id)]

    @app.get("/api/entities/{entity_id}")
    async def get_entity(entity_id: int):
        return registry.require_entity(entity_id).to_api()

    @app.post("/api/entities", status_code=201)
    async def create_entity(request: EntityCreateRequest):
        return registry.create_entity(**request.model_dump()).to_api()

    @app.put("/api/entities/{entity_id}")
    async def update_entity(entity_id: int, request: EntityUpdateRequest):
        return registry.update_entity(entity_id, **request.model_dump(exclude_unset=True)).to_api()

    @app.delete("/api/entities/{entity_id}")
    async def delete_entity(entity_id: int):
        registry.delete_entity(entity_id)
        return {"success": True, "message": "Entity deleted successfully"}

    # --- Diagram Templates ---

    @app.get("/api/diagram-templates")
    async def list_templates():
        return [t.to_api() for t in templates.list_templates()]

    @app.get("/api/diagram-templates/{template_id}")
    async def get_template(template_id: int):
        return templates.require_template(template_id).to_api()

    @app.post("/api/diagram-templates", status_code=201)
    async def create_template(request: TemplateCreateRequest):
        template = templates.create_template(
            name=request.name,
            description=request.description,
            layout_direction=request.layout_direction,
            nodes=request.nodes,
            edges=request.edges,
        )
        return template.to_api()

    @app.put("/api/diagram-templates/{template_id}")
    async def update_template(template_id: int, request: TemplateUpdateRequest):
        return templates.update_template(template_id, **request.model_dump(exclude_unset=True)).to_api()

    @app.delete("/api/diagram-templates/{template_id}")
    async def delete_template(template_id: int):
        templates.delete_template(template_id)
        return {"success": True, "message": "Diagram template deleted successfully"}

    # --- Diagrams ---

    @app.get("/api/diagrams")
    async def list_diagrams(
        project_id: Optional[int] = Query(default=None, alias="projectId"),
        document_id: Optional[int] = Query(default=None, alias="documentId"),
    ):
        return [d.to_api() for d in diagrams.list_diagrams(project_id=project_id, document_id=document_id)]

    @app.get("/api/diagrams/{diagram_id}")
    async def get_diagram(diagram_id: int):
        return diagrams.require_diagram(diagram_id).to_api()

    @app.post("/api/diagrams", status_code=201)
    async def create_diagram(request: DiagramCreateRequest):
        diagram = diagrams.instantiate(
            template_id=request.template_id,
            name=request.name,
            description=request.description,
            project_id=request.project_id,
            document_id=request.document_id,
            node_entities=request.node_entities,
        )
        return diagram.to_api()

    @app.put("/api/diagrams/{diagram_id}")
    async def update_diagram(diagram_id: int, request: DiagramUpdateRequest):
        return diagrams.update_diagram(diagram_id, **request.model_dump(exclude_unset=True)).to_api()

    @app.delete("/api/diagrams/{diagram_id}")
    async def delete_diagram(diagram_id: int):
        diagrams.delete_diagram(diagram_id)
        return {"success": True, "message": "Diagram deleted successfully"}

    @app.put("/api/diagrams/{diagram_id}/nodes/{node_id}/entity")
    async def bind_entity(diagram_id: int, node_id: str, request: BindEntityRequest):
        return diagrams.bind_entity(diagram_id, node_id, request.entity_id).to_api()

    @app.post("/api/diagrams/{diagram_id}/edges", status_code=201)
    async def add_edge(diagram_id: int, request: AddEdgeRequest):
        edge = diagrams.add_manual_edge(diagram_id, request.source, request.target, request.animated)
        return edge.model_dump(mode="json")

    @app.delete("/api/diagrams/{diagram_id}/edges/{edge_id}")
    async def remove_edge(diagram_id: int, edge_id: str):
        return diagrams.remove_edge(diagram_id, edge_id).to_api()

    @app.post("/api/diagrams/{diagram_id}/resync")
    async def resync_diagram(diagram_id: int):
        return diagrams.resync_from_template(diagram_id).to_api()

    @app.get("/api/diagrams/{diagram_id}/render")
    async def render_diagram(diagram_id: int):
        return diagrams.render(diagram_id).to_api()

    # --- Stateless graph tools ---

    @app.post("/api/layout")
    async def layout_raw_graph(request: LayoutRequest):
        """Parse, repair and lay out a raw graph without storing it."""
        parsed = parse_graph_parts(request.nodes, request.edges)
        nodes = layout_graph(parsed.graph.nodes, parsed.graph.edges, request.direction, settings.layout_options())
        return {
            "nodes": [n.model_dump(mode="json") for n in nodes],
            "edges": [e.model_dump(mode="json") for e in parsed.graph.edges],
            "error": parsed.error,
            "droppedEdges": [e.model_dump(mode="json") for e in parsed.dropped_edges],
        }

    @app.post("/api/graph/validate")
    async def validate_raw_graph(request: LayoutRequest):
        """Report structural issues in a raw graph without repairing it."""
        try:
            graph = Graph.model_validate({"nodes": request.nodes or [], "edges": request.edges or []})
        except PydanticValidationError as e:
            return {"valid": False, "error": str(e), "issues": []}
        issues = inspect_graph(graph)
        summary = validation_summary(issues)
        return {"valid": summary["valid"], "summary": summary, "issues": [i.to_dict() for i in issues]}

    # --- WebSocket ---

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Stream invalidation events to a client."""
        await ws_manager.connect(websocket)
        try:
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text('{"type": "pong"}')
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)
        except Exception:
            await ws_manager.disconnect(websocket)

    return app


def run():
    """Run the API with uvicorn using environment settings."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    uvicorn.run(create_app(settings), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
