"""
Entity Diagrams MCP Server

Provides MCP tools for AI agents to work with templates, entities and
diagrams. Tools call the backend API, so every change also reaches connected
frontends through the websocket invalidation events.
"""

import json
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .client import DiagramApiClient
from .config import get_settings

# Create MCP server
mcp = FastMCP("entity-diagrams")

_client: Optional[DiagramApiClient] = None


def get_client() -> DiagramApiClient:
    """Lazily create the API client from settings."""
    global _client
    if _client is None:
        settings = get_settings()
        _client = DiagramApiClient(base_url=f"http://{settings.api_host}:{settings.api_port}")
    return _client


def _dump(result) -> str:
    return json.dumps(result, indent=2)


# ============================================================================
# ENTITY TOOLS
# ============================================================================

@mcp.tool()
def diagram_list_categories() -> str:
    """List entity categories (e.g. Contractors, Reviewers)."""
    return _dump(get_client().list_categories())


@mcp.tool()
def diagram_list_entities(category_id: Optional[int] = None) -> str:
    """
    List entities that diagram nodes can be bound to.

    Args:
        category_id: Only list entities of this category
    """
    return _dump(get_client().list_entities(category_id=category_id))


# ============================================================================
# TEMPLATE TOOLS
# ============================================================================

@mcp.tool()
def diagram_list_templates() -> str:
    """List diagram templates with their nodes, edges and layout direction."""
    return _dump(get_client().list_templates())


@mcp.tool()
def diagram_create_template(
    name: str,
    nodes: list[dict],
    edges: list[dict],
    layout: str = "top-down",
    description: Optional[str] = None,
) -> str:
    """
    Create a reusable diagram template.

    Args:
        name: Template name
        nodes: Nodes as {"id", "label", "kind"} objects
        edges: Edges as {"source", "target"} objects; edges naming unknown
            nodes are dropped
        layout: "top-down", "left-right" or "grid"
        description: Optional description
    """
    return _dump(get_client().create_template(name, nodes, edges, layout=layout, description=description))


# ============================================================================
# DIAGRAM TOOLS
# ============================================================================

@mcp.tool()
def diagram_list_diagrams(project_id: Optional[int] = None, document_id: Optional[int] = None) -> str:
    """
    List diagrams, optionally for one project or document.
    """
    return _dump(get_client().list_diagrams(project_id=project_id, document_id=document_id))


@mcp.tool()
def diagram_instantiate(
    template_id: int,
    name: str,
    description: Optional[str] = None,
    project_id: Optional[int] = None,
    document_id: Optional[int] = None,
) -> str:
    """
    Create a diagram from a template. The diagram gets its own copy of the
    template graph with every node unbound.
    """
    result = get_client().create_diagram(
        template_id,
        name,
        description=description,
        projectId=project_id,
        documentId=document_id,
    )
    return _dump(result)


@mcp.tool()
def diagram_bind_entity(diagram_id: int, node_id: str, entity_id: Optional[int] = None) -> str:
    """
    Bind a diagram node to an entity.

    Args:
        diagram_id: Diagram to edit
        node_id: Node id within the diagram
        entity_id: Entity to bind; omit (or 0) to unbind the node
    """
    return _dump(get_client().bind_entity(diagram_id, node_id, entity_id))


@mcp.tool()
def diagram_add_edge(diagram_id: int, source: str, target: str) -> str:
    """Add an edge between two nodes of a diagram (the template is unchanged)."""
    return _dump(get_client().add_edge(diagram_id, source, target))


@mcp.tool()
def diagram_render(diagram_id: int) -> str:
    """
    Render a diagram: node positions from the automatic layout plus the
    entity name bound to each node.
    """
    return _dump(get_client().render_diagram(diagram_id))


@mcp.tool()
def diagram_validate_graph(nodes: list[dict], edges: list[dict]) -> str:
    """
    Check a graph for structural issues (dangling edges, duplicates,
    self-loops, orphan nodes) without saving it.
    """
    return _dump(get_client().validate_graph(nodes, edges))


def main():
    mcp.run()


if __name__ == "__main__":
    main()
