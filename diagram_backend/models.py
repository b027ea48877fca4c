"""
Pydantic models for stored records and API payloads.

Records are stored with snake_case field names and exposed over the API in
camelCase (`categoryId`, `projectId`, `nodeEntities`, ...). Both spellings are
accepted on input. A template's layout direction travels as `layout`.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from diagram_core.models import Graph, GraphEdge, GraphNode, LayoutDirection, Position


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> dict:
        """Convert to a JSON-serializable dict with API field names."""
        return self.model_dump(mode="json", by_alias=True)


def _coerce_direction(value: Any) -> Any:
    if value is None or isinstance(value, LayoutDirection):
        return value
    return LayoutDirection.coerce(value)


def _coerce_node_entities(value: Any) -> Any:
    """Normalize a node -> entity mapping; 0, empty and null mean unbound."""
    if value is None:
        return {}
    if isinstance(value, (str, bytes)):
        value = json.loads(value) if value.strip() else {}
    if not isinstance(value, dict):
        return value
    mapping = {}
    for node_id, entity_id in value.items():
        if isinstance(entity_id, str):
            entity_id = entity_id.strip()
            entity_id = int(entity_id) if entity_id else None
        mapping[str(node_id)] = entity_id or None
    return mapping


# --- Entity registry records ---

class EntityCategory(ApiModel):
    """A grouping for entities (companies, people, teams, ...)."""
    id: int
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Entity(ApiModel):
    """A business-domain object that diagram nodes can be bound to."""
    id: int
    name: str
    category_id: int
    description: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# --- Templates and diagrams ---

class Template(ApiModel):
    """A reusable named graph with a default layout direction."""
    id: int
    name: str
    description: Optional[str] = None
    layout_direction: LayoutDirection = Field(default=LayoutDirection.TOP_DOWN, alias="layout")
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("layout_direction", mode="before")
    @classmethod
    def coerce_direction(cls, value: Any) -> Any:
        return _coerce_direction(value)

    def graph(self) -> Graph:
        """Deep-copied snapshot of the template's graph."""
        return Graph(nodes=self.nodes, edges=self.edges).copy_graph()


class Diagram(ApiModel):
    """
    A diagram instantiated from a template.

    Holds its own copy of the template graph taken at instantiation (or at
    the last explicit resync); `template_id` is provenance only.
    """
    id: int
    name: str
    description: Optional[str] = None
    project_id: Optional[int] = None
    document_id: Optional[int] = None
    template_id: int
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    node_entities: dict[str, Optional[int]] = Field(default_factory=dict)
    layout_override: Optional[LayoutDirection] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("layout_override", mode="before")
    @classmethod
    def coerce_override(cls, value: Any) -> Any:
        return _coerce_direction(value)

    @field_validator("node_entities", mode="before")
    @classmethod
    def coerce_mapping(cls, value: Any) -> Any:
        return _coerce_node_entities(value)

    def graph(self) -> Graph:
        return Graph(nodes=self.nodes, edges=self.edges).copy_graph()

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}


# --- Render output ---

class RenderedNode(ApiModel):
    """A diagram node with its computed position and resolved entity."""
    id: str
    label: str
    kind: Optional[str] = None
    position: Position
    entity_id: Optional[int] = None
    entity_label: Optional[str] = None

    @property
    def display_label(self) -> str:
        if self.entity_label is None:
            return self.label
        return f"{self.label}\nEntity: {self.entity_label}"


class RenderedDiagram(ApiModel):
    diagram_id: int
    direction: LayoutDirection
    nodes: list[RenderedNode]
    edges: list[GraphEdge]
    entity_labels: dict[str, Optional[str]]

    def to_api(self) -> dict:
        data = super().to_api()
        for rendered, node in zip(data["nodes"], self.nodes):
            rendered["displayLabel"] = node.display_label
        return data


# --- API Request Models ---

class CategoryCreateRequest(ApiModel):
    """Request to create an entity category."""
    name: str = ""
    description: Optional[str] = None


class CategoryUpdateRequest(ApiModel):
    """Request to update a category (partial update)."""
    name: Optional[str] = None
    description: Optional[str] = None


class EntityCreateRequest(ApiModel):
    """Request to create an entity."""
    name: str = ""
    category_id: Optional[int] = None
    description: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None


class EntityUpdateRequest(ApiModel):
    """Request to update an entity (partial update)."""
    name: Optional[str] = None
    category_id: Optional[int] = None
    description: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None


class TemplateCreateRequest(ApiModel):
    """
    Request to create a template.

    `nodes` and `edges` are raw payloads (lists or JSON text); they are parsed
    and repaired by the template service.
    """
    name: str = ""
    description: Optional[str] = None
    layout_direction: Optional[str] = Field(default=None, alias="layout")
    nodes: Any = None
    edges: Any = None


class TemplateUpdateRequest(ApiModel):
    """Request to update a template (partial update)."""
    name: Optional[str] = None
    description: Optional[str] = None
    layout_direction: Optional[str] = Field(default=None, alias="layout")
    nodes: Any = None
    edges: Any = None


class DiagramCreateRequest(ApiModel):
    """Request to instantiate a diagram from a template."""
    template_id: int
    name: str = ""
    description: Optional[str] = None
    project_id: Optional[int] = None
    document_id: Optional[int] = None
    node_entities: Optional[dict[str, Optional[int]]] = None

    @field_validator("node_entities", mode="before")
    @classmethod
    def coerce_mapping(cls, value: Any) -> Any:
        return None if value is None else _coerce_node_entities(value)


class DiagramUpdateRequest(ApiModel):
    """Request to update a diagram (partial update)."""
    name: Optional[str] = None
    description: Optional[str] = None
    project_id: Optional[int] = None
    document_id: Optional[int] = None
    node_entities: Optional[dict[str, Optional[int]]] = None
    layout_override: Optional[str] = None

    @field_validator("node_entities", mode="before")
    @classmethod
    def coerce_mapping(cls, value: Any) -> Any:
        return None if value is None else _coerce_node_entities(value)


class BindEntityRequest(ApiModel):
    """Bind a node to an entity; null or 0 unbinds it."""
    entity_id: Optional[int] = None


class AddEdgeRequest(ApiModel):
    """Request to add a diagram-local edge."""
    source: str
    target: str
    animated: bool = True


class LayoutRequest(ApiModel):
    """Stateless layout of a raw graph payload."""
    nodes: Any = None
    edges: Any = None
    direction: str = LayoutDirection.TOP_DOWN.value
