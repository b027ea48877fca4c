"""
Diagram Service - Instantiate, edit and render diagrams.

A diagram starts as a copy of a template's graph and then diverges:
- Nodes are bound to entities through `node_entities` (node id -> entity id)
- Manual edges are added to the diagram's own edge list
- Rendering resolves bindings to entity names and runs the layout engine

Bindings and edge edits are checked against the diagram's own node set, never
the template's, because the two may have diverged.
"""

import logging
from typing import Any, Optional

from diagram_core.graph import parse_graph
from diagram_core.layout import LayoutOptions, layout_graph
from diagram_core.models import GraphEdge, LayoutDirection
from diagram_core.validation import unique_edge_id

from .events import ChangeNotifier
from .exceptions import NodeNotFoundError, NotFoundError, ValidationError
from .models import Diagram, RenderedDiagram, RenderedNode, utcnow
from .registry import EntityRegistry
from .store import DIAGRAMS, JsonStore
from .templates import TemplateService

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "project_id", "document_id", "node_entities", "layout_override")


class DiagramService:
    """Manages diagrams instantiated from templates."""

    def __init__(
        self,
        store: JsonStore,
        templates: TemplateService,
        registry: EntityRegistry,
        notifier: Optional[ChangeNotifier] = None,
        layout_options: Optional[LayoutOptions] = None,
    ):
        self._store = store
        self._templates = templates
        self._registry = registry
        self._notifier = notifier or ChangeNotifier()
        self._layout_options = layout_options or LayoutOptions()

    # --- Lookups ---

    def list_diagrams(
        self,
        project_id: Optional[int] = None,
        document_id: Optional[int] = None,
    ) -> list[Diagram]:
        """All diagrams sorted by name, optionally filtered by project or document."""
        diagrams = [Diagram.model_validate(r) for r in self._store.list(DIAGRAMS)]
        if project_id is not None:
            diagrams = [d for d in diagrams if d.project_id == project_id]
        if document_id is not None:
            diagrams = [d for d in diagrams if d.document_id == document_id]
        return sorted(diagrams, key=lambda d: d.name.lower())

    def get_diagram(self, diagram_id: int) -> Optional[Diagram]:
        record = self._store.get(DIAGRAMS, diagram_id)
        return Diagram.model_validate(record) if record else None

    def require_diagram(self, diagram_id: int) -> Diagram:
        diagram = self.get_diagram(diagram_id)
        if diagram is None:
            raise NotFoundError(f"Diagram not found: {diagram_id}")
        return diagram

    # --- Binding checks ---

    def _checked_entity(self, diagram: Diagram, node_id: str, entity_id: Optional[int]) -> Optional[int]:
        """Validate one binding and return the entity id to store (None = unbound)."""
        if node_id not in diagram.node_ids():
            logger.warning("Rejected binding on diagram %d: no node %r", diagram.id, node_id)
            raise NodeNotFoundError(f"Node {node_id!r} is not part of diagram {diagram.id}")
        if not entity_id:
            return None
        self._registry.require_entity(entity_id)
        return entity_id

    def _checked_mapping(self, diagram: Diagram, node_entities: dict[str, Optional[int]]) -> dict[str, Optional[int]]:
        """Full mapping for every diagram node, with `node_entities` applied on top."""
        mapping: dict[str, Optional[int]] = {n.id: diagram.node_entities.get(n.id) for n in diagram.nodes}
        for node_id, entity_id in node_entities.items():
            mapping[node_id] = self._checked_entity(diagram, node_id, entity_id)
        return mapping

    def _save(self, diagram: Diagram) -> Diagram:
        diagram.updated_at = utcnow()
        stored = self._store.update(DIAGRAMS, diagram.id, diagram.model_dump(mode="json"))
        self._notifier.notify(DIAGRAMS)
        return Diagram.model_validate(stored)

    # --- Lifecycle ---

    def instantiate(
        self,
        template_id: int,
        name: str,
        description: Optional[str] = None,
        project_id: Optional[int] = None,
        document_id: Optional[int] = None,
        node_entities: Optional[dict[str, Optional[int]]] = None,
    ) -> Diagram:
        """
        Create a diagram from a template's current graph.

        Every node starts unbound; `node_entities` optionally binds some of them
        with the same checks as `bind_entity`. Nothing is stored if any binding
        is rejected.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Diagram name is required")

        template = self._templates.require_template(template_id)
        graph = template.graph()

        draft = Diagram(
            id=0,
            name=name,
            description=description,
            project_id=project_id,
            document_id=document_id,
            template_id=template.id,
            nodes=graph.nodes,
            edges=graph.edges,
            node_entities={n.id: None for n in graph.nodes},
        )
        if node_entities:
            draft.node_entities = self._checked_mapping(draft, node_entities)

        diagram = Diagram.model_validate(self._store.insert(DIAGRAMS, draft.model_dump(mode="json")))
        logger.info(
            "Instantiated diagram %d (%s) from template %d with %d nodes",
            diagram.id, diagram.name, template.id, len(diagram.nodes),
        )
        self._notifier.notify(DIAGRAMS)
        return diagram

    def update_diagram(self, diagram_id: int, **fields: Any) -> Diagram:
        """
        Update diagram fields. Every field passed is applied, so passing
        `project_id=None` detaches the diagram from its project.

        `node_entities` is merged over the current bindings.
        """
        diagram = self.require_diagram(diagram_id)

        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown diagram field(s): {', '.join(sorted(unknown))}")

        if "name" in fields:
            name = (fields["name"] or "").strip()
            if not name:
                raise ValidationError("Diagram name is required")
            diagram.name = name
        if "description" in fields:
            diagram.description = fields["description"]
        if "project_id" in fields:
            diagram.project_id = fields["project_id"]
        if "document_id" in fields:
            diagram.document_id = fields["document_id"]
        if "layout_override" in fields:
            override = fields["layout_override"]
            try:
                diagram.layout_override = LayoutDirection.coerce(override) if override else None
            except ValueError as e:
                raise ValidationError(str(e)) from e
        if fields.get("node_entities") is not None:
            diagram.node_entities = self._checked_mapping(diagram, fields["node_entities"])

        return self._save(diagram)

    def delete_diagram(self, diagram_id: int) -> None:
        """Delete a diagram. Templates and entities are not affected."""
        if not self._store.delete(DIAGRAMS, diagram_id):
            raise NotFoundError(f"Diagram not found: {diagram_id}")
        logger.info("Deleted diagram %d", diagram_id)
        self._notifier.notify(DIAGRAMS)

    def resync_from_template(self, diagram_id: int) -> Diagram:
        """
        Replace the diagram's graph with the template's current graph.

        Bindings are kept for node ids that still exist; manual edges are
        discarded along with the old graph.
        """
        diagram = self.require_diagram(diagram_id)
        template = self._templates.require_template(diagram.template_id)
        graph = template.graph()

        diagram.nodes = graph.nodes
        diagram.edges = graph.edges
        diagram.node_entities = {n.id: diagram.node_entities.get(n.id) for n in graph.nodes}
        logger.info("Resynced diagram %d from template %d", diagram.id, template.id)
        return self._save(diagram)

    # --- Bindings and edges ---

    def bind_entity(self, diagram_id: int, node_id: str, entity_id: Optional[int]) -> Diagram:
        """
        Bind one node to an entity, or unbind it with None/0.

        Raises:
            NodeNotFoundError: `node_id` is not in the diagram's own node set
            NotFoundError: the diagram or the entity does not exist
        """
        diagram = self.require_diagram(diagram_id)
        diagram.node_entities[node_id] = self._checked_entity(diagram, node_id, entity_id)
        return self._save(diagram)

    def add_manual_edge(self, diagram_id: int, source: str, target: str, animated: bool = True) -> GraphEdge:
        """Append an edge to the diagram's own edge list and return it."""
        diagram = self.require_diagram(diagram_id)
        node_ids = diagram.node_ids()
        for endpoint in (source, target):
            if endpoint not in node_ids:
                raise NodeNotFoundError(f"Node {endpoint!r} is not part of diagram {diagram.id}")

        edge_id = unique_edge_id(f"e{source}-{target}", {e.id for e in diagram.edges})

        edge = GraphEdge(id=edge_id, source=source, target=target, animated=animated)
        diagram.edges.append(edge)
        self._save(diagram)
        return edge

    def remove_edge(self, diagram_id: int, edge_id: str) -> Diagram:
        """Remove the first edge with `edge_id` from the diagram's own edges."""
        diagram = self.require_diagram(diagram_id)
        for index, edge in enumerate(diagram.edges):
            if edge.id == edge_id:
                del diagram.edges[index]
                return self._save(diagram)
        raise NotFoundError(f"Edge {edge_id!r} not found in diagram {diagram.id}")

    # --- Rendering ---

    def layout_direction(self, diagram: Diagram) -> LayoutDirection:
        """The diagram's override, else its template's direction, else top-down."""
        if diagram.layout_override is not None:
            return diagram.layout_override
        template = self._templates.get_template(diagram.template_id)
        if template is None:
            return LayoutDirection.TOP_DOWN
        return template.layout_direction

    def render(self, diagram_id: int) -> RenderedDiagram:
        """
        Lay out a diagram and resolve its entity bindings.

        Read-only: nothing is stored. Bindings to deleted entities resolve to
        "Unknown"; unbound nodes have no entity label.
        """
        diagram = self.require_diagram(diagram_id)
        graph = parse_graph(diagram.graph()).graph
        direction = self.layout_direction(diagram)
        positioned = layout_graph(graph.nodes, graph.edges, direction, self._layout_options)

        nodes = []
        entity_labels: dict[str, Optional[str]] = {}
        for node in positioned:
            entity_id = diagram.node_entities.get(node.id)
            entity_label = self._registry.entity_display_name(entity_id) if entity_id else None
            entity_labels[node.id] = entity_label
            nodes.append(RenderedNode(
                id=node.id,
                label=node.label,
                kind=node.kind,
                position=node.position,
                entity_id=entity_id,
                entity_label=entity_label,
            ))

        return RenderedDiagram(
            diagram_id=diagram.id,
            direction=direction,
            nodes=nodes,
            edges=graph.edges,
            entity_labels=entity_labels,
        )
