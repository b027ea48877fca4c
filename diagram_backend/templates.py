"""
Template Service - Reusable named graphs.

Templates are copied into diagrams at instantiation, so editing or deleting a
template never changes a diagram that was already created from it.
"""

import logging
from typing import Any, Optional

from diagram_core.graph import ParsedGraph, parse_graph_parts
from diagram_core.models import Graph, LayoutDirection

from .events import ChangeNotifier
from .exceptions import NotFoundError, ValidationError
from .models import Template, utcnow
from .store import TEMPLATES, JsonStore

logger = logging.getLogger(__name__)


def _direction(value: Any) -> LayoutDirection:
    try:
        return LayoutDirection.coerce(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e


class TemplateService:
    """Create, edit and hand out snapshots of diagram templates."""

    def __init__(self, store: JsonStore, notifier: Optional[ChangeNotifier] = None):
        self._store = store
        self._notifier = notifier or ChangeNotifier()

    def _parse(self, nodes: Any, edges: Any, template_name: str) -> ParsedGraph:
        parsed = parse_graph_parts(nodes, edges)
        if parsed.dropped_edges:
            logger.info(
                "Template %r: dropped %d dangling edge(s)",
                template_name, len(parsed.dropped_edges),
            )
        return parsed

    def list_templates(self) -> list[Template]:
        """All templates, sorted by name."""
        templates = [Template.model_validate(r) for r in self._store.list(TEMPLATES)]
        return sorted(templates, key=lambda t: t.name.lower())

    def get_template(self, template_id: int) -> Optional[Template]:
        record = self._store.get(TEMPLATES, template_id)
        return Template.model_validate(record) if record else None

    def require_template(self, template_id: int) -> Template:
        template = self.get_template(template_id)
        if template is None:
            raise NotFoundError(f"Diagram template not found: {template_id}")
        return template

    def create_template(
        self,
        name: str,
        description: Optional[str] = None,
        layout_direction: Any = LayoutDirection.TOP_DOWN,
        nodes: Any = None,
        edges: Any = None,
    ) -> Template:
        """
        Create a template.

        `nodes` and `edges` may be lists or JSON text. Malformed graph payloads
        are stored as an empty graph and dangling edges are dropped; neither
        fails the call.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Template name is required")
        direction = _direction(layout_direction)
        parsed = self._parse(nodes, edges, name)
        if parsed.error:
            logger.warning("Template %r: graph rejected (%s), storing empty graph", name, parsed.error)

        record = Template(
            id=0,
            name=name,
            description=description,
            layout_direction=direction,
            nodes=parsed.graph.nodes,
            edges=parsed.graph.edges,
        ).model_dump(mode="json")
        template = Template.model_validate(self._store.insert(TEMPLATES, record))
        logger.info(
            "Created template %d (%s): %d nodes, %d edges",
            template.id, template.name, len(template.nodes), len(template.edges),
        )
        self._notifier.notify(TEMPLATES)
        return template

    def update_template(
        self,
        template_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        layout_direction: Any = None,
        nodes: Any = None,
        edges: Any = None,
    ) -> Template:
        """
        Edit a template in place; only the provided fields change.

        Unlike `create_template`, a malformed `nodes` or `edges` payload is
        rejected with ValidationError and the stored graph is kept.

        Diagrams already instantiated from it keep their own graph copy.
        """
        template = self.require_template(template_id)

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Template name is required")
            template.name = name
        if description is not None:
            template.description = description
        if layout_direction is not None:
            template.layout_direction = _direction(layout_direction)
        if nodes is not None or edges is not None:
            parsed = self._parse(
                nodes if nodes is not None else [n.model_dump(mode="json") for n in template.nodes],
                edges if edges is not None else [e.model_dump(mode="json") for e in template.edges],
                template.name,
            )
            if parsed.error:
                logger.warning("Template %d: rejected graph update (%s)", template_id, parsed.error)
                raise ValidationError(parsed.error)
            template.nodes = parsed.graph.nodes
            template.edges = parsed.graph.edges
        template.updated_at = utcnow()

        stored = self._store.update(TEMPLATES, template_id, template.model_dump(mode="json"))
        self._notifier.notify(TEMPLATES)
        return Template.model_validate(stored)

    def delete_template(self, template_id: int) -> None:
        """
        Delete a template.

        Allowed while diagrams reference it: their `template_id` is provenance
        only and they render from their own graph copy.
        """
        if not self._store.delete(TEMPLATES, template_id):
            raise NotFoundError(f"Diagram template not found: {template_id}")
        logger.info("Deleted template %d", template_id)
        self._notifier.notify(TEMPLATES)

    def template_graph(self, template_id: int) -> Graph:
        """A deep copy of the template's current graph."""
        return self.require_template(template_id).graph()
