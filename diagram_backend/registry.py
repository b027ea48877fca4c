"""
Entity Registry - Categories and the entities diagram nodes can be bound to.

Besides plain create/read/update/delete, the registry enforces:
- Category names are non-empty and unique (case-insensitive)
- Every entity references an existing category
- A category cannot be deleted while an entity references it

It also resolves ids to display names for rendering, using the sentinels
"None" (unbound) and "Unknown" (id no longer exists).
"""

import logging
from typing import Optional

from .events import ChangeNotifier
from .exceptions import CategoryInUseError, NotFoundError, ValidationError
from .models import Entity, EntityCategory, utcnow
from .store import CATEGORIES, ENTITIES, JsonStore

logger = logging.getLogger(__name__)

UNBOUND_LABEL = "None"
UNKNOWN_LABEL = "Unknown"

ENTITY_FIELDS = (
    "name", "category_id", "description",
    "contact_name", "contact_email", "contact_phone", "address",
)
REQUIRED_ENTITY_FIELDS = ("name", "category_id")


def _required_name(name: Optional[str], what: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(f"{what} name is required")
    return name


class EntityRegistry:
    """Lifecycle and lookups for entity categories and entities."""

    def __init__(self, store: JsonStore, notifier: Optional[ChangeNotifier] = None):
        self._store = store
        self._notifier = notifier or ChangeNotifier()

    # --- Categories ---

    def list_categories(self) -> list[EntityCategory]:
        """All categories, sorted by name."""
        categories = [EntityCategory.model_validate(r) for r in self._store.list(CATEGORIES)]
        return sorted(categories, key=lambda c: c.name.lower())

    def get_category(self, category_id: int) -> Optional[EntityCategory]:
        record = self._store.get(CATEGORIES, category_id)
        return EntityCategory.model_validate(record) if record else None

    def require_category(self, category_id: int) -> EntityCategory:
        category = self.get_category(category_id)
        if category is None:
            raise NotFoundError(f"Entity category not found: {category_id}")
        return category

    def _check_unique_name(self, name: str, exclude_id: Optional[int] = None):
        for category in self.list_categories():
            if category.id != exclude_id and category.name.lower() == name.lower():
                raise ValidationError(f"Entity category already exists: {name}")

    def create_category(self, name: str, description: Optional[str] = None) -> EntityCategory:
        name = _required_name(name, "Category")
        self._check_unique_name(name)

        record = EntityCategory(id=0, name=name, description=description).model_dump(mode="json")
        category = EntityCategory.model_validate(self._store.insert(CATEGORIES, record))
        logger.info("Created entity category %d (%s)", category.id, category.name)
        self._notifier.notify(CATEGORIES)
        return category

    def update_category(
        self,
        category_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> EntityCategory:
        """Update a category; only the provided fields change."""
        category = self.require_category(category_id)

        if name is not None:
            name = _required_name(name, "Category")
            self._check_unique_name(name, exclude_id=category_id)
            category.name = name
        if description is not None:
            category.description = description
        category.updated_at = utcnow()

        stored = self._store.update(CATEGORIES, category_id, category.model_dump(mode="json"))
        self._notifier.notify(CATEGORIES)
        return EntityCategory.model_validate(stored)

    def delete_category(self, category_id: int) -> None:
        """
        Delete a category.

        Raises:
            NotFoundError: the category does not exist
            CategoryInUseError: at least one entity references the category;
                nothing is changed
        """
        self.require_category(category_id)

        in_use = self.list_entities(category_id=category_id)
        if in_use:
            logger.warning(
                "Refused to delete entity category %d: referenced by %d entities",
                category_id, len(in_use),
            )
            raise CategoryInUseError(category_id, len(in_use))

        self._store.delete(CATEGORIES, category_id)
        logger.info("Deleted entity category %d", category_id)
        self._notifier.notify(CATEGORIES)

    def category_name(self, category_id: Optional[int]) -> str:
        if not category_id:
            return UNBOUND_LABEL
        category = self.get_category(category_id)
        return category.name if category else UNKNOWN_LABEL

    # --- Entities ---

    def list_entities(self, category_id: Optional[int] = None) -> list[Entity]:
        """All entities, optionally limited to one category, sorted by name."""
        entities = [Entity.model_validate(r) for r in self._store.list(ENTITIES)]
        if category_id is not None:
            entities = [e for e in entities if e.category_id == category_id]
        return sorted(entities, key=lambda e: e.name.lower())

    def get_entity(self, entity_id: int) -> Optional[Entity]:
        record = self._store.get(ENTITIES, entity_id)
        return Entity.model_validate(record) if record else None

    def require_entity(self, entity_id: int) -> Entity:
        entity = self.get_entity(entity_id)
        if entity is None:
            raise NotFoundError(f"Entity not found: {entity_id}")
        return entity

    def create_entity(
        self,
        name: str,
        category_id: Optional[int],
        description: Optional[str] = None,
        contact_name: Optional[str] = None,
        contact_email: Optional[str] = None,
        contact_phone: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Entity:
        name = _required_name(name, "Entity")
        if not category_id:
            raise ValidationError("Category ID is required")
        self.require_category(category_id)

        record = Entity(
            id=0,
            name=name,
            category_id=category_id,
            description=description,
            contact_name=contact_name,
            contact_email=contact_email,
            contact_phone=contact_phone,
            address=address,
        ).model_dump(mode="json")
        entity = Entity.model_validate(self._store.insert(ENTITIES, record))
        logger.info("Created entity %d (%s) in category %d", entity.id, entity.name, category_id)
        self._notifier.notify(ENTITIES)
        return entity

    def update_entity(self, entity_id: int, **fields) -> Entity:
        """
        Update an entity; only the fields passed change.

        Passing None clears an optional text field. `name` and `category_id`
        are required, so None leaves them unchanged.
        """
        entity = self.require_entity(entity_id)

        unknown = set(fields) - set(ENTITY_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown entity field(s): {', '.join(sorted(unknown))}")

        if fields.get("name") is not None:
            fields["name"] = _required_name(fields["name"], "Entity")
        if fields.get("category_id") is not None:
            self.require_category(fields["category_id"])

        for key, value in fields.items():
            if value is None and key in REQUIRED_ENTITY_FIELDS:
                continue
            setattr(entity, key, value)
        entity.updated_at = utcnow()

        stored = self._store.update(ENTITIES, entity_id, entity.model_dump(mode="json"))
        self._notifier.notify(ENTITIES)
        return Entity.model_validate(stored)

    def delete_entity(self, entity_id: int) -> None:
        """
        Delete an entity unconditionally.

        Diagram bindings that point at it are left in place and render as
        "Unknown".
        """
        if not self._store.delete(ENTITIES, entity_id):
            raise NotFoundError(f"Entity not found: {entity_id}")
        logger.info("Deleted entity %d", entity_id)
        self._notifier.notify(ENTITIES)

    def entity_display_name(self, entity_id: Optional[int]) -> str:
        """Resolve an entity id to its name, "None" if unbound, "Unknown" if gone."""
        if not entity_id:
            return UNBOUND_LABEL
        entity = self.get_entity(entity_id)
        return entity.name if entity else UNKNOWN_LABEL
