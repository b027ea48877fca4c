"""Tests for the entity registry."""

import pytest

from diagram_backend.exceptions import CategoryInUseError, NotFoundError, ValidationError
from diagram_backend.registry import UNBOUND_LABEL, UNKNOWN_LABEL


class TestCategories:
    def test_create_and_list_sorted(self, registry):
        registry.create_category("Reviewers")
        registry.create_category("contractors", "External firms")
        assert [c.name for c in registry.list_categories()] == ["contractors", "Reviewers"]

    def test_name_required(self, registry):
        with pytest.raises(ValidationError):
            registry.create_category("   ")

    def test_name_unique_case_insensitive(self, registry):
        registry.create_category("Reviewers")
        with pytest.raises(ValidationError):
            registry.create_category("reviewers")

    def test_rename_to_own_name_allowed(self, registry):
        category = registry.create_category("Reviewers")
        updated = registry.update_category(category.id, name="Reviewers", description="QA")
        assert updated.description == "QA"

    def test_delete_in_use_refused(self, registry, reviewer):
        with pytest.raises(CategoryInUseError) as excinfo:
            registry.delete_category(reviewer.category_id)
        assert excinfo.value.entity_count == 1
        assert excinfo.value.status_code == 409
        assert registry.get_category(reviewer.category_id) is not None

    def test_delete_after_entities_removed(self, registry, reviewer):
        registry.delete_entity(reviewer.id)
        registry.delete_category(reviewer.category_id)
        assert registry.list_categories() == []

    def test_delete_missing(self, registry):
        with pytest.raises(NotFoundError):
            registry.delete_category(99)

    def test_category_name(self, registry, reviewer):
        assert registry.category_name(reviewer.category_id) == "Reviewers"
        assert registry.category_name(None) == UNBOUND_LABEL
        assert registry.category_name(99) == UNKNOWN_LABEL


class TestEntities:
    def test_create_requires_category(self, registry):
        with pytest.raises(ValidationError, match="Category ID is required"):
            registry.create_entity("Quality Team", None)
        with pytest.raises(NotFoundError):
            registry.create_entity("Quality Team", 42)

    def test_create_requires_name(self, registry):
        category = registry.create_category("Reviewers")
        with pytest.raises(ValidationError):
            registry.create_entity("", category.id)

    def test_list_filtered_by_category(self, registry, reviewer):
        other = registry.create_category("Contractors")
        registry.create_entity("Acme", other.id, contact_email="ops@acme.test")
        assert [e.name for e in registry.list_entities()] == ["Acme", "Quality Team"]
        assert [e.name for e in registry.list_entities(category_id=other.id)] == ["Acme"]

    def test_update_partial(self, registry, reviewer):
        updated = registry.update_entity(reviewer.id, contact_name="Dana", name=None)
        assert updated.name == "Quality Team"
        assert updated.contact_name == "Dana"

    def test_update_clears_optional_field(self, registry, reviewer):
        registry.update_entity(reviewer.id, contact_email="qa@example.test")
        updated = registry.update_entity(reviewer.id, contact_email=None)
        assert updated.contact_email is None
        assert updated.name == "Quality Team"

    def test_update_rejects_unknown_field(self, registry, reviewer):
        with pytest.raises(ValidationError):
            registry.update_entity(reviewer.id, colour="red")

    def test_update_to_missing_category(self, registry, reviewer):
        with pytest.raises(NotFoundError):
            registry.update_entity(reviewer.id, category_id=99)

    def test_display_name(self, registry, reviewer):
        assert registry.entity_display_name(reviewer.id) == "Quality Team"
        assert registry.entity_display_name(None) == UNBOUND_LABEL
        assert registry.entity_display_name(0) == UNBOUND_LABEL
        registry.delete_entity(reviewer.id)
        assert registry.entity_display_name(reviewer.id) == UNKNOWN_LABEL

    def test_mutations_notify(self, registry, notifier):
        seen = []
        notifier.on_change(seen.append)
        category = registry.create_category("Reviewers")
        registry.create_entity("Quality Team", category.id)
        assert seen == ["entity-categories", "entities"]
