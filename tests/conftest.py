"""Shared fixtures: an in-memory store with the services wired to it."""

import pytest
from fastapi.testclient import TestClient

from diagram_backend.config import Settings
from diagram_backend.diagrams import DiagramService
from diagram_backend.events import ChangeNotifier
from diagram_backend.main import create_app
from diagram_backend.registry import EntityRegistry
from diagram_backend.store import JsonStore
from diagram_backend.templates import TemplateService


REVIEW_NODES = [
    {"id": "1", "label": "Start"},
    {"id": "2", "label": "Review"},
    {"id": "3", "label": "End"},
]
REVIEW_EDGES = [
    {"source": "1", "target": "2"},
    {"source": "2", "target": "3"},
]


@pytest.fixture
def store():
    return JsonStore()


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def registry(store, notifier):
    return EntityRegistry(store, notifier)


@pytest.fixture
def templates(store, notifier):
    return TemplateService(store, notifier)


@pytest.fixture
def diagrams(store, templates, registry, notifier):
    return DiagramService(store, templates, registry, notifier)


@pytest.fixture
def review_template(templates):
    return templates.create_template("Review Flow", nodes=REVIEW_NODES, edges=REVIEW_EDGES)


@pytest.fixture
def reviewer(registry):
    category = registry.create_category("Reviewers")
    return registry.create_entity("Quality Team", category.id)


@pytest.fixture
def app():
    return create_app(settings=Settings(), store=JsonStore())


@pytest.fixture
def api(app):
    with TestClient(app) as client:
        yield client
