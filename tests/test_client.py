"""Tests for the HTTP client and its list cache."""

import httpx
import pytest

from diagram_backend.client import DiagramApiClient
from diagram_backend.exceptions import ApiError

from .conftest import REVIEW_EDGES, REVIEW_NODES


@pytest.fixture
def client(api):
    return DiagramApiClient(http=api)


def count_requests(api, path):
    calls = []
    api.event_hooks["request"].append(
        lambda request: calls.append(request) if request.url.path == path else None
    )
    return calls


def test_list_is_cached_until_own_mutation(api, client):
    calls = count_requests(api, "/api/entity-categories")

    assert client.list_categories() == []
    assert client.list_categories() == []
    gets = [c for c in calls if c.method == "GET"]
    assert len(gets) == 1

    client.create_category("Reviewers")
    assert [c["name"] for c in client.list_categories()] == ["Reviewers"]
    gets = [c for c in calls if c.method == "GET"]
    assert len(gets) == 2


def test_cached_lists_are_copies(client):
    client.create_category("Reviewers")
    client.list_categories()[0]["name"] = "Changed"
    assert client.list_categories()[0]["name"] == "Reviewers"


def test_filtered_lists_invalidated_together(client):
    category = client.create_category("Reviewers")
    assert client.list_entities(category_id=category["id"]) == []
    client.create_entity("Quality Team", category["id"])
    assert [e["name"] for e in client.list_entities(category_id=category["id"])] == ["Quality Team"]
    assert len(client.list_entities()) == 1


def test_diagram_workflow(client):
    template = client.create_template("Review Flow", REVIEW_NODES, REVIEW_EDGES)
    category = client.create_category("Reviewers")
    entity = client.create_entity("Quality Team", category["id"])

    assert client.list_diagrams() == []
    diagram = client.create_diagram(template["id"], "Q3 Review", projectId=1)
    client.bind_entity(diagram["id"], "2", entity["id"])
    client.add_edge(diagram["id"], "1", "3")

    listed = client.list_diagrams(project_id=1)
    assert listed[0]["nodeEntities"]["2"] == entity["id"]
    assert len(listed[0]["edges"]) == 3

    rendered = client.render_diagram(diagram["id"])
    assert rendered["entityLabels"]["2"] == "Quality Team"


def test_api_error_carries_status(client):
    with pytest.raises(ApiError) as excinfo:
        client.get_diagram(404)
    assert excinfo.value.status_code == 404
    assert "Diagram not found" in str(excinfo.value)


def test_failed_mutation_keeps_cache(client):
    category = client.create_category("Reviewers")
    client.create_entity("Quality Team", category["id"])
    before = client.list_categories()
    with pytest.raises(ApiError):
        client.delete_category(category["id"])
    assert client.list_categories() == before


def test_connection_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = DiagramApiClient(http=httpx.Client(base_url="http://backend", transport=httpx.MockTransport(refuse)))
    with pytest.raises(ApiError, match="Connection failed"):
        client.list_templates()
