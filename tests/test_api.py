"""Tests for the REST API."""

from fastapi.testclient import TestClient

from .conftest import REVIEW_EDGES, REVIEW_NODES


def create_template(api, **overrides):
    payload = {"name": "Review Flow", "layout": "dagre", "nodes": REVIEW_NODES, "edges": REVIEW_EDGES}
    payload.update(overrides)
    response = api.post("/api/diagram-templates", json=payload)
    assert response.status_code == 201
    return response.json()


def create_reviewer(api):
    category = api.post("/api/entity-categories", json={"name": "Reviewers"}).json()
    response = api.post("/api/entities", json={"name": "Quality Team", "categoryId": category["id"]})
    assert response.status_code == 201
    return response.json()


def test_health(api):
    response = api.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_category_crud(api):
    created = api.post("/api/entity-categories", json={"name": "Contractors"}).json()
    assert created["name"] == "Contractors"
    assert "createdAt" in created

    updated = api.put(f"/api/entity-categories/{created['id']}", json={"description": "External"}).json()
    assert updated["description"] == "External"

    response = api.delete(f"/api/entity-categories/{created['id']}")
    assert response.json()["success"] is True
    assert api.get(f"/api/entity-categories/{created['id']}").status_code == 404


def test_category_in_use_conflict(api):
    entity = create_reviewer(api)
    response = api.delete(f"/api/entity-categories/{entity['categoryId']}")
    assert response.status_code == 409
    assert "in use" in response.json()["detail"]


def test_entity_validation_errors(api):
    assert api.post("/api/entities", json={"name": "No Category"}).status_code == 400
    assert api.post("/api/entities", json={"name": "Ghost", "categoryId": 99}).status_code == 404


def test_entity_contact_cleared_with_null(api):
    entity = create_reviewer(api)
    api.put(f"/api/entities/{entity['id']}", json={"contactEmail": "qa@example.test", "contactName": "Dana"})

    updated = api.put(f"/api/entities/{entity['id']}", json={"contactEmail": None}).json()
    assert updated["contactEmail"] is None
    assert updated["contactName"] == "Dana"


def test_entities_filtered(api):
    entity = create_reviewer(api)
    other = api.post("/api/entity-categories", json={"name": "Contractors"}).json()
    api.post("/api/entities", json={"name": "Acme", "categoryId": other["id"]})

    response = api.get("/api/entities", params={"categoryId": entity["categoryId"]})
    assert [e["name"] for e in response.json()] == ["Quality Team"]


def test_template_payload(api):
    template = create_template(api)
    assert template["layout"] == "top-down"
    assert [e["id"] for e in template["edges"]] == ["e1-2", "e2-3"]


def test_template_unknown_layout(api):
    response = api.post("/api/diagram-templates", json={"name": "Bad", "layout": "radial"})
    assert response.status_code == 400


def test_review_scenario(api):
    template = create_template(api)
    entity = create_reviewer(api)

    diagram = api.post(
        "/api/diagrams",
        json={"templateId": template["id"], "name": "Q3 Review", "projectId": 4},
    ).json()
    assert diagram["nodeEntities"] == {"1": None, "2": None, "3": None}
    assert diagram["templateId"] == template["id"]

    response = api.put(f"/api/diagrams/{diagram['id']}/nodes/2/entity", json={"entityId": entity["id"]})
    assert response.status_code == 200
    assert response.json()["nodeEntities"]["2"] == entity["id"]

    rendered = api.get(f"/api/diagrams/{diagram['id']}/render").json()
    by_id = {n["id"]: n for n in rendered["nodes"]}
    assert by_id["2"]["displayLabel"] == "Review\nEntity: Quality Team"
    assert by_id["2"]["entityLabel"] == "Quality Team"
    assert by_id["1"]["entityLabel"] is None
    assert rendered["direction"] == "top-down"

    listed = api.get("/api/diagrams", params={"projectId": 4}).json()
    assert [d["name"] for d in listed] == ["Q3 Review"]


def test_bind_unknown_node(api):
    template = create_template(api)
    diagram = api.post("/api/diagrams", json={"templateId": template["id"], "name": "D"}).json()
    response = api.put(f"/api/diagrams/{diagram['id']}/nodes/99/entity", json={"entityId": None})
    assert response.status_code == 404


def test_manual_edges(api):
    template = create_template(api)
    diagram = api.post("/api/diagrams", json={"templateId": template["id"], "name": "D"}).json()

    response = api.post(f"/api/diagrams/{diagram['id']}/edges", json={"source": "1", "target": "3"})
    assert response.status_code == 201
    assert response.json()["id"] == "e1-3"

    removed = api.delete(f"/api/diagrams/{diagram['id']}/edges/e1-2").json()
    assert [e["id"] for e in removed["edges"]] == ["e2-3", "e1-3"]

    template_edges = api.get(f"/api/diagram-templates/{template['id']}").json()["edges"]
    assert len(template_edges) == 2


def test_resync(api):
    template = create_template(api)
    diagram = api.post("/api/diagrams", json={"templateId": template["id"], "name": "D"}).json()
    api.put(f"/api/diagram-templates/{template['id']}", json={"nodes": REVIEW_NODES[:1], "edges": []})

    resynced = api.post(f"/api/diagrams/{diagram['id']}/resync").json()
    assert [n["id"] for n in resynced["nodes"]] == ["1"]


def test_missing_diagram(api):
    assert api.get("/api/diagrams/123").status_code == 404
    assert api.get("/api/diagrams/123/render").status_code == 404


def test_stateless_layout(api):
    response = api.post("/api/layout", json={
        "nodes": REVIEW_NODES,
        "edges": REVIEW_EDGES + [{"source": "3", "target": "ghost"}],
        "direction": "left-right",
    })
    body = response.json()
    assert body["error"] is None
    assert [e["target"] for e in body["droppedEdges"]] == ["ghost"]
    xs = [n["position"]["x"] for n in body["nodes"]]
    assert xs == sorted(xs)


def test_stateless_layout_malformed(api):
    body = api.post("/api/layout", json={"nodes": "{broken", "edges": []}).json()
    assert body["nodes"] == []
    assert body["error"]


def test_validate_graph(api):
    body = api.post("/api/graph/validate", json={
        "nodes": [{"id": "a", "label": "A"}],
        "edges": [{"source": "a", "target": "ghost"}],
    }).json()
    assert body["valid"] is False
    assert body["summary"]["errors"] == 1


def test_websocket_ping(api):
    with api.websocket_connect("/ws") as websocket:
        websocket.send_text("ping")
        assert websocket.receive_json() == {"type": "pong"}


def test_websocket_invalidation(api):
    with api.websocket_connect("/ws") as websocket:
        api.post("/api/entity-categories", json={"name": "Reviewers"})
        assert websocket.receive_json() == {"type": "invalidate", "resource": "entity-categories"}


def test_restart_does_not_leak_change_listeners(app):
    for _ in range(3):
        with TestClient(app) as client:
            assert client.get("/api/health").status_code == 200
            assert app.state.notifier.listener_count == 1
    assert app.state.notifier.listener_count == 0


def test_template_update_with_bad_graph_keeps_template(api):
    template = create_template(api)
    response = api.put(f"/api/diagram-templates/{template['id']}", json={"nodes": "{typo"})
    assert response.status_code == 400

    stored = api.get(f"/api/diagram-templates/{template['id']}").json()
    assert len(stored["nodes"]) == 3
