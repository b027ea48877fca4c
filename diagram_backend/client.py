"""
HTTP client for the diagram backend API.

List responses are cached per resource. Every successful mutation made
through the client drops the cached lists of the resource it changed, so the
next read observes the write. Failed calls raise ApiError and are not retried.
"""

import copy
import logging
from typing import Any, Optional

import httpx

from .exceptions import ApiError
from .store import CATEGORIES, DIAGRAMS, ENTITIES, TEMPLATES

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8765"


class DiagramApiClient:
    """Synchronous client for the REST API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        http: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self._cache: dict[str, Any] = {}

    def close(self):
        self._http.close()

    def __enter__(self) -> "DiagramApiClient":
        return self

    def __exit__(self, *exc_info):
        self.close()

    # --- HTTP Helpers ---

    def _request(self, method: str, endpoint: str, json: Any = None, params: Optional[dict] = None) -> Any:
        """Make a request to the backend and return the decoded JSON body."""
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = self._http.request(method, f"/api{endpoint}", json=json, params=params or None)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, endpoint, e)
            raise ApiError(f"Connection failed: {e}. Is the diagram backend running?") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", "Unknown error")
            except ValueError:
                detail = response.text
            raise ApiError(f"API error: {detail}", status_code=response.status_code)

        return response.json()

    @staticmethod
    def _cache_key(resource: str, params: Optional[dict]) -> str:
        if not params:
            return resource
        filtered = sorted((k, v) for k, v in params.items() if v is not None)
        return f"{resource}?{filtered}" if filtered else resource

    def _list(self, resource: str, params: Optional[dict] = None) -> list[dict]:
        key = self._cache_key(resource, params)
        if key not in self._cache:
            self._cache[key] = self._request("GET", f"/{resource}", params=params)
        return copy.deepcopy(self._cache[key])

    def _mutate(self, method: str, endpoint: str, resource: str, json: Any = None) -> Any:
        result = self._request(method, endpoint, json=json)
        self.invalidate(resource)
        return result

    def invalidate(self, resource: str):
        """Drop every cached list of `resource`."""
        for key in list(self._cache):
            if key == resource or key.startswith(f"{resource}?"):
                del self._cache[key]

    # --- Entity Categories ---

    def list_categories(self) -> list[dict]:
        return self._list(CATEGORIES)

    def create_category(self, name: str, description: Optional[str] = None) -> dict:
        return self._mutate("POST", f"/{CATEGORIES}", CATEGORIES, {"name": name, "description": description})

    def update_category(self, category_id: int, **fields) -> dict:
        return self._mutate("PUT", f"/{CATEGORIES}/{category_id}", CATEGORIES, fields)

    def delete_category(self, category_id: int) -> dict:
        return self._mutate("DELETE", f"/{CATEGORIES}/{category_id}", CATEGORIES)

    # --- Entities ---

    def list_entities(self, category_id: Optional[int] = None) -> list[dict]:
        return self._list(ENTITIES, {"categoryId": category_id})

    def get_entity(self, entity_id: int) -> dict:
        return self._request("GET", f"/{ENTITIES}/{entity_id}")

    def create_entity(self, name: str, category_id: int, **fields) -> dict:
        payload = {"name": name, "categoryId": category_id, **fields}
        return self._mutate("POST", f"/{ENTITIES}", ENTITIES, payload)

    def update_entity(self, entity_id: int, **fields) -> dict:
        return self._mutate("PUT", f"/{ENTITIES}/{entity_id}", ENTITIES, fields)

    def delete_entity(self, entity_id: int) -> dict:
        return self._mutate("DELETE", f"/{ENTITIES}/{entity_id}", ENTITIES)

    # --- Templates ---

    def list_templates(self) -> list[dict]:
        return self._list(TEMPLATES)

    def get_template(self, template_id: int) -> dict:
        return self._request("GET", f"/{TEMPLATES}/{template_id}")

    def create_template(
        self,
        name: str,
        nodes: Any = None,
        edges: Any = None,
        layout: str = "top-down",
        description: Optional[str] = None,
    ) -> dict:
        payload = {"name": name, "description": description, "layout": layout, "nodes": nodes, "edges": edges}
        return self._mutate("POST", f"/{TEMPLATES}", TEMPLATES, payload)

    def update_template(self, template_id: int, **fields) -> dict:
        return self._mutate("PUT", f"/{TEMPLATES}/{template_id}", TEMPLATES, fields)

    def delete_template(self, template_id: int) -> dict:
        return self._mutate("DELETE", f"/{TEMPLATES}/{template_id}", TEMPLATES)

    # --- Diagrams ---

    def list_diagrams(self, project_id: Optional[int] = None, document_id: Optional[int] = None) -> list[dict]:
        return self._list(DIAGRAMS, {"projectId": project_id, "documentId": document_id})

    def get_diagram(self, diagram_id: int) -> dict:
        return self._request("GET", f"/{DIAGRAMS}/{diagram_id}")

    def create_diagram(self, template_id: int, name: str, **fields) -> dict:
        payload = {"templateId": template_id, "name": name, **fields}
        return self._mutate("POST", f"/{DIAGRAMS}", DIAGRAMS, payload)

    def update_diagram(self, diagram_id: int, **fields) -> dict:
        return self._mutate("PUT", f"/{DIAGRAMS}/{diagram_id}", DIAGRAMS, fields)

    def delete_diagram(self, diagram_id: int) -> dict:
        return self._mutate("DELETE", f"/{DIAGRAMS}/{diagram_id}", DIAGRAMS)

    def bind_entity(self, diagram_id: int, node_id: str, entity_id: Optional[int]) -> dict:
        return self._mutate(
            "PUT", f"/{DIAGRAMS}/{diagram_id}/nodes/{node_id}/entity", DIAGRAMS, {"entityId": entity_id}
        )

    def add_edge(self, diagram_id: int, source: str, target: str, animated: bool = True) -> dict:
        payload = {"source": source, "target": target, "animated": animated}
        return self._mutate("POST", f"/{DIAGRAMS}/{diagram_id}/edges", DIAGRAMS, payload)

    def remove_edge(self, diagram_id: int, edge_id: str) -> dict:
        return self._mutate("DELETE", f"/{DIAGRAMS}/{diagram_id}/edges/{edge_id}", DIAGRAMS)

    def resync_diagram(self, diagram_id: int) -> dict:
        return self._mutate("POST", f"/{DIAGRAMS}/{diagram_id}/resync", DIAGRAMS)

    def render_diagram(self, diagram_id: int) -> dict:
        return self._request("GET", f"/{DIAGRAMS}/{diagram_id}/render")

    # --- Stateless graph tools ---

    def layout(self, nodes: Any, edges: Any, direction: str = "top-down") -> dict:
        return self._request("POST", "/layout", json={"nodes": nodes, "edges": edges, "direction": direction})

    def validate_graph(self, nodes: Any, edges: Any) -> dict:
        return self._request("POST", "/graph/validate", json={"nodes": nodes, "edges": edges})
