"""
Diagram Backend - Storage, services and API for entity-bound diagrams.

Modules:
- store: JSON file persistence
- registry: entity categories and entities
- templates / diagrams: template lifecycle, instantiation, binding, rendering
- main: FastAPI application
- client / mcp_server: HTTP client and MCP tools built on it
"""
