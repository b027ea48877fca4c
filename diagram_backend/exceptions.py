"""
Common exceptions for the diagram backend.

Each exception carries the HTTP status the API responds with.
"""


class DiagramToolError(Exception):
    """Base exception for all diagram backend errors."""
    status_code = 500


class ValidationError(DiagramToolError):
    """Raised when a record is missing required fields or breaks a field rule."""
    status_code = 400


class NotFoundError(DiagramToolError):
    """Raised when a referenced record does not exist."""
    status_code = 404


class NodeNotFoundError(NotFoundError):
    """Raised when a node id is not part of a diagram's own node set."""
    pass


class CategoryInUseError(DiagramToolError):
    """Raised when deleting a category that entities still reference."""
    status_code = 409

    def __init__(self, category_id: int, entity_count: int):
        self.category_id = category_id
        self.entity_count = entity_count
        super().__init__(
            f"Entity category {category_id} is in use by {entity_count} "
            f"entit{'y' if entity_count == 1 else 'ies'}"
        )


class StorageError(DiagramToolError):
    """Raised when persisting a change fails. The change is not applied."""
    status_code = 500


class ApiError(DiagramToolError):
    """Raised by the HTTP client when a call fails or the API rejects it."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
