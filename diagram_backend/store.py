"""
JSON Store - Persistence for categories, entities, templates and diagrams.

Records are plain dicts keyed by collection and numeric id. The whole state is
one JSON document; every mutation writes the new document to disk first and
only then replaces the in-memory state, so a failed write leaves the
last-known-good state in place. Without a path the store is memory only.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Optional

from .exceptions import NotFoundError, StorageError

logger = logging.getLogger(__name__)

CATEGORIES = "entity-categories"
ENTITIES = "entities"
TEMPLATES = "diagram-templates"
DIAGRAMS = "diagrams"
COLLECTIONS = (CATEGORIES, ENTITIES, TEMPLATES, DIAGRAMS)


def _empty_state() -> dict:
    return {
        "collections": {name: {} for name in COLLECTIONS},
        "next_ids": {name: 1 for name in COLLECTIONS},
    }


class JsonStore:
    """
    Numeric-id keyed record storage backed by a single JSON file.

    Records returned from the store are copies; mutating them has no effect
    until they are passed back through `update`.
    """

    def __init__(self, path: Optional[str | Path] = None):
        self._path: Optional[Path] = Path(path) if path else None
        self._state = _empty_state()
        if self._path is not None and self._path.exists():
            self._state = self._load(self._path)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    # --- File Operations ---

    @staticmethod
    def _load(path: Path) -> dict:
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to load store {path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Failed to load store {path}: expected a JSON object, got {type(data).__name__}")
        collections = data.get("collections", {})
        next_ids = data.get("next_ids", {})
        if not isinstance(collections, dict) or not isinstance(next_ids, dict):
            raise StorageError(f"Failed to load store {path}: collections and next_ids must be objects")

        state = _empty_state()
        for name in COLLECTIONS:
            state["collections"][name] = collections.get(name, {})
            state["next_ids"][name] = next_ids.get(name, 1)
        logger.info(
            "Loaded store %s (%s)",
            path,
            ", ".join(f"{len(state['collections'][n])} {n}" for n in COLLECTIONS),
        )
        return state

    def _commit(self, state: dict) -> None:
        """Persist `state`, then make it current."""
        if self._path is not None:
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, 'w') as f:
                    json.dump(state, f, indent=2)
                os.replace(tmp_path, self._path)
            except OSError as e:
                logger.error("Failed to write store %s: %s", self._path, e)
                raise StorageError(f"Failed to save changes: {e}") from e
        self._state = state

    def _records(self, collection: str) -> dict:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        return self._state["collections"][collection]

    # --- Reads ---

    def list(self, collection: str) -> list[dict]:
        """All records of a collection in id order."""
        records = self._records(collection)
        return [copy.deepcopy(records[key]) for key in sorted(records, key=int)]

    def get(self, collection: str, record_id: int) -> Optional[dict]:
        record = self._records(collection).get(str(record_id))
        return copy.deepcopy(record) if record is not None else None

    # --- Writes ---

    def insert(self, collection: str, record: dict) -> dict:
        """Store a new record under the next free id and return the stored copy."""
        self._records(collection)
        state = copy.deepcopy(self._state)
        record_id = state["next_ids"][collection]
        stored = copy.deepcopy(record)
        stored["id"] = record_id
        state["collections"][collection][str(record_id)] = stored
        state["next_ids"][collection] = record_id + 1
        self._commit(state)
        return copy.deepcopy(stored)

    def update(self, collection: str, record_id: int, record: dict) -> dict:
        """Replace an existing record (last write wins)."""
        if str(record_id) not in self._records(collection):
            raise NotFoundError(f"{collection} record {record_id} not found")
        state = copy.deepcopy(self._state)
        stored = copy.deepcopy(record)
        stored["id"] = record_id
        state["collections"][collection][str(record_id)] = stored
        self._commit(state)
        return copy.deepcopy(stored)

    def delete(self, collection: str, record_id: int) -> bool:
        """Delete a record. Returns False if it did not exist."""
        if str(record_id) not in self._records(collection):
            return False
        state = copy.deepcopy(self._state)
        del state["collections"][collection][str(record_id)]
        self._commit(state)
        return True
