"""
Change notifications.

Services report every successful mutation by naming the list resource it
invalidates (one of the store collection names). Listeners such as the
websocket broadcaster use this to tell clients which cached lists to refetch.
"""

import logging
from typing import Callable

logger = logging.getLogger(__name__)


class ChangeNotifier:
    """Fan-out of `resource` names to registered callbacks."""

    def __init__(self):
        self._on_change_callbacks: list[Callable[[str], None]] = []

    def on_change(self, callback: Callable[[str], None]):
        """Register a callback for changes; it receives the resource name."""
        self._on_change_callbacks.append(callback)

    def remove_on_change(self, callback: Callable[[str], None]):
        """Unregister a callback added with `on_change`; unknown callbacks are ignored."""
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    @property
    def listener_count(self) -> int:
        return len(self._on_change_callbacks)

    def notify(self, resource: str):
        """Notify all registered callbacks of a change to `resource`."""
        logger.debug("Invalidating %s", resource)
        for callback in self._on_change_callbacks:
            try:
                callback(resource)
            except Exception:
                # The mutation is already committed; a listener must not undo it
                logger.exception("Change callback failed for %s", resource)
