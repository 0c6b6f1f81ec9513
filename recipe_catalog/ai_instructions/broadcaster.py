from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Subscriber = Callable[[dict[str, Any]], None]


class InstructionsBroadcaster:
    """Fan-out of AI instruction state changes, keyed by recipe id."""

    def __init__(self) -> None:
        self._subscribers: dict[int, list[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, recipe_id: int, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for ``recipe_id``; returns an unsubscribe function."""
        with self._lock:
            self._subscribers[recipe_id].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(recipe_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(recipe_id, None)

        return unsubscribe

    def subscriber_count(self, recipe_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(recipe_id, []))

    def publish(self, recipe_id: int, payload: dict[str, Any]) -> int:
        with self._lock:
            callbacks = list(self._subscribers.get(recipe_id, []))

        delivered = 0
        for callback in callbacks:
            try:
                callback(payload)
                delivered += 1
            except Exception:
                logger.warning("Live subscriber for recipe %s failed", recipe_id, exc_info=True)
        return delivered
