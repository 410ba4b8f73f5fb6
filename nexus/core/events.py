"""
In-process event bus for vault notifications.
"""

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List

VAULT_UPDATED = "vault.updated"
VAULT_LOCKED = "vault.locked"
VAULT_UNLOCKED = "vault.unlocked"
VAULT_WIPED = "vault.wiped"
NAVIGATE = "navigate"
PIPELINE_STEP = "pipeline.step"

Handler = Callable[[str, Dict[str, Any]], None]

logger = logging.getLogger(__name__)


class EventBus:
    """Synchronous publish/subscribe. A failing subscriber never stops delivery."""

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event: str, handler: Handler):
        with self._lock:
            self._subscribers[event].append(handler)

    def unsubscribe(self, event: str, handler: Handler):
        with self._lock:
            if handler in self._subscribers.get(event, []):
                self._subscribers[event].remove(handler)

    def emit(self, event: str, payload: Dict[str, Any] = None):
        with self._lock:
            handlers = list(self._subscribers.get(event, []))

        for handler in handlers:
            try:
                handler(event, payload or {})
            except Exception as e:
                logger.warning(f"Event handler for {event} failed: {e}")
