"""LogSoul - Synchronous event emitter"""

import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


class EventEmitter:
    """Minimal publish/subscribe mixin.

    Handlers run in the emitting thread, in subscription order. A failing
    handler is logged and does not prevent the remaining handlers from
    running.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = defaultdict(list)
        self._handlers_lock = threading.Lock()

    def on(self, event: str, handler: Callable) -> Callable:
        with self._handlers_lock:
            self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: Callable):
        with self._handlers_lock:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

    def emit(self, event: str, *args) -> int:
        with self._handlers_lock:
            handlers = list(self._handlers.get(event, ()))

        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception("Handler for %r event failed", event)
        return len(handlers)
