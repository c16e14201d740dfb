from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

from marketplace.core.metrics import request_metrics

Handler = Callable[[dict[str, Any]], None]

ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status.changed"
ORDER_CANCELED = "order.canceled"
PAYMENT_STATUS_CHANGED = "order.payment.changed"
DISCOUNT_LIMIT_REACHED = "discount.limit_reached"
MESSAGE_SENT = "message.sent"
PASSWORD_RESET_REQUESTED = "auth.password_reset_requested"


class EventBus:
    """Synchronous fire-and-forget dispatch; a failing handler never reaches the emitter."""

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._logger = logging.getLogger(__name__)

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        request_metrics.count_event(event_name)
        handlers = list(self._handlers.get(event_name, []))
        if not handlers:
            self._logger.debug("EventBus: no handlers for %s", event_name)
            return
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                self._logger.exception("EventBus handler failed for %s", event_name)

    def subscribe(self, event_name: str, handler: Handler) -> None:
        if handler not in self._handlers[event_name]:
            self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_name)
        if handlers and handler in handlers:
            handlers.remove(handler)


event_bus = EventBus()
