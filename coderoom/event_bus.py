from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from coderoom.events import AppEvent

logger = logging.getLogger(__name__)


@dataclass
class EventBusMetrics:
    published: int = 0
    delivered: int = 0
    retried: int = 0
    handler_failures: int = 0


class EventBus:
    """Synchronous notify hub between the room engine and whatever renders it.

    Handlers run inline on the publishing coroutine's thread, in subscription
    order. A failing handler is logged and never breaks the publisher.
    """

    def __init__(self, critical_handler_retries: int = 1):
        self._critical_handler_retries = max(0, critical_handler_retries)
        self._handlers: dict[type[AppEvent], list[Callable[[Any], None]]] = defaultdict(
            list
        )
        self.metrics = EventBusMetrics()

    def subscribe(
        self, event_type: type[AppEvent], handler: Callable[[Any], None]
    ) -> Callable[[], None]:
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return unsubscribe

    def unsubscribe(
        self, event_type: type[AppEvent], handler: Callable[[Any], None]
    ) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: AppEvent, *, critical: bool = False) -> None:
        event.critical = event.critical or critical
        self.metrics.published += 1
        snapshot = [(kind, list(handlers)) for kind, handlers in self._handlers.items()]
        for event_type, handlers in snapshot:
            if not isinstance(event, event_type):
                continue
            for handler in handlers:
                self._dispatch_to_handler(event, handler)

    def _dispatch_to_handler(
        self, event: AppEvent, handler: Callable[[Any], None]
    ) -> None:
        max_attempts = 1 + (self._critical_handler_retries if event.critical else 0)
        for attempt in range(max_attempts):
            try:
                handler(event)
                self.metrics.delivered += 1
                return
            except Exception:
                self.metrics.handler_failures += 1
                if attempt + 1 < max_attempts:
                    event.retry_count += 1
                    self.metrics.retried += 1
                    continue
                logger.exception(
                    "Event handler failed topic=%s source=%s critical=%s retries=%s",
                    event.topic,
                    event.source,
                    event.critical,
                    event.retry_count,
                )

    def snapshot_metrics(self) -> EventBusMetrics:
        return EventBusMetrics(
            published=self.metrics.published,
            delivered=self.metrics.delivered,
            retried=self.metrics.retried,
            handler_failures=self.metrics.handler_failures,
        )
