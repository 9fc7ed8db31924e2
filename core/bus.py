"""Session-scoped event bus.

Observers subscribe to typed event classes from ``schemas.events`` and are
called synchronously, in subscription order, on every ``publish``. A failing
handler is logged and does not prevent delivery to the remaining handlers.
"""

from __future__ import annotations

from typing import Any, Callable, List, Tuple

import structlog

logger = structlog.get_logger(__name__)

Handler = Callable[[Any], None]


class EventBus:
    def __init__(self) -> None:
        self._subs: List[Tuple[Handler, Tuple[type, ...]]] = []

    def subscribe(self, handler: Handler, *event_types: type) -> Callable[[], None]:
        """Register ``handler`` for ``event_types`` (all events when empty).

        Returns:
            A callable that removes the subscription.
        """
        entry = (handler, tuple(event_types))
        self._subs.append(entry)

        def _unsubscribe() -> None:
            try:
                self._subs.remove(entry)
            except ValueError:
                pass

        return _unsubscribe

    def publish(self, event: Any) -> None:
        for handler, types in list(self._subs):
            if types and not isinstance(event, types):
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "event_handler_failed",
                    event_type=type(event).__name__,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )
