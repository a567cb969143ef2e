"""Named-event fan-out used by regions to notify their consumers."""
from __future__ import annotations

import logging
from typing import Any, Callable

_LOGGER = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]
AnyListener = Callable[[str, dict[str, Any]], None]


class EventEmitter:
    """
    Delivers named events with a keyword payload to subscribed callbacks.

    A failing listener is logged and skipped; it never stops delivery to
    the remaining listeners or the code that emitted the event.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._any_listeners: list[AnyListener] = []

    def on(self, event: str, callback: Listener) -> Callable[[], None]:
        """Subscribe to *event*; returns a function that unsubscribes."""
        self._listeners.setdefault(event, []).append(callback)

        def remove_listener() -> None:
            listeners = self._listeners.get(event, [])
            if callback in listeners:
                listeners.remove(callback)

        return remove_listener

    def on_any(self, callback: AnyListener) -> Callable[[], None]:
        """Subscribe to every event; the callback also receives the event name."""
        self._any_listeners.append(callback)

        def remove_listener() -> None:
            if callback in self._any_listeners:
                self._any_listeners.remove(callback)

        return remove_listener

    def emit(self, event: str, **info: Any) -> None:
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(info)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Listener for '%s' raised", event)
        for any_callback in list(self._any_listeners):
            try:
                any_callback(event, info)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Listener for '%s' raised", event)

    def remove_all_listeners(self) -> None:
        self._listeners.clear()
        self._any_listeners.clear()
