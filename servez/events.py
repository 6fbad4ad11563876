"""Lifecycle events delivered from the server core to its host."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable


LOGGER = logging.getLogger("servez.events")

STARTED = "started"
STOPPED = "stopped"
CLOSED = "closed"
ERROR = "error"
LOG = "log"

EVENT_KINDS = frozenset({STARTED, STOPPED, CLOSED, ERROR, LOG})


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    kind: str
    generation: int
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return str(self.payload.get("message", ""))


Listener = Callable[[LifecycleEvent], None]


class EventBus:
    """Ordered list of subscribers; a failing listener never blocks the rest."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    pass

        return _unsubscribe

    def emit(self, kind: str, generation: int, **payload: Any) -> LifecycleEvent:
        if kind not in EVENT_KINDS:
            raise ValueError(f"unknown event kind: {kind}")
        event = LifecycleEvent(kind=kind, generation=generation, payload=payload)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                LOGGER.exception("event_listener_failed kind=%s generation=%s", kind, generation)
        return event


class GenerationFilter:
    """Drop events that belong to a generation older than the newest seen.

    Hosts wrap their listener with this so a late ``started`` from a torn
    down server cannot flip the UI back to "running".
    """

    def __init__(self, listener: Listener) -> None:
        self._listener = listener
        self.current = 0
        self.dropped = 0

    def __call__(self, event: LifecycleEvent) -> None:
        if event.generation < self.current:
            LOGGER.debug(
                "stale_event_dropped kind=%s generation=%s current=%s",
                event.kind,
                event.generation,
                self.current,
            )
            self.dropped += 1
            return
        self.current = event.generation
        self._listener(event)


__all__ = [
    "CLOSED",
    "ERROR",
    "EVENT_KINDS",
    "EventBus",
    "GenerationFilter",
    "LOG",
    "LifecycleEvent",
    "Listener",
    "STARTED",
    "STOPPED",
]
