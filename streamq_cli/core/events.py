"""
Lifecycle events emitted by the queue and a small observer bus to deliver them.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

log = logging.getLogger(__name__)


class EventType(str, Enum):
    """Names of the lifecycle notifications, as seen by subscribers."""

    ADD = "add"
    REMOVE = "remove"
    PAUSE = "pause"
    RESUME = "resume"
    CLEAR_QUEUE = "clear-queue"
    START = "start"
    PROGRESS = "progress"
    FINISH = "finish"
    FAIL = "fail"
    FFMPEG_DANGER = "ffmpeg-danger"


@dataclass(frozen=True)
class QueueEvent:
    """A single notification: its type and its payload (`id`, `url`, `value`)."""

    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.type.value

    @property
    def video_id(self) -> Any:
        return self.payload.get("id")


Listener = Callable[[QueueEvent], None]


class EventBus:
    """
    Delivers events synchronously to subscribers, in emission order.

    Delivery is fire-and-forget: a failing listener is logged and skipped.
    """

    def __init__(self) -> None:
        self._listeners: list[tuple[Listener, frozenset[EventType]]] = []

    def subscribe(self, listener: Listener, *types: EventType) -> Callable[[], None]:
        """
        Registers a listener for the given event types (all types if none given).

        Returns:
            A callable that removes the subscription.
        """
        entry = (listener, frozenset(EventType(t) for t in types))
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event_type: EventType, **payload: Any) -> QueueEvent:
        event = QueueEvent(EventType(event_type), payload)
        log.debug(f"Event '{event.name}' {payload}")
        for listener, types in list(self._listeners):
            if types and event.type not in types:
                continue
            try:
                listener(event)
            except Exception as e:
                log.warning(
                    f"Listener {listener!r} failed while handling '{event.name}': {e}",
                    exc_info=log.getEffectiveLevel() == logging.DEBUG,
                )
        return event
