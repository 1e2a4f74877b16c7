"""
Notification channel between the library core and its UI host.

The core never depends on a UI framework's reactive state. Instead
LibraryStore and SyncEngine publish small event objects on an EventBus
and the host subscribes with plain callables:

    bus = EventBus()
    unsubscribe = bus.subscribe(view_model.on_event)
    store = LibraryStore(database, events=bus)
    ...
    unsubscribe()

Callbacks run synchronously on the publisher's thread (the event loop
thread for sync events). A callback that raises is logged and skipped so
one broken subscriber cannot interrupt a queue drain.
"""

from dataclasses import dataclass
from typing import Any, Callable

from anitrack.core.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class EntryChanged:
    """A library entry was created, updated, moved, reordered or deleted locally or by a pull."""
    entry_id: int
    media_id: int
    change: str


@dataclass(frozen=True)
class QueueDrained:
    """A process_queue() pass finished. report is a QueueReport."""
    report: Any


@dataclass(frozen=True)
class SyncCompleted:
    """A pull finished reconciling. report is a ReconcileReport."""
    report: Any


@dataclass(frozen=True)
class SyncFailed:
    """A pull or drain raised. error is the AniTrackError propagated to the caller."""
    error: Exception


Subscriber = Callable[[Any], None]


class EventBus:
    """Minimal synchronous publish/subscribe channel."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register callback for every event. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: Any) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Event subscriber failed on {type(event).__name__}")
