"""
In-process EventBus used by the sync engine to announce state changes.

Key invariants (enforced by call sites + tests):
  - Event topics come from ``greensync.enums.sync.SyncEvent``.
  - Subscribers always receive a plain dict (or primitive) payload.
  - Dispatch is synchronous on the publishing thread; a failing subscriber
    is logged and never affects the publisher or other subscribers.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Callable, Dict, Hashable, Iterable

from pydantic import BaseModel

from greensync.enums.sync import SyncEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Routes published events to their subscribers."""

    def __init__(self) -> None:
        self.subscribers: Dict[Hashable, list[Callable[[Any], None]]] = defaultdict(list)
        self.lock = threading.Lock()

    def subscribe(self, event_name: SyncEvent | str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """
        Subscribes a callback function to an event.

        Args:
            event_name: The enum topic (preferred) or raw string.
            callback: Function to call when the event occurs.

        Returns:
            A callable that removes the subscription.
        """
        name = event_name.value if isinstance(event_name, Enum) else event_name
        with self.lock:
            self.subscribers[name].append(callback)

        def unsubscribe() -> None:
            with self.lock:
                callbacks = self.subscribers.get(name, [])
                try:
                    callbacks.remove(callback)
                except ValueError:
                    return

        return unsubscribe

    def publish(self, event_name: SyncEvent | str, data: Any | None = None) -> None:
        """
        Publishes an event, calling all subscribed callback functions.

        Args:
            event_name: The enum topic (preferred) or raw string.
            data: Payload object (Pydantic model, dataclass, or dict/primitive).
        """
        name = event_name.value if isinstance(event_name, Enum) else event_name

        if isinstance(data, BaseModel):
            payload: Any = data.model_dump(mode="json")
        elif is_dataclass(data) and not isinstance(data, type):
            payload = asdict(data)
        else:
            payload = data

        with self.lock:
            callbacks: Iterable[Callable[[Any], None]] = list(self.subscribers.get(name, []))
        for callback in callbacks:
            try:
                callback(payload)
            except Exception as exc:
                logger.error("Error in callback for event %s: %s", name, exc, exc_info=True)

