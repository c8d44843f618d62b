"""Fire-and-forget diagnostics publishers.

A publisher delivers each message to its subscribers synchronously, but only
while activated. Delivery is best-effort: a failing subscriber is logged and
never fails the control tick that published the message.
"""

import logging
from typing import Any, Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Publisher(Generic[T]):
    """Named topic with in-process subscribers."""

    def __init__(self, topic: str) -> None:
        self.topic = topic
        self.active = False
        self.published_count = 0
        self._subscribers: List[Callable[[T], Any]] = []

    def subscribe(self, callback: Callable[[T], Any]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[T], Any]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def on_activate(self) -> None:
        self.active = True

    def on_deactivate(self) -> None:
        self.active = False

    def publish(self, message: T) -> None:
        """Deliver ``message`` to every subscriber if the publisher is active."""
        if not self.active:
            return
        self.published_count += 1
        for callback in list(self._subscribers):
            try:
                callback(message)
            except Exception as e:
                logger.warning(f"Subscriber of '{self.topic}' failed: {e}", exc_info=True)
