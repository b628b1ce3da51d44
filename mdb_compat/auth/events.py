"""
Auth state broadcast.

An ordered event channel for identity changes: subscribers are called in
subscription order, can unsubscribe at any time (including from inside a
callback) and a failing subscriber does not stop delivery to the rest.
"""

import inspect
import itertools
import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StateBroadcaster(Generic[T]):
    def __init__(self, name: str = "state"):
        self._name = name
        self._subscribers: dict[int, Callable[[T], Any]] = {}
        self._ids = itertools.count()

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Callable[[T], Any]) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            Unsubscribe callable (safe to call more than once)
        """
        subscription_id = next(self._ids)
        self._subscribers[subscription_id] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(subscription_id, None)

        return unsubscribe

    async def publish(self, value: T) -> None:
        """Deliver ``value`` to every current subscriber, in order."""
        for subscription_id, callback in list(self._subscribers.items()):
            if subscription_id not in self._subscribers:
                continue
            try:
                result = callback(value)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"{self._name} subscriber raised; continuing delivery")

    def clear(self) -> None:
        self._subscribers.clear()
