import logging
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]


class Store(Generic[T]):
    """Holds one immutable snapshot and notifies subscribers when it is replaced."""

    def __init__(self, initial: T) -> None:
        self._snapshot = initial
        self._listeners: list[Listener[T]] = []

    def get_snapshot(self) -> T:
        return self._snapshot

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set(self, snapshot: T) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("store_listener_failed")
