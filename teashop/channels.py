"""Typed observer channels with synchronous replay of the current value."""
from typing import Callable, Generic, List, TypeVar

from teashop.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Channel(Generic[T]):
    """
    Holds the latest value of some state and pushes every new value to subscribers.

    Subscribing calls the callback immediately with the current value, so a
    late subscriber never misses the state published before it arrived.

    Usage:
        products = Channel[list[Product]]([])
        unsubscribe = products.subscribe(render)
        products.publish(new_list)
        unsubscribe()
    """

    def __init__(self, initial: T):
        self._value = initial
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._subscribers.append(callback)
        callback(self._value)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> None:
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                logger.exception("Channel subscriber failed")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
