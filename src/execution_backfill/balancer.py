"""Round-robin balancer over a fixed set of items."""

import threading
from typing import Generic, List, Optional, Sequence, TypeVar

T = TypeVar('T')


class RoundRobinBalancer(Generic[T]):
    """
    Cycles through a fixed set of items in configured order.

    ``next()`` may be called from any number of workers; cursor advancement
    is serialized through a single lock. An empty or unconfigured balancer
    returns ``None`` instead of blocking or raising, so callers must check.
    """

    def __init__(self, items: Optional[Sequence[T]] = None):
        self._lock = threading.Lock()
        self._items: List[T] = []
        self._cursor = 0
        if items is not None:
            self.configure(items)

    def configure(self, items: Sequence[T]) -> None:
        """Replace the cycle and reset the cursor."""
        new_items = list(items)
        with self._lock:
            self._items = new_items
            self._cursor = 0

    def next(self) -> Optional[T]:
        """Return the next item and advance, wrapping at the end."""
        with self._lock:
            if not self._items:
                return None
            item = self._items[self._cursor]
            self._cursor = (self._cursor + 1) % len(self._items)
            return item

    def size(self) -> int:
        with self._lock:
            return len(self._items)

    def __len__(self) -> int:
        return self.size()
