"""Bounded rolling history buffer used by the router and reasoning engines."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from typing import Generic, TypeVar

T = TypeVar("T")


class BoundedHistory(Generic[T]):
    """FIFO buffer that silently evicts the oldest entry once full.

    Appends are atomic under the asyncio scheduler, so concurrent coroutines
    may record into the same buffer without locking.
    """

    def __init__(self, maxlen: int) -> None:
        if maxlen < 1:
            raise ValueError("maxlen must be >= 1")
        self._items: deque[T] = deque(maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._items.maxlen or 0

    def append(self, item: T) -> None:
        self._items.append(item)

    def recent(self, limit: int | None = None) -> list[T]:
        """Return up to ``limit`` most recent entries, oldest first."""
        items = list(self._items)
        if limit is None:
            return items
        if limit <= 0:
            return []
        return items[-limit:]

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))
