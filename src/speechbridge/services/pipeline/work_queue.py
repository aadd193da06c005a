"""FIFO work queue between the segmenter and the pacing scheduler."""

from __future__ import annotations

import threading
from collections import deque
from typing import Iterable, List, Optional

from .models import Segment


class WorkQueue:
    """
    Strict FIFO of segments with a single producer and a single consumer.

    The consumer peeks the head, submits it, and only then pops it, so a
    segment is never removed before it has been processed. Appends and pops
    are guarded by a mutex because producers may run on other threads.
    """

    def __init__(self) -> None:
        self._items: deque[Segment] = deque()
        self._lock = threading.Lock()

    def append(self, segment: Segment) -> bool:
        """Append one segment. Returns True if the queue was empty before."""
        with self._lock:
            was_empty = not self._items
            self._items.append(segment)
            return was_empty

    def extend(self, segments: Iterable[Segment]) -> bool:
        """
        Append segments in order, consuming the iterable exactly once.

        Returns True if the queue went from empty to non-empty.
        """
        became_non_empty = False
        for segment in segments:
            if self.append(segment):
                became_non_empty = True
        return became_non_empty

    def peek(self) -> Optional[Segment]:
        with self._lock:
            return self._items[0] if self._items else None

    def pop(self) -> Optional[Segment]:
        with self._lock:
            return self._items.popleft() if self._items else None

    def pop_if_head(self, segment: Segment) -> bool:
        """Pop the head only if it is ``segment``."""
        with self._lock:
            if self._items and self._items[0] is segment:
                self._items.popleft()
                return True
            return False

    def clear(self) -> int:
        """Drop every queued segment, returning how many were dropped."""
        with self._lock:
            count = len(self._items)
            self._items.clear()
            return count

    def snapshot(self) -> List[Segment]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __bool__(self) -> bool:
        return len(self) > 0
