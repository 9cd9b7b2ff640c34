"""Fixed-capacity ring buffer of the most recent frames."""
from __future__ import annotations

from typing import Optional

from .errors import ConfigurationError, IncompleteWindow
from .frame import Frame


class SlidingWindow:
    """
    Holds the last ``capacity`` frames in a preallocated ring.

    ``push`` overwrites the oldest slot once the ring is full, so storage never
    grows past ``capacity`` frames however long the stream runs. ``at(0)`` is
    the newest frame, ``at(capacity - 1)`` the oldest.
    """

    __slots__ = ("_slots", "_head", "_size", "_pushed")

    def __init__(self, capacity: int):
        if int(capacity) < 1:
            raise ConfigurationError(f"window capacity must be >= 1, got {capacity}")
        self._slots: list[Optional[Frame]] = [None] * int(capacity)
        self._head = -1
        self._size = 0
        self._pushed = 0

    @property
    def capacity(self) -> int:
        return len(self._slots)

    @property
    def pushed(self) -> int:
        """Total number of frames pushed since creation or the last clear."""
        return self._pushed

    @property
    def resident(self) -> int:
        """Number of slots currently holding a frame."""
        return sum(1 for slot in self._slots if slot is not None)

    @property
    def is_full(self) -> bool:
        return self._size == len(self._slots)

    def __len__(self) -> int:
        return self._size

    def push(self, frame: Frame) -> Optional[Frame]:
        """Insert the newest frame; return the evicted oldest frame, if any."""
        self._head = (self._head + 1) % len(self._slots)
        evicted = self._slots[self._head]
        self._slots[self._head] = frame
        if self._size < len(self._slots):
            self._size += 1
        self._pushed += 1
        return evicted

    def at(self, offset: int) -> Frame:
        if not 0 <= offset < len(self._slots):
            raise IndexError(f"offset {offset} outside window of capacity {len(self._slots)}")
        if offset >= self._size:
            raise IncompleteWindow(offset, self._size)
        return self._slots[(self._head - offset) % len(self._slots)]

    def newest(self) -> Frame:
        return self.at(0)

    def frames(self) -> list[Frame]:
        """Resident frames, oldest first."""
        return [self.at(offset) for offset in range(self._size - 1, -1, -1)]

    def clear(self) -> None:
        """Drop every frame reference and start over."""
        for i in range(len(self._slots)):
            self._slots[i] = None
        self._head = -1
        self._size = 0
        self._pushed = 0

    def __repr__(self) -> str:
        return f"SlidingWindow(capacity={len(self._slots)}, occupancy={self._size})"
