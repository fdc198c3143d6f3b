from __future__ import annotations

import numpy as np


class RingBuffer:
    """Fixed-capacity circular buffer of float samples.

    The buffer is zero-filled on creation and always holds ``capacity``
    values; appending evicts the oldest one. Index 0 is the oldest sample,
    index -1 the newest.
    """

    def __init__(self, capacity: int, fill: float = 0.0):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = int(capacity)
        self._data = np.full(self.capacity, fill, dtype=float)
        # Position where the next sample is written; also the oldest sample.
        self._head = 0

    def append(self, value: float) -> None:
        self._data[self._head] = value
        self._head = (self._head + 1) % self.capacity

    def latest(self) -> float:
        return float(self._data[(self._head - 1) % self.capacity])

    def __len__(self) -> int:
        return self.capacity

    def __getitem__(self, index: int) -> float:
        if index < -self.capacity or index >= self.capacity:
            raise IndexError("ring buffer index out of range")
        if index < 0:
            index += self.capacity
        return float(self._data[(self._head + index) % self.capacity])

    def to_array(self) -> np.ndarray:
        """Return an oldest-first copy of the buffer contents."""
        return np.roll(self._data, -self._head)
