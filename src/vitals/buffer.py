"""Fixed-capacity circular buffers for per-frame time series."""

from __future__ import annotations

import numpy as np


def wrap(offset: int, length: int) -> int:
    """Map any (possibly negative) offset into ``[0, length)``."""
    if length <= 0:
        raise ValueError("length must be positive")
    return (length + (offset % length)) % length


class RingBuffer:
    """Circular store of floats with a write cursor.

    The cursor always points at the slot the next ``push`` writes to, so the
    newest value lives at ``cursor - 1``. Storage is allocated once.
    """

    def __init__(self, length: int, fill: float = 0.0) -> None:
        if int(length) <= 0:
            raise ValueError("buffer length must be positive")
        self.length = int(length)
        self.values = np.full(self.length, float(fill), dtype=np.float64)
        self.cursor = 0
        self.count = 0  # total pushes, not clipped to length

    @property
    def full(self) -> bool:
        return self.count >= self.length

    def push(self, value: float) -> None:
        self.values[self.cursor] = value
        self.cursor = wrap(self.cursor + 1, self.length)
        self.count += 1

    def at(self, offset: int = 0) -> float:
        """Value ``offset`` steps back from the newest one (0 = newest)."""
        return float(self.values[wrap(self.cursor - 1 - offset, self.length)])

    def latest(self, n: int) -> np.ndarray:
        """Return the newest ``n`` values, oldest first (copy)."""
        n = max(0, min(int(n), self.length, self.count))
        # numpy's mod follows the divisor's sign, same result as wrap()
        idx = np.mod(np.arange(self.cursor - n, self.cursor), self.length)
        return self.values[idx]

    def reset(self) -> None:
        self.values[:] = 0.0
        self.cursor = 0
        self.count = 0

    def __len__(self) -> int:
        return min(self.count, self.length)
