"""Running block average over equally sized sample vectors."""

from __future__ import annotations

from typing import Sequence

import numpy as np


class DataAveraging:
    """Accumulates vectors and publishes their mean every ``average_count`` commits.

    A change in vector length discards everything collected so far.
    """

    def __init__(self, average_count: int) -> None:
        self.set_averaging(average_count)
        self._count = 0
        self._accumulator = np.zeros(0, dtype=np.float64)
        self._result = np.zeros(0, dtype=np.float64)

    @property
    def result(self) -> np.ndarray:
        return self._result

    @property
    def average_count(self) -> int:
        return self._average_count

    def set_averaging(self, value: int) -> None:
        if value < 0:
            raise ValueError("averaging count must not be negative")
        self._average_count = int(value)

    def reset(self) -> None:
        """Restart the count of the current block."""
        self._count = 0

    def commit(self, data: Sequence[float]) -> None:
        values = np.asarray(data, dtype=np.float64)
        if values.shape != self._accumulator.shape:
            self._accumulator = np.zeros_like(values)
            self._result = np.zeros_like(values)
            self._count = 0

        self._accumulator += values
        self._count += 1
        if self._count >= self._average_count:
            self._result = self._accumulator / self._count
            self._accumulator = np.zeros_like(values)
            self._count = 0