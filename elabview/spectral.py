"""Magnitude spectrum of a sampled signal."""

from __future__ import annotations

from typing import Sequence

import numpy as np

# The window keeps the constant the firmware tooling has always used.
_PI = 3.1415926


class SpectralAnalysis:
    """FFT magnitude of a fixed-length, zero-padded, optionally windowed signal."""

    def __init__(self, data_size: int) -> None:
        if data_size <= 0:
            raise ValueError("data size must be positive")
        self._size = int(data_size)
        self._input = np.zeros(self._size, dtype=np.float64)
        self._result = np.zeros(self._size, dtype=np.float64)
        self._signal_size = 0
        self.use_window = True

    @property
    def data_size(self) -> int:
        return self._size

    @property
    def result(self) -> np.ndarray:
        return self._result.copy()

    def enable_window(self, value: bool) -> None:
        self.use_window = bool(value)

    def compute(self, values: Sequence[float], mean_value: float = 0.0) -> np.ndarray:
        """Load ``values`` minus ``mean_value`` and return the magnitude spectrum.

        Signals longer than the data size are truncated, shorter ones are
        padded with zeros.
        """
        samples = np.asarray(values, dtype=np.float64).ravel()
        count = min(samples.size, self._size)
        self._input = np.zeros(self._size, dtype=np.float64)
        self._input[:count] = samples[:count] - mean_value
        self._signal_size = count
        return self.recompute()

    def _window(self) -> np.ndarray:
        n = self._signal_size
        if n <= 1:
            return np.ones(n, dtype=np.float64)
        i = np.arange(n, dtype=np.float64)
        return 0.54 - 0.46 * np.cos((2 * _PI * i) / (n - 1))

    def recompute(self) -> np.ndarray:
        """Recompute the spectrum of the signal loaded last."""
        buffer = self._input.astype(np.complex128)
        if self.use_window:
            buffer[:self._signal_size] *= self._window()
        self._result = np.abs(np.fft.fft(buffer))
        return self._result.copy()

    def resize(self, new_size: int) -> None:
        """Change the transform length, keeping as much of the loaded signal as fits."""
        if new_size <= 0:
            raise ValueError("data size must be positive")
        resized = np.zeros(new_size, dtype=np.float64)
        keep = min(new_size, self._size)
        resized[:keep] = self._input[:keep]
        self._input = resized
        self._signal_size = min(self._signal_size, new_size)
        self._size = int(new_size)
        self._result = np.zeros(new_size, dtype=np.float64)