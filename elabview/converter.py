"""Conversion between raw device values and physical units."""

from __future__ import annotations

from typing import Tuple

import numpy as np

from elabview.protocol import BinaryTransfer


class DataConverter:
    """Linear mapping between a device range and a physical range."""

    def __init__(self, source_min: int, source_max: int, dest_min: float, dest_max: float) -> None:
        self.source_min = int(source_min)
        self.source_max = int(source_max)
        self.dest_min = float(dest_min)
        self.dest_max = float(dest_max)

    @property
    def dest_diff(self) -> float:
        return self.dest_max - self.dest_min

    def set_dest_max(self, value: float) -> None:
        self.dest_max = float(value)

    def to_device(self, value: float) -> int:
        scaled = ((value - self.dest_min) / self.dest_max) * (self.source_max - self.source_min)
        return int(scaled + self.source_min)

    def from_device(self, value: int) -> float:
        return ((value - self.source_min) / self.source_max) * self.dest_diff + self.dest_min

    def _scale(self, samples: np.ndarray) -> np.ndarray:
        values = samples.astype(np.float64)
        return ((values - self.source_min) / self.source_max) * self.dest_diff + self.dest_min

    def from_device_16bit_stream(self, data: bytes, step: int) -> np.ndarray:
        """Convert unsigned 16-bit little-endian samples taken every ``step`` bytes."""
        if step <= 0:
            raise ValueError("step must be positive")
        raw = np.frombuffer(bytes(data), dtype=np.uint8)
        if raw.size < 2:
            return np.zeros(0, dtype=np.float64)
        count = (raw.size - 2) // step + 1
        positions = np.arange(count) * step
        samples = raw[positions].astype(np.uint16) | (raw[positions + 1].astype(np.uint16) << 8)
        return self._scale(samples)

    def from_transfer(self, transfer: BinaryTransfer) -> np.ndarray:
        """Convert a transfer holding signed 16-bit little-endian samples."""
        count = transfer.size // 2
        samples = np.frombuffer(transfer.data[:count * 2], dtype="<i2")
        return self._scale(samples)


def convert_sample_rate(value: float) -> int:
    """Encode a frequency into the device's 16-bit rate word.

    The top two bits select the unit (Hz, kHz, MHz); the rest hold the value.
    Rates of 1 GHz and above encode as 0.
    """
    if value < 1e4:
        return int(value) & 0xFFFF
    if value < 1e7:
        return (0x1 << 14) | (int(value * 1e-3) & 0x3FFF)
    if value < 1e9:
        return (0x2 << 14) | (int(value * 1e-6) & 0x3FFF)
    return 0


def unit_prefix(value: float) -> Tuple[float, str]:
    """Return ``value`` scaled to an SI prefix together with that prefix."""
    magnitude = abs(value)
    if magnitude >= 1e9:
        return value * 1e-9, "G"
    if magnitude >= 1e6:
        return value * 1e-6, "M"
    if magnitude >= 1e3:
        return value * 1e-3, "k"
    if magnitude >= 1.0:
        return value, ""
    if magnitude >= 1e-3:
        return value * 1e3, "m"
    if magnitude >= 1e-6:
        return value * 1e6, "u"
    return value, ""