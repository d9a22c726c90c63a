"""Basic statistics of a captured waveform."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class SignalMeasurement:
    """Mean, extremes and RMS noise (population deviation) of a waveform."""

    average: float
    min_value: float
    max_value: float
    noise: float


def measure(data: Sequence[float]) -> SignalMeasurement:
    """Measure ``data``; raises ValueError when it holds no samples."""
    values = np.asarray(data, dtype=np.float64).ravel()
    if values.size == 0:
        raise ValueError("cannot measure an empty signal")
    average = float(values.mean())
    noise = float(np.sqrt(np.mean((average - values) ** 2)))
    return SignalMeasurement(
        average=average,
        min_value=float(values.min()),
        max_value=float(values.max()),
        noise=noise,
    )