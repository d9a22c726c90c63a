"""Readout of the target's multi-channel voltmeter."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from typing import Optional, Tuple

from elabview.converter import DataConverter
from elabview.protocol import Protocol, Signal

RECORD_SOURCES = (
    "Voltage1",
    "Voltage2",
    "Voltage3",
    "Reference voltage",
    "V2 - V1",
    "V3 - V2",
)

_VOLT_LIMIT = 10.0


def volt_filter(value: float) -> float:
    """Clamp a measured voltage to ±10 V; NaN becomes 0."""
    if math.isnan(value):
        return 0.0
    return min(max(value, -_VOLT_LIMIT), _VOLT_LIMIT)


@dataclass(frozen=True)
class VoltmeterReading:
    """Averaged voltages of one voltmeter transfer."""

    samples: int
    voltage1: float
    voltage2: float
    voltage3: float
    reference: float

    @property
    def diff21(self) -> float:
        return self.voltage2 - self.voltage1

    @property
    def diff32(self) -> float:
        return self.voltage3 - self.voltage2

    @property
    def time(self) -> float:
        """Time the measurement covered, in the device's 10 ms units."""
        return self.samples * 0.01

    @property
    def values(self) -> Tuple[float, ...]:
        """All readings in the order of ``RECORD_SOURCES``."""
        return (
            self.voltage1,
            self.voltage2,
            self.voltage3,
            self.reference,
            self.diff21,
            self.diff32,
        )


def decode_voltages(data: bytes, converter: DataConverter) -> VoltmeterReading:
    """Decode a voltmeter payload.

    The payload is the number of averaged samples (u16 LE) followed by
    summed channel values (i32 LE); the last value is the reference
    voltage in millivolts.
    """
    data = bytes(data)
    if len(data) < 6:
        raise ValueError("voltmeter transfer is too short")
    (samples,) = struct.unpack_from("<H", data)
    if samples == 0:
        raise ValueError("voltmeter transfer averages no samples")
    channels = (len(data) - 2) // 4
    raw = struct.unpack_from(f"<{channels}i", data, 2)

    v1 = converter.from_device(raw[0])
    v2 = converter.from_device(raw[1]) if channels > 2 else 0.0
    v3 = converter.from_device(raw[2]) if channels > 3 else 0.0
    ref = raw[channels - 1] * 0.001

    v1, v2, v3, ref = (volt_filter(v / samples) for v in (v1, v2, v3, ref))
    return VoltmeterReading(samples, v1, v2, v3, ref)


class VoltmeterController:
    """Decodes voltmeter transfers on one channel and yields the selected voltage."""

    def __init__(self, protocol: Protocol, channel: int, converter: DataConverter) -> None:
        self.protocol = protocol
        self.channel = channel
        self.converter = converter
        self.record_index = 0
        self.last_reading: Optional[VoltmeterReading] = None
        self.reading_received = Signal()
        self.voltage_yielded = Signal()
        protocol.binary_received.connect(self.display_data)

    def display_data(self) -> Optional[VoltmeterReading]:
        """Decode the pending transfer if it belongs to this channel."""
        transfer = self.protocol.pop_transfer(self.channel)
        if transfer is None:
            return None
        reading = decode_voltages(transfer.data, self.converter)
        self.last_reading = reading
        self.reading_received.emit(reading)
        self.voltage_yielded.emit(reading.values[self.record_index], reading.time)
        return reading

    def configure_num_samples(self, value: float) -> None:
        """Set how many samples the target averages per reading."""
        self.protocol.command("A", self.channel, math.floor(value + 0.5) & 0xFFFF)

    def select_recording_source(self, index: int) -> None:
        """Choose which of ``RECORD_SOURCES`` is yielded; other indices are ignored."""
        if 0 <= index < len(RECORD_SOURCES):
            self.record_index = index

    def start(self) -> None:
        self.protocol.command("S", self.channel, 1)

    def stop(self) -> None:
        self.protocol.command("S", self.channel, 0)