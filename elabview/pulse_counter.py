"""Readout of the target's pulse counter."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from elabview.protocol import Protocol, Signal

_UNITS = ("Hz", "kHz", "MHz", "GHz")


@dataclass(frozen=True)
class PulseReading:
    """Pulses counted per second."""

    frequency: float

    def frequency_text(self) -> str:
        value = self.frequency
        unit = 0
        while value > 1000 and unit < len(_UNITS) - 1:
            value *= 0.001
            unit += 1
        return f"Frequency: {value:7.3f} {_UNITS[unit]}"


def decode_pulse_count(data: bytes) -> PulseReading:
    """Decode a counter payload holding the pulse count as u32 LE."""
    data = bytes(data)
    if len(data) < 4:
        raise ValueError("pulse counter transfer is too short")
    (count,) = struct.unpack_from("<I", data)
    return PulseReading(float(count))


class PulseCounterController:
    """Decodes pulse counts arriving on one protocol channel."""

    def __init__(self, protocol: Protocol, channel: int) -> None:
        self.protocol = protocol
        self.channel = channel
        self.last_reading: Optional[PulseReading] = None
        self.frequency_yielded = Signal()
        protocol.binary_received.connect(self.display_data)

    def display_data(self) -> Optional[PulseReading]:
        """Decode the pending transfer if it belongs to this channel."""
        transfer = self.protocol.pop_transfer(self.channel)
        if transfer is None:
            return None
        reading = decode_pulse_count(transfer.data)
        self.last_reading = reading
        self.frequency_yielded.emit(reading.frequency)
        return reading

    def start(self) -> None:
        self.protocol.command("S", self.channel, 1)

    def stop(self) -> None:
        self.protocol.command("S", self.channel, 0)