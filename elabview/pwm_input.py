"""Readout of the target's PWM input capture."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional, Tuple

from elabview.protocol import Protocol, Signal

_UNITS = ("Hz", "kHz", "MHz")
_PAYLOAD = struct.Struct("<III")


def _scale(value: float, extra: float = 0.0) -> Tuple[float, float, str]:
    """Scale ``value`` (and ``extra`` alongside it) to Hz, kHz or MHz."""
    unit = 0
    while value > 1000 and unit < len(_UNITS) - 1:
        value *= 0.001
        extra *= 0.001
        unit += 1
    return value, extra, _UNITS[unit]


@dataclass(frozen=True)
class PwmReading:
    """One capture: frequency in Hz, duty cycle in percent and frequency resolution."""

    frequency: float
    duty_cycle: float
    precision: float

    def frequency_text(self) -> str:
        value, precision, unit = _scale(self.frequency, self.precision)
        return f"Frequency: {value:7.3f} {unit} ± {precision:g}"

    def duty_cycle_text(self) -> str:
        return f"Duty cycle: {self.duty_cycle:3.1f} %"


def decode_pwm(data: bytes) -> PwmReading:
    """Decode a capture payload: timer clock, period and pulse width as u32 LE."""
    data = bytes(data)
    if len(data) < _PAYLOAD.size:
        raise ValueError("PWM input transfer is too short")
    clock, period, width = _PAYLOAD.unpack_from(data)
    if period == 0:
        raise ValueError("PWM input transfer reports a zero period")
    frequency = clock / period
    duty_cycle = width / period * 100
    precision = frequency - clock / (period + 1)
    return PwmReading(frequency, duty_cycle, precision)


class PwmInputController:
    """Decodes PWM input captures arriving on one protocol channel."""

    def __init__(self, protocol: Protocol, channel: int) -> None:
        self.protocol = protocol
        self.channel = channel
        self.last_reading: Optional[PwmReading] = None
        self.frequency_yielded = Signal()
        protocol.binary_received.connect(self.display_data)

    def display_data(self) -> Optional[PwmReading]:
        """Decode the pending transfer if it belongs to this channel."""
        transfer = self.protocol.pop_transfer(self.channel)
        if transfer is None:
            return None
        reading = decode_pwm(transfer.data)
        self.last_reading = reading
        self.frequency_yielded.emit(reading.frequency)
        return reading

    def start(self) -> None:
        self.protocol.command("S", self.channel, 1)

    def stop(self) -> None:
        self.protocol.command("S", self.channel, 0)