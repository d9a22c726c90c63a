"""Control of the target's waveform generator."""

from __future__ import annotations

import enum
import math

from elabview.protocol import Protocol

_FULL_SCALE_VOLTAGE = 3.3
_PHASE_RANGE = 4294967296.0
_SAMPLE_CLOCK = 1e6


class Waveform(enum.IntEnum):
    """Output shapes; the device receives the value minus one."""

    SINE = 1
    TRIANGLE = 2
    SQUARE = 3
    NOISE = 4
    SAW = 5


def _to_u16(value: float) -> int:
    return int(value) & 0xFFFF


class GeneratorController:
    """Sends generator settings to one protocol channel and tracks the real frequency."""

    def __init__(
        self,
        protocol: Protocol,
        channel: int,
        frequency: float = 100.0,
        amplitude: float = 100.0,
        offset: float = 0.0,
        voltage: float = 0.0,
        fixed_voltage: bool = False,
    ) -> None:
        self.protocol = protocol
        self.channel = channel
        self.frequency = frequency
        self.amplitude = amplitude
        self.offset = offset
        self.voltage = voltage
        self.fixed_voltage = fixed_voltage
        self.shape = Waveform.SINE
        self.timer_frequency = 0
        self.real_frequency: float | None = None

        protocol.device_reconnected.connect(self.configure_all)
        protocol.command_received.connect(self.handle_command)

    def handle_command(self) -> None:
        """React to a command frame reported by the target."""
        command = self.protocol.last_command
        if command.channel != self.channel:
            return
        if command.command_id == ord("F"):
            self.timer_frequency = command.value
        elif command.command_id == ord("D"):
            if self.timer_frequency > 0 and command.value > 0:
                self.real_frequency = self.timer_frequency / command.value

    def configure_all(self) -> None:
        self.configure_frequency(self.frequency)
        self.configure_scale(self.amplitude)
        self.configure_offset(self.offset)

    def configure_frequency(self, value: float) -> None:
        """Send the phase-accumulator increment for ``value`` Hz."""
        self.frequency = value
        addend = math.floor((_PHASE_RANGE * value) / _SAMPLE_CLOCK + 0.5)
        self.protocol.command("R", self.channel, addend & 0xFFFFFFFF)

    def configure_scale(self, value: float) -> None:
        """Set the amplitude in percent of full scale."""
        self.amplitude = value
        self.protocol.command("A", self.channel, _to_u16(value * 0.01 * 0xFFFF))

    def configure_offset(self, value: float) -> None:
        """Set the offset in percent of full scale."""
        self.offset = value
        self.protocol.command("O", self.channel, _to_u16(value * 0.01 * 0xFFFF))

    def configure_shape(self, shape: Waveform | int) -> None:
        self.shape = Waveform(shape)
        self.protocol.command("P", self.channel, int(self.shape) - 1)

    def configure_voltage(self) -> None:
        """Force the fixed output voltage, or release it."""
        if self.fixed_voltage:
            value = (self.voltage / _FULL_SCALE_VOLTAGE) * 256 * 256
            value = min(max(value, 0.0), 256.0 * 256.0 - 1)
            self.protocol.command("V", self.channel, math.floor(value))
        else:
            self.protocol.command("G", self.channel, 0)

    def set_static_voltage(self, value: float) -> None:
        self.voltage = value
        self.fixed_voltage = True
        self.configure_voltage()

    def start(self) -> None:
        self.protocol.command("S", self.channel, 1)

    def stop(self) -> None:
        self.protocol.command("S", self.channel, 0)