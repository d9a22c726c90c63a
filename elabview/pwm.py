"""Control of the target's PWM output."""

from __future__ import annotations

import math

from elabview.converter import convert_sample_rate
from elabview.protocol import Protocol


class PwmController:
    """Sends PWM settings to one protocol channel and tracks the real frequency."""

    def __init__(
        self,
        protocol: Protocol,
        channel: int,
        frequency: float = 100.0,
        duty_cycle: float = 50.0,
    ) -> None:
        self.protocol = protocol
        self.channel = channel
        self.frequency = frequency
        self.duty_cycle = duty_cycle
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
        self.configure_duty_cycle(self.duty_cycle)

    def configure_frequency(self, value: float) -> None:
        self.frequency = value
        self.protocol.command("F", self.channel, convert_sample_rate(value))

    def configure_duty_cycle(self, value: float) -> None:
        """Set the duty cycle in percent, sent in tenths of a percent."""
        self.duty_cycle = value
        self.protocol.command("D", self.channel, math.floor(value * 10.0 + 0.5) & 0xFFFF)

    def start(self) -> None:
        self.protocol.command("S", self.channel, 1)

    def stop(self) -> None:
        self.protocol.command("S", self.channel, 0)